"""
Configuration Management for speechcache.

This module provides centralized configuration handling with:
    - Default values (Defaults class)
    - Dataclass-based configuration objects
    - YAML file loading with environment variable overrides
    - Validation with meaningful error messages

Configuration Hierarchy (highest priority first):
    1. Environment variables (SPEECHCACHE_DATABASE, SPEECHCACHE_BLOB_DIR, ...)
    2. YAML config file (config/settings.yaml)
    3. Defaults class values

Example settings.yaml:
    store:
      database_path: ./storage/utterances.sqlite3
      blob_base_dir: ./storage/blobs
      container_name: speechcache_utterances
      utterance_ttl_days: 31

    listen:
      max_input_characters: 60000

    voices:
      en: [dfki-spike-hsmm, cmu-slt-hsmm]
      sv: [stts_sv_nst-hsmm]

    logging:
      level: 2  # NORMAL
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
import os
import yaml


class ConfigValidationError(Exception):
    """Raised when a configuration value is outside acceptable bounds."""
    pass


class Defaults:
    """
    Centralized default configuration values.

    Used when no override is provided via YAML config or environment
    variables.
    """

    # ─────────────────────────────────────────────────────────────────────────
    # Utterance Store
    # ─────────────────────────────────────────────────────────────────────────
    STORE_DATABASE_PATH = "./storage/utterances.sqlite3"  # Metadata tier
    STORE_BLOB_BASE_DIR = "./storage/blobs"              # Blob tier root
    STORE_CONTAINER_NAME = "speechcache_utterances"      # Logical container
    STORE_AUDIO_SUFFIX = "opus"
    STORE_METADATA_SUFFIX = "json"
    STORE_UTTERANCE_TTL_DAYS = 31    # Age at which the expiry flush removes rows
    STORE_ORPHAN_TTL_DAYS = 1        # Minimum age of blobs removed by reconcile

    # ─────────────────────────────────────────────────────────────────────────
    # Listen (get-or-synthesize)
    # ─────────────────────────────────────────────────────────────────────────
    LISTEN_MAX_INPUT_CHARACTERS = 60000

    # ─────────────────────────────────────────────────────────────────────────
    # Logging
    # ─────────────────────────────────────────────────────────────────────────
    LOGGING_TEXT_PREVIEW_CHARS = 80
    LOGGING_LEVEL = 2                # 1=MINIMAL, 2=NORMAL, 3=VERBOSE, 4=DEBUG


@dataclass
class StoreConfig:
    """
    Utterance store configuration.

    The metadata tier is a SQLite database; the blob tier is a directory
    tree under ``blob_base_dir/container_name``.
    """
    database_path: str = Defaults.STORE_DATABASE_PATH
    blob_base_dir: str = Defaults.STORE_BLOB_BASE_DIR
    container_name: str = Defaults.STORE_CONTAINER_NAME
    audio_suffix: str = Defaults.STORE_AUDIO_SUFFIX
    metadata_suffix: str = Defaults.STORE_METADATA_SUFFIX
    utterance_ttl_days: int = Defaults.STORE_UTTERANCE_TTL_DAYS
    orphan_ttl_days: int = Defaults.STORE_ORPHAN_TTL_DAYS


@dataclass
class ListenConfig:
    """Limits applied before a segment is sent for synthesis."""
    max_input_characters: int = Defaults.LISTEN_MAX_INPUT_CHARACTERS


@dataclass
class LoggingConfig:
    """
    Logging configuration.

    Log levels:
        1 = MINIMAL: Startup, shutdown, critical errors only
        2 = NORMAL: Cache status, flush summaries (default)
        3 = VERBOSE: Per-row flush detail, timings
        4 = DEBUG: Internal state
    """
    text_preview_chars: int = Defaults.LOGGING_TEXT_PREVIEW_CHARS
    level: int = Defaults.LOGGING_LEVEL


@dataclass
class ServiceConfig:
    """
    Validated configuration for UtteranceService and the CLI.

    Usage:
        settings = load_settings("config/settings.yaml")
        config = ServiceConfig.from_settings(settings)
        print(config.store.container_name)
    """
    store: StoreConfig = field(default_factory=StoreConfig)
    listen: ListenConfig = field(default_factory=ListenConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    voices: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ServiceConfig":
        """
        Create ServiceConfig from Settings with validation.

        Raises:
            ConfigValidationError: If any value fails validation.
        """
        raw = settings.raw

        # ─────────────────────────────────────────────────────────────────────
        # Store configuration
        # ─────────────────────────────────────────────────────────────────────
        store_raw = raw.get("store", {}) or {}
        store = StoreConfig(
            database_path=str(store_raw.get("database_path", Defaults.STORE_DATABASE_PATH)),
            blob_base_dir=str(store_raw.get("blob_base_dir", Defaults.STORE_BLOB_BASE_DIR)),
            container_name=str(store_raw.get("container_name") or Defaults.STORE_CONTAINER_NAME),
            audio_suffix=str(store_raw.get("audio_suffix", Defaults.STORE_AUDIO_SUFFIX)),
            metadata_suffix=str(store_raw.get("metadata_suffix", Defaults.STORE_METADATA_SUFFIX)),
            utterance_ttl_days=int(store_raw.get("utterance_ttl_days", Defaults.STORE_UTTERANCE_TTL_DAYS)),
            orphan_ttl_days=int(store_raw.get("orphan_ttl_days", Defaults.STORE_ORPHAN_TTL_DAYS)),
        )
        cls._validate_non_negative("store.utterance_ttl_days", store.utterance_ttl_days)
        cls._validate_non_negative("store.orphan_ttl_days", store.orphan_ttl_days)
        if store.audio_suffix == store.metadata_suffix:
            raise ConfigValidationError(
                "store.audio_suffix and store.metadata_suffix must differ, "
                f"got {store.audio_suffix!r} for both"
            )

        # ─────────────────────────────────────────────────────────────────────
        # Listen configuration
        # ─────────────────────────────────────────────────────────────────────
        listen_raw = raw.get("listen", {}) or {}
        listen = ListenConfig(
            max_input_characters=int(
                listen_raw.get("max_input_characters", Defaults.LISTEN_MAX_INPUT_CHARACTERS)
            ),
        )
        cls._validate_positive("listen.max_input_characters", listen.max_input_characters)

        # ─────────────────────────────────────────────────────────────────────
        # Logging configuration
        # ─────────────────────────────────────────────────────────────────────
        logging_raw = raw.get("logging", {}) or {}
        log_level_raw = logging_raw.get("level", Defaults.LOGGING_LEVEL)

        # Handle string log levels (e.g., "INFO", "DEBUG")
        if isinstance(log_level_raw, str):
            level_map = {
                "MINIMAL": 1, "1": 1,
                "NORMAL": 2, "INFO": 2, "2": 2,
                "VERBOSE": 3, "3": 3,
                "DEBUG": 4, "TRACE": 4, "4": 4,
            }
            log_level = level_map.get(log_level_raw.upper(), Defaults.LOGGING_LEVEL)
        else:
            log_level = int(log_level_raw)

        logging_cfg = LoggingConfig(
            text_preview_chars=int(logging_raw.get("text_preview_chars", Defaults.LOGGING_TEXT_PREVIEW_CHARS)),
            level=log_level,
        )
        cls._validate_non_negative("logging.text_preview_chars", logging_cfg.text_preview_chars)
        cls._validate_range("logging.level", logging_cfg.level, 1, 4)

        # ─────────────────────────────────────────────────────────────────────
        # Voices per language (first entry is the default voice)
        # ─────────────────────────────────────────────────────────────────────
        voices_raw = raw.get("voices", {}) or {}
        if not isinstance(voices_raw, dict):
            raise ConfigValidationError(f"voices must be a mapping, got {type(voices_raw).__name__}")
        voices: Dict[str, List[str]] = {}
        for language, names in voices_raw.items():
            if isinstance(names, str):
                names = [names]
            voices[str(language)] = [str(n) for n in (names or [])]

        return cls(store=store, listen=listen, logging=logging_cfg, voices=voices)

    def default_voice(self, language: str) -> Optional[str]:
        """Return the first configured voice for a language, if any."""
        names = self.voices.get(language) or []
        return names[0] if names else None

    @staticmethod
    def _validate_positive(name: str, value: int | float) -> None:
        """Validate that a value is positive (> 0)."""
        if value <= 0:
            raise ConfigValidationError(f"{name} must be positive, got {value}")

    @staticmethod
    def _validate_non_negative(name: str, value: int | float) -> None:
        """Validate that a value is non-negative (>= 0)."""
        if value < 0:
            raise ConfigValidationError(f"{name} must be non-negative, got {value}")

    @staticmethod
    def _validate_range(name: str, value: int | float, min_val: int | float, max_val: int | float) -> None:
        """Validate that a value is within a range [min_val, max_val]."""
        if not (min_val <= value <= max_val):
            raise ConfigValidationError(f"{name} must be between {min_val} and {max_val}, got {value}")


@dataclass(frozen=True)
class Settings:
    """
    Immutable settings container loaded from YAML.

    This is the raw settings object before validation. Use
    get_service_config() to get a validated ServiceConfig.
    """
    raw: Dict[str, Any]

    @property
    def database_path(self) -> str:
        """Get the metadata tier database path."""
        return str(self.raw.get("store", {}).get("database_path", Defaults.STORE_DATABASE_PATH))

    @property
    def blob_base_dir(self) -> str:
        """Get the blob tier base directory."""
        return str(self.raw.get("store", {}).get("blob_base_dir", Defaults.STORE_BLOB_BASE_DIR))

    def get_service_config(self) -> ServiceConfig:
        """
        Get validated ServiceConfig from these settings.

        Raises:
            ConfigValidationError: If validation fails.
        """
        return ServiceConfig.from_settings(self)


def load_settings(path: str = "config/settings.yaml") -> Settings:
    """
    Load settings from a YAML configuration file.

    Environment variable overrides:
        - SPEECHCACHE_DATABASE: Override store.database_path
        - SPEECHCACHE_BLOB_DIR: Override store.blob_base_dir

    Raises:
        FileNotFoundError: If the settings file doesn't exist.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"settings file not found: {p.resolve()}")

    with p.open("r", encoding="utf-8") as f:
        raw: Dict[str, Any] = yaml.safe_load(f) or {}

    return Settings(raw=apply_env_overrides(raw))


def apply_env_overrides(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Apply SPEECHCACHE_* store overrides to a raw settings dict."""
    db = os.getenv("SPEECHCACHE_DATABASE")
    if db:
        raw.setdefault("store", {})["database_path"] = db
    blob_dir = os.getenv("SPEECHCACHE_BLOB_DIR")
    if blob_dir:
        raw.setdefault("store", {})["blob_base_dir"] = blob_dir
    return raw
