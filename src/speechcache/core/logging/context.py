"""
Job Context and Configuration State for Logging.

A job id context variable correlates every log line emitted while one
listen request or one flush job runs. Module-level state holds the
resolved logging configuration.

Environment Variables:
    - SPEECHCACHE_SETTINGS: Settings file to read the logging section from
    - SPEECHCACHE_LOG_LEVEL: Override log level (1-4 or name)
    - SPEECHCACHE_LOG_DIR: Directory for the JSONL log file
    - SPEECHCACHE_JSONL_FILE: JSONL log filename
    - SPEECHCACHE_LOG_ROTATE_BYTES: Max log file size
    - SPEECHCACHE_LOG_ROTATE_BACKUP: Number of backup files
"""
from __future__ import annotations

import os
from contextvars import ContextVar
from typing import Any, Dict

from .levels import LEVEL_NAMES, LogLevel

# "-" outside of any job
_job_id: ContextVar[str] = ContextVar("job_id", default="-")

_configured: bool = False
_log_config: Dict[str, Any] = {}
_current_level: LogLevel = LogLevel.NORMAL


def get_job_id() -> str:
    """Get the job id of the current context, or "-" if not set."""
    return _job_id.get()


def set_job_id(jid: str) -> None:
    """Set the job id used to correlate log lines in this context."""
    _job_id.set(jid)


def get_level() -> LogLevel:
    return _current_level


def set_level(level: LogLevel) -> None:
    global _current_level
    _current_level = level


def get_level_name() -> str:
    return LEVEL_NAMES.get(_current_level, "NORMAL")


def is_configured() -> bool:
    return _configured


def set_configured(value: bool) -> None:
    global _configured
    _configured = value


def get_log_config() -> Dict[str, Any]:
    return _log_config


def set_log_config(config: Dict[str, Any]) -> None:
    global _log_config
    _log_config = config


def read_logging_config() -> Dict[str, Any]:
    """
    Read logging configuration from the settings file and environment.

    Environment variables take precedence over the settings file, which
    takes precedence over built-in defaults.
    """
    cfg: Dict[str, Any] = {}

    settings_path = os.getenv("SPEECHCACHE_SETTINGS", "config/settings.yaml")
    if os.path.exists(settings_path):
        from speechcache.core.config import load_settings
        settings = load_settings(settings_path)
        cfg.update(settings.raw.get("logging", {}) or {})

    if os.getenv("SPEECHCACHE_LOG_LEVEL"):
        cfg["level"] = os.environ["SPEECHCACHE_LOG_LEVEL"]
    if os.getenv("SPEECHCACHE_LOG_DIR"):
        cfg["log_dir"] = os.environ["SPEECHCACHE_LOG_DIR"]
    if os.getenv("SPEECHCACHE_JSONL_FILE"):
        cfg["jsonl_file"] = os.environ["SPEECHCACHE_JSONL_FILE"]
    if os.getenv("SPEECHCACHE_LOG_ROTATE_BYTES"):
        try:
            cfg["rotate_max_bytes"] = int(os.environ["SPEECHCACHE_LOG_ROTATE_BYTES"])
        except ValueError:
            pass  # Invalid value, keep default
    if os.getenv("SPEECHCACHE_LOG_ROTATE_BACKUP"):
        try:
            cfg["rotate_backup_count"] = int(os.environ["SPEECHCACHE_LOG_ROTATE_BACKUP"])
        except ValueError:
            pass  # Invalid value, keep default

    return cfg
