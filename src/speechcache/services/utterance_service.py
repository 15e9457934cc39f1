"""
UtteranceService - Cached Segment Synthesis.

Architecture:
    Segment → Hash → Store lookup → Synthesize (on miss) → Store → Response

The service is the only component that knows both the store and the
synthesizer. A segment is synthesized at most once per
(scope, page, language, voice, hash) until it is flushed; every later
request for the same key is answered from the store.

Error Handling:
    - SpeechCacheError: Base exception with standardized error codes
    - SynthesisError: The synthesizer raised (no retry)
    - InvalidInputError: Segment too long, or unknown segment hash
    - ConfigError: No voice given and none configured for the language
    - StorageError: Raised by the store; never escapes get_or_synthesize,
      where a failed write only costs the next request a resynthesis

Example:
    >>> settings = load_settings("config/settings.yaml")
    >>> service = UtteranceService.from_settings(settings, MySynthesizer())
    >>> segments = segment([Fragment("Hello world. Goodbye.")])
    >>> response = service.get_or_synthesize(None, 12, "en", None, segments[0])
    >>> response.cache_status
    'miss'
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from speechcache.core.config import ServiceConfig, Settings
from speechcache.core.logging import debug, error, get_logger, info, success, verbose, warn
from speechcache.store import (
    Found,
    NotFound,
    ReconcileReport,
    StorageError,
    StorageFault,
    UtteranceFlusher,
    UtteranceStore,
    expiration_cutoff,
)
from speechcache.synthesis import (
    MetadataDecodeError,
    Synthesizer,
    Token,
    TokenTiming,
    decode_tokens,
    encode_tokens,
    token_timings,
)
from speechcache.text import Segment, find_segment
from speechcache.utils.timeit import timeit

_LOG = get_logger("speechcache.service")


# =============================================================================
# Error Codes and Exceptions
# =============================================================================

class ErrorCode:
    """Standardized error codes carried by SpeechCacheError."""
    SYNTHESIS_FAILED = "SYNTHESIS_FAILED"   # Synthesizer raised
    INVALID_INPUT = "INVALID_INPUT"         # Bad request data
    CONFIG_ERROR = "CONFIG_ERROR"           # Missing configuration
    INTERNAL_ERROR = "INTERNAL_ERROR"       # Unexpected error


class SpeechCacheError(Exception):
    """
    Base exception for service errors.

    Attributes:
        message: Human-readable error message.
        code: Error code from ErrorCode class.
        details: Optional dictionary with additional context.
    """
    def __init__(self, message: str, code: str = ErrorCode.INTERNAL_ERROR, details: Optional[Dict] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a standardized error response dict."""
        result = {
            "ok": False,
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class SynthesisError(SpeechCacheError):
    """Raised when the synthesizer fails."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.SYNTHESIS_FAILED, details)


class InvalidInputError(SpeechCacheError):
    """Raised when a request cannot be served as given."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.INVALID_INPUT, details)


class ConfigError(SpeechCacheError):
    """Raised when required configuration is missing."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.CONFIG_ERROR, details)


# =============================================================================
# Response
# =============================================================================

@dataclass
class UtteranceResponse:
    """
    Audio and token timings for one segment.

    Attributes:
        audio: Encoded audio.
        tokens: Tokens with their end times.
        cache_status: "hit" or "miss".
        utterance_id: Id of the stored utterance; None if the result could
            not be stored.
    """
    audio: bytes
    tokens: List[Token] = field(default_factory=list)
    cache_status: str = "miss"
    utterance_id: Optional[int] = None

    @property
    def timings(self) -> List[TokenTiming]:
        return token_timings(self.tokens)


# =============================================================================
# Main Service Class
# =============================================================================

class UtteranceService:
    """
    Serves segment audio, synthesizing only what the store lacks.

    Args:
        store: Utterance store.
        synthesizer: Speech synthesis capability.
        config: Validated configuration (defaults when omitted).
    """

    def __init__(
        self,
        store: UtteranceStore,
        synthesizer: Synthesizer,
        config: Optional[ServiceConfig] = None,
    ):
        self._store = store
        self._synthesizer = synthesizer
        self._config = config or ServiceConfig()
        self._text_preview_chars = self._config.logging.text_preview_chars

    @classmethod
    def from_settings(cls, settings: Settings, synthesizer: Synthesizer) -> "UtteranceService":
        """Build a service with a SQLite/filesystem store from settings."""
        config = settings.get_service_config()
        return cls(UtteranceStore.from_config(config.store), synthesizer, config)

    @property
    def store(self) -> UtteranceStore:
        return self._store

    @property
    def config(self) -> ServiceConfig:
        return self._config

    # =========================================================================
    # Lookup / synthesis
    # =========================================================================

    def resolve_voice(self, language: str, voice: Optional[str]) -> str:
        """
        Return ``voice``, or the default voice for ``language``.

        Raises:
            ConfigError: If no voice is given and none is configured.
        """
        if voice:
            return voice
        default = self._config.default_voice(language)
        if default is None:
            raise ConfigError(
                f"No voice given and no default voice configured for language '{language}'",
                {"language": language},
            )
        debug(_LOG, "default_voice", language=language, voice=default)
        return default

    def get_or_synthesize(
        self,
        scope: Optional[str],
        page_id: int,
        language: str,
        voice: Optional[str],
        segment: Segment,
    ) -> UtteranceResponse:
        """
        Return audio for a segment, synthesizing it on a store miss.

        Args:
            scope: Namespace of the requesting site, or None.
            page_id: Page the segment belongs to.
            language: Language code.
            voice: Voice name, or None for the language's default voice.
            segment: Segment to speak.

        Returns:
            UtteranceResponse with cache_status "hit" or "miss".

        Raises:
            ConfigError: No voice resolvable.
            InvalidInputError: Segment text exceeds listen.max_input_characters.
            SynthesisError: The synthesizer failed.
        """
        voice = self.resolve_voice(language, voice)
        text = segment.text
        hash_ = segment.hash

        preview = text[:self._text_preview_chars] if self._text_preview_chars > 0 else ""
        info(_LOG, "request", page_id=page_id, language=language, voice=voice,
             chars=len(text), text_preview=preview)

        with timeit("request_total") as total_t:
            response = self._lookup(scope, page_id, language, voice, hash_)
            if response is None:
                max_chars = self._config.listen.max_input_characters
                if len(text) > max_chars:
                    raise InvalidInputError(
                        f"Segment has {len(text)} characters, limit is {max_chars}",
                        {"chars": len(text), "max_input_characters": max_chars},
                    )
                response = self._synthesize_and_store(scope, page_id, language, voice, hash_, text)

        success(_LOG, "done", cache=response.cache_status, bytes=len(response.audio),
                seconds=total_t.seconds)
        return response

    def get_or_synthesize_by_hash(
        self,
        scope: Optional[str],
        page_id: int,
        language: str,
        voice: Optional[str],
        segments: Sequence[Segment],
        segment_hash: str,
    ) -> UtteranceResponse:
        """
        Like get_or_synthesize(), addressing the segment by hash among the
        segments of a page.

        Raises:
            InvalidInputError: No segment has that hash.
        """
        found = find_segment(segments, segment_hash)
        if found is None:
            raise InvalidInputError(
                f"No segment with hash {segment_hash} on page {page_id}",
                {"page_id": page_id, "segment_hash": segment_hash},
            )
        return self.get_or_synthesize(scope, page_id, language, voice, found)

    def _lookup(
        self,
        scope: Optional[str],
        page_id: int,
        language: str,
        voice: str,
        hash_: str,
    ) -> Optional[UtteranceResponse]:
        result = self._store.find(scope, page_id, language, voice, hash_)

        if isinstance(result, NotFound):
            return None
        if isinstance(result, StorageFault):
            warn(_LOG, "stored_utterance_unusable", kind=result.kind.value,
                 utterance_id=result.utterance_id, detail=result.detail)
            return None
        if not isinstance(result, Found):
            raise TypeError(f"unexpected lookup result: {result!r}")

        utterance = result.utterance
        try:
            tokens = decode_tokens(utterance.metadata)
        except MetadataDecodeError as e:
            warn(_LOG, "stored_metadata_invalid", utterance_id=utterance.utterance_id, error=str(e))
            return None

        return UtteranceResponse(
            audio=utterance.audio or b"",
            tokens=tokens,
            cache_status="hit",
            utterance_id=utterance.utterance_id,
        )

    def _synthesize_and_store(
        self,
        scope: Optional[str],
        page_id: int,
        language: str,
        voice: str,
        hash_: str,
        text: str,
    ) -> UtteranceResponse:
        try:
            with timeit("synth") as t_synth:
                result = self._synthesizer.synthesize(language, voice, text)
        except Exception as e:
            error(_LOG, "synthesis_failed", language=language, voice=voice,
                  error=str(e), error_type=type(e).__name__)
            raise SynthesisError(
                f"Synthesis failed: {e}",
                {"error_type": type(e).__name__, "language": language, "voice": voice},
            ) from e
        verbose(_LOG, "stage", event="synth", seconds=t_synth.seconds, tokens=len(result.tokens))

        utterance_id: Optional[int] = None
        try:
            utterance = self._store.create(
                scope, page_id, language, voice, hash_,
                audio=result.audio,
                metadata=encode_tokens(result.tokens),
            )
            utterance_id = utterance.utterance_id
        except StorageError as e:
            error(_LOG, "store_failed", kind=e.kind.value, utterance_id=e.utterance_id, error=str(e))

        return UtteranceResponse(
            audio=result.audio,
            tokens=list(result.tokens),
            cache_status="miss",
            utterance_id=utterance_id,
        )

    # =========================================================================
    # Flush
    # =========================================================================

    def _flusher(self) -> UtteranceFlusher:
        return self._store.flusher()

    def flush_by_page(self, page_id: int) -> int:
        """Flush every utterance of a page (call when the page is edited)."""
        return self._flusher().flush_by_page(page_id)

    def flush_by_language_and_voice(self, language: str, voice: Optional[str] = None) -> int:
        """Flush a language, or one voice of it (call when a voice changes)."""
        return self._flusher().flush_by_language_and_voice(language, voice)

    def flush_by_expiration_date(self, cutoff: Optional[datetime] = None) -> int:
        """Flush utterances stored at or before ``cutoff`` (default: TTL ago)."""
        if cutoff is None:
            cutoff = self.expiration_cutoff()
        return self._flusher().flush_by_expiration_date(cutoff)

    def purge_all(self) -> int:
        return self._flusher().purge_all()

    def reconcile(self, orphan_cutoff: Optional[datetime] = None) -> ReconcileReport:
        return self._flusher().reconcile(orphan_cutoff)

    def expiration_cutoff(self, now: Optional[datetime] = None) -> datetime:
        return expiration_cutoff(self._config.store.utterance_ttl_days, now)

    def orphan_cutoff(self, now: Optional[datetime] = None) -> datetime:
        return expiration_cutoff(self._config.store.orphan_ttl_days, now)
