"""
speechcache Services Layer.

Orchestrates the store and the synthesizer.

Components:
    - utterance_service.py: UtteranceService (cached segment synthesis)
"""
from .utterance_service import (
    ConfigError,
    ErrorCode,
    InvalidInputError,
    SpeechCacheError,
    SynthesisError,
    UtteranceResponse,
    UtteranceService,
)

__all__ = [
    "UtteranceService",
    "UtteranceResponse",
    "SpeechCacheError",
    "SynthesisError",
    "InvalidInputError",
    "ConfigError",
    "ErrorCode",
]
