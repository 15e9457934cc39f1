"""
speechcache: Incremental Text-to-Speech Caching.

Splits page text into sentence segments, identifies each segment by a
content hash, and keeps synthesized audio per (page, language, voice,
segment) in a two-tier store so an edited page only resynthesizes the
sentences that changed.

Packages:
    - text: Segmenter and segment hashing
    - synthesis: Synthesizer contract and token metadata
    - store: Metadata and blob tiers, lookup, creation and flush
    - services: UtteranceService (lookup or synthesize)

Example Usage:
    >>> from speechcache.text import Fragment, segment
    >>> from speechcache.services import UtteranceService
    >>>
    >>> service = UtteranceService.from_settings(settings, synthesizer)
    >>> for seg in segment([Fragment("Hello there. How are you?")]):
    ...     response = service.get_or_synthesize(None, 1, "en", None, seg)
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
