"""
Segment identity.

A segment is identified by the SHA-256 digest of its text, UTF-8 encoded.
Origin paths are not part of the digest, so the same sentence found at a
different place in the page, or in a later revision, maps to the same
hash.
"""
from __future__ import annotations

import hashlib
from typing import TYPE_CHECKING, Iterable, Optional

if TYPE_CHECKING:
    from speechcache.text.fragments import Segment


def text_hash(text: str) -> str:
    """
    Hash segment text.

    Returns:
        64-character lowercase hex string.
    """
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def segment_hash(segment: "Segment") -> str:
    """Hash of the concatenated fragment texts of a segment."""
    return text_hash("".join(f.text for f in segment.content))


def find_segment(segments: Iterable["Segment"], hash_: str) -> Optional["Segment"]:
    """Return the first segment whose hash is ``hash_``, or None."""
    for seg in segments:
        if segment_hash(seg) == hash_:
            return seg
    return None
