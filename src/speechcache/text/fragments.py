"""
Text fragments and segments.

A Fragment is a slice of cleaned page text together with an opaque locator
(origin path) into the document it came from. The segmenter groups
fragments into Segments, one per sentence.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Tuple

from speechcache.text.identity import text_hash


@dataclass(frozen=True)
class Fragment:
    """
    Immutable unit of source text.

    Attributes:
        text: The text content.
        origin_path: Locator into the source document. Forwarded, never parsed.
    """
    text: str
    origin_path: str = ""


@dataclass(frozen=True)
class SegmentBreak:
    """Block-level boundary (heading, paragraph) that always ends a segment."""


@dataclass(frozen=True)
class Segment:
    """
    One sentence made of one or more fragments.

    Attributes:
        content: Fragments in document order. Never empty.
        start_offset: Offset of the first character within the first fragment
            of the original input.
        end_offset: Offset of the last character (inclusive) within the last
            fragment of the original input.
    """
    content: Tuple[Fragment, ...]
    start_offset: int
    end_offset: int

    @property
    def text(self) -> str:
        """Concatenated text of all fragments."""
        return "".join(f.text for f in self.content)

    @property
    def hash(self) -> str:
        """Content hash used as the segment's cache identity."""
        return text_hash(self.text)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "hash": self.hash,
            "start_offset": self.start_offset,
            "end_offset": self.end_offset,
            "content": [
                {"text": f.text, "origin_path": f.origin_path} for f in self.content
            ],
        }
