"""
Sentence Segmentation.

Splits a sequence of text fragments into sentences ("segments") while
keeping track of where each sentence starts and ends in the original
fragments. The offsets let a client highlight the sentence being read in
the source document.

Sentence Boundaries:
    A full stop ends a sentence when it is followed by
        - the end of the fragment,
        - a newline, or
        - a space and then a character that is not lower case
          (or nothing at all).
    So "etc., and", "2.9", "..." and "i.e. one" do not split.

    A SegmentBreak in the input always ends the current segment.

Offsets:
    start_offset indexes into the first fragment of a segment and
    end_offset (inclusive) into the last one. Offsets count characters
    (code points), never bytes.

Example:
    >>> from speechcache.text import Fragment, segment
    >>> [s.text for s in segment([Fragment("Sentence 1. Sentence 2.")])]
    ['Sentence 1.', 'Sentence 2.']
"""
from __future__ import annotations

from dataclasses import dataclass
from functools import reduce
from typing import Iterable, List, Optional, Tuple, Union

from speechcache.core.logging import debug, get_logger, verbose
from speechcache.text.fragments import Fragment, Segment, SegmentBreak
from speechcache.utils.timeit import timeit

_LOG = get_logger("speechcache.segmenter")

SENTENCE_FINAL = "."

InputItem = Union[Fragment, SegmentBreak]


class SegmentationError(ValueError):
    """Raised for input the segmenter cannot assign offsets to."""


@dataclass(frozen=True)
class _Accumulator:
    """Segment under construction."""
    content: Tuple[Fragment, ...] = ()
    start_offset: Optional[int] = None
    end_offset: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return self.start_offset is None

    def add(self, fragment: Fragment, start: int, end: int) -> "_Accumulator":
        return _Accumulator(
            content=self.content + (fragment,),
            start_offset=start if self.start_offset is None else self.start_offset,
            end_offset=end,
        )

    def emit(self) -> Optional[Segment]:
        """The finished segment, or None if it holds no visible text."""
        if self.start_offset is None or self.end_offset is None:
            return None
        if not "".join(f.text for f in self.content).strip():
            return None
        return Segment(self.content, self.start_offset, self.end_offset)


_EMPTY = _Accumulator()

# Closed segments, newest first, as nested (segment, rest) pairs
_Closed = Optional[Tuple[Segment, "_Closed"]]

_State = Tuple[_Closed, _Accumulator]


def segment(items: Iterable[InputItem]) -> List[Segment]:
    """
    Divide fragments into segments, one for each sentence.

    Args:
        items: Fragments in document order, optionally interleaved with
            SegmentBreak markers.

    Returns:
        Segments in document order.

    Raises:
        SegmentationError: If an item is neither a Fragment nor a
            SegmentBreak, or a fragment's text is not a string.
    """
    with timeit("segment") as t:
        closed, open_segment = reduce(_step, items, (None, _EMPTY))
        result = _in_order(_close(closed, open_segment))

    verbose(_LOG, "segmented", segments=len(result), seconds=t.seconds)
    return result


def _close(closed: _Closed, acc: _Accumulator) -> _Closed:
    finished = acc.emit()
    return closed if finished is None else (finished, closed)


def _in_order(closed: _Closed) -> List[Segment]:
    result: List[Segment] = []
    while closed is not None:
        finished, closed = closed
        result.append(finished)
    result.reverse()
    return result


def _step(state: _State, item: InputItem) -> _State:
    closed, acc = state
    if isinstance(item, SegmentBreak):
        return _close(closed, acc), _EMPTY
    if not isinstance(item, Fragment):
        raise SegmentationError(f"expected Fragment or SegmentBreak, got {type(item).__name__}")
    if not isinstance(item.text, str):
        raise SegmentationError(
            f"fragment text must be str, got {type(item.text).__name__} at {item.origin_path!r}"
        )
    return _fold_fragment(closed, acc, item)


def _fold_fragment(closed: _Closed, acc: _Accumulator, fragment: Fragment) -> _State:
    """Consume one fragment, closing a segment at every sentence-final dot."""
    text = fragment.text
    length = len(text)
    cursor = 0
    while True:
        start = cursor
        if acc.is_empty:
            # Whitespace before or between segments is not part of any segment
            start = _skip_whitespace(text, start)

        end = find_sentence_final(text, start)
        ended = end is not None
        if end is None:
            end = length - 1

        sentence = text[start:end + 1]
        if sentence and sentence != "\n":
            acc = acc.add(Fragment(sentence, fragment.origin_path), start, end)
            if ended:
                closed = _close(closed, acc)
                acc = _EMPTY
        elif sentence:
            debug(_LOG, "skipped_newline", origin_path=fragment.origin_path)

        cursor = end + 1
        if cursor >= length:
            return closed, acc


def find_sentence_final(text: str, start: int) -> Optional[int]:
    """Offset of the first sentence-final character at or after ``start``."""
    index = text.find(SENTENCE_FINAL, start)
    while index != -1:
        if is_sentence_final(text, index):
            return index
        index = text.find(SENTENCE_FINAL, index + 1)
    return None


def is_sentence_final(text: str, index: int) -> bool:
    """
    Test if the character at ``index`` ends a sentence.

    Dots in abbreviations only count when they also end the sentence:
    "Monkeys, penguins etc." ends, "Monkeys e.g. baboons" does not.
    """
    if text[index] != SENTENCE_FINAL:
        return False
    following = text[index + 1] if index + 1 < len(text) else ""
    if following in ("", "\n"):
        return True
    if following == " ":
        after = text[index + 2] if index + 2 < len(text) else ""
        return after.upper() == after
    return False


def _skip_whitespace(text: str, start: int) -> int:
    while start < len(text) and text[start].isspace():
        start += 1
    return start
