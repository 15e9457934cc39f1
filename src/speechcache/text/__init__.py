"""
Text Segmentation and Segment Identity.

    - fragments.py: Fragment, SegmentBreak and Segment types
    - segmenter.py: Sentence segmentation with offsets
    - identity.py: Content hash used as cache key
"""
from .fragments import Fragment, Segment, SegmentBreak
from .identity import find_segment, segment_hash, text_hash
from .segmenter import SegmentationError, segment

__all__ = [
    "Fragment",
    "Segment",
    "SegmentBreak",
    "SegmentationError",
    "segment",
    "segment_hash",
    "text_hash",
    "find_segment",
]
