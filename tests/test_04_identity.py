"""
Tests for segment identity hashing.

Tests cover:
- text_hash() format and stability
- segment_hash() ignores origin paths and fragment boundaries
- find_segment() lookup by hash
"""
import hashlib

from speechcache.text import Fragment, Segment, find_segment, segment, segment_hash, text_hash


class TestTextHash:
    """Tests for text_hash()."""

    def test_hash_is_sha256_hex(self):
        assert text_hash("Sentence.") == hashlib.sha256("Sentence.".encode("utf-8")).hexdigest()
        assert len(text_hash("Sentence.")) == 64

    def test_hash_is_deterministic(self):
        assert text_hash("Same text.") == text_hash("Same text.")

    def test_hash_differs_for_different_text(self):
        assert text_hash("One.") != text_hash("One!")

    def test_hash_is_case_and_whitespace_sensitive(self):
        assert text_hash("one.") != text_hash("One.")
        assert text_hash("One.") != text_hash("One. ")

    def test_hash_of_non_ascii(self):
        assert text_hash("Utterance with å.") == hashlib.sha256("Utterance with å.".encode("utf-8")).hexdigest()


class TestSegmentHash:
    """Tests for segment_hash()."""

    def test_origin_path_not_hashed(self):
        a = Segment((Fragment("Hello.", "./p[1]"),), 0, 5)
        b = Segment((Fragment("Hello.", "./div/p[7]"),), 3, 8)
        assert segment_hash(a) == segment_hash(b)

    def test_fragment_boundaries_not_hashed(self):
        split = Segment((Fragment("Sentence split "), Fragment("by"), Fragment(" tags.")), 0, 5)
        whole = Segment((Fragment("Sentence split by tags."),), 0, 22)
        assert segment_hash(split) == segment_hash(whole)

    def test_segment_property_matches(self):
        seg = segment([Fragment("A sentence.")])[0]
        assert seg.hash == segment_hash(seg) == text_hash("A sentence.")

    def test_unchanged_sentence_keeps_hash_across_edits(self):
        before = segment([Fragment("First. Second. Third.")])
        after = segment([Fragment("First. Changed second. Third.")])

        assert before[0].hash == after[0].hash
        assert before[1].hash != after[1].hash
        assert before[2].hash == after[2].hash


class TestFindSegment:
    """Tests for find_segment()."""

    def test_find_existing(self):
        segments = segment([Fragment("One. Two. Three.")])
        assert find_segment(segments, text_hash("Two.")) is segments[1]

    def test_find_missing(self):
        segments = segment([Fragment("One. Two.")])
        assert find_segment(segments, text_hash("Three.")) is None

    def test_find_returns_first_duplicate(self):
        segments = segment([Fragment("Again. Other. Again.")])
        assert find_segment(segments, text_hash("Again.")) is segments[0]
