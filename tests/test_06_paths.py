"""
Tests for blob addressing.

Tests cover:
- id_directory() digit sharding
- BlobAddressing audio/metadata paths
- parse_id() round trip and rejection of foreign paths
"""
import pytest

from speechcache.store import BlobAddressing, id_directory


class TestIdDirectory:
    """Tests for id_directory()."""

    @pytest.mark.parametrize("utterance_id,expected", [
        (0, ()),
        (1, ()),
        (999, ()),
        (1000, ("1",)),
        (1234, ("1",)),
        (12345, ("1", "2")),
        (123456, ("1", "2", "3")),
    ])
    def test_directories(self, utterance_id, expected):
        assert id_directory(utterance_id) == expected

    def test_negative_raises(self):
        with pytest.raises(ValueError):
            id_directory(-1)


class TestBlobAddressing:
    """Tests for BlobAddressing."""

    def test_default_paths(self):
        addressing = BlobAddressing()

        assert addressing.audio_path(7) == "speechcache_utterances/7.opus"
        assert addressing.metadata_path(7) == "speechcache_utterances/7.json"
        assert addressing.audio_path(12345) == "speechcache_utterances/1/2/12345.opus"
        assert addressing.directory(12345) == "speechcache_utterances/1/2"

    def test_custom_container_and_suffixes(self):
        addressing = BlobAddressing(container="c", audio_suffix="mp3", metadata_suffix="meta")

        assert addressing.audio_path(1234) == "c/1/1234.mp3"
        assert addressing.metadata_path(1234) == "c/1/1234.meta"

    def test_at_most_1000_ids_per_directory(self):
        addressing = BlobAddressing()
        directories = {addressing.directory(i) for i in range(10000, 11000)}
        assert directories == {"speechcache_utterances/1/0"}
        assert addressing.directory(11000) == "speechcache_utterances/1/1"


class TestParseId:
    """Tests for BlobAddressing.parse_id()."""

    def test_parse_own_paths(self):
        addressing = BlobAddressing()
        for utterance_id in (1, 999, 1000, 123456):
            assert addressing.parse_id(addressing.audio_path(utterance_id)) == utterance_id
            assert addressing.parse_id(addressing.metadata_path(utterance_id)) == utterance_id

    @pytest.mark.parametrize("path", [
        "speechcache_utterances/12345.opus",        # wrong directory
        "speechcache_utterances/1/2/12345.wav",     # unknown suffix
        "speechcache_utterances/notes.json",        # not an id
        "other/1/2/12345.opus",                     # other container
        "speechcache_utterances/1/2/12345.opus.tmp",
    ])
    def test_reject_foreign_paths(self, path):
        assert BlobAddressing().parse_id(path) is None
