"""
Tests for UtteranceStore - find and create across both tiers.

Tests cover:
- create() then find() returns the stored bytes
- Newest utterance wins for a key
- omit_audio skips the audio blob
- Missing blob reported as StorageFault(INCONSISTENT) and logged
- Tier exceptions reported as StorageFault(READ_FAILED)
- create() rollback when a blob write fails
- from_config() wiring
"""
import logging
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from speechcache.core.config import StoreConfig
from speechcache.store import (
    BlobAddressing,
    FileSystemBlobTier,
    Found,
    NotFound,
    SQLiteMetadataTier,
    StorageError,
    StorageErrorKind,
    StorageFault,
    UtteranceKey,
    UtteranceStore,
)

AUDIO = b"OggS\x00fake-opus-audio"
METADATA = b'[{"orth":"Hello","endtime":0.4}]'


@pytest.fixture
def metadata_tier(tmp_path):
    return SQLiteMetadataTier(tmp_path / "utterances.sqlite3")


@pytest.fixture
def blob_tier(tmp_path):
    return FileSystemBlobTier(tmp_path / "blobs")


@pytest.fixture
def store(metadata_tier, blob_tier):
    return UtteranceStore(metadata_tier, blob_tier, BlobAddressing())


def create(store, page_id=1, language="en", voice="v1", hash_="h1", scope=None, audio=AUDIO, metadata=METADATA):
    return store.create(scope, page_id, language, voice, hash_, audio, metadata)


def find(store, page_id=1, language="en", voice="v1", hash_="h1", scope=None, omit_audio=False):
    return store.find(scope, page_id, language, voice, hash_, omit_audio=omit_audio)


class TestCreateAndFind:
    """Round trip through both tiers."""

    def test_find_missing(self, store):
        assert isinstance(find(store), NotFound)

    def test_create_then_find(self, store):
        created = create(store)
        result = find(store)

        assert isinstance(result, Found)
        assert result.utterance.utterance_id == created.utterance_id
        assert result.utterance.audio == AUDIO
        assert result.utterance.metadata == METADATA
        assert result.utterance.page_id == 1
        assert result.utterance.segment_hash == "h1"

    def test_create_writes_blobs_at_addressed_paths(self, store, blob_tier):
        created = create(store)
        addressing = store.addressing

        assert blob_tier.read(addressing.audio_path(created.utterance_id)) == AUDIO
        assert blob_tier.read(addressing.metadata_path(created.utterance_id)) == METADATA

    def test_omit_audio(self, store):
        create(store)
        result = find(store, omit_audio=True)

        assert isinstance(result, Found)
        assert result.utterance.audio is None
        assert result.utterance.metadata == METADATA

    def test_omit_audio_does_not_need_audio_blob(self, store, blob_tier):
        created = create(store)
        blob_tier.delete(store.addressing.audio_path(created.utterance_id))

        assert isinstance(find(store, omit_audio=True), Found)

    def test_newest_wins(self, store, metadata_tier):
        create(store, audio=b"first")
        create(store, audio=b"second")

        assert find(store).utterance.audio == b"second"

    def test_newest_by_stored_at(self, store, metadata_tier, blob_tier):
        """An older row inserted later still loses to the newer stored_at."""
        newer = create(store, audio=b"newer")
        old_row = metadata_tier.insert(
            UtteranceKey(None, 1, "en", "v1", "h1"),
            stored_at=datetime.now(timezone.utc) - timedelta(days=3),
        )
        blob_tier.prepare(store.addressing.directory(old_row.utterance_id))
        blob_tier.write(store.addressing.audio_path(old_row.utterance_id), b"older")
        blob_tier.write(store.addressing.metadata_path(old_row.utterance_id), b"[]")

        assert find(store).utterance.utterance_id == newer.utterance_id

    def test_same_hash_on_other_page_is_separate(self, store):
        create(store, page_id=1, audio=b"page one")
        create(store, page_id=2, audio=b"page two")

        assert find(store, page_id=1).utterance.audio == b"page one"
        assert find(store, page_id=2).utterance.audio == b"page two"

    def test_key_fields_isolate(self, store):
        create(store)

        assert isinstance(find(store, voice="v2"), NotFound)
        assert isinstance(find(store, language="sv"), NotFound)
        assert isinstance(find(store, scope="other-wiki"), NotFound)

    def test_ids_shard_into_directories(self, tmp_path):
        """Ids past 999 land in digit directories."""
        metadata = MagicMock()
        metadata.insert.side_effect = lambda key: _row(12345, key)
        blobs = FileSystemBlobTier(tmp_path / "blobs")
        store = UtteranceStore(metadata, blobs)

        create(store)

        assert (tmp_path / "blobs" / "speechcache_utterances" / "1" / "2" / "12345.opus").is_file()
        assert (tmp_path / "blobs" / "speechcache_utterances" / "1" / "2" / "12345.json").is_file()


def _row(utterance_id, key):
    from speechcache.store import UtteranceRow

    return UtteranceRow(
        utterance_id=utterance_id,
        scope=key.scope,
        page_id=key.page_id,
        language=key.language,
        voice=key.voice,
        segment_hash=key.segment_hash,
        stored_at=datetime.now(timezone.utc),
    )


class TestInconsistency:
    """Rows whose blobs are gone."""

    def test_missing_audio_blob(self, store, blob_tier, caplog):
        created = create(store)
        blob_tier.delete(store.addressing.audio_path(created.utterance_id))

        with caplog.at_level(logging.WARNING):
            result = find(store)

        assert isinstance(result, StorageFault)
        assert result.kind == StorageErrorKind.INCONSISTENT
        assert result.utterance_id == created.utterance_id
        assert any(r.getMessage() == "inconsistency" for r in caplog.records)

    def test_missing_metadata_blob(self, store, blob_tier):
        created = create(store)
        blob_tier.delete(store.addressing.metadata_path(created.utterance_id))

        result = find(store)

        assert isinstance(result, StorageFault)
        assert result.kind == StorageErrorKind.INCONSISTENT

    def test_find_does_not_repair(self, store, blob_tier, metadata_tier):
        created = create(store)
        blob_tier.delete(store.addressing.audio_path(created.utterance_id))

        find(store)

        assert metadata_tier.get(created.utterance_id) is not None


class TestReadFailures:
    """Tier exceptions during find()."""

    def test_metadata_tier_error(self, blob_tier):
        metadata = MagicMock()
        metadata.find_latest.side_effect = RuntimeError("database is locked")
        store = UtteranceStore(metadata, blob_tier)

        result = find(store)

        assert isinstance(result, StorageFault)
        assert result.kind == StorageErrorKind.READ_FAILED
        assert "database is locked" in result.detail

    def test_blob_tier_error(self, store, blob_tier, monkeypatch):
        create(store)
        monkeypatch.setattr(blob_tier, "read", MagicMock(side_effect=PermissionError("denied")))

        result = find(store)

        assert isinstance(result, StorageFault)
        assert result.kind == StorageErrorKind.READ_FAILED


class TestCreateRollback:
    """create() removes what it wrote when a later step fails."""

    def test_audio_write_failure(self, store, metadata_tier, blob_tier, monkeypatch):
        monkeypatch.setattr(blob_tier, "write", MagicMock(side_effect=OSError("disk full")))

        with pytest.raises(StorageError) as exc_info:
            create(store)

        assert exc_info.value.kind == StorageErrorKind.WRITE_FAILED
        assert exc_info.value.utterance_id is not None
        assert metadata_tier.select() == []
        assert isinstance(find(store), NotFound)

    def test_metadata_write_failure_removes_audio(self, store, metadata_tier, blob_tier, monkeypatch):
        real_write = blob_tier.write

        def write(path, data):
            if path.endswith(".json"):
                raise OSError("disk full")
            real_write(path, data)

        monkeypatch.setattr(blob_tier, "write", write)

        with pytest.raises(StorageError) as exc_info:
            create(store)

        utterance_id = exc_info.value.utterance_id
        assert metadata_tier.get(utterance_id) is None
        assert not blob_tier.exists(store.addressing.audio_path(utterance_id))

    def test_prepare_failure(self, store, metadata_tier, blob_tier, monkeypatch):
        monkeypatch.setattr(blob_tier, "prepare", MagicMock(side_effect=PermissionError("read-only")))

        with pytest.raises(StorageError) as exc_info:
            create(store)

        assert exc_info.value.kind == StorageErrorKind.PREPARE_FAILED
        assert metadata_tier.select() == []

    def test_insert_failure(self, blob_tier):
        metadata = MagicMock()
        metadata.insert.side_effect = RuntimeError("database is locked")
        store = UtteranceStore(metadata, blob_tier)

        with pytest.raises(StorageError) as exc_info:
            create(store)

        assert exc_info.value.kind == StorageErrorKind.WRITE_FAILED
        assert exc_info.value.utterance_id is None

    def test_failed_rollback_is_logged(self, store, metadata_tier, blob_tier, monkeypatch, caplog):
        monkeypatch.setattr(blob_tier, "write", MagicMock(side_effect=OSError("disk full")))
        monkeypatch.setattr(metadata_tier, "delete", MagicMock(side_effect=RuntimeError("locked")))

        with caplog.at_level(logging.WARNING):
            with pytest.raises(StorageError):
                create(store)

        assert any(r.getMessage() == "inconsistency" and r.levelno == logging.ERROR for r in caplog.records)
        # Left for reconcile
        assert len(metadata_tier.select()) == 1


class TestFromConfig:
    """Tests for UtteranceStore.from_config()."""

    def test_from_config(self, tmp_path):
        config = StoreConfig(
            database_path=str(tmp_path / "u.sqlite3"),
            blob_base_dir=str(tmp_path / "blobs"),
            container_name="utts",
            audio_suffix="mp3",
        )
        store = UtteranceStore.from_config(config)
        created = create(store)

        assert (tmp_path / "blobs" / "utts" / f"{created.utterance_id}.mp3").is_file()
        assert isinstance(find(store), Found)
