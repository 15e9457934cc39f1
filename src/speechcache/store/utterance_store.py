"""
Utterance Store.

Keeps synthesized utterances in two tiers:
    1. Metadata tier (metadata_tier.py): one row per utterance with its
       key, storage time and surrogate id
    2. Blob tier (blob_tier.py): the audio and the token metadata, at
       paths derived from the surrogate id (paths.py)

The store is agnostic to the audio and metadata encodings; it moves bytes.

Read Path:
    find() looks up the newest row for the key, then reads the audio blob
    (unless omit_audio) and the metadata blob. A row whose blob cannot be
    read is an inconsistency: it is logged and reported as StorageFault,
    never returned half filled and never repaired here.

Write Path:
    create() inserts the row first (which assigns the id), then writes
    the audio blob, then the metadata blob. If a blob step fails the row
    and anything already written are removed again and StorageError is
    raised. Should that cleanup fail too, the leftovers are logged and
    UtteranceFlusher.reconcile() removes them later.

Concurrency:
    Nothing is locked. Two requests missing on the same key may both
    create; find() prefers the newest row, so duplicates are harmless
    until the next flush removes them.

Usage:
    store = UtteranceStore(
        metadata=SQLiteMetadataTier("storage/utterances.sqlite3"),
        blobs=FileSystemBlobTier("storage/blobs"),
    )
    result = store.find(None, 12, "en", "dfki-spike", segment.hash)
    if isinstance(result, Found):
        audio = result.utterance.audio
"""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Tuple

from speechcache.core.config import StoreConfig
from speechcache.core.logging import error, get_logger, info, verbose, warn
from speechcache.store.blob_tier import BlobTier, FileSystemBlobTier
from speechcache.store.flush import UtteranceFlusher
from speechcache.store.metadata_tier import MetadataTier, SQLiteMetadataTier
from speechcache.store.models import (
    Found,
    LookupResult,
    NotFound,
    StorageError,
    StorageErrorKind,
    StorageFault,
    Utterance,
    UtteranceKey,
    UtteranceRow,
)
from speechcache.store.paths import BlobAddressing
from speechcache.utils.timeit import timeit

_LOG = get_logger("speechcache.store")


class UtteranceStore:
    """
    Two-tier persistent store of synthesized utterances.

    Args:
        metadata: Metadata tier handle.
        blobs: Blob tier handle.
        addressing: Blob path scheme (container name and suffixes).
    """

    def __init__(
        self,
        metadata: MetadataTier,
        blobs: BlobTier,
        addressing: Optional[BlobAddressing] = None,
    ):
        self._metadata = metadata
        self._blobs = blobs
        self._addressing = addressing or BlobAddressing()

    @classmethod
    def from_config(cls, config: StoreConfig) -> "UtteranceStore":
        """Build a store on SQLite and the local filesystem."""
        return cls(
            metadata=SQLiteMetadataTier(config.database_path),
            blobs=FileSystemBlobTier(config.blob_base_dir),
            addressing=BlobAddressing(
                container=config.container_name,
                audio_suffix=config.audio_suffix,
                metadata_suffix=config.metadata_suffix,
            ),
        )

    @property
    def metadata(self) -> MetadataTier:
        return self._metadata

    @property
    def blobs(self) -> BlobTier:
        return self._blobs

    @property
    def addressing(self) -> BlobAddressing:
        return self._addressing

    # =========================================================================
    # Read path
    # =========================================================================

    def find(
        self,
        scope: Optional[str],
        page_id: int,
        language: str,
        voice: str,
        segment_hash: str,
        omit_audio: bool = False,
    ) -> LookupResult:
        """
        Find the most recently stored utterance for a key.

        Args:
            scope: Namespace of the requesting site, or None.
            page_id: Page the segment belongs to.
            language: Language code.
            voice: Synthesis voice name.
            segment_hash: Segment identity.
            omit_audio: Skip reading the audio blob; the returned
                utterance has audio=None.

        Returns:
            Found, NotFound, or StorageFault when a tier failed or a blob
            is missing.
        """
        key = UtteranceKey(scope, page_id, language, voice, segment_hash)
        with timeit("store_find") as t:
            try:
                row = self._metadata.find_latest(key)
            except Exception as e:
                warn(_LOG, "metadata_read_error", page_id=page_id, error=str(e))
                return StorageFault(StorageErrorKind.READ_FAILED, f"metadata tier: {e}")

            if row is None:
                verbose(_LOG, "miss", page_id=page_id, segment_hash=segment_hash[:12])
                return NotFound()

            audio: Optional[bytes] = None
            if not omit_audio:
                audio_or_fault = self._read_blob(row, self._addressing.audio_path(row.utterance_id), "audio file")
                if isinstance(audio_or_fault, StorageFault):
                    return audio_or_fault
                audio = audio_or_fault

            metadata_or_fault = self._read_blob(
                row, self._addressing.metadata_path(row.utterance_id), "synthesis metadata file"
            )
            if isinstance(metadata_or_fault, StorageFault):
                return metadata_or_fault

        info(
            _LOG, "hit",
            utterance_id=row.utterance_id,
            page_id=page_id,
            segment_hash=segment_hash[:12],
            seconds=t.seconds,
        )
        return Found(Utterance.from_row(row, audio, metadata_or_fault))

    def _read_blob(self, row: UtteranceRow, path: str, kind: str) -> bytes | StorageFault:
        try:
            return self._blobs.read(path)
        except FileNotFoundError:
            warn(
                _LOG, "inconsistency",
                utterance_id=row.utterance_id,
                missing=kind,
                path=path,
            )
            return StorageFault(
                StorageErrorKind.INCONSISTENT,
                f"row {row.utterance_id} has no {kind} at {path}",
                utterance_id=row.utterance_id,
            )
        except Exception as e:
            warn(_LOG, "blob_read_error", utterance_id=row.utterance_id, path=path, error=str(e))
            return StorageFault(
                StorageErrorKind.READ_FAILED,
                f"reading {kind} {path}: {e}",
                utterance_id=row.utterance_id,
            )

    # =========================================================================
    # Write path
    # =========================================================================

    def create(
        self,
        scope: Optional[str],
        page_id: int,
        language: str,
        voice: str,
        segment_hash: str,
        audio: bytes,
        metadata: bytes,
    ) -> Utterance:
        """
        Store a new utterance.

        Returns:
            The stored utterance, with its assigned id and storage time.

        Raises:
            StorageError: If any tier write fails. Partial writes have
                been rolled back (or logged for reconciliation).
        """
        key = UtteranceKey(scope, page_id, language, voice, segment_hash)
        with timeit("store_create") as t:
            try:
                row = self._metadata.insert(key)
            except Exception as e:
                raise StorageError(
                    f"Failed to insert utterance row: {e}", StorageErrorKind.WRITE_FAILED
                ) from e

            utterance_id = row.utterance_id
            directory = self._addressing.directory(utterance_id)
            try:
                self._blobs.prepare(directory)
            except Exception as e:
                self._rollback(row, [])
                raise StorageError(
                    f"Failed to prepare blob directory {directory}: {e}",
                    StorageErrorKind.PREPARE_FAILED,
                    utterance_id,
                ) from e

            written: List[str] = []
            blobs: List[Tuple[str, bytes, str]] = [
                (self._addressing.audio_path(utterance_id), audio, "audio file"),
                (self._addressing.metadata_path(utterance_id), metadata, "synthesis metadata file"),
            ]
            for path, data, kind in blobs:
                try:
                    self._blobs.write(path, data)
                except Exception as e:
                    self._rollback(row, written)
                    raise StorageError(
                        f"Failed to create {kind} {path}: {e}",
                        StorageErrorKind.WRITE_FAILED,
                        utterance_id,
                    ) from e
                written.append(path)

        info(
            _LOG, "stored",
            utterance_id=utterance_id,
            page_id=page_id,
            segment_hash=segment_hash[:12],
            bytes=len(audio),
            seconds=t.seconds,
        )
        return Utterance.from_row(row, audio, metadata)

    def _rollback(self, row: UtteranceRow, written: List[str]) -> None:
        """Undo a partially created utterance, best effort."""
        leftovers: List[str] = []
        for path in written:
            try:
                self._blobs.delete(path)
            except Exception as e:
                leftovers.append(path)
                warn(_LOG, "rollback_blob_failed", utterance_id=row.utterance_id, path=path, error=str(e))
        try:
            self._metadata.delete(row.utterance_id)
        except Exception as e:
            leftovers.append(f"row {row.utterance_id}")
            warn(_LOG, "rollback_row_failed", utterance_id=row.utterance_id, error=str(e))

        if leftovers:
            error(
                _LOG, "inconsistency",
                utterance_id=row.utterance_id,
                leftovers=leftovers,
                action="left for reconcile",
            )
        else:
            verbose(_LOG, "rolled_back", utterance_id=row.utterance_id)

    # =========================================================================
    # Flush (see flush.py)
    # =========================================================================

    def flusher(self) -> UtteranceFlusher:
        return UtteranceFlusher(self._metadata, self._blobs, self._addressing)

    def flush_by_page(self, page_id: int) -> int:
        return self.flusher().flush_by_page(page_id)

    def flush_by_language_and_voice(self, language: str, voice: Optional[str] = None) -> int:
        return self.flusher().flush_by_language_and_voice(language, voice)

    def flush_by_expiration_date(self, cutoff: datetime) -> int:
        return self.flusher().flush_by_expiration_date(cutoff)
