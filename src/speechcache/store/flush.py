"""
Flush (eviction) of stored utterances.

Every flush selects the matching utterance ids first and then removes each
utterance as three independent deletions:

    1. metadata row
    2. audio blob
    3. metadata blob

Each deletion is attempted even when an earlier one failed. A row counts
as flushed only when all three succeeded; anything else is logged and the
batch moves on. Re-running a flush picks up whatever survived.

An absent row is fine (another flush got there first). An absent blob is
an inconsistency: it is logged and the row is not counted.

reconcile() is the maintenance pass for what create() rollbacks or
interrupted flushes may leave behind: rows missing a blob, and blob
files with no row.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

from speechcache.core.logging import debug, get_logger, info, verbose, warn
from speechcache.store.blob_tier import BlobTier
from speechcache.store.metadata_tier import MetadataTier, to_utc
from speechcache.store.models import UtteranceRow
from speechcache.store.paths import BlobAddressing
from speechcache.utils.timeit import timeit

_LOG = get_logger("speechcache.flush")

# Rows younger than this may still be mid-create; reconcile leaves them alone.
DEFAULT_RECONCILE_GRACE = timedelta(minutes=5)


def expiration_cutoff(ttl_days: int, now: Optional[datetime] = None) -> datetime:
    """Timestamp at or before which an utterance has expired."""
    now = to_utc(now) if now is not None else datetime.now(timezone.utc)
    return now - timedelta(days=ttl_days)


@dataclass
class ReconcileReport:
    """Outcome of a reconcile pass."""
    dangling_rows: int = 0
    orphan_blobs: int = 0
    failures: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "dangling_rows": self.dangling_rows,
            "orphan_blobs": self.orphan_blobs,
            "failures": list(self.failures),
        }


class UtteranceFlusher:
    """
    Removes utterances from both tiers.

    Args:
        metadata: Metadata tier handle.
        blobs: Blob tier handle.
        addressing: Blob path scheme; must match the one used to create.
    """

    def __init__(self, metadata: MetadataTier, blobs: BlobTier, addressing: BlobAddressing):
        self._metadata = metadata
        self._blobs = blobs
        self._addressing = addressing

    def flush_by_page(self, page_id: int) -> int:
        """Flush every utterance of a page. Returns the number flushed."""
        rows = self._metadata.select(page_id=page_id)
        return self._flush_rows(rows, criterion=f"page_id={page_id}")

    def flush_by_language_and_voice(self, language: str, voice: Optional[str] = None) -> int:
        """Flush every utterance in a language, optionally only one voice."""
        rows = self._metadata.select(language=language, voice=voice)
        criterion = f"language={language}" + (f" voice={voice}" if voice is not None else "")
        return self._flush_rows(rows, criterion=criterion)

    def flush_by_expiration_date(self, cutoff: datetime) -> int:
        """Flush every utterance stored at or before ``cutoff``."""
        rows = self._metadata.select(stored_at_or_before=cutoff)
        return self._flush_rows(rows, criterion=f"stored_at<={to_utc(cutoff).isoformat()}")

    def purge_all(self) -> int:
        """Flush every utterance in the store."""
        rows = self._metadata.select()
        return self._flush_rows(rows, criterion="all")

    def _flush_rows(self, rows: Sequence[UtteranceRow], criterion: str) -> int:
        flushed = 0
        with timeit("flush") as t:
            for row in rows:
                if self.flush_utterance(row.utterance_id):
                    flushed += 1

        failed = len(rows) - flushed
        log = warn if failed else info
        log(
            _LOG, "flushed",
            criterion=criterion,
            matched=len(rows),
            flushed=flushed,
            failed=failed,
            seconds=t.seconds,
        )
        return flushed

    def flush_utterance(self, utterance_id: int) -> bool:
        """
        Delete one utterance from both tiers.

        Returns:
            True if the row and both blobs were deleted.
        """
        row_ok = self._delete_row(utterance_id)
        audio_ok = self._delete_blob(utterance_id, self._addressing.audio_path(utterance_id), "audio file")
        metadata_ok = self._delete_blob(
            utterance_id, self._addressing.metadata_path(utterance_id), "synthesis metadata file"
        )
        self._clean(utterance_id)
        return row_ok and audio_ok and metadata_ok

    def _delete_row(self, utterance_id: int) -> bool:
        try:
            if not self._metadata.delete(utterance_id):
                verbose(_LOG, "row_already_absent", utterance_id=utterance_id)
        except Exception as e:
            warn(_LOG, "row_delete_failed", utterance_id=utterance_id, error=str(e))
            return False
        return True

    def _delete_blob(self, utterance_id: int, path: str, kind: str) -> bool:
        try:
            deleted = self._blobs.delete(path)
        except Exception as e:
            warn(_LOG, "blob_delete_failed", utterance_id=utterance_id, path=path, error=str(e))
            return False
        if not deleted:
            warn(_LOG, "inconsistency", utterance_id=utterance_id, missing=kind, path=path)
            return False
        return True

    def _clean(self, utterance_id: int) -> None:
        directory = self._addressing.directory(utterance_id)
        try:
            self._blobs.clean(directory, self._addressing.container)
        except Exception as e:
            debug(_LOG, "clean_failed", directory=directory, error=str(e))

    # =========================================================================
    # Maintenance
    # =========================================================================

    def reconcile(
        self,
        orphan_cutoff: Optional[datetime] = None,
        grace: timedelta = DEFAULT_RECONCILE_GRACE,
        now: Optional[datetime] = None,
    ) -> ReconcileReport:
        """
        Remove dangling rows and, optionally, orphan blobs.

        Args:
            orphan_cutoff: Also delete blob files that have no row and were
                last modified at or before this time. None skips the blob
                scan.
            grace: Rows stored within this window before ``now`` are not
                checked.
            now: Reference time (defaults to the current time).

        Returns:
            ReconcileReport with the number of rows and blobs removed.
        """
        now = to_utc(now) if now is not None else datetime.now(timezone.utc)
        report = ReconcileReport()

        with timeit("reconcile") as t:
            for row in self._metadata.select(stored_at_or_before=now - grace):
                self._reconcile_row(row, report)
            if orphan_cutoff is not None:
                self._reconcile_blobs(to_utc(orphan_cutoff), report)

        info(
            _LOG, "reconciled",
            dangling_rows=report.dangling_rows,
            orphan_blobs=report.orphan_blobs,
            failures=len(report.failures),
            seconds=t.seconds,
        )
        return report

    def _reconcile_row(self, row: UtteranceRow, report: ReconcileReport) -> None:
        utterance_id = row.utterance_id
        paths = [self._addressing.audio_path(utterance_id), self._addressing.metadata_path(utterance_id)]
        try:
            present = [p for p in paths if self._blobs.exists(p)]
        except Exception as e:
            report.failures.append(f"row {utterance_id}: {e}")
            warn(_LOG, "reconcile_check_failed", utterance_id=utterance_id, error=str(e))
            return
        if len(present) == len(paths):
            return

        warn(_LOG, "dangling_row", utterance_id=utterance_id, present=present)
        if not self._delete_row(utterance_id):
            report.failures.append(f"row {utterance_id}")
            return
        for path in present:
            if not self._delete_blob(utterance_id, path, "blob"):
                report.failures.append(path)
        self._clean(utterance_id)
        report.dangling_rows += 1

    def _reconcile_blobs(self, cutoff: datetime, report: ReconcileReport) -> None:
        cutoff_ts = cutoff.timestamp()
        for path, mtime in list(self._blobs.iter_blobs(self._addressing.container)):
            utterance_id = self._addressing.parse_id(path)
            if utterance_id is None:
                debug(_LOG, "foreign_blob_skipped", path=path)
                continue
            if mtime > cutoff_ts:
                continue
            try:
                if self._metadata.get(utterance_id) is not None:
                    continue
            except Exception as e:
                report.failures.append(path)
                warn(_LOG, "reconcile_check_failed", utterance_id=utterance_id, error=str(e))
                continue

            warn(_LOG, "orphan_blob", utterance_id=utterance_id, path=path)
            try:
                self._blobs.delete(path)
            except Exception as e:
                report.failures.append(path)
                warn(_LOG, "blob_delete_failed", utterance_id=utterance_id, path=path, error=str(e))
                continue
            self._clean(utterance_id)
            report.orphan_blobs += 1
