"""
Metadata Tier.

One row per utterance: key columns, storage time, and the surrogate id
that addresses the utterance's blobs. The tier is injected into
``UtteranceStore``; ``SQLiteMetadataTier`` is the implementation shipped
here.

Schema:
    utterances(
        utterance_id  INTEGER PRIMARY KEY AUTOINCREMENT,
        scope         TEXT NULL,
        page_id       INTEGER,
        language      TEXT,
        voice         TEXT,
        segment_hash  TEXT,
        stored_at     TEXT   -- ISO 8601, UTC, microseconds
    )

AUTOINCREMENT keeps ids of deleted rows from being handed out again, so
a blob left behind by a failed delete can never be read as the audio of
a newer utterance.

Connections:
    Each operation opens its own connection and closes it before
    returning. There is no shared handle to coordinate across threads, and
    a flush job holds the database only for the row it is deleting.
"""
from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional

from speechcache.core.logging import debug, get_logger
from speechcache.store.models import UtteranceKey, UtteranceRow

_LOG = get_logger("speechcache.metadata")

TABLE = "utterances"


def to_utc(ts: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _format_ts(ts: datetime) -> str:
    return to_utc(ts).isoformat(timespec="microseconds")


class MetadataTier:
    """
    Base class for metadata tier implementations.

    Selection methods return rows newest first. delete() returns False
    when the row did not exist; any other failure raises.
    """

    def insert(self, key: UtteranceKey, stored_at: Optional[datetime] = None) -> UtteranceRow:
        raise NotImplementedError

    def find_latest(self, key: UtteranceKey) -> Optional[UtteranceRow]:
        raise NotImplementedError

    def select(
        self,
        page_id: Optional[int] = None,
        language: Optional[str] = None,
        voice: Optional[str] = None,
        stored_at_or_before: Optional[datetime] = None,
    ) -> List[UtteranceRow]:
        raise NotImplementedError

    def get(self, utterance_id: int) -> Optional[UtteranceRow]:
        raise NotImplementedError

    def delete(self, utterance_id: int) -> bool:
        raise NotImplementedError


class SQLiteMetadataTier(MetadataTier):
    """
    Metadata tier backed by a SQLite database file.

    Args:
        database_path: Database file. Parent directories are created.
        timeout_s: How long a writer waits for a lock held by another
            process before raising.
    """

    def __init__(self, database_path: str | Path, timeout_s: float = 30.0):
        self._path = Path(database_path)
        self._timeout_s = timeout_s
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._create_schema()

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._path, timeout=self._timeout_s)
        conn.row_factory = sqlite3.Row
        try:
            with conn:  # commit on success, rollback on error
                yield conn
        finally:
            conn.close()

    def _create_schema(self) -> None:
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.executescript(
                f"""
                CREATE TABLE IF NOT EXISTS {TABLE} (
                    utterance_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    scope TEXT,
                    page_id INTEGER NOT NULL,
                    language TEXT NOT NULL,
                    voice TEXT NOT NULL,
                    segment_hash TEXT NOT NULL,
                    stored_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_utterances_key
                    ON {TABLE}(page_id, language, voice, segment_hash);
                CREATE INDEX IF NOT EXISTS idx_utterances_language_voice
                    ON {TABLE}(language, voice);
                CREATE INDEX IF NOT EXISTS idx_utterances_stored_at
                    ON {TABLE}(stored_at);
                """
            )

    @staticmethod
    def _row_to_utterance_row(row: sqlite3.Row) -> UtteranceRow:
        return UtteranceRow(
            utterance_id=int(row["utterance_id"]),
            scope=row["scope"],
            page_id=int(row["page_id"]),
            language=str(row["language"]),
            voice=str(row["voice"]),
            segment_hash=str(row["segment_hash"]),
            stored_at=datetime.fromisoformat(row["stored_at"]),
        )

    def insert(self, key: UtteranceKey, stored_at: Optional[datetime] = None) -> UtteranceRow:
        """Insert a row and return it with its assigned id."""
        ts = to_utc(stored_at or datetime.now(timezone.utc))
        with self._connect() as conn:
            cursor = conn.execute(
                f"""
                INSERT INTO {TABLE} (scope, page_id, language, voice, segment_hash, stored_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (key.scope, key.page_id, key.language, key.voice, key.segment_hash, _format_ts(ts)),
            )
            utterance_id = int(cursor.lastrowid)
        debug(_LOG, "row_inserted", utterance_id=utterance_id)
        return UtteranceRow(
            utterance_id=utterance_id,
            scope=key.scope,
            page_id=key.page_id,
            language=key.language,
            voice=key.voice,
            segment_hash=key.segment_hash,
            stored_at=ts,
        )

    def find_latest(self, key: UtteranceKey) -> Optional[UtteranceRow]:
        """Most recently stored row for a key."""
        with self._connect() as conn:
            row = conn.execute(
                f"""
                SELECT * FROM {TABLE}
                WHERE scope IS ? AND page_id = ? AND language = ? AND voice = ? AND segment_hash = ?
                ORDER BY stored_at DESC, utterance_id DESC
                LIMIT 1
                """,
                (key.scope, key.page_id, key.language, key.voice, key.segment_hash),
            ).fetchone()
        return self._row_to_utterance_row(row) if row else None

    def select(
        self,
        page_id: Optional[int] = None,
        language: Optional[str] = None,
        voice: Optional[str] = None,
        stored_at_or_before: Optional[datetime] = None,
    ) -> List[UtteranceRow]:
        """Rows matching every given criterion; no criteria selects all rows."""
        clauses: List[str] = []
        params: List[object] = []
        if page_id is not None:
            clauses.append("page_id = ?")
            params.append(page_id)
        if language is not None:
            clauses.append("language = ?")
            params.append(language)
        if voice is not None:
            clauses.append("voice = ?")
            params.append(voice)
        if stored_at_or_before is not None:
            clauses.append("stored_at <= ?")
            params.append(_format_ts(stored_at_or_before))

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM {TABLE} {where} ORDER BY stored_at DESC, utterance_id DESC",
                params,
            ).fetchall()
        return [self._row_to_utterance_row(r) for r in rows]

    def get(self, utterance_id: int) -> Optional[UtteranceRow]:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT * FROM {TABLE} WHERE utterance_id = ?", (utterance_id,)
            ).fetchone()
        return self._row_to_utterance_row(row) if row else None

    def delete(self, utterance_id: int) -> bool:
        """Delete a row. Returns False if it was already gone."""
        with self._connect() as conn:
            cursor = conn.execute(f"DELETE FROM {TABLE} WHERE utterance_id = ?", (utterance_id,))
            deleted = cursor.rowcount > 0
        return deleted
