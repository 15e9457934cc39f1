"""
Utterance records and lookup results.

``UtteranceStore.find`` never returns None. It returns one of

    Found(utterance)            all tiers agreed
    NotFound()                  no metadata row for the key
    StorageFault(kind, detail)  row present but a tier could not deliver

so a caller that treats faults as misses does so knowingly.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Union


class StorageErrorKind(str, Enum):
    """Why a store operation could not complete."""
    INCONSISTENT = "INCONSISTENT"        # Row without blob (or the reverse)
    READ_FAILED = "READ_FAILED"          # Tier raised while reading
    WRITE_FAILED = "WRITE_FAILED"        # Tier raised while writing
    PREPARE_FAILED = "PREPARE_FAILED"    # Blob directory could not be created


class StorageError(Exception):
    """
    Raised by ``UtteranceStore.create`` when a tier write fails.

    Attributes:
        kind: StorageErrorKind.
        utterance_id: Surrogate id of the row involved, if one was assigned.
    """

    def __init__(self, message: str, kind: StorageErrorKind, utterance_id: Optional[int] = None):
        self.kind = kind
        self.utterance_id = utterance_id
        super().__init__(message)


@dataclass(frozen=True)
class UtteranceKey:
    """Lookup key of an utterance."""
    scope: Optional[str]
    page_id: int
    language: str
    voice: str
    segment_hash: str


@dataclass(frozen=True)
class UtteranceRow:
    """Metadata tier row."""
    utterance_id: int
    scope: Optional[str]
    page_id: int
    language: str
    voice: str
    segment_hash: str
    stored_at: datetime

    @property
    def key(self) -> UtteranceKey:
        return UtteranceKey(self.scope, self.page_id, self.language, self.voice, self.segment_hash)


@dataclass(frozen=True)
class Utterance:
    """
    A stored synthesis result.

    Attributes:
        utterance_id: Surrogate id assigned by the metadata tier; addresses
            the blobs.
        audio: Audio bytes, or None when looked up with omit_audio.
        metadata: Serialized token timings.
    """
    utterance_id: int
    scope: Optional[str]
    page_id: int
    language: str
    voice: str
    segment_hash: str
    stored_at: datetime
    audio: Optional[bytes]
    metadata: bytes

    @classmethod
    def from_row(cls, row: UtteranceRow, audio: Optional[bytes], metadata: bytes) -> "Utterance":
        return cls(
            utterance_id=row.utterance_id,
            scope=row.scope,
            page_id=row.page_id,
            language=row.language,
            voice=row.voice,
            segment_hash=row.segment_hash,
            stored_at=row.stored_at,
            audio=audio,
            metadata=metadata,
        )


@dataclass(frozen=True)
class Found:
    utterance: Utterance


@dataclass(frozen=True)
class NotFound:
    pass


@dataclass(frozen=True)
class StorageFault:
    """A row matched but the utterance could not be fully read."""
    kind: StorageErrorKind
    detail: str
    utterance_id: Optional[int] = None


LookupResult = Union[Found, NotFound, StorageFault]
