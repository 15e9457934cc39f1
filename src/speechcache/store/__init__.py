"""
Two-tier Utterance Store.

    - models.py: Utterance, lookup results, StorageError
    - paths.py: Blob addressing derived from utterance ids
    - metadata_tier.py: Row tier (SQLite)
    - blob_tier.py: Audio and metadata files
    - utterance_store.py: find / create across both tiers
    - flush.py: Eviction and reconciliation
"""
from .blob_tier import BlobTier, FileSystemBlobTier
from .flush import ReconcileReport, UtteranceFlusher, expiration_cutoff
from .metadata_tier import MetadataTier, SQLiteMetadataTier
from .models import (
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
from .paths import BlobAddressing, id_directory
from .utterance_store import UtteranceStore

__all__ = [
    "UtteranceStore",
    "UtteranceFlusher",
    "ReconcileReport",
    "expiration_cutoff",
    "MetadataTier",
    "SQLiteMetadataTier",
    "BlobTier",
    "FileSystemBlobTier",
    "BlobAddressing",
    "id_directory",
    "Utterance",
    "UtteranceKey",
    "UtteranceRow",
    "Found",
    "NotFound",
    "StorageFault",
    "LookupResult",
    "StorageError",
    "StorageErrorKind",
]
