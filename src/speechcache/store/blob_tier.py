"""
Blob Tier.

Stores utterance audio and synthesis metadata as files. Paths handed to
the tier are container-relative ("speechcache_utterances/1/2/12345.opus",
see paths.py); ``FileSystemBlobTier`` roots them under a base directory:

    {base_dir}/
        speechcache_utterances/
            7.opus
            7.json
            1/
                1234.opus
                1234.json
                2/
                    12345.opus
                    12345.json

Writes go to a temporary file that is then renamed into place, so a
crash mid-write never leaves a truncated blob under the final name.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Iterator, Tuple

from speechcache.core.logging import debug, get_logger, verbose, warn
from speechcache.utils.timeit import timeit

_LOG = get_logger("speechcache.blobs")

_TMP_SUFFIX = ".tmp"


class BlobTier:
    """
    Base class for blob tier implementations.

    read() raises FileNotFoundError for an absent blob and OSError for
    other failures. delete() returns False for an absent blob.
    """

    def prepare(self, directory: str) -> None:
        raise NotImplementedError

    def write(self, path: str, data: bytes) -> None:
        raise NotImplementedError

    def read(self, path: str) -> bytes:
        raise NotImplementedError

    def exists(self, path: str) -> bool:
        raise NotImplementedError

    def delete(self, path: str) -> bool:
        raise NotImplementedError

    def clean(self, directory: str, container: str) -> None:
        """Remove empty directories from ``directory`` up to the container."""
        raise NotImplementedError

    def iter_blobs(self, container: str) -> Iterator[Tuple[str, float]]:
        """Yield (relative path, modification time) for every blob."""
        raise NotImplementedError


class FileSystemBlobTier(BlobTier):
    """Blob tier on a local (or mounted) filesystem."""

    def __init__(self, base_dir: str | Path):
        self._base_dir = Path(base_dir)

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def _resolve(self, path: str) -> Path:
        parts = [p for p in path.split("/") if p]
        if not parts or any(p in (".", "..") for p in parts):
            raise ValueError(f"invalid blob path: {path!r}")
        return self._base_dir.joinpath(*parts)

    def prepare(self, directory: str) -> None:
        self._resolve(directory).mkdir(parents=True, exist_ok=True)

    def write(self, path: str, data: bytes) -> None:
        p = self._resolve(path)
        tmp = p.with_name(p.name + _TMP_SUFFIX)
        with timeit("blob_write") as t:
            try:
                tmp.write_bytes(data)
                tmp.replace(p)
            except OSError:
                tmp.unlink(missing_ok=True)
                raise
        verbose(_LOG, "blob_written", path=path, bytes=len(data), seconds=t.seconds)

    def read(self, path: str) -> bytes:
        with timeit("blob_read") as t:
            data = self._resolve(path).read_bytes()
        debug(_LOG, "blob_read", path=path, bytes=len(data), seconds=t.seconds)
        return data

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def delete(self, path: str) -> bool:
        try:
            self._resolve(path).unlink()
        except FileNotFoundError:
            return False
        return True

    def clean(self, directory: str, container: str) -> None:
        root = self._resolve(container)
        current = self._resolve(directory)
        while current != root and root in current.parents:
            try:
                current.rmdir()
            except OSError:
                # Not empty, or already gone
                return
            current = current.parent

    def iter_blobs(self, container: str) -> Iterator[Tuple[str, float]]:
        root = self._resolve(container)
        if not root.is_dir():
            return
        for dirpath, _dirnames, filenames in os.walk(root):
            for name in filenames:
                if name.endswith(_TMP_SUFFIX):
                    continue
                full = Path(dirpath) / name
                try:
                    mtime = full.stat().st_mtime
                except FileNotFoundError:
                    continue
                except OSError as e:
                    warn(_LOG, "blob_stat_error", path=str(full), error=str(e))
                    continue
                yield full.relative_to(self._base_dir).as_posix(), mtime
