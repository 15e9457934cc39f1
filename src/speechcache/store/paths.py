"""
Deterministic blob addressing.

Blobs live under a logical container, in a directory derived from the
decimal digits of the utterance id: one level per leading digit beyond
the last three. No directory holds more than 1000 ids (2000 files, audio
plus metadata) or 10 subdirectories.

    1       -> container/1.opus
    123     -> container/123.opus
    1234    -> container/1/1234.opus
    12345   -> container/1/2/12345.opus
    123456  -> container/1/2/3/123456.opus
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from speechcache.core.config import Defaults


def id_directory(utterance_id: int) -> Tuple[str, ...]:
    """Directory components for an utterance id."""
    if utterance_id < 0:
        raise ValueError(f"utterance id must be non-negative, got {utterance_id}")
    digits = str(utterance_id)
    return tuple(digits[:max(len(digits) - 3, 0)])


@dataclass(frozen=True)
class BlobAddressing:
    """
    Maps utterance ids to container-relative blob paths.

    Paths use "/" separators regardless of platform; the blob tier turns
    them into real locations.
    """
    container: str = Defaults.STORE_CONTAINER_NAME
    audio_suffix: str = Defaults.STORE_AUDIO_SUFFIX
    metadata_suffix: str = Defaults.STORE_METADATA_SUFFIX

    def directory(self, utterance_id: int) -> str:
        return "/".join((self.container,) + id_directory(utterance_id))

    def audio_path(self, utterance_id: int) -> str:
        return f"{self.directory(utterance_id)}/{utterance_id}.{self.audio_suffix}"

    def metadata_path(self, utterance_id: int) -> str:
        return f"{self.directory(utterance_id)}/{utterance_id}.{self.metadata_suffix}"

    def parse_id(self, relative_path: str) -> int | None:
        """
        Recover the utterance id from a blob path, or None if the path
        is not one this addressing would produce.
        """
        name = relative_path.rsplit("/", 1)[-1]
        stem, _, suffix = name.rpartition(".")
        if suffix not in (self.audio_suffix, self.metadata_suffix) or not stem.isdigit():
            return None
        utterance_id = int(stem)
        expected = self.audio_path(utterance_id) if suffix == self.audio_suffix else self.metadata_path(utterance_id)
        return utterance_id if expected == relative_path else None
