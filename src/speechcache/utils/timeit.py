"""
Timing Utilities.

Wall-clock timing for store reads/writes and flush batches, reported in
log lines as ``seconds=...``.

Example:
    with timeit("blob_read") as t:
        data = blobs.read(path)
    print(f"Took {t.timing.seconds:.3f}s")
"""
from __future__ import annotations

from dataclasses import dataclass
from time import perf_counter
from typing import Any, Dict, Optional


@dataclass
class Timing:
    """
    Timing measurement result.

    Attributes:
        name: What was timed (e.g., "metadata_select", "flush_batch").
        seconds: Duration in seconds.
        meta: Optional metadata dictionary.
    """
    name: str
    seconds: float
    meta: Optional[Dict[str, Any]] = None


class timeit:
    """
    Context manager for timing code blocks.

    ``timing`` is available after the block exits, also when it raised.
    """

    def __init__(self, name: str, meta: Optional[Dict[str, Any]] = None):
        self.name = name
        self.meta = meta
        self._t0: float | None = None
        self.timing: Timing | None = None

    def __enter__(self) -> "timeit":
        self._t0 = perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        t1 = perf_counter()
        assert self._t0 is not None
        self.timing = Timing(name=self.name, seconds=(t1 - self._t0), meta=self.meta)

    @property
    def seconds(self) -> float:
        """Elapsed seconds rounded for logging, -1.0 while still running."""
        return round(self.timing.seconds, 4) if self.timing else -1.0
