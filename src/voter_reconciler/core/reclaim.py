"""Periodic resource-reclamation checkpoint and memory estimate.

The import loop calls a checkpoint after every chunk.  Hosts that manage
memory themselves pass :func:`noop_checkpoint`.
"""

import gc
import resource
import sys
from typing import Protocol

from loguru import logger


class ReclamationCheckpoint(Protocol):
    """Hook invoked after each chunk with the zero-based chunk index."""

    def __call__(self, chunk_index: int) -> None: ...


def noop_checkpoint(chunk_index: int) -> None:
    """Checkpoint that does nothing."""


class GarbageCollectCheckpoint:
    """Run a full garbage collection every ``every`` chunks."""

    def __init__(self, every: int = 5) -> None:
        if every <= 0:
            msg = f"every must be positive, got {every}"
            raise ValueError(msg)
        self.every = every

    def __call__(self, chunk_index: int) -> None:
        if (chunk_index + 1) % self.every != 0:
            return
        collected = gc.collect()
        logger.debug(f"Reclamation checkpoint after chunk {chunk_index + 1}: {collected} objects collected")


def peak_memory_mb() -> float:
    """Return the process's peak resident set size in megabytes."""
    usage = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # ru_maxrss is bytes on macOS, kilobytes elsewhere
    if sys.platform == "darwin":
        return round(usage / (1024 * 1024), 1)
    return round(usage / 1024, 1)
