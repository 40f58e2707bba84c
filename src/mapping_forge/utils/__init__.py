"""Utility exports for filesystem and concurrency helpers."""

from mapping_forge.utils.concurrency import (
    BoundedSemaphore,
    CancellationToken,
    WorkerPool,
    gather_ordered,
    run_with_timeout,
)
from mapping_forge.utils.fs import atomic_write, scratch_directory

__all__ = [
    "BoundedSemaphore",
    "CancellationToken",
    "WorkerPool",
    "atomic_write",
    "gather_ordered",
    "run_with_timeout",
    "scratch_directory",
]
