"""
mapping-forge — filesystem utilities

File: src/mapping_forge/utils/fs.py

Purpose
- Disposable scratch workspaces for the structural parser.
- Atomic writes for artifacts and reports emitted by the CLI.

Functional requirements
- Scratch directories are uniquely named, so concurrent validations never collide.
- Scratch cleanup is best-effort and never raises.
"""

from __future__ import annotations

import contextlib
import os
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

PathLike = str | os.PathLike[str]

__all__ = [
    "atomic_write",
    "remove_tree_quietly",
    "scratch_directory",
]


def atomic_write(path: PathLike, data: bytes | str, *, encoding: str = "utf-8") -> None:
    """
    Atomically write ``data`` to ``path``.

    The write strategy is:
    1. create temp file in the same directory,
    2. write + flush + fsync file data,
    3. replace target via ``os.replace``.
    """

    target = Path(path)
    target_parent = target.parent.resolve(strict=True)
    if not target_parent.is_dir():
        raise NotADirectoryError(f"{target_parent!s} is not a directory")

    fd, temp_name = tempfile.mkstemp(
        prefix=f".{target.name}.",
        suffix=".tmp",
        dir=str(target_parent),
    )
    temp_path = Path(temp_name)

    try:
        payload = data if isinstance(data, bytes) else data.encode(encoding)
        with os.fdopen(fd, "wb") as file_handle:
            file_handle.write(payload)
            file_handle.flush()
            os.fsync(file_handle.fileno())
        os.replace(temp_path, target)
    except Exception:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise


@contextmanager
def scratch_directory(prefix: str, *, parent: PathLike | None = None) -> Iterator[Path]:
    """
    Yield a freshly created, uniquely named directory and delete it on exit.

    Creation errors propagate as ``OSError``. Deletion errors are ignored.
    """

    if parent is not None:
        Path(parent).mkdir(parents=True, exist_ok=True)
    created = Path(tempfile.mkdtemp(prefix=prefix, dir=None if parent is None else str(parent)))
    try:
        yield created
    finally:
        remove_tree_quietly(created)


def remove_tree_quietly(path: PathLike) -> None:
    """Best-effort recursive delete."""

    shutil.rmtree(path, ignore_errors=True)
