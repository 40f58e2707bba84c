"""
mapping-forge — unit tests for filesystem utilities

File: tests/unit/utils/test_fs.py

Purpose
- Validate atomic writes and disposable scratch directories.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from mapping_forge.utils.fs import atomic_write, remove_tree_quietly, scratch_directory


def test_atomic_write_text_and_bytes(tmp_path: Path) -> None:
    target = tmp_path / "Button.figma.tsx"

    atomic_write(target, "first")
    atomic_write(target, b"second")

    assert target.read_text(encoding="utf-8") == "second"
    assert [item.name for item in tmp_path.iterdir()] == ["Button.figma.tsx"]


def test_atomic_write_requires_existing_parent(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        atomic_write(tmp_path / "missing" / "out.txt", "x")


def test_scratch_directory_is_unique_and_removed(tmp_path: Path) -> None:
    with scratch_directory("mapforge-", parent=tmp_path / "scratch") as first:
        with scratch_directory("mapforge-", parent=tmp_path / "scratch") as second:
            (first / "candidate.figma.tsx").write_text("code", encoding="utf-8")
            assert first != second
            assert first.parent == tmp_path / "scratch"
            assert first.name.startswith("mapforge-")

    assert not first.exists()
    assert not second.exists()


def test_scratch_directory_is_removed_when_body_raises(tmp_path: Path) -> None:
    with pytest.raises(RuntimeError), scratch_directory("s-", parent=tmp_path) as created:
        raise RuntimeError("parser crashed")

    assert not created.exists()


def test_remove_tree_quietly_ignores_missing_paths(tmp_path: Path) -> None:
    remove_tree_quietly(tmp_path / "never-created")
