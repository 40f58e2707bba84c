"""
mapping-forge — structural parser discovery

File: src/mapping_forge/verification_plane/tool_resolver.py

Purpose
- Locate a usable copy of the external structural parser CLI.
- Return a typed handle or a typed "unavailable" value so callers (and tests)
  never depend on a real installation.

Resolution order
1. explicit override (config value, then the ``FIGMA_CLI_PATH`` env var)
2. project-local ``node_modules/@figma/code-connect/bin/figma`` under the
   project root or any of its parents
3. ``figma`` on ``PATH``

Discovery is read-only; nothing found here is ever modified.
"""

from __future__ import annotations

import os
import shutil
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Final, Protocol, runtime_checkable

from mapping_forge.constants import CLI_PATH_ENV_VAR, GLOBAL_CLI_NAME, PROJECT_LOCAL_CLI
from mapping_forge.verification_plane.checkers.base import ToolingUnavailableError

WhichFn = Callable[[str], str | None]

_NODE_SCRIPT_SUFFIXES: Final[frozenset[str]] = frozenset({".js", ".cjs", ".mjs"})


class ToolSource(StrEnum):
    OVERRIDE = "override"
    PROJECT = "project"
    PATH = "path"


class Launcher(StrEnum):
    NODE = "node"
    DIRECT = "direct"


@dataclass(frozen=True, slots=True)
class ToolHandle:
    """A resolved parser CLI and how to launch it."""

    path: str
    launcher: Launcher
    source: ToolSource
    node_executable: str = "node"

    def argv(self, *args: str) -> tuple[str, ...]:
        if self.launcher is Launcher.NODE:
            return (self.node_executable, self.path, *args)
        return (self.path, *args)

    def to_dict(self) -> dict[str, str]:
        return {"path": self.path, "launcher": self.launcher.value, "source": self.source.value}


@dataclass(frozen=True, slots=True)
class ToolUnavailable:
    """Typed "not found" result carrying every location that was probed."""

    reason: str
    searched: tuple[str, ...] = ()

    def to_error(self) -> ToolingUnavailableError:
        return ToolingUnavailableError(self.reason, searched=self.searched)


@runtime_checkable
class ToolResolver(Protocol):
    def resolve(self) -> ToolHandle | ToolUnavailable: ...


class FigmaCliResolver:
    """Default resolver for the Code Connect CLI."""

    def __init__(
        self,
        project_root: str | os.PathLike[str] = ".",
        *,
        override: str | None = None,
        env_var: str = CLI_PATH_ENV_VAR,
        environ: Mapping[str, str] | None = None,
        which: WhichFn | None = None,
    ) -> None:
        self._project_root = Path(project_root)
        self._override = override
        self._env_var = env_var
        self._environ = environ if environ is not None else os.environ
        self._which = which if which is not None else shutil.which

    def resolve(self) -> ToolHandle | ToolUnavailable:
        searched: list[str] = []

        for candidate in (self._override, self._environ.get(self._env_var)):
            if not candidate:
                continue
            searched.append(candidate)
            path = Path(candidate).expanduser()
            if path.is_file():
                return self._handle(path, ToolSource.OVERRIDE)

        for directory in _self_and_parents(self._project_root):
            local = directory.joinpath(*PROJECT_LOCAL_CLI)
            searched.append(local.as_posix())
            if local.is_file():
                return self._handle(local, ToolSource.PROJECT, launcher=Launcher.NODE)

        searched.append(f"$PATH/{GLOBAL_CLI_NAME}")
        found = self._which(GLOBAL_CLI_NAME)
        if found:
            return ToolHandle(path=found, launcher=Launcher.DIRECT, source=ToolSource.PATH)

        return ToolUnavailable(
            reason=(
                "Code Connect CLI not found. Install @figma/code-connect in the project "
                f"or set {self._env_var}."
            ),
            searched=tuple(searched),
        )

    def require(self) -> ToolHandle:
        outcome = self.resolve()
        if isinstance(outcome, ToolUnavailable):
            raise outcome.to_error()
        return outcome

    def _handle(
        self,
        path: Path,
        source: ToolSource,
        *,
        launcher: Launcher | None = None,
    ) -> ToolHandle:
        if launcher is None:
            launcher = _infer_launcher(path)
        node = self._which("node") or "node"
        return ToolHandle(
            path=str(path.resolve()),
            launcher=launcher,
            source=source,
            node_executable=node,
        )


def require_tool(resolver: ToolResolver) -> ToolHandle:
    """Resolve or raise :class:`ToolingUnavailableError`."""

    outcome = resolver.resolve()
    if isinstance(outcome, ToolUnavailable):
        raise outcome.to_error()
    return outcome


def _infer_launcher(path: Path) -> Launcher:
    if path.suffix.lower() in _NODE_SCRIPT_SUFFIXES:
        return Launcher.NODE
    if os.access(path, os.X_OK):
        return Launcher.DIRECT
    return Launcher.NODE


def _self_and_parents(start: Path) -> tuple[Path, ...]:
    resolved = start.resolve()
    return (resolved, *resolved.parents)


__all__ = [
    "FigmaCliResolver",
    "Launcher",
    "ToolHandle",
    "ToolResolver",
    "ToolSource",
    "ToolUnavailable",
    "require_tool",
]
