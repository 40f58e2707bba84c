"""
Structural checker: second validation tier.

Functional requirements:
- Hands the candidate to the external structural parser inside a fresh,
  uniquely named scratch workspace that is always removed afterwards.
- Translates the parser's diagnostics into line-addressed error strings.
- A missing or unlaunchable parser or an unusable scratch area raises; an
  invalid candidate never does.

Non-functional requirements:
- Bounded by a hard timeout; a timeout counts as an unrecognized failure.
- Every invocation is independent and keeps nothing from the candidate.
"""

from __future__ import annotations

import json
import re
import time
from typing import TYPE_CHECKING, Any, Final

import structlog

from mapping_forge.constants import (
    DEFAULT_STRUCTURAL_TIMEOUT_SECONDS,
    SCRATCH_CANDIDATE_STEM,
    SCRATCH_CONFIG_NAME,
    SCRATCH_DIR_PREFIX,
)
from mapping_forge.domain.models import TargetProfile, ValidationResult
from mapping_forge.utils.fs import scratch_directory
from mapping_forge.verification_plane.checkers.base import (
    CommandExecutor,
    CommandResult,
    CommandSpec,
    LocalSubprocessExecutor,
    ScratchWorkspaceError,
    ToolingUnavailableError,
)
from mapping_forge.verification_plane.tool_resolver import require_tool

if TYPE_CHECKING:
    import os
    from pathlib import Path

    from mapping_forge.verification_plane.tool_resolver import ToolHandle, ToolResolver

PARSER_ERROR_MARKER: Final[str] = "ParserError"
UNREADABLE_FILES_MARKER: Final[str] = "Exiting due to unreadable files"

_POSITIONAL_RE: Final[re.Pattern[str]] = re.compile(
    r"ParserError[\s\S]*?:\s*(?P<message>[^\n]+)\s*\n\s*->\s*[^:\n]+:(?P<line>\d+):(?P<column>\d+)"
)
_PROP_MAPPING_RE: Final[re.Pattern[str]] = re.compile(
    r"Could not find prop mapping for (?P<name>\w+)"
)
_PARSE_ARGS: Final[tuple[str, ...]] = (
    "connect",
    "parse",
    "-c",
    SCRATCH_CONFIG_NAME,
    "--exit-on-unreadable-files",
)


def parse_diagnostics(output: str) -> list[str]:
    """Extract recognized diagnostics from combined parser output.

    Positional diagnostics become ``"Line <n>: <message>"``. Missing prop
    mappings are reported once per name.
    """

    errors: list[str] = []
    for match in _POSITIONAL_RE.finditer(output):
        error = f"Line {match.group('line')}: {match.group('message').strip()}"
        if error not in errors:
            errors.append(error)

    seen_names: set[str] = set()
    for match in _PROP_MAPPING_RE.finditer(output):
        name = match.group("name")
        if name in seen_names or any(name in error for error in errors):
            continue
        seen_names.add(name)
        errors.append(f"Prop '{name}' used in example() but not defined in props object")
    return errors


def classify_result(result: CommandResult) -> ValidationResult:
    """Map one parser run onto a validation result. Never returns a silent pass on failure.

    A parser process that could not be started at all raises
    :class:`ToolingUnavailableError`; no candidate can fix that.
    """

    if result.exit_code is None and not result.timed_out and result.error is not None:
        raise ToolingUnavailableError(
            f"structural parser could not be launched: {result.error}",
            searched=(" ".join(result.argv),),
        )

    combined = f"{result.stdout}\n{result.stderr}"
    clean_exit = result.exit_code == 0 and not result.timed_out and result.error is None
    if clean_exit and PARSER_ERROR_MARKER not in combined:
        return ValidationResult.passed()

    errors = parse_diagnostics(combined)
    if errors:
        return ValidationResult.failed(errors)
    return ValidationResult.failed([_generic_failure(result, combined)])


def _generic_failure(result: CommandResult, combined: str) -> str:
    exit_code = "none" if result.exit_code is None else str(result.exit_code)
    details: list[str] = []
    if result.timed_out:
        details.append("timed out")
    elif result.error is not None:
        details.append(result.error)
    if UNREADABLE_FILES_MARKER in combined:
        details.append("file could not be parsed")
    suffix = f" ({'; '.join(details)})" if details else ""
    return (
        "Structural parser rejected the file with no recognized diagnostics "
        f"(exit code: {exit_code}){suffix}"
    )


class StructuralChecker:
    """Runs the external structural parser against one candidate at a time."""

    def __init__(
        self,
        resolver: ToolResolver,
        *,
        executor: CommandExecutor | None = None,
        timeout_seconds: float = DEFAULT_STRUCTURAL_TIMEOUT_SECONDS,
        scratch_parent: str | os.PathLike[str] | None = None,
        logger: Any | None = None,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self._resolver = resolver
        self._executor = executor if executor is not None else LocalSubprocessExecutor()
        self._timeout_seconds = timeout_seconds
        self._scratch_parent = scratch_parent
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    async def run(self, candidate_text: str, profile: TargetProfile) -> ValidationResult:
        """Validate ``candidate_text`` for ``profile``.

        Raises :class:`ToolingUnavailableError` when the parser cannot be found
        or started, and :class:`ScratchWorkspaceError` when the scratch area cannot be set up.
        """

        profile = TargetProfile(profile)
        tool = require_tool(self._resolver)
        started = time.monotonic()

        try:
            with scratch_directory(SCRATCH_DIR_PREFIX, parent=self._scratch_parent) as workspace:
                _populate_workspace(workspace, candidate_text, profile)
                result = await self._executor.run(self._build_spec(tool, workspace))
        except OSError as exc:
            raise ScratchWorkspaceError(f"cannot create scratch workspace: {exc}") from exc

        outcome = classify_result(result)
        self._logger.info(
            "structural_check_completed",
            profile=profile.value,
            tool_source=tool.source.value,
            exit_code=result.exit_code,
            timed_out=result.timed_out,
            valid=outcome.valid,
            error_count=len(outcome.errors),
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        return outcome

    def _build_spec(self, tool: ToolHandle, workspace: Path) -> CommandSpec:
        return CommandSpec(
            argv=tool.argv(*_PARSE_ARGS),
            cwd=str(workspace),
            env={"FORCE_COLOR": "0"},
            timeout_seconds=self._timeout_seconds,
        )


def _populate_workspace(workspace: Path, candidate_text: str, profile: TargetProfile) -> None:
    extension = profile.file_extension
    config = {"codeConnect": {"parser": profile.value, "include": [f"*{extension}"]}}
    try:
        (workspace / f"{SCRATCH_CANDIDATE_STEM}{extension}").write_text(
            candidate_text,
            encoding="utf-8",
        )
        (workspace / SCRATCH_CONFIG_NAME).write_text(
            json.dumps(config, indent=2),
            encoding="utf-8",
        )
    except OSError as exc:
        raise ScratchWorkspaceError(f"cannot write scratch workspace {workspace}: {exc}") from exc


__all__ = [
    "PARSER_ERROR_MARKER",
    "StructuralChecker",
    "UNREADABLE_FILES_MARKER",
    "classify_result",
    "parse_diagnostics",
]
