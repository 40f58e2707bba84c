"""
mapping-forge — unit tests for the structural tier

File: tests/unit/verification_plane/test_structural_checker.py

Purpose
- Validate diagnostic parsing, result classification and scratch workspace handling.

What this test file should cover
- Positional and missing-prop diagnostics become line-addressed errors.
- Non-zero exits without recognized diagnostics yield one generic error.
- Timeouts are failures, never passes.
- An unresolvable or unlaunchable parser raises instead of returning an invalid result.
- Scratch workspaces hold the candidate and a parser config, and are removed afterwards.

Functional requirements
- No real tool execution; use fakes.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from mapping_forge.domain.models import TargetProfile
from mapping_forge.verification_plane.checkers.base import (
    CommandExecutor,
    CommandResult,
    CommandSpec,
    LocalSubprocessExecutor,
    ToolingUnavailableError,
    VerificationInfrastructureError,
)
from mapping_forge.verification_plane.checkers.structural_checker import (
    StructuralChecker,
    classify_result,
    parse_diagnostics,
)
from mapping_forge.verification_plane.tool_resolver import (
    Launcher,
    ToolHandle,
    ToolSource,
    ToolUnavailable,
)

_TOOL = ToolHandle(path="/opt/figma/bin/figma", launcher=Launcher.NODE, source=ToolSource.PROJECT)

_POSITIONAL_OUTPUT = (
    "Parsing candidate.figma.tsx\n"
    "ParserError\n"
    "undefined: Invalid value for props: expected an object\n"
    " -> candidate.figma.tsx:12:5\n"
)


@dataclass(frozen=True, slots=True)
class FakeOutcome:
    exit_code: int | None = 0
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    error: str | None = None


class FakeExecutor(CommandExecutor):
    """Records every spec and snapshots the scratch workspace while it exists."""

    def __init__(self, outcome: FakeOutcome | None = None) -> None:
        self.outcome = outcome or FakeOutcome()
        self.calls: list[CommandSpec] = []
        self.workspace_files: dict[str, str] = {}

    async def run(self, spec: CommandSpec) -> CommandResult:
        self.calls.append(spec)
        assert spec.cwd is not None
        for path in sorted(Path(spec.cwd).iterdir()):
            self.workspace_files[path.name] = path.read_text(encoding="utf-8")
        return CommandResult(
            argv=spec.argv,
            exit_code=self.outcome.exit_code,
            stdout=self.outcome.stdout,
            stderr=self.outcome.stderr,
            duration_ms=7,
            timed_out=self.outcome.timed_out,
            error=self.outcome.error,
        )


@dataclass
class StaticResolver:
    outcome: ToolHandle | ToolUnavailable
    calls: list[str] = field(default_factory=list)

    def resolve(self) -> ToolHandle | ToolUnavailable:
        self.calls.append("resolve")
        return self.outcome


def _result(
    *,
    exit_code: int | None = 0,
    stdout: str = "",
    stderr: str = "",
    timed_out: bool = False,
    error: str | None = None,
) -> CommandResult:
    return CommandResult(
        argv=("figma",),
        exit_code=exit_code,
        stdout=stdout,
        stderr=stderr,
        timed_out=timed_out,
        error=error,
    )


def test_parse_diagnostics_positional_shape() -> None:
    assert parse_diagnostics(_POSITIONAL_OUTPUT) == [
        "Line 12: Invalid value for props: expected an object"
    ]


def test_parse_diagnostics_missing_prop_reported_once() -> None:
    output = (
        "Could not find prop mapping for iconName\n"
        "Could not find prop mapping for iconName\n"
        "Could not find prop mapping for size\n"
    )

    assert parse_diagnostics(output) == [
        "Prop 'iconName' used in example() but not defined in props object",
        "Prop 'size' used in example() but not defined in props object",
    ]


def test_classify_clean_exit_passes() -> None:
    assert classify_result(_result(stdout="Parsed 1 file")).valid


def test_classify_parser_error_on_zero_exit_fails() -> None:
    result = classify_result(_result(stdout=_POSITIONAL_OUTPUT))

    assert result.errors == ("Line 12: Invalid value for props: expected an object",)


def test_classify_unrecognized_failure_yields_single_generic_error() -> None:
    result = classify_result(
        _result(exit_code=1, stderr="Exiting due to unreadable files\nsomething odd")
    )

    assert result.errors == (
        "Structural parser rejected the file with no recognized diagnostics "
        "(exit code: 1) (file could not be parsed)",
    )


def test_classify_timeout_is_a_failure() -> None:
    result = classify_result(
        _result(exit_code=None, timed_out=True, error="command timed out after 30.000s")
    )

    assert not result.valid
    assert result.errors == (
        "Structural parser rejected the file with no recognized diagnostics "
        "(exit code: none) (timed out)",
    )


@pytest.mark.asyncio
async def test_run_builds_workspace_and_removes_it(tmp_path: Path) -> None:
    executor = FakeExecutor(FakeOutcome(stdout="ok"))
    checker = StructuralChecker(
        StaticResolver(_TOOL),
        executor=executor,
        timeout_seconds=12.0,
        scratch_parent=tmp_path / "scratch",
    )

    result = await checker.run("export default 1\n", TargetProfile.REACT)

    assert result.valid
    spec = executor.calls[0]
    assert spec.argv == (
        "node",
        "/opt/figma/bin/figma",
        "connect",
        "parse",
        "-c",
        "figma.config.json",
        "--exit-on-unreadable-files",
    )
    assert spec.timeout_seconds == 12.0
    assert spec.env == {"FORCE_COLOR": "0"}
    assert executor.workspace_files["candidate.figma.tsx"] == "export default 1\n"
    assert json.loads(executor.workspace_files["figma.config.json"]) == {
        "codeConnect": {"parser": "react", "include": ["*.figma.tsx"]}
    }
    assert spec.cwd is not None
    assert not Path(spec.cwd).exists()
    assert list((tmp_path / "scratch").iterdir()) == []


@pytest.mark.asyncio
async def test_run_uses_html_parser_for_html_profile(tmp_path: Path) -> None:
    executor = FakeExecutor()
    checker = StructuralChecker(StaticResolver(_TOOL), executor=executor, scratch_parent=tmp_path)

    await checker.run("x", TargetProfile.HTML)

    config = json.loads(executor.workspace_files["figma.config.json"])
    assert config["codeConnect"] == {"parser": "html", "include": ["*.figma.ts"]}
    assert "candidate.figma.ts" in executor.workspace_files


@pytest.mark.asyncio
async def test_run_returns_parsed_errors_for_invalid_candidate(tmp_path: Path) -> None:
    executor = FakeExecutor(FakeOutcome(exit_code=1, stderr=_POSITIONAL_OUTPUT))
    checker = StructuralChecker(StaticResolver(_TOOL), executor=executor, scratch_parent=tmp_path)

    result = await checker.run("bad", TargetProfile.REACT)

    assert result.errors == ("Line 12: Invalid value for props: expected an object",)


@pytest.mark.asyncio
async def test_run_raises_when_parser_is_unavailable(tmp_path: Path) -> None:
    executor = FakeExecutor()
    resolver = StaticResolver(ToolUnavailable(reason="not installed", searched=("a", "b")))
    checker = StructuralChecker(resolver, executor=executor, scratch_parent=tmp_path)

    with pytest.raises(ToolingUnavailableError, match="not installed") as excinfo:
        await checker.run("x", TargetProfile.REACT)

    assert isinstance(excinfo.value, VerificationInfrastructureError)
    assert excinfo.value.searched == ("a", "b")
    assert executor.calls == []


def test_classify_launch_failure_raises_tooling_unavailable() -> None:
    with pytest.raises(ToolingUnavailableError, match="could not be launched"):
        classify_result(
            _result(exit_code=None, error="[Errno 2] No such file or directory: 'node'")
        )


@pytest.mark.asyncio
async def test_run_raises_when_launcher_is_missing(tmp_path: Path) -> None:
    tool = ToolHandle(
        path=str(tmp_path / "figma"),
        launcher=Launcher.NODE,
        source=ToolSource.PROJECT,
        node_executable=str(tmp_path / "missing" / "node"),
    )
    checker = StructuralChecker(
        StaticResolver(tool),
        executor=LocalSubprocessExecutor(),
        scratch_parent=tmp_path / "scratch",
    )

    with pytest.raises(ToolingUnavailableError, match="could not be launched"):
        await checker.run("export default 1\n", TargetProfile.REACT)

    assert list((tmp_path / "scratch").iterdir()) == []


def test_rejects_non_positive_timeout() -> None:
    with pytest.raises(ValueError, match="timeout_seconds"):
        StructuralChecker(StaticResolver(_TOOL), timeout_seconds=0)
