"""
mapping-forge — unit tests for command plumbing

File: tests/unit/verification_plane/test_command_executor.py

Purpose
- Validate CommandSpec/CommandResult contracts and the local async subprocess executor.

Functional requirements
- Uses only the running Python interpreter as a child process.
"""

from __future__ import annotations

import sys

import pytest

from mapping_forge.verification_plane.checkers.base import (
    CommandResult,
    CommandSpec,
    LocalSubprocessExecutor,
)


def test_command_spec_normalizes_and_validates() -> None:
    spec = CommandSpec(argv=["figma", "connect"], env={"B": "2", "A": "1"})

    assert spec.argv == ("figma", "connect")
    assert list(spec.env) == ["A", "B"]
    assert spec.to_dict()["allowed_exit_codes"] == [0]

    with pytest.raises(ValueError, match="CommandSpec.argv"):
        CommandSpec(argv=())
    with pytest.raises(ValueError, match="timeout_seconds"):
        CommandSpec(argv=("x",), timeout_seconds=0)
    with pytest.raises(ValueError, match="stdin_text"):
        CommandSpec(argv=("x",), stdin_text=b"raw")  # type: ignore[arg-type]


def test_command_result_timeout_has_no_exit_code() -> None:
    with pytest.raises(ValueError, match="must be None"):
        CommandResult(argv=("x",), exit_code=1, stdout="", stderr="", timed_out=True)

    result = CommandResult(argv=("x",), exit_code=0, stdout="out", stderr="err")
    assert result.combined_output == "out\nerr"
    assert result.is_success()


@pytest.mark.asyncio
async def test_local_executor_captures_output_and_stdin() -> None:
    executor = LocalSubprocessExecutor()
    spec = CommandSpec(
        argv=(
            sys.executable,
            "-c",
            "import sys; data = sys.stdin.read(); print(data.upper()); "
            "print('warn', file=sys.stderr); sys.exit(3)",
        ),
        stdin_text="hello",
        timeout_seconds=30,
    )

    result = await executor.run(spec)

    assert result.exit_code == 3
    assert result.stdout == "HELLO\n"
    assert result.stderr == "warn\n"
    assert not result.timed_out
    assert not result.is_success(spec)


@pytest.mark.asyncio
async def test_local_executor_reports_timeout_without_raising() -> None:
    executor = LocalSubprocessExecutor()

    result = await executor.run(
        CommandSpec(
            argv=(sys.executable, "-c", "import time; time.sleep(10)"),
            timeout_seconds=0.2,
        )
    )

    assert result.timed_out
    assert result.exit_code is None
    assert result.error is not None
    assert "timed out" in result.error


@pytest.mark.asyncio
async def test_local_executor_reports_spawn_failure() -> None:
    result = await LocalSubprocessExecutor().run(
        CommandSpec(argv=("definitely-not-a-real-binary-mapforge",))
    )

    assert result.exit_code is None
    assert result.error is not None
    assert not result.timed_out


@pytest.mark.asyncio
async def test_local_executor_truncates_and_redacts() -> None:
    executor = LocalSubprocessExecutor(
        max_output_chars=5,
        redact=lambda text: text.replace("abc", "***"),
    )

    result = await executor.run(
        CommandSpec(argv=(sys.executable, "-c", "print('abcdefghij')"), timeout_seconds=30)
    )

    assert result.stdout.startswith("***de\n...[truncated")
