"""
mapping-forge — unit tests for generator adapters

File: tests/unit/synthesis_plane/test_generator.py

Purpose
- Validate formatting clean-up, callable and command adapters, and the generator
  error taxonomy.

Functional requirements
- No real generator processes; command adapters run against a fake executor.
"""

from __future__ import annotations

import asyncio
import json

import pytest

from mapping_forge.domain.models import TokenUsage
from mapping_forge.synthesis_plane.generator import (
    CallableGenerator,
    CommandGenerator,
    GeneratorError,
    GeneratorResponse,
    GeneratorResponseError,
    GeneratorTimeoutError,
    GeneratorUnavailableError,
    strip_formatting_noise,
)
from mapping_forge.verification_plane.checkers.base import (
    CommandExecutor,
    CommandResult,
    CommandSpec,
)


class FakeExecutor(CommandExecutor):
    def __init__(self, result: CommandResult) -> None:
        self.result = result
        self.calls: list[CommandSpec] = []

    async def run(self, spec: CommandSpec) -> CommandResult:
        self.calls.append(spec)
        return self.result


def _completed(
    stdout: str = "",
    *,
    exit_code: int | None = 0,
    stderr: str = "",
    timed_out: bool = False,
    error: str | None = None,
) -> CommandResult:
    return CommandResult(
        argv=("agent",),
        exit_code=exit_code,
        stdout=stdout,
        stderr=stderr,
        timed_out=timed_out,
        error=error,
    )


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("```tsx\nconst a = 1\n```", "const a = 1"),
        ("```\nconst a = 1\n```\n", "const a = 1"),
        ("Here you go:\n```typescript\nconst a = 1\n```\nHope this helps.", "const a = 1"),
        ("  const a = 1  \n", "const a = 1"),
    ],
)
def test_strip_formatting_noise(raw: str, expected: str) -> None:
    assert strip_formatting_noise(raw) == expected


def test_response_coercion() -> None:
    assert GeneratorResponse.coerce("x", generator="g") == GeneratorResponse(text="x")
    assert GeneratorResponse.coerce(
        {"code": "y", "usage": {"input_tokens": 3, "output_tokens": 4}},
        generator="g",
    ) == GeneratorResponse(text="y", usage=TokenUsage(input_tokens=3, output_tokens=4))

    with pytest.raises(GeneratorResponseError, match="no string 'text'"):
        GeneratorResponse.coerce({"usage": {}}, generator="g")
    with pytest.raises(GeneratorResponseError, match="unsupported response type"):
        GeneratorResponse.coerce(42, generator="g")


def test_generator_error_fields_are_normalized() -> None:
    error = GeneratorError(generator="agent", code="exit_nonzero", detail="  line1\n  line2 ")

    assert error.detail == "line1 line2"
    assert error.retryable
    assert str(error) == "generator=agent code=exit_nonzero retryable=true detail=line1 line2"


@pytest.mark.asyncio
async def test_callable_generator_accepts_sync_and_async_functions() -> None:
    def sync_fn(instruction: str) -> str:
        return f"sync:{instruction}"

    async def async_fn(instruction: str) -> dict[str, object]:
        return {"text": f"async:{instruction}", "usage": {"output_tokens": 2}}

    sync_response = await CallableGenerator(sync_fn).generate("a")
    async_response = await CallableGenerator(async_fn).generate("b")

    assert sync_response.text == "sync:a"
    assert async_response.text == "async:b"
    assert async_response.usage == TokenUsage(output_tokens=2)


@pytest.mark.asyncio
async def test_callable_generator_wraps_failures() -> None:
    def broken(_: str) -> str:
        raise ConnectionError("upstream down")

    with pytest.raises(GeneratorUnavailableError, match="ConnectionError: upstream down"):
        await CallableGenerator(broken, name="llm").generate("x")


@pytest.mark.asyncio
async def test_callable_generator_timeout() -> None:
    async def slow(_: str) -> str:
        await asyncio.sleep(5)
        return "late"

    with pytest.raises(GeneratorTimeoutError) as excinfo:
        await CallableGenerator(slow, timeout_seconds=0.05).generate("x")

    assert excinfo.value.code == "timeout"


@pytest.mark.asyncio
async def test_command_generator_sends_instruction_on_stdin() -> None:
    executor = FakeExecutor(_completed("```tsx\ncode\n```"))
    generator = CommandGenerator(
        "./agent --stdin",
        executor=executor,
        timeout_seconds=60,
        cwd="/work",
    )

    response = await generator.generate("make a mapping")

    assert generator.name == "./agent"
    assert response.text == "```tsx\ncode\n```"
    spec = executor.calls[0]
    assert spec.argv == ("./agent", "--stdin")
    assert spec.stdin_text == "make a mapping"
    assert spec.timeout_seconds == 60
    assert spec.cwd == "/work"


@pytest.mark.asyncio
async def test_command_generator_json_output() -> None:
    payload = {"text": "code", "usage": {"input_tokens": 100, "output_tokens": 20}}
    executor = FakeExecutor(_completed(json.dumps(payload)))

    response = await CommandGenerator(["agent"], executor=executor, output_format="json").generate(
        "x"
    )

    assert response == GeneratorResponse(
        text="code",
        usage=TokenUsage(input_tokens=100, output_tokens=20),
    )


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("result", "error_type", "code"),
    [
        (
            _completed(exit_code=None, timed_out=True, error="timed out"),
            GeneratorTimeoutError,
            "timeout",
        ),
        (
            _completed(exit_code=None, error="No such file"),
            GeneratorUnavailableError,
            "unavailable",
        ),
        (_completed(exit_code=2, stderr="quota exceeded"), GeneratorError, "exit_nonzero"),
    ],
)
async def test_command_generator_failures(
    result: CommandResult,
    error_type: type[GeneratorError],
    code: str,
) -> None:
    generator = CommandGenerator(("agent",), executor=FakeExecutor(result))

    with pytest.raises(error_type) as excinfo:
        await generator.generate("x")

    assert excinfo.value.code == code


@pytest.mark.asyncio
async def test_command_generator_invalid_json() -> None:
    generator = CommandGenerator(
        ("agent",),
        executor=FakeExecutor(_completed("not json")),
        output_format="json",
    )

    with pytest.raises(GeneratorResponseError, match="not valid JSON"):
        await generator.generate("x")


def test_command_generator_rejects_bad_arguments() -> None:
    with pytest.raises(ValueError, match="must not be empty"):
        CommandGenerator("")
    with pytest.raises(ValueError, match="output_format"):
        CommandGenerator("agent", output_format="xml")
