"""
mapping-forge — checker plumbing

File: src/mapping_forge/verification_plane/checkers/base.py

Purpose
- Portable command contract (``CommandSpec``/``CommandResult``) and the async
  executor used to run the external structural parser and command generators.
- Infrastructure error hierarchy that separates "the checker cannot run" from
  "the candidate is invalid".

Functional requirements
- Executors never raise for a failing command: spawn errors and timeouts are
  reported on ``CommandResult``.
- Output is decoded as UTF-8 with replacement and line endings normalized.
"""

from __future__ import annotations

import asyncio
import math
import os
import time
from collections.abc import Callable, Mapping, Sequence
from contextlib import suppress
from dataclasses import dataclass, field
from typing import NoReturn, Protocol, runtime_checkable

_MAX_ENV_ENTRIES = 256

TextRedactor = Callable[[str], str]


def _identity_text_redactor(text: str) -> str:
    return text


class VerificationInfrastructureError(RuntimeError):
    """The verifier itself could not run; never a statement about the candidate."""


class ToolingUnavailableError(VerificationInfrastructureError):
    """The external structural parser could not be resolved."""

    def __init__(self, message: str, *, searched: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.searched = tuple(searched)


class ScratchWorkspaceError(VerificationInfrastructureError):
    """The disposable scratch workspace could not be prepared."""


@dataclass(slots=True)
class CommandSpec:
    """Portable command invocation contract."""

    argv: tuple[str, ...]
    cwd: str | None = None
    env: Mapping[str, str] = field(default_factory=dict)
    stdin_text: str | None = None
    timeout_seconds: float | None = None
    allowed_exit_codes: tuple[int, ...] = (0,)
    inherit_env: bool = True

    def __post_init__(self) -> None:
        self.argv = _as_non_empty_str_tuple(self.argv, "CommandSpec.argv")
        if self.cwd is not None:
            self.cwd = _as_str(os.fspath(self.cwd), "CommandSpec.cwd")
        self.env = _as_str_mapping(self.env, "CommandSpec.env")
        if self.stdin_text is not None and not isinstance(self.stdin_text, str):
            _fail(
                "CommandSpec.stdin_text",
                f"expected string, got {type(self.stdin_text).__name__}",
            )
        self.timeout_seconds = _as_positive_float_or_none(
            self.timeout_seconds,
            "CommandSpec.timeout_seconds",
        )
        self.allowed_exit_codes = _as_exit_codes(
            self.allowed_exit_codes,
            "CommandSpec.allowed_exit_codes",
        )

    def resolved_timeout(self, default_timeout_seconds: float | None = None) -> float | None:
        if self.timeout_seconds is not None:
            return self.timeout_seconds
        return _as_positive_float_or_none(default_timeout_seconds, "default_timeout_seconds")

    def build_env(self) -> dict[str, str] | None:
        if self.inherit_env:
            env = dict(os.environ)
            env.update(self.env)
            return env
        return dict(self.env)

    def to_dict(self) -> dict[str, object]:
        return {
            "argv": list(self.argv),
            "cwd": self.cwd,
            "env": dict(self.env),
            "timeout_seconds": self.timeout_seconds,
            "allowed_exit_codes": list(self.allowed_exit_codes),
            "inherit_env": self.inherit_env,
        }


@dataclass(slots=True)
class CommandResult:
    """Deterministic command execution outcome."""

    argv: tuple[str, ...]
    exit_code: int | None
    stdout: str
    stderr: str
    duration_ms: int = 0
    timed_out: bool = False
    error: str | None = None

    def __post_init__(self) -> None:
        self.argv = _as_non_empty_str_tuple(self.argv, "CommandResult.argv")
        if self.duration_ms < 0:
            _fail("CommandResult.duration_ms", "must be >= 0")
        if self.timed_out and self.exit_code is not None:
            _fail("CommandResult.exit_code", "must be None when timed_out is true")

    @property
    def combined_output(self) -> str:
        if self.stdout and self.stderr:
            return f"{self.stdout}\n{self.stderr}"
        return self.stdout or self.stderr

    def is_success(self, spec: CommandSpec | None = None) -> bool:
        if self.timed_out or self.error is not None or self.exit_code is None:
            return False
        if spec is None:
            return self.exit_code == 0
        return self.exit_code in spec.allowed_exit_codes

    def to_dict(self) -> dict[str, object]:
        return {
            "argv": list(self.argv),
            "exit_code": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "duration_ms": self.duration_ms,
            "timed_out": self.timed_out,
            "error": self.error,
        }


@runtime_checkable
class CommandExecutor(Protocol):
    """Pluggable async command execution interface."""

    async def run(self, spec: CommandSpec) -> CommandResult: ...


class LocalSubprocessExecutor(CommandExecutor):
    """Async local subprocess executor with deterministic capture/timeout behavior."""

    def __init__(
        self,
        *,
        default_timeout_seconds: float | None = None,
        max_output_chars: int | None = 200_000,
        redact: TextRedactor | None = None,
    ) -> None:
        self._default_timeout_seconds = _as_positive_float_or_none(
            default_timeout_seconds,
            "LocalSubprocessExecutor.default_timeout_seconds",
        )
        if max_output_chars is not None and max_output_chars <= 0:
            _fail("LocalSubprocessExecutor.max_output_chars", "must be > 0")
        self._max_output_chars = max_output_chars
        self._redact = redact if redact is not None else _identity_text_redactor

    async def run(self, spec: CommandSpec) -> CommandResult:
        started_ns = time.monotonic_ns()
        timeout = spec.resolved_timeout(self._default_timeout_seconds)

        try:
            process = await asyncio.create_subprocess_exec(
                *spec.argv,
                cwd=spec.cwd,
                env=spec.build_env(),
                stdin=(
                    asyncio.subprocess.PIPE
                    if spec.stdin_text is not None
                    else asyncio.subprocess.DEVNULL
                ),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            return CommandResult(
                argv=spec.argv,
                exit_code=None,
                stdout="",
                stderr="",
                duration_ms=_elapsed_ms(started_ns),
                error=self._redact(str(exc)),
            )

        stdin_bytes = spec.stdin_text.encode("utf-8") if spec.stdin_text is not None else None

        try:
            stdout_bytes, stderr_bytes = await _communicate_with_timeout(
                process=process,
                stdin_bytes=stdin_bytes,
                timeout_seconds=timeout,
            )
            timed_out = False
            error_text: str | None = None
            exit_code = process.returncode
        except _CommandTimeoutError as exc:
            stdout_bytes = exc.stdout
            stderr_bytes = exc.stderr
            timed_out = True
            timeout_value = timeout if timeout is not None else 0.0
            error_text = f"command timed out after {timeout_value:.3f}s"
            exit_code = None

        return CommandResult(
            argv=spec.argv,
            exit_code=exit_code,
            stdout=self._redact(
                _truncate_text(_normalize_output_text(stdout_bytes), self._max_output_chars)
            ),
            stderr=self._redact(
                _truncate_text(_normalize_output_text(stderr_bytes), self._max_output_chars)
            ),
            duration_ms=_elapsed_ms(started_ns),
            timed_out=timed_out,
            error=error_text,
        )


@dataclass(slots=True)
class _CommandTimeoutError(Exception):
    stdout: bytes
    stderr: bytes


async def _communicate_with_timeout(
    *,
    process: asyncio.subprocess.Process,
    stdin_bytes: bytes | None,
    timeout_seconds: float | None,
) -> tuple[bytes, bytes]:
    try:
        if timeout_seconds is None:
            return await process.communicate(stdin_bytes)
        return await asyncio.wait_for(process.communicate(stdin_bytes), timeout=timeout_seconds)
    except TimeoutError as exc:
        with suppress(ProcessLookupError):
            process.kill()
        stdout_bytes, stderr_bytes = await process.communicate()
        raise _CommandTimeoutError(stdout=stdout_bytes, stderr=stderr_bytes) from exc
    except asyncio.CancelledError:
        with suppress(ProcessLookupError):
            process.kill()
        await process.communicate()
        raise


def _elapsed_ms(started_ns: int) -> int:
    delta_ns = time.monotonic_ns() - started_ns
    if delta_ns < 0:
        return 0
    return delta_ns // 1_000_000


def _normalize_output_text(raw: bytes) -> str:
    text = raw.decode("utf-8", errors="replace")
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _truncate_text(text: str, max_chars: int | None) -> str:
    if max_chars is None or len(text) <= max_chars:
        return text
    omitted = len(text) - max_chars
    return f"{text[:max_chars]}\n...[truncated {omitted} chars]"


def _as_positive_float_or_none(value: object, path: str) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        _fail(path, f"expected number, got {type(value).__name__}")
    parsed = float(value)
    if not math.isfinite(parsed):
        _fail(path, "must be finite")
    if parsed <= 0.0:
        _fail(path, "must be > 0")
    return parsed


def _as_str(value: object, path: str) -> str:
    if not isinstance(value, str):
        _fail(path, f"expected string, got {type(value).__name__}")
    if not value.strip():
        _fail(path, "must not be empty")
    return value


def _as_non_empty_str_tuple(value: object, path: str) -> tuple[str, ...]:
    if not isinstance(value, Sequence) or isinstance(value, (str, bytes, bytearray)):
        _fail(path, f"expected sequence, got {type(value).__name__}")
    parsed = tuple(_as_str(item, f"{path}[{index}]") for index, item in enumerate(value))
    if not parsed:
        _fail(path, "must not be empty")
    return parsed


def _as_str_mapping(value: object, path: str) -> dict[str, str]:
    if not isinstance(value, Mapping):
        _fail(path, f"expected object, got {type(value).__name__}")
    if len(value) > _MAX_ENV_ENTRIES:
        _fail(path, f"contains too many entries (>{_MAX_ENV_ENTRIES})")
    parsed: dict[str, str] = {}
    for key, item in value.items():
        parsed_key = _as_str(key, f"{path}.<key>")
        if not isinstance(item, str):
            _fail(f"{path}.{parsed_key}", f"expected string, got {type(item).__name__}")
        parsed[parsed_key] = item
    return {key: parsed[key] for key in sorted(parsed)}


def _as_exit_codes(value: object, path: str) -> tuple[int, ...]:
    if not isinstance(value, Sequence) or isinstance(value, (str, bytes, bytearray)):
        _fail(path, f"expected sequence, got {type(value).__name__}")
    codes: set[int] = set()
    for index, item in enumerate(value):
        if isinstance(item, bool) or not isinstance(item, int):
            _fail(f"{path}[{index}]", f"expected integer, got {type(item).__name__}")
        codes.add(item)
    if not codes:
        _fail(path, "must not be empty")
    return tuple(sorted(codes))


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


__all__ = [
    "CommandExecutor",
    "CommandResult",
    "CommandSpec",
    "LocalSubprocessExecutor",
    "ScratchWorkspaceError",
    "TextRedactor",
    "ToolingUnavailableError",
    "VerificationInfrastructureError",
]
