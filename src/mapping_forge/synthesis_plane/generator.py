"""
mapping-forge — generator collaborators

File: src/mapping_forge/synthesis_plane/generator.py

Purpose
- Black-box boundary to whatever produces candidate text (an LLM agent, a
  script, a fixture). The repair loop only sees ``instruction -> response``.
- Normalized error taxonomy so generator failures are never confused with
  content defects.
- Removal of incidental formatting (markdown fences, surrounding prose).

Functional requirements
- Adapters accept sync or async callables and external commands.
- Generator errors carry a machine-readable ``code`` and a ``retryable`` flag.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import re
import shlex
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Final, Protocol, TypeAlias, runtime_checkable

from mapping_forge.domain.models import TokenUsage
from mapping_forge.utils.concurrency import run_with_timeout
from mapping_forge.verification_plane.checkers.base import (
    CommandExecutor,
    CommandSpec,
    LocalSubprocessExecutor,
)

_LEADING_FENCE_RE: Final[re.Pattern[str]] = re.compile(r"^```[\w.+-]*[ \t]*\n?")
_TRAILING_FENCE_RE: Final[re.Pattern[str]] = re.compile(r"\n?```\s*$")
_EMBEDDED_FENCE_RE: Final[re.Pattern[str]] = re.compile(
    r"```[\w.+-]*[ \t]*\n(?P<body>[\s\S]*?)\n?```"
)
_MAX_DETAIL_CHARS = 2000


class GeneratorError(RuntimeError):
    """Normalized generator failure with deterministic machine-readable fields."""

    def __init__(
        self,
        *,
        generator: str,
        code: str,
        detail: str,
        retryable: bool = True,
    ) -> None:
        self.generator = generator
        self.code = code
        self.detail = _normalize_detail(detail)
        self.retryable = bool(retryable)
        super().__init__(
            f"generator={self.generator} code={self.code} "
            f"retryable={str(self.retryable).lower()} detail={self.detail}"
        )


class GeneratorUnavailableError(GeneratorError):
    """The generator could not be reached or started."""

    def __init__(self, *, generator: str, detail: str) -> None:
        super().__init__(generator=generator, code="unavailable", detail=detail)


class GeneratorTimeoutError(GeneratorError):
    def __init__(self, *, generator: str, detail: str) -> None:
        super().__init__(generator=generator, code="timeout", detail=detail)


class GeneratorResponseError(GeneratorError):
    """The generator answered with something that is not candidate text."""

    def __init__(self, *, generator: str, detail: str) -> None:
        super().__init__(generator=generator, code="response_invalid", detail=detail)


@dataclass(frozen=True, slots=True)
class GeneratorResponse:
    text: str
    usage: TokenUsage | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.text, str):
            raise TypeError("GeneratorResponse.text must be a string")

    @classmethod
    def coerce(cls, raw: object, *, generator: str) -> GeneratorResponse:
        """Accept ``str``, ``GeneratorResponse`` or a ``{text, usage}`` mapping."""

        if isinstance(raw, GeneratorResponse):
            return raw
        if isinstance(raw, str):
            return cls(text=raw)
        if isinstance(raw, Mapping):
            text = raw.get("text", raw.get("code"))
            if not isinstance(text, str):
                raise GeneratorResponseError(
                    generator=generator,
                    detail="response mapping has no string 'text' field",
                )
            usage_raw = raw.get("usage")
            try:
                usage = TokenUsage.from_mapping(
                    usage_raw if isinstance(usage_raw, Mapping) else None
                )
            except ValueError as exc:
                raise GeneratorResponseError(generator=generator, detail=str(exc)) from exc
            return cls(text=text, usage=usage)
        raise GeneratorResponseError(
            generator=generator,
            detail=f"unsupported response type {type(raw).__name__}",
        )


@runtime_checkable
class Generator(Protocol):
    """Anything that turns an instruction into candidate text."""

    name: str

    async def generate(self, instruction: str) -> GeneratorResponse: ...


GeneratorFn: TypeAlias = Callable[[str], object]


class CallableGenerator:
    """Adapts a plain sync or async function into a :class:`Generator`."""

    def __init__(
        self,
        fn: GeneratorFn,
        *,
        name: str = "callable",
        timeout_seconds: float | None = None,
    ) -> None:
        self._fn = fn
        self.name = name
        self._timeout_seconds = timeout_seconds

    async def generate(self, instruction: str) -> GeneratorResponse:
        try:
            raw = await self._invoke(instruction)
        except GeneratorError:
            raise
        except TimeoutError as exc:
            raise GeneratorTimeoutError(generator=self.name, detail=str(exc)) from exc
        except (asyncio.CancelledError, KeyboardInterrupt):
            raise
        except Exception as exc:
            raise GeneratorUnavailableError(
                generator=self.name,
                detail=f"{type(exc).__name__}: {exc}",
            ) from exc
        return GeneratorResponse.coerce(raw, generator=self.name)

    async def _invoke(self, instruction: str) -> object:
        if inspect.iscoroutinefunction(self._fn):
            call: Awaitable[object] = self._fn(instruction)
        else:
            call = asyncio.to_thread(self._fn, instruction)
        if self._timeout_seconds is None:
            result = await call
        else:
            result = await run_with_timeout(call, self._timeout_seconds)
        if inspect.isawaitable(result):
            result = await result
        return result


class CommandGenerator:
    """Runs an external command with the instruction on stdin; stdout is the candidate.

    With ``output_format="json"`` stdout must be a ``{"text": ..., "usage": ...}``
    object, which lets agent wrappers report token usage.
    """

    def __init__(
        self,
        command: str | Sequence[str],
        *,
        executor: CommandExecutor | None = None,
        timeout_seconds: float | None = None,
        cwd: str | None = None,
        output_format: str = "text",
        name: str | None = None,
    ) -> None:
        argv = tuple(shlex.split(command)) if isinstance(command, str) else tuple(command)
        if not argv:
            raise ValueError("command must not be empty")
        if output_format not in {"text", "json"}:
            raise ValueError("output_format must be 'text' or 'json'")
        self._argv = argv
        self._executor = executor if executor is not None else LocalSubprocessExecutor()
        self._timeout_seconds = timeout_seconds
        self._cwd = cwd
        self._output_format = output_format
        self.name = name or argv[0]

    async def generate(self, instruction: str) -> GeneratorResponse:
        result = await self._executor.run(
            CommandSpec(
                argv=self._argv,
                cwd=self._cwd,
                stdin_text=instruction,
                timeout_seconds=self._timeout_seconds,
            )
        )
        if result.timed_out:
            raise GeneratorTimeoutError(generator=self.name, detail=result.error or "timed out")
        if result.exit_code is None:
            raise GeneratorUnavailableError(
                generator=self.name,
                detail=result.error or "command could not be started",
            )
        if result.exit_code != 0:
            raise GeneratorError(
                generator=self.name,
                code="exit_nonzero",
                detail=f"exit code {result.exit_code}: {result.stderr.strip()}",
            )
        if self._output_format == "json":
            try:
                payload = json.loads(result.stdout)
            except json.JSONDecodeError as exc:
                raise GeneratorResponseError(
                    generator=self.name,
                    detail=f"stdout is not valid JSON: {exc}",
                ) from exc
            return GeneratorResponse.coerce(payload, generator=self.name)
        return GeneratorResponse(text=result.stdout)


def strip_formatting_noise(text: str) -> str:
    """Remove markdown fences and surrounding prose from generator output.

    A response that starts with a fence loses its opening and closing fence
    lines. Otherwise the first fenced block wins when one is embedded in prose.
    Anything else is returned trimmed.
    """

    trimmed = text.strip()
    if trimmed.startswith("```"):
        body = _LEADING_FENCE_RE.sub("", trimmed, count=1)
        return _TRAILING_FENCE_RE.sub("", body, count=1).strip()
    embedded = _EMBEDDED_FENCE_RE.search(trimmed)
    if embedded is not None:
        return embedded.group("body").strip()
    return trimmed


def _normalize_detail(detail: str) -> str:
    collapsed = " ".join(str(detail).split())
    if len(collapsed) > _MAX_DETAIL_CHARS:
        return f"{collapsed[:_MAX_DETAIL_CHARS]}..."
    return collapsed or "unspecified"


__all__ = [
    "CallableGenerator",
    "CommandGenerator",
    "Generator",
    "GeneratorError",
    "GeneratorFn",
    "GeneratorResponse",
    "GeneratorResponseError",
    "GeneratorTimeoutError",
    "GeneratorUnavailableError",
    "strip_formatting_noise",
]
