"""Dataclass records exchanged between the verification and control planes."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import PurePath
from typing import NoReturn

from mapping_forge.constants import OUTCOME_SCHEMA_VERSION


class TargetProfile(StrEnum):
    """Closed set of output profiles; each selects a structural parser mode."""

    REACT = "react"
    HTML = "html"

    @property
    def file_extension(self) -> str:
        return _PROFILE_EXTENSIONS[self]

    @property
    def fence_language(self) -> str:
        return _PROFILE_FENCES[self]

    @classmethod
    def from_filename(cls, filename: str) -> TargetProfile:
        name = PurePath(filename).name
        # Longest suffix first so ".figma.tsx" never matches ".figma.ts".
        for profile in sorted(cls, key=lambda item: -len(item.file_extension)):
            if name.endswith(profile.file_extension):
                return profile
        _fail("TargetProfile.from_filename", f"cannot infer profile from {filename!r}")


_PROFILE_EXTENSIONS: dict[TargetProfile, str] = {
    TargetProfile.REACT: ".figma.tsx",
    TargetProfile.HTML: ".figma.ts",
}
_PROFILE_FENCES: dict[TargetProfile, str] = {
    TargetProfile.REACT: "tsx",
    TargetProfile.HTML: "ts",
}


class ValidationTier(StrEnum):
    KEY_SET = "key_set"
    STRUCTURAL = "structural"


class FailureKind(StrEnum):
    """Why an attempt did not produce an accepted artifact."""

    NONE = "none"
    CONTENT_DEFECT = "content_defect"
    GENERATOR_FAILURE = "generator_failure"
    TOOLING_UNAVAILABLE = "tooling_unavailable"


class LoopState(StrEnum):
    DRAFTING = "drafting"
    VALIDATING_TIER1 = "validating_tier1"
    VALIDATING_TIER2 = "validating_tier2"
    REPAIRING = "repairing"
    ACCEPTED = "accepted"
    EXHAUSTED = "exhausted"
    ABORTED = "aborted"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset(
    {LoopState.ACCEPTED, LoopState.EXHAUSTED, LoopState.ABORTED, LoopState.CANCELLED}
)


@dataclass(frozen=True, slots=True)
class CandidateArtifact:
    """Generated source text plus the profile it targets. Never mutated."""

    text: str
    profile: TargetProfile = TargetProfile.REACT

    def __post_init__(self) -> None:
        if not isinstance(self.text, str):
            _fail("CandidateArtifact.text", f"expected string, got {type(self.text).__name__}")
        object.__setattr__(self, "profile", TargetProfile(self.profile))


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Outcome of one validation tier. ``valid`` holds exactly when ``errors`` is empty."""

    valid: bool
    errors: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "errors", tuple(self.errors))
        if self.valid and self.errors:
            _fail("ValidationResult.errors", "must be empty when valid is true")
        if not self.valid and not self.errors:
            _fail("ValidationResult.errors", "must not be empty when valid is false")

    @classmethod
    def passed(cls) -> ValidationResult:
        return cls(valid=True)

    @classmethod
    def failed(cls, errors: Sequence[str]) -> ValidationResult:
        return cls(valid=False, errors=tuple(errors))

    @classmethod
    def from_errors(cls, errors: Sequence[str]) -> ValidationResult:
        return cls.failed(errors) if errors else cls.passed()

    def to_dict(self) -> dict[str, object]:
        return {"valid": self.valid, "errors": list(self.errors)}


@dataclass(frozen=True, slots=True)
class TokenUsage:
    input_tokens: int | None = None
    output_tokens: int | None = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, object] | None) -> TokenUsage | None:
        if raw is None:
            return None
        return cls(
            input_tokens=_optional_count(raw.get("input_tokens"), "usage.input_tokens"),
            output_tokens=_optional_count(raw.get("output_tokens"), "usage.output_tokens"),
        )

    def to_dict(self) -> dict[str, int | None]:
        return {"input_tokens": self.input_tokens, "output_tokens": self.output_tokens}


@dataclass(frozen=True, slots=True)
class AttemptRecord:
    """Audit entry for one loop iteration, kept regardless of outcome."""

    attempt_number: int
    valid: bool
    errors: tuple[str, ...] = ()
    usage: TokenUsage | None = None
    failure_kind: FailureKind = FailureKind.NONE
    tier: ValidationTier | None = None

    def __post_init__(self) -> None:
        if isinstance(self.attempt_number, bool) or self.attempt_number < 1:
            _fail("AttemptRecord.attempt_number", "must be >= 1")
        object.__setattr__(self, "errors", tuple(self.errors))
        object.__setattr__(self, "failure_kind", FailureKind(self.failure_kind))
        if self.valid and self.failure_kind is not FailureKind.NONE:
            _fail("AttemptRecord.failure_kind", "must be 'none' for a valid attempt")
        if not self.valid and self.failure_kind is FailureKind.NONE:
            _fail("AttemptRecord.failure_kind", "must be set for an invalid attempt")

    def to_dict(self) -> dict[str, object]:
        return {
            "attempt": self.attempt_number,
            "usage": self.usage.to_dict() if self.usage is not None else None,
            "valid": self.valid,
            "errors": list(self.errors),
            "failure_kind": self.failure_kind.value,
            "tier": self.tier.value if self.tier is not None else None,
        }


@dataclass(frozen=True, slots=True)
class ComponentOutcome:
    """Terminal result of one component's repair loop, handed to the caller."""

    component_id: str
    component_name: str
    accepted: bool
    final_artifact: str | None
    errors: tuple[str, ...]
    attempts: tuple[AttemptRecord, ...]
    state: LoopState
    profile: TargetProfile = TargetProfile.REACT
    metadata: Mapping[str, object] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "errors", tuple(self.errors))
        object.__setattr__(self, "attempts", tuple(self.attempts))
        object.__setattr__(self, "state", LoopState(self.state))
        if not self.state.is_terminal:
            _fail("ComponentOutcome.state", f"must be terminal, got {self.state.value}")
        if self.accepted != (self.state is LoopState.ACCEPTED):
            _fail("ComponentOutcome.accepted", "must match state == accepted")
        if self.accepted and (not self.attempts or not self.attempts[-1].valid):
            _fail("ComponentOutcome.attempts", "last attempt must be valid when accepted")

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)

    @property
    def generator_failures(self) -> int:
        return sum(
            1 for item in self.attempts if item.failure_kind is FailureKind.GENERATOR_FAILURE
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "schema_version": OUTCOME_SCHEMA_VERSION,
            "component_id": self.component_id,
            "component_name": self.component_name,
            "accepted": self.accepted,
            "state": self.state.value,
            "profile": self.profile.value,
            "final_artifact": self.final_artifact,
            "errors": list(self.errors),
            "attempts": [attempt.to_dict() for attempt in self.attempts],
        }


def _optional_count(value: object, path: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        _fail(path, "expected non-negative integer")
    return value


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


__all__ = [
    "AttemptRecord",
    "CandidateArtifact",
    "ComponentOutcome",
    "FailureKind",
    "LoopState",
    "TargetProfile",
    "TokenUsage",
    "ValidationResult",
    "ValidationTier",
]
