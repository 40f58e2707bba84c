"""Aggregate quality signals over finished component outcomes."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import TYPE_CHECKING

from mapping_forge.domain.models import FailureKind, LoopState

if TYPE_CHECKING:
    from collections.abc import Iterable

    from mapping_forge.domain.models import ComponentOutcome


@dataclass(frozen=True, slots=True)
class OutcomeSummary:
    """Batch statistics computed from attempt records alone, without re-running anything."""

    total: int
    by_state: tuple[tuple[str, int], ...]
    attempts_to_success: tuple[tuple[int, int], ...]
    total_attempts: int
    content_defects: int
    generator_failures: int
    tooling_failures: int
    input_tokens: int
    output_tokens: int

    @property
    def accepted(self) -> int:
        return dict(self.by_state).get(LoopState.ACCEPTED.value, 0)

    def to_dict(self) -> dict[str, object]:
        return {
            "total": self.total,
            "by_state": dict(self.by_state),
            "attempts_to_success": {str(k): v for k, v in self.attempts_to_success},
            "total_attempts": self.total_attempts,
            "content_defects": self.content_defects,
            "generator_failures": self.generator_failures,
            "tooling_failures": self.tooling_failures,
            "usage": {"input_tokens": self.input_tokens, "output_tokens": self.output_tokens},
        }


def summarize_outcomes(outcomes: Iterable[ComponentOutcome]) -> OutcomeSummary:
    states: Counter[str] = Counter()
    successes: Counter[int] = Counter()
    failures: Counter[FailureKind] = Counter()
    total = 0
    total_attempts = 0
    input_tokens = 0
    output_tokens = 0

    for outcome in outcomes:
        total += 1
        states[outcome.state.value] += 1
        total_attempts += len(outcome.attempts)
        if outcome.accepted:
            successes[len(outcome.attempts)] += 1
        for attempt in outcome.attempts:
            failures[attempt.failure_kind] += 1
            if attempt.usage is not None:
                input_tokens += attempt.usage.input_tokens or 0
                output_tokens += attempt.usage.output_tokens or 0

    return OutcomeSummary(
        total=total,
        by_state=tuple(sorted(states.items())),
        attempts_to_success=tuple(sorted(successes.items())),
        total_attempts=total_attempts,
        content_defects=failures[FailureKind.CONTENT_DEFECT],
        generator_failures=failures[FailureKind.GENERATOR_FAILURE],
        tooling_failures=failures[FailureKind.TOOLING_UNAVAILABLE],
        input_tokens=input_tokens,
        output_tokens=output_tokens,
    )


__all__ = ["OutcomeSummary", "summarize_outcomes"]
