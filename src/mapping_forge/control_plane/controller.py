"""
Generation-validation-repair loop.

One component at a time:
- attempt 1 sends the initial instruction; later attempts send a repair
  instruction built from the most recent candidate and its errors
- each candidate goes through the key-set tier, and through the structural
  tier only when the key-set tier is clean
- every attempt is recorded; the loop stops on the first valid candidate or
  after ``attempt_budget + 1`` attempts

Generator failures consume an attempt and are tagged separately. A missing
structural parser or unusable scratch area ends the component in ``aborted``
without retrying. Cancellation is honored between attempts only.

Independent components run concurrently through a bounded worker pool.
Decisions are logged through ``structlog``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import structlog

from mapping_forge.constants import (
    DEFAULT_ATTEMPT_BUDGET,
    DEFAULT_HELPER_NAMESPACE,
    DEFAULT_MAX_WORKERS,
)
from mapping_forge.control_plane.feedback import RepairInstructionBuilder
from mapping_forge.domain.models import (
    AttemptRecord,
    CandidateArtifact,
    ComponentOutcome,
    FailureKind,
    LoopState,
    TargetProfile,
    ValidationTier,
)
from mapping_forge.observability.logging import correlation_scope
from mapping_forge.synthesis_plane.generator import (
    CallableGenerator,
    Generator,
    GeneratorError,
    strip_formatting_noise,
)
from mapping_forge.utils.concurrency import gather_ordered
from mapping_forge.verification_plane.checkers.base import VerificationInfrastructureError
from mapping_forge.verification_plane.checkers.expression_checker import ExpressionChecker
from mapping_forge.verification_plane.checkers.key_set_checker import KeySetChecker
from mapping_forge.verification_plane.checkers.structural_checker import StructuralChecker
from mapping_forge.verification_plane.pipeline import TwoTierValidator
from mapping_forge.verification_plane.tool_resolver import FigmaCliResolver

if TYPE_CHECKING:
    from mapping_forge.domain.evidence import Evidence
    from mapping_forge.domain.models import TokenUsage
    from mapping_forge.utils.concurrency import CancellationToken
    from mapping_forge.verification_plane.tool_resolver import ToolResolver

GeneratorLike = Generator | Callable[[str], object]

_TIER_STATES: dict[ValidationTier, LoopState] = {
    ValidationTier.KEY_SET: LoopState.VALIDATING_TIER1,
    ValidationTier.STRUCTURAL: LoopState.VALIDATING_TIER2,
}


@dataclass(frozen=True, slots=True)
class ComponentJob:
    """One unit of batch work."""

    evidence: Evidence
    initial_instruction: str
    generator: GeneratorLike | None = None
    profile: TargetProfile | None = None
    attempt_budget: int | None = None


@dataclass(slots=True)
class _LoopMemory:
    """Per-component mutable state; never shared between components."""

    component_id: str
    state: LoopState = LoopState.DRAFTING
    attempts: list[AttemptRecord] = field(default_factory=list)
    last_text: str | None = None
    last_errors: tuple[str, ...] = ()
    repair_source: tuple[str, tuple[str, ...]] | None = None


class RepairLoopController:
    """Drives the bounded attempt loop for one or many components."""

    def __init__(
        self,
        *,
        structural: StructuralChecker | None,
        attempt_budget: int = DEFAULT_ATTEMPT_BUDGET,
        profile: TargetProfile = TargetProfile.REACT,
        namespace: str = DEFAULT_HELPER_NAMESPACE,
        expression_lint: bool = False,
        repair_builder: RepairInstructionBuilder | None = None,
        logger: Any | None = None,
    ) -> None:
        self._structural = structural
        self._attempt_budget = _validate_budget(attempt_budget)
        self._profile = TargetProfile(profile)
        self._namespace = namespace
        self._expression_lint = expression_lint
        self._repair_builder = repair_builder or RepairInstructionBuilder(namespace=namespace)
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def attempt_budget(self) -> int:
        return self._attempt_budget

    async def run_component(
        self,
        evidence: Evidence,
        initial_instruction: str,
        generator: GeneratorLike,
        *,
        attempt_budget: int | None = None,
        profile: TargetProfile | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> ComponentOutcome:
        budget = (
            self._attempt_budget if attempt_budget is None else _validate_budget(attempt_budget)
        )
        resolved_profile = self._profile if profile is None else TargetProfile(profile)
        active_generator = as_generator(generator)
        validator = self._validator_for(evidence)
        memory = _LoopMemory(component_id=evidence.component_id)

        with correlation_scope(component_id=evidence.component_id):
            for attempt_number in range(1, budget + 2):
                if cancel_token is not None and cancel_token.is_cancelled:
                    self._enter(memory, LoopState.CANCELLED)
                    break

                await self._run_attempt(
                    attempt_number=attempt_number,
                    evidence=evidence,
                    initial_instruction=initial_instruction,
                    generator=active_generator,
                    validator=validator,
                    profile=resolved_profile,
                    memory=memory,
                )
                if memory.state in (LoopState.ACCEPTED, LoopState.ABORTED):
                    break
            else:
                self._enter(memory, LoopState.EXHAUSTED)

            state = memory.state
            outcome = ComponentOutcome(
                component_id=evidence.component_id,
                component_name=evidence.component_name,
                accepted=state is LoopState.ACCEPTED,
                final_artifact=memory.last_text,
                errors=() if state is LoopState.ACCEPTED else memory.last_errors,
                attempts=tuple(memory.attempts),
                state=state,
                profile=resolved_profile,
            )
            self._logger.info(
                "repair_loop_finished",
                component_id=evidence.component_id,
                component_name=evidence.component_name,
                state=state.value,
                attempt_count=len(memory.attempts),
                attempt_budget=budget,
                generator_failures=outcome.generator_failures,
            )
        return outcome

    async def run_components(
        self,
        jobs: Sequence[ComponentJob],
        *,
        generator: GeneratorLike | None = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
        cancel_token: CancellationToken | None = None,
    ) -> list[ComponentOutcome]:
        """Run independent components concurrently; outcomes keep job order.

        One component's tooling failure ends only that component.
        """

        coroutines = []
        for index, job in enumerate(jobs):
            job_generator = job.generator if job.generator is not None else generator
            if job_generator is None:
                raise ValueError(f"jobs[{index}]: no generator supplied")
            coroutines.append(
                self.run_component(
                    job.evidence,
                    job.initial_instruction,
                    job_generator,
                    attempt_budget=job.attempt_budget,
                    profile=job.profile,
                    cancel_token=cancel_token,
                )
            )
        return await gather_ordered(coroutines, max_concurrency=max_workers)

    def _validator_for(self, evidence: Evidence) -> TwoTierValidator:
        expression_checker = (
            ExpressionChecker(namespace=self._namespace) if self._expression_lint else None
        )
        key_set = KeySetChecker(
            evidence,
            namespace=self._namespace,
            expression_checker=expression_checker,
        )
        return TwoTierValidator(key_set, self._structural, logger=self._logger)

    async def _run_attempt(
        self,
        *,
        attempt_number: int,
        evidence: Evidence,
        initial_instruction: str,
        generator: Generator,
        validator: TwoTierValidator,
        profile: TargetProfile,
        memory: _LoopMemory,
    ) -> None:
        if memory.state is not LoopState.DRAFTING:
            self._enter(memory, LoopState.DRAFTING)
        instruction = self._instruction_for(
            initial_instruction=initial_instruction,
            evidence=evidence,
            profile=profile,
            memory=memory,
        )

        try:
            response = await generator.generate(instruction)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if isinstance(exc, GeneratorError):
                detail = exc.detail
            else:
                detail = f"{type(exc).__name__}: {exc}"
            error = f"Generator error: {detail}"
            self._record(
                memory,
                AttemptRecord(
                    attempt_number=attempt_number,
                    valid=False,
                    errors=(error,),
                    failure_kind=FailureKind.GENERATOR_FAILURE,
                ),
                evidence=evidence,
            )
            memory.last_errors = (error,)
            self._enter(memory, LoopState.REPAIRING)
            return

        text = strip_formatting_noise(response.text)
        memory.last_text = text
        candidate = CandidateArtifact(text=text, profile=profile)

        try:
            tiered = await validator.validate(
                candidate,
                on_tier=lambda tier: self._enter(memory, _TIER_STATES[tier]),
            )
        except VerificationInfrastructureError as exc:
            error = f"Tooling unavailable: {exc}"
            self._record(
                memory,
                AttemptRecord(
                    attempt_number=attempt_number,
                    valid=False,
                    errors=(error,),
                    usage=response.usage,
                    failure_kind=FailureKind.TOOLING_UNAVAILABLE,
                    tier=ValidationTier.STRUCTURAL,
                ),
                evidence=evidence,
            )
            memory.last_errors = (error,)
            self._enter(memory, LoopState.ABORTED)
            return

        self._record(
            memory,
            _attempt_from_validation(attempt_number, tiered.errors, tiered.tier, response.usage),
            evidence=evidence,
        )
        if tiered.valid:
            self._enter(memory, LoopState.ACCEPTED)
            return

        memory.last_errors = tiered.errors
        memory.repair_source = (text, tiered.errors)
        self._enter(memory, LoopState.REPAIRING)

    def _instruction_for(
        self,
        *,
        initial_instruction: str,
        evidence: Evidence,
        profile: TargetProfile,
        memory: _LoopMemory,
    ) -> str:
        if memory.repair_source is None:
            return initial_instruction
        previous_text, previous_errors = memory.repair_source
        return self._repair_builder.build(
            initial_instruction=initial_instruction,
            previous_candidate=previous_text,
            errors=previous_errors,
            evidence=evidence,
            profile=profile,
        ).text

    def _enter(self, memory: _LoopMemory, state: LoopState) -> None:
        previous = memory.state
        memory.state = state
        self._logger.debug(
            "repair_loop_state",
            component_id=memory.component_id,
            from_state=previous.value,
            to_state=state.value,
        )

    def _record(self, memory: _LoopMemory, record: AttemptRecord, *, evidence: Evidence) -> None:
        memory.attempts.append(record)
        self._logger.info(
            "repair_loop_attempt",
            component_id=evidence.component_id,
            attempt_number=record.attempt_number,
            valid=record.valid,
            failure_kind=record.failure_kind.value,
            tier=record.tier.value if record.tier is not None else None,
            error_count=len(record.errors),
        )


def as_generator(generator: GeneratorLike) -> Generator:
    """Accept a :class:`Generator` or a plain ``instruction -> text`` callable."""

    if isinstance(generator, Generator):
        return generator
    if callable(generator):
        name = getattr(generator, "__name__", "callable")
        return CallableGenerator(generator, name=name)
    raise TypeError(f"unsupported generator type {type(generator).__name__}")


async def run_component(
    evidence: Evidence,
    initial_instruction: str,
    generator: GeneratorLike,
    attempt_budget: int = DEFAULT_ATTEMPT_BUDGET,
    *,
    profile: TargetProfile = TargetProfile.REACT,
    structural: StructuralChecker | None = None,
    resolver: ToolResolver | None = None,
    structural_enabled: bool = True,
    cancel_token: CancellationToken | None = None,
) -> ComponentOutcome:
    """One-shot wrapper around :class:`RepairLoopController`.

    Without an explicit ``structural`` checker, the default CLI resolver is used
    unless ``structural_enabled`` is false.
    """

    if structural is None and structural_enabled:
        structural = StructuralChecker(resolver if resolver is not None else FigmaCliResolver())
    controller = RepairLoopController(
        structural=structural,
        attempt_budget=attempt_budget,
        profile=profile,
    )
    return await controller.run_component(
        evidence,
        initial_instruction,
        generator,
        cancel_token=cancel_token,
    )


def _attempt_from_validation(
    attempt_number: int,
    errors: tuple[str, ...],
    tier: ValidationTier,
    usage: TokenUsage | None,
) -> AttemptRecord:
    return AttemptRecord(
        attempt_number=attempt_number,
        valid=not errors,
        errors=errors,
        usage=usage,
        failure_kind=FailureKind.CONTENT_DEFECT if errors else FailureKind.NONE,
        tier=tier,
    )


def _validate_budget(value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"attempt_budget must be an integer, got {type(value).__name__}")
    if value < 0:
        raise ValueError("attempt_budget must be >= 0")
    return value


__all__ = [
    "ComponentJob",
    "GeneratorLike",
    "RepairLoopController",
    "as_generator",
    "run_component",
]
