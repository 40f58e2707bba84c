"""
mapping-forge — unit tests for the two-tier validator

File: tests/unit/verification_plane/test_two_tier_pipeline.py

Purpose
- Validate that the structural tier runs only after a clean key-set tier and that
  infrastructure errors propagate.
"""

from __future__ import annotations

import pytest

from mapping_forge.domain.evidence import Evidence, VariantAxis
from mapping_forge.domain.models import (
    CandidateArtifact,
    TargetProfile,
    ValidationResult,
    ValidationTier,
)
from mapping_forge.verification_plane.checkers.base import ToolingUnavailableError
from mapping_forge.verification_plane.checkers.key_set_checker import KeySetChecker
from mapping_forge.verification_plane.pipeline import TwoTierValidator

EVIDENCE = Evidence(
    component_id="1:1",
    component_name="Button",
    variant_axes=(VariantAxis(name="Size", values=("Small", "Large")),),
)


class CountingStructural:
    def __init__(self, result: ValidationResult | Exception) -> None:
        self.result = result
        self.calls: list[tuple[str, TargetProfile]] = []

    async def run(self, candidate_text: str, profile: TargetProfile) -> ValidationResult:
        self.calls.append((candidate_text, profile))
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


class RecordingLogger:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, object]]] = []

    def info(self, event: str, **fields: object) -> None:
        self.events.append((event, fields))


def _validator(
    structural: CountingStructural | None,
    logger: RecordingLogger | None = None,
) -> TwoTierValidator:
    return TwoTierValidator(
        KeySetChecker(EVIDENCE),
        structural,  # type: ignore[arg-type]
        logger=logger or RecordingLogger(),
    )


@pytest.mark.asyncio
async def test_key_set_failure_short_circuits_structural_tier() -> None:
    structural = CountingStructural(ValidationResult.passed())
    logger = RecordingLogger()

    tiered = await _validator(structural, logger).validate(
        CandidateArtifact(text="figma.boolean('Size')")
    )

    assert not tiered.valid
    assert tiered.tier is ValidationTier.KEY_SET
    assert not tiered.structural_ran
    assert structural.calls == []
    assert logger.events == [
        ("structural_check_skipped", {"reason": "key_set_failed", "error_count": 1})
    ]


@pytest.mark.asyncio
async def test_clean_key_set_runs_structural_tier_once() -> None:
    structural = CountingStructural(ValidationResult.failed(["Line 2: bad"]))

    tiered = await _validator(structural).validate(
        CandidateArtifact(text="figma.enum('Size', {})", profile=TargetProfile.HTML)
    )

    assert tiered.errors == ("Line 2: bad",)
    assert tiered.tier is ValidationTier.STRUCTURAL
    assert tiered.structural_ran
    assert structural.calls == [("figma.enum('Size', {})", TargetProfile.HTML)]


@pytest.mark.asyncio
async def test_structural_disabled_uses_key_set_alone() -> None:
    validator = _validator(None)

    tiered = await validator.validate(CandidateArtifact(text="figma.enum('Size', {})"))

    assert not validator.structural_enabled
    assert tiered.valid
    assert tiered.tier is ValidationTier.KEY_SET


@pytest.mark.asyncio
async def test_infrastructure_errors_propagate() -> None:
    structural = CountingStructural(ToolingUnavailableError("missing"))

    with pytest.raises(ToolingUnavailableError, match="missing"):
        await _validator(structural).validate(CandidateArtifact(text="figma.enum('Size', {})"))


@pytest.mark.asyncio
async def test_on_tier_reports_each_tier_as_it_starts() -> None:
    started: list[ValidationTier] = []
    validator = _validator(CountingStructural(ValidationResult.passed()))

    for text in ("figma.enum('Size', {})", "figma.boolean('Size')"):
        await validator.validate(CandidateArtifact(text=text), on_tier=started.append)

    assert started == [ValidationTier.KEY_SET, ValidationTier.STRUCTURAL, ValidationTier.KEY_SET]


@pytest.mark.asyncio
async def test_blank_candidate_is_rejected_before_structural_tier() -> None:
    structural = CountingStructural(ValidationResult.passed())

    tiered = await _validator(structural).validate(CandidateArtifact(text="  \n"))

    assert tiered.errors == ("Generated code is empty or invalid",)
    assert tiered.tier is ValidationTier.KEY_SET
    assert structural.calls == []
