"""Two-tier validation: cheap key-set scan first, structural parser only on a clean scan."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog

from mapping_forge.domain.models import ValidationResult, ValidationTier

if TYPE_CHECKING:
    from collections.abc import Callable

    from mapping_forge.domain.models import CandidateArtifact
    from mapping_forge.verification_plane.checkers.key_set_checker import KeySetChecker
    from mapping_forge.verification_plane.checkers.structural_checker import StructuralChecker


@dataclass(frozen=True, slots=True)
class TieredValidation:
    """Validation outcome plus the last tier that produced it."""

    result: ValidationResult
    tier: ValidationTier
    structural_ran: bool

    @property
    def valid(self) -> bool:
        return self.result.valid

    @property
    def errors(self) -> tuple[str, ...]:
        return self.result.errors


class TwoTierValidator:
    """Short-circuiting AND of the key-set and structural tiers.

    ``structural`` may be ``None`` for offline runs, in which case the key-set
    tier alone decides. Infrastructure errors from the structural tier
    propagate unchanged.
    """

    def __init__(
        self,
        key_set: KeySetChecker,
        structural: StructuralChecker | None,
        *,
        logger: Any | None = None,
    ) -> None:
        self._key_set = key_set
        self._structural = structural
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def structural_enabled(self) -> bool:
        return self._structural is not None

    async def validate(
        self,
        candidate: CandidateArtifact,
        *,
        on_tier: Callable[[ValidationTier], None] | None = None,
    ) -> TieredValidation:
        """Validate ``candidate``; ``on_tier`` is called as each tier starts."""

        if on_tier is not None:
            on_tier(ValidationTier.KEY_SET)
        tier1 = self._key_set.check(candidate.text)
        if not tier1.valid or self._structural is None:
            if not tier1.valid:
                self._logger.info(
                    "structural_check_skipped",
                    reason="key_set_failed",
                    error_count=len(tier1.errors),
                )
            return TieredValidation(result=tier1, tier=ValidationTier.KEY_SET, structural_ran=False)

        if on_tier is not None:
            on_tier(ValidationTier.STRUCTURAL)
        tier2 = await self._structural.run(candidate.text, candidate.profile)
        return TieredValidation(result=tier2, tier=ValidationTier.STRUCTURAL, structural_ran=True)


__all__ = ["TieredValidation", "TwoTierValidator"]
