"""
mapping-forge — verification plane public API.

File: src/mapping_forge/verification_plane/__init__.py

Purpose
- Export the two validation tiers, the parser resolver and the tier pipeline.

Non-functional requirements
- Keep import-time behavior deterministic and lightweight.
"""

from mapping_forge.verification_plane.checkers import (
    ExpressionChecker,
    KeySetChecker,
    ScratchWorkspaceError,
    StructuralChecker,
    ToolingUnavailableError,
    VerificationInfrastructureError,
)
from mapping_forge.verification_plane.pipeline import TieredValidation, TwoTierValidator
from mapping_forge.verification_plane.tool_resolver import (
    FigmaCliResolver,
    ToolHandle,
    ToolResolver,
    ToolUnavailable,
)

__all__ = [
    "ExpressionChecker",
    "FigmaCliResolver",
    "KeySetChecker",
    "ScratchWorkspaceError",
    "StructuralChecker",
    "TieredValidation",
    "ToolHandle",
    "ToolResolver",
    "ToolUnavailable",
    "ToolingUnavailableError",
    "TwoTierValidator",
    "VerificationInfrastructureError",
]
