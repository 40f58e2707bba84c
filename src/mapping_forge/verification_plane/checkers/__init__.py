"""
mapping-forge — checkers

Purpose
- Tier 1 (key-set, optional expression lint) and Tier 2 (structural parser)
  validators plus the command plumbing they share.
"""

from mapping_forge.verification_plane.checkers.base import (
    CommandExecutor,
    CommandResult,
    CommandSpec,
    LocalSubprocessExecutor,
    ScratchWorkspaceError,
    ToolingUnavailableError,
    VerificationInfrastructureError,
)
from mapping_forge.verification_plane.checkers.expression_checker import ExpressionChecker
from mapping_forge.verification_plane.checkers.key_set_checker import (
    HelperInvocation,
    HelperKind,
    KeySetChecker,
    KeySets,
    build_key_sets,
    extract_helper_invocations,
    validate_invocations,
)
from mapping_forge.verification_plane.checkers.structural_checker import (
    StructuralChecker,
    classify_result,
    parse_diagnostics,
)

__all__ = [
    "CommandExecutor",
    "CommandResult",
    "CommandSpec",
    "ExpressionChecker",
    "HelperInvocation",
    "HelperKind",
    "KeySetChecker",
    "KeySets",
    "LocalSubprocessExecutor",
    "ScratchWorkspaceError",
    "StructuralChecker",
    "ToolingUnavailableError",
    "VerificationInfrastructureError",
    "build_key_sets",
    "classify_result",
    "extract_helper_invocations",
    "parse_diagnostics",
    "validate_invocations",
]
