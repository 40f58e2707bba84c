"""Domain types shared across planes: evidence, candidates, validation and attempt records."""

from mapping_forge.domain.evidence import (
    Evidence,
    EvidenceLoadError,
    PropertyKind,
    ScalarProperty,
    VariantAxis,
    is_boolean_axis,
    load_evidence_file,
    normalize_key,
)
from mapping_forge.domain.models import (
    AttemptRecord,
    CandidateArtifact,
    ComponentOutcome,
    FailureKind,
    LoopState,
    TargetProfile,
    TokenUsage,
    ValidationResult,
    ValidationTier,
)

__all__ = [
    "AttemptRecord",
    "CandidateArtifact",
    "ComponentOutcome",
    "Evidence",
    "EvidenceLoadError",
    "FailureKind",
    "LoopState",
    "PropertyKind",
    "ScalarProperty",
    "TargetProfile",
    "TokenUsage",
    "ValidationResult",
    "ValidationTier",
    "VariantAxis",
    "is_boolean_axis",
    "load_evidence_file",
    "normalize_key",
]
