"""
Control-plane instructions.

The first attempt gets the caller instruction plus the component data as JSON.
After a failed attempt the generator gets:
- the original instruction, unchanged
- every error string from the failed tier, verbatim
- the full previous candidate
- a standing reminder of which evidence keys each helper may use

Generator calls are independent, so the reminder is restated on every retry.
Output is deterministic for identical inputs.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final

from mapping_forge.constants import DEFAULT_HELPER_NAMESPACE
from mapping_forge.domain.evidence import PropertyKind
from mapping_forge.domain.models import TargetProfile

if TYPE_CHECKING:
    from mapping_forge.domain.evidence import Evidence

SEPARATOR: Final[str] = "\n\n---\n\n"
REPAIR_HEADER: Final[str] = "The previous output had validation errors. Please fix them."
_NONE_MARKER: Final[str] = "(none)"
_DECLARED_TYPES: Final[dict[PropertyKind, str]] = {
    PropertyKind.BOOLEAN: "BOOLEAN",
    PropertyKind.TEXT: "TEXT",
    PropertyKind.INSTANCE_REFERENCE: "INSTANCE_SWAP",
}


@dataclass(frozen=True, slots=True)
class RepairInstruction:
    text: str
    error_count: int
    previous_length: int


def render_component_data(evidence: Evidence) -> str:
    """Evidence as the scanner-shaped JSON block embedded in first-attempt instructions."""

    payload = {
        "componentName": evidence.component_name,
        "variantProperties": {axis.name: list(axis.values) for axis in evidence.variant_axes},
        "componentProperties": [
            {"name": prop.name, "type": _DECLARED_TYPES[prop.kind]}
            for prop in evidence.scalar_properties
        ],
        "textLayers": list(evidence.text_slots),
        "slotLayers": list(evidence.content_slots),
    }
    return "\n".join(
        [
            "## Figma Component Data",
            "",
            "```json",
            json.dumps(payload, indent=2, ensure_ascii=False),
            "```",
        ]
    )


def build_initial_instruction(
    base_instruction: str,
    evidence: Evidence,
    *,
    profile: TargetProfile = TargetProfile.REACT,
) -> str:
    """First-attempt instruction: caller text, component data, output reminder."""

    profile = TargetProfile(profile)
    return "\n\n".join(
        [
            base_instruction.rstrip(),
            render_component_data(evidence),
            f"Now generate the {profile.file_extension} file. "
            "Output ONLY the code, no markdown blocks.",
        ]
    )


def render_allowed_keys(evidence: Evidence, *, namespace: str = DEFAULT_HELPER_NAMESPACE) -> str:
    """Human-readable reminder of legal keys per helper, using verbatim names."""

    variant_names = [axis.name for axis in evidence.variant_axes]
    boolean_names = [prop.name for prop in evidence.properties_of(PropertyKind.BOOLEAN)]
    boolean_names.extend(axis.name for axis in evidence.variant_axes if axis.is_boolean)
    text_names = [prop.name for prop in evidence.properties_of(PropertyKind.TEXT)]
    instance_names = [
        prop.name for prop in evidence.properties_of(PropertyKind.INSTANCE_REFERENCE)
    ]

    ns = namespace
    rows = (
        (f"{ns}.enum / {ns}.string (variants)", variant_names),
        (f"{ns}.boolean", boolean_names),
        (f"{ns}.string (text properties)", text_names),
        (f"{ns}.instance", instance_names),
        (f"{ns}.textContent (text layers)", list(evidence.text_slots)),
        (f"{ns}.children (slot layers)", list(evidence.content_slots)),
    )
    lines = [
        "## Allowed Keys",
        "",
        "Only use keys that exist in the component data. Any other key is rejected.",
        "",
    ]
    for label, names in rows:
        rendered = ", ".join(_quote(name) for name in names) if names else _NONE_MARKER
        lines.append(f"- {label}: {rendered}")
    return "\n".join(lines)


class RepairInstructionBuilder:
    """Deterministic builder for retry instructions."""

    def __init__(self, *, namespace: str = DEFAULT_HELPER_NAMESPACE) -> None:
        self._namespace = namespace

    def build(
        self,
        *,
        initial_instruction: str,
        previous_candidate: str,
        errors: Sequence[str],
        evidence: Evidence,
        profile: TargetProfile = TargetProfile.REACT,
    ) -> RepairInstruction:
        profile = TargetProfile(profile)
        sections: list[str] = [REPAIR_HEADER, "", "## Errors Found", ""]
        sections.extend(f"- {error}" for error in errors)
        sections.extend(
            [
                "",
                "## Previous Code",
                "",
                f"```{profile.fence_language}",
                previous_candidate,
                "```",
                "",
                render_allowed_keys(evidence, namespace=self._namespace),
                "",
                f"Output ONLY the corrected {profile.file_extension} file, no markdown blocks.",
            ]
        )
        text = f"{initial_instruction}{SEPARATOR}" + "\n".join(sections)
        return RepairInstruction(
            text=text,
            error_count=len(errors),
            previous_length=len(previous_candidate),
        )


def build_repair_instruction(
    *,
    initial_instruction: str,
    previous_candidate: str,
    errors: Sequence[str],
    evidence: Evidence,
    profile: TargetProfile = TargetProfile.REACT,
    namespace: str = DEFAULT_HELPER_NAMESPACE,
) -> str:
    """Functional wrapper for one-shot builds."""

    builder = RepairInstructionBuilder(namespace=namespace)
    return builder.build(
        initial_instruction=initial_instruction,
        previous_candidate=previous_candidate,
        errors=errors,
        evidence=evidence,
        profile=profile,
    ).text


def _quote(name: str) -> str:
    return f"'{name}'"


__all__ = [
    "REPAIR_HEADER",
    "RepairInstruction",
    "RepairInstructionBuilder",
    "SEPARATOR",
    "build_initial_instruction",
    "build_repair_instruction",
    "render_allowed_keys",
    "render_component_data",
]
