"""
mapping-forge — unit tests for repair feedback

File: tests/unit/control_plane/test_feedback.py

Purpose
- Validate first-attempt and repair instruction rendering.

What this test file should cover
- Component data is embedded as scanner-shaped JSON.
- Repair instructions keep the original instruction, every error verbatim, the full
  previous candidate and the allowed-keys reminder.
- Output is deterministic.
"""

from __future__ import annotations

import json

from mapping_forge.control_plane.feedback import (
    REPAIR_HEADER,
    SEPARATOR,
    RepairInstructionBuilder,
    build_initial_instruction,
    build_repair_instruction,
    render_allowed_keys,
    render_component_data,
)
from mapping_forge.domain.evidence import Evidence, PropertyKind, ScalarProperty, VariantAxis
from mapping_forge.domain.models import TargetProfile

EVIDENCE = Evidence(
    component_id="5:1",
    component_name="Toggle",
    variant_axes=(
        VariantAxis(name="State", values=("On", "Off")),
        VariantAxis(name="Size", values=("S", "M")),
    ),
    scalar_properties=(
        ScalarProperty(name="Label", kind=PropertyKind.TEXT),
        ScalarProperty(name="Disabled", kind=PropertyKind.BOOLEAN),
        ScalarProperty(name="Icon", kind=PropertyKind.INSTANCE_REFERENCE),
    ),
    text_slots=("Caption",),
)


def test_render_component_data_is_scanner_shaped_json() -> None:
    rendered = render_component_data(EVIDENCE)

    assert rendered.startswith("## Figma Component Data\n\n```json\n")
    body = rendered.split("```json\n", 1)[1].rsplit("\n```", 1)[0]
    assert json.loads(body) == {
        "componentName": "Toggle",
        "variantProperties": {"State": ["On", "Off"], "Size": ["S", "M"]},
        "componentProperties": [
            {"name": "Label", "type": "TEXT"},
            {"name": "Disabled", "type": "BOOLEAN"},
            {"name": "Icon", "type": "INSTANCE_SWAP"},
        ],
        "textLayers": ["Caption"],
        "slotLayers": [],
    }


def test_build_initial_instruction_appends_data_and_output_reminder() -> None:
    instruction = build_initial_instruction("Write a mapping.\n", EVIDENCE, profile="html")

    parts = instruction.split("\n\n")
    assert parts[0] == "Write a mapping."
    assert "## Figma Component Data" in instruction
    assert instruction.endswith(
        "Now generate the .figma.ts file. Output ONLY the code, no markdown blocks."
    )


def test_render_allowed_keys_lists_verbatim_names_per_helper() -> None:
    rendered = render_allowed_keys(EVIDENCE)

    assert rendered.splitlines()[4:] == [
        "- figma.enum / figma.string (variants): 'State', 'Size'",
        "- figma.boolean: 'Disabled', 'State'",
        "- figma.string (text properties): 'Label'",
        "- figma.instance: 'Icon'",
        "- figma.textContent (text layers): 'Caption'",
        "- figma.children (slot layers): (none)",
    ]


def test_repair_instruction_contains_every_part() -> None:
    errors = [
        "Line 3: figma.boolean('Size') is not a valid BOOLEAN property",
        "Line 9: figma.children('Body') is not a known slot layer name",
    ]
    previous = "line one\nline two\n  figma.boolean('Size')\n"

    repair = RepairInstructionBuilder().build(
        initial_instruction="ORIGINAL",
        previous_candidate=previous,
        errors=errors,
        evidence=EVIDENCE,
        profile=TargetProfile.REACT,
    )

    assert repair.text.startswith(f"ORIGINAL{SEPARATOR}{REPAIR_HEADER}")
    for error in errors:
        assert f"- {error}\n" in repair.text
    assert f"```tsx\n{previous}\n```" in repair.text
    assert "## Allowed Keys" in repair.text
    assert repair.text.endswith("Output ONLY the corrected .figma.tsx file, no markdown blocks.")
    assert repair.error_count == 2
    assert repair.previous_length == len(previous)


def test_repair_instruction_is_deterministic_and_namespaced() -> None:
    kwargs = {
        "initial_instruction": "base",
        "previous_candidate": "cc.boolean('Size')",
        "errors": ["Line 1: cc.boolean('Size') is not a valid BOOLEAN property"],
        "evidence": EVIDENCE,
        "namespace": "cc",
    }

    first = build_repair_instruction(**kwargs)  # type: ignore[arg-type]
    second = build_repair_instruction(**kwargs)  # type: ignore[arg-type]

    assert first == second
    assert "- cc.boolean: 'Disabled', 'State'" in first
