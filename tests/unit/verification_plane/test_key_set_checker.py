"""
mapping-forge — unit tests for the key-set tier

File: tests/unit/verification_plane/test_key_set_checker.py

Purpose
- Validate legal-key derivation, tolerant invocation scanning and line-addressed errors.

What this test file should cover
- Enum, boolean, string, instance, text-slot and content-slot helper checks.
- Case- and punctuation-insensitive matching.
- Error count monotonicity as illegal invocations are added or removed.
- Enum mapping values checked against the axis values; empty candidates rejected.
- Optional expression lint errors appended after key errors.

Functional requirements
- Pure: no subprocesses, no filesystem.
"""

from __future__ import annotations

import pytest

from mapping_forge.domain.evidence import Evidence, PropertyKind, ScalarProperty, VariantAxis
from mapping_forge.verification_plane.checkers.expression_checker import ExpressionChecker
from mapping_forge.verification_plane.checkers.key_set_checker import (
    EMPTY_CANDIDATE_ERROR,
    EnumValueMapping,
    HelperInvocation,
    HelperKind,
    KeySetChecker,
    build_key_sets,
    check_candidate,
    extract_enum_mappings,
    extract_helper_invocations,
)

try:
    from hypothesis import given, settings
    from hypothesis import strategies as st
except ModuleNotFoundError:
    _HYPOTHESIS_AVAILABLE = False
else:
    _HYPOTHESIS_AVAILABLE = True

SIZE_ONLY = Evidence(
    component_id="1:1",
    component_name="Button",
    variant_axes=(VariantAxis(name="Size", values=("Small", "Large")),),
)

RICH = Evidence(
    component_id="2:1",
    component_name="Card",
    variant_axes=(
        VariantAxis(name="Tone", values=("Light", "Dark")),
        VariantAxis(name="Has Icon", values=("Yes", "No")),
    ),
    scalar_properties=(
        ScalarProperty(name="Title", kind=PropertyKind.TEXT),
        ScalarProperty(name="Disabled", kind=PropertyKind.BOOLEAN),
        ScalarProperty(name="Leading Icon", kind=PropertyKind.INSTANCE_REFERENCE),
    ),
    text_slots=("Label",),
    content_slots=("Content",),
)

_HEADER = (
    "import figma from '@figma/code-connect'\n"
    "import { Button } from './Button'\n"
    "\n"
    "figma.connect(Button, 'https://figma.com/file/x?node-id=1-1', {\n"
    "  props: {\n"
)
_FOOTER = "  },\n  example: (props) => <Button {...props} />,\n})\n"


def _candidate(*prop_lines: str) -> str:
    return _HEADER + "".join(f"    {line}\n" for line in prop_lines) + _FOOTER


def test_enum_with_declared_axis_passes() -> None:
    text = _candidate("size: figma.enum('Size', { Small: 'sm', Large: 'lg' }),")

    result = KeySetChecker(SIZE_ONLY).check(text)

    assert result.valid
    assert result.errors == ()


def test_boolean_on_enum_axis_reports_one_line_addressed_error() -> None:
    text = _candidate("size: figma.boolean('Size'),")

    result = KeySetChecker(SIZE_ONLY).check(text)

    assert not result.valid
    assert result.errors == ("Line 6: figma.boolean('Size') is not a valid BOOLEAN property",)


def test_text_content_match_is_case_insensitive() -> None:
    evidence = Evidence(component_id="3", component_name="Tag", text_slots=("Label",))
    text = _candidate("label: figma.textContent('label'),")

    assert KeySetChecker(evidence).check(text).valid


def test_each_helper_checks_its_own_key_set() -> None:
    text = _candidate(
        "tone: figma.enum('tone', {}),",
        "toneText: figma.string('Tone'),",
        "title: figma.string('title'),",
        "icon: figma.boolean('Has Icon'),",
        "disabled: figma.boolean('.disabled?'),",
        "leading: figma.instance('Leading Icon'),",
        "label: figma.textContent('Label'),",
        "content: figma.children('content'),",
    )

    assert KeySetChecker(RICH).check(text).valid


def test_every_illegal_invocation_is_reported_in_source_order() -> None:
    text = _candidate(
        "a: figma.enum('Title', {}),",
        "b: figma.string('Subtitle'),",
        "c: figma.boolean('Tone'),",
        "d: figma.instance('Title'),",
        "e: figma.textContent('Content'),",
        "f: figma.children('Label'),",
    )

    result = KeySetChecker(RICH).check(text)

    assert result.errors == (
        "Line 6: figma.enum('Title', ...) is not a valid variant property",
        "Line 7: figma.string('Subtitle') is not a valid TEXT property or variant",
        "Line 8: figma.boolean('Tone') is not a valid BOOLEAN property",
        "Line 9: figma.instance('Title') is not a valid INSTANCE_SWAP property",
        "Line 10: figma.textContent('Content') is not a known text layer name",
        "Line 11: figma.children('Label') is not a known slot layer name",
    )


def test_pass_through_and_unknown_helpers_are_ignored() -> None:
    text = _candidate(
        "nested: figma.nestedProps('Anything', {}),",
        "cls: figma.className(['a']),",
        "other: figma.somethingNew('Whatever'),",
    )

    assert KeySetChecker(SIZE_ONLY).check(text).valid


def test_extraction_tolerates_quotes_whitespace_and_broken_syntax() -> None:
    text = (
        'figma.enum( "Size", {\n'
        "figma.boolean(`Has Icon`)\n"
        "figma.string('Title'\n"
        "figma.connect('not a helper')\n"
    )

    invocations = extract_helper_invocations(text)

    assert invocations == (
        HelperInvocation(helper=HelperKind.ENUM, key="Size", line=1),
        HelperInvocation(helper=HelperKind.BOOLEAN, key="Has Icon", line=2),
        HelperInvocation(helper=HelperKind.STRING, key="Title", line=3),
    )


def test_custom_namespace_is_scanned() -> None:
    text = "cc.boolean('Size')\nfigma.boolean('Size')\n"

    result = check_candidate(SIZE_ONLY, text, namespace="cc")

    assert result.errors == ("Line 1: cc.boolean('Size') is not a valid BOOLEAN property",)


def test_build_key_sets_places_boolean_axes_in_three_sets() -> None:
    key_sets = build_key_sets(RICH)

    assert key_sets.enum_keys == {"tone", "hasicon"}
    assert key_sets.string_keys == {"tone", "hasicon", "title"}
    assert key_sets.boolean_keys == {"hasicon", "disabled"}
    assert key_sets.instance_keys == {"leadingicon"}
    assert key_sets.text_slot_names == {"label"}
    assert key_sets.content_slot_names == {"content"}


def test_expression_lint_errors_follow_key_errors() -> None:
    text = _candidate("size: figma.boolean('Size'),") + "const x = `${a ? b : c}`\n"
    checker = KeySetChecker(SIZE_ONLY, expression_checker=ExpressionChecker())

    errors = checker.check(text).errors

    assert errors[0].startswith("Line 6: figma.boolean('Size')")
    assert any("Ternary expression in template interpolation" in error for error in errors[1:])


@pytest.mark.parametrize("text", ["", "   ", "\n\t\n"])
def test_empty_candidate_is_rejected(text: str) -> None:
    result = KeySetChecker(SIZE_ONLY).check(text)

    assert result.errors == (EMPTY_CANDIDATE_ERROR,)


def test_enum_mapping_value_outside_axis_is_reported() -> None:
    text = _candidate("size: figma.enum('Size', { Small: 's', Huge: 'h' }),")

    result = KeySetChecker(SIZE_ONLY).check(text)

    assert result.errors == (
        "Line 6: figma.enum('Size', ...) - 'Huge' is not a valid value for variant 'Size'. "
        "Available values: Small, Large",
    )


def test_enum_mapping_values_match_case_insensitively_and_accept_quoted_keys() -> None:
    text = _candidate(
        "size: figma.enum('size', {",
        "  'small': 'a, Huge: b',",
        '  "LARGE": <Icon />,',
        "}),",
    )

    assert KeySetChecker(SIZE_ONLY).check(text).valid


def test_enum_value_check_can_be_disabled() -> None:
    text = _candidate("size: figma.enum('Size', { Huge: 'h' }),")

    assert KeySetChecker(SIZE_ONLY, check_enum_values=False).check(text).valid


def test_extract_enum_mappings_reads_flat_object_literals() -> None:
    text = "figma.enum('Tone', {\n  Light: 'l',\n  Dark: 'd',\n})\nfigma.enum('Size', props)\n"

    assert extract_enum_mappings(text) == (
        EnumValueMapping(axis="Tone", value="Light", line=1),
        EnumValueMapping(axis="Tone", value="Dark", line=1),
    )


@pytest.mark.parametrize("count", [0, 1, 3])
def test_error_count_tracks_illegal_invocations(count: int) -> None:
    lines = ["size: figma.enum('Size', {}),"]
    lines.extend(f"bad{index}: figma.boolean('Missing{index}')," for index in range(count))

    result = KeySetChecker(SIZE_ONLY).check(_candidate(*lines))

    assert len(result.errors) == count
    assert result.valid is (count == 0)


if _HYPOTHESIS_AVAILABLE:
    _ILLEGAL_KEYS = st.from_regex(r"[A-Za-z][A-Za-z ]{0,11}", fullmatch=True).filter(
        lambda key: key.strip() != "" and key.replace(" ", "").lower() != "size"
    )

    @settings(max_examples=100, deadline=None)
    @given(st.lists(_ILLEGAL_KEYS, min_size=1, max_size=6))
    def test_adding_illegal_invocations_never_lowers_error_count(keys: list[str]) -> None:
        checker = KeySetChecker(SIZE_ONLY)
        lines = ["size: figma.enum('Size', {}),"]
        previous = checker.check(_candidate(*lines))
        assert previous.valid

        for index, key in enumerate(keys):
            lines.append(f"p{index}: figma.boolean('{key}'),")
            current = checker.check(_candidate(*lines))
            assert len(current.errors) >= len(previous.errors)
            previous = current

        assert len(previous.errors) == len(keys)
        assert checker.check(_candidate(lines[0])).valid
