"""
mapping-forge — unit tests for the expression lint

File: tests/unit/verification_plane/test_expression_checker.py

Purpose
- Validate detection of template constructs the structural parser refuses.
"""

from __future__ import annotations

import pytest

from mapping_forge.verification_plane.checkers.expression_checker import (
    ExpressionChecker,
    default_line_rules,
    without_string_literals,
)

_HTML_HEADER = (
    "import figma, { html } from '@figma/code-connect/html'\n"
    "\n"
    "figma.connect('https://figma.com/file/x?node-id=1-1', {\n"
)


def _html(*lines: str) -> str:
    return _HTML_HEADER + "\n".join(lines) + "\n})\n"


def test_clean_candidate_has_no_errors() -> None:
    text = _html(
        "  props: { label: figma.string('Label') },",
        "  example: (props) => html`<ds-button label=${props.label}></ds-button>`,",
    )

    assert ExpressionChecker().check(text) == []


@pytest.mark.parametrize(
    ("line", "fragment"),
    [
        ("  example: (p) => html`<a>${p.on ? 'x' : 'y'}</a>`,", "Ternary expression in template"),
        ("  example: (p) => html`<a>${p.a && p.b}</a>`,", "Logical operator in template"),
        ("  example: (p) => html`<a>${!p.on}</a>`,", "Prefix unary operator"),
        ("  example: (p) => html`<a>${p.a === 'x'}</a>`,", "Comparison operator in template"),
        ("  example: (p) => html`<a>${`${p.a}`}</a>`,", "Nested template literal"),
    ],
)
def test_template_rules_report_line_numbers(line: str, fragment: str) -> None:
    errors = ExpressionChecker().check(_html(line))

    assert any(error.startswith("Line 4: ") and fragment in error for error in errors)


def test_jsx_conditionals_are_flagged() -> None:
    text = (
        "import figma from '@figma/code-connect'\n"
        "figma.connect(Button, 'url', {\n"
        "  example: (props) => <Button>{props.icon && <Icon />}</Button>,\n"
        "})\n"
    )

    errors = ExpressionChecker().check(text)

    assert errors == [
        "Line 3: Logical operator in JSX - &&/|| are not allowed. Use figma.boolean() to map "
        "the condition instead."
    ]


@pytest.mark.parametrize(
    "props_line",
    [
        "  props: { disabled: figma.boolean('Disabled?') },",
        "  props: { terms: figma.string(\"Terms && Conditions\") },",
        "  props: { strict: figma.enum('Mode', { 'a === b': 'eq' }) },",
    ],
)
def test_operators_inside_string_literals_are_ignored(props_line: str) -> None:
    text = (
        "import figma from '@figma/code-connect'\n"
        "figma.connect(Button, 'url', {\n"
        f"{props_line}\n"
        "  example: (props) => <Button {...props} />,\n"
        "})\n"
    )

    assert ExpressionChecker().check(text) == []


def test_ternary_outside_string_literals_is_still_flagged() -> None:
    text = (
        "import figma from '@figma/code-connect'\n"
        "figma.connect(Button, 'url', {\n"
        "  example: (props) => <Button label={props.on ? 'Yes?' : 'No'} />,\n"
        "})\n"
    )

    errors = ExpressionChecker().check(text)

    assert errors == [
        "Line 3: Ternary expression in JSX - conditionals are not allowed. Use figma.boolean() "
        "to map the condition instead."
    ]


def test_without_string_literals_blanks_quoted_text() -> None:
    assert without_string_literals("a('x?', \"y: z\") ? b") == 'a("", "") ? b'


def test_missing_structure_is_reported_once() -> None:
    errors = ExpressionChecker().check("export const x = 1\n")

    assert errors == ["Missing figma.connect() call", "Missing @figma/code-connect import"]


def test_structure_check_can_be_disabled() -> None:
    assert ExpressionChecker(require_structure=False).check("export const x = 1\n") == []


def test_comment_and_import_lines_are_skipped() -> None:
    text = _html("  // ${a ? b : c}", "  /* ${a && b} */")

    assert ExpressionChecker().check(text) == []


def test_example_with_statement_body_is_flagged() -> None:
    text = _html("  example: (props) => {", "    return html`<a></a>`", "  },")

    errors = ExpressionChecker().check(text)

    assert errors[-1].startswith("Example function has a body with statements")


def test_rule_messages_use_namespace() -> None:
    rules = {rule.code: rule for rule in default_line_rules("cc")}

    assert "cc.boolean()" in rules["jsx_ternary"].message
    assert len(rules) == 9
