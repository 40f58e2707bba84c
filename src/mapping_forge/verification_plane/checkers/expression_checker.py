"""
Expression checker: optional first-tier extension.

Flags constructs the structural parser refuses inside mapping templates but
does not always report with a line number: conditionals, logical and
comparison operators, prefix unary operators and nested template literals in
interpolations, example functions with statement bodies, and a missing root
connect call or package import. Disabled unless ``validation.expression_lint``
is set.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Final

from mapping_forge.constants import DEFAULT_HELPER_NAMESPACE

_PACKAGE_IMPORT_RE: Final[re.Pattern[str]] = re.compile(
    r"""from\s+['"]@figma/code-connect(?:/react|/html)?['"]"""
)
_SKIPPED_LINE_PREFIXES: Final[tuple[str, ...]] = ("import ", "//", "/*", "*")

_TEMPLATE_TERNARY_RE: Final[re.Pattern[str]] = re.compile(r"\$\{[^}]*\?[^}]*:[^}]*\}")
_TEMPLATE_LOGICAL_RE: Final[re.Pattern[str]] = re.compile(r"\$\{[^}]*(?:&&|\|\|)[^}]*\}")
_TEMPLATE_UNARY_RE: Final[re.Pattern[str]] = re.compile(
    r"\$\{\s*(?:!|~|\+|-|typeof\b|void\b|delete\b)"
)
_TEMPLATE_NESTED_RE: Final[re.Pattern[str]] = re.compile(r"\$\{[^}]*`[^`]*`[^}]*\}")
_TEMPLATE_COMPARISON_RE: Final[re.Pattern[str]] = re.compile(
    r"\$\{[^}]*(?:===|!==|==|!=|<=|>=)[^}]*\}"
)
_ATTRIBUTE_COMPARISON_RE: Final[re.Pattern[str]] = re.compile(
    r"""=["']\$\{[^}]*(?:===|!==|==|!=|<=|>=)[^}]*\}["']"""
)
_COMPARISON_RE: Final[re.Pattern[str]] = re.compile(r"(?:===|!==|==|!=|<=|>=)")
_LOGICAL_RE: Final[re.Pattern[str]] = re.compile(r"(?:&&|\|\|)")
_BRACED_TERNARY_RE: Final[re.Pattern[str]] = re.compile(r"\{[^}]*\?")
_BRACED_LOGICAL_RE: Final[re.Pattern[str]] = re.compile(r"\{[^}]*(?:&&|\|\|)")
_BRACED_STRICT_COMPARISON_RE: Final[re.Pattern[str]] = re.compile(r"\{[^}]*(?:===|!==)")
_URL_RE: Final[re.Pattern[str]] = re.compile(r"https?://")
_STRING_LITERAL_RE: Final[re.Pattern[str]] = re.compile(r"""["'][^"']*["']""")
_PLAIN_STATEMENT_RE: Final[re.Pattern[str]] = re.compile(
    r"^\s*(?:if|while|for|function|const|let|var|return)\s"
)
_EXAMPLE_BODY_RE: Final[re.Pattern[str]] = re.compile(r"example:\s*\([^)]*\)\s*=>\s*\{")


@dataclass(frozen=True, slots=True)
class LineRule:
    code: str
    matches: Callable[[str], bool]
    message: str


def without_string_literals(line: str) -> str:
    """Blank out quoted literals so property names like ``'Disabled?'`` read as ``""``."""

    return _STRING_LITERAL_RE.sub('""', line)


def _jsx_ternary(line: str) -> bool:
    code = without_string_literals(line)
    if "?" not in code or ":" not in code or _URL_RE.search(line):
        return False
    return "<" in code or _BRACED_TERNARY_RE.search(code) is not None


def _jsx_logical(line: str) -> bool:
    code = without_string_literals(line)
    if not _LOGICAL_RE.search(code) or _PLAIN_STATEMENT_RE.match(code):
        return False
    return "<" in code or _BRACED_LOGICAL_RE.search(code) is not None


def _jsx_comparison(line: str, namespace: str) -> bool:
    code = without_string_literals(line)
    if not _COMPARISON_RE.search(code):
        return False
    if "node-id=" in line or f"{namespace}.connect" in line:
        return False
    return "<" in code or _BRACED_STRICT_COMPARISON_RE.search(code) is not None


def default_line_rules(namespace: str = DEFAULT_HELPER_NAMESPACE) -> tuple[LineRule, ...]:
    helper = f"{namespace}.boolean()"
    return (
        LineRule(
            "template_ternary",
            lambda line: _TEMPLATE_TERNARY_RE.search(line) is not None,
            "Ternary expression in template interpolation - conditionals are not allowed. "
            "Compute value in props instead.",
        ),
        LineRule(
            "jsx_ternary",
            _jsx_ternary,
            f"Ternary expression in JSX - conditionals are not allowed. Use {helper} to map "
            "the condition instead.",
        ),
        LineRule(
            "template_logical",
            lambda line: _TEMPLATE_LOGICAL_RE.search(line) is not None,
            "Logical operator in template interpolation - &&/|| are not allowed. "
            "Compute value in props instead.",
        ),
        LineRule(
            "template_unary",
            lambda line: _TEMPLATE_UNARY_RE.search(line) is not None,
            "Prefix unary operator in template interpolation - !/~/+/-/typeof/void/delete are "
            "not allowed in ${} placeholders. Compute the value in props instead.",
        ),
        LineRule(
            "jsx_logical",
            _jsx_logical,
            f"Logical operator in JSX - &&/|| are not allowed. Use {helper} to map the "
            "condition instead.",
        ),
        LineRule(
            "template_nested",
            lambda line: _TEMPLATE_NESTED_RE.search(line) is not None,
            "Nested template literal in interpolation - not allowed. "
            "Compute string in props instead.",
        ),
        LineRule(
            "template_comparison",
            lambda line: _TEMPLATE_COMPARISON_RE.search(line) is not None,
            "Comparison operator in template interpolation - binary expressions are not "
            "allowed. Compute value in props instead.",
        ),
        LineRule(
            "attribute_comparison",
            lambda line: _ATTRIBUTE_COMPARISON_RE.search(line) is not None,
            "Comparison operator in attribute - binary expressions are not allowed. "
            "Compute boolean value in props instead.",
        ),
        LineRule(
            "jsx_comparison",
            lambda line: _jsx_comparison(line, namespace),
            "Comparison operator in JSX - binary expressions are not allowed. "
            "Compute boolean value in props instead.",
        ),
    )


class ExpressionChecker:
    """Line-oriented lint over a candidate's template expressions."""

    def __init__(
        self,
        *,
        namespace: str = DEFAULT_HELPER_NAMESPACE,
        rules: tuple[LineRule, ...] | None = None,
        require_structure: bool = True,
    ) -> None:
        self._namespace = namespace
        self._rules = rules if rules is not None else default_line_rules(namespace)
        self._require_structure = require_structure

    def check(self, candidate_text: str) -> list[str]:
        errors: list[str] = []
        if self._require_structure:
            if f"{self._namespace}.connect" not in candidate_text:
                errors.append(f"Missing {self._namespace}.connect() call")
            if _PACKAGE_IMPORT_RE.search(candidate_text) is None:
                errors.append("Missing @figma/code-connect import")

        for index, line in enumerate(candidate_text.split("\n"), start=1):
            if line.strip().startswith(_SKIPPED_LINE_PREFIXES):
                continue
            for rule in self._rules:
                if rule.matches(line):
                    errors.append(f"Line {index}: {rule.message}")

        if _EXAMPLE_BODY_RE.search(candidate_text):
            errors.append(
                "Example function has a body with statements - the example arrow function must "
                "return the template directly: example: (props) => html`...`"
            )
        return errors


__all__ = ["ExpressionChecker", "LineRule", "default_line_rules", "without_string_literals"]
