"""
Key-set checker: first validation tier.

Functional requirements:
- Derive the legal helper keys from evidence.
- Extract helper invocations with a tolerant pattern scan, never a full parse,
  so almost-valid candidates still yield useful line-addressed errors.
- Report every invocation whose key is outside its legal set, in source order.
- Report enum mapping entries whose design value is not one of the axis values.
- Reject empty candidates outright.

Non-functional requirements:
- Pure and cheap: no I/O, no subprocesses.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum
from functools import lru_cache
from typing import TYPE_CHECKING, Final

from mapping_forge.constants import DEFAULT_HELPER_NAMESPACE
from mapping_forge.domain.evidence import PropertyKind, normalize_key
from mapping_forge.domain.models import ValidationResult

if TYPE_CHECKING:
    from collections.abc import Iterable

    from mapping_forge.domain.evidence import Evidence
    from mapping_forge.verification_plane.checkers.expression_checker import ExpressionChecker

_ROOT_CONNECT_HELPER: Final[str] = "connect"
EMPTY_CANDIDATE_ERROR: Final[str] = "Generated code is empty or invalid"

_MAPPING_ENTRY_RE: Final[re.Pattern[str]] = re.compile(
    r"(?:^|,)\s*(?:(?P<quote>['\"])(?P<quoted>[^'\"]+)(?P=quote)|(?P<bare>[A-Za-z_$][\w$]*))\s*:"
)
_MAPPING_STRING_VALUE_RE: Final[re.Pattern[str]] = re.compile(
    r":\s*(?P<quote>['\"`])(?:(?!(?P=quote))[^\\]|\\.)*(?P=quote)"
)


class HelperKind(StrEnum):
    """Helper calls recognized by the scan, named as they appear in source."""

    STRING = "string"
    BOOLEAN = "boolean"
    ENUM = "enum"
    INSTANCE = "instance"
    TEXT_CONTENT = "textContent"
    CHILDREN = "children"
    NESTED_PROPS = "nestedProps"
    CLASS_NAME = "className"

    @property
    def is_pass_through(self) -> bool:
        return self in (HelperKind.NESTED_PROPS, HelperKind.CLASS_NAME)


_MISS_DESCRIPTIONS: Final[dict[HelperKind, tuple[str, str]]] = {
    # helper kind -> (call suffix, reason)
    HelperKind.STRING: ("", "is not a valid TEXT property or variant"),
    HelperKind.BOOLEAN: ("", "is not a valid BOOLEAN property"),
    HelperKind.ENUM: (", ...", "is not a valid variant property"),
    HelperKind.INSTANCE: ("", "is not a valid INSTANCE_SWAP property"),
    HelperKind.TEXT_CONTENT: ("", "is not a known text layer name"),
    HelperKind.CHILDREN: ("", "is not a known slot layer name"),
}


@dataclass(frozen=True, slots=True)
class KeySets:
    """Normalized legal keys per helper purpose."""

    string_keys: frozenset[str] = frozenset()
    boolean_keys: frozenset[str] = frozenset()
    enum_keys: frozenset[str] = frozenset()
    instance_keys: frozenset[str] = frozenset()
    text_slot_names: frozenset[str] = frozenset()
    content_slot_names: frozenset[str] = frozenset()

    def allows(self, helper: HelperKind, key: str) -> bool:
        normalized = normalize_key(key)
        if helper is HelperKind.STRING:
            return normalized in self.string_keys or normalized in self.enum_keys
        if helper is HelperKind.BOOLEAN:
            return normalized in self.boolean_keys
        if helper is HelperKind.ENUM:
            return normalized in self.enum_keys
        if helper is HelperKind.INSTANCE:
            return normalized in self.instance_keys
        if helper is HelperKind.TEXT_CONTENT:
            return normalized in self.text_slot_names
        if helper is HelperKind.CHILDREN:
            return normalized in self.content_slot_names
        return True


@dataclass(frozen=True, slots=True)
class HelperInvocation:
    helper: HelperKind
    key: str
    line: int
    namespace: str = DEFAULT_HELPER_NAMESPACE

    def describe_miss(self) -> str:
        suffix, reason = _MISS_DESCRIPTIONS[self.helper]
        call = f"{self.namespace}.{self.helper.value}('{self.key}'{suffix})"
        return f"Line {self.line}: {call} {reason}"


@dataclass(frozen=True, slots=True)
class EnumValueMapping:
    """One ``<design value>: <code value>`` entry of an enum helper's mapping object."""

    axis: str
    value: str
    line: int
    namespace: str = DEFAULT_HELPER_NAMESPACE

    def describe_miss(self, available: Iterable[str]) -> str:
        return (
            f"Line {self.line}: {self.namespace}.enum('{self.axis}', ...) - '{self.value}' is "
            f"not a valid value for variant '{self.axis}'. "
            f"Available values: {', '.join(available)}"
        )


def build_key_sets(evidence: Evidence) -> KeySets:
    """Derive legal keys from ``evidence``.

    Variant axes feed enum and string keys, plus boolean keys for yes/no style
    axes. Scalar properties feed exactly one set by kind.
    """

    string_keys: set[str] = set()
    boolean_keys: set[str] = set()
    enum_keys: set[str] = set()
    instance_keys: set[str] = set()

    for axis in evidence.variant_axes:
        enum_keys.add(axis.key)
        string_keys.add(axis.key)
        if axis.is_boolean:
            boolean_keys.add(axis.key)

    for prop in evidence.scalar_properties:
        if prop.kind is PropertyKind.BOOLEAN:
            boolean_keys.add(prop.key)
        elif prop.kind is PropertyKind.INSTANCE_REFERENCE:
            instance_keys.add(prop.key)
        else:
            string_keys.add(prop.key)

    return KeySets(
        string_keys=frozenset(string_keys),
        boolean_keys=frozenset(boolean_keys),
        enum_keys=frozenset(enum_keys),
        instance_keys=frozenset(instance_keys),
        text_slot_names=frozenset(normalize_key(name) for name in evidence.text_slots),
        content_slot_names=frozenset(normalize_key(name) for name in evidence.content_slots),
    )


def extract_helper_invocations(
    candidate_text: str,
    *,
    namespace: str = DEFAULT_HELPER_NAMESPACE,
) -> tuple[HelperInvocation, ...]:
    """Scan for ``<namespace>.<helper>('<key>', ...)`` calls with 1-based line numbers."""

    invocations: list[HelperInvocation] = []
    for match in _invocation_pattern(namespace).finditer(candidate_text):
        helper_name = match.group("helper")
        if helper_name == _ROOT_CONNECT_HELPER:
            continue
        try:
            helper = HelperKind(helper_name)
        except ValueError:
            continue
        invocations.append(
            HelperInvocation(
                helper=helper,
                key=match.group("key"),
                line=candidate_text.count("\n", 0, match.start()) + 1,
                namespace=namespace,
            )
        )
    return tuple(invocations)


def validate_invocations(
    invocations: Iterable[HelperInvocation],
    key_sets: KeySets,
) -> list[str]:
    """Return one error per invocation whose key is not legal for its helper."""

    errors: list[str] = []
    for invocation in invocations:
        if invocation.helper.is_pass_through:
            continue
        if not key_sets.allows(invocation.helper, invocation.key):
            errors.append(invocation.describe_miss())
    return errors


def extract_enum_mappings(
    candidate_text: str,
    *,
    namespace: str = DEFAULT_HELPER_NAMESPACE,
) -> tuple[EnumValueMapping, ...]:
    """Scan ``<namespace>.enum('<axis>', { ... })`` object literals for their design values.

    Only flat object literals are read; anything else passed as the mapping is
    skipped. Line numbers point at the enum call.
    """

    mappings: list[EnumValueMapping] = []
    for match in _enum_mapping_pattern(namespace).finditer(candidate_text):
        line = candidate_text.count("\n", 0, match.start()) + 1
        body = _MAPPING_STRING_VALUE_RE.sub(": ''", match.group("body"))
        for entry in _MAPPING_ENTRY_RE.finditer(body):
            value = entry.group("quoted") or entry.group("bare")
            mappings.append(
                EnumValueMapping(
                    axis=match.group("key"),
                    value=value,
                    line=line,
                    namespace=namespace,
                )
            )
    return tuple(mappings)


def validate_enum_values(
    mappings: Iterable[EnumValueMapping],
    evidence: Evidence,
) -> list[str]:
    """Return one error per mapping entry naming a value the axis does not have.

    Unknown axes are left to :func:`validate_invocations`. Values compare
    case-insensitively.
    """

    axes = {axis.key: axis for axis in evidence.variant_axes}
    errors: list[str] = []
    for mapping in mappings:
        axis = axes.get(normalize_key(mapping.axis))
        if axis is None:
            continue
        if mapping.value.lower() not in {value.lower() for value in axis.values}:
            errors.append(mapping.describe_miss(axis.values))
    return errors


class KeySetChecker:
    """Tier 1 validator bound to one component's evidence."""

    def __init__(
        self,
        evidence: Evidence,
        *,
        namespace: str = DEFAULT_HELPER_NAMESPACE,
        expression_checker: ExpressionChecker | None = None,
        check_enum_values: bool = True,
    ) -> None:
        self._evidence = evidence
        self._namespace = namespace
        self._key_sets = build_key_sets(evidence)
        self._expression_checker = expression_checker
        self._check_enum_values = check_enum_values

    @property
    def key_sets(self) -> KeySets:
        return self._key_sets

    def check(self, candidate_text: str) -> ValidationResult:
        if not candidate_text.strip():
            return ValidationResult.failed([EMPTY_CANDIDATE_ERROR])

        invocations = extract_helper_invocations(candidate_text, namespace=self._namespace)
        errors = validate_invocations(invocations, self._key_sets)
        if self._check_enum_values:
            mappings = extract_enum_mappings(candidate_text, namespace=self._namespace)
            errors.extend(validate_enum_values(mappings, self._evidence))
        if self._expression_checker is not None:
            errors.extend(self._expression_checker.check(candidate_text))
        return ValidationResult.from_errors(errors)


def check_candidate(
    evidence: Evidence,
    candidate_text: str,
    *,
    namespace: str = DEFAULT_HELPER_NAMESPACE,
) -> ValidationResult:
    return KeySetChecker(evidence, namespace=namespace).check(candidate_text)


@lru_cache(maxsize=16)
def _invocation_pattern(namespace: str) -> re.Pattern[str]:
    return re.compile(
        rf"\b{re.escape(namespace)}\.(?P<helper>\w+)\("
        r"\s*(?P<quote>['\"`])(?P<key>[^'\"`]+)(?P=quote)"
    )


@lru_cache(maxsize=16)
def _enum_mapping_pattern(namespace: str) -> re.Pattern[str]:
    return re.compile(
        rf"\b{re.escape(namespace)}\.enum\("
        r"\s*(?P<quote>['\"`])(?P<key>[^'\"`]+)(?P=quote)\s*,\s*\{(?P<body>[^{}]*)\}"
    )


__all__ = [
    "EMPTY_CANDIDATE_ERROR",
    "EnumValueMapping",
    "HelperInvocation",
    "HelperKind",
    "KeySetChecker",
    "KeySets",
    "build_key_sets",
    "check_candidate",
    "extract_enum_mappings",
    "extract_helper_invocations",
    "validate_enum_values",
    "validate_invocations",
]
