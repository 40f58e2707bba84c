"""
mapping-forge — evidence model

File: src/mapping_forge/domain/evidence.py

Purpose
- Typed, immutable description of one design component's configurable surface:
  variant axes, scalar properties, text slots and content slots.
- Every name is kept verbatim for round-tripping into generated artifacts and is
  paired with one normalized form used for matching.

Functional requirements
- ``from_payload`` accepts the scanner's JSON shape (camelCase or snake_case,
  mapping or list forms) and classifies component properties deterministically.
- Normalization helpers are pure and idempotent.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Final, NoReturn

import yaml

if TYPE_CHECKING:
    import os

_NON_ALNUM_RE: Final[re.Pattern[str]] = re.compile(r"[^a-z0-9]")
_NON_ALNUM_RUN_RE: Final[re.Pattern[str]] = re.compile(r"[^a-z0-9]+")
_BOOLEAN_VALUE_PAIRS: Final[frozenset[frozenset[str]]] = frozenset(
    {
        frozenset({"yes", "no"}),
        frozenset({"true", "false"}),
        frozenset({"on", "off"}),
    }
)
_TEXT_NAME_HINTS: Final[tuple[str, ...]] = ("text",)
_OPTIONAL_PREFIX: Final[str] = "."
_OPTIONAL_SUFFIX: Final[str] = "?"


class PropertyKind(StrEnum):
    """Classification of a non-variant component property."""

    BOOLEAN = "boolean"
    TEXT = "text"
    INSTANCE_REFERENCE = "instanceReference"


class EvidenceLoadError(ValueError):
    """Raised when an evidence file cannot be read or parsed."""


def normalize_key(key: str) -> str:
    """Return the matching form of ``key``.

    Strips one leading ``.`` and one trailing ``?``, lower-cases, then drops every
    character outside ``[a-z0-9]``. Applying it twice returns the same value.
    """

    value = key
    if value.startswith(_OPTIONAL_PREFIX):
        value = value[len(_OPTIONAL_PREFIX) :]
    if value.endswith(_OPTIONAL_SUFFIX):
        value = value[: -len(_OPTIONAL_SUFFIX)]
    return _NON_ALNUM_RE.sub("", value.lower())


def collapse_whitespace(text: str) -> str:
    return " ".join(text.split())


def fold_name(name: str) -> str:
    """Case-folded, whitespace-collapsed form of a display name."""

    return collapse_whitespace(name).casefold()


def to_enum_token(value: str) -> str:
    """Machine-safe token for one variant value (``"Extra Large"`` -> ``"extra_large"``)."""

    return _NON_ALNUM_RUN_RE.sub("_", value.lower()).strip("_")


def is_boolean_axis(values: Sequence[str]) -> bool:
    """True iff ``values`` is exactly one of the yes/no, true/false, on/off pairs."""

    if len(values) != 2:
        return False
    lowered = frozenset(str(value).lower() for value in values)
    return lowered in _BOOLEAN_VALUE_PAIRS


def infer_property_kind(name: str, declared_type: str | None = None) -> PropertyKind | None:
    """Classify a component property.

    Returns ``None`` for ``VARIANT`` declarations, which are axes rather than
    scalar properties.
    """

    if declared_type is not None:
        kind = declared_type.strip().upper()
        if kind == "VARIANT":
            return None
        if kind == "BOOLEAN":
            return PropertyKind.BOOLEAN
        if kind == "INSTANCE_SWAP":
            return PropertyKind.INSTANCE_REFERENCE
        return PropertyKind.TEXT

    stripped = name.strip()
    if stripped.endswith(_OPTIONAL_SUFFIX):
        return PropertyKind.BOOLEAN
    lowered = stripped.lower()
    if lowered == "label" or any(hint in lowered for hint in _TEXT_NAME_HINTS):
        return PropertyKind.TEXT
    return PropertyKind.INSTANCE_REFERENCE


@dataclass(frozen=True, slots=True)
class VariantAxis:
    """One variant axis with its ordered, distinct label values."""

    name: str
    values: tuple[str, ...]

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            _fail("VariantAxis.name", "must be a non-empty string")
        object.__setattr__(self, "values", _distinct(self.values, "VariantAxis.values"))

    @property
    def key(self) -> str:
        return normalize_key(self.name)

    @property
    def folded_name(self) -> str:
        return fold_name(self.name)

    @property
    def enum_tokens(self) -> tuple[str, ...]:
        return tuple(dict.fromkeys(to_enum_token(value) for value in self.values))

    @property
    def is_boolean(self) -> bool:
        return is_boolean_axis(self.values)

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "values": list(self.values),
            "key": self.key,
            "enum_tokens": list(self.enum_tokens),
            "is_boolean": self.is_boolean,
        }


@dataclass(frozen=True, slots=True)
class ScalarProperty:
    name: str
    kind: PropertyKind

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            _fail("ScalarProperty.name", "must be a non-empty string")
        object.__setattr__(self, "kind", PropertyKind(self.kind))

    @property
    def key(self) -> str:
        return normalize_key(self.name)

    def to_dict(self) -> dict[str, object]:
        return {"name": self.name, "kind": self.kind.value, "key": self.key}


@dataclass(frozen=True, slots=True)
class Evidence:
    """Read-only evidence for one design component."""

    component_id: str
    component_name: str
    variant_axes: tuple[VariantAxis, ...] = ()
    scalar_properties: tuple[ScalarProperty, ...] = ()
    text_slots: tuple[str, ...] = ()
    content_slots: tuple[str, ...] = ()
    extras: Mapping[str, object] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "variant_axes", tuple(self.variant_axes))
        object.__setattr__(self, "scalar_properties", tuple(self.scalar_properties))
        object.__setattr__(self, "text_slots", _distinct(self.text_slots, "Evidence.text_slots"))
        object.__setattr__(
            self,
            "content_slots",
            _distinct(self.content_slots, "Evidence.content_slots"),
        )

    def axis(self, name: str) -> VariantAxis | None:
        wanted = normalize_key(name)
        for axis in self.variant_axes:
            if axis.key == wanted:
                return axis
        return None

    def properties_of(self, kind: PropertyKind) -> tuple[ScalarProperty, ...]:
        return tuple(prop for prop in self.scalar_properties if prop.kind is kind)

    @classmethod
    def from_payload(cls, payload: Mapping[str, object]) -> Evidence:
        """Build evidence from a scanner payload.

        Accepts ``componentSetId``/``componentId``/``id`` and
        ``componentName``/``name`` for identifiers; ``variantProperties`` as a
        mapping or a ``[{name, values}]`` list; ``componentProperties`` as a
        ``[{name, type}]`` list or a mapping keyed by ``"name#nodeId"``; and
        ``textLayers``/``slotLayers`` as strings or ``{name}`` objects.
        """

        if not isinstance(payload, Mapping):
            _fail("evidence", f"expected object, got {type(payload).__name__}")

        component_id = _first_str(
            payload,
            ("componentSetId", "component_set_id", "componentId", "component_id", "id"),
        )
        component_name = _first_str(payload, ("componentName", "component_name", "name"))
        if component_name is None:
            component_name = component_id or "unnamed"
        if component_id is None:
            component_id = component_name

        return cls(
            component_id=component_id,
            component_name=component_name,
            variant_axes=_parse_variant_axes(
                _first(payload, ("variantProperties", "variant_properties", "variantAxes"))
            ),
            scalar_properties=_parse_component_properties(
                _first(payload, ("componentProperties", "component_properties"))
            ),
            text_slots=_parse_layer_names(
                _first(payload, ("textLayers", "text_layers", "textSlots")),
                "evidence.textLayers",
            ),
            content_slots=_parse_layer_names(
                _first(payload, ("slotLayers", "slot_layers", "contentSlots")),
                "evidence.slotLayers",
            ),
            extras={
                key: value
                for key, value in payload.items()
                if key in {"componentSetUrl", "figmaUrl", "description"}
            },
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "component_id": self.component_id,
            "component_name": self.component_name,
            "variant_axes": [axis.to_dict() for axis in self.variant_axes],
            "scalar_properties": [prop.to_dict() for prop in self.scalar_properties],
            "text_slots": list(self.text_slots),
            "content_slots": list(self.content_slots),
        }


def load_evidence_file(path: str | os.PathLike[str]) -> Evidence:
    """Load evidence from a JSON or YAML file."""

    file_path = Path(path)
    try:
        with file_path.open("r", encoding="utf-8") as handle:
            payload = yaml.safe_load(handle)
    except OSError as exc:
        raise EvidenceLoadError(
            f"failed to read evidence file {file_path.as_posix()}: {exc}"
        ) from exc
    except yaml.YAMLError as exc:
        raise EvidenceLoadError(f"invalid evidence document {file_path.as_posix()}: {exc}") from exc

    if not isinstance(payload, Mapping):
        raise EvidenceLoadError(f"{file_path.as_posix()} must contain a single evidence object")
    try:
        return Evidence.from_payload(payload)
    except ValueError as exc:
        raise EvidenceLoadError(f"{file_path.as_posix()}: {exc}") from exc


def _parse_variant_axes(raw: object) -> tuple[VariantAxis, ...]:
    if raw is None:
        return ()
    entries: list[tuple[str, object]] = []
    if isinstance(raw, Mapping):
        entries = [(str(name), values) for name, values in raw.items()]
    elif _is_sequence(raw):
        for index, entry in enumerate(raw):
            if not isinstance(entry, Mapping) or not entry.get("name"):
                _fail(f"evidence.variantProperties[{index}]", "expected {name, values} object")
            entries.append((str(entry["name"]), entry.get("values", [])))
    else:
        _fail("evidence.variantProperties", f"expected object or list, got {type(raw).__name__}")

    axes: list[VariantAxis] = []
    for name, values in entries:
        if not _is_sequence(values):
            _fail(f"evidence.variantProperties.{name}", "values must be a list")
        axes.append(
            VariantAxis(name=name, values=tuple(collapse_whitespace(str(v)) for v in values))
        )
    return tuple(axes)


def _parse_component_properties(raw: object) -> tuple[ScalarProperty, ...]:
    if raw is None:
        return ()
    entries: list[tuple[str, str | None]] = []
    if isinstance(raw, Mapping):
        for raw_key, definition in raw.items():
            declared: str | None = None
            name = str(raw_key)
            if isinstance(definition, Mapping):
                declared = _optional_type(definition.get("type"))
                name = str(definition.get("name") or name)
            elif isinstance(definition, str):
                declared = definition
            entries.append((name, declared))
    elif _is_sequence(raw):
        for index, entry in enumerate(raw):
            if isinstance(entry, str):
                entries.append((entry, None))
                continue
            if not isinstance(entry, Mapping) or not entry.get("name"):
                _fail(f"evidence.componentProperties[{index}]", "expected {name, type} object")
            entries.append((str(entry["name"]), _optional_type(entry.get("type"))))
    else:
        _fail("evidence.componentProperties", f"expected object or list, got {type(raw).__name__}")

    properties: dict[str, ScalarProperty] = {}
    for raw_name, declared in entries:
        name = raw_name.split("#", 1)[0].strip()
        if not name:
            continue
        kind = infer_property_kind(name, declared)
        if kind is None:
            continue
        properties.setdefault(name, ScalarProperty(name=name, kind=kind))
    return tuple(properties.values())


def _parse_layer_names(raw: object, path: str) -> tuple[str, ...]:
    if raw is None:
        return ()
    if not _is_sequence(raw):
        _fail(path, f"expected list, got {type(raw).__name__}")
    names: list[str] = []
    for entry in raw:
        name = entry.get("name") if isinstance(entry, Mapping) else entry
        if isinstance(name, str) and name.strip():
            names.append(name)
    return tuple(names)


def _distinct(values: object, path: str) -> tuple[str, ...]:
    if not _is_sequence(values):
        _fail(path, f"expected sequence, got {type(values).__name__}")
    for index, item in enumerate(values):
        if not isinstance(item, str):
            _fail(f"{path}[{index}]", f"expected string, got {type(item).__name__}")
    return tuple(dict.fromkeys(values))


def _first(payload: Mapping[str, object], keys: Sequence[str]) -> object:
    for key in keys:
        value = payload.get(key)
        if value is not None:
            return value
    return None


def _first_str(payload: Mapping[str, object], keys: Sequence[str]) -> str | None:
    value = _first(payload, keys)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        _fail(f"evidence.{keys[0]}", f"expected string, got {type(value).__name__}")
    text = str(value).strip()
    return text or None


def _optional_type(value: object) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        _fail("evidence.componentProperties.type", f"expected string, got {type(value).__name__}")
    return value


def _is_sequence(value: object) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


__all__ = [
    "Evidence",
    "EvidenceLoadError",
    "PropertyKind",
    "ScalarProperty",
    "VariantAxis",
    "collapse_whitespace",
    "fold_name",
    "infer_property_kind",
    "is_boolean_axis",
    "load_evidence_file",
    "normalize_key",
    "to_enum_token",
]
