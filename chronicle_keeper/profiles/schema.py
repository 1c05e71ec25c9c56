"""Character profile schema: default fields, custom fields and reconciliation.

Every profile carries the ten default fields plus whatever custom fields the
character's instruction set declares. Custom fields that were persisted earlier
are kept even after their instruction is removed.
"""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Tuple

NO_INFORMATION = "No information"


class FieldKind(str, Enum):
    SCALAR = "scalar"
    LIST = "list"
    RELATION_LIST = "relation_list"


@dataclass(frozen=True, slots=True)
class ProfileField:
    name: str
    kind: FieldKind = FieldKind.SCALAR
    custom: bool = False

    def empty_value(self) -> Any:
        if self.kind is FieldKind.SCALAR:
            return NO_INFORMATION
        return []


DEFAULT_FIELDS: Tuple[ProfileField, ...] = (
    ProfileField("summary"),
    ProfileField("interject_summary"),
    ProfileField("background"),
    ProfileField("personality"),
    ProfileField("appearance"),
    ProfileField("aspirations", FieldKind.LIST),
    ProfileField("relationships", FieldKind.RELATION_LIST),
    ProfileField("occupation"),
    ProfileField("skills", FieldKind.LIST),
    ProfileField("speech_style"),
)
DEFAULT_FIELD_NAMES: Tuple[str, ...] = tuple(item.name for item in DEFAULT_FIELDS)

_LIST_HINT_RE = re.compile(
    r"\b(?:list|lists|array|arrays|bullet(?:s|ed)?)\b|목록|배열|리스트|\[\]",
    re.IGNORECASE,
)


def infer_field_kind(instruction_text: str) -> FieldKind:
    """Lists are requested in plain words; everything else is scalar text."""
    return FieldKind.LIST if _LIST_HINT_RE.search(str(instruction_text or "")) else FieldKind.SCALAR


def infer_value_kind(value: Any) -> FieldKind:
    if isinstance(value, list):
        if value and all(isinstance(item, dict) and "name" in item for item in value):
            return FieldKind.RELATION_LIST
        return FieldKind.LIST
    return FieldKind.SCALAR


def default_document() -> Dict[str, Any]:
    return {item.name: item.empty_value() for item in DEFAULT_FIELDS}


@dataclass(slots=True)
class ProfileDocument:
    """An ordered profile document together with the typed fields it must hold."""

    fields: Dict[str, ProfileField] = field(default_factory=dict)
    values: Dict[str, Any] = field(default_factory=dict)

    @property
    def expected_keys(self) -> frozenset[str]:
        return frozenset(self.fields)

    @property
    def custom_keys(self) -> List[str]:
        return [name for name, item in self.fields.items() if item.custom]

    def keys(self) -> List[str]:
        return list(self.values)

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self.values)

    def with_values(self, values: Mapping[str, Any]) -> "ProfileDocument":
        ordered = {name: copy.deepcopy(values[name]) for name in self.fields if name in values}
        return ProfileDocument(fields=dict(self.fields), values=ordered)


def reconcile(
    existing_or_default: Mapping[str, Any] | None,
    instructions: Mapping[str, str] | None,
) -> ProfileDocument:
    fields: Dict[str, ProfileField] = {item.name: item for item in DEFAULT_FIELDS}
    values: Dict[str, Any] = default_document()

    for name, value in (existing_or_default or {}).items():
        key = str(name)
        if key not in fields:
            fields[key] = ProfileField(key, infer_value_kind(value), custom=True)
        values[key] = copy.deepcopy(value)

    for name, instruction in (instructions or {}).items():
        key = str(name)
        if key in fields:
            continue
        item = ProfileField(key, infer_field_kind(instruction), custom=True)
        fields[key] = item
        values[key] = item.empty_value()

    return ProfileDocument(fields=fields, values=values)


@dataclass(frozen=True, slots=True)
class SchemaError:
    """Result variant for a candidate document that does not fit the expected keys."""

    message: str
    missing: Tuple[str, ...] = ()
    extra: Tuple[str, ...] = ()


def validate(candidate: Any, expected_keys: Iterable[str]) -> Dict[str, Any] | SchemaError:
    if not isinstance(candidate, dict):
        return SchemaError(f"expected a JSON object, got {type(candidate).__name__}")
    expected = set(expected_keys)
    actual = {str(key) for key in candidate}
    missing = tuple(sorted(expected - actual))
    extra = tuple(sorted(actual - expected))
    if missing or extra:
        parts: List[str] = []
        if missing:
            parts.append(f"missing keys: {', '.join(missing)}")
        if extra:
            parts.append(f"unexpected keys: {', '.join(extra)}")
        return SchemaError("; ".join(parts), missing=missing, extra=extra)
    return dict(candidate)
