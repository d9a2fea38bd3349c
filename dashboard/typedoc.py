"""
Typedoc parsing and field role inference.

A typedoc is Alva's freeform description of one data stream:

    Daily RSI for NVDA.
    fields:
    - date(number): unix timestamp in ms
    - rsi14(number): RSI(14) value (0-100)
"""

from __future__ import annotations

import re
from typing import Any, Iterable

from shared.models import FieldDef, FieldRoles, TypeDescriptor

_FIELDS_MARKER_RE = re.compile(r"^fields:\s*$", re.IGNORECASE)
_FIELD_LINE_RE = re.compile(r"^-\s*(\w+)\((\w+)\):\s*(.+)$")
_TIME_HINT_RE = re.compile(r"\b(date|time|timestamp|epoch)\b", re.IGNORECASE)


def parse_typedoc(text: str | None) -> TypeDescriptor | None:
    """Parse a typedoc string; None for empty input. Never raises."""
    if not text:
        return None

    description: list[str] = []
    fields: list[FieldDef] = []
    in_fields = False
    for line in str(text).split("\n"):
        stripped = line.strip()
        if _FIELDS_MARKER_RE.match(stripped):
            in_fields = True
            continue
        if in_fields:
            match = _FIELD_LINE_RE.match(line)
            if match:
                fields.append(FieldDef(name=match.group(1), type=match.group(2), desc=match.group(3).strip()))
        elif stripped:
            description.append(stripped)

    return TypeDescriptor(description=" ".join(description), fields=fields)


def merge_fields(descriptors: Iterable[TypeDescriptor | None]) -> dict[str, FieldDef]:
    """Union of fields across descriptors; the first field seen under a name wins."""
    merged: dict[str, FieldDef] = {}
    for descriptor in descriptors:
        if descriptor is None:
            continue
        for field in descriptor.fields:
            merged.setdefault(field.name, field)
    return merged


def infer_field_roles(fields: Iterable[FieldDef]) -> FieldRoles:
    """Split fields into time/value/label/boolean roles. First match wins per field."""
    time_field: FieldDef | None = None
    value_fields: list[FieldDef] = []
    label_fields: list[FieldDef] = []
    bool_fields: list[FieldDef] = []

    for field in fields:
        if field.type == "boolean":
            bool_fields.append(field)
            continue
        if field.type == "string":
            label_fields.append(field)
            continue
        if field.type != "number":
            continue
        if time_field is None and _TIME_HINT_RE.search(f"{field.name} {field.desc}"):
            time_field = field
            continue
        value_fields.append(field)

    return FieldRoles(
        time_field=time_field,
        value_fields=value_fields,
        label_fields=label_fields,
        bool_fields=bool_fields,
    )


def _value_type(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    return "string"


def infer_fields_from_records(
    records: list[Any],
    documented: dict[str, FieldDef] | None = None,
) -> list[FieldDef]:
    """Documented fields present in the records, then undocumented keys typed from their first non-null value."""
    present = {key for record in records if isinstance(record, dict) for key in record}
    fields = {name: field for name, field in (documented or {}).items() if not present or name in present}
    for record in records:
        if not isinstance(record, dict):
            continue
        for key, value in record.items():
            if key in fields or value is None:
                continue
            fields[key] = FieldDef(name=str(key), type=_value_type(value), desc="")
    return list(fields.values())
