from __future__ import annotations

from dashboard.typedoc import (
    infer_field_roles,
    infer_fields_from_records,
    merge_fields,
    parse_typedoc,
)
from shared.models import FieldDef

TYPEDOC = """Daily RSI indicator for NVDA.
Computed on close prices.
fields:
- date(number): unix timestamp in ms
- rsi14(number): RSI(14) value (0-100)
this line is not a field
- signal(string): overbought / oversold label
- crossed(boolean): whether RSI crossed 70
"""


def test_parse_typedoc_splits_description_and_fields():
    parsed = parse_typedoc(TYPEDOC)
    assert parsed is not None
    assert parsed.description == "Daily RSI indicator for NVDA. Computed on close prices."
    assert [f.name for f in parsed.fields] == ["date", "rsi14", "signal", "crossed"]
    assert parsed.fields[1].type == "number"
    assert parsed.fields[1].desc == "RSI(14) value (0-100)"


def test_parse_typedoc_drops_malformed_field_lines():
    parsed = parse_typedoc("fields:\n- ok(number): fine\n- broken number: nope\n-missing(type)\n")
    assert parsed is not None
    assert [f.name for f in parsed.fields] == ["ok"]


def test_parse_typedoc_marker_is_case_insensitive():
    parsed = parse_typedoc("Intro\n  FIELDS:  \n- v(number): value")
    assert parsed is not None
    assert parsed.description == "Intro"
    assert len(parsed.fields) == 1


def test_parse_typedoc_empty_input_returns_none():
    assert parse_typedoc(None) is None
    assert parse_typedoc("") is None


def test_merge_fields_first_seen_wins():
    first = parse_typedoc("fields:\n- close(number): close price\n- ts(number): timestamp")
    second = parse_typedoc("fields:\n- close(number): other close\n- volume(number): traded volume")
    merged = merge_fields([first, None, second])
    assert list(merged) == ["close", "ts", "volume"]
    assert merged["close"].desc == "close price"


def test_infer_field_roles_partitions_by_type_and_time_hint():
    parsed = parse_typedoc(TYPEDOC)
    roles = infer_field_roles(parsed.fields)
    assert roles.time_field is not None and roles.time_field.name == "date"
    assert [f.name for f in roles.value_fields] == ["rsi14"]
    assert [f.name for f in roles.label_fields] == ["signal"]
    assert [f.name for f in roles.bool_fields] == ["crossed"]


def test_infer_field_roles_keeps_only_first_time_candidate():
    fields = [
        FieldDef(name="open_time", type="number", desc="bar open time"),
        FieldDef(name="close_time", type="number", desc="bar close time"),
        FieldDef(name="price", type="number", desc="last price"),
    ]
    roles = infer_field_roles(fields)
    assert roles.time_field.name == "open_time"
    assert [f.name for f in roles.value_fields] == ["close_time", "price"]


def test_infer_field_roles_is_idempotent_on_its_output():
    parsed = parse_typedoc(TYPEDOC)
    roles = infer_field_roles(parsed.fields)
    again = infer_field_roles([*roles.value_fields, *roles.label_fields])
    assert again.value_fields == roles.value_fields
    assert again.label_fields == roles.label_fields
    assert again.time_field is None


def test_infer_fields_from_records_types_undocumented_keys():
    documented = {"ts": FieldDef(name="ts", type="number", desc="timestamp"), "gone": FieldDef(name="gone", type="number")}
    records = [{"ts": 1, "price": None, "name": "NVDA"}, {"ts": 2, "price": 3.5, "up": True}]
    fields = infer_fields_from_records(records, documented)
    assert [(f.name, f.type) for f in fields] == [
        ("ts", "number"),
        ("name", "string"),
        ("price", "number"),
        ("up", "boolean"),
    ]
