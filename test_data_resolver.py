from __future__ import annotations

import copy
import json

from dashboard.resolver import apply_house_style, parse_widget_descriptor, resolve_props, resolve_widget_data
from dashboard.transforms import default_registry
from shared.models import WidgetDescriptor

PRICE = "alva://time_series/1/price/ohlcv"
RSI = "alva://time_series/1/rsi/rsi14"

ROWS = [{"date": 1704067200000, "close": 10.0}, {"date": 1704153600000, "close": 11.0}]


def _props() -> dict:
    return {
        "xAxis": {"type": "category", "data": [PRICE], "dataResolver": "(d) => d.map((x) => new Date(x.date).toISOString())"},
        "yAxis": [{"type": "value"}],
        "series": [
            {"name": "Close", "type": "line", "data": [PRICE], "dataResolver": "pluck:close"},
            {"name": "RSI", "type": "line", "data": [RSI], "dataResolver": "pluck:rsi"},
            {"name": "No resolver", "type": "bar", "data": [PRICE]},
            {"name": "Static", "type": "bar", "data": [1, 2, 3]},
        ],
    }


def test_resolve_props_substitutes_placeholders():
    resolved = resolve_props(_props(), {PRICE: ROWS}, default_registry())
    assert resolved["xAxis"]["data"] == ["2024-01-01", "2024-01-02"]
    series = {s["name"]: s for s in resolved["series"]}
    assert series["Close"]["data"] == [10.0, 11.0]
    assert series["RSI"]["data"] == []
    assert series["No resolver"]["data"] == []
    assert series["Static"]["data"] == [1, 2, 3]


def test_resolve_props_strips_resolver_annotations():
    resolved = resolve_props(_props(), {PRICE: ROWS}, default_registry())
    assert "dataResolver" not in json.dumps(resolved)


def test_failing_transform_falls_back_to_empty():
    props = {"series": [{"name": "bad", "data": [PRICE], "dataResolver": "(d) => { return d.foo.bar; }"}]}
    resolved = resolve_props(props, {PRICE: ROWS}, default_registry())
    assert resolved["series"][0]["data"] == []


def test_resolution_is_pure_and_deterministic():
    props = _props()
    data_map = {PRICE: ROWS}
    props_before = copy.deepcopy(props)
    data_before = copy.deepcopy(data_map)

    first = resolve_props(props, data_map, default_registry())
    second = resolve_props(props, data_map, default_registry())

    assert json.dumps(first, sort_keys=True) == json.dumps(second, sort_keys=True)
    assert props == props_before
    assert data_map == data_before

    first["series"][0]["data"].append(999)
    assert data_map == data_before


def test_resolve_widget_data_uses_payload_or_transform():
    registry = default_registry()
    bare = WidgetDescriptor(kind=None, data=PRICE)
    assert resolve_widget_data(bare, {PRICE: ROWS}, registry) == ROWS
    assert resolve_widget_data(bare, {}, registry) == []

    transformed = WidgetDescriptor(data=[PRICE], dataResolver="pluck:close")
    assert resolve_widget_data(transformed, {PRICE: ROWS}, registry) == [10.0, 11.0]

    text = WidgetDescriptor(kind="text", props={"data": "Plain markdown"})
    assert resolve_widget_data(text, {}, registry) == "Plain markdown"

    assert resolve_widget_data(WidgetDescriptor(), {}, registry) is None


def test_parse_widget_descriptor_validates_chart_data():
    raw = json.dumps({"widgets": [{"type": "news", "props": None, "data": PRICE}]})
    descriptor = parse_widget_descriptor(raw)
    assert descriptor is not None
    assert descriptor.kind == "news"
    assert descriptor.props == {}

    assert parse_widget_descriptor("{not json") is None
    assert parse_widget_descriptor(json.dumps({"widgets": []})) is None
    assert parse_widget_descriptor(None) is None


def test_house_style_normalizes_axes_grid_tooltip_and_lines():
    props = {
        "xAxis": {"data": ["a"], "axisLabel": {"rotate": 45}},
        "yAxis": [{"type": "value"}, {"type": "value", "axisLine": {"show": True}}],
        "grid": {"0": {"top": 10}, "1": {"top": 200}},
        "tooltip": {"trigger": "item"},
        "series": [{"type": "line", "itemStyle": {"color": "#123456"}}, {"type": "bar"}],
    }
    styled = apply_house_style(props)

    assert styled["xAxis"]["axisLabel"]["rotate"] == 45
    assert styled["xAxis"]["axisLabel"]["fontSize"] == 10
    assert styled["xAxis"]["axisTick"] == {"show": False}
    assert styled["yAxis"][1]["axisLine"] == {"show": True}
    assert styled["grid"] == [{"containLabel": True, "top": 10}, {"containLabel": True, "top": 200}]
    assert styled["tooltip"]["trigger"] == "item"
    assert styled["tooltip"]["borderRadius"] == 6

    line, bar = styled["series"]
    assert line["lineStyle"]["width"] == 1
    assert line["showSymbol"] is False
    assert line["emphasis"]["itemStyle"]["color"] == "#123456"
    assert "lineStyle" not in bar
    assert styled["backgroundColor"] == "transparent"


def test_house_style_default_grid():
    assert apply_house_style({})["grid"] == {"top": 50, "right": 12, "bottom": 0, "left": 12, "containLabel": True}
    merged = apply_house_style({"grid": {"top": 80}})["grid"]
    assert merged["top"] == 80 and merged["containLabel"] is True
