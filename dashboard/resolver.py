"""
Data Resolver.

Responsibility:
- Validate a widget's embedded chartData into a WidgetDescriptor
- Substitute fetched series into ECharts options (xAxis / yAxis / series)
- Normalize the result to the Alva house style
- Never mutate the fetched data mapping
"""

from __future__ import annotations

import copy
import json
import logging
from typing import Any, Mapping

from pydantic import ValidationError

from dashboard.transforms import TransformError, TransformRegistry
from dashboard.uris import is_data_uri
from shared.models import WidgetDescriptor

logger = logging.getLogger(__name__)

FONT_FAMILY = "'Delight',-apple-system,BlinkMacSystemFont,sans-serif"
ACCENT_COLOR = "#49A3A6"

_AXIS_STYLE: dict[str, Any] = {
    "axisLine": {"show": False},
    "axisTick": {"show": False},
    "axisLabel": {"fontSize": 10, "color": "rgba(0,0,0,0.7)", "fontFamily": FONT_FAMILY, "margin": 8},
    "splitLine": {"show": False},
}

_DEFAULT_GRID: dict[str, Any] = {"top": 50, "right": 12, "bottom": 0, "left": 12, "containLabel": True}

_TOOLTIP_STYLE: dict[str, Any] = {
    "trigger": "axis",
    "backgroundColor": "rgba(255,255,255,0.96)",
    "borderColor": "rgba(0,0,0,0.08)",
    "borderWidth": 1,
    "borderRadius": 6,
    "padding": 12,
    "textStyle": {"fontFamily": FONT_FAMILY, "fontSize": 12, "fontWeight": 400, "color": "rgba(0,0,0,0.9)"},
    "axisPointer": {"type": "line", "lineStyle": {"color": "rgba(0,0,0,0.1)", "width": 1}},
    "extraCssText": "box-shadow:none;",
}


def parse_widget_descriptor(chart_data: str | None) -> WidgetDescriptor | None:
    """First descriptor of a widget's chartData, or None when absent or malformed."""
    if not chart_data:
        return None
    try:
        payload = json.loads(chart_data)
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning("Malformed chartData: %s", e)
        return None

    widgets = payload.get("widgets") if isinstance(payload, dict) else None
    if not isinstance(widgets, list) or not widgets or not isinstance(widgets[0], dict):
        return None

    raw = dict(widgets[0])
    if not raw.get("kind") and isinstance(raw.get("type"), str):
        raw["kind"] = raw["type"]
    if not isinstance(raw.get("props"), dict):
        raw["props"] = {}
    try:
        return WidgetDescriptor.model_validate(raw)
    except ValidationError as e:
        logger.warning("Invalid widget descriptor: %s", e)
        return None


def _as_entries(value: Any) -> list[dict[str, Any]]:
    if isinstance(value, list):
        return [entry for entry in value if isinstance(entry, dict)]
    if isinstance(value, dict):
        return [value]
    return []


def _placeholder_uri(data: Any) -> str | None:
    if isinstance(data, list) and len(data) == 1 and is_data_uri(data[0]):
        return data[0]
    return None


def _apply_transform(
    transforms: TransformRegistry,
    resolver: str,
    payload: Any,
    uri: str,
) -> Any:
    try:
        # Transforms get their own copy so placed arrays never alias fetched data.
        return transforms.apply(resolver, copy.deepcopy(payload))
    except TransformError as e:
        logger.warning("Data resolver failed for %s: %s", uri, e)
        return []


def _resolve_entry(entry: dict[str, Any], data_map: Mapping[str, Any], transforms: TransformRegistry) -> None:
    uri = _placeholder_uri(entry.get("data"))
    if uri is not None:
        resolver = entry.get("dataResolver")
        if uri in data_map and isinstance(resolver, str) and resolver.strip():
            entry["data"] = _apply_transform(transforms, resolver, data_map[uri], uri)
        else:
            entry["data"] = []
    entry.pop("dataResolver", None)


def resolve_props(
    props: Mapping[str, Any],
    data_map: Mapping[str, Any],
    transforms: TransformRegistry,
) -> dict[str, Any]:
    """Deep copy of `props` with every `["alva://..."]` data placeholder resolved."""
    resolved = copy.deepcopy(dict(props))
    for key in ("xAxis", "yAxis", "series"):
        for entry in _as_entries(resolved.get(key)):
            _resolve_entry(entry, data_map, transforms)
    return resolved


def resolve_widget_data(
    descriptor: WidgetDescriptor,
    data_map: Mapping[str, Any],
    transforms: TransformRegistry,
) -> Any:
    """
    Widget-level data for non-chart kinds.

    A URI (bare or single-element list) resolves to its payload, passed through
    the descriptor's dataResolver when one is set. Other values are returned as is.
    """
    raw = descriptor.data
    if raw is None:
        raw = descriptor.props.get("data")

    uri = raw if is_data_uri(raw) else _placeholder_uri(raw)
    if uri is None:
        return copy.deepcopy(raw)
    if uri not in data_map:
        return []
    if descriptor.data_resolver:
        return _apply_transform(transforms, descriptor.data_resolver, data_map[uri], uri)
    return copy.deepcopy(data_map[uri])


def _style_axes(value: Any) -> None:
    for axis in _as_entries(value):
        label = {**_AXIS_STYLE["axisLabel"], **(axis.get("axisLabel") or {})}
        merged = {**copy.deepcopy(_AXIS_STYLE), **axis, "axisLabel": label}
        axis.clear()
        axis.update(merged)


def _normalize_grid(grid: Any) -> Any:
    if isinstance(grid, list):
        return [{"containLabel": True, **g} for g in grid if isinstance(g, dict)]
    if isinstance(grid, dict):
        indexed = sorted((k for k in grid if str(k).isdigit()), key=int)
        if indexed:
            return [{"containLabel": True, **grid[k]} for k in indexed if isinstance(grid[k], dict)]
        return {**_DEFAULT_GRID, **grid}
    return dict(_DEFAULT_GRID)


def apply_house_style(props: dict[str, Any]) -> dict[str, Any]:
    """Apply Alva design tokens in place and return `props`."""
    _style_axes(props.get("xAxis"))
    _style_axes(props.get("yAxis"))
    props["grid"] = _normalize_grid(props.get("grid"))

    server_tooltip = props.get("tooltip") if isinstance(props.get("tooltip"), dict) else {}
    props["tooltip"] = {**copy.deepcopy(_TOOLTIP_STYLE), **server_tooltip}

    for series in _as_entries(props.get("series")):
        if series.get("type") != "line":
            continue
        line_style = {**(series.get("lineStyle") or {}), "width": 1}
        item_color = (series.get("itemStyle") or {}).get("color") or line_style.get("color") or ACCENT_COLOR
        series["lineStyle"] = line_style
        series["symbol"] = "circle"
        series["symbolSize"] = 10
        series["showSymbol"] = False
        series["emphasis"] = {"itemStyle": {"borderColor": "#ffffff", "borderWidth": 1, "color": item_color}}

    props["backgroundColor"] = "transparent"
    return props
