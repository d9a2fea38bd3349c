"""
Widget Classifier.

Picks a renderer and a layout span for a widget, from its declared kind or,
when none is declared, from the shape of its resolved data. Pure function of
its inputs.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable

from dashboard.typedoc import infer_field_roles
from shared.models import FieldDef, WidgetDescriptor

CHART = "chart"
AUTO_CHART = "auto_chart"
NEWS = "news"
SOCIAL = "social"
TEXT = "text"
KPI = "kpi"
TABLE = "table"

FULL_WIDTH_KINDS = frozenset({NEWS, SOCIAL, TEXT})

KPI_MAX_RECORDS = 5
AUTO_CHART_MIN_RECORDS = 6

_DECLARED_KINDS = {
    "chart": CHART,
    "echarts": CHART,
    "news": NEWS,
    "twitter": SOCIAL,
    "social": SOCIAL,
    "tweets": SOCIAL,
    "text": TEXT,
    "markdown": TEXT,
    "kpi": KPI,
    "table": TABLE,
}

# Name tokens that mark a field as playing a feed role.
ROLE_TOKENS: dict[str, frozenset[str]] = {
    "content": frozenset({"content", "text", "body", "tweet", "summary"}),
    "author": frozenset({"author", "user", "username", "screen", "handle", "source", "publisher", "by"}),
    "social": frozenset({
        "likes", "like", "favorites", "favorite", "retweets", "retweet",
        "reposts", "repost", "comments", "comment", "replies", "reply",
    }),
    "title": frozenset({"title", "headline"}),
    "url": frozenset({"url", "link", "href"}),
    "time": frozenset({"time", "date", "timestamp", "published", "created", "ts"}),
}


@dataclass(frozen=True)
class Classification:
    kind: str
    span: int


def _name_tokens(name: str) -> set[str]:
    lowered = name.lower()
    return {lowered, *(token for token in re.split(r"[^a-z0-9]+", lowered) if token)}


def find_field(names: Iterable[str], role: str) -> str | None:
    """First field name whose tokens include one of the role's marker tokens."""
    markers = ROLE_TOKENS[role]
    for name in names:
        if _name_tokens(name) & markers:
            return name
    return None


def layout_span(kind: str, widget_count: int) -> int:
    """Columns (of 12) a widget occupies."""
    if kind in FULL_WIDTH_KINDS:
        return 12
    return {1: 12, 2: 6, 3: 4}.get(widget_count, 6)


def _is_empty(data: Any) -> bool:
    return data is None or (isinstance(data, (list, dict)) and len(data) == 0)


def _is_records(data: Any) -> bool:
    return isinstance(data, list) and bool(data) and all(isinstance(item, dict) for item in data)


def _classify_records(records: list[dict[str, Any]], fields: list[FieldDef]) -> str:
    names = [field.name for field in fields]
    has_content = find_field(names, "content") is not None
    has_author = find_field(names, "author") is not None

    if has_content and has_author:
        return SOCIAL if find_field(names, "social") is not None else NEWS
    if find_field(names, "title") is not None and find_field(names, "url") is not None:
        return NEWS

    roles = infer_field_roles(fields)
    if len(records) <= KPI_MAX_RECORDS and len(roles.value_fields) >= 2:
        return KPI
    if roles.time_field is not None and roles.value_fields and len(records) >= AUTO_CHART_MIN_RECORDS:
        return AUTO_CHART
    if len(fields) >= 3 and len(records) > 1:
        return TABLE
    return TEXT


def classify_kind(descriptor: WidgetDescriptor, data: Any, fields: list[FieldDef]) -> str | None:
    declared = _DECLARED_KINDS.get(str(descriptor.kind or "").strip().lower())
    if declared is not None:
        return declared

    if isinstance(data, str):
        return TEXT
    if _is_empty(data):
        props = descriptor.props
        if "series" in props or "xAxis" in props:
            return CHART
        return None
    if _is_records(data):
        return _classify_records(data, fields)
    return TEXT


def classify_widget(
    descriptor: WidgetDescriptor,
    data: Any,
    fields: list[FieldDef],
    widget_count: int,
) -> Classification | None:
    """Renderer kind and span, or None when no renderer applies."""
    kind = classify_kind(descriptor, data, fields)
    if kind is None:
        return None
    return Classification(kind=kind, span=layout_span(kind, widget_count))
