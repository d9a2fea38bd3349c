from __future__ import annotations

import pytest

from dashboard.classifier import (
    AUTO_CHART,
    CHART,
    KPI,
    NEWS,
    SOCIAL,
    TABLE,
    TEXT,
    classify_widget,
    layout_span,
)
from dashboard.typedoc import infer_fields_from_records
from shared.models import FieldDef, WidgetDescriptor


def _classify(data, descriptor=None, fields=None, widget_count=4):
    descriptor = descriptor or WidgetDescriptor()
    if fields is None:
        fields = infer_fields_from_records(data) if isinstance(data, list) and data and isinstance(data[0], dict) else []
    return classify_widget(descriptor, data, fields, widget_count)


@pytest.mark.parametrize(
    "kind, expected",
    [("news", NEWS), ("twitter", SOCIAL), ("text", TEXT), ("chart", CHART), ("ECharts", CHART)],
)
def test_declared_kind_dispatches_directly(kind, expected):
    result = _classify([{"a": 1, "b": 2}], descriptor=WidgetDescriptor(kind=kind))
    assert result.kind == expected


def test_plain_string_is_text():
    assert _classify("Markdown summary").kind == TEXT


def test_empty_data_with_chart_props_is_prebuilt_chart():
    descriptor = WidgetDescriptor(props={"series": [{"type": "line", "data": [1, 2]}]})
    assert _classify(None, descriptor=descriptor).kind == CHART
    assert _classify([], descriptor=WidgetDescriptor(props={"xAxis": {}})).kind == CHART


def test_empty_data_without_chart_props_is_unclassifiable():
    assert _classify(None) is None
    assert _classify([]) is None


def test_social_records():
    rows = [{"content": "NVDA to the moon", "author": "@trader", "likes": 10, "retweets": 2}]
    assert _classify(rows).kind == SOCIAL


def test_content_author_without_stats_is_news():
    rows = [{"content": "Earnings beat", "author": "Reuters"}]
    assert _classify(rows).kind == NEWS


def test_title_url_records_are_news():
    rows = [{"title": "NVDA beats", "url": "https://example.com/a", "published_at": 1700000000}]
    assert _classify(rows).kind == NEWS


def test_few_records_with_two_numeric_fields_are_kpi():
    assert _classify([{"a": 1, "b": 2}, {"a": 3, "b": 4}]).kind == KPI


def test_time_indexed_records_are_auto_chart():
    rows = [{"ts": 1700000000000 + i, "price": 100 + i} for i in range(6)]
    fields = [FieldDef(name="ts", type="number", desc="timestamp in ms"), FieldDef(name="price", type="number", desc="price")]
    assert _classify(rows, fields=fields).kind == AUTO_CHART


def test_wide_records_without_time_are_table():
    rows = [{"symbol": f"S{i}", "pe": i, "eps": i * 2} for i in range(8)]
    assert _classify(rows).kind == TABLE


def test_narrow_records_fall_back_to_text():
    assert _classify([{"only": "one"}]).kind == TEXT
    assert _classify({"nested": {"value": 1}}).kind == TEXT


def test_classification_is_deterministic():
    rows = [{"a": 1, "b": 2}]
    assert _classify(rows) == _classify(rows)


def test_layout_span():
    assert layout_span(NEWS, 2) == 12
    assert layout_span(TEXT, 1) == 12
    assert layout_span(CHART, 1) == 12
    assert layout_span(CHART, 2) == 6
    assert layout_span(KPI, 3) == 4
    assert layout_span(TABLE, 7) == 6
    assert _classify([{"a": 1, "b": 2}], widget_count=3).span == 4


def test_empty_string_is_still_text():
    assert _classify("").kind == TEXT
    assert _classify("", widget_count=2).span == 12
