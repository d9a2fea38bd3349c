from __future__ import annotations

import json
import re
from datetime import datetime, timezone

import pytest

from dashboard.assembler import assemble_document, format_widget_timestamp, render_dashboard, render_widgets
from shared.models import DashboardConfig, RenderResult, SeriesBundle
from shared.settings import AlvaSettings

SETTINGS = AlvaSettings(timezone="UTC")
NOW = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

TS_URI = "alva://time_series/9/prices/daily"
KPI_URI = "alva://time_series/9/metrics/latest"
CHART_URI = "alva://time_series/9/rsi/rsi14"


def _widget(name: str, descriptor: dict) -> dict:
    return {
        "name": name,
        "status": "completed",
        "chartData": json.dumps({"widgets": [descriptor]}),
        "create_time": "2024-01-01T08:30:00Z",
    }


def _config(*widgets: dict) -> DashboardConfig:
    return DashboardConfig.model_validate({"name": "NVDA <Board>", "description": "Price & RSI", "config": list(widgets)})


def test_auto_line_chart_end_to_end():
    rows = [{"ts": 1704067200000 + i * 86_400_000, "price": 100 + i} for i in range(6)]
    config = _config(_widget("Price", {"data": TS_URI}))
    bundle = SeriesBundle(
        data={TS_URI: rows},
        typedocs={TS_URI: "Daily prices\nfields:\n- ts(number): timestamp in ms\n- price(number): close price"},
    )

    results = render_widgets(config, bundle, SETTINGS)

    assert len(results) == 1
    result = results[0]
    assert len(re.findall(r'<div id="chart_\d+"', result.html)) == 1
    assert result.script is not None and "chart_0" in result.script
    assert '"2024-01-06"' in result.script
    assert result.span == 12


def test_kpi_grid_end_to_end():
    config = _config(_widget("Metrics", {"data": KPI_URI}))
    bundle = SeriesBundle(data={KPI_URI: [{"a": 1, "b": 2}, {"a": 3, "b": 4}]})

    results = render_widgets(config, bundle, SETTINGS)

    assert len(results) == 1
    assert results[0].html.count('class="kpi-item"') == 2
    assert results[0].script is None


def test_prebuilt_chart_uses_resolved_props_and_typedoc_tooltips():
    descriptor = {
        "kind": "chart",
        "props": {
            "xAxis": {"data": [CHART_URI], "dataResolver": "dates:date"},
            "series": [{"name": "RSI(14)", "type": "line", "data": [CHART_URI], "dataResolver": "pluck:rsi14"}],
        },
    }
    config = _config(_widget("RSI", descriptor), _widget("Notes", {"kind": "text", "data": "Momentum is strong."}))
    bundle = SeriesBundle(
        data={CHART_URI: [{"date": 1704067200000, "rsi14": 55.5}]},
        typedocs={CHART_URI: "fields:\n- date(number): timestamp\n- rsi14(number): RSI(14) value (0-100)"},
    )

    chart, text = render_widgets(config, bundle, SETTINGS)

    assert chart.span == 6
    assert "[55.5]" in chart.script
    assert '"RSI(14)": "RSI(14) value (0-100)"' in chart.script
    assert "dataResolver" not in chart.script
    assert "data-typedoc=" in chart.html
    assert text.span == 12
    assert "Momentum is strong." in text.html


def test_unrenderable_widgets_are_dropped():
    config = _config(
        _widget("Empty", {"props": {}}),
        {"name": "Broken", "chartData": "{oops"},
        {"name": "Missing", "chartData": None},
    )
    assert render_widgets(config, SeriesBundle(), SETTINGS) == []


def test_missing_series_data_renders_empty_chart():
    descriptor = {"props": {"series": [{"name": "x", "type": "line", "data": [CHART_URI], "dataResolver": "pluck:x"}]}}
    results = render_widgets(_config(_widget("No data", descriptor)), SeriesBundle(), SETTINGS)
    assert len(results) == 1
    assert '"data": []' in results[0].script


def test_render_dashboard_assembles_document():
    config = _config(_widget("Notes", {"kind": "text", "data": "hello"}))
    document = render_dashboard(config, SeriesBundle(), SETTINGS, now=NOW)

    assert document.startswith("<!DOCTYPE html>")
    assert "<title>NVDA &lt;Board&gt;</title>" in document
    assert "Price &amp; RSI" in document
    assert SETTINGS.echarts_url in document
    assert "Generated 2024-01-02 03:04:05" in document
    assert "01/01/2024, 08:30" in document


def test_assemble_document_keeps_script_order():
    results = [
        RenderResult(html="<div>one</div>", script="first();", span=6),
        RenderResult(html="<div>two</div>", span=12),
        RenderResult(html="<div>three</div>", script="second();", span=6),
    ]
    document = assemble_document(DashboardConfig(), results, "now", SETTINGS)
    assert "<title>Alva Dashboard</title>" in document
    assert document.index("<div>one</div>") < document.index("<div>three</div>")
    assert document.index("first();") < document.index("second();")


def test_widget_timestamp_formats():
    shanghai = AlvaSettings(timezone="Asia/Shanghai")
    assert format_widget_timestamp("2024-01-01T08:30:00Z", shanghai) == "01/01/2024, 16:30"
    assert format_widget_timestamp(1704067200000, SETTINGS) == "01/01/2024, 00:00"
    assert format_widget_timestamp("yesterday", SETTINGS) == "yesterday"
    assert format_widget_timestamp(None, SETTINGS) == ""


@pytest.mark.parametrize(
    "kind, marker",
    [("kpi", "No data"), ("table", "No data"), ("news", "No items"), ("twitter", "No posts")],
)
def test_declared_kind_with_failed_fetch_renders_empty_state(kind, marker):
    config = _config(_widget("Missing", {"kind": kind, "data": KPI_URI}))

    results = render_widgets(config, SeriesBundle(), SETTINGS)

    assert len(results) == 1
    assert '<div class="empty">' in results[0].html
    assert marker in results[0].html


def test_declared_kpi_with_non_record_data_renders_empty_state():
    config = _config(_widget("Odd", {"kind": "kpi", "data": KPI_URI}))
    bundle = SeriesBundle(data={KPI_URI: {"value": 3}})

    results = render_widgets(config, bundle, SETTINGS)

    assert len(results) == 1
    assert 'class="kpi-item"' not in results[0].html
    assert "No data" in results[0].html


def test_out_of_range_epochs_do_not_abort_render():
    rows = [{"title": "Far future", "url": "https://example.com/x", "published": 1e20}]
    widget = _widget("News", {"kind": "news", "data": TS_URI})
    widget["create_time"] = 1e20
    document = render_dashboard(_config(widget), SeriesBundle(data={TS_URI: rows}), SETTINGS, now=NOW)

    assert "Far future" in document
    assert "1e+20" in document


def test_empty_string_data_renders_text_card():
    results = render_widgets(_config(_widget("Blank", {"data": ""})), SeriesBundle(), SETTINGS)
    assert len(results) == 1
    assert "No content" in results[0].html
    assert results[0].span == 12
