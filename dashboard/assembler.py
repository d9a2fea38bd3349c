"""
Document Assembler.

Runs every widget through typedoc merge → classification → rendering, then
wraps the fragments in one self-contained HTML document.
"""

from __future__ import annotations

import html
import logging
from datetime import datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dashboard.classifier import AUTO_CHART, CHART, KPI, NEWS, SOCIAL, TABLE, TEXT, classify_widget
from dashboard.renderers import (
    CardContext,
    build_auto_chart_props,
    render_chart,
    render_kpi_grid,
    render_news_feed,
    render_social_feed,
    render_table,
    render_text,
)
from dashboard.resolver import apply_house_style, parse_widget_descriptor, resolve_props, resolve_widget_data
from dashboard.transforms import TransformRegistry, default_registry
from dashboard.typedoc import infer_field_roles, infer_fields_from_records, merge_fields, parse_typedoc
from dashboard.uris import extract_data_uris, parse_data_uri
from shared.models import DashboardConfig, RenderResult, SeriesBundle, Widget, WidgetDescriptor
from shared.settings import AlvaSettings

logger = logging.getLogger(__name__)

DEFAULT_DASHBOARD_NAME = "Alva Dashboard"

STYLE_SHEET = """
:root {
  --text-n10: rgb(0,0,0);
  --text-n9: rgba(0,0,0,0.9);
  --text-n7: rgba(0,0,0,0.7);
  --text-n5: rgba(0,0,0,0.5);
  --text-n3: rgba(0,0,0,0.3);
  --main-m1: #49A3A6;
  --main-m3: #2a9b7d;
  --main-m4: #e05357;
  --main-m5: #E6A91A;
  --b0-page: #ffffff;
  --grey-g01: #fafafa;
  --line-l07: rgba(0,0,0,0.07);
  --line-l05: rgba(0,0,0,0.05);
  --spacing-xs: 8px;
  --spacing-s: 12px;
  --spacing-m: 16px;
  --spacing-l: 20px;
  --spacing-xl: 24px;
  --radius-ct-s: 4px;
  --radius-ct-m: 6px;
}
* { margin:0; padding:0; box-sizing:border-box; }
body {
  background: var(--b0-page);
  font-family: 'Delight', -apple-system, BlinkMacSystemFont, sans-serif;
  padding: var(--spacing-xl);
  max-width: 2560px;
  margin: 0 auto;
  -webkit-font-smoothing: antialiased;
}
.dashboard-header { margin-bottom: var(--spacing-xl); }
.dashboard-title { font-size: 22px; font-weight: 400; color: var(--text-n9); letter-spacing: 0.3px; }
.dashboard-desc { font-size: 14px; color: var(--text-n5); margin-top: var(--spacing-xs); line-height: 22px; }
.dashboard-grid {
  display: grid;
  grid-template-columns: repeat(12, minmax(0, 1fr));
  gap: var(--spacing-xl);
}
.widget-card { display: flex; flex-direction: column; position: relative; overflow: hidden; min-width: 0; }
.widget-title { display: flex; align-items: center; justify-content: space-between; height: 22px; margin-bottom: var(--spacing-m); }
.widget-title-text { font-size: 14px; color: var(--text-n9); letter-spacing: 0.14px; line-height: 22px; }
.widget-timestamp { font-size: 12px; color: var(--text-n5); line-height: 20px; }
.widget-body { border-radius: var(--radius-ct-m); overflow: hidden; background: var(--grey-g01); padding: var(--spacing-m); }
.chart-dotted-background {
  padding: 0;
  background-color: #ffffff;
  background-image: radial-gradient(circle, rgba(0,0,0,0.18) 0.6px, transparent 0.6px);
  background-size: 3px 3px;
}
.chart-body { flex: 1; padding: var(--spacing-m); position: relative; }
.alva-watermark {
  position: absolute; bottom: var(--spacing-m); left: var(--spacing-m);
  font-size: 16px; font-weight: 600; color: var(--text-n10); opacity: 0.2;
}
.feed { list-style: none; }
.feed-item { padding: var(--spacing-s) 0; border-bottom: 1px solid var(--line-l07); }
.feed-item:last-child { border-bottom: none; }
.feed-headline { font-size: 14px; color: var(--text-n9); line-height: 22px; }
.feed-headline a { color: inherit; text-decoration: none; }
.feed-headline a:hover { color: var(--main-m1); }
.feed-meta { font-size: 12px; color: var(--text-n5); margin-top: 2px; }
.feed-summary, .social-content { font-size: 13px; color: var(--text-n7); margin-top: 4px; line-height: 20px; }
.social-stats { display: flex; gap: var(--spacing-s); font-size: 12px; color: var(--text-n5); margin-top: 4px; }
.text-body p { font-size: 14px; color: var(--text-n7); line-height: 22px; margin-bottom: var(--spacing-xs); }
.text-dump { font-size: 12px; color: var(--text-n7); white-space: pre-wrap; word-break: break-word; }
.kpi-grid { display: grid; grid-template-columns: repeat(auto-fit, minmax(140px, 1fr)); gap: var(--spacing-m); }
.kpi-item { background: var(--b0-page); border-radius: var(--radius-ct-s); padding: var(--spacing-m); }
.kpi-value { font-size: 22px; color: var(--text-n9); }
.kpi-label { font-size: 12px; color: var(--text-n5); margin-top: 4px; }
.kpi-delta { font-size: 12px; }
.kpi-delta.up { color: var(--main-m3); }
.kpi-delta.down { color: var(--main-m4); }
.table-wrap { overflow-x: auto; }
.data-table { width: 100%; border-collapse: collapse; font-size: 12px; }
.data-table th { text-align: left; color: var(--text-n5); font-weight: 400; padding: 6px 8px; border-bottom: 1px solid var(--line-l07); }
.data-table td { color: var(--text-n9); padding: 6px 8px; border-bottom: 1px solid var(--line-l05); }
.empty { font-size: 13px; color: var(--text-n3); }
.footer { margin-top: var(--spacing-xl); text-align: center; font-size: 11px; color: var(--text-n3); }
"""


def _zone(settings: AlvaSettings):
    try:
        return ZoneInfo(settings.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone '%s', falling back to UTC", settings.timezone)
        return timezone.utc


def format_widget_timestamp(value: Any, settings: AlvaSettings) -> str:
    """`create_time` (ISO string or epoch) → MM/DD/YYYY, HH:MM in the configured zone."""
    if value is None or value == "":
        return ""
    moment: datetime | None = None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000 if abs(value) >= 1e11 else value
        try:
            moment = datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return str(value)
    else:
        text = str(value).strip()
        try:
            moment = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return text
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(_zone(settings)).strftime("%m/%d/%Y, %H:%M")


def _widget_typedocs(widget: Widget, bundle: SeriesBundle) -> list[dict[str, Any]]:
    docs: list[dict[str, Any]] = []
    for uri in extract_data_uris(widget.chart_data):
        doc = bundle.typedocs.get(uri)
        if not doc:
            continue
        parsed = parse_data_uri(uri)
        docs.append({
            "node": parsed.node_name if parsed else None,
            "output": parsed.output_name if parsed else None,
            "typedoc": doc,
        })
    return docs


def _records(data: Any) -> list[dict[str, Any]]:
    if isinstance(data, list) and all(isinstance(item, dict) for item in data):
        return data
    return []


def render_widget(
    widget: Widget,
    descriptor: WidgetDescriptor,
    index: int,
    widget_count: int,
    bundle: SeriesBundle,
    settings: AlvaSettings,
    transforms: TransformRegistry,
) -> RenderResult | None:
    """Render one widget, or None (with a warning) when no renderer applies."""
    typedocs = _widget_typedocs(widget, bundle)
    field_map = merge_fields(parse_typedoc(doc["typedoc"]) for doc in typedocs)

    data = resolve_widget_data(descriptor, bundle.data, transforms)
    records = _records(data)
    fields = infer_fields_from_records(records, field_map) if records else list(field_map.values())

    classification = classify_widget(descriptor, data, fields, widget_count)
    if classification is None:
        logger.warning("Dropping widget '%s': no renderer matches its data", widget.name)
        return None

    ctx = CardContext(
        anchor_id=f"chart_{index}",
        title=widget.name or "",
        timestamp=format_widget_timestamp(widget.create_time, settings),
        span=classification.span,
        typedocs=typedocs,
    )
    kind = classification.kind
    logger.debug("Widget '%s' classified as %s (span %d)", widget.name, kind, classification.span)

    if kind == CHART:
        props = apply_house_style(resolve_props(descriptor.props, bundle.data, transforms))
        return render_chart(ctx, props, field_map)
    if kind == AUTO_CHART:
        props = apply_house_style(build_auto_chart_props(records, infer_field_roles(fields)))
        return render_chart(ctx, props, {f.name: f for f in fields})
    if kind == NEWS:
        return render_news_feed(ctx, records, fields)
    if kind == SOCIAL:
        return render_social_feed(ctx, records, fields)
    if kind == KPI:
        return render_kpi_grid(ctx, records, infer_field_roles(fields))
    if kind == TABLE:
        return render_table(ctx, records, fields)
    if kind == TEXT:
        return render_text(ctx, data)

    logger.warning("Dropping widget '%s': unknown renderer '%s'", widget.name, kind)
    return None


def render_widgets(
    config: DashboardConfig,
    bundle: SeriesBundle,
    settings: AlvaSettings,
    transforms: TransformRegistry | None = None,
) -> list[RenderResult]:
    registry = transforms or default_registry()
    widget_count = len(config.widgets)
    results: list[RenderResult] = []
    for index, widget in enumerate(config.widgets):
        descriptor = parse_widget_descriptor(widget.chart_data)
        if descriptor is None:
            logger.warning("Dropping widget '%s': no widget definition in chartData", widget.name)
            continue
        result = render_widget(widget, descriptor, index, widget_count, bundle, settings, registry)
        if result is not None:
            results.append(result)
    return results


def assemble_document(
    config: DashboardConfig,
    results: list[RenderResult],
    generated_at: str,
    settings: AlvaSettings,
) -> str:
    """Concatenate rendered fragments into one HTML document. Fragments are embedded as is."""
    name = html.escape(config.name or DEFAULT_DASHBOARD_NAME)
    description = (
        f'<div class="dashboard-desc">{html.escape(config.description)}</div>' if config.description else ""
    )
    cards = "\n".join(result.html for result in results)
    scripts = "\n".join(result.script for result in results if result.script)

    return f"""<!DOCTYPE html>
<html lang="zh">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>{name}</title>
<script src="{html.escape(settings.echarts_url)}"></script>
<style>{STYLE_SHEET}</style>
</head>
<body>

<div class="dashboard-header">
  <div class="dashboard-title">{name}</div>
  {description}
</div>

<div class="dashboard-grid">
{cards}
</div>

<div class="footer">
  Generated {html.escape(generated_at)} · Data by Alva · Rendered with Alva Design System
</div>

<script>
{scripts}
</script>
</body>
</html>"""


def render_dashboard(
    config: DashboardConfig,
    bundle: SeriesBundle,
    settings: AlvaSettings,
    transforms: TransformRegistry | None = None,
    now: datetime | None = None,
) -> str:
    """Full pipeline from config + fetched data to the HTML document."""
    moment = now or datetime.now(timezone.utc)
    generated_at = moment.astimezone(_zone(settings)).strftime("%Y-%m-%d %H:%M:%S")
    results = render_widgets(config, bundle, settings, transforms)
    return assemble_document(config, results, generated_at, settings)
