"""
Widget renderers.

One function per presentation kind. Each takes a CardContext plus the widget's
resolved data and returns a RenderResult; chart-bearing kinds also return the
ECharts initialization script for their anchor. All text is escaped here.
"""

from __future__ import annotations

import html
import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping

from dashboard.classifier import find_field
from dashboard.transforms import format_date
from shared.models import FieldDef, FieldRoles, RenderResult

FEED_MAX_ITEMS = 20
TABLE_MAX_ROWS = 50
CHART_HEIGHT_PX = 340


@dataclass(frozen=True)
class CardContext:
    """Per-widget chrome shared by every renderer."""
    anchor_id: str
    title: str
    timestamp: str
    span: int
    typedocs: list[dict[str, Any]] = field(default_factory=list)


def _escape(value: Any) -> str:
    return html.escape("" if value is None else str(value), quote=False)


def _escape_attr(value: Any) -> str:
    escaped = html.escape("" if value is None else str(value), quote=True)
    return escaped.replace("\n", " ").replace("\r", " ")


def _script_json(value: Any) -> str:
    """JSON safe to embed inside a <script> element."""
    return json.dumps(value, ensure_ascii=False, default=str).replace("</", "<\\/")


def _format_number(value: Any) -> str:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return "" if value is None else str(value)
    if isinstance(value, int) or float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.2f}"


def _format_when(value: Any) -> str:
    if isinstance(value, bool) or value is None:
        return ""
    if isinstance(value, (int, float)):
        seconds = value / 1000 if abs(value) >= 1e11 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc).strftime("%Y-%m-%d %H:%M")
        except (OverflowError, OSError, ValueError):
            return str(value)
    return str(value)


def _empty(message: str) -> str:
    return f'<div class="empty">{_escape(message)}</div>'


def _safe_url(value: Any) -> str | None:
    url = str(value or "").strip()
    if url.lower().startswith(("http://", "https://")):
        return url
    return None


def _card(ctx: CardContext, body: str, body_class: str = "widget-body") -> str:
    typedoc_attr = f' data-typedoc="{_escape_attr(json.dumps(ctx.typedocs, ensure_ascii=False))}"' if ctx.typedocs else ""
    return f"""
    <div class="widget-card" style="grid-column: span {ctx.span};"{typedoc_attr}>
      <div class="widget-title">
        <span class="widget-title-text">{_escape(ctx.title)}</span>
        <span class="widget-timestamp">{_escape(ctx.timestamp)}</span>
      </div>
      <div class="{body_class}">
        {body}
      </div>
    </div>"""


# ─── Chart ──────────────────────────────────────────────────────

def _normalize_name(name: str) -> str:
    return re.sub(r"[^a-z0-9]", "", name.lower())


def build_series_descriptions(series: Any, field_map: Mapping[str, FieldDef]) -> dict[str, str]:
    """
    Map series name → field description for tooltips.

    Tiers, first hit wins per series:
    1. exact field name
    2. normalized (alphanumeric, lower-case) field name
    3. series name appears in a field description
    4. normalized numeric field name appears in the normalized series name
    """
    descriptions: dict[str, str] = {}
    if not isinstance(series, list) or not field_map:
        return descriptions

    fields = list(field_map.values())
    for entry in series:
        if not isinstance(entry, dict) or not entry.get("name"):
            continue
        name = str(entry["name"])
        normalized = _normalize_name(name)

        exact = field_map.get(name)
        if exact is not None:
            if exact.desc:
                descriptions[name] = exact.desc
            continue

        tiers = (
            lambda f: _normalize_name(f.name) == normalized,
            lambda f: name.lower() in f.desc.lower(),
            lambda f: f.type == "number" and _normalize_name(f.name) in normalized,
        )
        for matches in tiers:
            match = next((f for f in fields if matches(f)), None)
            if match is not None and match.desc:
                descriptions[name] = match.desc
                break

    return descriptions


_TOOLTIP_FORMATTER = """
      opts.tooltip = opts.tooltip || {};
      opts.tooltip.formatter = function(params) {
        if (!Array.isArray(params)) params = [params];
        var esc = function(s) { return String(s).replace(/[&<>"]/g, function(c) { return {'&':'&amp;','<':'&lt;','>':'&gt;','"':'&quot;'}[c]; }); };
        var header = (params[0] && (params[0].axisValueLabel || params[0].name)) || '';
        var out = '<div style="font-weight:500;margin-bottom:6px;font-size:12px">' + esc(header) + '</div>';
        params.forEach(function(p) {
          var desc = descMap[p.seriesName] || '';
          var label = desc ? '<span style="color:rgba(0,0,0,0.5);font-size:10px"> ' + esc(desc) + '</span>' : '';
          var raw = Array.isArray(p.value) ? p.value[p.value.length - 1] : p.value;
          var val = typeof raw === 'number' ? raw.toLocaleString() : raw;
          out += '<div style="display:flex;align-items:center;gap:6px;margin:3px 0">'
            + (p.marker || '') + '<span style="font-size:12px">' + esc(p.seriesName) + ': <b>' + esc(val) + '</b></span>'
            + label + '</div>';
        });
        return out;
      };"""


def render_chart(ctx: CardContext, props: dict[str, Any], field_map: Mapping[str, FieldDef]) -> RenderResult:
    """Card with an ECharts anchor, plus the script that draws `props` into it."""
    descriptions = build_series_descriptions(props.get("series"), field_map)
    body = f"""<div class="chart-body">
          <div id="{_escape_attr(ctx.anchor_id)}" style="width:100%;height:{CHART_HEIGHT_PX}px;"></div>
          <div class="alva-watermark">Alva</div>
        </div>"""

    desc_line = f"\n      const descMap = {_script_json(descriptions)};" if descriptions else ""
    formatter = _TOOLTIP_FORMATTER if descriptions else ""
    script = f"""
    {{
      const chart = echarts.init(document.getElementById({_script_json(ctx.anchor_id)}));{desc_line}
      const opts = {_script_json(props)};{formatter}
      chart.setOption(opts);
      window.addEventListener('resize', () => chart.resize());
    }}"""
    return RenderResult(html=_card(ctx, body, "widget-body chart-dotted-background"), script=script, span=ctx.span)


def build_auto_chart_props(records: list[dict[str, Any]], roles: FieldRoles) -> dict[str, Any]:
    """Line chart options for time-indexed records: one series per value field."""
    time_name = roles.time_field.name if roles.time_field else None
    ordered = records
    if time_name is not None:
        ordered = sorted(
            records,
            key=lambda r: r.get(time_name) if isinstance(r.get(time_name), (int, float)) else float("-inf"),
        )

    return {
        "legend": {"show": len(roles.value_fields) > 1, "top": 0},
        "xAxis": {"type": "category", "data": [format_date(r.get(time_name)) for r in ordered]},
        "yAxis": {"type": "value", "scale": True},
        "series": [
            {"name": f.name, "type": "line", "data": [r.get(f.name) for r in ordered]}
            for f in roles.value_fields
        ],
    }


# ─── Feeds ──────────────────────────────────────────────────────

def _field_names(records: list[dict[str, Any]], fields: list[FieldDef]) -> list[str]:
    names = [f.name for f in fields]
    for record in records:
        names.extend(key for key in record if key not in names)
    return names


def render_news_feed(ctx: CardContext, records: list[dict[str, Any]], fields: list[FieldDef]) -> RenderResult:
    names = _field_names(records, fields)
    title_key = find_field(names, "title")
    url_key = find_field(names, "url")
    source_key = find_field(names, "author")
    time_key = find_field(names, "time")
    summary_key = find_field([n for n in names if n != title_key], "content")

    items: list[str] = []
    for record in records[:FEED_MAX_ITEMS]:
        headline = _escape(record.get(title_key) if title_key else record.get(summary_key))
        url = _safe_url(record.get(url_key)) if url_key else None
        if url:
            headline = f'<a href="{_escape_attr(url)}" target="_blank" rel="noopener">{headline}</a>'
        meta = " · ".join(
            part
            for part in (
                _escape(record.get(source_key)) if source_key else "",
                _escape(_format_when(record.get(time_key))) if time_key else "",
            )
            if part
        )
        summary = ""
        if summary_key and title_key:
            summary = f'<div class="feed-summary">{_escape(record.get(summary_key))}</div>'
        items.append(
            f'<li class="feed-item"><div class="feed-headline">{headline}</div>'
            f'<div class="feed-meta">{meta}</div>{summary}</li>'
        )

    body = f'<ul class="feed news-feed">{"".join(items)}</ul>' if items else _empty("No items")
    return RenderResult(html=_card(ctx, body), span=ctx.span)


def render_social_feed(ctx: CardContext, records: list[dict[str, Any]], fields: list[FieldDef]) -> RenderResult:
    names = _field_names(records, fields)
    content_key = find_field(names, "content")
    author_key = find_field(names, "author")
    time_key = find_field(names, "time")
    stat_keys = [n for n in names if find_field([n], "social")]

    items: list[str] = []
    for record in records[:FEED_MAX_ITEMS]:
        author = _escape(record.get(author_key)) if author_key else ""
        when = _escape(_format_when(record.get(time_key))) if time_key else ""
        stats = "".join(
            f'<span class="social-stat">{_escape(key)}: {_escape(_format_number(record.get(key)))}</span>'
            for key in stat_keys
            if record.get(key) is not None
        )
        items.append(
            f'<li class="feed-item social-item">'
            f'<div class="feed-meta"><b>{author}</b> {when}</div>'
            f'<div class="social-content">{_escape(record.get(content_key)) if content_key else ""}</div>'
            f'<div class="social-stats">{stats}</div></li>'
        )

    body = f'<ul class="feed social-feed">{"".join(items)}</ul>' if items else _empty("No posts")
    return RenderResult(html=_card(ctx, body), span=ctx.span)


# ─── Text / KPI / Table ─────────────────────────────────────────

def render_text(ctx: CardContext, data: Any) -> RenderResult:
    if data is None or (isinstance(data, str) and not data.strip()):
        body = _empty("No content")
    elif isinstance(data, str):
        paragraphs = [p.strip() for p in re.split(r"\n\s*\n", data) if p.strip()]
        body = "".join(f"<p>{_escape(p).replace(chr(10), '<br>')}</p>" for p in paragraphs)
        body = f'<div class="text-body">{body}</div>'
    else:
        dumped = json.dumps(data, ensure_ascii=False, indent=2, default=str)
        body = f'<pre class="text-dump">{_escape(dumped)}</pre>'
    return RenderResult(html=_card(ctx, body), span=ctx.span)


def _latest_two(records: list[dict[str, Any]], roles: FieldRoles) -> tuple[dict[str, Any], dict[str, Any] | None]:
    ordered = records
    if roles.time_field is not None:
        key = roles.time_field.name
        ordered = sorted(
            records,
            key=lambda r: r.get(key) if isinstance(r.get(key), (int, float)) else float("-inf"),
        )
    previous = ordered[-2] if len(ordered) > 1 else None
    return ordered[-1], previous


def render_kpi_grid(ctx: CardContext, records: list[dict[str, Any]], roles: FieldRoles) -> RenderResult:
    """One card per value field: latest value and change vs. the previous record."""
    if not records or not roles.value_fields:
        return RenderResult(html=_card(ctx, _empty("No data")), span=ctx.span)
    latest, previous = _latest_two(records, roles)
    cards: list[str] = []
    for f in roles.value_fields:
        value = latest.get(f.name)
        delta_html = ""
        prev_value = previous.get(f.name) if previous else None
        if (
            isinstance(value, (int, float))
            and isinstance(prev_value, (int, float))
            and not isinstance(value, bool)
            and prev_value != 0
        ):
            change = (value - prev_value) / abs(prev_value) * 100
            tone = "up" if change > 0 else "down" if change < 0 else "neutral"
            delta_html = f'<span class="kpi-delta {tone}">{change:+.2f}%</span>'
        label = _escape(f.name)
        title_attr = f' title="{_escape_attr(f.desc)}"' if f.desc else ""
        cards.append(
            f'<div class="kpi-item"{title_attr}>'
            f'<div class="kpi-value">{_escape(_format_number(value))}</div>'
            f'<div class="kpi-label">{label}</div>{delta_html}</div>'
        )
    body = f'<div class="kpi-grid">{"".join(cards)}</div>'
    return RenderResult(html=_card(ctx, body), span=ctx.span)


def render_table(ctx: CardContext, records: list[dict[str, Any]], fields: list[FieldDef]) -> RenderResult:
    columns = [f.name for f in fields]
    if not records or not columns:
        return RenderResult(html=_card(ctx, _empty("No data")), span=ctx.span)
    head = "".join(f"<th>{_escape(name)}</th>" for name in columns)
    rows = "".join(
        "<tr>" + "".join(f"<td>{_escape(_format_number(record.get(name)))}</td>" for name in columns) + "</tr>"
        for record in records[:TABLE_MAX_ROWS]
    )
    body = f'<div class="table-wrap"><table class="data-table"><thead><tr>{head}</tr></thead><tbody>{rows}</tbody></table></div>'
    return RenderResult(html=_card(ctx, body), span=ctx.span)
