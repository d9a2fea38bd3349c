"""Data URI discovery inside widget definitions."""

from __future__ import annotations

import re
from typing import Iterable

from shared.models import ParsedDataUri, Widget

DATA_URI_PREFIX = "alva://"

_URI_RE = re.compile(r"alva://time_series/[^\"'\s\\]+")
_URI_PARTS_RE = re.compile(r"alva://time_series/(\d+)/([^/?]+)/([^/?]+)")


def is_data_uri(value: object) -> bool:
    return isinstance(value, str) and value.startswith(DATA_URI_PREFIX)


def extract_data_uris(chart_data: str | None) -> list[str]:
    """Unique time-series URIs embedded in a raw chartData string, first-seen order."""
    if not chart_data:
        return []
    return list(dict.fromkeys(_URI_RE.findall(chart_data)))


def parse_data_uri(uri: str) -> ParsedDataUri | None:
    """`alva://time_series/{id}/{node}/{output}?last=N` → its three path parts."""
    match = _URI_PARTS_RE.match(uri or "")
    if not match:
        return None
    return ParsedDataUri(source_id=match.group(1), node_name=match.group(2), output_name=match.group(3))


def collect_dashboard_uris(widgets: Iterable[Widget]) -> list[str]:
    uris: dict[str, None] = {}
    for widget in widgets:
        for uri in extract_data_uris(widget.chart_data):
            uris.setdefault(uri, None)
    return list(uris)


def short_label(uri: str) -> str:
    """Last two path segments, for progress output."""
    return "/".join(uri.split("/")[-2:])
