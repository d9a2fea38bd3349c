"""Parsing of the dashboard-creation event stream."""

from __future__ import annotations

import json
import re
from typing import Any

from pydantic import BaseModel, ValidationError

WIDGET_BUILDING_RE = re.compile(r"<WIDGET_BUILDING>(.*?)</WIDGET_BUILDING>", re.DOTALL)

_STATUS_ICONS = {
    "completed": "✅",
    "in_progress": "🔄",
}


class WidgetTask(BaseModel):
    model_config = {"frozen": True}

    task_name: str
    status: str = "pending"


def parse_stream_line(line: str) -> dict[str, Any] | None:
    """One JSON event per line; blank or malformed lines yield None."""
    text = (line or "").strip()
    if not text:
        return None
    try:
        event = json.loads(text)
    except json.JSONDecodeError:
        return None
    return event if isinstance(event, dict) else None


def parse_widget_tasks(message: Any) -> list[WidgetTask] | None:
    """Task list from a `<WIDGET_BUILDING>[...]</WIDGET_BUILDING>` progress message."""
    if not isinstance(message, str) or "WIDGET_BUILDING" not in message:
        return None
    match = WIDGET_BUILDING_RE.search(message)
    if not match:
        return None
    try:
        raw = json.loads(match.group(1))
        if not isinstance(raw, list):
            return None
        return [WidgetTask.model_validate(item) for item in raw]
    except (json.JSONDecodeError, ValidationError):
        return None


def format_widget_tasks(tasks: list[WidgetTask]) -> str:
    return "\n".join(f"  {_STATUS_ICONS.get(task.status, '⏳')} {task.task_name}" for task in tasks)
