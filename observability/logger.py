"""
Observability Layer — Structured Logging.

Responsibility:
- Log dashboard-run events (fetch outcomes, stage timings) as JSON lines
- Carry the Alva session id and a per-run trace id on every event

Human-facing progress goes to the rich console; these events go through
standard logging so `--verbose` or a log handler can pick them up.
"""

import json
import logging
import time
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger("observability")


class Observability:
    """Structured logger for one dashboard run."""

    def __init__(self, session_id: str | None = None):
        self.session_id = session_id
        self.trace_id = str(uuid.uuid4())

    def bind_session(self, session_id: str) -> None:
        """Attach the Alva session once the dashboard has been created."""
        self.session_id = session_id

    def log_event(self, event_type: str, payload: dict[str, Any], level: str = "INFO") -> None:
        """Log a structured event."""
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "session_id": self.session_id,
            "trace_id": self.trace_id,
            "event": event_type,
            "level": level,
            **payload,
        }
        log_method = getattr(logger, level.lower(), logger.info)
        log_method(json.dumps(entry, default=str))

    @contextmanager
    def measure(self, operation: str, metadata: dict[str, Any] | None = None):
        """Context manager to measure execution time of a pipeline stage."""
        start_time = time.perf_counter()
        meta = metadata or {}
        try:
            yield
            success = True
            error = None
        except Exception as e:
            success = False
            error = str(e)
            raise
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000
            self.log_event(
                "stage_metric",
                {
                    "operation": operation,
                    "duration_ms": round(duration_ms, 2),
                    "success": success,
                    "error": error,
                    **meta,
                },
                level="DEBUG",
            )
