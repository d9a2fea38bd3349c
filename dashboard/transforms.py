"""
Widget data transforms.

Alva widgets carry a `dataResolver` that reshapes a fetched time series into
what a chart axis or series expects. The service writes these as JavaScript
arrow functions. Instead of executing them, a resolver string is mapped to:

1. a registered transform selected by identifier (`pluck:close`),
2. a registered transform recognized from a common arrow-function shape
   (`(d) => d.map((x) => x.close)`), or
3. a constrained Python expression over `data` run by the safe evaluator
   (`[row.close for row in data]`).

Anything else raises TransformError.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any, Callable

from shared.safe_eval import SafeExpressionError, evaluate_expression

logger = logging.getLogger(__name__)

Transform = Callable[..., Any]


class TransformError(ValueError):
    """Raised when a data resolver cannot be recognized or applied."""


def _rows(data: Any) -> list[Any]:
    if not isinstance(data, list):
        raise TransformError(f"Expected a list of records, got {type(data).__name__}")
    return data


def _field(row: Any, name: str) -> Any:
    if isinstance(row, dict):
        return row.get(name)
    return None


def format_date(value: Any) -> str | None:
    """Epoch seconds/milliseconds or ISO-ish strings → YYYY-MM-DD."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        seconds = value / 1000 if abs(value) >= 1e11 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc).strftime("%Y-%m-%d")
        except (OverflowError, OSError, ValueError):
            return str(value)
    text = str(value).strip()
    return text[:10] if text else None


def identity(data: Any) -> Any:
    return data


def pluck(data: Any, field: str) -> list[Any]:
    return [_field(row, field) for row in _rows(data)]


def pairs(data: Any, x_field: str, y_field: str) -> list[list[Any]]:
    return [[_field(row, x_field), _field(row, y_field)] for row in _rows(data)]


def dates(data: Any, field: str) -> list[str | None]:
    return [format_date(_field(row, field)) for row in _rows(data)]


def reverse(data: Any) -> list[Any]:
    return list(reversed(_rows(data)))


_ARROW_PREFIX = r"^\s*(?:async\s+)?\(?\s*(?P<src>\w+)\s*\)?\s*=>\s*\(?\s*(?P=src)\s*\.map\(\s*\(?\s*(?P<row>\w+)\s*\)?\s*=>\s*"
_ACCESS = r"(?P=row)\s*(?:\.\s*(?P<{name}>\w+)|\[\s*['\"](?P<{name}q>\w+)['\"]\s*\])"
_ARROW_SUFFIX = r"\s*\)\s*\)?\s*;?\s*$"

_JS_PLUCK = re.compile(_ARROW_PREFIX + _ACCESS.format(name="f") + _ARROW_SUFFIX)
_JS_PAIRS = re.compile(
    _ARROW_PREFIX
    + r"\[\s*"
    + _ACCESS.format(name="x")
    + r"\s*,\s*"
    + _ACCESS.format(name="y")
    + r"\s*\]"
    + _ARROW_SUFFIX
)
_JS_DATES = re.compile(
    _ARROW_PREFIX
    + r"new\s+Date\(\s*"
    + _ACCESS.format(name="f")
    + r"\s*\)(?:\s*\.\s*\w+\([^()]*\))*"
    + _ARROW_SUFFIX
)


class TransformRegistry:
    """Closed set of named transforms plus the resolver-string dispatcher."""

    def __init__(self) -> None:
        self._transforms: dict[str, Transform] = {}

    def register(self, name: str, transform: Transform) -> None:
        key = str(name).strip()
        if not key:
            raise ValueError("transform name must not be empty")
        self._transforms[key] = transform

    def names(self) -> list[str]:
        return sorted(self._transforms)

    def apply(self, resolver: str, data: Any) -> Any:
        """Apply the transform a resolver string denotes to `data`."""
        text = str(resolver or "").strip()
        if not text:
            raise TransformError("Empty data resolver")

        named = self._parse_named(text)
        if named is not None:
            name, args = named
            return self._call(name, data, args)

        recognized = self._recognize_arrow(text)
        if recognized is not None:
            name, args = recognized
            return self._call(name, data, args)

        if "=>" in text or "function" in text:
            raise TransformError(f"Unsupported script resolver: {text[:80]}")

        try:
            return evaluate_expression(text, {"data": data})
        except SafeExpressionError as exc:
            raise TransformError(str(exc)) from exc

    def _call(self, name: str, data: Any, args: list[str]) -> Any:
        transform = self._transforms.get(name)
        if transform is None:
            raise TransformError(f"Unknown transform '{name}'")
        try:
            return transform(data, *args)
        except TransformError:
            raise
        except (TypeError, ValueError, OverflowError, OSError) as exc:
            raise TransformError(f"Transform '{name}' failed: {exc}") from exc

    def _parse_named(self, text: str) -> tuple[str, list[str]] | None:
        name, sep, raw_args = text.partition(":")
        name = name.strip()
        if name not in self._transforms:
            return None
        args = [arg.strip() for arg in raw_args.split(",") if arg.strip()] if sep else []
        return name, args

    @staticmethod
    def _recognize_arrow(text: str) -> tuple[str, list[str]] | None:
        match = _JS_DATES.match(text)
        if match:
            return "dates", [match.group("f") or match.group("fq")]
        match = _JS_PAIRS.match(text)
        if match:
            return "pairs", [match.group("x") or match.group("xq"), match.group("y") or match.group("yq")]
        match = _JS_PLUCK.match(text)
        if match:
            return "pluck", [match.group("f") or match.group("fq")]
        return None


def default_registry() -> TransformRegistry:
    registry = TransformRegistry()
    registry.register("identity", identity)
    registry.register("pluck", pluck)
    registry.register("pairs", pairs)
    registry.register("dates", dates)
    registry.register("reverse", reverse)
    return registry
