"""
Shared Pydantic models for all layers.
Value objects are immutable (frozen) after creation.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ─── Alva API payloads ─────────────────────────────────────────

class Widget(BaseModel):
    """One widget entry of a dashboard config, as returned by Alva."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str | None = Field(default=None)
    status: str | None = Field(default=None)
    chart_data: str | None = Field(default=None, alias="chartData")
    create_time: Any = Field(default=None)


class DashboardConfig(BaseModel):
    """Decoded `GetDashboardConfig` payload."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str | None = Field(default=None)
    description: str | None = Field(default=None)
    widgets: list[Widget] = Field(default_factory=list, alias="config")

    @field_validator("widgets", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return value if value is not None else []


class WidgetDescriptor(BaseModel):
    """First descriptor of a widget's `chartData.widgets` list.

    `kind` may arrive as `kind` or `type`; `props` follows ECharts option shape
    for charts. `data`/`dataResolver` carry widget-level data references for
    non-chart kinds.
    """
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    kind: str | None = Field(default=None)
    props: dict[str, Any] = Field(default_factory=dict)
    data: Any = Field(default=None)
    data_resolver: str | None = Field(default=None, alias="dataResolver")


class DashboardSession(BaseModel):
    model_config = {"frozen": True}

    session_id: str
    session_name: str | None = None


# ─── Typedoc ───────────────────────────────────────────────────

class FieldDef(BaseModel):
    """One documented field of a time-series record."""
    model_config = {"frozen": True}

    name: str
    type: str = Field(..., description="'number', 'string' or 'boolean'")
    desc: str = Field(default="")


class TypeDescriptor(BaseModel):
    model_config = {"frozen": True}

    description: str = Field(default="")
    fields: list[FieldDef] = Field(default_factory=list)


class FieldRoles(BaseModel):
    """Partition of fields into presentation roles."""
    model_config = {"frozen": True}

    time_field: FieldDef | None = None
    value_fields: list[FieldDef] = Field(default_factory=list)
    label_fields: list[FieldDef] = Field(default_factory=list)
    bool_fields: list[FieldDef] = Field(default_factory=list)


class ParsedDataUri(BaseModel):
    model_config = {"frozen": True}

    source_id: str
    node_name: str
    output_name: str


# ─── Fetch results ─────────────────────────────────────────────

class FetchFailure(BaseModel):
    model_config = {"frozen": True}

    uri: str
    kind: str = Field(..., description="'data' or 'typedoc'")
    error: str


class SeriesBundle(BaseModel):
    """Everything fetched for one dashboard render, keyed by data URI."""

    data: dict[str, Any] = Field(default_factory=dict)
    typedocs: dict[str, str] = Field(default_factory=dict)
    errors: list[FetchFailure] = Field(default_factory=list)


# ─── Rendering ─────────────────────────────────────────────────

class RenderResult(BaseModel):
    """Markup fragment produced by one renderer."""
    model_config = {"frozen": True}

    html: str
    script: str | None = None
    span: int | None = Field(default=None, description="Grid columns (of 12) occupied")


# ─── Credentials ───────────────────────────────────────────────

class Credentials(BaseModel):
    model_config = {"frozen": True}

    token: str
    source: str = Field(default="", description="Where the token was found")
