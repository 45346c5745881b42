"""Field domain - dimensions and metrics exposed by a table."""

from __future__ import annotations

import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from explore_compiler.domain.filter import MetricFilterRule
from explore_compiler.errors import ParseError


class FieldType(str, Enum):
    """Kind of semantic field."""

    DIMENSION = "dimension"
    METRIC = "metric"


class DimensionType(str, Enum):
    """Value types a dimension can have."""

    STRING = "string"
    NUMBER = "number"
    TIMESTAMP = "timestamp"
    DATE = "date"
    BOOLEAN = "boolean"


class MetricType(str, Enum):
    """How a metric is computed."""

    PERCENTILE = "percentile"
    MEDIAN = "median"
    AVERAGE = "average"
    COUNT = "count"
    COUNT_DISTINCT = "count_distinct"
    SUM = "sum"
    MIN = "min"
    MAX = "max"
    # Non-aggregate, computed from other metrics or custom sql
    NUMBER = "number"
    STRING = "string"
    DATE = "date"
    BOOLEAN = "boolean"

    @property
    def is_aggregate(self) -> bool:
        return self not in NON_AGGREGATE_METRIC_TYPES


NON_AGGREGATE_METRIC_TYPES = frozenset(
    {MetricType.NUMBER, MetricType.STRING, MetricType.DATE, MetricType.BOOLEAN}
)


def parse_metric_type(value: str) -> MetricType:
    """Parse a metric type, raising ParseError if unrecognised."""
    try:
        return MetricType(str(value).lower())
    except ValueError:
        valid = ", ".join(t.value for t in MetricType)
        raise ParseError(
            f"Cannot parse metric type '{value}'. Valid types are: {valid}"
        )


def default_sql(column_name: str) -> str:
    """Default SQL for a column: a reference on the owning table."""
    return f"${{TABLE}}.{column_name}"


_WORD_PATTERN = re.compile(r"[0-9]*[A-Za-z][a-z]*|[0-9]+")


def friendly_name(text: str) -> str:
    """
    Turn an identifier into a human label.

    Examples:
        total_revenue -> Total revenue
        customerId -> Customer id
        ORDER_ID -> Order id
    """
    normalised = text.lower() if text == text.upper() else text
    words = _WORD_PATTERN.findall(normalised)
    if not words:
        return ""
    first, *rest = words
    return " ".join([first[:1].upper() + first[1:], *(w.lower() for w in rest)])


class Source(BaseModel):
    """Where a field was declared in the dbt project."""

    path: str
    line_start: int | None = None
    line_end: int | None = None

    model_config = {"frozen": True}


class Dimension(BaseModel):
    """
    A groupable/filterable field.

    Time interval dimensions (created_day, created_month, ...) carry the
    interval they were truncated to and a group pointing back at the column
    they were expanded from.
    """

    field_type: FieldType = FieldType.DIMENSION
    name: str
    label: str
    sql: str
    table: str
    table_label: str
    type: DimensionType
    description: str | None = None
    source: Source | None = None

    # Time interval expansion
    time_interval: str | None = None
    group: str | None = None

    # Display/formatting
    hidden: bool = False
    format: str | None = None
    round: int | None = None
    compact: str | None = None
    group_label: str | None = None
    urls: list[dict[str, Any]] | None = None

    model_config = {"frozen": True}


class Metric(BaseModel):
    """An aggregated field."""

    field_type: FieldType = FieldType.METRIC
    name: str
    label: str
    sql: str
    table: str
    table_label: str
    type: MetricType
    description: str | None = None
    source: Source | None = None
    is_auto_generated: bool = False

    # Display/formatting
    hidden: bool = False
    format: str | None = None
    round: int | None = None
    compact: str | None = None
    group_label: str | None = None
    urls: list[dict[str, Any]] | None = None
    show_underlying_values: list[str] | None = None
    percentile: int | None = None

    # Filters applied when the metric is aggregated
    filters: list[MetricFilterRule] = Field(default_factory=list)

    model_config = {"frozen": True}
