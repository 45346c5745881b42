"""Column-embedded metrics (`columns.<name>.meta.metrics`)."""

from __future__ import annotations

from explore_compiler.domain.field import (
    Metric,
    Source,
    friendly_name,
    parse_metric_type,
)
from explore_compiler.domain.filter import parse_filters
from explore_compiler.errors import ParseError
from explore_compiler.ingestion.dbt.models import DbtColumnMetric


def convert_metric(
    model_name: str,
    dimension_name: str,
    dimension_sql: str,
    name: str,
    metric: DbtColumnMetric,
    table_label: str,
    source: Source | None = None,
) -> Metric:
    """
    Convert a metric declared on a column.

    Aggregate metrics default to aggregating the owning dimension's SQL.
    Non-aggregate metrics (number, string, date, boolean) must give `sql`.
    """
    try:
        metric_type = parse_metric_type(metric.type)
    except ParseError:
        raise ParseError(
            f'Cannot parse metric "{name}" on column "{dimension_name}" in model '
            f'"{model_name}": type "{metric.type}" is not a valid metric type'
        )

    if not metric_type.is_aggregate and not metric.sql:
        raise ParseError(
            f'Metric "{name}" in model "{model_name}" has type '
            f'"{metric_type.value}" and must define sql'
        )

    description = (
        metric.description
        or f"{friendly_name(metric_type.value)} of {friendly_name(dimension_name)} "
        f"on the table {table_label}"
    )

    return Metric(
        name=name,
        label=metric.label or friendly_name(name),
        sql=metric.sql or dimension_sql,
        table=model_name,
        table_label=table_label,
        type=metric_type,
        description=description,
        source=source,
        is_auto_generated=False,
        hidden=metric.hidden,
        format=metric.format,
        round=metric.round,
        compact=metric.compact,
        group_label=metric.group_label,
        urls=metric.urls,
        show_underlying_values=metric.show_underlying_values,
        percentile=metric.percentile,
        filters=parse_filters(metric.filters),
    )
