"""Translate dbt models and metrics into tables and explores.

Pipeline:
    manifest models -> attach_types_to_models (warehouse catalog)
                    -> convert_table per model (dimensions + metrics)
                    -> lineage attached per table
                    -> compile_explore (joins, compiled sql)
"""

from __future__ import annotations

import logging
import re
from typing import Any

from explore_compiler.adapters.dialect import SupportedDbtAdapter, convert_timezone
from explore_compiler.compiler.explore import compile_explore
from explore_compiler.compiler.lineage import translate_models_to_table_lineage
from explore_compiler.compiler.metrics import convert_metric
from explore_compiler.domain.explore import (
    Explore,
    ExploreError,
    ExploreJoin,
    InlineError,
    Table,
)
from explore_compiler.domain.field import (
    Dimension,
    DimensionType,
    Metric,
    MetricType,
    Source,
    default_sql,
    friendly_name,
    parse_metric_type,
)
from explore_compiler.domain.filter import parse_filters
from explore_compiler.domain.time_frames import (
    TIME_FRAME_CONFIGS,
    TimeFrames,
    get_default_time_frames,
    is_time_intervals_off,
    validate_time_frames,
)
from explore_compiler.errors import (
    MissingCatalogEntryError,
    NonCompiledModelError,
    ParseError,
)
from explore_compiler.ingestion.dbt.loader import WarehouseCatalog, map_warehouse_type
from explore_compiler.ingestion.dbt.models import (
    DbtMetric,
    DbtModelColumn,
    DbtModelNode,
)

logger = logging.getLogger(__name__)

_SINGLE_COLUMN_NAME = re.compile(r"^[a-zA-Z0-9_]+$")


# =============================================================================
# Dimensions
# =============================================================================


def convert_dimension(
    target_warehouse: SupportedDbtAdapter,
    model: DbtModelNode,
    table_label: str,
    column: DbtModelColumn,
    source: Source | None = None,
    time_interval: TimeFrames | None = None,
) -> Dimension:
    """
    Convert a model column into a dimension.

    The type comes from `meta.dimension.type`, then the catalog type, then
    defaults to string. With a time interval the dimension is the truncated
    variant `<column>_<interval>`, grouped under the column name.
    """
    overrides = column.meta.dimension
    raw_type = (overrides.type if overrides else None) or column.data_type or "string"
    try:
        if isinstance(raw_type, DimensionType):
            dimension_type = raw_type
        else:
            dimension_type = DimensionType(str(raw_type).lower())
    except ValueError:
        valid = ", ".join(t.value for t in DimensionType)
        raise MissingCatalogEntryError(
            f'Could not recognise type "{raw_type}" for dimension "{column.name}" '
            f'in dbt model "{model.name}". Valid types are: {valid}'
        )

    name = (overrides.name if overrides else None) or column.name
    sql = (overrides.sql if overrides else None) or default_sql(column.name)
    label = (overrides.label if overrides else None) or friendly_name(name)
    group = None

    if dimension_type == DimensionType.TIMESTAMP:
        sql = convert_timezone(sql, "UTC", "UTC", target_warehouse)

    if time_interval is not None:
        config = TIME_FRAME_CONFIGS[time_interval]
        sql = config.get_sql(target_warehouse, time_interval, sql, dimension_type)
        name = f"{column.name}_{time_interval.value.lower()}"
        label = f"{label} {config.get_label().lower()}"
        group = column.name
        dimension_type = config.get_dimension_type(dimension_type)

    return Dimension(
        name=name,
        label=label,
        sql=sql,
        table=model.name,
        table_label=table_label,
        type=dimension_type,
        description=(overrides.description if overrides else None)
        or column.description,
        source=source,
        group=group,
        time_interval=time_interval.value if time_interval else None,
        hidden=bool(overrides and overrides.hidden),
        format=overrides.format if overrides else None,
        round=overrides.round if overrides else None,
        compact=overrides.compact if overrides else None,
        group_label=overrides.group_label if overrides else None,
        urls=overrides.urls if overrides else None,
    )


def _time_intervals_for(column: DbtModelColumn, dimension: Dimension) -> list[TimeFrames]:
    """Which interval dimensions to derive from a date/timestamp dimension."""
    if dimension.type not in (DimensionType.DATE, DimensionType.TIMESTAMP):
        return []
    requested = column.meta.dimension.time_intervals if column.meta.dimension else None
    if is_time_intervals_off(requested):
        return []
    if isinstance(requested, str):
        requested = [requested]
    if requested:
        return validate_time_frames(requested, dimension.type)
    return get_default_time_frames(dimension.type)


# =============================================================================
# Metrics
# =============================================================================


def _substitute_metric_references(sql: str, references: list[str]) -> str:
    """Replace each referenced metric name with `${name}`, whole words only."""
    for ref in dict.fromkeys(references):
        pattern = re.compile(rf"(?<![\w{{]){re.escape(ref)}(?![\w}}])")
        sql = pattern.sub(lambda _: f"${{{ref}}}", sql)
    return sql


def convert_dbt_metric_to_metric(
    metric: DbtMetric, table_name: str, table_label: str
) -> Metric:
    """Convert a dbt-native metric into a metric on the given table."""
    if metric.calculation_method == "expression":
        metric_type = MetricType.NUMBER
        if not metric.expression:
            raise ParseError(
                f'dbt expression metric "{metric.name}" must have the sql field set'
            )
        sql = _substitute_metric_references(
            metric.expression, metric.referenced_metrics
        )
    else:
        try:
            metric_type = parse_metric_type(metric.calculation_method)
        except ParseError:
            raise ParseError(
                f"Cannot parse metric '{metric.unique_id or metric.name}: type "
                f"{metric.calculation_method} is not a valid metric type"
            )
        sql = default_sql(metric.name)
        if metric.expression:
            if _SINGLE_COLUMN_NAME.match(metric.expression):
                sql = default_sql(metric.expression)
            else:
                sql = metric.expression

    if metric.filters:
        predicate = " AND ".join(
            f"(${{TABLE}}.{f.field} {f.operator} {f.value})" for f in metric.filters
        )
        sql = f"CASE WHEN {predicate} THEN {sql} ELSE NULL END"

    meta: dict[str, Any] = metric.meta
    return Metric(
        name=metric.name,
        label=metric.label or friendly_name(metric.name),
        sql=sql,
        table=table_name,
        table_label=table_label,
        type=metric_type,
        description=metric.description,
        is_auto_generated=False,
        hidden=bool(meta.get("hidden")),
        round=meta.get("round"),
        compact=meta.get("compact"),
        format=meta.get("format"),
        group_label=meta.get("group_label"),
        show_underlying_values=meta.get("show_underlying_values"),
        urls=meta.get("urls"),
        filters=parse_filters(meta.get("filters")),
    )


def model_can_use_metric(
    metric_name: str,
    model_name: str,
    metrics: list[DbtMetric],
    warned_cycles: set[frozenset[str]] | None = None,
    _path: tuple[str, ...] = (),
) -> bool:
    """
    Whether a model may expose a dbt metric.

    A metric belongs to the model its first ref points at. Expression metrics
    are also usable wherever all of their referenced metrics are. Metrics
    that reference themselves through a cycle are never usable.

    Each cycle is logged once per `warned_cycles` set; callers checking many
    (model, metric) pairs share one set between calls.
    """
    metric = next((m for m in metrics if m.name == metric_name), None)
    if metric is None:
        return False
    if metric.model_ref == model_name:
        return True
    if metric.calculation_method == "expression":
        if metric_name in _path:
            cycle = (*_path[_path.index(metric_name) :], metric_name)
            members = frozenset(cycle)
            if warned_cycles is None or members not in warned_cycles:
                logger.warning(
                    'Metric "%s" references itself through %s',
                    metric_name,
                    " -> ".join(cycle),
                )
                if warned_cycles is not None:
                    warned_cycles.add(members)
            return False
        path = (*_path, metric_name)
        return all(
            model_can_use_metric(ref, model_name, metrics, warned_cycles, path)
            for ref in metric.referenced_metrics
        )
    return False


# =============================================================================
# Tables
# =============================================================================


def _table_label(model: DbtModelNode) -> str:
    return model.resolved_meta.label or friendly_name(model.name)


def convert_table(
    adapter_type: SupportedDbtAdapter,
    model: DbtModelNode,
    dbt_metrics: list[DbtMetric],
) -> Table:
    """
    Build a table (without lineage) from a compiled dbt model.

    Raises:
        NonCompiledModelError: model has not been compiled by dbt
        ValueError: model has no relation name
        ParseError: metric definitions are invalid or a metric shares a
            name with a dimension
        MissingCatalogEntryError: a column type is not recognised
    """
    if not model.compiled:
        raise NonCompiledModelError("Model has not been compiled by dbt")
    if not model.relation_name:
        raise ValueError("Model has no table relation")

    table_label = _table_label(model)
    dimensions: dict[str, Dimension] = {}
    column_metrics: dict[str, Metric] = {}

    for column in model.columns.values():
        dimension = convert_dimension(adapter_type, model, table_label, column)
        dimensions[column.name] = dimension

        for interval in _time_intervals_for(column, dimension):
            dimensions[f"{column.name}_{interval.value.lower()}"] = convert_dimension(
                adapter_type,
                model,
                table_label,
                column,
                time_interval=interval,
            )

        for name, metric in column.meta.metrics.items():
            column_metrics[name] = convert_metric(
                model_name=model.name,
                dimension_name=dimension.name,
                dimension_sql=dimension.sql,
                name=name,
                metric=metric,
                table_label=table_label,
            )

    converted_dbt_metrics = {
        metric.name: convert_dbt_metric_to_metric(metric, model.name, table_label)
        for metric in dbt_metrics
    }
    # Column metrics take priority over dbt metrics with the same name
    all_metrics = {**converted_dbt_metrics, **column_metrics}

    duplicated_names = [name for name in all_metrics if name in dimensions]
    if duplicated_names:
        message = (
            "Found multiple metrics and a dimensions with the same name:"
            if len(duplicated_names) > 1
            else "Found a metric and a dimension with the same name:"
        )
        raise ParseError(f"{message} {','.join(duplicated_names)}")

    return Table(
        name=model.name,
        label=table_label,
        database=model.database,
        schema=model.schema_name,
        sql_table=model.relation_name,
        description=model.description or f"{model.name} table",
        dimensions=dimensions,
        metrics=all_metrics,
    )


# =============================================================================
# Explores
# =============================================================================


def _explore_error(model: DbtModelNode, error: Exception) -> ExploreError:
    message = str(error) or (
        f'Could not convert dbt model: "{model.name}" in to an explore'
    )
    return ExploreError(
        name=model.name,
        label=_table_label(model),
        tags=model.tags,
        errors=[InlineError(type=type(error).__name__, message=message)],
    )


def convert_explores(
    models: list[DbtModelNode],
    adapter_type: SupportedDbtAdapter,
    metrics: list[DbtMetric],
) -> list[Explore | ExploreError]:
    """
    Convert every model into an explore.

    A model that fails to convert becomes an ExploreError and never stops
    the others. Successful explores come first in model order, followed by
    table errors, then explore compilation errors.
    """
    table_lineage = translate_models_to_table_lineage(models)

    tables: dict[str, Table] = {}
    table_errors: list[ExploreError] = []
    warned_cycles: set[frozenset[str]] = set()
    for model in models:
        try:
            table_metrics = [
                metric
                for metric in metrics
                if model_can_use_metric(
                    metric.name, model.name, metrics, warned_cycles
                )
            ]
            table = convert_table(adapter_type, model, table_metrics)
            tables[model.name] = table.model_copy(
                update={"lineage_graph": table_lineage[model.name]}
            )
        except Exception as e:
            logger.debug("Failed to convert model %s: %s", model.name, e)
            table_errors.append(_explore_error(model, e))

    explores: list[Explore] = []
    compile_errors: list[ExploreError] = []
    for model in models:
        if model.name not in tables:
            continue
        meta = model.resolved_meta
        try:
            explores.append(
                compile_explore(
                    name=model.name,
                    label=_table_label(model),
                    tags=model.tags,
                    base_table=model.name,
                    joined_tables=[
                        ExploreJoin(table=join.join, sql_on=join.sql_on)
                        for join in meta.joins
                    ],
                    tables=tables,
                    target_database=adapter_type,
                )
            )
        except Exception as e:
            logger.debug("Failed to compile explore %s: %s", model.name, e)
            compile_errors.append(_explore_error(model, e))

    logger.info(
        "Converted %d explores (%d errors)",
        len(explores),
        len(table_errors) + len(compile_errors),
    )
    return [*explores, *table_errors, *compile_errors]


# =============================================================================
# Warehouse catalog
# =============================================================================


def _find_key(keys: Any, wanted: str, case_sensitive: bool) -> str | None:
    """First key equal to `wanted` (optionally ignoring case)."""
    for key in keys:
        if case_sensitive:
            if key == wanted:
                return key
        elif key.lower() == wanted.lower():
            return key
    return None


def _find_database(
    catalog: WarehouseCatalog, database: str | None, case_sensitive: bool
) -> str | None:
    # Models without a database (spark, hive metastore) only match a
    # catalog holding a single database
    if database is None:
        return next(iter(catalog)) if len(catalog) == 1 else None
    return _find_key(catalog, database, case_sensitive)


def _find_catalog_table(
    catalog: WarehouseCatalog,
    model: DbtModelNode,
    case_sensitive: bool,
) -> dict[str, DimensionType] | None:
    database = _find_database(catalog, model.database, case_sensitive)
    if database is None:
        return None
    schema = _find_key(catalog[database], model.schema_name, case_sensitive)
    if schema is None:
        return None
    table = _find_key(catalog[database][schema], model.name, case_sensitive)
    if table is None:
        return None
    return catalog[database][schema][table]


def _model_location(model: DbtModelNode) -> str:
    parts = (model.database, model.schema_name, model.name)
    return ".".join(part for part in parts if part)


def attach_types_to_models(
    models: list[DbtModelNode],
    warehouse_catalog: WarehouseCatalog,
    throw_on_missing_catalog_entry: bool = True,
    case_sensitive_matching: bool = True,
) -> list[DbtModelNode]:
    """
    Attach warehouse column types to each model's columns.

    Raises:
        MissingCatalogEntryError: a model or column is missing from the
            catalog and throw_on_missing_catalog_entry is set
    """
    if throw_on_missing_catalog_entry:
        for model in models:
            if _find_catalog_table(warehouse_catalog, model, case_sensitive_matching) is None:
                raise MissingCatalogEntryError(
                    f'Model "{model.name}" was expected in your target warehouse at '
                    f'"{_model_location(model)}". '
                    "Does the table exist in your target data warehouse?"
                )

    def get_type(model: DbtModelNode, column_name: str) -> str | None:
        table = _find_catalog_table(warehouse_catalog, model, case_sensitive_matching)
        column = (
            _find_key(table, column_name, case_sensitive_matching)
            if table is not None
            else None
        )
        if table is not None and column is not None:
            raw_type = table[column]
            if isinstance(raw_type, DimensionType):
                return raw_type.value
            return map_warehouse_type(str(raw_type)).value
        if throw_on_missing_catalog_entry:
            raise MissingCatalogEntryError(
                f'Column "{column_name}" from model "{model.name}" does not exist.\n '
                f'"{model.name}.{column_name}" was not found in your target warehouse '
                f"at {_model_location(model)}. "
                "Try rerunning dbt to update your warehouse."
            )
        return None

    return [
        model.model_copy(
            update={
                "columns": {
                    name: column.model_copy(
                        update={"data_type": get_type(model, name)}
                    )
                    for name, column in model.columns.items()
                }
            }
        )
        for model in models
    ]


def get_schema_structure_from_dbt_models(
    models: list[DbtModelNode],
) -> list[dict[str, str | None]]:
    """The (database, schema, table) triples a catalog fetch must cover."""
    return [
        {"database": m.database, "schema": m.schema_name, "table": m.name}
        for m in models
    ]
