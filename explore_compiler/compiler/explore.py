"""Explore compilation - resolve joins and field references into SQL."""

from __future__ import annotations

import re

from explore_compiler.adapters.dialect import SqlRenderer, SupportedDbtAdapter
from explore_compiler.domain.explore import (
    CompiledDimension,
    CompiledExploreJoin,
    CompiledMetric,
    CompiledTable,
    Explore,
    ExploreJoin,
    Table,
)
from explore_compiler.domain.field import Metric, MetricType
from explore_compiler.errors import CompileError

# ${TABLE}, ${field} or ${table.field}
_REFERENCE_PATTERN = re.compile(r"\$\{([a-zA-Z0-9_.]+)\}")

DEFAULT_PERCENTILE = 50


class ExploreCompiler:
    """
    Compile tables into an explore for one warehouse.

    Every dimension and metric gets `compiled_sql` with all `${...}`
    references resolved. Reference cycles raise CompileError.
    """

    def __init__(self, target_database: SupportedDbtAdapter) -> None:
        self.target_database = target_database
        self.renderer = SqlRenderer(target_database)

    def compile(
        self,
        name: str,
        label: str,
        tags: list[str],
        base_table: str,
        joined_tables: list[ExploreJoin],
        tables: dict[str, Table],
    ) -> Explore:
        if base_table not in tables:
            raise CompileError(
                f'Failed to compile explore "{name}". Tried to find base table '
                f'but could not find table "{base_table}"'
            )
        for join in joined_tables:
            if join.table not in tables:
                raise CompileError(
                    f'Failed to compile explore "{name}". Tried to join table '
                    f'"{join.table}" to "{base_table}" but cannot find table '
                    f'"{join.table}"'
                )

        included = list(dict.fromkeys([base_table, *(j.table for j in joined_tables)]))
        included_tables = {t: tables[t] for t in included}

        compiled_tables = {
            table_name: self._compile_table(table, included_tables)
            for table_name, table in included_tables.items()
        }
        compiled_joins = [
            CompiledExploreJoin(
                table=join.table,
                sql_on=join.sql_on,
                compiled_sql_on=self._compile_join_sql(join, included_tables),
            )
            for join in joined_tables
        ]

        return Explore(
            name=name,
            label=label,
            tags=tags,
            base_table=base_table,
            joined_tables=compiled_joins,
            tables=compiled_tables,
            target_database=self.target_database,
        )

    def _compile_table(self, table: Table, tables: dict[str, Table]) -> CompiledTable:
        dimensions = {
            key: CompiledDimension(
                **dimension.model_dump(),
                compiled_sql=self.compile_dimension_sql(table.name, key, tables),
            )
            for key, dimension in table.dimensions.items()
        }
        metrics = {
            key: CompiledMetric(
                **metric.model_dump(),
                compiled_sql=self.compile_metric_sql(table.name, key, tables),
            )
            for key, metric in table.metrics.items()
        }
        data = table.model_dump(exclude={"dimensions", "metrics"})
        return CompiledTable.model_validate(
            {**data, "dimensions": dimensions, "metrics": metrics}
        )

    def _split_reference(self, reference: str, current_table: str) -> tuple[str, str]:
        if "." in reference:
            table_name, field_name = reference.split(".", 1)
            return table_name, field_name
        return current_table, reference

    def compile_dimension_sql(
        self,
        table_name: str,
        dimension_name: str,
        tables: dict[str, Table],
        _visiting: frozenset[str] = frozenset(),
    ) -> str:
        key = f"{table_name}.{dimension_name}"
        if key in _visiting:
            raise CompileError(f'Found a cyclic reference in dimension "{key}"')
        table = tables.get(table_name)
        if table is None:
            raise CompileError(
                f'Model "{table_name}" is referenced but is not joined in this explore'
            )
        dimension = table.dimensions.get(dimension_name)
        if dimension is None:
            raise CompileError(
                f'Dimension "{dimension_name}" does not exist in table "{table_name}"'
            )

        visiting = _visiting | {key}

        def replace(match: re.Match[str]) -> str:
            reference = match.group(1)
            if reference == "TABLE":
                return self.renderer.quote_identifier(table_name)
            ref_table, ref_field = self._split_reference(reference, table_name)
            return f"({self.compile_dimension_sql(ref_table, ref_field, tables, visiting)})"

        return _REFERENCE_PATTERN.sub(replace, dimension.sql)

    def compile_metric_sql(
        self,
        table_name: str,
        metric_name: str,
        tables: dict[str, Table],
        _visiting: frozenset[str] = frozenset(),
    ) -> str:
        key = f"{table_name}.{metric_name}"
        if key in _visiting:
            raise CompileError(f'Found a cyclic reference in metric "{key}"')
        table = tables.get(table_name)
        if table is None:
            raise CompileError(
                f'Model "{table_name}" is referenced but is not joined in this explore'
            )
        metric = table.metrics.get(metric_name)
        if metric is None:
            raise CompileError(
                f'Metric "{metric_name}" does not exist in table "{table_name}"'
            )

        visiting = _visiting | {key}

        def replace(match: re.Match[str]) -> str:
            reference = match.group(1)
            if reference == "TABLE":
                return self.renderer.quote_identifier(table_name)
            ref_table, ref_field = self._split_reference(reference, table_name)
            # Non-aggregate metrics are built from other metrics
            if not metric.type.is_aggregate:
                return f"({self.compile_metric_sql(ref_table, ref_field, tables, visiting)})"
            return f"({self.compile_dimension_sql(ref_table, ref_field, tables)})"

        rendered = _REFERENCE_PATTERN.sub(replace, metric.sql)
        return self._aggregate(metric, rendered)

    def _aggregate(self, metric: Metric, sql: str) -> str:
        if metric.type == MetricType.SUM:
            return f"SUM({sql})"
        if metric.type == MetricType.COUNT:
            return f"COUNT({sql})"
        if metric.type == MetricType.COUNT_DISTINCT:
            return f"COUNT(DISTINCT {sql})"
        if metric.type == MetricType.AVERAGE:
            return f"AVG({sql})"
        if metric.type == MetricType.MIN:
            return f"MIN({sql})"
        if metric.type == MetricType.MAX:
            return f"MAX({sql})"
        if metric.type == MetricType.MEDIAN:
            return self.renderer.percentile(sql, DEFAULT_PERCENTILE)
        if metric.type == MetricType.PERCENTILE:
            return self.renderer.percentile(sql, metric.percentile or DEFAULT_PERCENTILE)
        return sql

    def _compile_join_sql(self, join: ExploreJoin, tables: dict[str, Table]) -> str:
        def replace(match: re.Match[str]) -> str:
            reference = match.group(1)
            if "." not in reference:
                if reference in tables:
                    return self.renderer.quote_identifier(reference)
                raise CompileError(
                    f'Cannot resolve "${{{reference}}}" in join to "{join.table}": '
                    "references must look like ${table.field}"
                )
            ref_table, ref_field = self._split_reference(reference, join.table)
            return f"({self.compile_dimension_sql(ref_table, ref_field, tables)})"

        return _REFERENCE_PATTERN.sub(replace, join.sql_on)


def compile_explore(
    name: str,
    label: str,
    tags: list[str],
    base_table: str,
    joined_tables: list[ExploreJoin],
    tables: dict[str, Table],
    target_database: SupportedDbtAdapter,
) -> Explore:
    """Compile one explore from a base table, its joins and all tables."""
    return ExploreCompiler(target_database).compile(
        name=name,
        label=label,
        tags=tags,
        base_table=base_table,
        joined_tables=joined_tables,
        tables=tables,
    )
