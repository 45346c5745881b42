"""Warehouse adapter kinds and their SQL hooks, with sqlglot integration."""

from __future__ import annotations

import os
from enum import Enum
from typing import Callable

from sqlglot import exp

from explore_compiler.errors import ParseError


class SupportedDbtAdapter(str, Enum):
    """dbt adapter types we can compile explores for."""

    BIGQUERY = "bigquery"
    DATABRICKS = "databricks"
    SNOWFLAKE = "snowflake"
    REDSHIFT = "redshift"
    POSTGRES = "postgres"
    TRINO = "trino"


# Environment variable for default adapter
DEFAULT_ADAPTER_ENV = "EC_ADAPTER"


def get_default_adapter() -> SupportedDbtAdapter:
    """Get default adapter from environment or fall back to Postgres."""
    env_value = os.environ.get(DEFAULT_ADAPTER_ENV, "postgres").lower()
    try:
        return SupportedDbtAdapter(env_value)
    except ValueError:
        return SupportedDbtAdapter.POSTGRES


def parse_adapter(value: str | SupportedDbtAdapter) -> SupportedDbtAdapter:
    """Parse an adapter type, raising ParseError for unknown warehouses."""
    if isinstance(value, SupportedDbtAdapter):
        return value
    try:
        return SupportedDbtAdapter(str(value).lower())
    except ValueError:
        raise ParseError(f"Cannot recognise warehouse {value}")


# =============================================================================
# Timezone conversion
# =============================================================================

# (timestamp_sql, source_tz, target_tz) -> sql
TimezoneStrategy = Callable[[str, str, str], str]


def _passthrough(timestamp_sql: str, source_tz: str, target_tz: str) -> str:
    return timestamp_sql


def _snowflake_to_utc(timestamp_sql: str, source_tz: str, target_tz: str) -> str:
    # TIMESTAMP_LTZ/TZ are returned in session/value tz, normalise to UTC NTZ
    return f"TO_TIMESTAMP_NTZ(CONVERT_TIMEZONE('UTC', {timestamp_sql}))"


# TODO: honour source_tz/target_tz once per-project timezones are configurable
TIMEZONE_STRATEGIES: dict[SupportedDbtAdapter, TimezoneStrategy] = {
    SupportedDbtAdapter.BIGQUERY: _passthrough,
    SupportedDbtAdapter.DATABRICKS: _passthrough,
    SupportedDbtAdapter.SNOWFLAKE: _snowflake_to_utc,
    SupportedDbtAdapter.REDSHIFT: _passthrough,
    SupportedDbtAdapter.POSTGRES: _passthrough,
    SupportedDbtAdapter.TRINO: _passthrough,
}


def convert_timezone(
    timestamp_sql: str,
    default_source_tz: str,
    target_tz: str,
    adapter_type: SupportedDbtAdapter | str,
) -> str:
    """Normalise a timestamp expression for the target warehouse."""
    adapter = parse_adapter(adapter_type)
    strategy = TIMEZONE_STRATEGIES.get(adapter)
    if strategy is None:
        raise ParseError(f"Cannot recognise warehouse {adapter_type}")
    return strategy(timestamp_sql, default_source_tz, target_tz)


# =============================================================================
# SQL rendering
# =============================================================================


class SqlRenderer:
    """Render warehouse-specific SQL fragments."""

    def __init__(self, adapter: SupportedDbtAdapter | None = None) -> None:
        self.adapter = adapter or get_default_adapter()
        self._sqlglot_dialect = self._map_to_sqlglot_dialect()

    def _map_to_sqlglot_dialect(self) -> str:
        """Map our adapter enum to sqlglot dialect string."""
        mapping = {
            SupportedDbtAdapter.BIGQUERY: "bigquery",
            SupportedDbtAdapter.DATABRICKS: "databricks",
            SupportedDbtAdapter.SNOWFLAKE: "snowflake",
            SupportedDbtAdapter.REDSHIFT: "redshift",
            SupportedDbtAdapter.POSTGRES: "postgres",
            SupportedDbtAdapter.TRINO: "trino",
        }
        return mapping.get(self.adapter, "postgres")

    def quote_identifier(self, name: str) -> str:
        """Quote an identifier with the dialect's quote character."""
        return exp.to_identifier(name, quoted=True).sql(dialect=self._sqlglot_dialect)

    def date_trunc(self, unit: str, sql: str, is_timestamp: bool) -> str:
        """
        Generate dialect-specific truncation of a date or timestamp.

        Args:
            unit: Truncation unit (DAY, WEEK, MONTH, ...)
            sql: Expression to truncate
            is_timestamp: Whether the expression is a timestamp (vs date)
        """
        unit = unit.upper()
        if self.adapter == SupportedDbtAdapter.BIGQUERY:
            # DATETIME_TRUNC(expr, UNIT) / DATE_TRUNC(expr, UNIT)
            if is_timestamp:
                return f"DATETIME_TRUNC({sql}, {unit})"
            return f"DATE_TRUNC({sql}, {unit})"
        # DATE_TRUNC('UNIT', expr)
        return f"DATE_TRUNC('{unit}', {sql})"

    def percentile(self, sql: str, percentile: int) -> str:
        """Generate dialect-specific percentile aggregation (0-100)."""
        if self.adapter == SupportedDbtAdapter.BIGQUERY:
            return f"APPROX_QUANTILES({sql}, 100)[OFFSET({percentile})]"
        if self.adapter == SupportedDbtAdapter.DATABRICKS:
            return f"PERCENTILE({sql}, {percentile / 100})"
        if self.adapter == SupportedDbtAdapter.TRINO:
            return f"APPROX_PERCENTILE({sql}, {percentile / 100})"
        return f"PERCENTILE_CONT({percentile / 100}) WITHIN GROUP (ORDER BY {sql})"
