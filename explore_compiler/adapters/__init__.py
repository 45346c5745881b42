"""Adapter layer - warehouse-specific SQL hooks."""

from explore_compiler.adapters.dialect import (
    TIMEZONE_STRATEGIES,
    SqlRenderer,
    SupportedDbtAdapter,
    convert_timezone,
    get_default_adapter,
    parse_adapter,
)

__all__ = [
    "TIMEZONE_STRATEGIES",
    "SqlRenderer",
    "SupportedDbtAdapter",
    "convert_timezone",
    "get_default_adapter",
    "parse_adapter",
]
