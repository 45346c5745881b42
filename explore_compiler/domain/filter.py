"""Filter domain - filter rules attached to metrics via `meta.filters`."""

from __future__ import annotations

import re
import uuid
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from explore_compiler.errors import ParseError


class FilterOperator(str, Enum):
    """Supported filter operators."""

    NULL = "isNull"
    NOT_NULL = "notNull"
    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    INCLUDE = "include"
    NOT_INCLUDE = "doesNotInclude"
    LESS_THAN = "lessThan"
    LESS_THAN_OR_EQUAL = "lessThanOrEqual"
    GREATER_THAN = "greaterThan"
    GREATER_THAN_OR_EQUAL = "greaterThanOrEqual"


class FilterTarget(BaseModel):
    """The field a filter applies to."""

    field_ref: str

    model_config = {"frozen": True}


class MetricFilterRule(BaseModel):
    """A single filter condition applied when a metric is aggregated."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    target: FilterTarget
    operator: FilterOperator
    values: list[Any] = Field(default_factory=list)

    model_config = {"frozen": True}


# Order matters: longer prefixes first
_COMPARISON_PATTERNS = [
    (re.compile(r"^>=\s*(.+)$"), FilterOperator.GREATER_THAN_OR_EQUAL),
    (re.compile(r"^<=\s*(.+)$"), FilterOperator.LESS_THAN_OR_EQUAL),
    (re.compile(r"^>\s*(.+)$"), FilterOperator.GREATER_THAN),
    (re.compile(r"^<\s*(.+)$"), FilterOperator.LESS_THAN),
]


def parse_filter_expression(expression: Any) -> tuple[FilterOperator, list[Any]]:
    """
    Parse a single filter expression into an operator and values.

    Grammar:
        null / !null        -> isNull / notNull
        >5, >=5, <5, <=5    -> comparisons (numbers parsed)
        %foo%, !%foo%       -> include / doesNotInclude
        foo%, %foo          -> startsWith / endsWith
        !foo                -> notEquals
        foo, 5, true        -> equals
        [a, b]              -> equals any of
    """
    if isinstance(expression, list):
        return FilterOperator.EQUALS, list(expression)

    if not isinstance(expression, str):
        return FilterOperator.EQUALS, [expression]

    text = expression.strip()
    lowered = text.lower()
    if lowered == "null":
        return FilterOperator.NULL, []
    if lowered == "!null":
        return FilterOperator.NOT_NULL, []

    for pattern, operator in _COMPARISON_PATTERNS:
        match = pattern.match(text)
        if match:
            return operator, [_parse_value(match.group(1).strip())]

    negated = text.startswith("!")
    body = text[1:] if negated else text

    if len(body) > 1 and body.startswith("%") and body.endswith("%"):
        operator = FilterOperator.NOT_INCLUDE if negated else FilterOperator.INCLUDE
        return operator, [body[1:-1]]
    if negated:
        return FilterOperator.NOT_EQUALS, [_parse_value(body)]
    if body.endswith("%") and len(body) > 1:
        return FilterOperator.STARTS_WITH, [body[:-1]]
    if body.startswith("%") and len(body) > 1:
        return FilterOperator.ENDS_WITH, [body[1:]]

    return FilterOperator.EQUALS, [_parse_value(body)]


def _parse_value(value: str) -> str | int | float | bool:
    """Parse a string value to appropriate type."""
    if value.lower() in ("true", "false"):
        return value.lower() == "true"

    # Try int
    try:
        return int(value)
    except ValueError:
        pass

    # Try float
    try:
        return float(value)
    except ValueError:
        pass

    # Return as string (strip quotes if present)
    if (value.startswith("'") and value.endswith("'")) or (
        value.startswith('"') and value.endswith('"')
    ):
        return value[1:-1]
    return value


def parse_filters(raw: list[dict[str, Any]] | dict[str, Any] | None) -> list[MetricFilterRule]:
    """
    Parse `meta.filters` into metric filter rules.

    Accepts either a list of single-key dicts (the dbt yaml convention):
        filters:
          - is_completed: true
          - amount: '>100'
    or one dict with several fields.
    """
    if not raw:
        return []

    entries: list[dict[str, Any]]
    if isinstance(raw, dict):
        entries = [raw]
    elif isinstance(raw, list):
        entries = raw
    else:
        raise ParseError(f"Metric filters must be a list of mappings, got {type(raw).__name__}")

    rules = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise ParseError(f"Invalid metric filter {entry!r}: expected a mapping")
        for field, expression in entry.items():
            operator, values = parse_filter_expression(expression)
            rules.append(
                MetricFilterRule(
                    target=FilterTarget(field_ref=field),
                    operator=operator,
                    values=values,
                )
            )
    return rules
