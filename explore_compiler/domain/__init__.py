"""Domain layer - semantic primitives and types.

This layer contains output-agnostic semantic concepts:
- Dimensions, metrics and their value types
- Time frames used to expand date/timestamp dimensions
- Metric filter rules
- Tables, lineage and explores
"""

from explore_compiler.domain.explore import (
    CompiledDimension,
    CompiledExploreJoin,
    CompiledMetric,
    CompiledTable,
    Explore,
    ExploreError,
    ExploreJoin,
    InlineError,
    LineageGraph,
    LineageNodeDependency,
    Table,
    is_explore_error,
)
from explore_compiler.domain.field import (
    Dimension,
    DimensionType,
    FieldType,
    Metric,
    MetricType,
    Source,
    default_sql,
    friendly_name,
    parse_metric_type,
)
from explore_compiler.domain.filter import (
    FilterOperator,
    FilterTarget,
    MetricFilterRule,
    parse_filters,
)
from explore_compiler.domain.time_frames import (
    TIME_FRAME_CONFIGS,
    TimeFrames,
    get_default_time_frames,
    validate_time_frames,
)

__all__ = [
    # Explore
    "CompiledDimension",
    "CompiledExploreJoin",
    "CompiledMetric",
    "CompiledTable",
    "Explore",
    "ExploreError",
    "ExploreJoin",
    "InlineError",
    "LineageGraph",
    "LineageNodeDependency",
    "Table",
    "is_explore_error",
    # Field
    "Dimension",
    "DimensionType",
    "FieldType",
    "Metric",
    "MetricType",
    "Source",
    "default_sql",
    "friendly_name",
    "parse_metric_type",
    # Filter
    "FilterOperator",
    "FilterTarget",
    "MetricFilterRule",
    "parse_filters",
    # Time frames
    "TIME_FRAME_CONFIGS",
    "TimeFrames",
    "get_default_time_frames",
    "validate_time_frames",
]
