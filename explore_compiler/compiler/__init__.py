"""Compiler layer - dbt models and metrics to tables and explores."""

from explore_compiler.compiler.explore import ExploreCompiler, compile_explore
from explore_compiler.compiler.lineage import (
    DependencyGraph,
    build_model_graph,
    generate_table_lineage,
    translate_models_to_table_lineage,
)
from explore_compiler.compiler.metrics import convert_metric
from explore_compiler.compiler.translator import (
    attach_types_to_models,
    convert_dbt_metric_to_metric,
    convert_dimension,
    convert_explores,
    convert_table,
    get_schema_structure_from_dbt_models,
    model_can_use_metric,
)

__all__ = [
    "ExploreCompiler",
    "compile_explore",
    "DependencyGraph",
    "build_model_graph",
    "generate_table_lineage",
    "translate_models_to_table_lineage",
    "convert_metric",
    "attach_types_to_models",
    "convert_dbt_metric_to_metric",
    "convert_dimension",
    "convert_explores",
    "convert_table",
    "get_schema_structure_from_dbt_models",
    "model_can_use_metric",
]
