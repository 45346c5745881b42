"""CLI utilities for explore-compiler.

Rich-based formatting for explore summaries, errors and lineage.
"""

from __future__ import annotations

from explore_compiler.cli.formatting import (
    errors_table,
    explores_table,
    format_error,
    lineage_tree,
)

__all__ = [
    "errors_table",
    "explores_table",
    "format_error",
    "lineage_tree",
]
