"""Core compile orchestration."""

from explore_compiler.core.builder import (
    CompileResult,
    CompileStatistics,
    load_project,
    run_compile,
)

__all__ = ["CompileResult", "CompileStatistics", "load_project", "run_compile"]
