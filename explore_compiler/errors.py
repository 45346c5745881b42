"""Compiler exceptions.

Every error raised while turning a dbt model into an explore derives from
CompilerError so the driver can record it against the offending model.
"""

from __future__ import annotations

from typing import Any


class CompilerError(Exception):
    """Base error for the dbt-to-explore pipeline."""

    def __init__(self, message: str, data: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.data = data or {}

    @property
    def name(self) -> str:
        return type(self).__name__


class NonCompiledModelError(CompilerError):
    """The dbt model has not been compiled."""


class MissingCatalogEntryError(CompilerError):
    """A table, column or type could not be found in the warehouse catalog."""


class ParseError(CompilerError):
    """Metadata in the dbt project could not be understood."""


class CompileError(CompilerError):
    """An explore could not be compiled (missing tables, bad references)."""
