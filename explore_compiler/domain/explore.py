"""Explore domain - tables, lineage and the compiled explores built from them."""

from __future__ import annotations

from pydantic import BaseModel, Field

from explore_compiler.adapters.dialect import SupportedDbtAdapter
from explore_compiler.domain.field import Dimension, Metric


class LineageNodeDependency(BaseModel):
    """A direct dependency of a node in the lineage graph."""

    type: str  # model, seed, source
    name: str

    model_config = {"frozen": True}


# model name -> its direct dependencies
LineageGraph = dict[str, list[LineageNodeDependency]]


class Table(BaseModel):
    """
    One dbt model compiled into a semantic unit.

    Dimension and metric names are disjoint.
    """

    name: str
    label: str
    database: str | None = None
    schema_name: str = Field(alias="schema")
    sql_table: str
    description: str
    dimensions: dict[str, Dimension] = Field(default_factory=dict)
    metrics: dict[str, Metric] = Field(default_factory=dict)
    lineage_graph: LineageGraph = Field(default_factory=dict)

    model_config = {"frozen": True, "populate_by_name": True}


class CompiledDimension(Dimension):
    compiled_sql: str


class CompiledMetric(Metric):
    compiled_sql: str


class CompiledTable(Table):
    """A table whose fields have fully resolved SQL."""

    dimensions: dict[str, CompiledDimension] = Field(default_factory=dict)  # type: ignore[assignment]
    metrics: dict[str, CompiledMetric] = Field(default_factory=dict)  # type: ignore[assignment]


class ExploreJoin(BaseModel):
    """A join requested in model meta: `joins: [{join, sql_on}]`."""

    table: str
    sql_on: str

    model_config = {"frozen": True}


class CompiledExploreJoin(ExploreJoin):
    compiled_sql_on: str
    type: str = "left"


class Explore(BaseModel):
    """A fully joined, compiled semantic model ready for querying."""

    name: str
    label: str
    tags: list[str] = Field(default_factory=list)
    base_table: str
    joined_tables: list[CompiledExploreJoin] = Field(default_factory=list)
    tables: dict[str, CompiledTable] = Field(default_factory=dict)
    target_database: SupportedDbtAdapter

    model_config = {"frozen": True}

    @property
    def field_count(self) -> int:
        return sum(len(t.dimensions) + len(t.metrics) for t in self.tables.values())


class InlineError(BaseModel):
    """A single structured error for a model."""

    type: str
    message: str

    model_config = {"frozen": True}


class ExploreError(BaseModel):
    """A model that could not be turned into an explore."""

    name: str
    label: str
    tags: list[str] = Field(default_factory=list)
    errors: list[InlineError] = Field(default_factory=list)

    model_config = {"frozen": True}


def is_explore_error(explore: Explore | ExploreError) -> bool:
    return isinstance(explore, ExploreError)
