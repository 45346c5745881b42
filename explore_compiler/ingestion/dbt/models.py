"""dbt manifest shapes - the parts of models and metrics we compile."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator


class DbtColumnDimensionMeta(BaseModel):
    """`meta.dimension` overrides on a model column."""

    name: str | None = None
    label: str | None = None
    type: str | None = None
    description: str | None = None
    sql: str | None = None
    time_intervals: list[str] | str | None = None
    hidden: bool = False
    round: int | None = None
    compact: str | None = None
    format: str | None = None
    group_label: str | None = None
    urls: list[dict[str, Any]] | None = None

    model_config = {"frozen": True, "extra": "allow"}


class DbtColumnMetric(BaseModel):
    """A metric declared under a column's `meta.metrics`."""

    type: str
    label: str | None = None
    description: str | None = None
    sql: str | None = None
    hidden: bool = False
    round: int | None = None
    compact: str | None = None
    format: str | None = None
    group_label: str | None = None
    urls: list[dict[str, Any]] | None = None
    show_underlying_values: list[str] | None = None
    percentile: int | None = None
    filters: list[dict[str, Any]] | dict[str, Any] | None = None

    model_config = {"frozen": True, "extra": "allow"}


class DbtColumnMeta(BaseModel):
    dimension: DbtColumnDimensionMeta | None = None
    metrics: dict[str, DbtColumnMetric] = Field(default_factory=dict)

    model_config = {"frozen": True, "extra": "allow"}


class DbtModelColumn(BaseModel):
    """A declared column on a dbt model."""

    name: str
    description: str | None = None
    meta: DbtColumnMeta = Field(default_factory=DbtColumnMeta)
    # A DimensionType value: mapped from the declared type, then replaced by
    # the warehouse catalog when one is attached
    data_type: str | None = None

    model_config = {"frozen": True}

    @field_validator("meta", mode="before")
    @classmethod
    def default_meta(cls, v: Any) -> Any:
        return v or {}


class DbtModelJoin(BaseModel):
    join: str
    sql_on: str

    model_config = {"frozen": True}


class DbtModelMeta(BaseModel):
    """Model level meta: explore label and joins."""

    label: str | None = None
    joins: list[DbtModelJoin] = Field(default_factory=list)

    model_config = {"frozen": True, "extra": "allow"}


class DbtModelConfig(BaseModel):
    meta: DbtModelMeta | None = None

    model_config = {"frozen": True, "extra": "allow"}


class DbtDependsOn(BaseModel):
    nodes: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}


class DbtModelNode(BaseModel):
    """
    A compiled dbt model node from manifest.json.

    Only compiled models can be turned into tables.
    """

    unique_id: str
    name: str
    database: str | None = None
    schema_name: str = Field(alias="schema")
    relation_name: str | None = None
    description: str | None = None
    columns: dict[str, DbtModelColumn] = Field(default_factory=dict)
    config: DbtModelConfig | None = None
    meta: DbtModelMeta = Field(default_factory=DbtModelMeta)
    tags: list[str] = Field(default_factory=list)
    patch_path: str | None = None
    compiled: bool = False
    depends_on: DbtDependsOn = Field(default_factory=DbtDependsOn)

    model_config = {"frozen": True, "populate_by_name": True}

    @field_validator("meta", mode="before")
    @classmethod
    def default_meta(cls, v: Any) -> Any:
        return v or {}

    @property
    def resolved_meta(self) -> DbtModelMeta:
        """Model meta: the config block takes priority over the meta block."""
        if self.config is not None and self.config.meta is not None:
            return self.config.meta
        return self.meta


class DbtMetricFilter(BaseModel):
    field: str
    operator: str
    value: str

    model_config = {"frozen": True}

    @field_validator("value", mode="before")
    @classmethod
    def stringify_value(cls, v: Any) -> str:
        return str(v)


class DbtMetric(BaseModel):
    """A dbt-native metric (dbt 1.3/1.4 `metrics:` block)."""

    unique_id: str | None = None
    name: str
    label: str | None = None
    description: str | None = None
    calculation_method: str
    expression: str | None = None
    filters: list[DbtMetricFilter] = Field(default_factory=list)
    metrics: list[list[str]] = Field(default_factory=list)
    refs: list[list[str]] = Field(default_factory=list)
    meta: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @field_validator("metrics", "refs", mode="before")
    @classmethod
    def normalise_references(cls, v: Any) -> Any:
        """Accept `[["name"]]`, `["name"]` or `[{"name": ...}]` references."""
        if not v:
            return []
        normalised = []
        for ref in v:
            if isinstance(ref, dict):
                normalised.append([ref["name"]])
            elif isinstance(ref, str):
                normalised.append([ref])
            else:
                normalised.append(list(ref))
        return normalised

    @field_validator("meta", mode="before")
    @classmethod
    def default_meta(cls, v: Any) -> Any:
        return v or {}

    @property
    def referenced_metrics(self) -> list[str]:
        return [m[0] for m in self.metrics if m]

    @property
    def model_ref(self) -> str | None:
        """The first model this metric is declared on."""
        if self.refs and self.refs[0]:
            return self.refs[0][0]
        return None
