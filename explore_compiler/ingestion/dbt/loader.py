"""Loaders for dbt manifest.json and warehouse catalog files."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml

from explore_compiler.domain.field import DimensionType
from explore_compiler.ingestion.dbt.models import DbtMetric, DbtModelNode

logger = logging.getLogger(__name__)

# database -> schema -> table -> column -> type
WarehouseCatalog = dict[str, dict[str, dict[str, dict[str, DimensionType]]]]


class DbtManifestLoader:
    """
    Load models and metrics from a dbt manifest.json.

    Handles:
    - Selecting `model` nodes in manifest order
    - Marking models compiled when the manifest predates the `compiled` flag
    - Collecting dbt-native metrics
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> tuple[list[DbtModelNode], list[DbtMetric]]:
        """
        Load all models and metrics.

        Returns:
            Tuple of (models, metrics)
        """
        manifest = self._load_file()
        models = self.parse_models(manifest)
        metrics = self.parse_metrics(manifest)
        logger.info(
            "Loaded %d models and %d metrics from %s",
            len(models),
            len(metrics),
            self.path,
        )
        return models, metrics

    def _load_file(self) -> dict[str, Any]:
        if not self.path.exists():
            raise FileNotFoundError(f"Manifest not found: {self.path}")

        with open(self.path, encoding="utf-8") as f:
            content = json.load(f)

        if not isinstance(content, dict):
            raise ValueError(
                f"Expected object at root of {self.path}, got {type(content)}"
            )
        return content

    @staticmethod
    def parse_models(manifest: dict[str, Any]) -> list[DbtModelNode]:
        models = []
        for node in manifest.get("nodes", {}).values():
            if node.get("resource_type") != "model":
                continue
            data = dict(node)
            if "compiled" not in data:
                data["compiled"] = bool(
                    data.get("compiled_code") or data.get("compiled_sql")
                )
            # Declared warehouse types become dimension types
            columns = {}
            for name, column in (data.get("columns") or {}).items():
                column = dict(column)
                if column.get("data_type"):
                    column["data_type"] = map_warehouse_type(
                        str(column["data_type"])
                    ).value
                else:
                    column["data_type"] = None
                columns[name] = column
            data["columns"] = columns
            models.append(DbtModelNode.model_validate(data))
        return models

    @staticmethod
    def parse_metrics(manifest: dict[str, Any]) -> list[DbtMetric]:
        return [
            DbtMetric.model_validate(metric)
            for metric in manifest.get("metrics", {}).values()
        ]


# Substrings of warehouse column types, checked in order
_WAREHOUSE_TYPE_KEYWORDS: list[tuple[tuple[str, ...], DimensionType]] = [
    (("timestamp", "datetime"), DimensionType.TIMESTAMP),
    (("date",), DimensionType.DATE),
    (("bool",), DimensionType.BOOLEAN),
    (
        (
            "int",
            "numeric",
            "decimal",
            "number",
            "float",
            "double",
            "real",
            "bignumeric",
            "money",
        ),
        DimensionType.NUMBER,
    ),
]


def map_warehouse_type(raw_type: str) -> DimensionType:
    """
    Map a raw warehouse column type to a dimension type.

    Examples:
        TIMESTAMP_NTZ -> timestamp
        character varying -> string
        NUMERIC(38,2) -> number
    """
    lowered = raw_type.lower()
    try:
        return DimensionType(lowered)
    except ValueError:
        pass
    for keywords, dimension_type in _WAREHOUSE_TYPE_KEYWORDS:
        if any(k in lowered for k in keywords):
            return dimension_type
    return DimensionType.STRING


def load_catalog(path: str | Path) -> WarehouseCatalog:
    """
    Load a warehouse catalog.

    Supports a nested YAML/JSON mapping:

        analytics:
          public:
            orders:
              amount: number

    or a dbt `catalog.json` produced by `dbt docs generate`.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Catalog not found: {path}")

    with open(path, encoding="utf-8") as f:
        if path.suffix == ".json":
            content = json.load(f)
        else:
            content = yaml.safe_load(f)

    if content is None:
        return {}
    if not isinstance(content, dict):
        raise ValueError(f"Expected mapping at root of {path}, got {type(content)}")

    if "nodes" in content and "metadata" in content:
        return catalog_from_dbt_catalog(content)
    return parse_catalog(content)


def parse_catalog(data: dict[str, Any]) -> WarehouseCatalog:
    """Normalise a nested mapping, mapping raw types to dimension types."""
    catalog: WarehouseCatalog = {}
    for database, schemas in data.items():
        for schema, tables in (schemas or {}).items():
            for table, columns in (tables or {}).items():
                catalog.setdefault(database, {}).setdefault(schema, {})[table] = {
                    column: map_warehouse_type(str(raw_type))
                    for column, raw_type in (columns or {}).items()
                }
    return catalog


def catalog_from_dbt_catalog(data: dict[str, Any]) -> WarehouseCatalog:
    """Build a catalog from dbt's catalog.json (nodes and sources)."""
    catalog: WarehouseCatalog = {}
    entries = list(data.get("nodes", {}).values()) + list(
        data.get("sources", {}).values()
    )
    for entry in entries:
        metadata = entry.get("metadata", {})
        # spark and hive metastore catalogs carry no database
        database = metadata.get("database") or ""
        schema = metadata.get("schema")
        table = metadata.get("name")
        if not (schema and table):
            continue
        columns = {
            column.get("name", name): map_warehouse_type(column.get("type", ""))
            for name, column in entry.get("columns", {}).items()
        }
        catalog.setdefault(database, {}).setdefault(schema, {})[table] = columns
    return catalog
