"""dbt ingestion - manifest shapes and loaders."""

from explore_compiler.ingestion.dbt.loader import (
    DbtManifestLoader,
    WarehouseCatalog,
    catalog_from_dbt_catalog,
    load_catalog,
    map_warehouse_type,
    parse_catalog,
)
from explore_compiler.ingestion.dbt.models import (
    DbtColumnDimensionMeta,
    DbtColumnMeta,
    DbtColumnMetric,
    DbtDependsOn,
    DbtMetric,
    DbtMetricFilter,
    DbtModelColumn,
    DbtModelConfig,
    DbtModelJoin,
    DbtModelMeta,
    DbtModelNode,
)

__all__ = [
    "DbtManifestLoader",
    "WarehouseCatalog",
    "catalog_from_dbt_catalog",
    "load_catalog",
    "map_warehouse_type",
    "parse_catalog",
    "DbtColumnDimensionMeta",
    "DbtColumnMeta",
    "DbtColumnMetric",
    "DbtDependsOn",
    "DbtMetric",
    "DbtMetricFilter",
    "DbtModelColumn",
    "DbtModelConfig",
    "DbtModelJoin",
    "DbtModelMeta",
    "DbtModelNode",
]
