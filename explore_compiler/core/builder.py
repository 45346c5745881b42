"""Core compile logic for explore-compiler.

Loads a dbt manifest and warehouse catalog, then runs the explore pipeline.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from explore_compiler.compiler import attach_types_to_models, convert_explores
from explore_compiler.domain.explore import Explore, ExploreError
from explore_compiler.ingestion.dbt import DbtManifestLoader, load_catalog

if TYPE_CHECKING:
    from explore_compiler.config import CompilerConfig
    from explore_compiler.ingestion.dbt import DbtMetric, DbtModelNode

logger = logging.getLogger(__name__)


@dataclass
class CompileStatistics:
    """Statistics collected during a compile."""

    models: int = 0
    explores: int = 0
    errors: int = 0
    dimensions: int = 0
    metrics: int = 0


@dataclass
class CompileResult:
    explores: list[Explore] = field(default_factory=list)
    errors: list[ExploreError] = field(default_factory=list)
    stats: CompileStatistics = field(default_factory=CompileStatistics)

    @property
    def all(self) -> list[Explore | ExploreError]:
        return [*self.explores, *self.errors]

    def to_json(self, indent: int | None = 2) -> str:
        payload: list[dict[str, Any]] = [
            item.model_dump(mode="json", by_alias=True) for item in self.all
        ]
        return json.dumps(payload, indent=indent)


def load_project(
    config: CompilerConfig,
) -> tuple[list[DbtModelNode], list[DbtMetric]]:
    """
    Load models and metrics, attaching catalog types when a catalog is set.

    Raises:
        FileNotFoundError: manifest or catalog is missing
        MissingCatalogEntryError: a model or column is missing from the
            catalog and throw_on_missing_catalog_entry is set
    """
    models, metrics = DbtManifestLoader(config.manifest_path).load()

    if config.catalog_path is not None:
        catalog = load_catalog(config.catalog_path)
        models = attach_types_to_models(
            models,
            catalog,
            throw_on_missing_catalog_entry=config.throw_on_missing_catalog_entry,
            case_sensitive_matching=config.case_sensitive_matching,
        )
    return models, metrics


def run_compile(config: CompilerConfig) -> CompileResult:
    """Compile every model in the manifest into an explore."""
    models, metrics = load_project(config)
    explores = convert_explores(models, config.adapter, metrics)

    result = CompileResult()
    result.stats.models = len(models)
    for item in explores:
        if isinstance(item, ExploreError):
            result.errors.append(item)
            continue
        result.explores.append(item)
        base = item.tables[item.base_table]
        result.stats.dimensions += len(base.dimensions)
        result.stats.metrics += len(base.metrics)

    result.stats.explores = len(result.explores)
    result.stats.errors = len(result.errors)

    if config.output_path is not None:
        config.output_path.parent.mkdir(parents=True, exist_ok=True)
        config.output_path.write_text(result.to_json(), encoding="utf-8")
        logger.info("Wrote %d explores to %s", len(explores), config.output_path)

    return result
