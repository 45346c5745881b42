"""Ingestion layer - dbt manifest and warehouse catalog loading."""

from explore_compiler.ingestion.dbt import DbtManifestLoader, load_catalog

__all__ = ["DbtManifestLoader", "load_catalog"]
