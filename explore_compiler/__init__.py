"""
explore-compiler: compile dbt projects into a queryable semantic layer.

Architecture:
    manifest.json + warehouse catalog → Ingestion → Compiler → Explores

Layers:
    - domain/: Pure semantic types (dimensions, metrics, tables, explores)
    - ingestion/: dbt manifest shapes and manifest/catalog loading
    - adapters/: Warehouse-specific SQL hooks (timezones, truncation, quoting)
    - compiler/: Table assembly, metric eligibility, lineage, join compilation

Key Concepts:
    - One bad model never blocks the others: it becomes an ExploreError
    - Date and timestamp columns expand into time interval dimensions
    - Column metrics win over dbt metrics that share their name
"""

__version__ = "0.1.0"
