"""Configuration schema for explore-compiler.

Defines the ec.yml configuration file format using Pydantic models.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, field_validator

from explore_compiler.adapters.dialect import SupportedDbtAdapter


class CompilerConfig(BaseModel):
    """
    Root configuration for explore-compiler.

    This is the schema for ec.yml files.

    Example:
        manifest: ./target/manifest.json
        catalog: ./target/catalog.json  # or a nested yaml mapping
        output: ./explores.json
        adapter: snowflake

        # Catalog matching
        throw_on_missing_catalog_entry: true
        case_sensitive_matching: false
    """

    manifest: str = "target/manifest.json"
    catalog: str | None = None
    output: str | None = None
    adapter: SupportedDbtAdapter = SupportedDbtAdapter.POSTGRES
    throw_on_missing_catalog_entry: bool = True
    case_sensitive_matching: bool = True

    model_config = {"frozen": True}

    @field_validator("adapter", mode="before")
    @classmethod
    def parse_adapter(cls, v: Any) -> SupportedDbtAdapter:
        """Parse adapter from string."""
        if isinstance(v, SupportedDbtAdapter):
            return v
        if isinstance(v, str):
            try:
                return SupportedDbtAdapter(v.lower())
            except ValueError:
                valid = [a.value for a in SupportedDbtAdapter]
                raise ValueError(f"Invalid adapter '{v}'. Valid: {valid}")
        return SupportedDbtAdapter(v)

    @property
    def manifest_path(self) -> Path:
        return Path(self.manifest)

    @property
    def catalog_path(self) -> Path | None:
        return Path(self.catalog) if self.catalog else None

    @property
    def output_path(self) -> Path | None:
        return Path(self.output) if self.output else None

    @classmethod
    def from_yaml(cls, content: str) -> CompilerConfig:
        """Parse config from YAML string."""
        data = yaml.safe_load(content) or {}
        return cls.model_validate(data)

    @classmethod
    def from_file(cls, path: Path | str) -> CompilerConfig:
        """Load config from a YAML file, resolving paths relative to it."""
        path = Path(path)
        config = cls.from_yaml(path.read_text(encoding="utf-8"))
        base = path.parent
        updates: dict[str, Any] = {}
        for key in ("manifest", "catalog", "output"):
            value = getattr(config, key)
            if value and not Path(value).is_absolute():
                updates[key] = str(base / value)
        return config.model_copy(update=updates)


# Config file discovery
CONFIG_FILENAMES = ["ec.yml", "ec.yaml", ".ec.yml", ".ec.yaml"]


def find_config(start_dir: Path | str | None = None) -> Path | None:
    """
    Find ec.yml config file.

    Searches start_dir (default: current working directory) and then its
    parents up to the filesystem root.
    """
    if start_dir is None:
        start_dir = Path.cwd()
    else:
        start_dir = Path(start_dir)

    current = start_dir.resolve()

    while True:
        for filename in CONFIG_FILENAMES:
            config_path = current / filename
            if config_path.is_file():
                return config_path

        parent = current.parent
        if parent == current:
            break
        current = parent

    return None


def load_config(path: Path | str | None = None) -> CompilerConfig:
    """
    Load configuration from file.

    Without a path, searches for ec.yml in current and parent directories
    and falls back to defaults when none exists.

    Raises:
        FileNotFoundError: If an explicit path does not exist
        pydantic.ValidationError: If config is invalid
    """
    if path is None:
        path = find_config()
        if path is None:
            return CompilerConfig()
    else:
        path = Path(path)
        if not path.is_file():
            raise FileNotFoundError(f"Config file not found: {path}")

    return CompilerConfig.from_file(path)
