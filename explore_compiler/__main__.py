"""Command-line interface for explore-compiler."""

from __future__ import annotations

import logging
import traceback
from pathlib import Path
from typing import Any

import click
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler

from explore_compiler.adapters.dialect import SupportedDbtAdapter
from explore_compiler.cli import errors_table, explores_table, format_error, lineage_tree
from explore_compiler.compiler import translate_models_to_table_lineage
from explore_compiler.config import CompilerConfig, load_config
from explore_compiler.core import CompileResult, load_project, run_compile
from explore_compiler.errors import CompilerError

# Explores are written to stdout; everything else goes to stderr
console = Console(stderr=True)


def _configure_logging(verbose: bool, debug: bool) -> None:
    level = logging.DEBUG if debug else logging.INFO if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=debug)],
        force=True,
    )


def _fail(message: str, debug: bool, context: str | None = None) -> click.ClickException:
    if debug:
        console.print(traceback.format_exc())
    console.print(format_error(message, context))
    return click.ClickException(message)


def _load_config(
    config: Path | None, debug: bool, overrides: dict[str, Any]
) -> CompilerConfig:
    """Load ec.yml (explicit or discovered) and apply command line overrides."""
    try:
        cfg = load_config(config)
    except FileNotFoundError as e:
        raise _fail(f"Config file not found: {e}", debug)
    except yaml.YAMLError as e:
        raise _fail(f"YAML parsing error: {e}", debug)
    except ValidationError as e:
        raise _fail(f"Config validation error: {e}", debug)

    updates = {k: v for k, v in overrides.items() if v is not None}
    if "adapter" in updates:
        updates["adapter"] = SupportedDbtAdapter(updates["adapter"])
    return cfg.model_copy(update=updates)


def _compile(cfg: CompilerConfig, debug: bool) -> CompileResult:
    try:
        return run_compile(cfg)
    except FileNotFoundError as e:
        raise _fail(str(e), debug)
    except (ValueError, CompilerError) as e:
        raise _fail(
            str(e),
            debug,
            context="Catalog errors abort the whole run. Pass --allow-missing "
            "to fall back to string dimensions for missing columns.",
        )


def _print_summary(result: CompileResult) -> None:
    if result.explores:
        console.print(explores_table(result.explores))
    if result.errors:
        console.print(errors_table(result.errors))
    stats = result.stats
    color = "green" if not stats.errors else "yellow"
    console.print(
        f"\n[bold {color}]Compiled {stats.explores}/{stats.models} explores[/bold {color}] "
        f"[dim]({stats.dimensions} dims, {stats.metrics} metrics, "
        f"{stats.errors} errors)[/dim]"
    )


def common_options(func: Any) -> Any:
    """Options shared by commands that load a dbt project."""
    options = [
        click.option(
            "--config",
            "-c",
            type=click.Path(exists=True, path_type=Path),
            help="Path to ec.yml config file (auto-detected if not specified)",
        ),
        click.option("--manifest", "-m", help="Path to dbt manifest.json"),
        click.option(
            "--catalog",
            help="Warehouse catalog (dbt catalog.json or nested yaml/json mapping)",
        ),
        click.option(
            "--adapter",
            "-a",
            type=click.Choice([a.value for a in SupportedDbtAdapter]),
            help="Warehouse adapter type",
        ),
        click.option(
            "--case-insensitive",
            "case_insensitive",
            is_flag=True,
            default=None,
            help="Match catalog databases, schemas, tables and columns ignoring case",
        ),
        click.option(
            "--allow-missing",
            "allow_missing",
            is_flag=True,
            default=None,
            help="Do not fail when models or columns are missing from the catalog",
        ),
        click.option("--verbose", "-v", is_flag=True, help="Show detailed output"),
        click.option(
            "--debug",
            is_flag=True,
            help="Show full exception stacktraces for troubleshooting",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _overrides(
    manifest: str | None,
    catalog: str | None,
    adapter: str | None,
    case_insensitive: bool | None,
    allow_missing: bool | None,
) -> dict[str, Any]:
    return {
        "manifest": manifest,
        "catalog": catalog,
        "adapter": adapter,
        "case_sensitive_matching": False if case_insensitive else None,
        "throw_on_missing_catalog_entry": False if allow_missing else None,
    }


@click.group()
@click.version_option(package_name="explore-compiler")
def cli() -> None:
    """Compile dbt projects into explores.

    Config-driven compilation:

        $ explore-compiler compile

    Or with explicit inputs:

        $ explore-compiler compile -m target/manifest.json --catalog catalog.yml
    """
    pass


@cli.command("compile")
@common_options
@click.option("--output", "-o", help="Write explores JSON here instead of stdout")
def compile_cmd(
    config: Path | None,
    manifest: str | None,
    catalog: str | None,
    adapter: str | None,
    case_insensitive: bool | None,
    allow_missing: bool | None,
    verbose: bool,
    debug: bool,
    output: str | None,
) -> None:
    """Compile every dbt model into an explore.

    Models that fail to compile are reported as errors without stopping
    the others. Exits with status 1 when no model compiles.

    Examples:

        # Compile using ec.yml in current directory
        explore-compiler compile

        # Snowflake project, catalog matched ignoring case
        explore-compiler compile -a snowflake --catalog target/catalog.json --case-insensitive
    """
    _configure_logging(verbose, debug)
    overrides = _overrides(manifest, catalog, adapter, case_insensitive, allow_missing)
    overrides["output"] = output
    cfg = _load_config(config, debug, overrides)

    result = _compile(cfg, debug)
    if cfg.output_path is None:
        click.echo(result.to_json())
    _print_summary(result)

    if result.stats.models and not result.explores:
        raise SystemExit(1)


@cli.command()
@common_options
def validate(
    config: Path | None,
    manifest: str | None,
    catalog: str | None,
    adapter: str | None,
    case_insensitive: bool | None,
    allow_missing: bool | None,
    verbose: bool,
    debug: bool,
) -> None:
    """Check that every dbt model compiles.

    Exits with status 1 if any model has errors.
    """
    _configure_logging(verbose, debug)
    overrides = _overrides(manifest, catalog, adapter, case_insensitive, allow_missing)
    cfg = _load_config(config, debug, overrides)
    cfg = cfg.model_copy(update={"output": None})

    result = _compile(cfg, debug)
    _print_summary(result)

    if result.errors:
        raise SystemExit(1)


@cli.command()
@click.argument("model")
@common_options
def lineage(
    model: str,
    config: Path | None,
    manifest: str | None,
    catalog: str | None,
    adapter: str | None,
    case_insensitive: bool | None,
    allow_missing: bool | None,
    verbose: bool,
    debug: bool,
) -> None:
    """Show the upstream and downstream lineage of MODEL."""
    _configure_logging(verbose, debug)
    overrides = _overrides(manifest, None, adapter, case_insensitive, allow_missing)
    cfg = _load_config(config, debug, overrides)
    # Lineage only needs the manifest
    cfg = cfg.model_copy(update={"catalog": None})

    try:
        models, _ = load_project(cfg)
    except FileNotFoundError as e:
        raise _fail(str(e), debug)

    table_lineage = translate_models_to_table_lineage(models)
    if model not in table_lineage:
        raise _fail(f'Model "{model}" not found in manifest', debug)
    console.print(lineage_tree(model, table_lineage[model]))


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
