"""Rich formatting utilities for CLI output."""

from __future__ import annotations

from rich.panel import Panel
from rich.table import Table as RichTable
from rich.tree import Tree

from explore_compiler.domain.explore import Explore, ExploreError, LineageGraph


def format_error(message: str, context: str | None = None) -> Panel:
    """Create formatted error panel.

    Args:
        message: Error message
        context: Optional context hint for resolution

    Returns:
        Panel with error formatting
    """
    content = f"[bold red]{message}[/bold red]"
    if context:
        content += f"\n\n[dim]{context}[/dim]"

    return Panel(
        content,
        title="[bold red]Error[/bold red]",
        border_style="red",
        width=78,
        expand=False,
    )


def explores_table(explores: list[Explore]) -> RichTable:
    """Summary table of compiled explores."""
    table = RichTable(title="Explores", title_justify="left")
    table.add_column("Explore", style="bold")
    table.add_column("Tables", justify="right")
    table.add_column("Dimensions", justify="right")
    table.add_column("Metrics", justify="right")

    for explore in explores:
        dimensions = sum(len(t.dimensions) for t in explore.tables.values())
        metrics = sum(len(t.metrics) for t in explore.tables.values())
        table.add_row(
            explore.name,
            str(len(explore.tables)),
            str(dimensions),
            str(metrics),
        )
    return table


def errors_table(errors: list[ExploreError]) -> RichTable:
    """Table of models that failed, one row per error."""
    table = RichTable(title="Errors", title_justify="left", border_style="red")
    table.add_column("Model", style="bold")
    table.add_column("Type", style="yellow")
    table.add_column("Message")

    for error in errors:
        for inline in error.errors:
            table.add_row(error.name, inline.type, inline.message)
    return table


def lineage_tree(model_name: str, lineage: LineageGraph) -> Tree:
    """Render a lineage graph as model -> direct dependencies."""
    tree = Tree(f"[bold]{model_name}[/bold] lineage")
    for name, dependencies in lineage.items():
        style = "bold green" if name == model_name else "blue"
        node = tree.add(f"[{style}]{name}[/{style}]")
        for dependency in dependencies:
            node.add(f"[dim]{dependency.type}[/dim] {dependency.name}")
    return tree
