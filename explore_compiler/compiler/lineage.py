"""Model dependency graph and per-model lineage."""

from __future__ import annotations

import logging
from typing import Iterable

import networkx as nx

from explore_compiler.domain.explore import LineageGraph, LineageNodeDependency
from explore_compiler.ingestion.dbt.models import DbtModelNode

logger = logging.getLogger(__name__)


class DependencyGraph:
    """
    Directed graph over dbt models keyed by unique_id.

    Edges point from a model to the models it references.
    """

    def __init__(self, graph: nx.DiGraph) -> None:
        self.graph = graph

    def _ordered(self, node_ids: Iterable[str]) -> list[str]:
        # networkx returns sets; keep manifest order for stable output
        wanted = set(node_ids)
        return [n for n in self.graph.nodes if n in wanted]

    def dependencies_of(self, node_id: str) -> list[str]:
        """All upstream models, transitively."""
        return self._ordered(nx.descendants(self.graph, node_id))

    def dependants_of(self, node_id: str) -> list[str]:
        """All downstream models, transitively."""
        return self._ordered(nx.ancestors(self.graph, node_id))

    def direct_dependencies_of(self, node_id: str) -> list[str]:
        return list(self.graph.successors(node_id))

    def get_node_data(self, node_id: str) -> LineageNodeDependency:
        data = self.graph.nodes[node_id]
        return LineageNodeDependency(type=data["type"], name=data["name"])


def build_model_graph(models: list[DbtModelNode]) -> DependencyGraph:
    """Build the dependency graph from each model's `depends_on.nodes`."""
    graph = nx.DiGraph()
    for model in models:
        graph.add_node(model.unique_id, type="model", name=model.name)

    for model in models:
        for dependency in model.depends_on.nodes:
            # Sources, seeds and disabled models are not part of the graph
            if dependency in graph:
                graph.add_edge(model.unique_id, dependency)

    logger.debug(
        "Built model graph with %d nodes and %d edges",
        graph.number_of_nodes(),
        graph.number_of_edges(),
    )
    return DependencyGraph(graph)


def generate_table_lineage(
    model: DbtModelNode, dep_graph: DependencyGraph
) -> LineageGraph:
    """
    Lineage for one model.

    Covers the model's whole family (all dependants and all dependencies),
    mapping each member to that member's own direct dependencies.
    """
    family_ids = [
        *dep_graph.dependants_of(model.unique_id),
        *dep_graph.dependencies_of(model.unique_id),
        model.unique_id,
    ]
    lineage: LineageGraph = {}
    for node_id in family_ids:
        name = dep_graph.get_node_data(node_id).name
        lineage[name] = [
            dep_graph.get_node_data(d)
            for d in dep_graph.direct_dependencies_of(node_id)
        ]
    return lineage


def translate_models_to_table_lineage(
    models: list[DbtModelNode],
) -> dict[str, LineageGraph]:
    """Lineage for every model, keyed by model name."""
    graph = build_model_graph(models)
    return {model.name: generate_table_lineage(model, graph) for model in models}
