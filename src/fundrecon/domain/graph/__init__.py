"""Co-investment graph snapshots."""

from fundrecon.domain.graph.builder import (
    EdgeKind,
    FundingRoundFact,
    Graph,
    GraphEdge,
    GraphMetrics,
    GraphNode,
    build,
    funding_rounds_from_entities,
)

__all__ = [
    "EdgeKind",
    "FundingRoundFact",
    "Graph",
    "GraphEdge",
    "GraphMetrics",
    "GraphNode",
    "build",
    "funding_rounds_from_entities",
]
