"""Co-investment graph construction.

Builds an immutable snapshot from committed funding rounds. Two investors are
linked when they appear in the same round; an investor is linked to every
company whose round it joined. Output is deterministic: identical input yields
byte-identical JSON.
"""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from enum import StrEnum
from itertools import combinations
from typing import TYPE_CHECKING

from fundrecon.domain.errors import GraphBuildCancelled
from fundrecon.domain.model import Company, EntityKind, FactField, PartialDate

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from fundrecon.domain.model import Entity, MoneyCents


log = logging.getLogger(__name__)


class EdgeKind(StrEnum):
    CO_INVESTED = "co_invested"
    INVESTED_IN = "invested_in"


@dataclass(frozen=True, slots=True, kw_only=True)
class FundingRoundFact:
    """One committed funding round of a company, investors given as entity ids."""

    company_id: str
    round_key: str
    amount: MoneyCents | None = None
    announced: PartialDate | None = None
    lead_investors: frozenset[str] = frozenset()
    participants: frozenset[str] = frozenset()

    @property
    def investors(self) -> frozenset[str]:
        return self.lead_investors | self.participants


@dataclass(frozen=True, slots=True)
class GraphNode:
    id: str
    kind: EntityKind
    label: str


@dataclass(frozen=True, slots=True)
class GraphEdge:
    """``a``/``b`` are investor ids ordered ``a < b`` for co-investment edges, and
    (investor, company) for investment edges."""

    kind: EdgeKind
    a: str
    b: str
    count: int
    total_amount: MoneyCents
    strength: float
    first_seen: PartialDate | None = None
    last_seen: PartialDate | None = None

    def as_dict(self) -> dict[str, object]:
        return {
            "kind": self.kind.value,
            "a": self.a,
            "b": self.b,
            "count": self.count,
            "total_amount": self.total_amount,
            "strength": round(self.strength, 6),
            "first_seen": None if self.first_seen is None else self.first_seen.isoformat(),
            "last_seen": None if self.last_seen is None else self.last_seen.isoformat(),
        }


@dataclass(frozen=True, slots=True)
class GraphMetrics:
    investor_count: int
    company_count: int
    co_investment_edges: int
    investment_edges: int
    investor_density: float
    bipartite_density: float


@dataclass(frozen=True, slots=True)
class Graph:
    """Read-only co-investment snapshot."""

    nodes: tuple[GraphNode, ...]
    edges: tuple[GraphEdge, ...]
    rounds: int = 0
    _by_id: Mapping[str, GraphNode] = field(default_factory=dict[str, GraphNode], repr=False)

    def node(self, node_id: str) -> GraphNode | None:
        return self._by_id.get(node_id)

    def edges_of(self, kind: EdgeKind) -> tuple[GraphEdge, ...]:
        return tuple(edge for edge in self.edges if edge.kind is kind)

    def edge(self, kind: EdgeKind, a: str, b: str) -> GraphEdge | None:
        if kind is EdgeKind.CO_INVESTED and b < a:
            a, b = b, a
        for edge in self.edges:
            if edge.kind is kind and edge.a == a and edge.b == b:
                return edge
        return None

    def top_relationships(self, limit: int = 10) -> list[GraphEdge]:
        """Strongest investor pairs, most co-investments first."""

        ranked = sorted(
            self.edges_of(EdgeKind.CO_INVESTED),
            key=lambda edge: (-edge.count, -edge.total_amount, edge.a, edge.b),
        )
        return ranked[:limit]

    @property
    def metrics(self) -> GraphMetrics:
        investors = sum(1 for node in self.nodes if node.kind is EntityKind.INVESTOR)
        companies = len(self.nodes) - investors
        co_invested = len(self.edges_of(EdgeKind.CO_INVESTED))
        invested_in = len(self.edges_of(EdgeKind.INVESTED_IN))
        possible_pairs = investors * (investors - 1) / 2
        possible_links = investors * companies
        return GraphMetrics(
            investor_count=investors,
            company_count=companies,
            co_investment_edges=co_invested,
            investment_edges=invested_in,
            investor_density=co_invested / possible_pairs if possible_pairs else 0.0,
            bipartite_density=invested_in / possible_links if possible_links else 0.0,
        )

    def as_dict(self) -> dict[str, object]:
        metrics = self.metrics
        return {
            "nodes": [
                {"id": node.id, "kind": node.kind.value, "label": node.label}
                for node in self.nodes
            ],
            "edges": [edge.as_dict() for edge in self.edges],
            "metrics": {
                "rounds": self.rounds,
                "investors": metrics.investor_count,
                "companies": metrics.company_count,
                "investor_density": round(metrics.investor_density, 6),
                "bipartite_density": round(metrics.bipartite_density, 6),
            },
        }

    def to_json(self, *, indent: int | None = 2) -> str:
        return json.dumps(self.as_dict(), sort_keys=True, indent=indent)


@dataclass(slots=True)
class _EdgeAccumulator:
    count: int = 0
    total_amount: int = 0
    first_seen: PartialDate | None = None
    last_seen: PartialDate | None = None

    def add(self, round_fact: FundingRoundFact) -> None:
        self.count += 1
        self.total_amount += round_fact.amount or 0
        announced = round_fact.announced
        if announced is None:
            return
        if self.first_seen is None or _date_order(announced) < _date_order(self.first_seen):
            self.first_seen = announced
        if self.last_seen is None or _date_order(announced) > _date_order(self.last_seen):
            self.last_seen = announced


def build(
    rounds: Iterable[FundingRoundFact],
    *,
    labels: Mapping[str, str] | None = None,
    cancel: Callable[[], bool] | None = None,
) -> Graph:
    """Build the co-investment graph; ``cancel`` is polled between rounds."""

    names = labels or {}
    co_invested: dict[tuple[str, str], _EdgeAccumulator] = defaultdict(_EdgeAccumulator)
    invested_in: dict[tuple[str, str], _EdgeAccumulator] = defaultdict(_EdgeAccumulator)
    investors: set[str] = set()
    companies: set[str] = set()
    seen_rounds: set[tuple[str, str]] = set()

    for round_fact in sorted(rounds, key=lambda item: (item.company_id, item.round_key)):
        if cancel is not None and cancel():
            log.info("Graph build cancelled after %d rounds", len(seen_rounds))
            raise GraphBuildCancelled("Graph build cancelled")
        round_id = (round_fact.company_id, round_fact.round_key)
        if round_id in seen_rounds:
            continue
        seen_rounds.add(round_id)
        companies.add(round_fact.company_id)
        members = sorted(round_fact.investors)
        investors.update(members)
        for investor in members:
            invested_in[(investor, round_fact.company_id)].add(round_fact)
        for left, right in combinations(members, 2):
            co_invested[(left, right)].add(round_fact)

    edges = [
        *_edges(EdgeKind.CO_INVESTED, co_invested),
        *_edges(EdgeKind.INVESTED_IN, invested_in),
    ]
    edges.sort(key=lambda edge: (edge.kind.value, edge.a, edge.b))
    nodes = sorted(
        (
            *(_node(node_id, EntityKind.COMPANY, names) for node_id in companies),
            *(_node(node_id, EntityKind.INVESTOR, names) for node_id in investors - companies),
        ),
        key=lambda node: (node.kind.value, node.id),
    )
    log.info(
        "Built graph: %d nodes, %d edges from %d rounds", len(nodes), len(edges), len(seen_rounds)
    )
    return Graph(
        nodes=tuple(nodes),
        edges=tuple(edges),
        rounds=len(seen_rounds),
        _by_id={node.id: node for node in nodes},
    )


def _node(node_id: str, kind: EntityKind, names: Mapping[str, str]) -> GraphNode:
    return GraphNode(node_id, kind, names.get(node_id, node_id))


def _edges(
    kind: EdgeKind, accumulated: Mapping[tuple[str, str], _EdgeAccumulator]
) -> list[GraphEdge]:
    if not accumulated:
        return []
    strongest = max(item.count for item in accumulated.values())
    return [
        GraphEdge(
            kind=kind,
            a=a,
            b=b,
            count=item.count,
            total_amount=item.total_amount,
            strength=item.count / strongest,
            first_seen=item.first_seen,
            last_seen=item.last_seen,
        )
        for (a, b), item in accumulated.items()
    ]


def _date_order(value: PartialDate) -> tuple[int, int, int]:
    return (value.year, value.month or 0, value.day or 0)


def funding_rounds_from_entities(entities: Iterable[Entity]) -> list[FundingRoundFact]:
    """Collect rounds from the committed round-scoped facts of canonical companies.

    Investor ids recorded before a soft merge are mapped to the surviving entity.
    """

    population = list(entities)
    merged_into = {
        str(entity.id): str(entity.merged_into)
        for entity in population
        if entity.merged_into is not None
    }
    rounds: list[FundingRoundFact] = []
    for entity in population:
        if not isinstance(entity, Company) or not entity.is_canonical:
            continue
        by_scope: dict[str, dict[FactField, object]] = defaultdict(dict)
        for key, record in entity.current_facts.items():
            if key.scope:
                by_scope[key.scope][key.field] = record.value
        for scope, facts in sorted(by_scope.items()):
            amount = facts.get(FactField.ROUND_AMOUNT)
            announced = facts.get(FactField.ROUND_DATE)
            rounds.append(
                FundingRoundFact(
                    company_id=str(entity.id),
                    round_key=scope,
                    amount=amount if isinstance(amount, int) else None,
                    announced=announced if isinstance(announced, PartialDate) else None,
                    lead_investors=_id_set(facts.get(FactField.LEAD_INVESTOR), merged_into),
                    participants=_id_set(facts.get(FactField.PARTICIPANTS), merged_into),
                )
            )
    return rounds


def _id_set(value: object, merged_into: Mapping[str, str]) -> frozenset[str]:
    if not isinstance(value, frozenset):
        return frozenset()
    return frozenset(_surviving_id(str(item), merged_into) for item in value)


def _surviving_id(entity_id: str, merged_into: Mapping[str, str]) -> str:
    seen: set[str] = set()
    while entity_id in merged_into and entity_id not in seen:
        seen.add(entity_id)
        entity_id = merged_into[entity_id]
    return entity_id
