from __future__ import annotations

import json
from itertools import count
from typing import TYPE_CHECKING

import pytest

from fundrecon.domain.errors import GraphBuildCancelled
from fundrecon.domain.graph import EdgeKind, FundingRoundFact, build, funding_rounds_from_entities
from fundrecon.domain.model import (
    CommitRule,
    EntityKind,
    FactField,
    FactKey,
    FactRecord,
    PartialDate,
    Provenance,
    new_entity,
)
from tests.helpers.records import api_record

if TYPE_CHECKING:
    from collections.abc import Callable

    from fundrecon.adapters.memory import InMemoryUnitOfWork
    from fundrecon.domain.reconciliation import ReconciliationEngine


def _round(
    company: str,
    round_key: str,
    *,
    leads: tuple[str, ...] = (),
    participants: tuple[str, ...] = (),
    amount: int | None = None,
    announced: PartialDate | None = None,
) -> FundingRoundFact:
    return FundingRoundFact(
        company_id=company,
        round_key=round_key,
        amount=amount,
        announced=announced,
        lead_investors=frozenset(leads),
        participants=frozenset(participants),
    )


def test_lead_across_rounds_and_single_co_investment() -> None:
    rounds = [
        _round("company-a", "seed", leads=("acme",)),
        _round("company-b", "seed", leads=("acme",), participants=("x",)),
        _round("company-c", "series_a", leads=("acme",)),
    ]

    graph = build(rounds)

    pair = graph.edge(EdgeKind.CO_INVESTED, "x", "acme")
    assert pair is not None
    assert (pair.a, pair.b) == ("acme", "x")
    assert pair.count == 1
    for company in ("company-a", "company-b", "company-c"):
        edge = graph.edge(EdgeKind.INVESTED_IN, "acme", company)
        assert edge is not None
        assert edge.count == 1
    assert graph.edge(EdgeKind.INVESTED_IN, "x", "company-a") is None
    assert len(graph.edges_of(EdgeKind.CO_INVESTED)) == 1
    assert graph.rounds == 3


def test_strength_is_normalized_per_edge_kind() -> None:
    rounds = [
        _round("c1", "seed", participants=("p", "q")),
        _round("c2", "seed", participants=("p", "q", "r")),
    ]

    graph = build(rounds)

    pq = graph.edge(EdgeKind.CO_INVESTED, "p", "q")
    pr = graph.edge(EdgeKind.CO_INVESTED, "p", "r")
    assert pq is not None
    assert pr is not None
    assert pq.strength == 1.0
    assert pr.strength == 0.5
    assert all(edge.strength == 1.0 for edge in graph.edges_of(EdgeKind.INVESTED_IN))
    assert [edge.count for edge in graph.top_relationships(1)] == [2]


def test_edges_track_amounts_and_first_last_seen() -> None:
    rounds = [
        _round("c1", "seed", participants=("p", "q"), amount=100, announced=PartialDate(2020, 5)),
        _round("c2", "series_a", participants=("p", "q"), amount=300, announced=PartialDate(2022)),
        _round("c3", "seed", participants=("p", "q")),
    ]

    edge = build(rounds).edge(EdgeKind.CO_INVESTED, "p", "q")

    assert edge is not None
    assert edge.count == 3
    assert edge.total_amount == 400
    assert edge.first_seen == PartialDate(2020, 5)
    assert edge.last_seen == PartialDate(2022)


def test_duplicate_rounds_count_once() -> None:
    rounds = [
        _round("c1", "seed", participants=("p", "q")),
        _round("c1", "seed", participants=("p", "q")),
    ]

    edge = build(rounds).edge(EdgeKind.CO_INVESTED, "p", "q")

    assert edge is not None
    assert edge.count == 1


def test_json_is_identical_for_identical_input() -> None:
    rounds = [
        _round("c2", "seed", leads=("q",), participants=("p", "r"), amount=5),
        _round("c1", "series_a", leads=("p",), participants=("q",)),
        _round("c3", "seed", participants=("r", "s"), announced=PartialDate(2021, 1, 2)),
    ]

    first = build(rounds, labels={"p": "Partner P"}).to_json()
    second = build(list(reversed(rounds)), labels={"p": "Partner P"}).to_json()

    assert first == second
    payload = json.loads(first)
    assert payload["metrics"]["rounds"] == 3
    assert {"id": "p", "kind": "investor", "label": "Partner P"} in payload["nodes"]


def test_metrics_report_density() -> None:
    graph = build([_round("c1", "seed", participants=("p", "q"))])

    metrics = graph.metrics

    assert metrics.investor_count == 2
    assert metrics.company_count == 1
    assert metrics.investor_density == 1.0
    assert metrics.bipartite_density == 1.0


def test_cancelled_build_produces_no_graph() -> None:
    polls = count()
    rounds = [_round(f"c{index}", "seed", participants=("p", "q")) for index in range(5)]

    with pytest.raises(GraphBuildCancelled):
        build(rounds, cancel=lambda: next(polls) >= 2)


def test_empty_input_builds_empty_graph() -> None:
    graph = build([])

    assert graph.nodes == ()
    assert graph.edges == ()
    assert graph.top_relationships() == []


def test_rounds_come_from_committed_round_facts() -> None:
    company = new_entity(EntityKind.COMPANY, name="Acme", normalized_key="acme")
    merged = new_entity(EntityKind.COMPANY, name="Acme Old", normalized_key="acme old")
    investor = new_entity(EntityKind.INVESTOR, name="Accel", normalized_key="accel")
    provenance = Provenance(claim_ids=(), rule=CommitRule.VERIFIED)
    for key, value in (
        (FactKey(FactField.ROUND_AMOUNT, "seed"), 200_000_000),
        (FactKey(FactField.ROUND_DATE, "seed"), PartialDate(2021, 3)),
        (FactKey(FactField.LEAD_INVESTOR, "seed"), frozenset({str(investor.id)})),
        (FactKey(FactField.TOTAL_FUNDING), 200_000_000),
    ):
        company.current_facts[key] = FactRecord(
            key=key, value=value, provenance=provenance, version=1
        )
    merged.current_facts = dict(company.current_facts)
    merged.merged_into = company.id

    (round_fact,) = funding_rounds_from_entities([company, merged, investor])

    assert round_fact.company_id == str(company.id)
    assert round_fact.round_key == "seed"
    assert round_fact.amount == 200_000_000
    assert round_fact.announced == PartialDate(2021, 3)
    assert round_fact.investors == frozenset({str(investor.id)})


def test_merged_investors_share_one_node() -> None:
    company = new_entity(EntityKind.COMPANY, name="Acme", normalized_key="acme")
    survivor = new_entity(EntityKind.INVESTOR, name="GV", normalized_key="gv")
    alias = new_entity(
        EntityKind.INVESTOR, name="Google Ventures", normalized_key="google ventures"
    )
    partner = new_entity(EntityKind.INVESTOR, name="Accel", normalized_key="accel")
    alias.merged_into = survivor.id
    provenance = Provenance(claim_ids=(), rule=CommitRule.AUTO_SINGLE)
    for scope, leads in (
        ("seed", {str(alias.id), str(partner.id)}),
        ("series_a", {str(survivor.id), str(partner.id)}),
    ):
        key = FactKey(FactField.LEAD_INVESTOR, scope)
        company.current_facts[key] = FactRecord(
            key=key, value=frozenset(leads), provenance=provenance, version=1
        )

    graph = build(funding_rounds_from_entities([company, survivor, alias, partner]))

    pair = graph.edge(EdgeKind.CO_INVESTED, str(survivor.id), str(partner.id))
    assert pair is not None
    assert pair.count == 2
    assert graph.node(str(alias.id)) is None
    invested = graph.edge(EdgeKind.INVESTED_IN, str(survivor.id), str(company.id))
    assert invested is not None
    assert invested.count == 2


def test_rebuild_after_investor_merge_uses_the_surviving_investor(
    engine: ReconciliationEngine, memory_unit_of_work: Callable[[], InMemoryUnitOfWork]
) -> None:
    engine.ingest_batch(
        [
            api_record("Acme", {"round_type": "Seed", "lead_investors": "Accel, GV"}),
            api_record(
                "Globex", {"round_type": "Seed", "lead_investors": "Accel, Google Ventures"}
            ),
        ]
    )
    gv = engine.resolve_entity("GV", EntityKind.INVESTOR).entity
    google = engine.resolve_entity("Google Ventures", EntityKind.INVESTOR).entity
    accel = engine.resolve_entity("Accel", EntityKind.INVESTOR).entity

    engine.merge(google.id, gv.id, created_by="analyst")
    with memory_unit_of_work() as uow:
        entities = uow.repositories.entities.list_all()
    graph = build(funding_rounds_from_entities(entities))

    (pair,) = graph.edges_of(EdgeKind.CO_INVESTED)
    assert {pair.a, pair.b} == {str(gv.id), str(accel.id)}
    assert pair.count == 2
    assert graph.node(str(google.id)) is None
