"""Builders for raw records and a controllable clock."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from fundrecon.domain.model import EntityKind
from fundrecon.domain.reconciliation import ApiRecord, ManualRecord, NewsRecord, RoundReport

if TYPE_CHECKING:
    from collections.abc import Mapping

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)
OBSERVED = NOW - timedelta(days=1)


class MutableClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


def api_record(
    name: str,
    fields: Mapping[str, object],
    *,
    source: str = "crunchbase",
    observed_at: datetime = OBSERVED,
    kind: EntityKind = EntityKind.COMPANY,
    rounds: tuple[RoundReport, ...] = (),
) -> ApiRecord:
    return ApiRecord(
        source_id=source,
        entity_name=name,
        observed_at=observed_at,
        entity_kind=kind,
        fields=dict(fields),
        rounds=rounds,
    )


def manual_record(
    name: str,
    fields: Mapping[str, object],
    *,
    entered_by: str = "analyst@example.com",
    entered_at: datetime = OBSERVED,
    kind: EntityKind = EntityKind.COMPANY,
) -> ManualRecord:
    return ManualRecord(
        source_id="manual",
        entity_name=name,
        entered_by=entered_by,
        entered_at=entered_at,
        entity_kind=kind,
        fields=dict(fields),
    )


def news_record(
    text: str,
    *,
    source: str = "techcrunch",
    published_at: datetime = OBSERVED,
    company: str | None = None,
) -> NewsRecord:
    return NewsRecord(
        source_id=source,
        text=text,
        published_at=published_at,
        company_name=company,
        url=f"https://{source}.example.com/article",
    )
