"""Translate validated source payloads into domain raw records."""

from __future__ import annotations

from datetime import UTC, datetime
from functools import singledispatch
from typing import TYPE_CHECKING

from fundrecon.domain.reconciliation import (
    ApiRecord,
    ManualRecord,
    NewsRecord,
    RawRecord,  # noqa: TC001
    RoundReport,
)

from .schema import ApiPayload, ManualPayload, NewsPayload

if TYPE_CHECKING:
    from .schema import RoundPayload


@singledispatch
def to_record(payload: object) -> RawRecord:
    raise TypeError(f"Unsupported payload {type(payload).__name__}")


@to_record.register
def _(payload: NewsPayload) -> RawRecord:
    return NewsRecord(
        source_id=payload.source,
        text=payload.text,
        published_at=_aware(payload.published_at),
        company_name=payload.company,
        title=payload.title,
        url=payload.url,
    )


@to_record.register
def _(payload: ApiPayload) -> RawRecord:
    return ApiRecord(
        source_id=payload.source,
        entity_name=payload.name,
        observed_at=_aware(payload.observed_at),
        entity_kind=payload.entity_kind,
        fields=dict(payload.fields),
        rounds=tuple(_round(item) for item in payload.rounds),
        reference=payload.reference,
    )


@to_record.register
def _(payload: ManualPayload) -> RawRecord:
    return ManualRecord(
        source_id=payload.source,
        entity_name=payload.name,
        entered_by=payload.entered_by,
        entered_at=_aware(payload.entered_at),
        entity_kind=payload.entity_kind,
        fields=dict(payload.fields),
        rounds=tuple(_round(item) for item in payload.rounds),
        note=payload.note,
    )


def _round(payload: RoundPayload) -> RoundReport:
    return RoundReport(
        round_type=payload.round_type,
        amount=payload.amount,
        announced=payload.announced,
        lead_investors=tuple(payload.lead_investors),
        participants=tuple(payload.participants),
    )


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=UTC)
