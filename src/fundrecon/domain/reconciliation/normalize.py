"""Normalization stage: raw source records to canonical fact claims.

Responsibilities of this stage:
- map source-specific field names onto the controlled vocabulary
- parse values into their canonical form (cents, partial dates, name sets)
- drop and count fields outside the vocabulary instead of guessing
- reject records that cannot identify an entity or carry no facts
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime
from functools import singledispatch
from typing import TYPE_CHECKING, Protocol

from fundrecon.domain.errors import MalformedRecordError
from fundrecon.domain.model import EntityKind, FactField, FactKey

from .claims import FactClaim
from .extract import extract_funding
from .records import ApiRecord, ManualRecord, NewsRecord, RoundReport
from .vocabulary import (
    UNSPECIFIED_ROUND,
    coerce_value,
    lookup_field,
    normalize_round_type,
    spec_for,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from fundrecon.domain.model import FactValue, SourceKind

    from .records import RawRecord


log = logging.getLogger(__name__)


@dataclass(slots=True)
class NormalizedRecord:
    """Claims produced from one record plus the fields that were dropped."""

    claims: list[FactClaim]
    dropped_fields: Counter[str] = field(default_factory=Counter[str])


@dataclass(slots=True)
class NormalizationReport:
    """Outcome of normalizing a batch; malformed records are collected, not raised."""

    claims: list[FactClaim] = field(default_factory=list[FactClaim])
    malformed: list[MalformedRecordError] = field(default_factory=list[MalformedRecordError])
    dropped_fields: Counter[str] = field(default_factory=Counter[str])
    records_seen: int = 0


class FactNormalizer(Protocol):
    def normalize(self, record: RawRecord) -> NormalizedRecord: ...

    def normalize_batch(self, records: Iterable[RawRecord]) -> NormalizationReport: ...


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(slots=True, kw_only=True)
class DefaultFactNormalizer:
    """Vocabulary-driven normalizer dispatching on the raw record variant."""

    clock: Callable[[], datetime] = _utcnow

    def normalize(self, record: RawRecord) -> NormalizedRecord:
        builder = _ClaimBuilder(
            source_id=record.source_id,
            source_kind=record.SOURCE_KIND,
            ingested_at=self.clock(),
        )
        _collect(record, builder)
        if builder.dropped:
            log.warning(
                "Dropped fields from source=%s: %s",
                record.source_id,
                ", ".join(sorted(builder.dropped)),
            )
        if not builder.claims:
            raise MalformedRecordError(
                "Record carries no recognizable factual field", source_id=record.source_id
            )
        return NormalizedRecord(claims=builder.claims, dropped_fields=builder.dropped)

    def normalize_batch(self, records: Iterable[RawRecord]) -> NormalizationReport:
        report = NormalizationReport()
        for record in records:
            report.records_seen += 1
            try:
                normalized = self.normalize(record)
            except MalformedRecordError as exc:
                log.warning("Skipping malformed record: %s", exc)
                report.malformed.append(exc)
                continue
            report.claims.extend(normalized.claims)
            report.dropped_fields.update(normalized.dropped_fields)
        log.info(
            "Normalized %d records into %d claims (%d malformed)",
            report.records_seen,
            len(report.claims),
            len(report.malformed),
        )
        return report


@dataclass(slots=True, kw_only=True)
class _ClaimBuilder:
    source_id: str
    source_kind: SourceKind
    ingested_at: datetime
    claims: list[FactClaim] = field(default_factory=list[FactClaim])
    dropped: Counter[str] = field(default_factory=Counter[str])

    def add(
        self,
        *,
        entity_kind: EntityKind,
        entity_name: str,
        fact_field: FactField,
        raw: object,
        observed_at: datetime,
        scope: str = "",
        evidence: str | None = None,
    ) -> None:
        if raw is None or raw == "" or raw == [] or raw == ():
            return
        spec = spec_for(fact_field)
        if entity_kind not in spec.entity_kinds:
            self.dropped[f"{entity_kind}:{fact_field}"] += 1
            return
        try:
            value: FactValue = coerce_value(fact_field, raw)  # type: ignore[assignment]
        except ValueError as exc:
            log.warning("Unparsable %s from source=%s: %s", fact_field, self.source_id, exc)
            self.dropped[f"invalid:{fact_field}"] += 1
            return
        self.claims.append(
            FactClaim(
                entity_kind=entity_kind,
                entity_key=entity_name,
                key=FactKey(fact_field, scope if spec.round_scoped else ""),
                value=value,
                source_id=self.source_id,
                source_kind=self.source_kind,
                observed_at=observed_at,
                ingested_at=self.ingested_at,
                evidence=evidence,
            )
        )

    def add_round(
        self,
        *,
        entity_name: str,
        report: RoundReport,
        observed_at: datetime,
        evidence: str | None,
    ) -> None:
        scope = _round_scope(report.round_type)
        for fact_field, raw in (
            (FactField.ROUND_AMOUNT, report.amount),
            (FactField.ROUND_DATE, report.announced),
            (FactField.LEAD_INVESTOR, list(report.lead_investors)),
            (FactField.PARTICIPANTS, list(report.participants)),
        ):
            self.add(
                entity_kind=EntityKind.COMPANY,
                entity_name=entity_name,
                fact_field=fact_field,
                raw=raw,
                observed_at=observed_at,
                scope=scope,
                evidence=evidence,
            )


@singledispatch
def _collect(record: object, _builder: _ClaimBuilder) -> None:
    raise MalformedRecordError(f"Unsupported record type {type(record).__name__}")


@_collect.register
def _(record: ApiRecord, builder: _ClaimBuilder) -> None:
    _collect_structured(
        builder,
        entity_kind=record.entity_kind,
        entity_name=record.entity_name,
        fields=record.fields,
        rounds=record.rounds,
        observed_at=record.observed_at,
        evidence=record.reference,
    )


@_collect.register
def _(record: ManualRecord, builder: _ClaimBuilder) -> None:
    if not record.entered_by.strip():
        raise MalformedRecordError("Manual record without an author", source_id=record.source_id)
    _collect_structured(
        builder,
        entity_kind=record.entity_kind,
        entity_name=record.entity_name,
        fields=record.fields,
        rounds=record.rounds,
        observed_at=record.entered_at,
        evidence=record.note or f"entered by {record.entered_by}",
    )


@_collect.register
def _(record: NewsRecord, builder: _ClaimBuilder) -> None:
    text = " ".join(part for part in (record.title, record.text) if part)
    extracted = extract_funding(text)
    company = _entity_name(record.company_name or extracted.company_name, record.source_id)
    scope = _round_scope(extracted.round_type)
    if extracted.round_type is not None:
        builder.add(
            entity_kind=EntityKind.COMPANY,
            entity_name=company,
            fact_field=FactField.ROUND_TYPE,
            raw=extracted.round_type,
            observed_at=record.published_at,
            evidence=record.url,
        )
    if extracted.valuation is not None:
        builder.add(
            entity_kind=EntityKind.COMPANY,
            entity_name=company,
            fact_field=FactField.VALUATION,
            raw=extracted.valuation,
            observed_at=record.published_at,
            evidence=record.url,
        )
    has_round = extracted.amount is not None or bool(extracted.lead_investors)
    builder.add_round(
        entity_name=company,
        report=RoundReport(
            round_type=scope,
            amount=extracted.amount,
            announced=record.published_at if has_round else None,
            lead_investors=extracted.lead_investors,
            participants=extracted.participants,
        ),
        observed_at=record.published_at,
        evidence=record.url,
    )


def _collect_structured(
    builder: _ClaimBuilder,
    *,
    entity_kind: EntityKind,
    entity_name: str,
    fields: Mapping[str, object],
    rounds: tuple[RoundReport, ...],
    observed_at: datetime,
    evidence: str | None,
) -> None:
    name = _entity_name(entity_name, builder.source_id)
    default_scope = _round_scope(_as_str(fields.get("round_type") or fields.get("stage")))
    for raw_name, raw_value in fields.items():
        fact_field = lookup_field(raw_name)
        if fact_field is None or fact_field is FactField.IDENTITY:
            builder.dropped[raw_name] += 1
            continue
        builder.add(
            entity_kind=entity_kind,
            entity_name=name,
            fact_field=fact_field,
            raw=raw_value,
            observed_at=observed_at,
            scope=default_scope,
            evidence=evidence,
        )
    if rounds and entity_kind is not EntityKind.COMPANY:
        builder.dropped[f"{entity_kind}:rounds"] += len(rounds)
        return
    for report in rounds:
        builder.add_round(
            entity_name=name, report=report, observed_at=observed_at, evidence=evidence
        )


def _entity_name(raw: str | None, source_id: str) -> str:
    name = " ".join((raw or "").split())
    if not name:
        raise MalformedRecordError("Record does not name an entity", source_id=source_id)
    return name


def _round_scope(raw: str | None) -> str:
    if not raw:
        return UNSPECIFIED_ROUND
    return normalize_round_type(raw) or UNSPECIFIED_ROUND


def _as_str(raw: object) -> str | None:
    return raw if isinstance(raw, str) else None
