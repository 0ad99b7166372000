"""Raw source records, one variant per source kind.

Adapters translate provider payloads into one of these variants; the normalizer
turns each variant into canonical :class:`FactClaim` objects so that nothing
downstream branches on source-specific shapes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, ClassVar

from fundrecon.domain.model import EntityKind, SourceKind

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime


@dataclass(frozen=True, slots=True, kw_only=True)
class RoundReport:
    """One funding round as reported by a structured source."""

    round_type: str | None = None
    amount: object | None = None
    announced: object | None = None
    lead_investors: tuple[str, ...] = ()
    participants: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True, kw_only=True)
class NewsRecord:
    """An article scraped from a news source; facts are mined from its text."""

    SOURCE_KIND: ClassVar[SourceKind] = SourceKind.NEWS

    source_id: str
    text: str
    published_at: datetime
    company_name: str | None = None
    title: str | None = None
    url: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class ApiRecord:
    """A structured payload from a data API."""

    SOURCE_KIND: ClassVar[SourceKind] = SourceKind.API

    source_id: str
    entity_name: str
    observed_at: datetime
    entity_kind: EntityKind = EntityKind.COMPANY
    fields: Mapping[str, object] = field(default_factory=dict[str, object])
    rounds: tuple[RoundReport, ...] = ()
    reference: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class ManualRecord:
    """A fact sheet typed in by an analyst."""

    SOURCE_KIND: ClassVar[SourceKind] = SourceKind.MANUAL

    source_id: str
    entity_name: str
    entered_by: str
    entered_at: datetime
    entity_kind: EntityKind = EntityKind.COMPANY
    fields: Mapping[str, object] = field(default_factory=dict[str, object])
    rounds: tuple[RoundReport, ...] = ()
    note: str | None = None


type RawRecord = NewsRecord | ApiRecord | ManualRecord
