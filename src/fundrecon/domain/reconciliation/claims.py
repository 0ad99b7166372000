"""Claim primitives used by reconciliation.

A claim is one source's assertion about one field of one entity. Claims are
immutable once stored: a newer claim from the same source supersedes an older
one, it never edits it. ``entity_id`` is ``None`` until the entity resolver has
run; ``entity_key`` keeps the raw name as observed.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import uuid4

from .values import encode_value

if TYPE_CHECKING:
    from uuid import UUID

    from fundrecon.domain.model import EntityKind, FactField, FactKey, FactValue, SourceKind


@dataclass(frozen=True, slots=True, kw_only=True)
class FactClaim:
    """Assertion about one field of one entity from one source."""

    entity_kind: EntityKind
    entity_key: str
    key: FactKey
    value: FactValue
    source_id: str
    source_kind: SourceKind
    observed_at: datetime
    ingested_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    evidence: str | None = None
    entity_id: UUID | None = None
    claim_id: UUID = field(default_factory=uuid4)

    @property
    def fact_field(self) -> FactField:
        return self.key.field

    @property
    def is_resolved(self) -> bool:
        return self.entity_id is not None

    def resolved_to(self, entity_id: UUID, *, value: FactValue | None = None) -> FactClaim:
        """Return the claim bound to a resolved entity (and optionally a resolved value)."""

        return replace(self, entity_id=entity_id, value=self.value if value is None else value)

    def fingerprint(self) -> str:
        """Stable digest used to skip re-ingesting an identical observation."""

        parts = (
            self.source_id,
            str(self.entity_id or self.entity_key),
            str(self.key.field),
            self.key.scope,
            encode_value(self.value),
            self.observed_at.astimezone(UTC).isoformat(),
        )
        return hashlib.sha256("|".join(parts).encode()).hexdigest()


def observation_order(claim: FactClaim) -> tuple[datetime, datetime, str]:
    """Sort key ordering observations oldest first; the last claim per source is its latest."""

    return (claim.observed_at, claim.ingested_at, str(claim.claim_id))
