"""Provenance of committed facts."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable
    from uuid import UUID

    from fundrecon.domain.model.enums import CommitRule
    from fundrecon.domain.model.primitives import FactKey, FactValue


@dataclass(frozen=True, slots=True, kw_only=True)
class Provenance:
    """Which claims (and which review, if any) backed a committed value.

    Equality is structural; the committer relies on it for idempotency.
    """

    claim_ids: tuple[UUID, ...]
    rule: CommitRule
    task_id: UUID | None = None

    @classmethod
    def of(
        cls,
        claim_ids: tuple[UUID, ...] | list[UUID],
        *,
        rule: CommitRule,
        task_id: UUID | None = None,
    ) -> Provenance:
        return cls(claim_ids=tuple(sorted(set(claim_ids), key=str)), rule=rule, task_id=task_id)


@dataclass(frozen=True, slots=True, kw_only=True)
class FactRecord:
    """One append-only entry in an entity's fact history."""

    key: FactKey
    value: FactValue
    provenance: Provenance
    version: int
    committed_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))

    def same_commit(self, value: FactValue, provenance: Provenance) -> bool:
        return self.value == value and self.provenance == provenance

    def covers(self, value: FactValue, claim_ids: Iterable[UUID]) -> bool:
        """Whether this record already commits ``value`` on the strength of ``claim_ids``."""

        return self.value == value and set(claim_ids) <= set(self.provenance.claim_ids)
