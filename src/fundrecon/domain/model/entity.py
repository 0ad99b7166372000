"""
Base building blocks:
identity and canonicalization (resolved identity) semantics.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, ClassVar
from uuid import UUID, uuid4

if TYPE_CHECKING:
    from fundrecon.domain.model.enums import EntityKind
    from fundrecon.domain.model.primitives import FactKey
    from fundrecon.domain.model.provenance import FactRecord


def new_id() -> UUID:
    return uuid4()


@dataclass(eq=False, kw_only=True)
class Entity:
    """A company or investor tracked by the reconciliation core.

    ``current_facts`` is a projection of ``history``; both change only through
    the reconciliation committer. Entities are never deleted: a duplicate is
    soft-merged by pointing it at the surviving entity.
    """

    id: UUID = field(default_factory=new_id)
    name: str
    normalized_key: str
    aliases: list[str] = field(default_factory=list[str])
    created_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    current_facts: dict[FactKey, FactRecord] = field(default_factory=dict["FactKey", "FactRecord"])
    history: list[FactRecord] = field(default_factory=list["FactRecord"])
    merged_into: UUID | None = None

    # class-level discriminator; subclasses must override
    ENTITY_KIND: ClassVar[EntityKind]

    @property
    def kind(self) -> EntityKind:
        return self.ENTITY_KIND

    @property
    def is_canonical(self) -> bool:
        return self.merged_into is None

    @property
    def resolved_id(self) -> UUID:
        """Return the surviving entity id if merged, else own id."""
        return self.merged_into or self.id

    def has_alias(self, alias: str) -> bool:
        return alias in self.aliases

    def current_value(self, key: FactKey) -> object | None:
        record = self.current_facts.get(key)
        return None if record is None else record.value

    def version_of(self, key: FactKey) -> int:
        record = self.current_facts.get(key)
        return 0 if record is None else record.version
