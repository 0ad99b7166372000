"""Concrete entity kinds."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar

from fundrecon.domain.model.entity import Entity
from fundrecon.domain.model.enums import EntityKind

if TYPE_CHECKING:
    from uuid import UUID


@dataclass(eq=False, kw_only=True)
class Company(Entity):
    ENTITY_KIND: ClassVar[EntityKind] = EntityKind.COMPANY


@dataclass(eq=False, kw_only=True)
class Investor(Entity):
    ENTITY_KIND: ClassVar[EntityKind] = EntityKind.INVESTOR


CLASS_BY_ENTITY_KIND: dict[EntityKind, type[Entity]] = {
    EntityKind.COMPANY: Company,
    EntityKind.INVESTOR: Investor,
}


def new_entity(
    kind: EntityKind,
    *,
    name: str,
    normalized_key: str,
    entity_id: UUID | None = None,
) -> Entity:
    entity_cls = CLASS_BY_ENTITY_KIND[kind]
    if entity_id is None:
        return entity_cls(name=name, normalized_key=normalized_key, aliases=[name])
    return entity_cls(id=entity_id, name=name, normalized_key=normalized_key, aliases=[name])
