"""SQLAlchemy Core tables for the reconciliation store.

Domain objects are frozen dataclasses, so rows are converted explicitly in
``repositories`` instead of through imperative mappers. Fact values are stored
as canonical JSON text (see ``encode_value``).
"""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    Column,
    DateTime,
    Dialect,
    Enum,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    TypeDecorator,
    UniqueConstraint,
    Uuid,
)

from fundrecon.domain.model import (
    CommitRule,
    ConflictStatus,
    EntityKind,
    FactField,
    MergeReason,
    SourceKind,
    TaskKind,
    TaskPriority,
    TaskStatus,
)

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

log = logging.getLogger(__name__)

UUIDColumnType = Uuid[uuid.UUID]


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


metadata = MetaData(
    naming_convention={
        "ix": "ix_%(column_0_label)s",
        "uq": "uq_%(table_name)s_%(column_0_label)s",
        "ck": "ck_%(table_name)s_%(constraint_name)s",
        "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
        "pk": "pk_%(table_name)s",
    }
)

# Entities --------------------------------------------------------------------

entity_table = Table(
    "entity",
    metadata,
    Column("id", UUIDColumnType, primary_key=True),
    Column("kind", Enum(EntityKind, native_enum=False), nullable=False),
    Column("name", String, nullable=False),
    Column("normalized_key", String, nullable=False),
    Column("created_at", UTCDateTime(), nullable=False),
    Column("merged_into", UUIDColumnType, ForeignKey("entity.id"), nullable=True),
    UniqueConstraint("kind", "normalized_key"),
)

entity_alias_table = Table(
    "entity_alias",
    metadata,
    Column(
        "entity_id", UUIDColumnType, ForeignKey("entity.id", ondelete="CASCADE"), primary_key=True
    ),
    Column("alias", String, primary_key=True),
    Column("normalized_alias", String, nullable=False, index=True),
    Column("position", Integer, nullable=False),
)

entity_merge_table = Table(
    "entity_merge",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("entity_kind", Enum(EntityKind, native_enum=False), nullable=False),
    Column("source_id", UUIDColumnType, ForeignKey("entity.id"), nullable=False),
    Column("target_id", UUIDColumnType, ForeignKey("entity.id"), nullable=False),
    Column("reason", Enum(MergeReason, native_enum=False), nullable=False),
    Column("created_at", UTCDateTime(), nullable=False),
    Column("created_by", String, nullable=True),
)

fact_commit_table = Table(
    "fact_commit",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("entity_id", UUIDColumnType, ForeignKey("entity.id"), nullable=False),
    Column("field", Enum(FactField, native_enum=False), nullable=False),
    Column("scope", String, nullable=False, default=""),
    Column("version", Integer, nullable=False),
    Column("value", Text, nullable=False),
    Column("claim_ids", Text, nullable=False),
    Column("rule", Enum(CommitRule, native_enum=False), nullable=False),
    Column("task_id", UUIDColumnType, nullable=True),
    Column("committed_at", UTCDateTime(), nullable=False),
    UniqueConstraint("entity_id", "field", "scope", "version"),
)

# Claims ----------------------------------------------------------------------

fact_claim_table = Table(
    "fact_claim",
    metadata,
    Column("claim_id", UUIDColumnType, primary_key=True),
    Column("entity_id", UUIDColumnType, ForeignKey("entity.id"), nullable=False),
    Column("entity_kind", Enum(EntityKind, native_enum=False), nullable=False),
    Column("entity_key", String, nullable=False),
    Column("field", Enum(FactField, native_enum=False), nullable=False),
    Column("scope", String, nullable=False, default=""),
    Column("value", Text, nullable=False),
    Column("source_id", String, nullable=False),
    Column("source_kind", Enum(SourceKind, native_enum=False), nullable=False),
    Column("observed_at", UTCDateTime(), nullable=False),
    Column("ingested_at", UTCDateTime(), nullable=False),
    Column("evidence", Text, nullable=True),
    Column("fingerprint", String(64), nullable=False, unique=True),
    Index("ix_fact_claim_entity_key", "entity_id", "field", "scope"),
)

claim_settlement_table = Table(
    "claim_settlement",
    metadata,
    Column(
        "claim_id",
        UUIDColumnType,
        ForeignKey("fact_claim.claim_id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("task_id", UUIDColumnType, nullable=True),
)

# Reviews ---------------------------------------------------------------------

# ``open_marker`` is "<entity>|<field>|<scope>" while open and NULL afterwards, so the
# unique constraint allows at most one open conflict (or task) per key.

conflict_table = Table(
    "conflict",
    metadata,
    Column("conflict_id", UUIDColumnType, primary_key=True),
    Column("entity_id", UUIDColumnType, ForeignKey("entity.id"), nullable=False),
    Column("field", Enum(FactField, native_enum=False), nullable=False),
    Column("scope", String, nullable=False, default=""),
    Column("status", Enum(ConflictStatus, native_enum=False), nullable=False),
    Column("detected_at", UTCDateTime(), nullable=False),
    Column("resolved_at", UTCDateTime(), nullable=True),
    Column("open_marker", String, nullable=True, unique=True),
)

conflict_claim_table = Table(
    "conflict_claim",
    metadata,
    Column(
        "conflict_id",
        UUIDColumnType,
        ForeignKey("conflict.conflict_id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("claim_id", UUIDColumnType, ForeignKey("fact_claim.claim_id"), primary_key=True),
    Column("position", Integer, nullable=False),
)

verification_task_table = Table(
    "verification_task",
    metadata,
    Column("task_id", UUIDColumnType, primary_key=True),
    Column("kind", Enum(TaskKind, native_enum=False), nullable=False),
    Column("subject_ref", UUIDColumnType, nullable=False),
    Column("entity_id", UUIDColumnType, ForeignKey("entity.id"), nullable=False),
    Column("field", Enum(FactField, native_enum=False), nullable=False),
    Column("scope", String, nullable=False, default=""),
    Column("priority", Enum(TaskPriority, native_enum=False), nullable=False, index=True),
    Column("status", Enum(TaskStatus, native_enum=False), nullable=False, index=True),
    Column("created_at", UTCDateTime(), nullable=False),
    Column("due_at", UTCDateTime(), nullable=False, index=True),
    Column("assignee", String, nullable=True),
    Column("resolution_notes", Text, nullable=True),
    Column("chosen_value", Text, nullable=True),
    Column("resolved_at", UTCDateTime(), nullable=True),
    Column("candidates", Text, nullable=False, default="[]"),
    Column("open_marker", String, nullable=True, unique=True),
)


def create_all_tables(engine: Engine) -> None:
    """Create database tables for the reconciliation store."""

    log.info("Creating all tables")
    metadata.create_all(engine)
