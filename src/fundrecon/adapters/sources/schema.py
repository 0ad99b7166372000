"""Pydantic models for JSON source payloads.

Each line of an ingest file is one payload tagged by ``type``. Unknown keys
are ignored at the envelope level; unknown *fact* keys travel inside
``fields`` and are dropped (and counted) by the normalizer.
"""

from __future__ import annotations

from datetime import datetime  # noqa: TC003
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from fundrecon.domain.model import EntityKind


class SourceBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class RoundPayload(SourceBaseModel):
    round_type: str | None = None
    amount: float | int | str | None = None
    announced: str | int | None = None
    lead_investors: list[str] = Field(default_factory=list[str])
    participants: list[str] = Field(default_factory=list[str])

    @field_validator("lead_investors", "participants", mode="before")
    @classmethod
    def _split_names(cls, value: object) -> object:
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value


class NewsPayload(SourceBaseModel):
    type: Literal["news"]
    source: str
    text: str
    published_at: datetime
    company: str | None = None
    title: str | None = None
    url: str | None = None


class ApiPayload(SourceBaseModel):
    type: Literal["api"]
    source: str
    name: str
    observed_at: datetime
    entity_kind: EntityKind = EntityKind.COMPANY
    fields: dict[str, Any] = Field(default_factory=dict[str, Any])
    rounds: list[RoundPayload] = Field(default_factory=list[RoundPayload])
    reference: str | None = None


class ManualPayload(SourceBaseModel):
    type: Literal["manual"]
    source: str = "manual"
    name: str
    entered_by: str
    entered_at: datetime
    entity_kind: EntityKind = EntityKind.COMPANY
    fields: dict[str, Any] = Field(default_factory=dict[str, Any])
    rounds: list[RoundPayload] = Field(default_factory=list[RoundPayload])
    note: str | None = None


SourcePayload = Annotated[NewsPayload | ApiPayload | ManualPayload, Field(discriminator="type")]

SOURCE_PAYLOAD_ADAPTER: TypeAdapter[NewsPayload | ApiPayload | ManualPayload] = TypeAdapter(
    SourcePayload
)
