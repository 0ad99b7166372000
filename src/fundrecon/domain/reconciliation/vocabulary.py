"""Controlled vocabulary of claimable fields.

Every claim field is drawn from :class:`FactField`. Incoming field names are
mapped through a fixed alias table; anything else is dropped (and counted) by
the normalizer rather than coerced into a nearby field.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from fundrecon.domain.model import EntityKind, FactField, FactKey, TaskPriority, ValueKind

from .values import clean_text, parse_money, parse_partial_date, split_names

_BOTH = frozenset({EntityKind.COMPANY, EntityKind.INVESTOR})
_COMPANY = frozenset({EntityKind.COMPANY})
_INVESTOR = frozenset({EntityKind.INVESTOR})

UNSPECIFIED_ROUND = "unspecified"


@dataclass(frozen=True, slots=True)
class FieldSpec:
    field: FactField
    value_kind: ValueKind
    priority: TaskPriority
    entity_kinds: frozenset[EntityKind]
    round_scoped: bool = False

    @property
    def financially_material(self) -> bool:
        return self.priority is TaskPriority.HIGH


FIELD_SPECS: dict[FactField, FieldSpec] = {
    spec.field: spec
    for spec in (
        FieldSpec(FactField.TOTAL_FUNDING, ValueKind.MONEY, TaskPriority.HIGH, _COMPANY),
        FieldSpec(FactField.VALUATION, ValueKind.MONEY, TaskPriority.HIGH, _COMPANY),
        FieldSpec(FactField.ROUND_TYPE, ValueKind.ENUM, TaskPriority.HIGH, _COMPANY),
        FieldSpec(FactField.HEADQUARTERS, ValueKind.STRING, TaskPriority.MEDIUM, _BOTH),
        FieldSpec(FactField.FOUNDED, ValueKind.DATE, TaskPriority.MEDIUM, _BOTH),
        FieldSpec(FactField.SECTOR, ValueKind.STRING, TaskPriority.MEDIUM, _COMPANY),
        FieldSpec(FactField.INVESTOR_TYPE, ValueKind.STRING, TaskPriority.MEDIUM, _INVESTOR),
        FieldSpec(FactField.WEBSITE, ValueKind.STRING, TaskPriority.LOW, _BOTH),
        FieldSpec(FactField.DESCRIPTION, ValueKind.TEXT, TaskPriority.LOW, _BOTH),
        FieldSpec(
            FactField.ROUND_AMOUNT, ValueKind.MONEY, TaskPriority.HIGH, _COMPANY, round_scoped=True
        ),
        FieldSpec(
            FactField.ROUND_DATE, ValueKind.DATE, TaskPriority.MEDIUM, _COMPANY, round_scoped=True
        ),
        FieldSpec(
            FactField.LEAD_INVESTOR,
            ValueKind.INVESTOR_SET,
            TaskPriority.MEDIUM,
            _COMPANY,
            round_scoped=True,
        ),
        FieldSpec(
            FactField.PARTICIPANTS,
            ValueKind.INVESTOR_SET,
            TaskPriority.MEDIUM,
            _COMPANY,
            round_scoped=True,
        ),
        FieldSpec(FactField.IDENTITY, ValueKind.ENTITY_REF, TaskPriority.MEDIUM, _BOTH),
    )
}

FIELD_ALIASES: dict[str, FactField] = {
    "total_funding": FactField.TOTAL_FUNDING,
    "total_raised": FactField.TOTAL_FUNDING,
    "funding_total": FactField.TOTAL_FUNDING,
    "valuation": FactField.VALUATION,
    "valuation_usd": FactField.VALUATION,
    "round_type": FactField.ROUND_TYPE,
    "stage": FactField.ROUND_TYPE,
    "last_round": FactField.ROUND_TYPE,
    "headquarters": FactField.HEADQUARTERS,
    "hq": FactField.HEADQUARTERS,
    "location": FactField.HEADQUARTERS,
    "founded": FactField.FOUNDED,
    "founded_on": FactField.FOUNDED,
    "founded_year": FactField.FOUNDED,
    "sector": FactField.SECTOR,
    "category": FactField.SECTOR,
    "website": FactField.WEBSITE,
    "url": FactField.WEBSITE,
    "description": FactField.DESCRIPTION,
    "investor_type": FactField.INVESTOR_TYPE,
    "round_amount": FactField.ROUND_AMOUNT,
    "amount": FactField.ROUND_AMOUNT,
    "amount_usd": FactField.ROUND_AMOUNT,
    "announced": FactField.ROUND_DATE,
    "announced_date": FactField.ROUND_DATE,
    "round_date": FactField.ROUND_DATE,
    "lead_investor": FactField.LEAD_INVESTOR,
    "lead_investors": FactField.LEAD_INVESTOR,
    "participants": FactField.PARTICIPANTS,
    "participating_investors": FactField.PARTICIPANTS,
}

_ROUND_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"pre[\s_-]?seed"), "pre_seed"),
    (re.compile(r"\bseed\b"), "seed"),
    (re.compile(r"series[\s_-]?([a-h])\b"), "series_{0}"),
    (re.compile(r"\bbridge\b"), "bridge"),
    (re.compile(r"convertible"), "convertible"),
    (re.compile(r"\bipo\b"), "ipo"),
    (re.compile(r"acquisition|acquired"), "acquisition"),
    (re.compile(r"growth"), "growth"),
)


def spec_for(field: FactField) -> FieldSpec:
    return FIELD_SPECS[field]


def lookup_field(name: str) -> FactField | None:
    """Map a raw field name onto the vocabulary; unknown names yield ``None``."""

    normalized = re.sub(r"[\s\-]+", "_", name.strip().lower())
    return FIELD_ALIASES.get(normalized)


def normalize_round_type(raw: str) -> str | None:
    text = raw.strip().lower()
    for pattern, template in _ROUND_PATTERNS:
        match = pattern.search(text)
        if match is not None:
            return template.format(*match.groups())
    return None


def priority_for(key: FactKey) -> TaskPriority:
    return FIELD_SPECS[key.field].priority


def coerce_value(field: FactField, raw: object) -> object:
    """Parse ``raw`` into the typed value for ``field``.

    Investor-set fields yield a frozenset of raw investor *names*; the engine
    swaps them for resolved entity ids before a claim is stored.
    """

    value_kind = FIELD_SPECS[field].value_kind
    if value_kind is ValueKind.MONEY:
        return parse_money(raw)
    if value_kind is ValueKind.DATE:
        return parse_partial_date(raw)
    if value_kind is ValueKind.ENUM:
        if not isinstance(raw, str):
            raise ValueError(f"Not a round type: {raw!r}")
        round_key = normalize_round_type(raw)
        if round_key is None:
            raise ValueError(f"Unknown round type: {raw!r}")
        return round_key
    if value_kind is ValueKind.INVESTOR_SET:
        return frozenset(split_names(raw))
    if value_kind is ValueKind.ENTITY_REF:
        return clean_text(str(raw))
    return clean_text(raw)
