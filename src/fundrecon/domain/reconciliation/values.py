"""Parsing and canonical encoding of typed fact values.

Money is held as integer US cents; bare numbers are read as whole dollars so
``"$15M"``, ``"15,000,000"`` and ``15_000_000`` normalize identically. Dates
become :class:`PartialDate` with an explicit precision instead of guessing the
missing parts.
"""

from __future__ import annotations

import json
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from fundrecon.domain.model import PartialDate, ValueKind, usd

if TYPE_CHECKING:
    from collections.abc import Iterable

    from fundrecon.domain.model import FactValue, MoneyCents

_MONEY_RE = re.compile(
    r"^\s*(?:usd|us\$|\$)?\s*(?P<number>\d[\d,]*(?:\.\d+)?)\s*"
    r"(?P<unit>k|thousand|m|mm|mn|million|b|bn|billion)?\s*(?:usd|dollars?)?\s*$",
    re.IGNORECASE,
)
_UNIT_MULTIPLIERS: dict[str, int] = {
    "k": 1_000,
    "thousand": 1_000,
    "m": 1_000_000,
    "mm": 1_000_000,
    "mn": 1_000_000,
    "million": 1_000_000,
    "b": 1_000_000_000,
    "bn": 1_000_000_000,
    "billion": 1_000_000_000,
}
_MONTHS = {
    name: index
    for index, names in enumerate(
        (
            ("jan", "january"),
            ("feb", "february"),
            ("mar", "march"),
            ("apr", "april"),
            ("may",),
            ("jun", "june"),
            ("jul", "july"),
            ("aug", "august"),
            ("sep", "sept", "september"),
            ("oct", "october"),
            ("nov", "november"),
            ("dec", "december"),
        ),
        start=1,
    )
    for name in names
}
_ISO_DATE_RE = re.compile(r"^(?P<year>\d{4})(?:-(?P<month>\d{1,2})(?:-(?P<day>\d{1,2}))?)?$")
_WORD_DATE_RE = re.compile(
    r"^(?P<month>[a-z]+)\.?\s+(?:(?P<day>\d{1,2}),?\s+)?(?P<year>\d{4})$", re.IGNORECASE
)


def parse_money(raw: object) -> MoneyCents:
    """Parse an amount in US dollars into integer cents."""

    if isinstance(raw, bool):
        raise ValueError(f"Not a monetary amount: {raw!r}")
    if isinstance(raw, int | float | Decimal):
        if raw < 0:
            raise ValueError(f"Negative monetary amount: {raw!r}")
        return usd(float(raw))
    if not isinstance(raw, str):
        raise ValueError(f"Not a monetary amount: {raw!r}")
    match = _MONEY_RE.match(raw)
    if match is None:
        raise ValueError(f"Unparsable monetary amount: {raw!r}")
    try:
        number = Decimal(match.group("number").replace(",", ""))
    except InvalidOperation as exc:
        raise ValueError(f"Unparsable monetary amount: {raw!r}") from exc
    unit = match.group("unit")
    if unit is not None:
        number *= _UNIT_MULTIPLIERS[unit.lower()]
    return int((number * 100).to_integral_value())


def parse_partial_date(raw: object) -> PartialDate:
    if isinstance(raw, PartialDate):
        return raw
    if isinstance(raw, datetime):
        return PartialDate.from_date(raw.date())
    if isinstance(raw, date):
        return PartialDate.from_date(raw)
    if isinstance(raw, int) and not isinstance(raw, bool):
        return PartialDate(year=raw)
    if not isinstance(raw, str):
        raise ValueError(f"Not a date: {raw!r}")
    text = raw.strip()
    if "T" in text:
        text = text.split("T", 1)[0]
    match = _ISO_DATE_RE.match(text)
    if match is not None:
        month = match.group("month")
        day = match.group("day")
        return PartialDate(
            year=int(match.group("year")),
            month=int(month) if month else None,
            day=int(day) if day else None,
        )
    match = _WORD_DATE_RE.match(text)
    if match is not None:
        month_number = _MONTHS.get(match.group("month").lower())
        if month_number is None:
            raise ValueError(f"Unparsable date: {raw!r}")
        day = match.group("day")
        return PartialDate(
            year=int(match.group("year")), month=month_number, day=int(day) if day else None
        )
    raise ValueError(f"Unparsable date: {raw!r}")


def clean_text(raw: object) -> str:
    if not isinstance(raw, str):
        raise ValueError(f"Not a string: {raw!r}")
    text = " ".join(raw.split())
    if not text:
        raise ValueError("Empty string value")
    return text


def split_names(raw: object) -> tuple[str, ...]:
    """Split a list of names or a comma/"and" separated string into clean names."""

    items: Iterable[object]
    if isinstance(raw, str):
        items = re.split(r",|;|\s+and\s+|\s*&\s*", raw)
    elif isinstance(raw, list | tuple | set | frozenset):
        items = raw
    else:
        raise ValueError(f"Not a list of names: {raw!r}")
    names: list[str] = []
    for item in items:
        if not isinstance(item, str):
            raise ValueError(f"Not a name: {item!r}")
        name = " ".join(item.split())
        if name and name not in names:
            names.append(name)
    if not names:
        raise ValueError("Empty list of names")
    return tuple(names)


def encode_value(value: FactValue) -> str:
    """Canonical JSON text for a fact value; equal values encode identically."""

    return json.dumps(to_jsonable(value), sort_keys=True, separators=(",", ":"))


def to_jsonable(value: FactValue) -> dict[str, object]:
    if isinstance(value, PartialDate):
        return {"kind": ValueKind.DATE.value, "value": value.isoformat()}
    if isinstance(value, frozenset):
        return {"kind": ValueKind.INVESTOR_SET.value, "value": sorted(value)}
    if isinstance(value, int) and not isinstance(value, bool):
        return {"kind": ValueKind.MONEY.value, "value": value}
    return {"kind": ValueKind.STRING.value, "value": value}


def decode_value(text: str) -> FactValue:
    payload = json.loads(text)
    kind = ValueKind(payload["kind"])
    raw = payload["value"]
    if kind is ValueKind.DATE:
        return parse_partial_date(raw)
    if kind is ValueKind.INVESTOR_SET:
        return frozenset(str(item) for item in raw)
    if kind is ValueKind.MONEY:
        return int(raw)
    return str(raw)


def describe_value(value: FactValue) -> str:
    """Human-readable rendering for logs, exports and the CLI."""

    if isinstance(value, PartialDate):
        return value.isoformat()
    if isinstance(value, frozenset):
        return ", ".join(sorted(value))
    if isinstance(value, int) and not isinstance(value, bool):
        return f"${value / 100:,.2f}"
    return value
