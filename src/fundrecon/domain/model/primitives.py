"""Domain primitives: scalar aliases + small value objects.

Scalar aliases may be promoted to proper value objects later without changing imports.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from fundrecon.domain.model.enums import DatePrecision, FactField

type MoneyCents = int
type EntityRef = str
type FactValue = MoneyCents | str | PartialDate | frozenset[EntityRef]

CENTS_PER_DOLLAR = 100


def usd(dollars: float) -> MoneyCents:
    """Whole or fractional dollars to integer cents."""
    return round(dollars * CENTS_PER_DOLLAR)


@dataclass(frozen=True, slots=True)
class PartialDate:
    year: int
    month: int | None = None
    day: int | None = None

    def __post_init__(self) -> None:
        if self.day is not None and self.month is None:
            raise ValueError("A day requires a month")
        # validates the calendar date
        date(self.year, self.month or 1, self.day or 1)

    @property
    def precision(self) -> DatePrecision:
        if self.day is not None:
            return DatePrecision.DAY
        if self.month is not None:
            return DatePrecision.MONTH
        return DatePrecision.YEAR

    @property
    def as_date(self) -> date:
        return date(self.year, self.month or 1, self.day or 1)

    def consistent_with(self, other: PartialDate) -> bool:
        """True when the coarser of both dates is a prefix of the finer one."""

        if self.year != other.year:
            return False
        if self.month is None or other.month is None:
            return True
        if self.month != other.month:
            return False
        if self.day is None or other.day is None:
            return True
        return self.day == other.day

    def isoformat(self) -> str:
        if self.month is None:
            return f"{self.year:04d}"
        if self.day is None:
            return f"{self.year:04d}-{self.month:02d}"
        return f"{self.year:04d}-{self.month:02d}-{self.day:02d}"

    @classmethod
    def from_date(cls, value: date) -> PartialDate:
        return cls(year=value.year, month=value.month, day=value.day)


@dataclass(frozen=True, slots=True, order=True)
class FactKey:
    """Address of one fact on an entity: a field plus an optional round scope."""

    field: FactField
    scope: str = ""

    def __str__(self) -> str:
        return f"{self.field}[{self.scope}]" if self.scope else str(self.field)
