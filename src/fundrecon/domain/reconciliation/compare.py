"""Per-kind value comparators deciding whether two claims agree."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fundrecon.domain.model import PartialDate, ValueKind

from .vocabulary import spec_for

if TYPE_CHECKING:
    from fundrecon.domain.model import FactField, FactValue


def values_agree(
    field: FactField, left: FactValue, right: FactValue, *, money_tolerance: float
) -> bool:
    """Money agrees within a relative tolerance; dates agree when consistent at the
    coarser precision; everything else requires equality of the normalized value."""

    value_kind = spec_for(field).value_kind
    if value_kind is ValueKind.MONEY:
        if not isinstance(left, int) or not isinstance(right, int):
            return left == right
        largest = max(abs(left), abs(right))
        if largest == 0:
            return True
        return abs(left - right) <= money_tolerance * largest
    if value_kind is ValueKind.DATE:
        if isinstance(left, PartialDate) and isinstance(right, PartialDate):
            return left.consistent_with(right)
        return left == right
    if value_kind is ValueKind.STRING and isinstance(left, str) and isinstance(right, str):
        return left.casefold() == right.casefold()
    return left == right
