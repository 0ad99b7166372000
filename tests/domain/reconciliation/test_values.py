from __future__ import annotations

from datetime import date

import pytest

from fundrecon.domain.model import PartialDate
from fundrecon.domain.reconciliation.values import (
    decode_value,
    describe_value,
    encode_value,
    parse_money,
    parse_partial_date,
    split_names,
)


@pytest.mark.parametrize(
    "raw",
    ["$15M", "15,000,000", "15 million", "USD 15mm", 15_000_000, "$15,000,000.00"],
)
def test_money_spellings_normalize_to_the_same_cents(raw: object) -> None:
    assert parse_money(raw) == 1_500_000_000


def test_money_with_billion_unit_and_fraction() -> None:
    assert parse_money("$1.5 billion") == 150_000_000_000


@pytest.mark.parametrize("raw", ["fifteen", -5, True, None, "$"])
def test_money_rejects_garbage(raw: object) -> None:
    with pytest.raises(ValueError):
        parse_money(raw)


def test_dates_keep_their_precision() -> None:
    assert parse_partial_date("2021") == PartialDate(2021)
    assert parse_partial_date("2021-03") == PartialDate(2021, 3)
    assert parse_partial_date("2021-03-09T10:00:00Z") == PartialDate(2021, 3, 9)
    assert parse_partial_date("March 2021") == PartialDate(2021, 3)
    assert parse_partial_date("Mar 9, 2021") == PartialDate(2021, 3, 9)
    assert parse_partial_date(date(2021, 3, 9)) == PartialDate(2021, 3, 9)
    assert parse_partial_date(2019) == PartialDate(2019)


def test_unparsable_date_raises() -> None:
    with pytest.raises(ValueError):
        parse_partial_date("sometime soon")


def test_split_names_handles_separators_and_duplicates() -> None:
    assert split_names("Accel, Index Ventures and Sequoia") == (
        "Accel",
        "Index Ventures",
        "Sequoia",
    )
    assert split_names(["  Accel ", "Accel", "GV"]) == ("Accel", "GV")


def test_encoding_is_canonical_for_sets() -> None:
    left = frozenset({"b", "a"})
    right = frozenset({"a", "b"})

    assert encode_value(left) == encode_value(right)
    assert decode_value(encode_value(left)) == left
    assert decode_value(encode_value(PartialDate(2020, 5))) == PartialDate(2020, 5)


def test_describe_value_formats_money() -> None:
    assert describe_value(1_500_000_000) == "$15,000,000.00"
