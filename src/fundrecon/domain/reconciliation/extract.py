"""Pattern-based extraction of funding facts from news text.

Recognises the phrasing typical of funding announcements ("X raises $12M
Series A led by Y, with participation from Z"). Extraction is best-effort: a
missing piece yields ``None`` rather than a guess.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from .vocabulary import normalize_round_type

_VERBS = r"raises?|raised|secures?|secured|closes?|closed|announces?|announced|lands?|landed"
_NAME = r"(?P<name>[A-Z][A-Za-z0-9&.\-]*(?:\s+[A-Z][A-Za-z0-9&.\-]*){0,4})"
_COMPANY_PATTERNS = (
    re.compile(rf"{_NAME}\s+(?:has\s+)?(?:{_VERBS})\b"),
    re.compile(rf"(?:startup|company)\s+{_NAME}"),
)
_AMOUNT_PATTERN = re.compile(
    r"\$\s?(?P<number>\d[\d,]*(?:\.\d+)?)\s*(?P<unit>million|billion|mn|bn|m|b)?\b"
    r"|(?P<words>\d+(?:\.\d+)?)\s*(?P<wunit>million|billion)\s+dollars?",
    re.IGNORECASE,
)
_ROUND_PATTERN = re.compile(
    r"(pre[\s-]?seed|seed|series\s+[a-h]|bridge|convertible|ipo|growth)\b", re.IGNORECASE
)
_LEAD_PATTERN = re.compile(r"led\s+by\s+(?P<names>[^.;]+?)(?=,\s*with\b|\s+with\b|[.;]|$)", re.I)
_PARTICIPANT_PATTERN = re.compile(
    r"(?:with\s+participation\s+from|joined\s+by|participation\s+from)\s+(?P<names>[^.;]+)", re.I
)
_VALUATION_PATTERN = re.compile(
    r"(?:valued\s+at|valuation\s+of)\s+\$\s?(?P<number>\d[\d,]*(?:\.\d+)?)\s*"
    r"(?P<unit>million|billion|m|b)?\b",
    re.IGNORECASE,
)
_LIST_SPLIT = re.compile(r",\s*(?:and\s+)?|\s+and\s+|\s*&\s*")
_TRAILING_WORDS = re.compile(
    r"\s+(?:and|as\s+well\s+as|among\s+others|existing\s+investors)$", re.IGNORECASE
)


@dataclass(frozen=True, slots=True)
class ExtractedFunding:
    company_name: str | None
    amount: str | None
    round_type: str | None
    lead_investors: tuple[str, ...]
    participants: tuple[str, ...]
    valuation: str | None


def extract_funding(text: str) -> ExtractedFunding:
    valuation = _find_valuation(text)
    return ExtractedFunding(
        company_name=_find_company(text),
        amount=_find_amount(_strip_valuation(text)),
        round_type=_find_round(text),
        lead_investors=_find_names(_LEAD_PATTERN, text),
        participants=_find_names(_PARTICIPANT_PATTERN, text),
        valuation=valuation,
    )


def _find_company(text: str) -> str | None:
    for pattern in _COMPANY_PATTERNS:
        match = pattern.search(text)
        if match is None:
            continue
        name = match.group("name").strip()
        if 2 < len(name) < 50:
            return name
    return None


def _strip_valuation(text: str) -> str:
    return _VALUATION_PATTERN.sub("", text)


def _find_amount(text: str) -> str | None:
    match = _AMOUNT_PATTERN.search(text)
    if match is None:
        return None
    if match.group("number") is not None:
        unit = match.group("unit") or ""
        return f"${match.group('number')}{unit}"
    return f"{match.group('words')} {match.group('wunit')}"


def _find_round(text: str) -> str | None:
    match = _ROUND_PATTERN.search(text)
    if match is None:
        return None
    return normalize_round_type(match.group(1))


def _find_valuation(text: str) -> str | None:
    match = _VALUATION_PATTERN.search(text)
    if match is None:
        return None
    return f"${match.group('number')}{match.group('unit') or ''}"


def _find_names(pattern: re.Pattern[str], text: str) -> tuple[str, ...]:
    names: list[str] = []
    for match in pattern.finditer(text):
        for part in _LIST_SPLIT.split(match.group("names")):
            name = _TRAILING_WORDS.sub("", part.strip()).strip()
            if 2 < len(name) < 50 and name not in names:
                names.append(name)
    return tuple(names)
