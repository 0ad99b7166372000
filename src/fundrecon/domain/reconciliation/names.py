"""Name normalization shared by the resolver and the persistence adapters."""

from __future__ import annotations

import re
import unicodedata

_LEGAL_SUFFIXES = frozenset(
    {
        "inc",
        "incorporated",
        "llc",
        "corp",
        "corporation",
        "ltd",
        "limited",
        "co",
        "lp",
        "llp",
        "gmbh",
        "plc",
        "sa",
        "ag",
        "bv",
        "oy",
    }
)
_PUNCTUATION = re.compile(r"[^\w\s]")


def normalize_name(name: str) -> str:
    """Fold case, strip punctuation and trailing legal suffixes, collapse whitespace.

    ``"Acme Inc."``, ``"ACME, Inc"`` and ``"Acme"`` all normalize to ``"acme"``.
    A name made only of suffix words keeps them so it never normalizes to empty.
    """

    text = unicodedata.normalize("NFKC", name).casefold().replace("&", " and ")
    tokens = _PUNCTUATION.sub(" ", text).split()
    trimmed = list(tokens)
    while len(trimmed) > 1 and trimmed[-1] in _LEGAL_SUFFIXES:
        trimmed.pop()
    return " ".join(trimmed)
