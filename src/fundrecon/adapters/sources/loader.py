"""Read JSON-lines ingest files into raw records."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from pydantic import ValidationError

from fundrecon.domain.errors import MalformedRecordError

from .schema import SOURCE_PAYLOAD_ADAPTER
from .translator import to_record

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

    from fundrecon.domain.reconciliation import RawRecord


log = logging.getLogger(__name__)


@dataclass(slots=True)
class LoadedRecords:
    records: list[RawRecord] = field(default_factory=list["RawRecord"])
    errors: list[MalformedRecordError] = field(default_factory=list[MalformedRecordError])


def parse_lines(lines: Iterable[str], *, origin: str = "<input>") -> LoadedRecords:
    loaded = LoadedRecords()
    for number, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        try:
            payload = SOURCE_PAYLOAD_ADAPTER.validate_python(json.loads(line))
        except (json.JSONDecodeError, ValidationError) as exc:
            log.warning("Invalid payload at %s:%d: %s", origin, number, exc)
            loaded.errors.append(
                MalformedRecordError(f"Invalid payload at {origin}:{number}: {exc}")
            )
            continue
        loaded.records.append(to_record(payload))
    return loaded


def load_jsonl(path: Path) -> LoadedRecords:
    with path.open(encoding="utf-8") as handle:
        return parse_lines(handle, origin=str(path))
