"""JSON source payloads and their translation into raw records."""

from fundrecon.adapters.sources.loader import LoadedRecords, load_jsonl, parse_lines
from fundrecon.adapters.sources.schema import (
    SOURCE_PAYLOAD_ADAPTER,
    ApiPayload,
    ManualPayload,
    NewsPayload,
    RoundPayload,
)
from fundrecon.adapters.sources.translator import to_record

__all__ = [
    "SOURCE_PAYLOAD_ADAPTER",
    "ApiPayload",
    "LoadedRecords",
    "ManualPayload",
    "NewsPayload",
    "RoundPayload",
    "load_jsonl",
    "parse_lines",
    "to_record",
]
