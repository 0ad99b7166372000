# ruff: noqa: T201

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path
from signal import SIGINT, signal
from typing import TYPE_CHECKING
from uuid import UUID

from dotenv import load_dotenv

from fundrecon.app import (
    build_co_investment_graph,
    build_verification_queue,
    export_queue_csv,
    find_entity,
    ingest_files,
)
from fundrecon.config import configure_logging
from fundrecon.domain.errors import FundreconError
from fundrecon.domain.model import (
    EntityKind,
    TaskKind,
    TaskPriority,
    TaskStatus,
    VerificationOutcome,
)
from fundrecon.domain.reconciliation.values import describe_value

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from fundrecon.domain.model import Entity, VerificationTask

log = logging.getLogger(__name__)


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile funding data from multiple sources")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    ingest = subparsers.add_parser("ingest", help="Ingest JSON-lines source files")
    ingest.add_argument("paths", nargs="+", type=Path, help="Files to ingest")

    queue = subparsers.add_parser("queue", help="Verification queue commands")
    queue_sub = queue.add_subparsers(dest="queue_command", required=True)

    queue_list = queue_sub.add_parser("list", help="List verification tasks")
    queue_list.add_argument("--status", type=TaskStatus, choices=list(TaskStatus))
    queue_list.add_argument("--priority", type=TaskPriority, choices=list(TaskPriority))
    queue_list.add_argument("--kind", type=TaskKind, choices=list(TaskKind))
    queue_list.add_argument("--overdue", action="store_true", help="Only open overdue tasks")

    queue_claim = queue_sub.add_parser("claim", help="Start reviewing a task")
    queue_claim.add_argument("task_id", type=str)
    queue_claim.add_argument("--reviewer", type=str, required=True)

    queue_release = queue_sub.add_parser("release", help="Return a task to the pending pool")
    queue_release.add_argument("task_id", type=str)

    queue_resolve = queue_sub.add_parser("resolve", help="Record a reviewer decision")
    queue_resolve.add_argument("task_id", type=str)
    queue_resolve.add_argument(
        "--outcome", type=VerificationOutcome, choices=list(VerificationOutcome), required=True
    )
    queue_resolve.add_argument(
        "--value",
        type=str,
        help="Chosen value (JSON or plain text); required to verify a conflict",
    )
    queue_resolve.add_argument("--notes", type=str, help="Reviewer notes; required to reject")

    queue_sub.add_parser("stats", help="Show backlog statistics")

    queue_export = queue_sub.add_parser("export", help="Export tasks as CSV")
    queue_export.add_argument("output", type=Path)
    queue_export.add_argument("--status", type=TaskStatus, choices=list(TaskStatus))

    graph = subparsers.add_parser("graph", help="Co-investment graph commands")
    graph_sub = graph.add_subparsers(dest="graph_command", required=True)
    graph_build = graph_sub.add_parser("build", help="Build the co-investment graph")
    graph_build.add_argument("--output", type=Path, help="Write the graph JSON to this file")
    graph_build.add_argument(
        "--top", type=int, default=0, help="Print the N strongest investor relationships"
    )

    entity = subparsers.add_parser("entity", help="Entity commands")
    entity_sub = entity.add_subparsers(dest="entity_command", required=True)
    entity_show = entity_sub.add_parser("show", help="Show an entity and its committed facts")
    entity_show.add_argument("reference", type=str, help="Entity id or name")
    entity_show.add_argument("--kind", type=EntityKind, choices=list(EntityKind))

    return parser.parse_args(list(argv))


def _parse_uuid(value: str) -> UUID:
    try:
        return UUID(value)
    except ValueError as exc:
        raise ValueError(f"Invalid UUID: {value}") from exc


def _parse_value(raw: str | None) -> object | None:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def _task_row(task: VerificationTask) -> dict[str, object]:
    return {
        "task_id": str(task.task_id),
        "kind": task.kind.value,
        "priority": task.priority.value,
        "status": task.status.value,
        "entity_id": str(task.entity_id),
        "key": str(task.key),
        "assignee": task.assignee,
        "due_at": task.due_at.isoformat(),
    }


def _entity_view(entity: Entity) -> dict[str, object]:
    return {
        "id": str(entity.id),
        "kind": entity.kind.value,
        "name": entity.name,
        "aliases": list(entity.aliases),
        "facts": {
            str(key): {
                "value": describe_value(record.value),
                "version": record.version,
                "rule": record.provenance.rule.value,
            }
            for key, record in sorted(entity.current_facts.items())
        },
    }


def _emit(payload: object) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True, default=str))


def _run_queue(args: argparse.Namespace) -> None:
    queue = build_verification_queue()
    command = args.queue_command
    if command == "list":
        tasks = (
            queue.overdue(datetime.now(UTC))
            if args.overdue
            else queue.query(status=args.status, priority=args.priority, kind=args.kind)
        )
        _emit([_task_row(task) for task in tasks])
    elif command == "claim":
        _emit(_task_row(queue.claim(_parse_uuid(args.task_id), args.reviewer)))
    elif command == "release":
        _emit(_task_row(queue.release(_parse_uuid(args.task_id))))
    elif command == "resolve":
        result = queue.resolve(
            _parse_uuid(args.task_id),
            args.outcome,
            chosen_value=_parse_value(args.value),
            notes=args.notes,
        )
        _emit(_task_row(result.task))
    elif command == "stats":
        _emit(queue.stats().as_dict())
    elif command == "export":
        written = export_queue_csv(args.output, status=args.status)
        log.info("Wrote %d rows to %s", written, args.output)
    else:
        raise ValueError(f"Unsupported queue command: {command}")


def _run_graph(args: argparse.Namespace) -> None:
    graph = build_co_investment_graph()
    if args.output is not None:
        args.output.write_text(graph.to_json(), encoding="utf-8")
        log.info("Wrote graph with %d nodes to %s", len(graph.nodes), args.output)
    else:
        print(graph.to_json())
    if args.top:
        _emit([edge.as_dict() for edge in graph.top_relationships(args.top)])


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    parsed_args: argparse.Namespace
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    try:
        parsed_args = _parse_args(args_list)
    except ValueError:
        log.exception("CLI validation error")
        sys.exit(2)
    configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)

    try:
        if parsed_args.command == "ingest":
            report = ingest_files(list(parsed_args.paths))
            _emit(
                {
                    "records": report.records_seen,
                    "claims_stored": report.claims_stored,
                    "duplicates": report.duplicates,
                    "entities_created": report.entities_created,
                    "provisional_entities": report.provisional_entities,
                    "malformed": [str(error) for error in report.malformed],
                    "dropped_fields": dict(report.dropped_fields),
                    "outcomes": {str(key): value for key, value in report.outcomes.items()},
                }
            )
        elif parsed_args.command == "queue":
            _run_queue(parsed_args)
        elif parsed_args.command == "graph" and parsed_args.graph_command == "build":
            _run_graph(parsed_args)
        elif parsed_args.command == "entity" and parsed_args.entity_command == "show":
            _emit(_entity_view(find_entity(parsed_args.reference, kind=parsed_args.kind)))
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301

    except (FundreconError, ValueError) as exc:
        log.error("%s", exc)
        sys.exit(2)
    except Exception:
        log.exception("Fatal error")
        sys.exit(1)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
