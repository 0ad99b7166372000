"""CSV export of the verification queue."""

from __future__ import annotations

import csv
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping
    from typing import TextIO
    from uuid import UUID

    from fundrecon.domain.model import VerificationTask

EXPORT_COLUMNS = (
    "task_id",
    "kind",
    "priority",
    "status",
    "entity_id",
    "entity_name",
    "field",
    "scope",
    "assignee",
    "created_at",
    "due_at",
    "resolved_at",
)


def write_tasks_csv(
    tasks: Iterable[VerificationTask],
    handle: TextIO,
    *,
    entity_names: Mapping[UUID, str] | None = None,
) -> int:
    """Write one row per task; returns the number of rows written."""

    names = entity_names or {}
    writer = csv.writer(handle)
    writer.writerow(EXPORT_COLUMNS)
    written = 0
    for task in tasks:
        writer.writerow(
            (
                str(task.task_id),
                task.kind.value,
                task.priority.value,
                task.status.value,
                str(task.entity_id),
                names.get(task.entity_id, ""),
                task.key.field.value,
                task.key.scope,
                task.assignee or "",
                task.created_at.isoformat(),
                task.due_at.isoformat(),
                "" if task.resolved_at is None else task.resolved_at.isoformat(),
            )
        )
        written += 1
    return written
