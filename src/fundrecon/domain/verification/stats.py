"""Backlog statistics for the verification queue."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING

from fundrecon.domain.model import TaskPriority, TaskStatus

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime

    from fundrecon.domain.model import VerificationTask


@dataclass(frozen=True, slots=True)
class QueueStats:
    total: int
    by_status: dict[str, int]
    open_high_priority: int
    overdue: int
    oldest_open_age: timedelta | None
    average_resolution_time: timedelta | None
    by_kind: dict[str, int] = field(default_factory=dict[str, int])
    by_field: dict[str, int] = field(default_factory=dict[str, int])

    @property
    def open(self) -> int:
        return self.by_status.get(TaskStatus.PENDING, 0) + self.by_status.get(
            TaskStatus.IN_REVIEW, 0
        )

    def as_dict(self) -> dict[str, object]:
        return {
            "total": self.total,
            "open": self.open,
            "by_status": dict(self.by_status),
            "open_high_priority": self.open_high_priority,
            "overdue": self.overdue,
            "oldest_open_age_hours": _hours(self.oldest_open_age),
            "average_resolution_hours": _hours(self.average_resolution_time),
            "by_kind": dict(self.by_kind),
            "by_field": dict(self.by_field),
        }


def compute_stats(tasks: Iterable[VerificationTask], now: datetime) -> QueueStats:
    by_status: Counter[str] = Counter({status.value: 0 for status in TaskStatus})
    by_kind: Counter[str] = Counter()
    by_field: Counter[str] = Counter()
    open_high = 0
    overdue = 0
    oldest: timedelta | None = None
    resolution_times: list[timedelta] = []
    total = 0
    for task in tasks:
        total += 1
        by_status[task.status.value] += 1
        if task.is_open:
            by_kind[task.kind.value] += 1
            by_field[task.key.field.value] += 1
            if task.priority is TaskPriority.HIGH:
                open_high += 1
            if task.is_overdue(now):
                overdue += 1
            age = task.age(now)
            oldest = age if oldest is None else max(oldest, age)
        elif task.resolved_at is not None:
            resolution_times.append(task.resolved_at - task.created_at)
    average = (
        sum(resolution_times, timedelta()) / len(resolution_times) if resolution_times else None
    )
    return QueueStats(
        total=total,
        by_status=dict(by_status),
        open_high_priority=open_high,
        overdue=overdue,
        oldest_open_age=oldest,
        average_resolution_time=average,
        by_kind=dict(by_kind),
        by_field=dict(by_field),
    )


def _hours(value: timedelta | None) -> float | None:
    return None if value is None else round(value.total_seconds() / 3600, 2)
