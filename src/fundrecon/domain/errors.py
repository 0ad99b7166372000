"""Error taxonomy of the reconciliation core.

Conflicts and low-confidence claims are not errors; they are routed to the
verification queue. The exceptions below cover bad input, lost races and
invalid reviewer actions.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from uuid import UUID

    from fundrecon.domain.model import EntityKind, FactKey, TaskStatus


class FundreconError(Exception):
    """Base class for domain errors."""


class MalformedRecordError(FundreconError, ValueError):
    """A raw record lacks the minimum identifying fields or carries unparsable values."""

    def __init__(self, message: str, *, source_id: str | None = None) -> None:
        self.source_id = source_id
        super().__init__(message if source_id is None else f"{message} (source={source_id})")


class AmbiguousIdentityError(FundreconError):
    """Several existing entities match a name within the ambiguity margin."""

    def __init__(
        self,
        name: str,
        kind: EntityKind,
        *,
        candidates: tuple[UUID, ...],
        score: float,
    ) -> None:
        self.name = name
        self.kind = kind
        self.candidates = candidates
        self.score = score
        super().__init__(
            f"Ambiguous {kind} identity for {name!r}: "
            f"{len(candidates)} candidates at similarity {score:.3f}"
        )


class InvalidTransitionError(FundreconError):
    """A task state-machine transition was rejected; safe to retry after re-reading."""

    def __init__(
        self,
        task_id: UUID,
        *,
        current: TaskStatus,
        target: TaskStatus,
    ) -> None:
        self.task_id = task_id
        self.current = current
        self.target = target
        super().__init__(f"Task {task_id}: cannot transition {current} -> {target}")


class UnknownTaskError(FundreconError, LookupError):
    """No task exists for the given id."""


class IncompleteResolutionError(FundreconError, ValueError):
    """A reviewer resolution is missing its chosen value or its notes."""


class StaleCommitError(FundreconError):
    """The current fact changed since it was read; re-fetch and retry if still applicable."""

    def __init__(self, entity_id: UUID, key: FactKey, *, expected: int, actual: int) -> None:
        self.entity_id = entity_id
        self.key = key
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Stale commit for {entity_id} {key}: expected version {expected}, found {actual}"
        )


class UnknownEntityError(FundreconError, LookupError):
    """No entity exists for the given id."""


class GraphBuildCancelled(FundreconError):  # noqa: N818
    """A graph build was cancelled between rounds; no partial graph is produced."""
