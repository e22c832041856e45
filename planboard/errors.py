"""
Planning engine errors.

All of these are local, recoverable conditions returned to the caller; the UI
layer turns them into user-facing messages ("Blocked by: ...").
"""
from typing import List, Optional, Sequence


class PlanningError(Exception):
    """Base class for every condition raised by the planning engine."""
    pass


class InvalidOrdering(PlanningError):
    """Neighbor positions are contradictory (before >= after).

    Callers must re-fetch the current neighbor positions before retrying.
    """

    def __init__(self, before: Optional[float], after: Optional[float]):
        self.before = before
        self.after = after
        super().__init__(f"Invalid ordering: before={before!r} is not less than after={after!r}")


class PositionExhausted(InvalidOrdering):
    """No representable position remains between two neighbors."""

    def __init__(self, before: float, after: float):
        super().__init__(before, after)
        self.args = (f"Position gap exhausted between {before!r} and {after!r}; rebalance required",)


class CycleDetected(PlanningError):
    """Adding an edge (or re-parenting a task) would create a cycle."""

    def __init__(self, path: Sequence[str]):
        self.path = list(path)
        super().__init__("Cycle detected: " + " -> ".join(self.path))


class SelfDependency(PlanningError):
    """A task cannot block itself."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task {task_id} cannot depend on itself")


class BlockedByDependencies(PlanningError):
    """Completion refused: some direct blockers are not completed."""

    def __init__(self, task_id: str, blocker_ids: List[str], titles: Optional[List[str]] = None):
        self.task_id = task_id
        self.blocker_ids = list(blocker_ids)
        self.titles = list(titles) if titles else list(blocker_ids)
        super().__init__(f"Blocked by: {', '.join(self.titles)}")


class ListNotEmpty(PlanningError):
    """List deletion refused without an explicit strategy for its tasks."""

    def __init__(self, list_id: str, task_count: int):
        self.list_id = list_id
        self.task_count = task_count
        super().__init__(
            f"List {list_id} still holds {task_count} task(s). "
            f"Pass a strategy: cascade-delete its tasks or move them to another list."
        )


class NotFound(PlanningError, KeyError):
    """Referenced board, list or task is not part of this projection."""

    def __init__(self, kind: str, entity_id):
        self.kind = kind
        self.entity_id = entity_id
        PlanningError.__init__(self, f"{kind} not found: {entity_id}")

    def __str__(self) -> str:
        return self.args[0]


class InvalidTransition(PlanningError):
    """Status change not allowed from the task's current status."""

    def __init__(self, task_id: str, from_status, to_status):
        self.task_id = task_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Task {task_id}: cannot go from {getattr(from_status, 'value', from_status)} "
            f"to {getattr(to_status, 'value', to_status)}"
        )


class InvariantViolation(PlanningError):
    """In-memory projection is inconsistent; refetch from the store."""
    pass


class SuggestionError(PlanningError):
    """The AI suggestion collaborator failed or returned garbage."""
    pass


class ConfigError(PlanningError):
    """Raised when configuration is invalid or incomplete."""
    pass
