"""
Task lifecycle: status state machine, progress, and parent/subtask rollup.

States:
  pending, in_progress, on_hold: open, freely interchangeable
  completed: only via the dependency-gated path; may be reopened to pending
  cancelled: terminal, reachable from anywhere

Invariant: progress == 100 iff status == completed.

Rollup: when a subtask's status or progress changes, the parent's progress
becomes the mean of its direct subtasks. When every subtask is completed the
parent is offered completion through the same gated path; a blocked parent
stays open at 99. A parent's own change rolls up to its parent in turn.
"""
import logging
import math
from datetime import date
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from . import events as ev
from .containers import ContainerStore
from .dependencies import DependencyGraph
from .errors import BlockedByDependencies, CycleDetected, InvalidTransition, NotFound
from .events import EventBridge
from .position import PositionIndex
from .schema import (
    DependencyEdge,
    MutationOp,
    MutationSet,
    Task,
    TaskCategory,
    TaskPriority,
    TaskStatus,
    parse_date,
    make_id,
)

logger = logging.getLogger(__name__)

# Fields callers may edit directly; status/progress/position have their own paths
DETAIL_FIELDS = (
    "title", "description", "notes", "priority", "category",
    "start_date", "due_date", "assignee_id", "plan_id",
)

_KEEP = object()


def mean_progress(values: Iterable[int]) -> int:
    """Arithmetic mean rounded half-up, 0 for no values."""
    values = list(values)
    if not values:
        return 0
    return int(math.floor(sum(values) / len(values) + 0.5))


class TaskLifecycle:
    """Owns one board's tasks and applies every status/progress/placement change."""

    def __init__(
        self,
        graph: Optional[DependencyGraph] = None,
        containers: Optional[ContainerStore] = None,
        events: Optional[EventBridge] = None,
        index: Optional[PositionIndex] = None,
    ):
        self.tasks: Dict[str, Task] = {}
        self.graph = graph or DependencyGraph()
        self.containers = containers or ContainerStore("task", ("list_id", "parent_id"), index)
        self.events = events or EventBridge()
        self._children: Dict[str, Dict[str, None]] = {}  # parent id -> subtask ids

    # ── Loading & queries ────────────────────────────────────────────────

    def load(self, tasks: Iterable[Task], edges: Iterable[DependencyEdge] = ()) -> None:
        """Populate from rows fetched from the store (no mutations produced)."""
        grouped: Dict[Tuple[Optional[str], Optional[str]], List[Tuple[str, float]]] = {}
        for task in tasks:
            self.tasks[task.id] = task
            self.graph.add_task(task.id)
            grouped.setdefault(task.sibling_key, []).append((task.id, task.position))
        for task in self.tasks.values():
            if task.parent_id is not None:
                self._children.setdefault(task.parent_id, {})[task.id] = None
        for key, items in grouped.items():
            self.containers.load(key, items)
        for edge in edges:
            self.graph.add_edge(edge.blocking_id, edge.dependent_id)

    def get(self, task_id: str) -> Task:
        try:
            return self.tasks[task_id]
        except KeyError:
            raise NotFound("task", task_id)

    def status_of(self, task_id: str) -> Optional[TaskStatus]:
        task = self.tasks.get(task_id)
        return task.status if task else None

    def subtasks(self, task_id: str) -> List[Task]:
        children = [self.tasks[c] for c in self._children.get(task_id, {})]
        return sorted(children, key=lambda t: (t.list_id or "", t.position, t.id))

    def tasks_in(self, list_id: Optional[str], parent_id: Optional[str] = None) -> List[Task]:
        """Tasks of one sibling set, in display order."""
        return [self.tasks[t] for t in self.containers.ordered((list_id, parent_id))]

    def walk(self, list_id: Optional[str] = None) -> Iterator[Tuple[int, Task]]:
        """Depth-first (depth, task) rows for the hierarchical task table."""
        for task in self.tasks_in(list_id):
            yield 0, task
            yield from self._walk_children(task.id, 1)

    def _walk_children(self, task_id: str, depth: int) -> Iterator[Tuple[int, Task]]:
        for sub in self.subtasks(task_id):
            yield depth, sub
            yield from self._walk_children(sub.id, depth + 1)

    def unmet_blockers(self, task_id: str) -> List[str]:
        self.get(task_id)
        return self.graph.unmet_blockers(task_id, self.status_of)

    def is_blocked(self, task_id: str) -> bool:
        return bool(self.unmet_blockers(task_id))

    def blocked_titles(self, task_id: str) -> List[str]:
        return [self.tasks[b].title if b in self.tasks else b for b in self.unmet_blockers(task_id)]

    # ── Creation & deletion ──────────────────────────────────────────────

    def create_task(
        self,
        title: str,
        list_id: Optional[str] = None,
        parent_id: Optional[str] = None,
        index: Optional[int] = None,
        task_id: Optional[str] = None,
        **fields,
    ) -> Tuple[Task, MutationSet]:
        """Create a pending task at `index` of its sibling set (None appends)."""
        if parent_id is not None and parent_id not in self.tasks:
            raise NotFound("task", parent_id)
        if not title or not title.strip():
            raise ValueError("Task title must not be empty")

        task = Task(id=task_id or make_id("task"), title=title.strip(), list_id=list_id, parent_id=parent_id)
        self._apply_details(task, fields)
        if task.id in self.tasks:
            raise ValueError(f"Task {task.id} already exists")

        mutations = self.containers.insert_item(task.id, task.sibling_key, index)
        self.tasks[task.id] = task
        self._sync(mutations)
        self.graph.add_task(task.id)
        if parent_id is not None:
            self._children.setdefault(parent_id, {})[task.id] = None
        mutations.create("task", task.id, **task.to_dict())
        self._rollup(parent_id, mutations)

        logger.debug("Created task %s (%s) in %r", task.id, task.title, task.sibling_key)
        return task, mutations

    def delete_task(self, task_id: str) -> MutationSet:
        """Delete a task, its subtasks (recursively) and every edge touching them."""
        task = self.get(task_id)
        parent_id = task.parent_id
        mutations = MutationSet()
        removed = self._delete_subtree(task_id, mutations)
        self._rollup(parent_id, mutations)
        logger.info("Deleted task %s with %d subtask(s)", task_id, removed - 1)
        return mutations

    def _delete_subtree(self, task_id: str, mutations: MutationSet) -> int:
        count = 1
        for child_id in list(self._children.get(task_id, {})):
            count += self._delete_subtree(child_id, mutations)

        task = self.tasks[task_id]
        for edge in self.graph.remove_task(task_id):
            mutations.delete("dependency", edge.key, **edge.to_dict())
        mutations.merge(self.containers.remove_item(task_id))
        self._children.pop(task_id, None)
        if task.parent_id is not None:
            self._children.get(task.parent_id, {}).pop(task_id, None)
        del self.tasks[task_id]
        self.events.emit(ev.TASK_DELETED, task_id=task_id, parent_id=task.parent_id)
        return count

    # ── Placement ────────────────────────────────────────────────────────

    def move_task(self, task_id: str, list_id: Optional[str], index: Optional[int] = None,
                  parent_id=_KEEP) -> MutationSet:
        """Move a task to `index` of (list_id, parent_id); parent defaults to unchanged."""
        task = self.get(task_id)
        old_parent = task.parent_id
        new_parent = old_parent if parent_id is _KEEP else parent_id

        if new_parent is not None and new_parent != old_parent:
            self.get(new_parent)
            self._check_not_descendant(task_id, new_parent)

        mutations = self.containers.move_item(task_id, (list_id, new_parent), index)
        self._sync(mutations)
        if not mutations:
            return mutations

        if new_parent != old_parent:
            if old_parent is not None:
                self._children.get(old_parent, {}).pop(task_id, None)
            if new_parent is not None:
                self._children.setdefault(new_parent, {})[task_id] = None
            self._rollup(old_parent, mutations)
            self._rollup(new_parent, mutations)

        task.touch()
        mutations.update("task", task_id, updated_at=task.updated_at.isoformat())
        self.events.emit(ev.TASK_MOVED, task_id=task_id, list_id=list_id, parent_id=new_parent,
                         position=task.position)
        return mutations

    def rebalance_stale(self) -> MutationSet:
        """Respace every sibling set whose gaps hit the precision floor."""
        mutations = MutationSet()
        for key in self.containers.stale_containers():
            mutations.merge(self.containers.rebalance(key))
        self._sync(mutations)
        return mutations

    def _check_not_descendant(self, task_id: str, new_parent: str) -> None:
        path = [new_parent]
        ancestor = new_parent
        while ancestor is not None:
            if ancestor == task_id:
                raise CycleDetected(list(reversed(path)))
            ancestor = self.tasks[ancestor].parent_id
            if ancestor is not None:
                path.append(ancestor)

    # ── Status transitions ───────────────────────────────────────────────

    def complete(self, task_id: str) -> MutationSet:
        """
        Complete a task if none of its direct blockers is outstanding.

        Raises BlockedByDependencies (with the unmet blocker ids and titles)
        otherwise, and InvalidTransition for a cancelled task.
        """
        task = self.get(task_id)
        if task.status == TaskStatus.COMPLETED:
            return MutationSet()
        if task.status == TaskStatus.CANCELLED:
            raise InvalidTransition(task_id, task.status, TaskStatus.COMPLETED)

        unmet = self.graph.unmet_blockers(task_id, self.status_of)
        if unmet:
            titles = [self.tasks[b].title if b in self.tasks else b for b in unmet]
            logger.warning("Task %s blocked by %s", task_id, unmet)
            self.events.emit(ev.COMPLETION_BLOCKED, task_id=task_id, blocker_ids=unmet, auto=False)
            raise BlockedByDependencies(task_id, unmet, titles)

        mutations = MutationSet()
        self._set_state(task, TaskStatus.COMPLETED, 100, mutations)
        logger.info("Task %s completed", task_id)
        self.events.emit(ev.TASK_COMPLETED, task_id=task_id, auto=False)
        self._rollup(task.parent_id, mutations)
        return mutations

    def reopen(self, task_id: str) -> MutationSet:
        """completed -> pending ("unmark as complete"); no dependency re-check."""
        task = self.get(task_id)
        if task.status != TaskStatus.COMPLETED:
            raise InvalidTransition(task_id, task.status, TaskStatus.PENDING)
        mutations = MutationSet()
        self._set_state(task, TaskStatus.PENDING, self._open_progress(task), mutations)
        self.events.emit(ev.TASK_REOPENED, task_id=task_id, auto=False)
        self._rollup(task.parent_id, mutations)
        return mutations

    def cancel(self, task_id: str) -> MutationSet:
        """Any state -> cancelled. Cancelled tasks accept no further transitions."""
        task = self.get(task_id)
        if task.status == TaskStatus.CANCELLED:
            return MutationSet()
        mutations = MutationSet()
        self._set_state(task, TaskStatus.CANCELLED, min(task.progress, 99), mutations)
        logger.info("Task %s cancelled", task_id)
        self.events.emit(ev.TASK_CANCELLED, task_id=task_id)
        self._rollup(task.parent_id, mutations)
        return mutations

    def start(self, task_id: str) -> MutationSet:
        return self.set_status(task_id, TaskStatus.IN_PROGRESS)

    def hold(self, task_id: str) -> MutationSet:
        return self.set_status(task_id, TaskStatus.ON_HOLD)

    def set_status(self, task_id: str, status) -> MutationSet:
        """Route a status request through the matching transition."""
        if isinstance(status, str):
            status = TaskStatus.from_str(status)
        if status == TaskStatus.COMPLETED:
            return self.complete(task_id)
        if status == TaskStatus.CANCELLED:
            return self.cancel(task_id)

        task = self.get(task_id)
        if task.status == status:
            return MutationSet()
        if task.status == TaskStatus.CANCELLED:
            raise InvalidTransition(task_id, task.status, status)
        if task.status == TaskStatus.COMPLETED:
            if status == TaskStatus.PENDING:
                return self.reopen(task_id)
            raise InvalidTransition(task_id, task.status, status)

        mutations = MutationSet()
        self._set_state(task, status, task.progress, mutations)
        self._rollup(task.parent_id, mutations)
        return mutations

    def set_progress(self, task_id: str, value) -> MutationSet:
        """
        Set progress. Open tasks are clamped to [0, 99]; 100 is a completion
        request (dependency-gated). Lowering a completed task reopens it.
        """
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"Progress must be a number, got {value!r}")
        if not math.isfinite(value):
            raise ValueError(f"Progress must be finite, got {value!r}")
        value = int(round(value))
        task = self.get(task_id)
        if task.status == TaskStatus.CANCELLED:
            raise InvalidTransition(task_id, task.status, task.status)
        if value >= 100:
            return self.complete(task_id)

        value = max(0, value)
        mutations = MutationSet()
        if task.status == TaskStatus.COMPLETED:
            mutations.merge(self.reopen(task_id))
        if task.progress != value:
            self._set_state(task, task.status, value, mutations)
            self._rollup(task.parent_id, mutations)
        return mutations

    # ── Details & dependencies ───────────────────────────────────────────

    def update_details(self, task_id: str, **fields) -> MutationSet:
        task = self.get(task_id)
        changed = self._apply_details(task, fields)
        mutations = MutationSet()
        if changed:
            task.touch()
            changed["updated_at"] = task.updated_at.isoformat()
            mutations.update("task", task_id, **changed)
        return mutations

    def add_dependency(self, blocking_id: str, dependent_id: str) -> MutationSet:
        mutations = MutationSet()
        if self.graph.add_edge(blocking_id, dependent_id):
            edge = DependencyEdge(blocking_id, dependent_id)
            mutations.create("dependency", edge.key, **edge.to_dict())
        return mutations

    def remove_dependency(self, blocking_id: str, dependent_id: str) -> MutationSet:
        mutations = MutationSet()
        if self.graph.remove_edge(blocking_id, dependent_id):
            edge = DependencyEdge(blocking_id, dependent_id)
            mutations.delete("dependency", edge.key, **edge.to_dict())
        return mutations

    # ── Internals ────────────────────────────────────────────────────────

    def _apply_details(self, task: Task, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Validate and apply editable fields; returns the serialized changes."""
        unknown = set(fields) - set(DETAIL_FIELDS)
        if unknown:
            raise ValueError(f"Unknown task field(s): {', '.join(sorted(unknown))}")

        changed: Dict[str, Any] = {}
        for name, value in fields.items():
            if name == "title":
                if not value or not str(value).strip():
                    raise ValueError("Task title must not be empty")
                value = str(value).strip()
            elif name == "priority" and not isinstance(value, TaskPriority):
                value = TaskPriority.from_str(value or "medium")
            elif name == "category" and not isinstance(value, TaskCategory):
                value = TaskCategory.from_str(value or "other")
            elif name in ("start_date", "due_date"):
                value = parse_date(value)
            elif name in ("description", "notes"):
                value = value or ""

            if getattr(task, name) != value:
                setattr(task, name, value)
                if isinstance(value, Enum):
                    value = value.value
                elif isinstance(value, date):
                    value = value.isoformat()
                changed[name] = value
        return changed

    def _sync(self, mutations: MutationSet) -> None:
        """Mirror placement changes made by the container store onto Task objects."""
        for mutation in mutations.for_entity("task"):
            task = self.tasks.get(mutation.entity_id)
            if task is None or mutation.op == MutationOp.DELETE:
                continue
            for name in ("position", "list_id", "parent_id"):
                if name in mutation.fields:
                    setattr(task, name, mutation.fields[name])

    def _set_state(self, task: Task, status: TaskStatus, progress: int, mutations: MutationSet) -> None:
        fields = {}
        if task.status != status:
            task.status = status
            fields["status"] = status.value
        if task.progress != progress:
            task.progress = progress
            fields["progress"] = progress
        if fields:
            task.touch()
            fields["updated_at"] = task.updated_at.isoformat()
            mutations.update("task", task.id, **fields)

    def _open_progress(self, task: Task) -> int:
        """Progress for a task leaving `completed`: subtask mean (max 99) or 0."""
        children = self.subtasks(task.id)
        if not children:
            return 0
        return min(mean_progress(c.progress for c in children), 99)

    def _rollup(self, parent_id: Optional[str], mutations: MutationSet) -> None:
        """
        Recompute parent progress from direct subtasks; chains upward on change.
        A parent left without subtasks keeps its last status and progress.
        """
        if parent_id is None or parent_id not in self.tasks:
            return
        parent = self.tasks[parent_id]
        children = self.subtasks(parent_id)
        if not children:
            return

        mean = mean_progress(c.progress for c in children)
        all_done = all(c.status == TaskStatus.COMPLETED for c in children)
        before = (parent.status, parent.progress)

        if parent.status == TaskStatus.COMPLETED:
            if not all_done:
                self._set_state(parent, TaskStatus.PENDING, min(mean, 99), mutations)
                logger.info("Parent %s reopened by subtask change", parent_id)
                self.events.emit(ev.TASK_REOPENED, task_id=parent_id, auto=True)
        elif parent.status == TaskStatus.CANCELLED or not all_done:
            self._set_state(parent, parent.status, min(mean, 99), mutations)
        else:
            self.events.emit(ev.AUTO_COMPLETE_ATTEMPTED, task_id=parent_id)
            unmet = self.graph.unmet_blockers(parent_id, self.status_of)
            if unmet:
                self._set_state(parent, parent.status, 99, mutations)
                logger.warning("Auto-completion of %s blocked by %s", parent_id, unmet)
                self.events.emit(ev.COMPLETION_BLOCKED, task_id=parent_id, blocker_ids=unmet, auto=True)
            else:
                self._set_state(parent, TaskStatus.COMPLETED, 100, mutations)
                logger.info("Parent %s auto-completed", parent_id)
                self.events.emit(ev.TASK_COMPLETED, task_id=parent_id, auto=True)

        if (parent.status, parent.progress) != before:
            self._rollup(parent.parent_id, mutations)
