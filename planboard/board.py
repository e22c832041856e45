"""
Board controller: turns board gestures into engine calls and mutation batches.

A drag on the Kanban board arrives as start / over / end (or cancel) events.
Only a completed drop produces a MutationSet; an aborted gesture, a drop
outside any target, or a drop onto itself is a no-op. The controller never
writes to the store: the caller persists what it returns.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple, Union

from . import events as ev
from .config import Config
from .containers import ContainerStore
from .dependencies import DependencyGraph
from .errors import ListNotEmpty, NotFound
from .events import EventBridge
from .lifecycle import TaskLifecycle
from .position import PositionIndex
from .schema import Board, DependencyEdge, MutationSet, Task, TaskList, make_id
from .suggestions import SuggestedTask

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CascadeDeleteTasks:
    """List deletion strategy: delete the list's tasks (and their subtasks)."""
    pass


@dataclass(frozen=True)
class MoveTasksTo:
    """List deletion strategy: append the list's tasks to another list."""
    list_id: str


DeleteStrategy = Union[CascadeDeleteTasks, MoveTasksTo]


@dataclass
class DragGesture:
    task_id: str
    over_id: Optional[str] = None
    cancelled: bool = False


@dataclass
class BoardSnapshot:
    board: Board
    lists: List[TaskList]
    tasks: List[Task]
    edges: List[DependencyEdge]


class BoardController:
    """In-memory projection of one board plus the operations the UI invokes."""

    def __init__(self, board: Board, config: Optional[Config] = None, events: Optional[EventBridge] = None):
        cfg = config or Config()
        index = PositionIndex(cfg.position_spacing, cfg.min_position_gap)
        self.board = board
        self.events = events or EventBridge()
        self.lists: Dict[str, TaskList] = {}
        self.list_order = ContainerStore("list", ("board_id",), index)
        self.list_order.add_container(board.id)
        self.lifecycle = TaskLifecycle(
            graph=DependencyGraph(cancelled_blocks=cfg.cancelled_blocks),
            events=self.events,
            index=index,
        )
        self._active: Optional[DragGesture] = None

    @classmethod
    def from_snapshot(
        cls,
        board: Board,
        lists: Iterable[TaskList],
        tasks: Iterable[Task],
        edges: Iterable[DependencyEdge] = (),
        config: Optional[Config] = None,
        events: Optional[EventBridge] = None,
    ) -> "BoardController":
        """Build the projection from rows fetched from the store."""
        controller = cls(board, config=config, events=events)
        lists = list(lists)
        for task_list in lists:
            controller.lists[task_list.id] = task_list
            controller.lifecycle.containers.add_container((task_list.id, None))
        controller.list_order.load(board.id, [(l.id, l.position) for l in lists])
        controller.lifecycle.load(tasks, edges)
        board.list_ids = controller.list_order.ordered(board.id)
        return controller

    def snapshot(self) -> BoardSnapshot:
        return BoardSnapshot(
            board=self.board,
            lists=self.ordered_lists(),
            tasks=sorted(self.lifecycle.tasks.values(), key=lambda t: (t.list_id or "", t.parent_id or "", t.position)),
            edges=self.lifecycle.graph.edges(),
        )

    # ── Queries ──────────────────────────────────────────────────────────

    def get_list(self, list_id: str) -> TaskList:
        try:
            return self.lists[list_id]
        except KeyError:
            raise NotFound("list", list_id)

    def ordered_lists(self) -> List[TaskList]:
        return [self.lists[l] for l in self.list_order.ordered(self.board.id)]

    def tasks_in_list(self, list_id: str) -> List[Task]:
        self.get_list(list_id)
        return self.lifecycle.tasks_in(list_id)

    def blocked_by_titles(self, task_id: str) -> List[str]:
        """Titles of outstanding blockers, for a "Blocked by: ..." message."""
        return self.lifecycle.blocked_titles(task_id)

    # ── Drag and drop ────────────────────────────────────────────────────

    def on_drag_start(self, task_id: str) -> Optional[DragGesture]:
        if task_id not in self.lifecycle.tasks:
            self._active = None
            return None
        self._active = DragGesture(task_id)
        return self._active

    def on_drag_over(self, over_id: Optional[str]) -> None:
        """Hover feedback only; nothing moves until the drop."""
        if self._active is not None and not self._active.cancelled:
            self._active.over_id = over_id

    def on_drag_cancel(self) -> MutationSet:
        """Escape / pointer lost: the gesture yields nothing."""
        if self._active is not None:
            self._active.cancelled = True
            logger.debug("Drag of %s cancelled", self._active.task_id)
        return MutationSet()

    def on_drag_end(self, dragged_task_id: str, target_id: Optional[str] = None,
                    target_index: Optional[int] = None) -> MutationSet:
        """
        Resolve a drop into a move.

        target_id may be a list (drop into the column; `target_index` or the
        end of the list) or a task (take that task's current rank in its
        list). Anything else, including a cancelled gesture, is a no-op.
        """
        gesture, self._active = self._active, None
        if gesture is not None and gesture.task_id == dragged_task_id and gesture.cancelled:
            return MutationSet()
        if target_id is None or dragged_task_id not in self.lifecycle.tasks:
            return MutationSet()

        if target_id in self.lists:
            # None appends after the list's last card
            return self.move_task(dragged_task_id, target_id, target_index)

        over = self.lifecycle.tasks.get(target_id)
        if over is None or over.id == dragged_task_id or over.list_id not in self.lists:
            return MutationSet()
        rank = self.lifecycle.containers.index_of(over.id)
        return self.move_task(dragged_task_id, over.list_id, rank)

    def move_task(self, task_id: str, list_id: str, index: Optional[int] = None) -> MutationSet:
        """Place a task as a top-level card of `list_id` at `index`."""
        self.get_list(list_id)
        return self.lifecycle.move_task(task_id, list_id, index, parent_id=None)

    # ── Lists ────────────────────────────────────────────────────────────

    def add_list(self, name: str, index: Optional[int] = None,
                 list_id: Optional[str] = None) -> Tuple[TaskList, MutationSet]:
        if not name or not name.strip():
            raise ValueError("List name must not be empty")
        task_list = TaskList(id=list_id or make_id("list"), board_id=self.board.id, name=name.strip())
        if task_list.id in self.lists:
            raise ValueError(f"List {task_list.id} already exists")

        mutations = self.list_order.insert_item(task_list.id, self.board.id, index)
        self.lists[task_list.id] = task_list
        self._sync_lists(mutations)
        mutations.create("list", task_list.id, **task_list.to_dict())
        self.lifecycle.containers.add_container((task_list.id, None))
        return task_list, mutations

    def rename_list(self, list_id: str, name: str) -> MutationSet:
        task_list = self.get_list(list_id)
        if not name or not name.strip():
            raise ValueError("List name must not be empty")
        if task_list.name == name.strip():
            return MutationSet()
        task_list.name = name.strip()
        return MutationSet().update("list", list_id, name=task_list.name)

    def move_list(self, list_id: str, index: int) -> MutationSet:
        self.get_list(list_id)
        mutations = self.list_order.move_item(list_id, self.board.id, index)
        self._sync_lists(mutations)
        return mutations

    def delete_list(self, list_id: str, strategy: Optional[DeleteStrategy] = None) -> MutationSet:
        """
        Delete a list. A list holding tasks needs a strategy:
        CascadeDeleteTasks() or MoveTasksTo(other_list_id); without one
        ListNotEmpty is raised and nothing changes.
        """
        self.get_list(list_id)
        keys = [k for k in self.lifecycle.containers.containers() if k[0] == list_id]
        task_ids = [t for k in keys for t in self.lifecycle.containers.ordered(k)]

        if task_ids and strategy is None:
            raise ListNotEmpty(list_id, len(task_ids))

        mutations = MutationSet()
        if isinstance(strategy, MoveTasksTo):
            if strategy.list_id == list_id:
                raise ValueError("Cannot move tasks into the list being deleted")
            self.get_list(strategy.list_id)
            for task_id in task_ids:
                task = self.lifecycle.tasks[task_id]
                mutations.merge(self.lifecycle.move_task(task_id, strategy.list_id, None, parent_id=task.parent_id))
        elif isinstance(strategy, CascadeDeleteTasks):
            for task_id in task_ids:
                if task_id in self.lifecycle.tasks:  # may have gone with its parent
                    mutations.merge(self.lifecycle.delete_task(task_id))
        elif strategy is not None:
            raise ValueError(f"Unknown list deletion strategy: {strategy!r}")

        for key in keys:
            self.lifecycle.containers.drop_container(key)
        mutations.merge(self.list_order.remove_item(list_id))
        del self.lists[list_id]
        self.board.list_ids = self.list_order.ordered(self.board.id)

        logger.info("Deleted list %s (%d task(s), strategy=%r)", list_id, len(task_ids), strategy)
        self.events.emit(ev.LIST_DELETED, list_id=list_id, task_count=len(task_ids))
        return mutations

    def rename_board(self, name: str) -> MutationSet:
        if not name or not name.strip():
            raise ValueError("Board name must not be empty")
        self.board.name = name.strip()
        return MutationSet().update("board", self.board.id, name=self.board.name)

    # ── Tasks ────────────────────────────────────────────────────────────

    def add_task(self, list_id: str, title: str, index: Optional[int] = None, **fields) -> Tuple[Task, MutationSet]:
        self.get_list(list_id)
        return self.lifecycle.create_task(title, list_id=list_id, index=index, **fields)

    def add_subtask(self, parent_id: str, title: str, index: Optional[int] = None, **fields) -> Tuple[Task, MutationSet]:
        return self.lifecycle.create_task(title, parent_id=parent_id, index=index, **fields)

    def complete_task(self, task_id: str) -> MutationSet:
        return self.lifecycle.complete(task_id)

    def delete_task(self, task_id: str) -> MutationSet:
        return self.lifecycle.delete_task(task_id)

    def add_dependency(self, blocking_id: str, dependent_id: str) -> MutationSet:
        return self.lifecycle.add_dependency(blocking_id, dependent_id)

    def remove_dependency(self, blocking_id: str, dependent_id: str) -> MutationSet:
        return self.lifecycle.remove_dependency(blocking_id, dependent_id)

    def import_suggestions(self, list_id: Optional[str], suggestions: Iterable[SuggestedTask],
                           plan_id: Optional[str] = None) -> Tuple[List[Task], MutationSet]:
        """Create AI-suggested tasks (and their subtasks) like any other task."""
        if list_id is not None:
            self.get_list(list_id)
        created: List[Task] = []
        mutations = MutationSet()
        for suggestion in suggestions:
            task, m = self.lifecycle.create_task(
                suggestion.title, list_id=list_id, plan_id=plan_id, **suggestion.task_fields()
            )
            created.append(task)
            mutations.merge(m)
            for title, description in suggestion.subtasks:
                sub, m = self.lifecycle.create_task(title, parent_id=task.id, plan_id=plan_id, description=description)
                created.append(sub)
                mutations.merge(m)
        logger.info("Imported %d suggested task(s) into %s", len(created), list_id or "plan")
        return created, mutations

    # ── Maintenance ──────────────────────────────────────────────────────

    def rebalance_stale(self) -> MutationSet:
        """Background sweep: respace lists and task sets that hit the precision floor."""
        mutations = MutationSet()
        if self.board.id in self.list_order.stale_containers():
            mutations.merge(self.list_order.rebalance(self.board.id))
            self._sync_lists(mutations)
        mutations.merge(self.lifecycle.rebalance_stale())
        return mutations

    def _sync_lists(self, mutations: MutationSet) -> None:
        for mutation in mutations.for_entity("list"):
            task_list = self.lists.get(mutation.entity_id)
            if task_list is not None and "position" in mutation.fields:
                task_list.position = mutation.fields["position"]
        self.board.list_ids = self.list_order.ordered(self.board.id)
