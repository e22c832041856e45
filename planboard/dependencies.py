"""
Dependency graph: "blocked-by" edges between the tasks of one board.

Edges point from the blocking task to the dependent task (A -> B: A blocks B).
Nodes are task ids, never task objects; adjacency is kept in both directions
so removal and reachability are plain dictionary operations.

Blocking is direct-predecessor only: a task is unblocked as soon as each of
its immediate blockers is completed.
"""
import logging
from collections import deque
from typing import Callable, Dict, Iterable, List, Optional

from .errors import CycleDetected, NotFound, SelfDependency
from .schema import DependencyEdge, TaskStatus

logger = logging.getLogger(__name__)

StatusLookup = Callable[[str], Optional[TaskStatus]]


class DependencyGraph:
    """Acyclic blocked-by graph over task ids."""

    def __init__(self, cancelled_blocks: bool = True):
        """
        Args:
            cancelled_blocks: whether a cancelled blocker still blocks its
                dependents (True keeps the conservative behavior)
        """
        self.cancelled_blocks = cancelled_blocks
        # dict-as-ordered-set: insertion order is reporting order
        self._blockers: Dict[str, Dict[str, None]] = {}    # dependent -> blocking ids
        self._dependents: Dict[str, Dict[str, None]] = {}  # blocking -> dependent ids

    # ── Nodes ────────────────────────────────────────────────────────────

    def add_task(self, task_id: str) -> None:
        self._blockers.setdefault(task_id, {})
        self._dependents.setdefault(task_id, {})

    def has_task(self, task_id: str) -> bool:
        return task_id in self._blockers

    def remove_task(self, task_id: str) -> List[DependencyEdge]:
        """Remove a task and every edge touching it. Returns the removed edges."""
        if task_id not in self._blockers:
            return []
        removed = [DependencyEdge(b, task_id) for b in self._blockers[task_id]]
        removed += [DependencyEdge(task_id, d) for d in self._dependents[task_id]]
        for blocking in self._blockers.pop(task_id):
            self._dependents[blocking].pop(task_id, None)
        for dependent in self._dependents.pop(task_id):
            self._blockers[dependent].pop(task_id, None)
        if removed:
            logger.debug("Removed %d edge(s) with task %s", len(removed), task_id)
        return removed

    # ── Edges ────────────────────────────────────────────────────────────

    def add_edge(self, blocking_id: str, dependent_id: str) -> bool:
        """
        Add blocking_id -> dependent_id.

        Returns False if the edge already exists. Raises SelfDependency,
        NotFound (endpoint outside this board) or CycleDetected; the graph is
        unchanged when it raises.
        """
        if blocking_id == dependent_id:
            raise SelfDependency(blocking_id)
        for task_id in (blocking_id, dependent_id):
            if task_id not in self._blockers:
                raise NotFound("task", task_id)
        if blocking_id in self._blockers[dependent_id]:
            return False

        path = self._find_path(dependent_id, blocking_id)
        if path is not None:
            cycle = path + [dependent_id]
            logger.warning("Rejected dependency %s -> %s: cycle %s", blocking_id, dependent_id, cycle)
            raise CycleDetected(cycle)

        self._blockers[dependent_id][blocking_id] = None
        self._dependents[blocking_id][dependent_id] = None
        return True

    def remove_edge(self, blocking_id: str, dependent_id: str) -> bool:
        """Remove an edge. Missing edges are a no-op (returns False)."""
        blockers = self._blockers.get(dependent_id)
        if not blockers or blocking_id not in blockers:
            return False
        del blockers[blocking_id]
        self._dependents[blocking_id].pop(dependent_id, None)
        return True

    def has_edge(self, blocking_id: str, dependent_id: str) -> bool:
        return blocking_id in self._blockers.get(dependent_id, {})

    def edges(self) -> List[DependencyEdge]:
        return [
            DependencyEdge(blocking, dependent)
            for dependent, blockers in self._blockers.items()
            for blocking in blockers
        ]

    def blockers_of(self, task_id: str) -> List[str]:
        return list(self._blockers.get(task_id, {}))

    def dependents_of(self, task_id: str) -> List[str]:
        return list(self._dependents.get(task_id, {}))

    # ── Blocking queries ─────────────────────────────────────────────────

    def unmet_blockers(self, task_id: str, status_lookup: StatusLookup) -> List[str]:
        """Direct blockers of task_id that do not count as satisfied."""
        unmet = []
        for blocking_id in self._blockers.get(task_id, {}):
            status = status_lookup(blocking_id)
            if status == TaskStatus.COMPLETED:
                continue
            if status == TaskStatus.CANCELLED and not self.cancelled_blocks:
                continue
            unmet.append(blocking_id)
        return unmet

    def is_blocked(self, task_id: str, status_lookup: StatusLookup) -> bool:
        return bool(self.unmet_blockers(task_id, status_lookup))

    # ── Graph-wide ───────────────────────────────────────────────────────

    def has_cycle(self) -> bool:
        return len(self.topological_order()) != len(self._blockers)

    def topological_order(self, tiebreak: Optional[Iterable[str]] = None) -> List[str]:
        """
        Blockers before dependents (Kahn's algorithm).

        `tiebreak` gives the preferred order among ready tasks (e.g. display
        order); tasks missing from it follow in insertion order. Tasks on a
        cycle are omitted, which has_cycle() relies on.
        """
        rank = {}
        for i, task_id in enumerate(tiebreak or []):
            rank.setdefault(task_id, i)
        fallback = len(rank)
        order_key = {t: rank.get(t, fallback + i) for i, t in enumerate(self._blockers)}

        indegree = {t: len(b) for t, b in self._blockers.items()}
        ready = sorted((t for t, n in indegree.items() if n == 0), key=order_key.__getitem__)
        result = []
        while ready:
            task_id = ready.pop(0)
            result.append(task_id)
            released = []
            for dependent in self._dependents[task_id]:
                indegree[dependent] -= 1
                if indegree[dependent] == 0:
                    released.append(dependent)
            if released:
                ready = sorted(ready + released, key=order_key.__getitem__)
        return result

    def _find_path(self, start: str, goal: str) -> Optional[List[str]]:
        """BFS along blocks-edges from start; the path to goal, or None."""
        parents: Dict[str, Optional[str]] = {start: None}
        queue = deque([start])
        while queue:
            node = queue.popleft()
            if node == goal:
                path = []
                while node is not None:
                    path.append(node)
                    node = parents[node]
                return list(reversed(path))
            for nxt in self._dependents.get(node, {}):
                if nxt not in parents:
                    parents[nxt] = node
                    queue.append(nxt)
        return None
