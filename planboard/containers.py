"""
Container store: authoritative in-memory ordering of items inside containers.

A container is any hashable key (a board id for lists, a (list_id, parent_id)
pair for tasks). Each container maps item id -> position; iteration order is
ascending position. The store is a pure projection of the external database:
every operation returns a MutationSet for the caller to persist and never
performs I/O itself.
"""
import logging
from typing import Dict, Hashable, Iterable, List, Optional, Sequence, Tuple

from .errors import InvalidOrdering, InvariantViolation, NotFound
from .position import PositionIndex
from .schema import MutationSet

logger = logging.getLogger(__name__)


class ContainerStore:
    """Ordered containers of item ids with cross-container moves."""

    def __init__(
        self,
        entity: str,
        key_fields: Sequence[str],
        index: Optional[PositionIndex] = None,
    ):
        """
        Args:
            entity: MutationSet entity name for items ("task", "list")
            key_fields: row fields a container key maps to, e.g. ("board_id",)
                or ("list_id", "parent_id") for tuple keys
            index: position calculator (default spacing when omitted)
        """
        self.entity = entity
        self.key_fields = tuple(key_fields)
        self.index = index or PositionIndex()
        self._containers: Dict[Hashable, Dict[str, float]] = {}
        self._item_container: Dict[str, Hashable] = {}

    # ── Queries ──────────────────────────────────────────────────────────

    def __contains__(self, item_id: str) -> bool:
        return item_id in self._item_container

    def __len__(self) -> int:
        return len(self._item_container)

    def containers(self) -> List[Hashable]:
        return list(self._containers)

    def has_container(self, container: Hashable) -> bool:
        return container in self._containers

    def ordered(self, container: Hashable) -> List[str]:
        """Item ids of a container by ascending position (id breaks ties)."""
        positions = self._containers.get(container, {})
        return sorted(positions, key=lambda item_id: (positions[item_id], item_id))

    def positions(self, container: Hashable) -> List[Tuple[str, float]]:
        positions = self._containers.get(container, {})
        return [(item_id, positions[item_id]) for item_id in self.ordered(container)]

    def container_of(self, item_id: str) -> Hashable:
        try:
            return self._item_container[item_id]
        except KeyError:
            raise NotFound(self.entity, item_id)

    def position_of(self, item_id: str) -> float:
        return self._containers[self.container_of(item_id)][item_id]

    def index_of(self, item_id: str) -> int:
        return self.ordered(self.container_of(item_id)).index(item_id)

    def fields_for(self, container: Hashable) -> Dict[str, object]:
        """Row fields that place an item in `container`."""
        if len(self.key_fields) == 1:
            return {self.key_fields[0]: container}
        return dict(zip(self.key_fields, container))

    # ── Container management ─────────────────────────────────────────────

    def add_container(self, container: Hashable) -> None:
        self._containers.setdefault(container, {})

    def drop_container(self, container: Hashable) -> None:
        """Forget an empty container. Non-empty containers must be emptied first."""
        items = self._containers.get(container)
        if items:
            raise ValueError(f"Container {container!r} still holds {len(items)} item(s)")
        self._containers.pop(container, None)

    def load(self, container: Hashable, items: Iterable[Tuple[str, float]]) -> None:
        """Replace a container's contents with rows fetched from the store."""
        for item_id in list(self._containers.get(container, {})):
            del self._item_container[item_id]
        positions: Dict[str, float] = {}
        for item_id, position in items:
            previous = self._item_container.get(item_id)
            if previous is not None and previous != container:
                del self._containers[previous][item_id]
            positions[item_id] = float(position)
            self._item_container[item_id] = container
        self._containers[container] = positions

    # ── Mutations ────────────────────────────────────────────────────────

    def insert_item(self, item_id: str, container: Hashable, target_index: Optional[int] = None) -> MutationSet:
        """Place a new item at `target_index` (None appends)."""
        if item_id in self._item_container:
            raise ValueError(f"{self.entity} {item_id} is already placed")
        mutations = MutationSet()
        siblings = self.ordered(container)
        idx = self._clamp(target_index, len(siblings))
        position = self._position_at(container, siblings, idx, mutations)
        self._containers.setdefault(container, {})[item_id] = position
        self._item_container[item_id] = container
        mutations.update(self.entity, item_id, position=position, **self.fields_for(container))
        logger.debug("Inserted %s %s into %r at %d (position %r)", self.entity, item_id, container, idx, position)
        return mutations

    def move_item(self, item_id: str, target_container: Hashable, target_index: Optional[int] = None) -> MutationSet:
        """
        Move an item to `target_index` of `target_container` (same or other).

        The index is interpreted after the item is lifted out, so moving an
        item within its own container to index i leaves it at index i.
        Out-of-range indexes are clamped.
        """
        source = self.container_of(item_id)
        siblings = [i for i in self.ordered(target_container) if i != item_id]
        idx = self._clamp(target_index, len(siblings))

        if source == target_container and self.ordered(source).index(item_id) == idx:
            return MutationSet()

        mutations = MutationSet()
        position = self._position_at(target_container, siblings, idx, mutations)
        del self._containers[source][item_id]
        self._containers.setdefault(target_container, {})[item_id] = position
        self._item_container[item_id] = target_container
        mutations.update(self.entity, item_id, position=position, **self.fields_for(target_container))
        logger.debug(
            "Moved %s %s from %r to %r at %d (position %r)",
            self.entity, item_id, source, target_container, idx, position,
        )
        return mutations

    def remove_item(self, item_id: str) -> MutationSet:
        container = self.container_of(item_id)
        del self._containers[container][item_id]
        del self._item_container[item_id]
        return MutationSet().delete(self.entity, item_id)

    def forget(self, item_id: str) -> None:
        """Drop an item from the projection without emitting a mutation."""
        container = self._item_container.pop(item_id, None)
        if container is not None:
            self._containers[container].pop(item_id, None)

    def rebalance(self, container: Hashable) -> MutationSet:
        """Reassign evenly spaced positions to every item of a container."""
        return self._rebalance_items(container, self.ordered(container))

    def stale_containers(self) -> List[Hashable]:
        """Containers whose gaps hit the precision floor (for a background sweep)."""
        stale = []
        for container in self._containers:
            sequence = [pos for _, pos in self.positions(container)]
            if self.index.needs_rebalance(sequence):
                stale.append(container)
        return stale

    def check_invariants(self) -> None:
        """Raise InvariantViolation if the projection is inconsistent."""
        seen = set()
        for container, positions in self._containers.items():
            for item_id in positions:
                if item_id in seen:
                    raise InvariantViolation(f"{self.entity} {item_id} appears in more than one container")
                seen.add(item_id)
                if self._item_container.get(item_id) != container:
                    raise InvariantViolation(f"{self.entity} {item_id} index points at the wrong container")
            ordered = [pos for _, pos in self.positions(container)]
            for prev, cur in zip(ordered, ordered[1:]):
                if cur <= prev:
                    raise InvariantViolation(f"Duplicate position {cur!r} in container {container!r}")
        if seen != set(self._item_container):
            raise InvariantViolation(f"{self.entity} index references items missing from containers")

    # ── Internals ────────────────────────────────────────────────────────

    @staticmethod
    def _clamp(target_index: Optional[int], size: int) -> int:
        if target_index is None:
            return size
        return max(0, min(int(target_index), size))

    def _position_at(self, container: Hashable, siblings: List[str], idx: int, mutations: MutationSet) -> float:
        """Position for slot `idx` among `siblings`, rebalancing once if the gap is gone."""
        try:
            return self._neighbors_midpoint(container, siblings, idx)
        except InvalidOrdering as e:
            # Precision floor reached, or colliding positions loaded from the store
            logger.debug("Rebalancing %r: %s", container, e)
            mutations.merge(self._rebalance_items(container, siblings))
            return self._neighbors_midpoint(container, siblings, idx)

    def _neighbors_midpoint(self, container: Hashable, siblings: List[str], idx: int) -> float:
        positions = self._containers.get(container, {})
        before = positions[siblings[idx - 1]] if idx > 0 else None
        after = positions[siblings[idx]] if idx < len(siblings) else None
        return self.index.position_between(before, after)

    def _rebalance_items(self, container: Hashable, order: List[str]) -> MutationSet:
        positions = self._containers.setdefault(container, {})
        new_positions = self.index.rebalance([positions[i] for i in order])
        mutations = MutationSet()
        for item_id, position in zip(order, new_positions):
            if positions[item_id] != position:
                positions[item_id] = position
                mutations.update(self.entity, item_id, position=position)
        logger.debug("Rebalanced %d %s(s) in %r", len(order), self.entity, container)
        return mutations
