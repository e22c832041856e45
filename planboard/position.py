# planboard — fractional position index
#
# Sibling items (tasks in a list, lists in a board) carry a float position.
# Inserting or moving an item takes the midpoint of its new neighbors, so a
# drag rewrites one row instead of renumbering the whole column.
#
# When repeated inserts between the same two neighbors shrink the gap to the
# float precision floor, the container is rebalanced: every sibling gets an
# evenly spaced position again. That is the only O(n) step, and it runs
# lazily (on exhaustion) or from a background sweep.

from typing import Optional, Sequence, List

from .errors import InvalidOrdering, PositionExhausted

DEFAULT_SPACING = 1024.0
DEFAULT_MIN_GAP = 1e-9


class PositionIndex:
    """Computes sibling positions without touching the siblings."""

    def __init__(self, spacing: float = DEFAULT_SPACING, min_gap: float = DEFAULT_MIN_GAP):
        self.spacing = spacing
        self.min_gap = min_gap

    def position_between(self, before: Optional[float], after: Optional[float]) -> float:
        """
        Return a position strictly between `before` and `after`.

        A missing bound counts as -inf / +inf. Raises InvalidOrdering when
        before >= after, PositionExhausted when no float fits in between.
        """
        if before is None and after is None:
            return self.spacing
        if before is None:
            return after - self.spacing
        if after is None:
            return before + self.spacing

        if before >= after:
            raise InvalidOrdering(before, after)

        mid = before + (after - before) / 2
        if not before < mid < after or (after - before) < self.min_gap:
            raise PositionExhausted(before, after)
        return mid

    def needs_rebalance(self, sequence: Sequence[float]) -> bool:
        """True if positions are not strictly increasing or any gap is too small."""
        for prev, cur in zip(sequence, sequence[1:]):
            if cur - prev < self.min_gap:
                return True
        return False

    def rebalance(self, sequence: Sequence[float]) -> List[float]:
        """Evenly spaced replacement positions for a whole sibling set, same order."""
        return [self.spacing * (i + 1) for i in range(len(sequence))]
