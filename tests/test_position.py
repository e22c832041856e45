"""
Tests for fractional positions: midpoints, open ends, exhaustion, rebalancing.
"""
import pytest

from planboard.errors import InvalidOrdering, PositionExhausted
from planboard.position import PositionIndex


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# position_between
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_empty_container_gets_spacing():
    assert PositionIndex().position_between(None, None) == 1024.0


def test_open_ends_step_by_spacing():
    index = PositionIndex()
    assert index.position_between(None, 1024.0) == 0.0
    assert index.position_between(1024.0, None) == 2048.0


def test_midpoint_between_neighbours():
    index = PositionIndex()
    assert index.position_between(1024.0, 2048.0) == 1536.0
    assert index.position_between(1.0, 2.0) == 1.5


@pytest.mark.parametrize("before,after", [(2.0, 1.0), (5.0, 5.0)])
def test_contradictory_neighbours_rejected(before, after):
    with pytest.raises(InvalidOrdering):
        PositionIndex().position_between(before, after)


def test_gap_below_floor_is_exhausted():
    index = PositionIndex(spacing=1.0, min_gap=0.5)
    with pytest.raises(PositionExhausted) as exc:
        index.position_between(1.0, 1.25)
    assert isinstance(exc.value, InvalidOrdering)
    assert "rebalance" in str(exc.value)


def test_repeated_inserts_eventually_exhaust():
    """Inserting at the same spot halves the gap each time until it runs out."""
    index = PositionIndex()
    before, after = 0.0, 1.0
    with pytest.raises(PositionExhausted):
        for _ in range(200):
            after = index.position_between(before, after)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Rebalancing
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_needs_rebalance():
    index = PositionIndex(min_gap=0.1)
    assert not index.needs_rebalance([1.0, 2.0, 3.0])
    assert not index.needs_rebalance([])
    assert index.needs_rebalance([1.0, 1.05, 3.0])
    assert index.needs_rebalance([1.0, 1.0])


def test_rebalance_is_evenly_spaced():
    positions = PositionIndex().rebalance([5.0, 5.25, 5.5])
    assert positions == [1024.0, 2048.0, 3072.0]
    gaps = {b - a for a, b in zip(positions, positions[1:])}
    assert gaps == {1024.0}
