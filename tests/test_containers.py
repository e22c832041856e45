"""
Tests for ContainerStore: ordered inserts, moves across containers,
lazy rebalancing, and the mutation batches they produce.
"""
import pytest

from planboard.containers import ContainerStore
from planboard.errors import InvariantViolation, NotFound
from planboard.position import PositionIndex
from planboard.schema import MutationOp


def _store(*containers, index=None):
    store = ContainerStore("task", ("list_id",), index)
    for c in containers:
        store.add_container(c)
    return store


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Inserts
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_insert_appends_by_default():
    store = _store("doing")
    for item in ("a", "b", "c"):
        store.insert_item(item, "doing")
    assert store.ordered("doing") == ["a", "b", "c"]
    assert [p for _, p in store.positions("doing")] == [1024.0, 2048.0, 3072.0]


def test_insert_at_front_and_middle():
    store = _store("doing")
    store.insert_item("a", "doing")
    store.insert_item("b", "doing")
    store.insert_item("front", "doing", 0)
    store.insert_item("mid", "doing", 2)
    assert store.ordered("doing") == ["front", "a", "mid", "b"]
    assert store.position_of("mid") == 1536.0


def test_insert_returns_position_and_container_fields():
    store = _store("doing")
    mutations = store.insert_item("a", "doing")
    m = mutations.get("task", "a")
    assert m.op == MutationOp.UPDATE
    assert m.fields == {"position": 1024.0, "list_id": "doing"}


def test_insert_twice_rejected():
    store = _store("doing")
    store.insert_item("a", "doing")
    with pytest.raises(ValueError):
        store.insert_item("a", "doing")


def test_tuple_container_keys_map_to_fields():
    store = ContainerStore("task", ("list_id", "parent_id"))
    mutations = store.insert_item("sub", (None, "parent"))
    assert mutations.get("task", "sub").fields == {"position": 1024.0, "list_id": None, "parent_id": "parent"}


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Moves
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_q3_launch_scenario():
    """Backlog empty, Doing [T1, T2]; both moved to the front of Backlog."""
    store = _store("backlog")
    store.load("doing", [("T1", 1.0), ("T2", 2.0)])

    store.move_item("T1", "backlog", 0)
    assert store.ordered("doing") == ["T2"]
    assert store.ordered("backlog") == ["T1"]

    store.move_item("T2", "backlog", 0)
    assert store.ordered("doing") == []
    assert store.ordered("backlog") == ["T2", "T1"]
    store.check_invariants()


def test_move_within_container_touches_one_row():
    store = _store("doing")
    for item in ("a", "b", "c"):
        store.insert_item(item, "doing")
    mutations = store.move_item("c", "doing", 0)
    assert store.ordered("doing") == ["c", "a", "b"]
    assert len(mutations) == 1
    assert mutations.get("task", "c").fields["position"] == 0.0


def test_move_down_lands_at_requested_index():
    store = _store("doing")
    for item in ("a", "b", "c"):
        store.insert_item(item, "doing")
    store.move_item("a", "doing", 2)
    assert store.ordered("doing") == ["b", "c", "a"]


def test_move_to_same_slot_is_noop():
    store = _store("doing")
    store.insert_item("a", "doing")
    store.insert_item("b", "doing")
    assert not store.move_item("b", "doing", 1)
    assert not store.move_item("b", "doing", None)


def test_move_index_is_clamped():
    store = _store("todo", "done")
    store.insert_item("a", "todo")
    store.insert_item("b", "done")
    mutations = store.move_item("a", "done", 99)
    assert store.ordered("done") == ["b", "a"]
    assert mutations.get("task", "a").fields["list_id"] == "done"
    store.move_item("a", "done", -5)
    assert store.ordered("done") == ["a", "b"]


def test_move_unknown_item():
    store = _store("todo")
    with pytest.raises(NotFound):
        store.move_item("ghost", "todo", 0)


def test_order_is_always_a_permutation():
    store = _store("x", "y")
    items = [f"t{i}" for i in range(8)]
    for item in items:
        store.insert_item(item, "x")
    moves = [("t3", "y", 0), ("t0", "x", 5), ("t7", "y", 1), ("t3", "x", 0), ("t5", "y", 0), ("t1", "x", 99)]
    for item, target, idx in moves:
        store.move_item(item, target, idx)
        store.check_invariants()
    assert sorted(store.ordered("x") + store.ordered("y")) == sorted(items)
    assert store.ordered("y") == ["t5", "t7"]
    assert store.ordered("x")[0] == "t3"
    assert store.ordered("x")[-1] == "t1"


def test_remove_item_emits_delete():
    store = _store("doing")
    store.insert_item("a", "doing")
    mutations = store.remove_item("a")
    assert mutations.get("task", "a").op == MutationOp.DELETE
    assert "a" not in store
    assert store.ordered("doing") == []


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Rebalancing
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_exhausted_gap_rebalances_then_inserts():
    store = _store("doing", index=PositionIndex(spacing=1.0, min_gap=0.3))
    store.load("doing", [("a", 1.0), ("b", 2.0)])
    store.insert_item("x", "doing", 1)   # 1.5
    store.insert_item("y", "doing", 1)   # 1.25
    mutations = store.insert_item("z", "doing", 1)

    assert store.ordered("doing") == ["a", "z", "y", "x", "b"]
    # siblings were respaced to 1, 2, 3, 4 and z took the midpoint of a and y
    assert store.position_of("z") == 1.5
    assert {m.entity_id for m in mutations} == {"y", "x", "b", "z"}
    store.check_invariants()


def test_colliding_loaded_positions_are_repaired():
    store = _store()
    store.load("doing", [("a", 5.0), ("b", 5.0)])
    store.insert_item("x", "doing", 1)
    assert store.ordered("doing") == ["a", "x", "b"]
    store.check_invariants()


def test_rebalance_and_stale_containers():
    store = _store(index=PositionIndex(min_gap=0.01))
    store.load("crowded", [("a", 1.0), ("b", 1.001), ("c", 1.002)])
    store.load("fine", [("d", 1.0), ("e", 2.0)])
    assert store.stale_containers() == ["crowded"]

    mutations = store.rebalance("crowded")
    assert [p for _, p in store.positions("crowded")] == [1024.0, 2048.0, 3072.0]
    assert len(mutations) == 3
    assert store.stale_containers() == []


def test_check_invariants_detects_duplicates():
    store = _store()
    store.load("doing", [("a", 1.0), ("b", 1.0)])
    with pytest.raises(InvariantViolation):
        store.check_invariants()


def test_drop_container_requires_empty():
    store = _store("doing")
    store.insert_item("a", "doing")
    with pytest.raises(ValueError):
        store.drop_container("doing")
    store.remove_item("a")
    store.drop_container("doing")
    assert not store.has_container("doing")
