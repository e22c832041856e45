"""
Tests for the blocked-by graph: edge validation, cycle rejection,
blocking queries and ordering.
"""
import pytest

from planboard.dependencies import DependencyGraph
from planboard.errors import CycleDetected, NotFound, SelfDependency
from planboard.schema import DependencyEdge, TaskStatus


def _graph(*task_ids, **kwargs):
    graph = DependencyGraph(**kwargs)
    for task_id in task_ids:
        graph.add_task(task_id)
    return graph


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Edges
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_add_edge_and_query():
    graph = _graph("A", "B", "C")
    assert graph.add_edge("A", "B")
    assert graph.add_edge("A", "C")
    assert graph.has_edge("A", "B")
    assert not graph.has_edge("B", "A")
    assert graph.blockers_of("B") == ["A"]
    assert graph.dependents_of("A") == ["B", "C"]


def test_duplicate_edge_returns_false():
    graph = _graph("A", "B")
    assert graph.add_edge("A", "B")
    assert not graph.add_edge("A", "B")
    assert graph.edges() == [DependencyEdge("A", "B")]


def test_self_dependency_rejected():
    graph = _graph("A")
    with pytest.raises(SelfDependency):
        graph.add_edge("A", "A")


def test_unknown_endpoint_rejected():
    graph = _graph("A")
    with pytest.raises(NotFound):
        graph.add_edge("A", "elsewhere")


def test_cycle_rejected_with_path_and_graph_unchanged():
    graph = _graph("A", "B", "C")
    graph.add_edge("A", "B")
    graph.add_edge("B", "C")
    before = graph.edges()

    with pytest.raises(CycleDetected) as exc:
        graph.add_edge("C", "A")
    assert exc.value.path == ["A", "B", "C", "A"]
    assert graph.edges() == before
    assert not graph.has_cycle()


def test_two_node_cycle_rejected():
    graph = _graph("A", "B")
    graph.add_edge("A", "B")
    with pytest.raises(CycleDetected):
        graph.add_edge("B", "A")


def test_accepted_edges_never_form_a_cycle():
    graph = _graph(*"ABCDEF")
    attempts = [("A", "B"), ("B", "C"), ("C", "A"), ("D", "E"), ("E", "F"),
                ("F", "D"), ("C", "D"), ("F", "A"), ("A", "F")]
    for blocking, dependent in attempts:
        try:
            graph.add_edge(blocking, dependent)
        except CycleDetected:
            pass
        assert not graph.has_cycle()
    assert graph.has_edge("A", "F")
    assert not graph.has_edge("F", "A")


def test_remove_edge_is_idempotent():
    graph = _graph("A", "B")
    graph.add_edge("A", "B")
    assert graph.remove_edge("A", "B")
    assert not graph.remove_edge("A", "B")
    assert not graph.remove_edge("B", "A")
    assert not graph.remove_edge("ghost", "A")
    assert graph.edges() == []


def test_remove_task_drops_incident_edges():
    graph = _graph("A", "B", "C")
    graph.add_edge("A", "B")
    graph.add_edge("B", "C")
    removed = graph.remove_task("B")
    assert set(removed) == {DependencyEdge("A", "B"), DependencyEdge("B", "C")}
    assert graph.edges() == []
    assert graph.dependents_of("A") == []
    assert not graph.has_task("B")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Blocking
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_only_direct_blockers_count():
    graph = _graph("A", "B", "C")
    graph.add_edge("A", "B")
    graph.add_edge("B", "C")
    statuses = {"A": TaskStatus.PENDING, "B": TaskStatus.COMPLETED, "C": TaskStatus.PENDING}
    assert not graph.is_blocked("C", statuses.get)
    assert graph.unmet_blockers("B", statuses.get) == ["A"]


def test_cancelled_blocker_blocks_by_default():
    graph = _graph("A", "B")
    graph.add_edge("A", "B")
    statuses = {"A": TaskStatus.CANCELLED}
    assert graph.is_blocked("B", statuses.get)


def test_cancelled_blocker_exempt_when_configured():
    graph = _graph("A", "B", cancelled_blocks=False)
    graph.add_edge("A", "B")
    statuses = {"A": TaskStatus.CANCELLED}
    assert not graph.is_blocked("B", statuses.get)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Ordering
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_topological_order_respects_edges_and_tiebreak():
    graph = _graph("A", "B", "C", "D")
    graph.add_edge("C", "A")
    graph.add_edge("A", "B")
    order = graph.topological_order(tiebreak=["D", "C", "B", "A"])
    assert order == ["D", "C", "A", "B"]


def test_topological_order_defaults_to_insertion_order():
    graph = _graph("A", "B", "C")
    graph.add_edge("C", "B")
    assert graph.topological_order() == ["A", "C", "B"]
