"""
Tests for the data model: enums, task serialization, mutation batch merging.
"""
from datetime import date

import pytest

from planboard.schema import (
    MutationOp,
    MutationSet,
    PlanStatus,
    Task,
    TaskCategory,
    TaskPriority,
    TaskStatus,
    make_id,
)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Enums & entities
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_enum_parsing():
    assert TaskStatus.from_str("IN_PROGRESS") == TaskStatus.IN_PROGRESS
    assert TaskPriority.from_str("urgent") == TaskPriority.URGENT
    assert TaskPriority.from_str("asap") == TaskPriority.MEDIUM
    assert TaskCategory.from_str("Social") == TaskCategory.SOCIAL
    assert TaskCategory.from_str("misc") == TaskCategory.OTHER
    assert PlanStatus.from_str("weird") == PlanStatus.DRAFT
    with pytest.raises(ValueError):
        TaskStatus.from_str("done")


def test_open_statuses():
    assert TaskStatus.ON_HOLD.is_open
    assert not TaskStatus.COMPLETED.is_open
    assert not TaskStatus.CANCELLED.is_open


def test_task_from_store_row():
    task = Task.from_dict({
        "id": "t1", "title": "Venue", "list_id": "l1", "status": "in_progress",
        "priority": "high", "category": "event", "progress": 30, "position": 2048,
        "due_date": "2026-09-30", "created_at": "2026-08-01T10:00:00+00:00",
    })
    assert task.status == TaskStatus.IN_PROGRESS
    assert task.position == 2048.0
    assert task.due_date == date(2026, 9, 30)
    assert task.sibling_key == ("l1", None)
    assert task.to_dict()["due_date"] == "2026-09-30"


def test_make_id():
    assert make_id("task").startswith("task-")
    assert make_id() != make_id()


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# MutationSet merging
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_updates_to_one_row_merge():
    ms = MutationSet().update("task", "a", position=1.0).update("task", "a", status="completed")
    assert len(ms) == 1
    assert ms.get("task", "a").fields == {"position": 1.0, "status": "completed"}


def test_create_then_update_stays_create():
    ms = MutationSet().create("task", "a", title="A").update("task", "a", position=5.0)
    row = ms.get("task", "a")
    assert row.op == MutationOp.CREATE
    assert row.fields == {"title": "A", "position": 5.0}


def test_update_then_create_becomes_create():
    ms = MutationSet().update("task", "a", position=5.0).create("task", "a", title="A")
    assert ms.get("task", "a").op == MutationOp.CREATE


def test_create_then_delete_cancels_out():
    ms = MutationSet().create("task", "a", title="A").delete("task", "a")
    assert not ms
    assert ("task", "a") not in ms


def test_update_then_delete_is_delete():
    ms = MutationSet().update("task", "a", position=5.0).delete("task", "a")
    assert ms.get("task", "a").op == MutationOp.DELETE
    assert ms.get("task", "a").fields == {}


def test_merge_keeps_order_and_entities():
    first = MutationSet().update("task", "a", position=1.0)
    second = MutationSet().update("list", "a", name="Todo").update("task", "b", position=2.0)
    first.merge(second)
    assert [(m.entity, m.entity_id) for m in first] == [("task", "a"), ("list", "a"), ("task", "b")]
    assert len(first.for_entity("task")) == 2
    assert first.to_dict()["count"] == 3
