"""
Planning board schema: boards, lists, tasks, dependency edges.

Task lifecycle:
  pending ⇄ in_progress ⇄ on_hold → completed → (reopen) pending
  any state → cancelled (terminal)

Every mutation the engine performs is described by a MutationSet, which the
caller persists; nothing in this package writes to the backing store
implicitly.
"""
import uuid
from enum import Enum
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Optional, List, Dict, Any, Iterator, Tuple


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def make_id(prefix: str = "") -> str:
    """Generate a unique row id (uuid4 hex, optionally prefixed)."""
    rand = uuid.uuid4().hex
    return f"{prefix}-{rand}" if prefix else rand


class TaskStatus(Enum):
    """Valid task statuses."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @classmethod
    def from_str(cls, value: str) -> "TaskStatus":
        try:
            return cls[value.upper()]
        except KeyError:
            raise ValueError(f"Invalid task status: {value}")

    @property
    def is_open(self) -> bool:
        return self in (TaskStatus.PENDING, TaskStatus.IN_PROGRESS, TaskStatus.ON_HOLD)


class TaskPriority(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @classmethod
    def from_str(cls, value: str) -> "TaskPriority":
        try:
            return cls[value.upper()]
        except KeyError:
            return cls.MEDIUM


class TaskCategory(Enum):
    """Planning categories (shared with AI suggestions)."""
    CAMPAIGN = "campaign"
    CONTENT = "content"
    SOCIAL = "social"
    EVENT = "event"
    MEETING = "meeting"
    ADMIN = "admin"
    OTHER = "other"

    @classmethod
    def from_str(cls, value: str) -> "TaskCategory":
        try:
            return cls[value.upper()]
        except KeyError:
            return cls.OTHER


class PlanStatus(Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"

    @classmethod
    def from_str(cls, value: str) -> "PlanStatus":
        try:
            return cls[value.upper()]
        except KeyError:
            return cls.DRAFT


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def parse_date(value) -> Optional[date]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _parse_datetime(value) -> datetime:
    if isinstance(value, datetime):
        return value
    if value:
        return datetime.fromisoformat(value)
    return utc_now()


@dataclass
class Board:
    """Top-level container of lists for one workspace."""
    id: str
    name: str
    color: str = "#6366f1"
    list_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "color": self.color}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Board":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            color=data.get("color") or "#6366f1",
            list_ids=list(data.get("list_ids", [])),
        )


@dataclass
class TaskList:
    """A Kanban column: ordered container of tasks."""
    id: str
    board_id: str
    name: str
    position: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "board_id": self.board_id,
            "name": self.name,
            "position": self.position,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaskList":
        return cls(
            id=data["id"],
            board_id=data["board_id"],
            name=data.get("name", ""),
            position=float(data.get("position") or 0.0),
        )


@dataclass
class Task:
    """Central planning entity, either in a list, a plan, or under a parent."""

    id: str
    title: str
    list_id: Optional[str] = None
    parent_id: Optional[str] = None
    plan_id: Optional[str] = None

    description: str = ""
    notes: str = ""

    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    category: TaskCategory = TaskCategory.OTHER
    progress: int = 0
    position: float = 0.0

    start_date: Optional[date] = None
    due_date: Optional[date] = None
    assignee_id: Optional[str] = None

    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def sibling_key(self) -> Tuple[Optional[str], Optional[str]]:
        """Container key: positions are unique per (list_id, parent_id)."""
        return (self.list_id, self.parent_id)

    def touch(self) -> None:
        self.updated_at = utc_now()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "list_id": self.list_id,
            "parent_id": self.parent_id,
            "plan_id": self.plan_id,
            "description": self.description,
            "notes": self.notes,
            "status": self.status.value,
            "priority": self.priority.value,
            "category": self.category.value,
            "progress": self.progress,
            "position": self.position,
            "start_date": _iso(self.start_date),
            "due_date": _iso(self.due_date),
            "assignee_id": self.assignee_id,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        """Deserialize from a dict (store row or API payload)."""
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            list_id=data.get("list_id"),
            parent_id=data.get("parent_id"),
            plan_id=data.get("plan_id"),
            description=data.get("description") or "",
            notes=data.get("notes") or "",
            status=TaskStatus(data.get("status") or "pending"),
            priority=TaskPriority.from_str(data.get("priority") or "medium"),
            category=TaskCategory.from_str(data.get("category") or "other"),
            progress=int(data.get("progress") or 0),
            position=float(data.get("position") or 0.0),
            start_date=parse_date(data.get("start_date")),
            due_date=parse_date(data.get("due_date")),
            assignee_id=data.get("assignee_id"),
            created_at=_parse_datetime(data.get("created_at")),
            updated_at=_parse_datetime(data.get("updated_at")),
        )


@dataclass(frozen=True)
class DependencyEdge:
    """blocking_id blocks dependent_id: the dependent cannot complete first."""
    blocking_id: str
    dependent_id: str

    @property
    def key(self) -> str:
        return f"{self.blocking_id}->{self.dependent_id}"

    def to_dict(self) -> Dict[str, Any]:
        return {"blocking_id": self.blocking_id, "dependent_id": self.dependent_id}


@dataclass
class Plan:
    """Action plan grouping tasks by year (read-only here)."""
    id: str
    name: str
    year: int
    description: str = ""
    status: PlanStatus = PlanStatus.DRAFT
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Plan":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            year=int(data.get("year") or utc_now().year),
            description=data.get("description") or "",
            status=PlanStatus.from_str(data.get("status") or "draft"),
            start_date=parse_date(data.get("start_date")),
            end_date=parse_date(data.get("end_date")),
        )


# ── Mutation batches ─────────────────────────────────────────────────────────


class MutationOp(Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class Mutation:
    """One row-level change for the persistence layer."""
    op: MutationOp
    entity: str          # "board" | "list" | "task" | "dependency"
    entity_id: str
    fields: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "op": self.op.value,
            "entity": self.entity,
            "id": self.entity_id,
            "fields": dict(self.fields),
        }


class MutationSet:
    """
    Minimal, ordered batch of field changes keyed by (entity, id).

    Changes to the same row are merged so the caller persists each row once:
      create + update → create (merged fields)
      update + update → update (merged fields)
      create + delete → dropped
      update + delete → delete
    """

    def __init__(self):
        self._rows: Dict[Tuple[str, str], Mutation] = {}

    def create(self, entity: str, entity_id: str, **fields) -> "MutationSet":
        self._add(Mutation(MutationOp.CREATE, entity, entity_id, fields))
        return self

    def update(self, entity: str, entity_id: str, **fields) -> "MutationSet":
        self._add(Mutation(MutationOp.UPDATE, entity, entity_id, fields))
        return self

    def delete(self, entity: str, entity_id: str, **fields) -> "MutationSet":
        self._add(Mutation(MutationOp.DELETE, entity, entity_id, fields))
        return self

    def merge(self, other: "MutationSet") -> "MutationSet":
        for mutation in other:
            self._add(Mutation(mutation.op, mutation.entity, mutation.entity_id, dict(mutation.fields)))
        return self

    def _add(self, mutation: Mutation) -> None:
        key = (mutation.entity, mutation.entity_id)
        existing = self._rows.get(key)
        if existing is None:
            self._rows[key] = mutation
            return

        if mutation.op == MutationOp.DELETE:
            if existing.op == MutationOp.CREATE:
                del self._rows[key]
            else:
                existing.op = MutationOp.DELETE
                existing.fields = mutation.fields
            return

        if existing.op == MutationOp.DELETE:
            # Row re-created after a delete within the same batch
            self._rows[key] = mutation
            return

        if mutation.op == MutationOp.CREATE:
            existing.op = MutationOp.CREATE
        existing.fields.update(mutation.fields)

    def get(self, entity: str, entity_id: str) -> Optional[Mutation]:
        return self._rows.get((entity, entity_id))

    def for_entity(self, entity: str) -> List[Mutation]:
        return [m for m in self._rows.values() if m.entity == entity]

    def is_empty(self) -> bool:
        return not self._rows

    def __bool__(self) -> bool:
        return bool(self._rows)

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[Mutation]:
        return iter(list(self._rows.values()))

    def __contains__(self, key: Tuple[str, str]) -> bool:
        return key in self._rows

    def to_list(self) -> List[Dict[str, Any]]:
        return [m.to_dict() for m in self._rows.values()]

    def to_dict(self) -> Dict[str, Any]:
        return {"mutations": self.to_list(), "count": len(self._rows)}

    def __repr__(self) -> str:
        return f"MutationSet({self.to_list()!r})"
