"""Dashboard numbers for plans and their tasks."""
from dataclasses import asdict, dataclass
from datetime import date, timedelta
from typing import Dict, Iterable, Optional

from .lifecycle import mean_progress
from .schema import Plan, PlanStatus, Task, TaskStatus


@dataclass
class PlanSummary:
    task_count: int
    completed_count: int
    overall_progress: int

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class PlanningStats:
    total_plans: int
    active_plans: int
    total_tasks: int
    completed_tasks: int
    overdue_tasks: int
    tasks_this_week: int

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


def week_bounds(today: date):
    """Monday and Sunday of the week containing `today`."""
    monday = today - timedelta(days=today.weekday())
    return monday, monday + timedelta(days=6)


def is_overdue(task: Task, today: date) -> bool:
    return (
        task.due_date is not None
        and task.due_date < today
        and task.status not in (TaskStatus.COMPLETED, TaskStatus.CANCELLED)
    )


def plan_summary(tasks: Iterable[Task]) -> PlanSummary:
    """
    Summary of one plan's tasks. Subtasks are already folded into their
    parent's progress, so only top-level tasks feed the overall figure.
    """
    tasks = list(tasks)
    top_level = [t for t in tasks if t.parent_id is None]
    return PlanSummary(
        task_count=len(tasks),
        completed_count=sum(1 for t in tasks if t.status == TaskStatus.COMPLETED),
        overall_progress=mean_progress(t.progress for t in top_level),
    )


def planning_stats(plans: Iterable[Plan], tasks: Iterable[Task], today: Optional[date] = None) -> PlanningStats:
    today = today or date.today()
    plans = list(plans)
    tasks = list(tasks)
    monday, sunday = week_bounds(today)
    return PlanningStats(
        total_plans=len(plans),
        active_plans=sum(1 for p in plans if p.status == PlanStatus.ACTIVE),
        total_tasks=len(tasks),
        completed_tasks=sum(1 for t in tasks if t.status == TaskStatus.COMPLETED),
        overdue_tasks=sum(1 for t in tasks if is_overdue(t, today)),
        tasks_this_week=sum(1 for t in tasks if t.due_date is not None and monday <= t.due_date <= sunday),
    )
