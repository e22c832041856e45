"""
AI task suggestions: parse and fetch externally generated tasks.

The generative-AI collaborator is opaque: it returns plan/task tuples
({title, description, category, priority, dates, subtasks}) which are fed
through the normal task-creation path (BoardController.import_suggestions).
Nothing here special-cases AI tasks once they are parsed.

Accepted payload shapes:
  {"success": true, "data": {"name": ..., "tasks": [...]}}
  {"tasks": [...]}
  [...]
optionally wrapped in a markdown code fence.
"""
import json
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Tuple, Union

import requests

from .errors import SuggestionError
from .schema import TaskCategory, TaskPriority, parse_date

logger = logging.getLogger(__name__)

MAX_TITLE_CHARS = 200


@dataclass
class SuggestedTask:
    """One externally generated task, normalized to planning enums."""
    title: str
    description: str = ""
    category: TaskCategory = TaskCategory.OTHER
    priority: TaskPriority = TaskPriority.MEDIUM
    start_date: Optional[date] = None
    due_date: Optional[date] = None
    subtasks: List[Tuple[str, str]] = field(default_factory=list)  # (title, description)

    def task_fields(self) -> Dict[str, Any]:
        """Keyword fields for TaskLifecycle.create_task."""
        return {
            "description": self.description,
            "category": self.category,
            "priority": self.priority,
            "start_date": self.start_date,
            "due_date": self.due_date,
        }


def _strip_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = re.sub(r'^```(?:json)?\s*', '', text)
        text = re.sub(r'\s*```$', '', text)
    return text


def _decode(text: str) -> Any:
    text = _strip_fences(text)
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        # Try to extract JSON embedded in prose
        match = re.search(r'(\{.*\}|\[.*\])', text, re.DOTALL)
        if match:
            try:
                return json.loads(match.group())
            except json.JSONDecodeError:
                pass
    raise SuggestionError("AI response is not valid JSON")


def _safe_date(value) -> Optional[date]:
    try:
        return parse_date(value)
    except (TypeError, ValueError):
        return None


def _parse_item(item: Dict[str, Any]) -> Optional[SuggestedTask]:
    title = str(item.get("title") or "").strip()
    if not title:
        return None

    subtasks = []
    for sub in item.get("subtasks") or []:
        if isinstance(sub, dict) and str(sub.get("title") or "").strip():
            subtasks.append((str(sub["title"]).strip()[:MAX_TITLE_CHARS], str(sub.get("description") or "")))
        elif isinstance(sub, str) and sub.strip():
            subtasks.append((sub.strip()[:MAX_TITLE_CHARS], ""))

    return SuggestedTask(
        title=title[:MAX_TITLE_CHARS],
        description=str(item.get("description") or ""),
        category=TaskCategory.from_str(str(item.get("category") or "other")),
        priority=TaskPriority.from_str(str(item.get("priority") or "medium")),
        start_date=_safe_date(item.get("startDate") or item.get("start_date")),
        due_date=_safe_date(item.get("dueDate") or item.get("due_date")),
        subtasks=subtasks,
    )


def parse_suggestions(payload: Union[str, bytes, Dict[str, Any], List[Any]]) -> List[SuggestedTask]:
    """
    Normalize an AI payload into SuggestedTask tuples.

    Unknown categories become `other`, unknown priorities `medium`, bad
    dates are dropped, and items without a title are skipped. Raises
    SuggestionError when the payload holds no task list at all.
    """
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8", errors="replace")
    data = _decode(payload) if isinstance(payload, str) else payload

    if isinstance(data, dict):
        if data.get("success") is False:
            raise SuggestionError(str(data.get("error") or "AI collaborator reported failure"))
        if isinstance(data.get("data"), dict):
            data = data["data"]
        data = data.get("tasks")
    if not isinstance(data, list):
        raise SuggestionError("AI response has no task list")

    tasks = []
    for item in data:
        parsed = _parse_item(item) if isinstance(item, dict) else None
        if parsed is None:
            logger.debug("Skipping malformed suggestion: %r", item)
            continue
        tasks.append(parsed)
    return tasks


class SuggestionClient:
    """Thin HTTP client for the plan-generation endpoint."""

    def __init__(self, url: str, timeout: float = 30.0, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def generate(self, goal: str, prompt: str = "", duration: Optional[str] = None,
                 start_date: Optional[date] = None) -> List[SuggestedTask]:
        """Ask the collaborator for a task list towards `goal`."""
        context = {"goal": goal}
        if duration:
            context["duration"] = duration
        if start_date:
            context["startDate"] = start_date.isoformat()
        body = {"type": "generate", "prompt": prompt or goal, "context": context}

        try:
            r = self.session.post(
                self.url,
                json=body,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise SuggestionError(f"AI request failed: {e}")

        if not r.ok:
            raise SuggestionError(f"AI request failed: HTTP {r.status_code}")

        try:
            payload = r.json()
        except ValueError:
            payload = r.text
        tasks = parse_suggestions(payload)
        logger.info("Received %d suggested task(s) for %r", len(tasks), goal)
        return tasks
