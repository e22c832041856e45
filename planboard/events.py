"""
Event bridge: lets the surrounding application react to lifecycle outcomes.

TaskLifecycle and BoardController emit events (task_completed,
completion_blocked, auto_complete_attempted, ...) after each state change;
the UI layer subscribes to show toasts or refresh views.
"""
import logging
from typing import Callable, Dict, List

logger = logging.getLogger(__name__)

TASK_COMPLETED = "task_completed"
TASK_REOPENED = "task_reopened"
TASK_CANCELLED = "task_cancelled"
TASK_DELETED = "task_deleted"
TASK_MOVED = "task_moved"
COMPLETION_BLOCKED = "completion_blocked"
AUTO_COMPLETE_ATTEMPTED = "auto_complete_attempted"
LIST_DELETED = "list_deleted"


class EventBridge:
    """In-process pub/sub for planning events."""

    def __init__(self):
        self.subscribers: Dict[str, List[Callable]] = {}  # event_type -> callbacks

    def subscribe(self, event_type: str, callback: Callable) -> None:
        """Register a callback for an event type."""
        if event_type not in self.subscribers:
            self.subscribers[event_type] = []
        self.subscribers[event_type].append(callback)

    def unsubscribe(self, event_type: str, callback: Callable) -> None:
        callbacks = self.subscribers.get(event_type, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def emit(self, event_type: str, **kwargs) -> None:
        """Emit an event to all subscribers. A failing subscriber never aborts the caller."""
        for callback in list(self.subscribers.get(event_type, [])):
            try:
                callback(**kwargs)
            except Exception:
                logger.exception("Error in %s callback", event_type)
