"""Change feed of task events, consumed by indexers and other observers."""

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable

from scopecraft.storage.models import TaskEvent, WorkflowState

logger = logging.getLogger(__name__)

Subscriber = Callable[[TaskEvent], None]


class ChangeFeed:
    """Fan out task events to subscribers.

    A subscriber that raises is logged and skipped; the operation that
    produced the event has already succeeded on disk.
    """

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        """Register a subscriber and return a function that removes it."""
        self._subscribers.append(subscriber)
        return lambda: self.unsubscribe(subscriber)

    def unsubscribe(self, subscriber: Subscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)

    def publish(self, event: TaskEvent) -> None:
        for subscriber in list(self._subscribers):
            try:
                subscriber(event)
            except Exception:
                logger.exception("Change feed subscriber failed on %s %s", event.event_type, event.task_id)


def emit(
    feed: ChangeFeed | None,
    event_type: str,
    task_id: str,
    path: Path | None = None,
    previous_path: Path | None = None,
    workflow_state: WorkflowState | None = None,
) -> None:
    if feed is None:
        return
    feed.publish(
        TaskEvent(
            event_type=event_type,
            task_id=task_id,
            path=path,
            previous_path=previous_path,
            workflow_state=workflow_state,
            created_at=datetime.now(),
        )
    )
