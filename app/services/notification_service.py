"""
Émission des événements métier ("task.assigned", "task.completed", ...).

Le moteur publie après commit et n'attend rien du dispatcher : un abonné
qui lève une exception est loggé puis ignoré.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, List, Optional

logger = logging.getLogger(__name__)

TASK_ASSIGNED = "task.assigned"
TASK_VOLUNTEER_JOINED = "task.volunteer_joined"
TASK_COMPLETED = "task.completed"
TASK_APPROVED = "task.approved"
TASK_REJECTED = "task.rejected"


@dataclass
class TaskEvent:
    type: str
    task_id: int
    parish_id: int
    actor_id: int
    recipient_ids: List[int] = field(default_factory=list)
    payload: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=datetime.utcnow)


Subscriber = Callable[[TaskEvent], None]


class EventDispatcher:
    def __init__(self):
        self._subscribers: List[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.append(subscriber)

    def unsubscribe(self, subscriber: Subscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)

    def publish(self, event: TaskEvent) -> None:
        for subscriber in list(self._subscribers):
            try:
                subscriber(event)
            except Exception as e:
                logger.warning(f"Subscriber failed on {event.type} for task {event.task_id}: {e}")


def log_event(event: TaskEvent) -> None:
    logger.info(
        f"{event.type} task={event.task_id} actor={event.actor_id} "
        f"recipients={event.recipient_ids}"
    )


dispatcher = EventDispatcher()
dispatcher.subscribe(log_event)


def emit(
    event_type: str,
    task,
    actor_id: int,
    recipient_ids: Optional[List[int]] = None,
    **payload
) -> TaskEvent:
    recipients = [r for r in (recipient_ids or []) if r is not None and r != actor_id]
    event = TaskEvent(
        type=event_type,
        task_id=task.id,
        parish_id=task.parish_id,
        actor_id=actor_id,
        recipient_ids=sorted(set(recipients)),
        payload=payload,
    )
    dispatcher.publish(event)
    return event
