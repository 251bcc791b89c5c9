"""
In-process event bus for workflow events.

The transition engine publishes events after its write has committed.
Subscribers (audit, metrics, notifications) are independent of each other and
of the publisher: a failing subscriber is logged and skipped.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class WorkflowEvent:
    entity_type: str
    entity_id: str
    action: str
    user_id: Optional[str] = None
    changes: dict = field(default_factory=dict)
    metadata: dict = field(default_factory=dict)


Subscriber = Callable[[WorkflowEvent], None]


class EventBus:
    def __init__(self):
        self._subscribers: List[Subscriber] = []

    def subscribe(self, handler: Subscriber) -> None:
        self._subscribers.append(handler)

    def publish(self, event: WorkflowEvent) -> None:
        for handler in list(self._subscribers):
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Event subscriber %r failed for %s %s:%s",
                    handler, event.action, event.entity_type, event.entity_id
                )
