"""
ONBOARDER Events

The scheduler announces each task's lifecycle on an EventBus. Observers
(the JSONL audit log, tests) subscribe to all events or to a few types.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple

from loguru import logger
from pydantic import BaseModel, Field

TASK_SKIPPED = "task_skipped"
TASK_STARTED = "task_started"
TASK_COMPLETED = "task_completed"


class OnboardingEvent(BaseModel):
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    event_type: str
    repository: str
    payload: Dict[str, Any] = Field(default_factory=dict)


Subscriber = Callable[[OnboardingEvent], None]


class EventBus:
    """Synchronous fan-out. Emitting runs every matching subscriber on the caller's thread."""

    def __init__(self):
        self._subscribers: List[Tuple[Subscriber, Optional[FrozenSet[str]]]] = []

    def subscribe(self, callback: Subscriber, event_types: Optional[List[str]] = None) -> None:
        """Register a callback, optionally only for the given event types."""
        wanted = frozenset(event_types) if event_types else None
        self._subscribers.append((callback, wanted))

    def emit(self, event_type: str, repository: str, payload: Dict[str, Any] | None = None) -> OnboardingEvent:
        event = OnboardingEvent(
            event_type=event_type,
            repository=repository,
            payload=payload or {},
        )

        for callback, wanted in self._subscribers:
            if wanted is not None and event_type not in wanted:
                continue
            try:
                callback(event)
            except Exception as e:
                logger.warning(f"[EVENTS] Subscriber failed on {event_type} for {repository}: {e}")

        return event
