"""
Event bus carrying wizard notifications to the presentation layer.

Handlers run synchronously in publish order so that anything derived from an
event (gate visibility, progress bars) is current as soon as ``publish``
returns. Coroutine handlers are scheduled on the running loop and their
failures are collected as dead letters when the task finishes.
"""

import asyncio
import logging
import time
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Coroutine, Optional, Union

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Wizard event types."""

    # Session events
    DIRECTION_CHANGED = "session.direction_changed"
    STORE_UPDATED = "session.store_updated"
    GATES_CHANGED = "session.gates_changed"

    # Discovery events
    TABLES_LOADED = "discovery.tables_loaded"
    COLUMNS_DISCOVERED = "discovery.columns_discovered"
    SELECTION_CHANGED = "discovery.selection_changed"

    # Preview events
    PREVIEW_STARTED = "preview.started"
    PREVIEW_COMPLETED = "preview.completed"
    PREVIEW_FAILED = "preview.failed"

    # Execution events
    EXECUTION_STARTED = "execution.started"
    EXECUTION_PROGRESS = "execution.progress"
    EXECUTION_SUCCEEDED = "execution.succeeded"
    EXECUTION_FAILED = "execution.failed"


@dataclass
class Event:
    """An event in the wizard."""

    type: Union[EventType, str]
    source: str
    data: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: float = field(default_factory=time.time)

    @property
    def key(self) -> str:
        return self.type.value if isinstance(self.type, EventType) else self.type

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "type": self.key,
            "source": self.source,
            "data": self.data,
            "timestamp": self.timestamp,
        }


EventHandler = Union[
    Callable[[Event], None],
    Callable[[Event], Coroutine[Any, Any, None]],
]


@dataclass
class Subscription:
    """A subscription to events."""

    id: str
    event_type: str
    handler: EventHandler
    filter_fn: Optional[Callable[[Event], bool]] = None
    is_async: bool = False
    execution_count: int = 0


class EventBus:
    """Pub/sub bus with history and a dead letter list for failed handlers."""

    def __init__(self, max_history: int = 500):
        self._subscriptions: dict[str, list[Subscription]] = defaultdict(list)
        self._history: list[Event] = []
        self._dead_letters: list[tuple[Event, str]] = []
        self._max_history = max_history
        self._tasks: set[asyncio.Task] = set()

    def subscribe(
        self,
        event_type: Union[EventType, str],
        handler: EventHandler,
        filter_fn: Optional[Callable[[Event], bool]] = None,
    ) -> str:
        """Subscribe to events of a specific type."""
        event_key = event_type.value if isinstance(event_type, EventType) else event_type
        subscription = Subscription(
            id=str(uuid.uuid4()),
            event_type=event_key,
            handler=handler,
            filter_fn=filter_fn,
            is_async=asyncio.iscoroutinefunction(handler),
        )
        self._subscriptions[event_key].append(subscription)
        return subscription.id

    def subscribe_all(
        self,
        handler: EventHandler,
        filter_fn: Optional[Callable[[Event], bool]] = None,
    ) -> str:
        """Subscribe to all events."""
        return self.subscribe("*", handler, filter_fn)

    def unsubscribe(self, subscription_id: str) -> bool:
        """Unsubscribe from events."""
        for subs in self._subscriptions.values():
            for sub in subs:
                if sub.id == subscription_id:
                    subs.remove(sub)
                    return True
        return False

    def publish(self, event: Event) -> int:
        """
        Publish an event to all subscribers.

        Returns the number of handlers invoked.
        """
        self._record_event(event)

        matching = [
            sub
            for key in (event.key, "*")
            for sub in self._subscriptions.get(key, [])
            if not sub.filter_fn or sub.filter_fn(event)
        ]

        invoked = 0
        for sub in matching:
            try:
                if sub.is_async:
                    task = asyncio.get_running_loop().create_task(sub.handler(event))
                    self._tasks.add(task)
                    task.add_done_callback(lambda done, event=event: self._handler_done(event, done))
                else:
                    sub.handler(event)
                sub.execution_count += 1
                invoked += 1
            except Exception as e:
                logger.warning(f"Event handler for {event.key} failed: {e}")
                self._dead_letters.append((event, f"Handler failed: {str(e)}"))

        return invoked

    def emit(
        self,
        event_type: Union[EventType, str],
        source: str,
        data: Optional[dict[str, Any]] = None,
    ) -> Event:
        """Convenience method to create and publish an event."""
        event = Event(type=event_type, source=source, data=data or {})
        self.publish(event)
        return event

    def _handler_done(self, event: Event, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(f"Event handler for {event.key} failed: {error}")
            self._dead_letters.append((event, f"Handler failed: {str(error)}"))

    def _record_event(self, event: Event) -> None:
        self._history.append(event)
        if len(self._history) > self._max_history:
            self._history = self._history[-self._max_history:]

    def get_history(
        self,
        event_type: Optional[Union[EventType, str]] = None,
        limit: int = 100,
    ) -> list[Event]:
        """Get event history with optional filtering."""
        events = self._history
        if event_type:
            event_key = event_type.value if isinstance(event_type, EventType) else event_type
            events = [e for e in events if e.key == event_key]
        return events[-limit:]

    def get_dead_letters(self, limit: int = 100) -> list[tuple[Event, str]]:
        """Get events whose handlers raised."""
        return self._dead_letters[-limit:]
