"""Pipeline event stream for UI consumers."""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Callable
from datetime import datetime
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)


class EventType(StrEnum):
    """Events emitted to the UI collaborator."""

    INITIAL_START = "initial-start"
    PROBLEM_EXTRACTED = "problem-extracted"
    SOLUTION_SUCCESS = "solution-success"
    SOLUTION_ERROR = "solution-error"
    DEBUG_START = "debug-start"
    DEBUG_SUCCESS = "debug-success"
    DEBUG_ERROR = "debug-error"
    PROCESSING_STATUS = "processing-status"
    API_KEY_INVALID = "api-key-invalid"
    NO_SCREENSHOTS = "processing-no-screenshots"
    RESET = "reset"


EventCallback = Callable[[dict[str, Any]], None]


class EventStream:
    """Thread-safe bounded event stream.

    Events get increasing ids, so a consumer polls with get_events_since()
    using the last id it saw. In-process subscribers are called synchronously
    on publish.
    """

    def __init__(self, max_events: int = 500) -> None:
        self._max_events = max(1, max_events)
        self._lock = threading.Lock()
        self._events: deque[dict[str, Any]] = deque(maxlen=self._max_events)
        self._next_id = 1
        self._subscribers: list[EventCallback] = []

    def publish(self, event_type: EventType, payload: dict[str, Any] | None = None) -> int:
        """Publish an event and return its assigned id."""
        with self._lock:
            event_id = self._next_id
            self._next_id += 1
            event = {
                "id": event_id,
                "timestamp": datetime.now().isoformat(),
                "type": event_type.value,
                "payload": payload or {},
            }
            self._events.append(event)
            subscribers = list(self._subscribers)

        logger.debug(f"Event {event_id}: {event_type.value}")
        for subscriber in subscribers:
            try:
                subscriber(event)
            except Exception as e:
                logger.warning(f"Event subscriber error: {e}")
        return event_id

    def progress(self, message: str, progress: int) -> int:
        """Publish a processing-status event."""
        return self.publish(EventType.PROCESSING_STATUS, {"message": message, "progress": progress})

    def get_events_since(self, last_event_id: int) -> list[dict[str, Any]]:
        """Get events with id greater than `last_event_id`."""
        with self._lock:
            return [event for event in self._events if int(event["id"]) > last_event_id]

    @property
    def last_event_id(self) -> int:
        """Id of the most recent event, or 0 if none."""
        with self._lock:
            return self._next_id - 1

    def subscribe(self, callback: EventCallback) -> None:
        """Register a callback invoked with every published event."""
        with self._lock:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: EventCallback) -> None:
        """Remove a previously registered callback."""
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)
