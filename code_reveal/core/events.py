"""Event types and the publish/subscribe channel for session notifications."""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional

from .models import FileChange, FileStreamProgress, OperationError, RevisionSnapshot, SessionId


logger = logging.getLogger(__name__)


class SessionEventType(Enum):
    """Notifications emitted by the session orchestrator."""

    SESSION_STARTED = "session_started"
    CURRENT_FILE_CHANGED = "current_file_changed"
    PROGRESS = "progress"
    FILE_COMPLETED = "file_completed"
    FILE_FAILED = "file_failed"
    SESSION_COMPLETED = "session_completed"
    SESSION_CANCELLED = "session_cancelled"
    OPERATION_ERROR = "operation_error"


@dataclass(frozen=True)
class SessionEvent:
    """A single notification delivered to subscribers."""

    event_type: SessionEventType
    session_id: SessionId
    timestamp: datetime = field(default_factory=datetime.now)
    progress: Optional[FileStreamProgress] = None
    file_change: Optional[FileChange] = None
    partial_content: Optional[str] = None
    snapshot: Optional[RevisionSnapshot] = None
    error: Optional[OperationError] = None


EventListener = Callable[[SessionEvent], None]


class Subscription:
    """Handle returned by EventChannel.subscribe."""

    def __init__(self, channel: "EventChannel", listener: EventListener,
                 event_types: Optional[FrozenSet[SessionEventType]]):
        self._channel = channel
        self.listener = listener
        self.event_types = event_types
        self.active = True

    def wants(self, event_type: SessionEventType) -> bool:
        return self.event_types is None or event_type in self.event_types

    def cancel(self) -> None:
        """Stop receiving events. Safe to call more than once."""
        if self.active:
            self.active = False
            self._channel._remove(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.cancel()


class EventChannel:
    """Delivers session events to subscribed listeners.

    A listener that raises is logged and skipped; it never prevents other
    listeners from running or aborts the publisher.
    """

    def __init__(self) -> None:
        self._subscriptions: List[Subscription] = []
        self._lock = threading.Lock()
        self.listener_errors = 0

    def subscribe(self, listener: EventListener,
                  event_types: Optional[Iterable[SessionEventType]] = None) -> Subscription:
        """Register a listener, optionally for a subset of event types."""
        types = frozenset(event_types) if event_types is not None else None
        subscription = Subscription(self, listener, types)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def publish(self, event: SessionEvent) -> None:
        with self._lock:
            targets = [s for s in self._subscriptions if s.active and s.wants(event.event_type)]

        for subscription in targets:
            try:
                subscription.listener(event)
            except Exception as e:
                self.listener_errors += 1
                logger.error(f"Error in listener for {event.event_type.value}: {e}", exc_info=True)

    def clear(self) -> None:
        with self._lock:
            for subscription in self._subscriptions:
                subscription.active = False
            self._subscriptions.clear()


class EventRecorder:
    """Listener that keeps every event it receives, in order."""

    def __init__(self) -> None:
        self.events: List[SessionEvent] = []

    def __call__(self, event: SessionEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: SessionEventType) -> List[SessionEvent]:
        return [e for e in self.events if e.event_type == event_type]

    def counts(self) -> Dict[SessionEventType, int]:
        result: Dict[SessionEventType, int] = {}
        for event in self.events:
            result[event.event_type] = result.get(event.event_type, 0) + 1
        return result
