"""
In-process change-event feed and the realtime conversation view.
"""

import queue
import threading
import uuid
from typing import Any, Dict, Iterable, List, Optional

from symptom_diary.models import ChangeEvent

ANY_EVENT = "*"


class Subscription:
    """A queue of change events for one (table, event kind) pair."""

    def __init__(self, bus: "EventBus", table: str, event_kind: str):
        self.bus = bus
        self.table = table
        self.event_kind = event_kind
        self.closed = False
        self._queue: "queue.Queue[ChangeEvent]" = queue.Queue()

    def wants(self, table: str, kind: str) -> bool:
        return table == self.table and self.event_kind in (ANY_EVENT, kind)

    def deliver(self, event: ChangeEvent) -> None:
        self._queue.put(event)

    def get(self, timeout: Optional[float] = None) -> Optional[ChangeEvent]:
        """Next event, or None if nothing arrived within *timeout* seconds."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def unsubscribe(self) -> None:
        self.bus.unsubscribe(self)


class EventBus:
    """Fan-out of row changes to subscribers. Missed events are not replayed."""

    def __init__(self):
        self._lock = threading.Lock()
        self._subscriptions: List[Subscription] = []

    def subscribe(self, table: str, event_kind: str = ANY_EVENT) -> Subscription:
        sub = Subscription(self, table, event_kind.upper())
        with self._lock:
            self._subscriptions.append(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)
        sub.closed = True

    def publish(self, table: str, kind: str, record: Dict[str, Any]) -> ChangeEvent:
        event = ChangeEvent(id=str(uuid.uuid4()), table=table, kind=kind.upper(), record=dict(record))
        with self._lock:
            targets = [s for s in self._subscriptions if s.wants(table, event.kind)]
        for sub in targets:
            sub.deliver(event)
        return event

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)


class ConversationView:
    """Messages of one open conversation, kept current from INSERT events.

    The feed is at-least-once, so records are deduplicated by message id.
    """

    def __init__(self, me: str, other: str, history: Iterable[Dict[str, Any]] = ()):
        self.me = me
        self.other = other
        self.messages: List[Dict[str, Any]] = []
        self._seen = set()
        for record in history:
            self._append(record)

    def belongs(self, record: Dict[str, Any]) -> bool:
        pair = (record.get("sender_id"), record.get("receiver_id"))
        return pair in ((self.me, self.other), (self.other, self.me))

    def apply(self, event: ChangeEvent) -> bool:
        """Append the event's record if it is a new message of this conversation."""
        if event.table != "messages" or event.kind != "INSERT":
            return False
        if not self.belongs(event.record):
            return False
        return self._append(event.record)

    def _append(self, record: Dict[str, Any]) -> bool:
        key = record.get("id")
        if key in self._seen:
            return False
        self._seen.add(key)
        self.messages.append(dict(record))
        return True


def iter_conversation(sub: Subscription, view: ConversationView, poll_seconds: float):
    """Yield each new conversation record, or None after *poll_seconds* of silence.

    The subscription is released when the generator is closed.
    """
    try:
        while not sub.closed:
            event = sub.get(timeout=poll_seconds)
            if event is None:
                yield None
            elif view.apply(event):
                yield view.messages[-1]
    finally:
        sub.unsubscribe()
