"""
events.py - In-memory event sink

EventLog receives LendingEvents after each successful commit and answers the
two questions a history view asks: what happened to this user, and what
happened of this kind.
"""

from typing import Iterator, List

from .core import LendingEvent, EVENT_TYPES


class EventLog:
    """Ordered, append-only store of published events."""

    def __init__(self):
        self._events: List[LendingEvent] = []

    def publish(self, event: LendingEvent) -> None:
        self._events.append(event)

    def for_user(self, user: str) -> List[LendingEvent]:
        """Events where the user is the subject or the counterparty, newest last."""
        return [event for event in self._events if event.involves(user)]

    def of_type(self, event_type: str) -> List[LendingEvent]:
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type {event_type!r}")
        return [event for event in self._events if event.event_type == event_type]

    def __iter__(self) -> Iterator[LendingEvent]:
        return iter(self._events)

    def __len__(self) -> int:
        return len(self._events)
