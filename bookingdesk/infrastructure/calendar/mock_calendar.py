from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime

from bookingdesk.application.exceptions import CalendarError
from bookingdesk.application.ports.calendar import CalendarPort
from bookingdesk.domain.entities.calendar_event import CalendarEvent, EventSpec


class MockCalendar(CalendarPort):
    """In-memory calendar for dev/local runs and tests.

    ``provision_links=False`` simulates a calendar that accepts events but
    returns no conference link; ``fail=True`` makes every call raise.
    """

    def __init__(self, provision_links: bool = True, fail: bool = False) -> None:
        self._events: dict[str, CalendarEvent] = {}
        self._provision_links = provision_links
        self.fail = fail
        self._logger = logging.getLogger(__name__)

    def list_events(self, start: datetime, end: datetime) -> list[CalendarEvent]:
        self._check()
        return sorted(
            (e for e in self._events.values() if start <= e.start < end),
            key=lambda e: e.start,
        )

    def create_event(self, spec: EventSpec) -> CalendarEvent:
        self._check()
        event_id = f"mock_event_{len(self._events) + 1}"
        meeting_url = None
        if spec.create_meeting_link and self._provision_links:
            meeting_url = f"https://meet.google.com/mock-{len(self._events) + 1:03d}"
        event = CalendarEvent(
            id=event_id,
            start=spec.start,
            end=spec.end,
            title=spec.title,
            meeting_url=meeting_url,
        )
        self._events[event_id] = event
        self._logger.info("Mock calendar event created", extra={"event_id": event_id})
        return event

    def update_event(self, event_id: str, spec: EventSpec) -> CalendarEvent:
        self._check()
        if event_id not in self._events:
            raise CalendarError(f"Unknown event {event_id}")
        event = replace(self._events[event_id], start=spec.start, end=spec.end, title=spec.title)
        self._events[event_id] = event
        return event

    def delete_event(self, event_id: str) -> None:
        self._check()
        if self._events.pop(event_id, None) is not None:
            self._logger.info("Mock calendar event cancelled", extra={"event_id": event_id})

    def add_event(self, event: CalendarEvent) -> None:
        """Seed an event created outside this service (e.g. by the operator)."""
        self._events[event.id] = event

    @property
    def events(self) -> list[CalendarEvent]:
        return list(self._events.values())

    def _check(self) -> None:
        if self.fail:
            raise CalendarError("Mock calendar configured to fail")
