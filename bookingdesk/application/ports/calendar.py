from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from bookingdesk.domain.entities.calendar_event import CalendarEvent, EventSpec


class CalendarPort(ABC):
    @abstractmethod
    def list_events(self, start: datetime, end: datetime) -> list[CalendarEvent]:
        """List events starting in [start, end)."""
        raise NotImplementedError

    @abstractmethod
    def create_event(self, spec: EventSpec) -> CalendarEvent:
        """Create calendar event. Returned event carries meeting_url when one was provisioned."""
        raise NotImplementedError

    @abstractmethod
    def update_event(self, event_id: str, spec: EventSpec) -> CalendarEvent:
        raise NotImplementedError

    @abstractmethod
    def delete_event(self, event_id: str) -> None:
        raise NotImplementedError
