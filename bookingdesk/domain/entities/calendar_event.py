from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class EventSpec:
    start: datetime
    end: datetime
    title: str
    description: str = ""
    location: str = ""
    attendee_emails: tuple[str, ...] = field(default_factory=tuple)
    create_meeting_link: bool = False


@dataclass(frozen=True)
class CalendarEvent:
    id: str
    start: datetime
    end: datetime | None = None
    title: str = ""
    status: str = "confirmed"  # provider status; "cancelled" events never occupy a slot
    meeting_url: str | None = None
    html_link: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status != "cancelled"
