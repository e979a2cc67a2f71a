from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum


class AppointmentStatus(str, Enum):
    scheduled = "scheduled"
    completed = "completed"
    canceled = "canceled"
    postponed = "postponed"


class SessionType(str, Enum):
    trial = "trial"
    continuation_1 = "continuation_1"
    continuation_2 = "continuation_2"
    continuation_3 = "continuation_3"
    continuation_4 = "continuation_4"
    continuation_5 = "continuation_5"
    custom = "custom"


class SessionFormat(str, Enum):
    online = "online"
    in_person = "in_person"


ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.scheduled: frozenset(
        {AppointmentStatus.completed, AppointmentStatus.canceled, AppointmentStatus.postponed}
    ),
    AppointmentStatus.postponed: frozenset({AppointmentStatus.scheduled, AppointmentStatus.canceled}),
    AppointmentStatus.completed: frozenset(),
    AppointmentStatus.canceled: frozenset(),
}


@dataclass(frozen=True)
class Appointment:
    id: str
    client_id: str
    scheduled_at: datetime  # aware, business timezone
    session_type: SessionType
    format: SessionFormat
    created_at: datetime
    updated_at: datetime
    client_name: str = ""
    status: AppointmentStatus = AppointmentStatus.scheduled
    meeting_url: str | None = None
    calendar_event_id: str | None = None
    notes: str = ""
    completed_at: datetime | None = None

    @property
    def occupies_slot(self) -> bool:
        return self.status != AppointmentStatus.canceled

    @property
    def slot_key(self) -> tuple[date, str]:
        return self.scheduled_at.date(), self.scheduled_at.strftime("%H:%M")

    def can_transition_to(self, target: AppointmentStatus) -> bool:
        return target in ALLOWED_TRANSITIONS[self.status]
