from __future__ import annotations

from datetime import date as calendar_date, datetime

from pydantic import BaseModel

from bookingdesk.domain.entities.appointment import Appointment
from bookingdesk.domain.entities.slot import DaySchedule


class SlotSchema(BaseModel):
    id: int
    time: str
    available: bool


class DaySlotsResponseSchema(BaseModel):
    date: calendar_date
    slots: list[SlotSchema]
    reason: str | None = None

    @classmethod
    def from_schedule(cls, schedule: DaySchedule) -> "DaySlotsResponseSchema":
        return cls(
            date=schedule.date,
            slots=[SlotSchema(id=s.id, time=s.time, available=s.available) for s in schedule.slots],
            reason=schedule.reason,
        )


class ReserveRequestSchema(BaseModel):
    # Everything optional here: missing fields are reported by the booking validator
    client_name: str | None = None
    email: str | None = None
    phone: str | None = None
    scheduled_at: str | None = None
    session_type: str | None = None
    format: str | None = None
    notes: str | None = None
    phonetic_name: str | None = None
    address: str | None = None
    preferred_format: str | None = None


class ReserveResponseSchema(BaseModel):
    success: bool = True
    appointment_id: str
    client_id: str
    scheduled_at: datetime
    meeting_url: str | None
    calendar_used: bool
    meeting_url_is_placeholder: bool


class SessionSchema(BaseModel):
    id: str
    client_id: str
    client_name: str
    scheduled_at: datetime
    session_type: str
    format: str
    status: str
    meeting_url: str | None = None
    calendar_event_id: str | None = None
    notes: str = ""
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None

    @classmethod
    def from_appointment(cls, appointment: Appointment) -> "SessionSchema":
        return cls(
            id=appointment.id,
            client_id=appointment.client_id,
            client_name=appointment.client_name,
            scheduled_at=appointment.scheduled_at,
            session_type=appointment.session_type.value,
            format=appointment.format.value,
            status=appointment.status.value,
            meeting_url=appointment.meeting_url,
            calendar_event_id=appointment.calendar_event_id,
            notes=appointment.notes,
            created_at=appointment.created_at,
            updated_at=appointment.updated_at,
            completed_at=appointment.completed_at,
        )


class RescheduleRequestSchema(BaseModel):
    scheduled_at: str | None = None


class ErrorSchema(BaseModel):
    error: str
    message: str
    fields: dict[str, str] | None = None
    retryable: bool = False
