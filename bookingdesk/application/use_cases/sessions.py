from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from bookingdesk.application.booking_config import BookingConfig
from bookingdesk.application.exceptions import (
    AppointmentNotFoundError,
    InvalidTransitionError,
    PersistenceError,
    RecordStoreError,
    SlotConflictError,
    ValidationError,
)
from bookingdesk.application.ports.calendar import CalendarPort
from bookingdesk.application.records import BookingRecords
from bookingdesk.application.use_cases.availability import CLOSED_DAY, SlotCalculator
from bookingdesk.application.utils.row_mapping import format_datetime
from bookingdesk.application.utils.validation import is_whole_minute, parse_instant
from bookingdesk.domain.entities.appointment import Appointment, AppointmentStatus, SessionType
from bookingdesk.domain.entities.calendar_event import EventSpec
from bookingdesk.domain.entities.client import ClientStatus, can_advance


class SessionService:
    """Staff operations on existing appointments: listing and status changes."""

    def __init__(
        self,
        records: BookingRecords,
        slots: SlotCalculator,
        config: BookingConfig,
        calendar: CalendarPort | None = None,
        clock: Callable[[], datetime] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._records = records
        self._slots = slots
        self._config = config
        self._calendar = calendar
        self._clock = clock or (lambda: datetime.now(config.timezone))
        self._logger = logger or logging.getLogger(__name__)

    def list_sessions(
        self,
        client_id: str | None = None,
        status: AppointmentStatus | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Appointment]:
        appointments = self._read(self._records.list_appointments)
        filtered = [
            a
            for a in appointments
            if (client_id is None or a.client_id == client_id)
            and (status is None or a.status == status)
            and (start is None or a.scheduled_at >= start)
            and (end is None or a.scheduled_at <= end)
        ]
        return sorted(filtered, key=lambda a: a.scheduled_at)

    def get(self, appointment_id: str) -> Appointment:
        appointment = self._read(lambda: self._records.get_appointment(appointment_id))
        if appointment is None:
            raise AppointmentNotFoundError(appointment_id)
        return appointment

    def cancel(self, appointment_id: str) -> Appointment:
        appointment = self._transition(appointment_id, AppointmentStatus.canceled)
        if appointment.calendar_event_id and self._calendar is not None:
            try:
                self._calendar.delete_event(appointment.calendar_event_id)
            except Exception as e:
                self._logger.warning(
                    "Calendar event not deleted",
                    extra={"appointment_id": appointment_id, "event_id": appointment.calendar_event_id, "error": str(e)},
                )
        return appointment

    def postpone(self, appointment_id: str) -> Appointment:
        return self._transition(appointment_id, AppointmentStatus.postponed)

    def complete(self, appointment_id: str) -> Appointment:
        appointment = self._transition(appointment_id, AppointmentStatus.completed)
        if appointment.session_type == SessionType.trial:
            self._advance_client(appointment.client_id, ClientStatus.trial_after)
        return appointment

    def reschedule(self, appointment_id: str, scheduled_at: str | datetime | None) -> Appointment:
        current = self.get(appointment_id)
        if current.status not in (AppointmentStatus.scheduled, AppointmentStatus.postponed):
            raise InvalidTransitionError(current.status.value, AppointmentStatus.scheduled.value)

        new_start = parse_instant(scheduled_at, self._config.timezone)
        if new_start is None:
            raise ValidationError({"scheduled_at": "must be an ISO 8601 date-time"})
        if not is_whole_minute(new_start):
            raise ValidationError({"scheduled_at": "must start on a whole minute"})
        day = new_start.date()
        time_of_day = new_start.strftime("%H:%M")

        schedule = self._read(
            lambda: self._slots.available_slots(
                day,
                exclude_appointment_id=current.id,
                exclude_event_id=current.calendar_event_id,
            )
        )
        if schedule.reason == CLOSED_DAY:
            raise ValidationError({"scheduled_at": "bookings are not taken on this day"})
        slot = schedule.find(time_of_day)
        if slot is None:
            raise ValidationError({"scheduled_at": f"time must be one of {', '.join(self._config.slot_times)}"})
        if not slot.available:
            raise SlotConflictError(day.isoformat(), time_of_day)

        new_start = self._slots.slot_start(day, time_of_day)
        now = self._clock()
        self._write(
            appointment_id,
            {
                "Scheduled At": format_datetime(new_start),
                "Status": AppointmentStatus.scheduled.value,
                "Last Updated": format_datetime(now),
            },
        )
        if current.calendar_event_id and self._calendar is not None:
            spec = EventSpec(
                start=new_start,
                end=new_start + timedelta(minutes=self._config.session_duration_minutes),
                title=f"{current.session_type.value.replace('_', ' ').title()} session: {current.client_name}",
            )
            try:
                self._calendar.update_event(current.calendar_event_id, spec)
            except Exception as e:
                self._logger.warning(
                    "Calendar event not moved",
                    extra={"appointment_id": appointment_id, "event_id": current.calendar_event_id, "error": str(e)},
                )
        self._logger.info("Appointment rescheduled", extra={"appointment_id": appointment_id, "reason": format_datetime(new_start)})
        return self.get(appointment_id)

    def _transition(self, appointment_id: str, target: AppointmentStatus) -> Appointment:
        current = self.get(appointment_id)
        if not current.can_transition_to(target):
            raise InvalidTransitionError(current.status.value, target.value)

        now = self._clock()
        partial = {"Status": target.value, "Last Updated": format_datetime(now)}
        if target == AppointmentStatus.completed:
            partial["Completed At"] = format_datetime(now)
        self._write(appointment_id, partial)
        self._logger.info("Appointment status changed", extra={"appointment_id": appointment_id, "reason": target.value})
        return self.get(appointment_id)

    def _advance_client(self, client_id: str, target: ClientStatus) -> None:
        try:
            client = self._records.get_client(client_id)
            if client is None or client.status != ClientStatus.trial_before or not can_advance(client.status, target):
                return
            self._records.update_client(client_id, {"Status": target.value})
        except RecordStoreError as e:
            self._logger.warning(
                "Client status not advanced",
                extra={"client_id": client_id, "reason": target.value, "error": str(e)},
            )

    def _write(self, appointment_id: str, partial: dict) -> None:
        try:
            self._records.update_appointment(appointment_id, partial)
        except RecordStoreError as e:
            raise PersistenceError("Could not update the appointment") from e

    def _read(self, load: Callable):
        try:
            return load()
        except RecordStoreError as e:
            raise PersistenceError("Could not read sessions") from e
