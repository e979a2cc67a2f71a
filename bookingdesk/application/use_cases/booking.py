from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from bookingdesk.application.booking_config import BookingConfig
from bookingdesk.application.exceptions import (
    PersistenceError,
    RecordStoreError,
    SlotConflictError,
    ValidationError,
)
from bookingdesk.application.ports.calendar import CalendarPort
from bookingdesk.application.records import BookingRecords
from bookingdesk.application.use_cases.availability import CLOSED_DAY, SlotCalculator
from bookingdesk.application.use_cases.identity import ClientContact, ClientIdentityResolver
from bookingdesk.application.use_cases.notifications import NotificationDispatcher
from bookingdesk.application.utils.ids import fallback_meeting_url, generate_id, random_token
from bookingdesk.application.utils.row_mapping import format_datetime
from bookingdesk.application.utils.validation import is_blank, is_valid_email, is_whole_minute, parse_instant
from bookingdesk.domain.entities.appointment import (
    Appointment,
    AppointmentStatus,
    SessionFormat,
    SessionType,
)
from bookingdesk.domain.entities.calendar_event import EventSpec
from bookingdesk.domain.entities.client import Client, ClientStatus, PreferredFormat, can_advance
from bookingdesk.domain.entities.notification import NotificationMessage

TEMPLATE_TRIAL_CONFIRMATION = "trial-confirmation"
TEMPLATE_SESSION_CONFIRMATION = "session-confirmation"
TEMPLATE_OPERATOR_NOTICE = "booking-operator-notice"

REQUIRED_FIELDS = ("client_name", "email", "phone", "scheduled_at", "session_type", "format")


@dataclass(frozen=True)
class BookingRequest:
    client_name: str | None
    email: str | None
    phone: str | None
    scheduled_at: str | datetime | None
    session_type: str | None
    format: str | None
    notes: str = ""
    phonetic_name: str | None = None
    address: str = ""
    preferred_format: str | None = None


@dataclass(frozen=True)
class BookingResult:
    appointment_id: str
    client_id: str
    scheduled_at: datetime
    meeting_url: str | None
    calendar_used: bool
    meeting_url_is_placeholder: bool
    calendar_event_id: str | None = None
    client_created: bool = False


@dataclass(frozen=True)
class MeetingAllocation:
    meeting_url: str | None
    event_id: str | None
    calendar_used: bool
    placeholder: bool


class BookingCoordinator:
    """Validates and records a public booking.

    The record store write is the commit point: calendar and notification
    problems never fail a booking once the appointment row exists. The slot
    re-check and the append are not atomic, so two simultaneous requests can
    both pass the check; with ``reconcile_after_write`` the slot is re-read
    after the append and every duplicate except the earliest-created is
    canceled.
    """

    def __init__(
        self,
        records: BookingRecords,
        slots: SlotCalculator,
        identity: ClientIdentityResolver,
        notifier: NotificationDispatcher,
        config: BookingConfig,
        calendar: CalendarPort | None = None,
        clock: Callable[[], datetime] | None = None,
        id_factory: Callable[[], str] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._records = records
        self._slots = slots
        self._identity = identity
        self._notifier = notifier
        self._config = config
        self._calendar = calendar
        self._clock = clock or (lambda: datetime.now(config.timezone))
        self._id_factory = id_factory or (lambda: generate_id("S"))
        self._logger = logger or logging.getLogger(__name__)

    def book(self, request: BookingRequest) -> BookingResult:
        scheduled_at, session_type, session_format = self._validate(request)
        day = scheduled_at.date()
        time_of_day = scheduled_at.strftime("%H:%M")

        try:
            schedule = self._slots.available_slots(day)
        except RecordStoreError as e:
            raise PersistenceError("Could not read existing sessions") from e

        if schedule.reason == CLOSED_DAY:
            raise ValidationError({"scheduled_at": "bookings are not taken on this day"})
        slot = schedule.find(time_of_day)
        if slot is None:
            offered = ", ".join(self._config.slot_times)
            raise ValidationError({"scheduled_at": f"time must be one of {offered}"})
        if not slot.available:
            raise SlotConflictError(day.isoformat(), time_of_day)
        scheduled_at = self._slots.slot_start(day, time_of_day)

        try:
            resolved = self._identity.resolve_client(self._contact(request))
        except RecordStoreError as e:
            raise PersistenceError("Could not register client") from e
        client = resolved.client
        if not resolved.created:
            self._advance_client(client, ClientStatus.trial_before)

        appointment_id = self._id_factory()
        allocation = self._allocate_meeting(appointment_id, scheduled_at, session_type, session_format, client, request)

        now = self._clock()
        appointment = Appointment(
            id=appointment_id,
            client_id=client.id,
            client_name=client.name or (request.client_name or "").strip(),
            scheduled_at=scheduled_at,
            session_type=session_type,
            format=session_format,
            status=AppointmentStatus.scheduled,
            meeting_url=allocation.meeting_url,
            calendar_event_id=allocation.event_id,
            notes=(request.notes or "").strip(),
            created_at=now,
            updated_at=now,
        )

        try:
            self._records.add_appointment(appointment)
        except RecordStoreError as e:
            self._logger.error(
                "Appointment write failed",
                extra={"appointment_id": appointment_id, "client_id": client.id, "error": str(e)},
            )
            self._release_event(allocation.event_id, appointment_id)
            raise PersistenceError("Could not save the appointment") from e

        self._logger.info(
            "Appointment booked",
            extra={
                "appointment_id": appointment_id,
                "client_id": client.id,
                "reason": "calendar" if allocation.calendar_used else "no_calendar",
            },
        )

        if self._config.reconcile_after_write:
            self._reconcile(appointment)

        self._notify(appointment, client)

        return BookingResult(
            appointment_id=appointment.id,
            client_id=client.id,
            scheduled_at=scheduled_at,
            meeting_url=allocation.meeting_url,
            calendar_used=allocation.calendar_used,
            meeting_url_is_placeholder=allocation.placeholder,
            calendar_event_id=allocation.event_id,
            client_created=resolved.created,
        )

    def _validate(self, request: BookingRequest) -> tuple[datetime, SessionType, SessionFormat]:
        errors: dict[str, str] = {}
        for name in REQUIRED_FIELDS:
            if is_blank(getattr(request, name)):
                errors[name] = "required"

        if "email" not in errors and not is_valid_email(request.email):
            errors["email"] = "invalid email address"

        scheduled_at = None
        if "scheduled_at" not in errors:
            scheduled_at = parse_instant(request.scheduled_at, self._config.timezone)
            if scheduled_at is None:
                errors["scheduled_at"] = "must be an ISO 8601 date-time"
            elif not is_whole_minute(scheduled_at):
                errors["scheduled_at"] = "must start on a whole minute"

        session_type = None
        if "session_type" not in errors:
            try:
                session_type = SessionType(request.session_type)
            except ValueError:
                errors["session_type"] = "unknown session type"

        session_format = None
        if "format" not in errors:
            try:
                session_format = SessionFormat(request.format)
            except ValueError:
                errors["format"] = "must be online or in_person"

        if request.preferred_format:
            try:
                PreferredFormat(request.preferred_format)
            except ValueError:
                errors["preferred_format"] = "must be online, in_person or either"

        if errors:
            raise ValidationError(errors)
        return scheduled_at, session_type, session_format

    def _contact(self, request: BookingRequest) -> ClientContact:
        return ClientContact(
            name=request.client_name or "",
            email=request.email or "",
            phone=request.phone or "",
            phonetic_name=request.phonetic_name,
            address=request.address or "",
            preferred_format=PreferredFormat(request.preferred_format) if request.preferred_format else None,
            notes=request.notes or "",
        )

    def _advance_client(self, client: Client, target: ClientStatus) -> None:
        if client.status != ClientStatus.inquiry or not can_advance(client.status, target):
            return
        try:
            self._records.update_client(client.id, {"Status": target.value})
        except RecordStoreError as e:
            self._logger.warning(
                "Client status not advanced",
                extra={"client_id": client.id, "reason": target.value, "error": str(e)},
            )

    def _allocate_meeting(
        self,
        appointment_id: str,
        scheduled_at: datetime,
        session_type: SessionType,
        session_format: SessionFormat,
        client: Client,
        request: BookingRequest,
    ) -> MeetingAllocation:
        use_calendar = self._config.calendar_enabled and self._calendar is not None
        online = session_format == SessionFormat.online

        if not online and not (use_calendar and self._config.calendar_events_for_in_person):
            return MeetingAllocation(meeting_url=None, event_id=None, calendar_used=False, placeholder=False)

        event = None
        if use_calendar:
            spec = EventSpec(
                start=scheduled_at,
                end=scheduled_at + timedelta(minutes=self._config.session_duration_minutes),
                title=f"{session_type.value.replace('_', ' ').title()} session: {client.name}",
                description=self._event_description(appointment_id, client, session_type, session_format, request),
                attendee_emails=(client.email,) if client.email else (),
                create_meeting_link=online,
            )
            try:
                event = self._calendar.create_event(spec)
            except Exception as e:
                self._logger.warning(
                    "Calendar degraded; continuing without event",
                    extra={"appointment_id": appointment_id, "reason": "calendar_degraded", "error": str(e)},
                )

        if not online:
            return MeetingAllocation(
                meeting_url=None,
                event_id=event.id if event else None,
                calendar_used=event is not None,
                placeholder=False,
            )

        if event is not None and event.meeting_url:
            return MeetingAllocation(meeting_url=event.meeting_url, event_id=event.id, calendar_used=True, placeholder=False)

        if event is not None:
            self._logger.warning(
                "Calendar event has no meeting link; using placeholder",
                extra={"appointment_id": appointment_id, "event_id": event.id, "reason": "no_meeting_link"},
            )
        url = fallback_meeting_url(
            scheduled_at,
            random_token(),
            self._config.fallback_meeting_base_url,
            self._config.fallback_meeting_tag,
        )
        return MeetingAllocation(
            meeting_url=url,
            event_id=event.id if event else None,
            calendar_used=event is not None,
            placeholder=True,
        )

    def _event_description(
        self,
        appointment_id: str,
        client: Client,
        session_type: SessionType,
        session_format: SessionFormat,
        request: BookingRequest,
    ) -> str:
        lines = [
            f"Session ID: {appointment_id}",
            f"Client ID: {client.id}",
            f"Client: {client.name}",
            f"Email: {client.email}",
            f"Phone: {client.phone or request.phone or ''}",
            f"Type: {session_type.value}",
            f"Format: {session_format.value}",
        ]
        if request.notes:
            lines.append(f"Notes: {request.notes}")
        return "\n".join(lines)

    def _release_event(self, event_id: str | None, appointment_id: str) -> None:
        if not event_id or self._calendar is None:
            return
        try:
            self._calendar.delete_event(event_id)
        except Exception as e:
            self._logger.warning(
                "Orphaned calendar event could not be deleted",
                extra={"appointment_id": appointment_id, "event_id": event_id, "error": str(e)},
            )

    def _reconcile(self, appointment: Appointment) -> None:
        try:
            same_slot = [
                a
                for a in self._records.appointments_on(appointment.scheduled_at.date())
                if a.occupies_slot and a.slot_key == appointment.slot_key
            ]
        except RecordStoreError as e:
            self._logger.warning(
                "Post-write check skipped",
                extra={"appointment_id": appointment.id, "reason": "record_store_unavailable", "error": str(e)},
            )
            return

        if len(same_slot) <= 1:
            return

        keeper = min(same_slot, key=lambda a: (a.created_at, a.id))
        now = format_datetime(self._clock())
        for duplicate in same_slot:
            if duplicate.id == keeper.id:
                continue
            try:
                self._records.update_appointment(
                    duplicate.id,
                    {"Status": AppointmentStatus.canceled.value, "Last Updated": now},
                )
            except RecordStoreError as e:
                self._logger.error(
                    "Duplicate booking could not be canceled",
                    extra={"appointment_id": duplicate.id, "reason": "double_booking", "error": str(e)},
                )
                continue
            self._logger.warning(
                "Duplicate booking canceled",
                extra={"appointment_id": duplicate.id, "client_id": duplicate.client_id, "reason": f"kept {keeper.id}"},
            )
            self._release_event(duplicate.calendar_event_id, duplicate.id)

        if keeper.id != appointment.id:
            raise SlotConflictError(appointment.scheduled_at.date().isoformat(), appointment.slot_key[1])

    def _notify(self, appointment: Appointment, client: Client) -> None:
        data = {
            "business_name": self._config.business_name,
            "client_name": appointment.client_name,
            "appointment_id": appointment.id,
            "scheduled_at": format_datetime(appointment.scheduled_at),
            "date": appointment.scheduled_at.strftime("%Y-%m-%d"),
            "time": appointment.scheduled_at.strftime("%H:%M"),
            "session_type": appointment.session_type.value,
            "format": appointment.format.value,
            "meeting_url": appointment.meeting_url or "",
        }
        client_template = (
            TEMPLATE_TRIAL_CONFIRMATION
            if appointment.session_type == SessionType.trial
            else TEMPLATE_SESSION_CONFIRMATION
        )
        messages = [NotificationMessage(recipient=client.email, template_id=client_template, data=data, audience="client")]
        if self._config.operator_email:
            operator_data = dict(data, client_email=client.email, client_phone=client.phone, notes=appointment.notes)
            messages.append(
                NotificationMessage(
                    recipient=self._config.operator_email,
                    template_id=TEMPLATE_OPERATOR_NOTICE,
                    data=operator_data,
                    audience="operator",
                )
            )
        try:
            self._notifier.dispatch_all(messages)
        except Exception as e:
            self._logger.error(
                "Notifications not dispatched",
                extra={"appointment_id": appointment.id, "error": str(e)},
            )
