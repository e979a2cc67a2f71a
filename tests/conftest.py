from __future__ import annotations

from concurrent.futures import Executor, Future
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from types import SimpleNamespace
from typing import Any
from zoneinfo import ZoneInfo

import pytest

from bookingdesk.application.booking_config import BookingConfig
from bookingdesk.application.exceptions import MailSendError, RecordStoreError
from bookingdesk.application.ports.mail_sender import MailSenderPort
from bookingdesk.application.records import BookingRecords
from bookingdesk.application.use_cases.availability import SlotCalculator
from bookingdesk.application.use_cases.booking import BookingCoordinator, BookingRequest
from bookingdesk.application.use_cases.identity import ClientIdentityResolver
from bookingdesk.application.use_cases.notifications import NotificationDispatcher
from bookingdesk.application.use_cases.sessions import SessionService
from bookingdesk.domain.entities.appointment import (
    Appointment,
    AppointmentStatus,
    SessionFormat,
    SessionType,
)
from bookingdesk.domain.entities.client import Client, ClientStatus
from bookingdesk.infrastructure.calendar.mock_calendar import MockCalendar
from bookingdesk.infrastructure.store.memory_store import MemoryRecordStore

TZ = ZoneInfo("Asia/Tokyo")
MONDAY = date(2025, 1, 6)
TUESDAY = date(2025, 1, 7)
SATURDAY = date(2025, 1, 11)
SUNDAY = date(2025, 1, 12)
NOW = datetime(2025, 1, 6, 8, 0, tzinfo=TZ)


class TickingClock:
    """Returns a fixed instant that moves forward one second per call."""

    def __init__(self, start: datetime = NOW) -> None:
        self.current = start

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + timedelta(seconds=1)
        return value


class SyncExecutor(Executor):
    def submit(self, fn, /, *args, **kwargs):
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except BaseException as e:
            future.set_exception(e)
        return future


@dataclass
class RecordingSender(MailSenderPort):
    fail_for: set[str] = field(default_factory=set)
    failures_before_success: int = 0
    sent: list[tuple[str, str, dict[str, Any]]] = field(default_factory=list)
    attempts: int = 0

    def send(self, recipient: str, template_id: str, data: dict[str, Any]) -> str:
        self.attempts += 1
        if recipient in self.fail_for:
            raise MailSendError(f"mailbox unavailable for {recipient}")
        if self.failures_before_success > 0:
            self.failures_before_success -= 1
            raise MailSendError("temporary failure")
        self.sent.append((recipient, template_id, data))
        return f"msg-{len(self.sent)}"


class FlakyStore(MemoryRecordStore):
    """Memory store whose reads or appends can be switched to fail per collection."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_reads: set[str] = set()
        self.fail_appends: set[str] = set()

    def list_all(self, collection):
        if collection in self.fail_reads:
            raise RecordStoreError(f"read {collection} failed")
        return super().list_all(collection)

    def append(self, collection, row):
        if collection in self.fail_appends:
            raise RecordStoreError(f"append {collection} failed")
        super().append(collection, row)


def make_appointment(appointment_id: str, scheduled_at: datetime, **overrides) -> Appointment:
    values = dict(
        id=appointment_id,
        client_id="C1",
        client_name="Taro Suzuki",
        scheduled_at=scheduled_at,
        session_type=SessionType.trial,
        format=SessionFormat.online,
        status=AppointmentStatus.scheduled,
        created_at=NOW - timedelta(days=1),
        updated_at=NOW - timedelta(days=1),
    )
    values.update(overrides)
    return Appointment(**values)


def make_client(client_id: str, email: str, **overrides) -> Client:
    values = dict(
        id=client_id,
        name="Taro Suzuki",
        email=email,
        created_at=NOW - timedelta(days=30),
        status=ClientStatus.inquiry,
    )
    values.update(overrides)
    return Client(**values)


def at(day: date, hh: int, mm: int = 0) -> datetime:
    return datetime(day.year, day.month, day.day, hh, mm, tzinfo=TZ)


def booking_request(**overrides) -> BookingRequest:
    values = dict(
        client_name="Hanako Yamada",
        email="hanako@example.com",
        phone="09012345678",
        scheduled_at="2025-01-06T10:00:00+09:00",
        session_type="trial",
        format="online",
        notes="",
    )
    values.update(overrides)
    return BookingRequest(**values)


def build_desk(
    calendar_enabled: bool = False,
    calendar: MockCalendar | None = None,
    sender: RecordingSender | None = None,
    operator_email: str | None = "operator@example.com",
    reconcile: bool = True,
    store: MemoryRecordStore | None = None,
) -> SimpleNamespace:
    config = BookingConfig(
        timezone=TZ,
        calendar_enabled=calendar_enabled,
        operator_email=operator_email,
        reconcile_after_write=reconcile,
    )
    store = store if store is not None else FlakyStore()
    records = BookingRecords(store, TZ)
    clock = TickingClock()
    calendar = calendar if calendar is not None else (MockCalendar() if calendar_enabled else None)
    sender = sender or RecordingSender()
    dispatcher = NotificationDispatcher(
        sender=sender,
        records=records,
        max_retries=2,
        retry_delay_seconds=0,
        executor=SyncExecutor(),
    )
    slots = SlotCalculator(records, config, calendar=calendar, clock=clock)
    identity = ClientIdentityResolver(records, clock=clock)
    coordinator = BookingCoordinator(
        records=records,
        slots=slots,
        identity=identity,
        notifier=dispatcher,
        config=config,
        calendar=calendar,
        clock=clock,
    )
    sessions = SessionService(records, slots, config, calendar=calendar, clock=clock)
    return SimpleNamespace(
        config=config,
        store=store,
        records=records,
        clock=clock,
        calendar=calendar,
        sender=sender,
        dispatcher=dispatcher,
        slots=slots,
        identity=identity,
        coordinator=coordinator,
        sessions=sessions,
    )


@pytest.fixture
def desk() -> SimpleNamespace:
    return build_desk()
