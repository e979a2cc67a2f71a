from functools import lru_cache
import logging
import threading
from zoneinfo import ZoneInfo

from bookingdesk.core.config import settings
from bookingdesk.application.booking_config import BookingConfig, parse_slot_times, parse_weekdays
from bookingdesk.application.ports.calendar import CalendarPort
from bookingdesk.application.ports.mail_sender import MailSenderPort
from bookingdesk.application.ports.record_store import RecordStorePort
from bookingdesk.application.records import BookingRecords
from bookingdesk.application.use_cases.availability import SlotCalculator
from bookingdesk.application.use_cases.booking import BookingCoordinator
from bookingdesk.application.use_cases.identity import ClientIdentityResolver
from bookingdesk.application.use_cases.notifications import NotificationDispatcher
from bookingdesk.application.use_cases.sessions import SessionService
from bookingdesk.application.utils.row_mapping import (
    COLLECTION_CLIENTS,
    COLLECTION_EMAIL_LOG,
    COLLECTION_SESSIONS,
)
from bookingdesk.infrastructure.calendar.mock_calendar import MockCalendar
from bookingdesk.infrastructure.google.auth import GoogleTokenProvider
from bookingdesk.infrastructure.google.calendar_gateway import GoogleCalendarGateway
from bookingdesk.infrastructure.google.sheets_store import SheetsRecordStore
from bookingdesk.infrastructure.mail.gmail_sender import GmailSender
from bookingdesk.infrastructure.mail.log_sender import LogMailSender
from bookingdesk.infrastructure.store.json_store import JsonRecordStore
from bookingdesk.infrastructure.store.memory_store import MemoryRecordStore

logger = logging.getLogger(__name__)

_record_store: RecordStorePort | None = None
_dispatcher: NotificationDispatcher | None = None
# Guard the lazy singletons; first requests may arrive on several worker threads
_store_lock = threading.Lock()
_dispatcher_lock = threading.Lock()


def _is_dev() -> bool:
    return settings.ENV.lower() in {"dev", "local"}


@lru_cache
def get_booking_config() -> BookingConfig:
    return BookingConfig(
        timezone=ZoneInfo(settings.BUSINESS_TIMEZONE),
        slot_times=parse_slot_times(settings.SLOT_TIMES),
        closed_weekdays=parse_weekdays(settings.CLOSED_WEEKDAYS),
        session_duration_minutes=settings.SESSION_DURATION_MINUTES,
        calendar_enabled=settings.CALENDAR_INTEGRATION_ENABLED,
        calendar_events_for_in_person=settings.CALENDAR_EVENTS_FOR_IN_PERSON,
        fallback_meeting_base_url=settings.FALLBACK_MEETING_BASE_URL,
        fallback_meeting_tag=settings.FALLBACK_MEETING_TAG,
        reconcile_after_write=settings.BOOKING_RECONCILE_AFTER_WRITE,
        business_name=settings.BUSINESS_NAME,
        operator_email=settings.OPERATOR_EMAIL or None,
    )


@lru_cache
def get_token_provider() -> GoogleTokenProvider | None:
    if not (settings.GOOGLE_CLIENT_ID and settings.GOOGLE_CLIENT_SECRET and settings.GOOGLE_REFRESH_TOKEN):
        return None
    return GoogleTokenProvider(
        client_id=settings.GOOGLE_CLIENT_ID,
        client_secret=settings.GOOGLE_CLIENT_SECRET,
        refresh_token=settings.GOOGLE_REFRESH_TOKEN,
        token_url=settings.GOOGLE_TOKEN_URL,
    )


def get_record_store() -> RecordStorePort:
    global _record_store
    if _record_store is not None:
        return _record_store
    with _store_lock:
        if _record_store is None:
            _record_store = _build_record_store()
        return _record_store


def _build_record_store() -> RecordStorePort:
    provider = settings.STORE_PROVIDER.lower()
    if provider == "sheets":
        token_provider = get_token_provider()
        if token_provider is None or not settings.SPREADSHEET_ID:
            raise ValueError("STORE_PROVIDER=sheets needs SPREADSHEET_ID and Google OAuth credentials")
        store: RecordStorePort = SheetsRecordStore(
            spreadsheet_id=settings.SPREADSHEET_ID,
            token_provider=token_provider,
            sheet_names={
                COLLECTION_CLIENTS: settings.SHEET_NAME_CLIENTS,
                COLLECTION_SESSIONS: settings.SHEET_NAME_SESSIONS,
                COLLECTION_EMAIL_LOG: settings.SHEET_NAME_EMAIL_LOG,
            },
            base_url=settings.SHEETS_BASE_URL,
        )
    elif provider == "json":
        store = JsonRecordStore(data_dir=settings.STORE_DATA_DIR)
    else:
        store = MemoryRecordStore()
    logger.info("Record store ready", extra={"reason": provider})
    return store


@lru_cache
def get_calendar() -> CalendarPort | None:
    if not settings.CALENDAR_INTEGRATION_ENABLED:
        return None
    token_provider = get_token_provider()
    if token_provider is None or _is_dev():
        logger.info("Using MockCalendar (credentials missing or ENV=dev/local)")
        return MockCalendar()
    return GoogleCalendarGateway(
        token_provider=token_provider,
        calendar_id=settings.GOOGLE_CALENDAR_ID,
        timezone_name=settings.BUSINESS_TIMEZONE,
        base_url=settings.GOOGLE_CALENDAR_BASE_URL,
    )


@lru_cache
def get_mail_sender() -> MailSenderPort:
    if settings.MAIL_PROVIDER.lower() == "gmail":
        token_provider = get_token_provider()
        if token_provider is not None:
            return GmailSender(
                token_provider=token_provider,
                sender=settings.EMAIL_SENDER,
                base_url=settings.GMAIL_BASE_URL,
            )
        if not _is_dev():
            raise ValueError("MAIL_PROVIDER=gmail needs Google OAuth credentials")
        logger.warning("Gmail credentials missing; falling back to log-only mail in dev")
    return LogMailSender()


def get_records() -> BookingRecords:
    return BookingRecords(get_record_store(), get_booking_config().timezone)


def get_notification_dispatcher() -> NotificationDispatcher:
    global _dispatcher
    if _dispatcher is not None:
        return _dispatcher
    with _dispatcher_lock:
        if _dispatcher is None:
            _dispatcher = NotificationDispatcher(
                sender=get_mail_sender(),
                records=get_records(),
                max_retries=settings.NOTIFY_MAX_RETRIES,
                retry_delay_seconds=settings.NOTIFY_RETRY_DELAY_SECONDS,
                max_workers=settings.NOTIFY_MAX_WORKERS,
            )
        return _dispatcher


def get_slot_calculator() -> SlotCalculator:
    return SlotCalculator(
        records=get_records(),
        config=get_booking_config(),
        calendar=get_calendar(),
    )


def get_booking_coordinator() -> BookingCoordinator:
    config = get_booking_config()
    records = get_records()
    slots = get_slot_calculator()
    return BookingCoordinator(
        records=records,
        slots=slots,
        identity=ClientIdentityResolver(records, clock=slots.now),
        notifier=get_notification_dispatcher(),
        config=config,
        calendar=get_calendar(),
    )


def get_session_service() -> SessionService:
    return SessionService(
        records=get_records(),
        slots=get_slot_calculator(),
        config=get_booking_config(),
        calendar=get_calendar(),
    )


def shutdown() -> None:
    global _dispatcher
    with _dispatcher_lock:
        dispatcher, _dispatcher = _dispatcher, None
    if dispatcher is not None:
        dispatcher.shutdown(wait=True)
