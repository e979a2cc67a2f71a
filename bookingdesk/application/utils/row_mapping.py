"""
Mapping between typed entities and the record store's labelled rows.

The store speaks business-language column labels and hands back whatever the
spreadsheet holds: numbers, numeric-looking strings, blanks. Everything is
coerced here so the rest of the code only sees ``Client`` and ``Appointment``.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, TypeVar
from zoneinfo import ZoneInfo

from bookingdesk.application.ports.record_store import Row
from bookingdesk.domain.entities.appointment import (
    Appointment,
    AppointmentStatus,
    SessionFormat,
    SessionType,
)
from bookingdesk.domain.entities.client import Client, ClientStatus, PreferredFormat
from bookingdesk.domain.entities.notification import DispatchOutcome

COLLECTION_CLIENTS = "clients"
COLLECTION_SESSIONS = "sessions"
COLLECTION_EMAIL_LOG = "email_log"

ID_LABELS = {
    COLLECTION_CLIENTS: "Client ID",
    COLLECTION_SESSIONS: "Session ID",
    COLLECTION_EMAIL_LOG: "Mail ID",
}

CLIENT_LABELS = (
    "Client ID",
    "Name",
    "Name (Phonetic)",
    "Email",
    "Phone",
    "Address",
    "Gender",
    "Birthdate",
    "Preferred Format",
    "Status",
    "Notes",
    "Registered At",
)

SESSION_LABELS = (
    "Session ID",
    "Client ID",
    "Client Name",
    "Scheduled At",
    "Session Type",
    "Session Format",
    "Meet URL",
    "Calendar Event ID",
    "Status",
    "Notes",
    "Registered At",
    "Last Updated",
    "Completed At",
)

EMAIL_LOG_LABELS = (
    "Mail ID",
    "Sent At",
    "Recipient",
    "Template",
    "Status",
    "Attempts",
    "Error",
)

HEADERS = {
    COLLECTION_CLIENTS: CLIENT_LABELS,
    COLLECTION_SESSIONS: SESSION_LABELS,
    COLLECTION_EMAIL_LOG: EMAIL_LOG_LABELS,
}

# Only these columns hold numbers; names, notes, phones and the like stay text
NUMERIC_LABELS = {
    COLLECTION_CLIENTS: frozenset(),
    COLLECTION_SESSIONS: frozenset(),
    COLLECTION_EMAIL_LOG: frozenset({"Attempts"}),
}

_NUMERIC_RE = re.compile(r"^-?(0|[1-9]\d*)(\.\d+)?$")
# Spreadsheet serial dates count days from this epoch
_SHEETS_EPOCH = datetime(1899, 12, 30)
_DATETIME_FORMATS = ("%Y/%m/%d %H:%M:%S", "%Y/%m/%d %H:%M", "%Y-%m-%d %H:%M", "%Y/%m/%d", "%Y-%m-%d")

E = TypeVar("E", bound=Enum)


class RowMappingError(ValueError):
    pass


def coerce_cell(value: Any) -> Any:
    """Normalize a raw cell: numeric-looking text becomes a number, the rest stays opaque text.

    Values with a leading zero ("0901234567") are not numbers; they are phone
    numbers and postal codes and must keep their digits.
    """
    if value is None:
        return ""
    if isinstance(value, (bool, int, float)):
        return value
    text = str(value).strip()
    if _NUMERIC_RE.match(text):
        if "." in text:
            return float(text)
        return int(text)
    return text


def coerce_row(row: Row, collection: str) -> Row:
    """Coerce the numeric columns of ``collection``; every other cell is kept as stored."""
    numeric = NUMERIC_LABELS.get(collection, frozenset())
    coerced: Row = {}
    for key, value in row.items():
        if key in (None, ""):
            continue
        if key in numeric:
            coerced[str(key)] = coerce_cell(value)
        else:
            coerced[str(key)] = "" if value is None else value
    return coerced


def id_label(collection: str) -> str:
    return ID_LABELS.get(collection, "ID")


def text(row: Row, label: str) -> str:
    value = row.get(label)
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def optional_text(row: Row, label: str) -> str | None:
    return text(row, label) or None


def parse_datetime(value: Any, tz: ZoneInfo) -> datetime | None:
    """Parse a stored date-time; naive values are read as business-local time."""
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            parsed = _SHEETS_EPOCH + timedelta(days=float(value))
        except (OverflowError, ValueError):
            return None
    else:
        raw = str(value).strip()
        if _NUMERIC_RE.match(raw):
            return parse_datetime(float(raw), tz)
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            parsed = None
            for fmt in _DATETIME_FORMATS:
                try:
                    parsed = datetime.strptime(raw, fmt)
                    break
                except ValueError:
                    continue
            if parsed is None:
                return None
    try:
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=tz)
        return parsed.astimezone(tz)
    except (OverflowError, ValueError):
        return None


def format_datetime(value: datetime | None) -> str:
    if value is None:
        return ""
    return value.isoformat(timespec="seconds")


def _enum(enum_cls: type[E], raw: str, default: E) -> E:
    try:
        return enum_cls(raw)
    except ValueError:
        return default


def client_to_row(client: Client) -> Row:
    return {
        "Client ID": client.id,
        "Name": client.name,
        "Name (Phonetic)": client.phonetic_name or "",
        "Email": client.email,
        "Phone": client.phone,
        "Address": client.address,
        "Gender": client.gender,
        "Birthdate": client.birthdate,
        "Preferred Format": client.preferred_format.value if client.preferred_format else "",
        "Status": client.status.value,
        "Notes": client.notes,
        "Registered At": format_datetime(client.created_at),
    }


def client_from_row(row: Row, tz: ZoneInfo) -> Client:
    row = coerce_row(row, COLLECTION_CLIENTS)
    client_id = text(row, "Client ID")
    if not client_id:
        raise RowMappingError("client row without Client ID")
    preferred = text(row, "Preferred Format")
    return Client(
        id=client_id,
        name=text(row, "Name"),
        email=text(row, "Email"),
        created_at=parse_datetime(row.get("Registered At"), tz) or datetime.min.replace(tzinfo=tz),
        phone=text(row, "Phone"),
        phonetic_name=optional_text(row, "Name (Phonetic)"),
        address=text(row, "Address"),
        gender=text(row, "Gender"),
        birthdate=text(row, "Birthdate"),
        preferred_format=_enum(PreferredFormat, preferred, None) if preferred else None,
        status=_enum(ClientStatus, text(row, "Status"), ClientStatus.inquiry),
        notes=text(row, "Notes"),
    )


def appointment_to_row(appointment: Appointment) -> Row:
    return {
        "Session ID": appointment.id,
        "Client ID": appointment.client_id,
        "Client Name": appointment.client_name,
        "Scheduled At": format_datetime(appointment.scheduled_at),
        "Session Type": appointment.session_type.value,
        "Session Format": appointment.format.value,
        "Meet URL": appointment.meeting_url or "",
        "Calendar Event ID": appointment.calendar_event_id or "",
        "Status": appointment.status.value,
        "Notes": appointment.notes,
        "Registered At": format_datetime(appointment.created_at),
        "Last Updated": format_datetime(appointment.updated_at),
        "Completed At": format_datetime(appointment.completed_at),
    }


def appointment_from_row(row: Row, tz: ZoneInfo) -> Appointment:
    row = coerce_row(row, COLLECTION_SESSIONS)
    appointment_id = text(row, "Session ID")
    if not appointment_id:
        raise RowMappingError("session row without Session ID")
    scheduled_at = parse_datetime(row.get("Scheduled At"), tz)
    if scheduled_at is None:
        raise RowMappingError(f"session {appointment_id} has no readable Scheduled At")
    created_at = parse_datetime(row.get("Registered At"), tz) or scheduled_at
    return Appointment(
        id=appointment_id,
        client_id=text(row, "Client ID"),
        client_name=text(row, "Client Name"),
        scheduled_at=scheduled_at,
        session_type=_enum(SessionType, text(row, "Session Type"), SessionType.custom),
        format=_enum(SessionFormat, text(row, "Session Format"), SessionFormat.online),
        status=_enum(AppointmentStatus, text(row, "Status"), AppointmentStatus.scheduled),
        meeting_url=optional_text(row, "Meet URL"),
        calendar_event_id=optional_text(row, "Calendar Event ID"),
        notes=text(row, "Notes"),
        created_at=created_at,
        updated_at=parse_datetime(row.get("Last Updated"), tz) or created_at,
        completed_at=parse_datetime(row.get("Completed At"), tz),
    )


def outcome_to_row(outcome: DispatchOutcome, mail_id: str) -> Row:
    return {
        "Mail ID": outcome.message_id or mail_id,
        "Sent At": format_datetime(outcome.sent_at),
        "Recipient": outcome.recipient,
        "Template": outcome.template_id,
        "Status": "sent" if outcome.success else "failed",
        "Attempts": outcome.attempts,
        "Error": outcome.reason or "",
    }
