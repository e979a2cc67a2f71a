"""
Tests for the row <-> entity mapping at the record store boundary, and id helpers.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from conftest import MONDAY, NOW, TZ, at, make_appointment, make_client
from bookingdesk.application.booking_config import parse_slot_times, parse_weekdays
from bookingdesk.application.utils.ids import fallback_meeting_url, generate_id, random_token
from bookingdesk.application.utils.row_mapping import (
    COLLECTION_EMAIL_LOG,
    COLLECTION_SESSIONS,
    RowMappingError,
    appointment_from_row,
    appointment_to_row,
    client_from_row,
    client_to_row,
    coerce_cell,
    coerce_row,
    parse_datetime,
)
from bookingdesk.domain.entities.appointment import AppointmentStatus, SessionFormat, SessionType
from bookingdesk.domain.entities.client import ClientStatus, PreferredFormat, can_advance


def test_numeric_text_becomes_numbers():
    """Plain numbers are coerced; everything else stays text."""
    assert coerce_cell("42") == 42
    assert coerce_cell("3.5") == 3.5
    assert coerce_cell(" 7 ") == 7
    assert coerce_cell("abc") == "abc"
    assert coerce_cell(None) == ""


def test_leading_zeros_are_preserved():
    """Phone numbers and postal codes keep their digits."""
    assert coerce_cell("09012345678") == "09012345678"
    assert coerce_cell("0120") == "0120"
    assert coerce_cell("0") == 0


def test_sheet_dates_in_several_shapes():
    """ISO strings, slash dates and serial numbers all land in business time."""
    expected = at(MONDAY, 12)

    assert parse_datetime("2025-01-06T12:00:00+09:00", TZ) == expected
    assert parse_datetime("2025-01-06T03:00:00Z", TZ) == expected
    assert parse_datetime("2025/01/06 12:00", TZ) == expected
    assert parse_datetime("2025-01-06 12:00", TZ) == expected
    assert parse_datetime(45663.5, TZ) == expected
    assert parse_datetime("", TZ) is None
    assert parse_datetime("someday", TZ) is None


def test_client_row_round_trip():
    """A client written as a row reads back unchanged."""
    client = make_client(
        "C1736128800000abc123",
        "taro@example.com",
        phone="08011112222",
        phonetic_name="Taro",
        preferred_format=PreferredFormat.either,
        status=ClientStatus.trial_after,
        created_at=NOW,
    )

    assert client_from_row(client_to_row(client), TZ) == client


def test_client_row_tolerates_numeric_cells():
    """A phone the sheet returned as a number still reads as text."""
    row = {"Client ID": "C1", "Name": "Taro", "Email": "t@example.com", "Phone": 8011112222.0, "Status": "bogus"}

    client = client_from_row(row, TZ)

    assert client.phone == "8011112222"
    assert client.status == ClientStatus.inquiry
    assert client.preferred_format is None


def test_client_row_without_id_is_rejected():
    """Rows missing the key column cannot be mapped."""
    with pytest.raises(RowMappingError):
        client_from_row({"Name": "Nobody"}, TZ)


def test_session_row_defaults_unknown_values():
    """Unrecognized type, format and status fall back to safe defaults."""
    row = {
        "Session ID": "S1",
        "Client ID": 12345,
        "Scheduled At": "2025/01/06 10:00",
        "Session Type": "weekly",
        "Session Format": "phone",
        "Status": "",
    }

    appointment = appointment_from_row(row, TZ)

    assert appointment.client_id == "12345"
    assert appointment.session_type == SessionType.custom
    assert appointment.format == SessionFormat.online
    assert appointment.status == AppointmentStatus.scheduled
    assert appointment.created_at == appointment.scheduled_at
    assert appointment.meeting_url is None


def test_session_row_without_date_is_rejected():
    """A session with no readable start time is unusable."""
    with pytest.raises(RowMappingError):
        appointment_from_row({"Session ID": "S1", "Scheduled At": "tbd"}, TZ)


def test_generated_ids_are_prefixed_and_timestamped():
    """Ids are prefix + epoch millis + six base36 characters."""
    assert generate_id("S", now_ms=1736128800000, token="k3v9qa") == "S1736128800000k3v9qa"
    token = random_token()
    assert len(token) == 6
    assert token.isalnum() and token == token.lower()
    assert generate_id("C") != generate_id("C")


def test_fallback_meeting_url_is_deterministic():
    """Same instant and token give the same link; the instant is encoded in UTC."""
    instant = at(MONDAY, 10)

    url = fallback_meeting_url(instant, "abc123", "https://meet.google.com/", "mec")

    assert url == "https://meet.google.com/20250106T010000000Z-mec-abc123"
    assert fallback_meeting_url(instant.astimezone(timezone.utc), "abc123", "https://meet.google.com", "mec") == url


def test_client_status_only_moves_forward():
    """The funnel never goes backwards; suspension is always possible."""
    assert can_advance(ClientStatus.inquiry, ClientStatus.trial_before)
    assert can_advance(ClientStatus.trial_before, ClientStatus.trial_after)
    assert not can_advance(ClientStatus.ongoing, ClientStatus.trial_before)
    assert can_advance(ClientStatus.ongoing, ClientStatus.suspended)
    assert not can_advance(ClientStatus.suspended, ClientStatus.ongoing)


def test_slot_and_weekday_settings_parse():
    """Comma-separated settings become normalized tuples and sets."""
    assert parse_slot_times("9:30, 13:00,") == ("09:30", "13:00")
    assert parse_weekdays("5,6") == frozenset({5, 6})
    with pytest.raises(ValueError):
        parse_weekdays("7")
    with pytest.raises(ValueError):
        parse_slot_times(" , ")


def test_naive_datetime_is_business_local():
    """A datetime without zone info is taken as business time."""
    assert parse_datetime(datetime(2025, 1, 6, 12, 0), TZ) == at(MONDAY, 12)


def test_text_columns_keep_their_exact_digits():
    """Free text that looks like a number reads back exactly as written."""
    appointment = make_appointment("S1", at(MONDAY, 10), notes="2.50", client_name="10.0")
    client = make_client("C1", "taro@example.com", address="10.0", notes="2.50", birthdate="19900101", created_at=NOW)

    stored_appointment = {key: str(value) for key, value in appointment_to_row(appointment).items()}
    stored_client = {key: str(value) for key, value in client_to_row(client).items()}

    assert appointment_from_row(stored_appointment, TZ).notes == "2.50"
    assert appointment_from_row(stored_appointment, TZ).client_name == "10.0"
    assert client_from_row(stored_client, TZ) == client


def test_only_numeric_columns_are_coerced():
    """Attempts in the email log becomes a number; other columns are left as stored."""
    row = coerce_row({"Attempts": "3", "Error": "2.50", "Recipient": "a@example.com"}, COLLECTION_EMAIL_LOG)

    assert row == {"Attempts": 3, "Error": "2.50", "Recipient": "a@example.com"}
    assert coerce_row({"Notes": "10.0", "Status": None}, COLLECTION_SESSIONS) == {"Notes": "10.0", "Status": ""}


def test_serial_dates_stored_as_text_are_understood():
    """A serial number that arrives as text is still a date."""
    assert parse_datetime("45663.5", TZ) == at(MONDAY, 12)


def test_out_of_range_dates_read_as_missing():
    """Instants that cannot be expressed in business time are treated as unreadable."""
    assert parse_datetime("0001-01-01T00:00:00+14:00", TZ) is None
    assert parse_datetime(1e12, TZ) is None
