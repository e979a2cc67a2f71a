"""
Tests for the Google Sheets, Calendar and Gmail adapters against a mocked HTTP transport.
"""

from __future__ import annotations

import base64
import json

import httpx
import pytest

from conftest import MONDAY, at
from bookingdesk.application.exceptions import CalendarError, MailSendError, RecordStoreError
from bookingdesk.application.utils.row_mapping import COLLECTION_SESSIONS
from bookingdesk.domain.entities.calendar_event import EventSpec
from bookingdesk.infrastructure.google.auth import GoogleAuthError, GoogleTokenProvider
from bookingdesk.infrastructure.google.calendar_gateway import GoogleCalendarGateway
from bookingdesk.infrastructure.google.sheets_store import SheetsRecordStore, column_letter
from bookingdesk.infrastructure.mail.gmail_sender import GmailSender


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


def _sheets(handler) -> SheetsRecordStore:
    return SheetsRecordStore(
        spreadsheet_id="sheet123",
        token_provider=lambda: "tok",
        sheet_names={COLLECTION_SESSIONS: "Sessions"},
        client=_client(handler),
    )


def test_token_is_cached_until_expiry():
    """The refresh endpoint is called once while the token is fresh."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={"access_token": "tok-1", "expires_in": 3600})

    provider = GoogleTokenProvider("id", "secret", "refresh", client=_client(handler))

    assert provider() == "tok-1"
    assert provider.get_token() == "tok-1"
    assert len(calls) == 1
    assert b"grant_type=refresh_token" in calls[0].content


def test_token_refresh_failure_raises():
    """A rejected refresh token is an auth error."""
    provider = GoogleTokenProvider(
        "id", "secret", "refresh", client=_client(lambda request: httpx.Response(400, json={"error": "invalid_grant"}))
    )

    with pytest.raises(GoogleAuthError):
        provider.get_token()


def test_column_letters():
    """1-based column numbers convert to A1 notation."""
    assert column_letter(1) == "A"
    assert column_letter(13) == "M"
    assert column_letter(27) == "AA"


def test_sheets_list_maps_headers_and_skips_blank_rows():
    """Row 1 labels the columns; blank rows are ignored; short rows are padded."""

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["Authorization"] == "Bearer tok"
        assert "'Sessions'!A1:ZZ" in request.url.path
        return httpx.Response(
            200,
            json={"values": [["Session ID", "Scheduled At", "Notes"], ["S1", "2025-01-06T10:00:00+09:00"], ["", ""]]},
        )

    rows = _sheets(handler).list_all(COLLECTION_SESSIONS)

    assert rows == [{"Session ID": "S1", "Scheduled At": "2025-01-06T10:00:00+09:00", "Notes": ""}]


def test_sheets_append_follows_header_order():
    """Values are appended RAW in the sheet's own column order."""
    appended = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200, json={"values": [["Session ID", "Phone", "Status"]]})
        assert request.url.path.endswith(":append")
        assert request.url.params["valueInputOption"] == "RAW"
        appended.append(json.loads(request.content))
        return httpx.Response(200, json={})

    _sheets(handler).append(COLLECTION_SESSIONS, {"Status": "scheduled", "Session ID": "S1", "Phone": "0901234567", "Extra": "x"})

    assert appended == [{"values": [["S1", "0901234567", "scheduled"]]}]


def test_sheets_append_to_empty_sheet_writes_headers_first():
    """An empty sheet gets the known header row before the first record."""
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append((request.method, json.loads(request.content) if request.content else None))
        if request.method == "GET":
            return httpx.Response(200, json={"range": "Sessions!A1:ZZ1"})
        return httpx.Response(200, json={})

    _sheets(handler).append(COLLECTION_SESSIONS, {"Session ID": "S1"})

    methods = [method for method, _ in requests]
    assert methods == ["GET", "PUT", "POST"]
    header_row = requests[1][1]["values"][0]
    assert header_row[0] == "Session ID"
    assert requests[2][1]["values"][0][0] == "S1"


def test_sheets_update_rewrites_the_matching_row():
    """The row is located by id and written back with the partial merged in."""
    puts = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(
                200,
                json={"values": [["Session ID", "Status"], ["S1", "scheduled"], ["S2", "scheduled"]]},
            )
        puts.append((request.url.path, json.loads(request.content)))
        return httpx.Response(200, json={})

    _sheets(handler).update_by_id(COLLECTION_SESSIONS, "S2", {"Status": "canceled"})

    path, body = puts[0]
    assert path.endswith("'Sessions'!A3:B3")
    assert body == {"values": [["S2", "canceled"]]}


def test_sheets_http_failure_is_a_store_error():
    """Server errors surface as RecordStoreError."""
    store = _sheets(lambda request: httpx.Response(500, text="backend error"))

    with pytest.raises(RecordStoreError):
        store.list_all(COLLECTION_SESSIONS)


def test_sheets_update_missing_id_raises():
    """Updating an id that is not in the sheet fails."""
    store = _sheets(lambda request: httpx.Response(200, json={"values": [["Session ID"], ["S1"]]}))

    with pytest.raises(RecordStoreError):
        store.update_by_id(COLLECTION_SESSIONS, "S9", {"Status": "canceled"})


def test_calendar_create_requests_meet_link():
    """Online sessions ask for a Meet conference and read the link back."""
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "id": "evt1",
                "status": "confirmed",
                "start": {"dateTime": "2025-01-06T10:00:00+09:00"},
                "end": {"dateTime": "2025-01-06T11:00:00+09:00"},
                "conferenceData": {"entryPoints": [{"entryPointType": "video", "uri": "https://meet.google.com/abc-defg-hij"}]},
            },
        )

    gateway = GoogleCalendarGateway(lambda: "tok", client=_client(handler))
    event = gateway.create_event(
        EventSpec(start=at(MONDAY, 10), end=at(MONDAY, 11), title="Trial session: Hanako", create_meeting_link=True)
    )

    assert event.id == "evt1"
    assert event.meeting_url == "https://meet.google.com/abc-defg-hij"
    request = seen[0]
    assert request.url.params["conferenceDataVersion"] == "1"
    body = json.loads(request.content)
    assert body["conferenceData"]["createRequest"]["conferenceSolutionKey"] == {"type": "hangoutsMeet"}
    assert body["start"]["timeZone"] == "Asia/Tokyo"


def test_calendar_list_pages_and_skips_all_day_events():
    """All pages are read; date-only events are ignored."""

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.params.get("pageToken") == "p2":
            return httpx.Response(
                200,
                json={"items": [{"id": "e3", "status": "cancelled", "start": {"dateTime": "2025-01-06T14:00:00+09:00"}}]},
            )
        return httpx.Response(
            200,
            json={
                "items": [
                    {"id": "e1", "start": {"dateTime": "2025-01-06T10:00:00+09:00"}, "hangoutLink": "https://meet.google.com/e1"},
                    {"id": "e2", "start": {"date": "2025-01-06"}},
                ],
                "nextPageToken": "p2",
            },
        )

    gateway = GoogleCalendarGateway(lambda: "tok", client=_client(handler))
    events = gateway.list_events(at(MONDAY, 0), at(MONDAY, 23))

    assert [(e.id, e.is_active) for e in events] == [("e1", True), ("e3", False)]
    assert events[0].meeting_url == "https://meet.google.com/e1"


def test_calendar_delete_tolerates_missing_event():
    """Deleting an event that is already gone succeeds."""
    gateway = GoogleCalendarGateway(lambda: "tok", client=_client(lambda request: httpx.Response(410)))

    gateway.delete_event("evt1")


def test_calendar_errors_are_wrapped():
    """Provider failures become CalendarError."""
    gateway = GoogleCalendarGateway(lambda: "tok", client=_client(lambda request: httpx.Response(503)))

    with pytest.raises(CalendarError):
        gateway.delete_event("evt1")
    with pytest.raises(CalendarError):
        gateway.list_events(at(MONDAY, 0), at(MONDAY, 23))


def test_gmail_sends_raw_message():
    """The message is base64url-encoded and the Gmail id returned."""
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("/users/me/messages/send")
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"id": "gmail-1"})

    sender = GmailSender(lambda: "tok", sender="desk@example.com", client=_client(handler))
    message_id = sender.send("hanako@example.com", "trial-confirmation", {"business_name": "MEC", "time": "10:00"})

    assert message_id == "gmail-1"
    raw = bodies[0]["raw"]
    decoded = base64.urlsafe_b64decode(raw + "=" * (-len(raw) % 4)).decode("utf-8")
    assert "To: hanako@example.com" in decoded
    assert "[MEC] Your trial session is booked" in decoded
    assert "Time: 10:00" in decoded


def test_gmail_failure_raises():
    """A rejected send is a MailSendError for the dispatcher to retry."""
    sender = GmailSender(lambda: "tok", sender="desk@example.com", client=_client(lambda request: httpx.Response(500)))

    with pytest.raises(MailSendError):
        sender.send("hanako@example.com", "trial-confirmation", {})
