from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any
from urllib.parse import quote

import httpx

from bookingdesk.application.exceptions import CalendarError
from bookingdesk.application.ports.calendar import CalendarPort
from bookingdesk.application.utils.ids import random_token
from bookingdesk.domain.entities.calendar_event import CalendarEvent, EventSpec
from bookingdesk.infrastructure.google.auth import GoogleAuthError


class GoogleCalendarGateway(CalendarPort):
    def __init__(
        self,
        token_provider: Callable[[], str],
        calendar_id: str = "primary",
        timezone_name: str = "Asia/Tokyo",
        base_url: str = "https://www.googleapis.com/calendar/v3",
        client: httpx.Client | None = None,
    ) -> None:
        self._token_provider = token_provider
        self._calendar_id = calendar_id
        self._timezone_name = timezone_name
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=10.0)
        self._logger = logging.getLogger(__name__)

    def list_events(self, start: datetime, end: datetime) -> list[CalendarEvent]:
        params: dict[str, Any] = {
            "timeMin": start.isoformat(),
            "timeMax": end.isoformat(),
            "singleEvents": "true",
            "orderBy": "startTime",
        }
        events: list[CalendarEvent] = []
        while True:
            data = self._request("GET", self._events_url(), params=params)
            for item in data.get("items", []) or []:
                event = _parse_event(item)
                if event is not None:
                    events.append(event)
            page_token = data.get("nextPageToken")
            if not page_token:
                break
            params = dict(params, pageToken=page_token)
        return events

    def create_event(self, spec: EventSpec) -> CalendarEvent:
        body = self._event_body(spec)
        params = {"sendUpdates": "all"}
        if spec.create_meeting_link:
            body["conferenceData"] = {
                "createRequest": {
                    "requestId": f"bk-{random_token(10)}",
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            }
            params["conferenceDataVersion"] = "1"

        data = self._request("POST", self._events_url(), params=params, json=body)
        event = _parse_event(data)
        if event is None:
            raise CalendarError("Calendar returned an event without id or start")
        self._logger.info("Calendar event created", extra={"event_id": event.id})
        return event

    def update_event(self, event_id: str, spec: EventSpec) -> CalendarEvent:
        body = self._event_body(spec)
        # Keep description, attendees and conference data already on the event
        for key in ("description", "location", "attendees"):
            if not body.get(key):
                body.pop(key, None)
        data = self._request(
            "PATCH",
            f"{self._events_url()}/{quote(event_id, safe='')}",
            params={"sendUpdates": "all"},
            json=body,
        )
        event = _parse_event(data)
        if event is None:
            raise CalendarError(f"Calendar returned an unreadable event for {event_id}")
        self._logger.info("Calendar event updated", extra={"event_id": event_id})
        return event

    def delete_event(self, event_id: str) -> None:
        url = f"{self._events_url()}/{quote(event_id, safe='')}"
        try:
            headers = {"Authorization": f"Bearer {self._token_provider()}"}
            response = self._client.delete(url, params={"sendUpdates": "all"}, headers=headers)
        except (httpx.HTTPError, GoogleAuthError) as e:
            raise CalendarError(f"Calendar DELETE failed: {e}") from e
        if response.status_code in (404, 410):
            self._logger.info("Calendar event already gone", extra={"event_id": event_id})
            return
        if response.status_code >= 400:
            raise CalendarError(f"Calendar DELETE failed with status {response.status_code}")
        self._logger.info("Calendar event deleted", extra={"event_id": event_id})

    def _event_body(self, spec: EventSpec) -> dict[str, Any]:
        return {
            "summary": spec.title,
            "description": spec.description,
            "location": spec.location,
            "start": {"dateTime": spec.start.isoformat(), "timeZone": self._timezone_name},
            "end": {"dateTime": spec.end.isoformat(), "timeZone": self._timezone_name},
            "attendees": [{"email": email} for email in spec.attendee_emails],
        }

    def _events_url(self) -> str:
        return f"{self._base_url}/calendars/{quote(self._calendar_id, safe='')}/events"

    def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        try:
            headers = {"Authorization": f"Bearer {self._token_provider()}"}
            response = self._client.request(method, url, headers=headers, **kwargs)
            response.raise_for_status()
        except (httpx.HTTPError, GoogleAuthError) as e:
            self._logger.error("Calendar request failed", extra={"error": str(e)})
            raise CalendarError(f"Calendar {method} failed: {e}") from e
        if not response.content:
            return {}
        return response.json()


def _parse_event(item: dict[str, Any]) -> CalendarEvent | None:
    event_id = item.get("id")
    start_raw = (item.get("start") or {}).get("dateTime")
    if not event_id or not start_raw:
        # All-day events carry only a date and never occupy a timed slot
        return None
    try:
        start = datetime.fromisoformat(start_raw.replace("Z", "+00:00"))
    except ValueError:
        return None
    end_raw = (item.get("end") or {}).get("dateTime")
    end = None
    if end_raw:
        try:
            end = datetime.fromisoformat(end_raw.replace("Z", "+00:00"))
        except ValueError:
            end = None
    return CalendarEvent(
        id=str(event_id),
        start=start,
        end=end,
        title=item.get("summary") or "",
        status=item.get("status") or "confirmed",
        meeting_url=_meeting_url(item),
        html_link=item.get("htmlLink"),
    )


def _meeting_url(item: dict[str, Any]) -> str | None:
    if item.get("hangoutLink"):
        return item["hangoutLink"]
    for entry in (item.get("conferenceData") or {}).get("entryPoints", []) or []:
        if entry.get("entryPointType") == "video" and entry.get("uri"):
            return entry["uri"]
    return None
