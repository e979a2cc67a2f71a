from __future__ import annotations

from dataclasses import dataclass, field
from datetime import time
from zoneinfo import ZoneInfo


@dataclass(frozen=True)
class BookingConfig:
    """Deployment-time switches for availability and booking, passed in at construction."""

    timezone: ZoneInfo = field(default_factory=lambda: ZoneInfo("Asia/Tokyo"))
    slot_times: tuple[str, ...] = ("10:00", "12:00", "14:00", "16:00")
    closed_weekdays: frozenset[int] = frozenset({5, 6})
    session_duration_minutes: int = 60
    calendar_enabled: bool = False
    calendar_events_for_in_person: bool = True
    fallback_meeting_base_url: str = "https://meet.google.com"
    fallback_meeting_tag: str = "mec"
    reconcile_after_write: bool = True
    business_name: str = "Mind Engineering Coaching"
    operator_email: str | None = None

    def slot_time(self, time_of_day: str) -> time:
        hour, minute = time_of_day.split(":")
        return time(int(hour), int(minute))


def parse_slot_times(raw: str) -> tuple[str, ...]:
    times: list[str] = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        hour, _, minute = part.partition(":")
        times.append(f"{int(hour):02d}:{int(minute or 0):02d}")
    if not times:
        raise ValueError("SLOT_TIMES must list at least one HH:MM time")
    return tuple(times)


def parse_weekdays(raw: str) -> frozenset[int]:
    days = {int(part) for part in raw.split(",") if part.strip()}
    if any(day < 0 or day > 6 for day in days):
        raise ValueError("CLOSED_WEEKDAYS entries must be 0 (Monday) through 6 (Sunday)")
    return frozenset(days)
