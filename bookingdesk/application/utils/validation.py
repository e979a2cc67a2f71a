from __future__ import annotations

import re
from datetime import datetime
from zoneinfo import ZoneInfo

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(value: str | None) -> bool:
    return bool(value) and bool(EMAIL_RE.match(value.strip()))


def is_blank(value: object) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def is_whole_minute(value: datetime) -> bool:
    return value.second == 0 and value.microsecond == 0


def parse_instant(value: str | datetime | None, tz: ZoneInfo) -> datetime | None:
    """Parse an ISO date-time into the business timezone. Naive input is business-local."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        raw = value.strip()
        if not raw:
            return None
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            return None
    try:
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=tz)
        # Offsets near year 1 or 9999 can push the local time out of range
        return parsed.astimezone(tz)
    except (OverflowError, ValueError):
        return None
