from __future__ import annotations

import re
import secrets
import string
import time
from datetime import datetime, timezone

_BASE36 = string.digits + string.ascii_lowercase


def random_token(length: int = 6) -> str:
    return "".join(secrets.choice(_BASE36) for _ in range(length))


def generate_id(prefix: str = "", now_ms: int | None = None, token: str | None = None) -> str:
    """Time+random composite id, e.g. ``S1736128800000k3v9qa``."""
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{prefix}{timestamp}{token or random_token()}"


def fallback_meeting_url(scheduled_at: datetime, token: str, base_url: str, tag: str) -> str:
    """Placeholder meeting link derived from the slot instant and a random token.

    The same (instant, token) pair always yields the same URL.
    """
    utc_iso = scheduled_at.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.000Z")
    compact = re.sub(r"[^a-zA-Z0-9]", "", utc_iso)
    return f"{base_url.rstrip('/')}/{compact}-{tag}-{token}"
