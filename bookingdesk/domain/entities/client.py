from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class ClientStatus(str, Enum):
    inquiry = "inquiry"
    trial_before = "trial_before"
    trial_after = "trial_after"
    ongoing = "ongoing"
    completed = "completed"
    suspended = "suspended"


class PreferredFormat(str, Enum):
    online = "online"
    in_person = "in_person"
    either = "either"


# Funnel order; suspended sits outside it and can be reached from anywhere.
CLIENT_STATUS_ORDER = (
    ClientStatus.inquiry,
    ClientStatus.trial_before,
    ClientStatus.trial_after,
    ClientStatus.ongoing,
    ClientStatus.completed,
)


def can_advance(current: ClientStatus, target: ClientStatus) -> bool:
    """True when moving from ``current`` to ``target`` never goes backwards in the funnel."""
    if current == ClientStatus.suspended:
        return False
    if target == ClientStatus.suspended:
        return True
    return CLIENT_STATUS_ORDER.index(target) > CLIENT_STATUS_ORDER.index(current)


@dataclass(frozen=True)
class Client:
    id: str
    name: str
    email: str
    created_at: datetime
    phone: str = ""
    phonetic_name: str | None = None
    address: str = ""
    gender: str = ""
    birthdate: str = ""
    preferred_format: PreferredFormat | None = None
    status: ClientStatus = ClientStatus.inquiry
    notes: str = ""

    @property
    def email_key(self) -> str:
        return normalize_email(self.email)


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()
