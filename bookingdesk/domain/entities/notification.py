from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class NotificationMessage:
    recipient: str
    template_id: str
    data: dict[str, Any] = field(default_factory=dict)
    audience: str = "client"  # "client" | "operator"


@dataclass(frozen=True)
class DispatchOutcome:
    recipient: str
    template_id: str
    success: bool
    attempts: int
    sent_at: datetime
    message_id: str | None = None
    reason: str | None = None
