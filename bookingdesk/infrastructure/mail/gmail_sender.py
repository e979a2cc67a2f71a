from __future__ import annotations

import base64
import logging
from collections.abc import Callable
from email.message import EmailMessage
from typing import Any

import httpx

from bookingdesk.application.exceptions import MailSendError
from bookingdesk.application.ports.mail_sender import MailSenderPort
from bookingdesk.infrastructure.google.auth import GoogleAuthError

SUBJECTS = {
    "trial-confirmation": "Your trial session is booked",
    "session-confirmation": "Your session is booked",
    "booking-operator-notice": "New booking received",
}


def render_plain(template_id: str, data: dict[str, Any]) -> tuple[str, str]:
    """Plain-text subject and body; HTML templates live outside this service."""
    business = data.get("business_name", "")
    subject = SUBJECTS.get(template_id, "Booking update")
    if business:
        subject = f"[{business}] {subject}"
    lines = [f"{key.replace('_', ' ').capitalize()}: {value}" for key, value in data.items() if value not in (None, "")]
    return subject, "\n".join(lines) + "\n"


class GmailSender(MailSenderPort):
    def __init__(
        self,
        token_provider: Callable[[], str],
        sender: str,
        base_url: str = "https://gmail.googleapis.com/gmail/v1",
        client: httpx.Client | None = None,
    ) -> None:
        self._token_provider = token_provider
        self._sender = sender
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=10.0)
        self._logger = logging.getLogger(__name__)

    def send(self, recipient: str, template_id: str, data: dict[str, Any]) -> str:
        subject, body = render_plain(template_id, data)
        message = EmailMessage()
        message["From"] = self._sender
        message["To"] = recipient
        message["Subject"] = subject
        message.set_content(body)
        raw = base64.urlsafe_b64encode(message.as_bytes()).decode("ascii").rstrip("=")

        try:
            headers = {"Authorization": f"Bearer {self._token_provider()}"}
            response = self._client.post(
                f"{self._base_url}/users/me/messages/send",
                headers=headers,
                json={"raw": raw},
            )
        except (httpx.HTTPError, GoogleAuthError) as e:
            raise MailSendError(f"Gmail send failed: {e}") from e

        if response.status_code >= 400:
            self._logger.error(
                "Gmail send failed",
                extra={"recipient": recipient, "template": template_id, "error": response.text[:200]},
            )
            raise MailSendError(f"Gmail send failed with status {response.status_code}")

        message_id = str(response.json().get("id") or "")
        if not message_id:
            raise MailSendError("Gmail returned no message id")
        return message_id
