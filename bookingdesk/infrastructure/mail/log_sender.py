from __future__ import annotations

import logging
from typing import Any

from bookingdesk.application.ports.mail_sender import MailSenderPort
from bookingdesk.application.utils.ids import generate_id


class LogMailSender(MailSenderPort):
    def __init__(self) -> None:
        self._logger = logging.getLogger(__name__)

    def send(self, recipient: str, template_id: str, data: dict[str, Any]) -> str:
        self._logger.info("WOULD_SEND_EMAIL", extra={"recipient": recipient, "template": template_id})
        return generate_id("log_")
