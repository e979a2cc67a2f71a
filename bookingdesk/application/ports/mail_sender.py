from abc import ABC, abstractmethod
from typing import Any


class MailSenderPort(ABC):
    @abstractmethod
    def send(self, recipient: str, template_id: str, data: dict[str, Any]) -> str:
        """Send one message. Returns the provider message id; raises MailSendError on failure."""
        raise NotImplementedError
