from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from bookingdesk.application.records import BookingRecords
from bookingdesk.application.utils.ids import generate_id
from bookingdesk.domain.entities.client import Client, ClientStatus, PreferredFormat, normalize_email


@dataclass(frozen=True)
class ClientContact:
    name: str
    email: str
    phone: str = ""
    phonetic_name: str | None = None
    address: str = ""
    gender: str = ""
    birthdate: str = ""
    preferred_format: PreferredFormat | None = None
    notes: str = ""


@dataclass(frozen=True)
class ResolvedClient:
    client: Client
    created: bool


class ClientIdentityResolver:
    """Maps an inbound contact to an existing client by email, or registers a new one.

    Lookup-then-append is not atomic: two simultaneous first bookings from the
    same address can each create a client. Duplicates that do exist are resolved
    to the most recently created client.
    """

    def __init__(
        self,
        records: BookingRecords,
        clock: Callable[[], datetime],
        id_factory: Callable[[], str] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._records = records
        self._clock = clock
        self._id_factory = id_factory or (lambda: generate_id("C"))
        self._logger = logger or logging.getLogger(__name__)

    def resolve(self, email: str, name: str, phone: str = "", **contact_fields) -> str:
        contact = ClientContact(name=name, email=email, phone=phone, **contact_fields)
        return self.resolve_client(contact).client.id

    def resolve_client(self, contact: ClientContact) -> ResolvedClient:
        existing = self.find_by_email(contact.email)
        if existing is not None:
            return ResolvedClient(client=existing, created=False)

        client = Client(
            id=self._id_factory(),
            name=contact.name.strip(),
            email=contact.email.strip(),
            phone=contact.phone.strip(),
            phonetic_name=contact.phonetic_name,
            address=contact.address,
            gender=contact.gender,
            birthdate=contact.birthdate,
            preferred_format=contact.preferred_format,
            status=ClientStatus.trial_before,
            notes=contact.notes,
            created_at=self._clock(),
        )
        self._records.add_client(client)
        self._logger.info("New client registered", extra={"client_id": client.id})
        return ResolvedClient(client=client, created=True)

    def find_by_email(self, email: str) -> Client | None:
        key = normalize_email(email)
        if not key:
            return None
        matches = [c for c in self._records.list_clients() if c.email_key == key]
        if not matches:
            return None
        if len(matches) > 1:
            self._logger.warning(
                "Multiple clients share an email; using the most recently created",
                extra={"client_id": ",".join(c.id for c in matches), "reason": "duplicate_email"},
            )
        chosen = matches[0]
        for candidate in matches[1:]:
            if candidate.created_at > chosen.created_at:
                chosen = candidate
        return chosen
