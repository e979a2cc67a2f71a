from __future__ import annotations

import logging
from datetime import date
from zoneinfo import ZoneInfo

from bookingdesk.application.ports.record_store import RecordStorePort, Row
from bookingdesk.application.utils.row_mapping import (
    COLLECTION_CLIENTS,
    COLLECTION_EMAIL_LOG,
    COLLECTION_SESSIONS,
    RowMappingError,
    appointment_from_row,
    appointment_to_row,
    client_from_row,
    client_to_row,
)
from bookingdesk.domain.entities.appointment import Appointment
from bookingdesk.domain.entities.client import Client


class BookingRecords:
    """Typed access to the clients and sessions collections.

    Unreadable rows are skipped with a warning rather than failing the whole
    listing; store errors propagate as ``RecordStoreError``.
    """

    def __init__(self, store: RecordStorePort, timezone: ZoneInfo, logger: logging.Logger | None = None) -> None:
        self._store = store
        self._timezone = timezone
        self._logger = logger or logging.getLogger(__name__)

    @property
    def store(self) -> RecordStorePort:
        return self._store

    def list_clients(self) -> list[Client]:
        clients: list[Client] = []
        for row in self._store.list_all(COLLECTION_CLIENTS):
            try:
                clients.append(client_from_row(row, self._timezone))
            except RowMappingError as e:
                self._logger.warning("Skipping unreadable client row", extra={"collection": COLLECTION_CLIENTS, "error": str(e)})
        return clients

    def get_client(self, client_id: str) -> Client | None:
        row = self._store.find_by_id(COLLECTION_CLIENTS, client_id)
        if row is None:
            return None
        return client_from_row(row, self._timezone)

    def add_client(self, client: Client) -> None:
        self._store.append(COLLECTION_CLIENTS, client_to_row(client))

    def update_client(self, client_id: str, partial: Row) -> None:
        self._store.update_by_id(COLLECTION_CLIENTS, client_id, partial)

    def list_appointments(self) -> list[Appointment]:
        appointments: list[Appointment] = []
        for row in self._store.list_all(COLLECTION_SESSIONS):
            try:
                appointments.append(appointment_from_row(row, self._timezone))
            except RowMappingError as e:
                self._logger.warning("Skipping unreadable session row", extra={"collection": COLLECTION_SESSIONS, "error": str(e)})
        return appointments

    def appointments_on(self, day: date) -> list[Appointment]:
        return [a for a in self.list_appointments() if a.scheduled_at.date() == day]

    def get_appointment(self, appointment_id: str) -> Appointment | None:
        row = self._store.find_by_id(COLLECTION_SESSIONS, appointment_id)
        if row is None:
            return None
        return appointment_from_row(row, self._timezone)

    def add_appointment(self, appointment: Appointment) -> None:
        self._store.append(COLLECTION_SESSIONS, appointment_to_row(appointment))

    def update_appointment(self, appointment_id: str, partial: Row) -> None:
        self._store.update_by_id(COLLECTION_SESSIONS, appointment_id, partial)

    def log_email(self, row: Row) -> None:
        self._store.append(COLLECTION_EMAIL_LOG, row)
