from __future__ import annotations


class BookingDeskError(Exception):
    """Base class for errors surfaced to API callers."""


class ValidationError(BookingDeskError):
    """Raised when request input is missing or malformed. Carries per-field messages."""

    def __init__(self, fields: dict[str, str]) -> None:
        self.fields = dict(fields)
        super().__init__("Invalid fields: " + ", ".join(sorted(self.fields)))


class InvalidTransitionError(ValidationError):
    """Raised when an appointment status change is not allowed."""

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__({"status": f"cannot change from {current} to {target}"})


class SlotConflictError(BookingDeskError):
    """Raised when the requested slot is no longer free."""

    def __init__(self, date_iso: str, time_of_day: str) -> None:
        self.date_iso = date_iso
        self.time_of_day = time_of_day
        super().__init__(f"Slot {date_iso} {time_of_day} is not available")


class PersistenceError(BookingDeskError):
    """Raised when the record store write failed. Callers may retry."""

    retryable = True


class AppointmentNotFoundError(BookingDeskError):
    def __init__(self, appointment_id: str) -> None:
        self.appointment_id = appointment_id
        super().__init__(f"Appointment {appointment_id} not found")


class RecordStoreError(RuntimeError):
    """Raised by record store adapters on read/write failure (network, auth, missing sheet)."""
    pass


class CalendarError(RuntimeError):
    """Raised by calendar adapters when the provider fails (timeouts, auth, bad response)."""
    pass


class MailSendError(RuntimeError):
    """Raised by mail adapters when a message could not be handed to the provider."""
    pass
