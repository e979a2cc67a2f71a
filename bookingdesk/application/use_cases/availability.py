from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date, datetime, timedelta

from bookingdesk.application.booking_config import BookingConfig
from bookingdesk.application.exceptions import RecordStoreError
from bookingdesk.application.ports.calendar import CalendarPort
from bookingdesk.application.records import BookingRecords
from bookingdesk.domain.entities.slot import DaySchedule, Slot

CLOSED_DAY = "closed_day"


class SlotCalculator:
    """Builds the bookable slot grid for one day.

    The grid is the fixed daily template in template order. A slot is taken when
    a non-canceled appointment (or, with the calendar enabled, an active event)
    starts at exactly that local time, or when its start has already passed.
    Nothing is cached; every call reads the stores again.
    """

    def __init__(
        self,
        records: BookingRecords,
        config: BookingConfig,
        calendar: CalendarPort | None = None,
        clock: Callable[[], datetime] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._records = records
        self._config = config
        self._calendar = calendar
        self._clock = clock or (lambda: datetime.now(config.timezone))
        self._logger = logger or logging.getLogger(__name__)

    def now(self) -> datetime:
        return self._clock()

    def is_open(self, day: date) -> bool:
        return day.weekday() not in self._config.closed_weekdays

    def slot_start(self, day: date, time_of_day: str) -> datetime:
        return datetime.combine(day, self._config.slot_time(time_of_day), tzinfo=self._config.timezone)

    def available_slots(
        self,
        day: date,
        exclude_appointment_id: str | None = None,
        exclude_event_id: str | None = None,
    ) -> DaySchedule:
        if not self.is_open(day):
            return DaySchedule(date=day, slots=(), reason=CLOSED_DAY)

        occupied = self._occupied_times(day, exclude_appointment_id, exclude_event_id)
        now = self.now()
        slots = tuple(
            Slot(
                id=index,
                date=day,
                time=time_of_day,
                available=time_of_day not in occupied and self.slot_start(day, time_of_day) > now,
            )
            for index, time_of_day in enumerate(self._config.slot_times, start=1)
        )
        return DaySchedule(date=day, slots=slots)

    def _occupied_times(
        self,
        day: date,
        exclude_appointment_id: str | None,
        exclude_event_id: str | None,
    ) -> set[str]:
        occupied: set[str] = set()
        use_calendar = self._config.calendar_enabled and self._calendar is not None
        record_error: RecordStoreError | None = None

        try:
            for appointment in self._records.appointments_on(day):
                if appointment.occupies_slot and appointment.id != exclude_appointment_id:
                    occupied.add(appointment.scheduled_at.strftime("%H:%M"))
        except RecordStoreError as e:
            if not use_calendar:
                raise
            record_error = e
            self._logger.warning(
                "Record store unavailable, using calendar events for occupancy",
                extra={"reason": "record_store_unavailable", "error": str(e)},
            )

        if use_calendar:
            try:
                occupied |= self._calendar_times(day, exclude_event_id)
            except Exception as e:
                if record_error is not None:
                    raise record_error
                self._logger.warning(
                    "Calendar unavailable, falling back to record store occupancy",
                    extra={"reason": "calendar_unavailable", "error": str(e)},
                )

        return occupied

    def _calendar_times(self, day: date, exclude_event_id: str | None) -> set[str]:
        start = datetime.combine(day, datetime.min.time(), tzinfo=self._config.timezone)
        events = self._calendar.list_events(start, start + timedelta(days=1))
        times: set[str] = set()
        for event in events:
            if not event.is_active or event.id == exclude_event_id:
                continue
            local_start = event.start.astimezone(self._config.timezone)
            if local_start.date() == day:
                times.add(local_start.strftime("%H:%M"))
        return times
