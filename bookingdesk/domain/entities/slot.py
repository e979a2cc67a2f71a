from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date


@dataclass(frozen=True)
class Slot:
    id: int
    date: date
    time: str  # "HH:MM", business-local
    available: bool


@dataclass(frozen=True)
class DaySchedule:
    date: date
    slots: tuple[Slot, ...] = field(default_factory=tuple)
    reason: str | None = None  # "closed_day" when the day is not bookable

    def find(self, time_of_day: str) -> Slot | None:
        for slot in self.slots:
            if slot.time == time_of_day:
                return slot
        return None
