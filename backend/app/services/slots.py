"""
Slot catalog: the canonical bookable start times of a service day.

Everything here is pure. A weekly schedule holds one ``ServiceDay`` per
weekday (Monday first); each open day has an optional lunch and dinner
window whose start and end are both bookable starts.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta

MIN_INTERVAL_MINUTES = 5


@dataclass(frozen=True)
class ServiceWindow:
    start: time
    end: time

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError(f"Service window ends before it starts: {self.start}-{self.end}")


@dataclass(frozen=True)
class ServiceDay:
    is_open: bool = True
    lunch: ServiceWindow | None = None
    dinner: ServiceWindow | None = None

    def windows(self) -> list[ServiceWindow]:
        if not self.is_open:
            return []
        return [window for window in (self.lunch, self.dinner) if window is not None]


@dataclass(frozen=True)
class WeeklySchedule:
    days: tuple[ServiceDay, ...] = field(default_factory=lambda: (ServiceDay(),) * 7)

    def __post_init__(self) -> None:
        if len(self.days) != 7:
            raise ValueError("A weekly schedule needs exactly seven days")

    @classmethod
    def uniform(cls, day: ServiceDay) -> WeeklySchedule:
        return cls(days=(day,) * 7)

    def for_date(self, day: date) -> ServiceDay:
        return self.days[day.weekday()]

    def with_day(self, weekday: int, day: ServiceDay) -> WeeklySchedule:
        days = list(self.days)
        days[weekday] = day
        return replace(self, days=tuple(days))


class SlotCatalog:
    """Maps a date to its ordered list of bookable start times."""

    def __init__(self, schedule: WeeklySchedule, interval_minutes: int) -> None:
        if interval_minutes < MIN_INTERVAL_MINUTES:
            raise ValueError(f"Slot interval must be at least {MIN_INTERVAL_MINUTES} minutes")
        self.schedule = schedule
        self.interval = timedelta(minutes=interval_minutes)

    def slots_for(self, day: date) -> list[time]:
        starts: set[time] = set()
        for window in self.schedule.for_date(day).windows():
            cursor = datetime.combine(day, window.start)
            last = datetime.combine(day, window.end)
            while cursor <= last:
                starts.add(cursor.time())
                cursor += self.interval
        return sorted(starts)

    def is_slot(self, day: date, at: time) -> bool:
        return at in self.slots_for(day)

    def slots_after(self, day: date, after: time | None) -> list[time]:
        slots = self.slots_for(day)
        if after is None:
            return slots
        return [slot for slot in slots if slot > after]
