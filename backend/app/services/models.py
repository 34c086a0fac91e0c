from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum


class ReservationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SEATED = "seated"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


# Statuses whose interval still occupies the table.
BLOCKING_STATUSES = frozenset({ReservationStatus.PENDING, ReservationStatus.CONFIRMED})

TERMINAL_STATUSES = frozenset(
    {ReservationStatus.COMPLETED, ReservationStatus.CANCELLED, ReservationStatus.NO_SHOW}
)


@dataclass(frozen=True)
class Identity:
    """Caller identity supplied by the external identity layer."""

    user_id: str | None = None
    is_staff: bool = False


@dataclass(frozen=True)
class DiningTable:
    id: int
    table_number: int
    capacity: int
    min_party_size: int = 1
    is_active: bool = True
    name: str | None = None
    table_type: str = "standard"
    location_description: str | None = None

    def fits(self, guests: int | None) -> bool:
        if guests is None:
            return True
        return self.min_party_size <= guests <= self.capacity


@dataclass(frozen=True)
class Reservation:
    id: str
    table_id: int | None
    customer_name: str
    customer_email: str
    customer_phone: str
    reservation_date: date
    reservation_time: datetime
    reservation_end_time: datetime
    number_of_guests: int
    duration_minutes: int
    grace_period_minutes: int
    max_sitting_minutes: int
    status: ReservationStatus
    created_at: datetime
    updated_at: datetime
    user_id: str | None = None
    special_requests: str | None = None
    source: str = "web"
    actual_arrival_time: datetime | None = None
    actual_departure_time: datetime | None = None
    is_late_arrival: bool | None = None

    @property
    def grace_deadline(self) -> datetime:
        return self.reservation_time + timedelta(minutes=self.grace_period_minutes)

    @property
    def overstayed(self) -> bool | None:
        if self.actual_arrival_time is None or self.actual_departure_time is None:
            return None
        sitting = self.actual_departure_time - self.actual_arrival_time
        return sitting > timedelta(minutes=self.max_sitting_minutes)
