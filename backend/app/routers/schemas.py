from __future__ import annotations

import datetime as dt
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from backend.app.services.availability import SlotAvailability, TableOccupancy
from backend.app.services.models import Reservation, ReservationStatus
from backend.app.services.restaurant_config import BookingPolicy
from backend.app.services.slots import ServiceDay, ServiceWindow
from backend.app.services.timeutils import format_hhmm, to_local

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ReservationCreateIn(CamelModel):
    customer_name: str = Field(min_length=1, max_length=200)
    customer_email: str = Field(max_length=254, pattern=EMAIL_PATTERN)
    customer_phone: str = Field(min_length=3, max_length=32)
    reservation_date: dt.date = Field(alias="date")
    # Local wall-clock start, "HH:MM"
    reservation_time: dt.time = Field(alias="time")
    guests: int = Field(ge=1, le=20)
    special_requests: str | None = Field(default=None, max_length=1000)
    user_id: str | None = Field(default=None, max_length=64)


class StaffReservationCreateIn(ReservationCreateIn):
    table_id: int | None = None
    source: str = Field(default="staff", max_length=16)


class ReservationUpdateIn(CamelModel):
    table_id: int | None = None
    reservation_date: dt.date | None = Field(default=None, alias="date")
    reservation_time: dt.time | None = Field(default=None, alias="time")
    guests: int | None = Field(default=None, ge=1, le=20)
    status: ReservationStatus | None = None
    special_requests: str | None = Field(default=None, max_length=1000)


class SeatIn(CamelModel):
    arrived_at: dt.datetime | None = None


class CompleteIn(CamelModel):
    departed_at: dt.datetime | None = None


class ReservationOut(CamelModel):
    id: str
    assigned_table: int | None
    user_id: str | None
    customer_name: str
    customer_email: str
    customer_phone: str
    special_requests: str | None
    source: str
    reservation_date: dt.date
    reservation_time: str
    reservation_end_time: str
    starts_at: dt.datetime
    ends_at: dt.datetime
    number_of_guests: int
    duration_minutes: int
    grace_period_minutes: int
    max_sitting_minutes: int
    status: ReservationStatus
    actual_arrival_time: dt.datetime | None
    actual_departure_time: dt.datetime | None
    is_late_arrival: bool | None
    overstayed: bool | None
    created_at: dt.datetime
    updated_at: dt.datetime

    @classmethod
    def from_reservation(cls, reservation: Reservation, tz: ZoneInfo) -> ReservationOut:
        return cls(
            id=reservation.id,
            assigned_table=reservation.table_id,
            user_id=reservation.user_id,
            customer_name=reservation.customer_name,
            customer_email=reservation.customer_email,
            customer_phone=reservation.customer_phone,
            special_requests=reservation.special_requests,
            source=reservation.source,
            reservation_date=reservation.reservation_date,
            reservation_time=format_hhmm(to_local(reservation.reservation_time, tz)),
            reservation_end_time=format_hhmm(to_local(reservation.reservation_end_time, tz)),
            starts_at=reservation.reservation_time,
            ends_at=reservation.reservation_end_time,
            number_of_guests=reservation.number_of_guests,
            duration_minutes=reservation.duration_minutes,
            grace_period_minutes=reservation.grace_period_minutes,
            max_sitting_minutes=reservation.max_sitting_minutes,
            status=reservation.status,
            actual_arrival_time=reservation.actual_arrival_time,
            actual_departure_time=reservation.actual_departure_time,
            is_late_arrival=reservation.is_late_arrival,
            overstayed=reservation.overstayed,
            created_at=reservation.created_at,
            updated_at=reservation.updated_at,
        )


class TableOverviewOut(CamelModel):
    table_id: int
    table_number: int
    name: str | None
    capacity: int
    min_party_size: int
    table_type: str
    location_description: str | None
    current_reservation_id: str | None
    reservations: list[ReservationOut]

    @classmethod
    def from_occupancy(cls, occupancy: TableOccupancy, tz: ZoneInfo, now: dt.datetime) -> TableOverviewOut:
        table = occupancy.table
        current = occupancy.current(now)
        return cls(
            table_id=table.id,
            table_number=table.table_number,
            name=table.name,
            capacity=table.capacity,
            min_party_size=table.min_party_size,
            table_type=table.table_type,
            location_description=table.location_description,
            current_reservation_id=current.id if current else None,
            reservations=[ReservationOut.from_reservation(r, tz) for r in occupancy.reservations],
        )


class SlotOut(CamelModel):
    time: str
    available: bool
    available_tables: int
    total_capacity: int
    table_ids: list[int]

    @classmethod
    def from_slot(cls, slot: SlotAvailability) -> SlotOut:
        return cls(
            time=format_hhmm(slot.time),
            available=slot.available,
            available_tables=slot.available_tables,
            total_capacity=slot.total_capacity,
            table_ids=slot.table_ids,
        )


class AvailabilityOut(CamelModel):
    date: dt.date
    guests: int | None
    slots: list[SlotOut]


class NextAvailableOut(CamelModel):
    date: dt.date
    guests: int
    slot: SlotOut | None


class PolicyOut(CamelModel):
    duration_minutes: int
    grace_period_minutes: int
    max_sitting_minutes: int
    slot_interval_minutes: int
    cancellation_window_minutes: int
    advance_booking_days: int
    max_parties_per_slot: int | None
    max_covers_per_slot: int | None

    @classmethod
    def from_policy(cls, policy: BookingPolicy) -> PolicyOut:
        return cls(
            duration_minutes=policy.duration_minutes,
            grace_period_minutes=policy.grace_period_minutes,
            max_sitting_minutes=policy.max_sitting_minutes,
            slot_interval_minutes=policy.slot_interval_minutes,
            cancellation_window_minutes=policy.cancellation_window_minutes,
            advance_booking_days=policy.advance_booking_days,
            max_parties_per_slot=policy.max_parties_per_slot,
            max_covers_per_slot=policy.max_covers_per_slot,
        )


class PolicyUpdateIn(CamelModel):
    """Only the fields present in the body are changed; ``null`` clears an optional cap."""

    duration_minutes: int | None = None
    grace_period_minutes: int | None = None
    max_sitting_minutes: int | None = None
    slot_interval_minutes: int | None = None
    cancellation_window_minutes: int | None = None
    advance_booking_days: int | None = None
    max_parties_per_slot: int | None = None
    max_covers_per_slot: int | None = None


class ServiceWindowSchema(CamelModel):
    start: dt.time
    end: dt.time

    @model_validator(mode="after")
    def _end_not_before_start(self) -> ServiceWindowSchema:
        if self.end < self.start:
            raise ValueError("end must not be before start")
        return self


class WorkingHoursIn(CamelModel):
    is_open: bool = True
    lunch: ServiceWindowSchema | None = None
    dinner: ServiceWindowSchema | None = None

    def to_service_day(self) -> ServiceDay:
        return ServiceDay(
            is_open=self.is_open,
            lunch=ServiceWindow(self.lunch.start, self.lunch.end) if self.lunch else None,
            dinner=ServiceWindow(self.dinner.start, self.dinner.end) if self.dinner else None,
        )


class WorkingHoursOut(WorkingHoursIn):
    weekday: int

    @classmethod
    def from_service_day(cls, weekday: int, day: ServiceDay) -> WorkingHoursOut:
        return cls(
            weekday=weekday,
            is_open=day.is_open,
            lunch=ServiceWindowSchema(start=day.lunch.start, end=day.lunch.end) if day.lunch else None,
            dinner=ServiceWindowSchema(start=day.dinner.start, end=day.dinner.end) if day.dinner else None,
        )


class TimeSlotsOut(CamelModel):
    date: dt.date
    slots: list[str]
