"""
Per-slot, per-table availability for a service date.

A table is free at start ``t`` when no pending/confirmed reservation on it
overlaps ``[t, t + duration)`` and, if a party size is given, the party fits
the table. Optional flat per-slot caps can only turn a slot unavailable.
"""
from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.logging_config import get_logger
from backend.app.services import inventory
from backend.app.services.models import BLOCKING_STATUSES, DiningTable, Reservation, ReservationStatus
from backend.app.services.repository import ReservationRepository
from backend.app.services.restaurant_config import BookingPolicy, load_policy, load_schedule
from backend.app.services.slots import SlotCatalog, WeeklySchedule
from backend.app.services.timeutils import local_instant, overlaps

logger = get_logger(__name__)

ALT_LOOKAHEAD = 4

# Statuses that put a party at, or on the way to, a table.
OCCUPYING_STATUSES = BLOCKING_STATUSES | {ReservationStatus.SEATED}


@dataclass(frozen=True)
class SlotAvailability:
    time: time
    start: datetime
    end: datetime
    tables: tuple[DiningTable, ...]
    capped: bool = False

    @property
    def available(self) -> bool:
        return len(self.tables) > 0

    @property
    def available_tables(self) -> int:
        return len(self.tables)

    @property
    def table_ids(self) -> list[int]:
        return [table.id for table in self.tables]

    @property
    def total_capacity(self) -> int:
        return sum(table.capacity for table in self.tables)


@dataclass(frozen=True)
class TableOccupancy:
    table: DiningTable
    reservations: tuple[Reservation, ...]

    def current(self, now: datetime) -> Reservation | None:
        """The seated party, else the booking whose window contains ``now``."""
        for reservation in self.reservations:
            if reservation.status is ReservationStatus.SEATED:
                return reservation
        for reservation in self.reservations:
            if reservation.reservation_time <= now < reservation.reservation_end_time:
                return reservation
        return None


@dataclass(frozen=True)
class BookingContext:
    """Configuration and inventory read together in one snapshot."""

    policy: BookingPolicy
    catalog: SlotCatalog
    tables: list[DiningTable]


def slot_capped(
    policy: BookingPolicy,
    reservations: Iterable[Reservation],
    start: datetime,
    end: datetime,
    guests: int | None,
) -> bool:
    if not policy.has_slot_caps:
        return False
    concurrent = [r for r in reservations if overlaps(r.reservation_time, r.reservation_end_time, start, end)]
    if policy.max_parties_per_slot is not None and len(concurrent) + 1 > policy.max_parties_per_slot:
        return True
    covers = sum(r.number_of_guests for r in concurrent)
    if policy.max_covers_per_slot is not None and covers + (guests or 1) > policy.max_covers_per_slot:
        return True
    return False


class AvailabilityCalculator:
    def __init__(
        self,
        repository: ReservationRepository,
        *,
        defaults: BookingPolicy,
        schedule: WeeklySchedule,
        tz: ZoneInfo,
    ) -> None:
        self.repository = repository
        self.defaults = defaults
        self.schedule = schedule
        self.tz = tz

    async def load_context(self, session: AsyncSession) -> BookingContext:
        policy = await load_policy(session, self.defaults)
        schedule = await load_schedule(session, self.schedule)
        tables = await inventory.active_tables(session)
        return BookingContext(
            policy=policy,
            catalog=SlotCatalog(schedule, policy.slot_interval_minutes),
            tables=tables,
        )

    def evaluate(
        self,
        day: date,
        starts: list[time],
        guests: int | None,
        context: BookingContext,
        reservations: list[Reservation],
    ) -> list[SlotAvailability]:
        """Pure evaluation of ``starts`` against already-fetched reservations."""
        duration = timedelta(minutes=context.policy.duration_minutes)
        by_table: dict[int, list[Reservation]] = defaultdict(list)
        for reservation in reservations:
            if reservation.table_id is not None:
                by_table[reservation.table_id].append(reservation)

        results = []
        for at in starts:
            start = local_instant(day, at, self.tz)
            end = start + duration
            if slot_capped(context.policy, reservations, start, end, guests):
                results.append(SlotAvailability(time=at, start=start, end=end, tables=(), capped=True))
                continue
            free = tuple(
                table
                for table in context.tables
                if table.fits(guests)
                and not any(
                    overlaps(r.reservation_time, r.reservation_end_time, start, end) for r in by_table[table.id]
                )
            )
            results.append(SlotAvailability(time=at, start=start, end=end, tables=free))
        return results

    async def evaluate_in(
        self,
        session: AsyncSession,
        day: date,
        starts: list[time],
        guests: int | None,
        context: BookingContext,
    ) -> list[SlotAvailability]:
        if not starts:
            return []
        # One range query covering every requested window.
        window_start = local_instant(day, min(starts), self.tz)
        window_end = local_instant(day, max(starts), self.tz) + timedelta(minutes=context.policy.duration_minutes)
        reservations = await self.repository.overlapping(session, window_start, window_end)
        return self.evaluate(day, starts, guests, context, reservations)

    async def for_date(self, day: date, guests: int | None = None) -> list[SlotAvailability]:
        async with self.repository.snapshot() as session:
            context = await self.load_context(session)
            slots = await self.evaluate_in(session, day, context.catalog.slots_for(day), guests, context)
        logger.debug("availability_computed", date=day.isoformat(), guests=guests, slots=len(slots))
        return slots

    async def at(self, day: date, at: time, guests: int | None = None) -> SlotAvailability:
        """Availability for one start time, on or off the slot catalog."""
        async with self.repository.snapshot() as session:
            context = await self.load_context(session)
            [slot] = await self.evaluate_in(session, day, [at], guests, context)
        return slot

    async def next_available(self, day: date, guests: int, after: time | None = None) -> SlotAvailability | None:
        async with self.repository.snapshot() as session:
            context = await self.load_context(session)
            slots = await self.evaluate_in(session, day, context.catalog.slots_after(day, after), guests, context)
        return next((slot for slot in slots if slot.available), None)

    async def alternatives(
        self, day: date, guests: int, around: time, limit: int = ALT_LOOKAHEAD
    ) -> list[SlotAvailability]:
        """Later free slots on the same day, offered when the requested one is gone."""
        async with self.repository.snapshot() as session:
            context = await self.load_context(session)
            slots = await self.evaluate_in(session, day, context.catalog.slots_after(day, around), guests, context)
        return [slot for slot in slots if slot.available][:limit]

    async def table_overview(self, day: date) -> list[TableOccupancy]:
        """Every active table with the bookings that occupy it during the service date."""
        async with self.repository.snapshot() as session:
            context = await self.load_context(session)
            reservations = await self.repository.overlapping(
                session,
                local_instant(day, time(0, 0), self.tz),
                local_instant(day + timedelta(days=1), time(0, 0), self.tz),
                statuses=OCCUPYING_STATUSES,
            )
        by_table: dict[int, list[Reservation]] = defaultdict(list)
        for reservation in reservations:
            if reservation.table_id is not None:
                by_table[reservation.table_id].append(reservation)
        return [TableOccupancy(table=table, reservations=tuple(by_table[table.id])) for table in context.tables]
