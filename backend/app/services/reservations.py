"""
Atomic booking and staff moves.

A booking picks a candidate table optimistically, then commits under the
``(table, date)`` SlotLock and, on PostgreSQL, a transaction-scoped advisory
lock on the same key. Inside the transaction the overlap check is re-run and
the reservation is inserted with duration, grace and max-sitting copied from
the configuration read in that same transaction.
"""
from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from asyncpg import exceptions as asyncpg_exc
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.errors import (
    Forbidden,
    InvalidTransition,
    NotFound,
    PolicyViolation,
    SchedulingConflict,
    TransactionFailure,
    ValidationError,
)
from backend.app.core.locks import SlotLock, hold_many
from backend.app.core.logging_config import get_logger
from backend.app.services import inventory
from backend.app.services.allocator import TableAllocator
from backend.app.services.availability import AvailabilityCalculator, slot_capped
from backend.app.services.lifecycle import check_transition
from backend.app.services.models import BLOCKING_STATUSES, DiningTable, Identity, Reservation, ReservationStatus
from backend.app.services.repository import ReservationRepository
from backend.app.services.restaurant_config import BookingPolicy, load_policy
from backend.app.services.timeutils import ensure_utc, local_instant, to_local, utc_now

logger = get_logger(__name__)

MIN_GUESTS = 1
MAX_GUESTS = 20

# exclusion_violation, unique_violation
CONFLICT_SQLSTATES = frozenset({"23P01", "23505"})

# Status changes accepted through a staff update; seat/complete/no-show have their own operations.
EDITABLE_STATUSES = frozenset({ReservationStatus.CONFIRMED, ReservationStatus.CANCELLED})


@dataclass(frozen=True)
class BookingRequest:
    customer_name: str
    customer_email: str
    customer_phone: str
    reservation_date: date
    reservation_time: time
    guests: int
    special_requests: str | None = None
    user_id: str | None = None
    table_id: int | None = None
    source: str = "web"


@dataclass(frozen=True)
class ReservationChanges:
    """Staff edits; ``None`` leaves the field untouched."""

    table_id: int | None = None
    reservation_date: date | None = None
    reservation_time: time | None = None
    guests: int | None = None
    status: ReservationStatus | None = None
    special_requests: str | None = None

    @property
    def moves(self) -> bool:
        return any(
            value is not None
            for value in (self.table_id, self.reservation_date, self.reservation_time, self.guests)
        )

    @property
    def reschedules(self) -> bool:
        return self.reservation_date is not None or self.reservation_time is not None


class _TableTaken(SchedulingConflict):
    """The candidate table was booked between allocation and commit."""


def lock_key(table_id: int, day: date) -> str:
    return f"table:{table_id}:{day.isoformat()}"


def day_key(day: date) -> str:
    return f"day:{day.isoformat()}"


def is_conflict_error(exc: DBAPIError) -> bool:
    orig = getattr(exc, "orig", exc)
    candidates = (orig, getattr(orig, "__cause__", None))
    for candidate in candidates:
        if isinstance(candidate, (asyncpg_exc.ExclusionViolationError, asyncpg_exc.UniqueViolationError)):
            return True
        if getattr(candidate, "sqlstate", None) in CONFLICT_SQLSTATES:
            return True
    return False


def validate_guests(guests: int) -> None:
    if not MIN_GUESTS <= guests <= MAX_GUESTS:
        raise ValidationError(f"Number of guests must be between {MIN_GUESTS} and {MAX_GUESTS}")


class ConflictGuard:
    def __init__(
        self,
        repository: ReservationRepository,
        calculator: AvailabilityCalculator,
        allocator: TableAllocator,
        locks: SlotLock,
        *,
        tz: ZoneInfo,
        timeout: float = 5.0,
        max_retries: int = 1,
    ) -> None:
        self.repository = repository
        self.calculator = calculator
        self.allocator = allocator
        self.locks = locks
        self.tz = tz
        self.timeout = timeout
        self.max_retries = max_retries

    @property
    def defaults(self) -> BookingPolicy:
        return self.calculator.defaults

    async def book(self, request: BookingRequest, *, staff: bool = False, now: datetime | None = None) -> Reservation:
        now = ensure_utc(now) if now is not None else utc_now()
        validate_guests(request.guests)
        day, at = request.reservation_date, request.reservation_time

        async with self.repository.snapshot() as session:
            context = await self.calculator.load_context(session)
            explicit = await self._explicit_table(session, request, staff)

        start = local_instant(day, at, self.tz)
        if start <= now:
            raise PolicyViolation("Cannot book a time in the past")
        if not staff:
            horizon = to_local(now, self.tz).date() + timedelta(days=context.policy.advance_booking_days)
            if day > horizon:
                raise PolicyViolation(
                    f"Reservations can only be made up to {context.policy.advance_booking_days} days in advance"
                )
            if not context.catalog.is_slot(day, at):
                raise ValidationError(f"{at.strftime('%H:%M')} is not a bookable time on {day.isoformat()}")

        excluded: set[int] = set()
        while True:
            table = explicit or await self.allocator.allocate(day, at, request.guests, exclude=excluded)
            try:
                reservation = await self._run(
                    lambda: self._commit_new(request, table, start, with_day_key=context.policy.has_slot_caps),
                    action="book",
                )
            except _TableTaken:
                if explicit is not None:
                    raise
                # Lost the race for this table; the next best fit may still be free.
                excluded.add(table.id)
                logger.info("booking_table_taken", table_id=table.id, date=day.isoformat(), time=str(at))
                continue
            break

        logger.info(
            "reservation_committed",
            reservation_id=reservation.id,
            table_id=reservation.table_id,
            date=day.isoformat(),
            guests=reservation.number_of_guests,
            source=reservation.source,
        )
        return reservation

    async def update(
        self,
        reservation_id: str,
        changes: ReservationChanges,
        identity: Identity,
        *,
        now: datetime | None = None,
    ) -> Reservation:
        if not identity.is_staff:
            raise Forbidden("Staff privilege required")
        now = ensure_utc(now) if now is not None else utc_now()
        if changes.guests is not None:
            validate_guests(changes.guests)
        if changes.status is not None and changes.status not in EDITABLE_STATUSES:
            raise ValidationError(f"Status {changes.status.value} is set through its own staff action")

        async with self.repository.snapshot() as session:
            current = await self.repository.require(session, reservation_id)
            context = await self.calculator.load_context(session)

        if not changes.moves:
            return await self._run(lambda: self._commit_edit(reservation_id, changes), action="update")

        if current.status not in BLOCKING_STATUSES:
            raise InvalidTransition(f"A {current.status.value} reservation cannot be moved")
        day = changes.reservation_date or current.reservation_date
        at = changes.reservation_time or to_local(current.reservation_time, self.tz).time()
        guests = changes.guests or current.number_of_guests
        start = local_instant(day, at, self.tz)
        if changes.reschedules and start <= now:
            raise PolicyViolation("Cannot move a reservation into the past")

        table_id = changes.table_id or current.table_id
        if table_id is None:
            table = await self.allocator.allocate(day, at, guests)
            table_id = table.id

        updated = await self._run(
            lambda: self._commit_move(
                reservation_id,
                changes,
                table_id=table_id,
                day=day,
                start=start,
                guests=guests,
                with_day_key=context.policy.has_slot_caps,
            ),
            action="update",
        )
        logger.info(
            "reservation_moved",
            reservation_id=reservation_id,
            table_id=updated.table_id,
            date=day.isoformat(),
            guests=updated.number_of_guests,
        )
        return updated

    async def _explicit_table(
        self, session: AsyncSession, request: BookingRequest, staff: bool
    ) -> DiningTable | None:
        if request.table_id is None:
            return None
        if not staff:
            raise Forbidden("Only staff can choose a specific table")
        table = await inventory.get_table(session, request.table_id)
        if table is None or not table.is_active:
            raise NotFound(f"Table {request.table_id} not found")
        if not table.fits(request.guests):
            raise ValidationError(
                f"Table {table.table_number} seats {table.min_party_size}-{table.capacity} guests"
            )
        return table

    async def _run(self, operation: Callable[[], Awaitable[Reservation]], *, action: str) -> Reservation:
        """Run one commit attempt under the timeout; transient failures get ``max_retries`` more tries."""
        attempts = max(self.max_retries, 0) + 1
        for attempt in range(1, attempts + 1):
            try:
                return await asyncio.wait_for(self._classified(operation), timeout=self.timeout)
            except asyncio.TimeoutError:
                failure = TransactionFailure(f"Booking {action} timed out")
            except TransactionFailure as exc:
                failure = exc
            logger.warning("booking_attempt_failed", action=action, attempt=attempt, reason=failure.message)
            if attempt == attempts:
                raise failure
        raise TransactionFailure(f"Booking {action} failed")

    async def _classified(self, operation: Callable[[], Awaitable[Reservation]]) -> Reservation:
        try:
            return await operation()
        except DBAPIError as exc:
            if is_conflict_error(exc):
                logger.info("booking_conflict_detected", source="database")
                raise SchedulingConflict("The table is already booked for that time") from exc
            raise TransactionFailure("Database error while booking") from exc

    async def _lock_keys(self, session: AsyncSession, keys: list[str]) -> None:
        for key in sorted(keys):
            await self.repository.lock_table_day(session, key)

    async def _check_caps(
        self,
        session: AsyncSession,
        policy: BookingPolicy,
        start: datetime,
        end: datetime,
        guests: int,
        *,
        exclude_id: str | None = None,
    ) -> None:
        if not policy.has_slot_caps:
            return
        concurrent = await self.repository.overlapping(session, start, end, exclude_id=exclude_id)
        if slot_capped(policy, concurrent, start, end, guests):
            logger.info("booking_conflict_detected", source="slot_cap", start=start.isoformat())
            raise SchedulingConflict("The restaurant is fully booked for that time")

    async def _commit_new(
        self, request: BookingRequest, table: DiningTable, start: datetime, *, with_day_key: bool
    ) -> Reservation:
        day = request.reservation_date
        keys = [lock_key(table.id, day)]
        if with_day_key:
            keys.append(day_key(day))

        async with hold_many(self.locks, keys, self.timeout):
            async with self.repository.transaction() as session:
                await self._lock_keys(session, keys)
                policy = await load_policy(session, self.defaults)
                end = start + timedelta(minutes=policy.duration_minutes)

                current = await inventory.get_table(session, table.id)
                if current is None or not current.is_active:
                    raise _TableTaken(f"Table {table.table_number} is no longer available")
                if not current.fits(request.guests):
                    raise ValidationError(f"Table {current.table_number} cannot seat {request.guests} guests")
                clashes = await self.repository.overlapping(session, start, end, table_id=table.id)
                if clashes:
                    logger.info("booking_conflict_detected", source="recheck", table_id=table.id)
                    raise _TableTaken(f"Table {current.table_number} is already booked for that time")
                await self._check_caps(session, policy, start, end, request.guests)

                return await self.repository.insert(
                    session,
                    table_id=table.id,
                    user_id=request.user_id,
                    customer_name=request.customer_name,
                    customer_email=request.customer_email,
                    customer_phone=request.customer_phone,
                    special_requests=request.special_requests,
                    source=request.source,
                    reservation_date=day,
                    reservation_time=start,
                    reservation_end_time=end,
                    number_of_guests=request.guests,
                    duration_minutes=policy.duration_minutes,
                    grace_period_minutes=policy.grace_period_minutes,
                    max_sitting_minutes=policy.max_sitting_minutes,
                    status=ReservationStatus.CONFIRMED,
                )

    async def _commit_move(
        self,
        reservation_id: str,
        changes: ReservationChanges,
        *,
        table_id: int,
        day: date,
        start: datetime,
        guests: int,
        with_day_key: bool,
    ) -> Reservation:
        keys = [lock_key(table_id, day)]
        if with_day_key:
            keys.append(day_key(day))

        async with hold_many(self.locks, keys, self.timeout):
            async with self.repository.transaction() as session:
                await self._lock_keys(session, keys)
                current = await self.repository.require(session, reservation_id, for_update=True)
                if current.status not in BLOCKING_STATUSES:
                    raise InvalidTransition(f"A {current.status.value} reservation cannot be moved")
                if changes.status is not None:
                    check_transition(current.status, changes.status)

                table = await inventory.get_table(session, table_id)
                if table is None or not table.is_active:
                    raise NotFound(f"Table {table_id} not found")
                if not table.fits(guests):
                    raise ValidationError(f"Table {table.table_number} cannot seat {guests} guests")

                # The row keeps its own frozen duration.
                end = start + timedelta(minutes=current.duration_minutes)
                clashes = await self.repository.overlapping(
                    session, start, end, table_id=table_id, exclude_id=reservation_id
                )
                if clashes:
                    logger.info("booking_conflict_detected", source="recheck", table_id=table_id)
                    raise SchedulingConflict(f"Table {table.table_number} is already booked for that time")
                policy = await load_policy(session, self.defaults)
                await self._check_caps(session, policy, start, end, guests, exclude_id=reservation_id)

                values: dict = {
                    "table_id": table_id,
                    "reservation_date": day,
                    "reservation_time": start,
                    "reservation_end_time": end,
                    "number_of_guests": guests,
                }
                if changes.status is not None:
                    values["status"] = changes.status
                if changes.special_requests is not None:
                    values["special_requests"] = changes.special_requests
                return await self.repository.update(session, reservation_id, **values)

    async def _commit_edit(self, reservation_id: str, changes: ReservationChanges) -> Reservation:
        async with self.repository.transaction() as session:
            current = await self.repository.require(session, reservation_id, for_update=True)
            values: dict = {}
            if changes.status is not None:
                check_transition(current.status, changes.status)
                values["status"] = changes.status
            if changes.special_requests is not None:
                values["special_requests"] = changes.special_requests
            if not values:
                return current
            updated = await self.repository.update(session, reservation_id, **values)
        logger.info("reservation_updated", reservation_id=reservation_id, fields=sorted(values))
        return updated
