"""
Post-creation state machine for reservations.

    pending   -> confirmed | cancelled
    confirmed -> seated | cancelled | no_show
    seated    -> completed

completed, cancelled and no_show are terminal. Every transition re-reads the
row inside its own transaction before writing it.
"""
from __future__ import annotations

from datetime import datetime, timedelta

from backend.app.core.errors import Forbidden, InvalidTransition, PolicyViolation, TooLateToCancel
from backend.app.core.logging_config import get_logger
from backend.app.services.models import TERMINAL_STATUSES, Identity, Reservation, ReservationStatus
from backend.app.services.repository import ReservationRepository
from backend.app.services.restaurant_config import BookingPolicy, load_policy
from backend.app.services.timeutils import ensure_utc, utc_now

logger = get_logger(__name__)

TRANSITIONS: dict[ReservationStatus, frozenset[ReservationStatus]] = {
    ReservationStatus.PENDING: frozenset({ReservationStatus.CONFIRMED, ReservationStatus.CANCELLED}),
    ReservationStatus.CONFIRMED: frozenset(
        {ReservationStatus.SEATED, ReservationStatus.CANCELLED, ReservationStatus.NO_SHOW}
    ),
    ReservationStatus.SEATED: frozenset({ReservationStatus.COMPLETED}),
}


def check_transition(current: ReservationStatus, target: ReservationStatus) -> None:
    if current in TERMINAL_STATUSES:
        raise InvalidTransition(f"Reservation is already {current.value}")
    if target not in TRANSITIONS.get(current, frozenset()):
        raise InvalidTransition(f"Cannot move a {current.value} reservation to {target.value}")


def can_manage(identity: Identity, reservation: Reservation) -> bool:
    if identity.is_staff:
        return True
    return identity.user_id is not None and identity.user_id == reservation.user_id


def _require_staff(identity: Identity) -> None:
    if not identity.is_staff:
        raise Forbidden("Staff privilege required")


class ReservationLifecycle:
    def __init__(self, repository: ReservationRepository, *, defaults: BookingPolicy) -> None:
        self.repository = repository
        self.defaults = defaults

    async def cancel(self, reservation_id: str, identity: Identity, *, now: datetime | None = None) -> Reservation:
        now = ensure_utc(now) if now is not None else utc_now()
        async with self.repository.transaction() as session:
            reservation = await self.repository.require(session, reservation_id, for_update=True)
            if not can_manage(identity, reservation):
                raise Forbidden("Only the booking owner or staff can cancel this reservation")
            check_transition(reservation.status, ReservationStatus.CANCELLED)

            policy = await load_policy(session, self.defaults)
            deadline = reservation.reservation_time - timedelta(minutes=policy.cancellation_window_minutes)
            if not now < deadline:
                raise TooLateToCancel(
                    f"Reservations can only be cancelled up to "
                    f"{policy.cancellation_window_minutes} minutes before the start time"
                )
            updated = await self.repository.update(session, reservation_id, status=ReservationStatus.CANCELLED)

        logger.info("reservation_cancelled", reservation_id=reservation_id, by_staff=identity.is_staff)
        return updated

    async def mark_seated(
        self, reservation_id: str, identity: Identity, *, arrived_at: datetime | None = None
    ) -> Reservation:
        _require_staff(identity)
        arrived_at = ensure_utc(arrived_at) if arrived_at is not None else utc_now()
        async with self.repository.transaction() as session:
            reservation = await self.repository.require(session, reservation_id, for_update=True)
            check_transition(reservation.status, ReservationStatus.SEATED)
            updated = await self.repository.update(
                session,
                reservation_id,
                status=ReservationStatus.SEATED,
                actual_arrival_time=arrived_at,
                is_late_arrival=arrived_at > reservation.grace_deadline,
            )

        logger.info("reservation_seated", reservation_id=reservation_id, late=updated.is_late_arrival)
        return updated

    async def mark_completed(
        self, reservation_id: str, identity: Identity, *, departed_at: datetime | None = None
    ) -> Reservation:
        _require_staff(identity)
        departed_at = ensure_utc(departed_at) if departed_at is not None else utc_now()
        async with self.repository.transaction() as session:
            reservation = await self.repository.require(session, reservation_id, for_update=True)
            check_transition(reservation.status, ReservationStatus.COMPLETED)
            if reservation.actual_arrival_time is not None and departed_at < reservation.actual_arrival_time:
                raise PolicyViolation("Departure cannot precede arrival")
            updated = await self.repository.update(
                session,
                reservation_id,
                status=ReservationStatus.COMPLETED,
                actual_departure_time=departed_at,
            )

        logger.info("reservation_completed", reservation_id=reservation_id, overstayed=updated.overstayed)
        return updated

    async def mark_no_show(self, reservation_id: str, identity: Identity, *, now: datetime | None = None) -> Reservation:
        _require_staff(identity)
        now = ensure_utc(now) if now is not None else utc_now()
        async with self.repository.transaction() as session:
            reservation = await self.repository.require(session, reservation_id, for_update=True)
            check_transition(reservation.status, ReservationStatus.NO_SHOW)
            if now <= reservation.grace_deadline:
                raise PolicyViolation("The guest is still within the grace period")
            updated = await self.repository.update(session, reservation_id, status=ReservationStatus.NO_SHOW)

        logger.info("reservation_no_show", reservation_id=reservation_id)
        return updated
