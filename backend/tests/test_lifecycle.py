from datetime import time, timedelta

import pytest

from backend.app.core.errors import Forbidden, InvalidTransition, NotFound, PolicyViolation, TooLateToCancel
from backend.app.services.lifecycle import TRANSITIONS, check_transition
from backend.app.services.models import TERMINAL_STATUSES, Identity, ReservationStatus

OWNER = Identity(user_id="user-ana")
STRANGER = Identity(user_id="user-bob")
STAFF = Identity(user_id="staff-1", is_staff=True)


@pytest.fixture
async def reservation(engine, add_tables, make_request):
    await add_tables(4)
    return await engine.guard.book(make_request(at=time(19, 0)))


async def test_cancel_three_hours_ahead_succeeds(engine, reservation):
    cancelled = await engine.lifecycle.cancel(
        reservation.id, OWNER, now=reservation.reservation_time - timedelta(hours=3)
    )

    assert cancelled.status is ReservationStatus.CANCELLED


async def test_cancel_one_hour_ahead_is_too_late(engine, reservation):
    with pytest.raises(PolicyViolation) as excinfo:
        await engine.lifecycle.cancel(reservation.id, OWNER, now=reservation.reservation_time - timedelta(hours=1))

    assert isinstance(excinfo.value, TooLateToCancel)


async def test_cancel_exactly_at_window_edge_is_too_late(engine, reservation):
    with pytest.raises(TooLateToCancel):
        await engine.lifecycle.cancel(
            reservation.id, OWNER, now=reservation.reservation_time - timedelta(minutes=120)
        )


async def test_only_owner_or_staff_can_cancel(engine, reservation):
    early = reservation.reservation_time - timedelta(days=1)

    with pytest.raises(Forbidden):
        await engine.lifecycle.cancel(reservation.id, STRANGER, now=early)
    with pytest.raises(Forbidden):
        await engine.lifecycle.cancel(reservation.id, Identity(), now=early)

    cancelled = await engine.lifecycle.cancel(reservation.id, STAFF, now=early)
    assert cancelled.status is ReservationStatus.CANCELLED


async def test_cancel_twice_is_invalid_transition(engine, reservation):
    early = reservation.reservation_time - timedelta(days=1)
    await engine.lifecycle.cancel(reservation.id, OWNER, now=early)

    with pytest.raises(InvalidTransition):
        await engine.lifecycle.cancel(reservation.id, OWNER, now=early)


async def test_missing_reservation(engine, reservation):
    with pytest.raises(NotFound):
        await engine.lifecycle.cancel("does-not-exist", STAFF)


async def test_seat_on_time_then_complete(engine, reservation):
    arrived = reservation.reservation_time + timedelta(minutes=10)
    seated = await engine.lifecycle.mark_seated(reservation.id, STAFF, arrived_at=arrived)

    assert seated.status is ReservationStatus.SEATED
    assert seated.actual_arrival_time == arrived
    assert seated.is_late_arrival is False

    completed = await engine.lifecycle.mark_completed(
        reservation.id, STAFF, departed_at=arrived + timedelta(minutes=100)
    )
    assert completed.status is ReservationStatus.COMPLETED
    assert completed.overstayed is False


async def test_late_arrival_and_overstay_are_flagged(engine, reservation):
    arrived = reservation.reservation_time + timedelta(minutes=20)
    seated = await engine.lifecycle.mark_seated(reservation.id, STAFF, arrived_at=arrived)
    assert seated.is_late_arrival is True

    completed = await engine.lifecycle.mark_completed(
        reservation.id, STAFF, departed_at=arrived + timedelta(minutes=150)
    )
    assert completed.overstayed is True


async def test_departure_before_arrival_is_rejected(engine, reservation):
    arrived = reservation.reservation_time
    await engine.lifecycle.mark_seated(reservation.id, STAFF, arrived_at=arrived)

    with pytest.raises(PolicyViolation):
        await engine.lifecycle.mark_completed(reservation.id, STAFF, departed_at=arrived - timedelta(minutes=1))


async def test_transitions_are_staff_only(engine, reservation):
    with pytest.raises(Forbidden):
        await engine.lifecycle.mark_seated(reservation.id, OWNER)
    with pytest.raises(Forbidden):
        await engine.lifecycle.mark_completed(reservation.id, OWNER)
    with pytest.raises(Forbidden):
        await engine.lifecycle.mark_no_show(reservation.id, OWNER)


async def test_no_show_waits_for_grace_period(engine, reservation):
    with pytest.raises(PolicyViolation):
        await engine.lifecycle.mark_no_show(
            reservation.id, STAFF, now=reservation.reservation_time + timedelta(minutes=10)
        )

    no_show = await engine.lifecycle.mark_no_show(
        reservation.id, STAFF, now=reservation.reservation_time + timedelta(minutes=16)
    )
    assert no_show.status is ReservationStatus.NO_SHOW

    # no_show is terminal.
    with pytest.raises(InvalidTransition):
        await engine.lifecycle.mark_seated(reservation.id, STAFF)


async def test_complete_requires_seated(engine, reservation):
    with pytest.raises(InvalidTransition):
        await engine.lifecycle.mark_completed(reservation.id, STAFF)


def test_transition_table():
    check_transition(ReservationStatus.PENDING, ReservationStatus.CONFIRMED)
    check_transition(ReservationStatus.CONFIRMED, ReservationStatus.SEATED)
    check_transition(ReservationStatus.SEATED, ReservationStatus.COMPLETED)

    with pytest.raises(InvalidTransition):
        check_transition(ReservationStatus.SEATED, ReservationStatus.CANCELLED)
    with pytest.raises(InvalidTransition):
        check_transition(ReservationStatus.PENDING, ReservationStatus.SEATED)
    for terminal in TERMINAL_STATUSES:
        assert terminal not in TRANSITIONS
        with pytest.raises(InvalidTransition):
            check_transition(terminal, ReservationStatus.CONFIRMED)
