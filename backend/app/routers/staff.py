from datetime import date

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status

from backend.app.core.errors import SchedulingConflict, ValidationError
from backend.app.routers.deps import get_engine, require_staff
from backend.app.routers.reservations import conflict_with_alternates
from backend.app.routers.schemas import (
    CompleteIn,
    ReservationOut,
    ReservationUpdateIn,
    SeatIn,
    StaffReservationCreateIn,
    TableOverviewOut,
)
from backend.app.services.engine import SchedulingEngine
from backend.app.services.models import Identity, ReservationStatus
from backend.app.services.notifications import ReservationEvent, dispatch
from backend.app.services.reservations import BookingRequest, ReservationChanges
from backend.app.services.timeutils import to_local, utc_now

router = APIRouter(prefix="/staff")


@router.post("/reservations", response_model=ReservationOut, status_code=status.HTTP_201_CREATED)
async def staff_create_reservation(
    payload: StaffReservationCreateIn,
    background_tasks: BackgroundTasks,
    engine: SchedulingEngine = Depends(get_engine),
    identity: Identity = Depends(require_staff),
) -> ReservationOut:
    """Phone and walk-in bookings; may name a table or an off-catalog time."""
    request = BookingRequest(
        customer_name=payload.customer_name,
        customer_email=payload.customer_email,
        customer_phone=payload.customer_phone,
        reservation_date=payload.reservation_date,
        reservation_time=payload.reservation_time,
        guests=payload.guests,
        special_requests=payload.special_requests,
        user_id=payload.user_id,
        table_id=payload.table_id,
        source=payload.source,
    )
    try:
        reservation = await engine.guard.book(request, staff=True)
    except SchedulingConflict as exc:
        raise await conflict_with_alternates(engine, exc, request) from exc

    background_tasks.add_task(dispatch, engine.notifier, ReservationEvent.CREATED, reservation)
    return ReservationOut.from_reservation(reservation, engine.tz)


@router.get("/reservations", response_model=list[ReservationOut])
async def staff_list_reservations(
    day: date | None = Query(default=None, alias="date"),
    date_from: date | None = Query(default=None, alias="dateFrom"),
    date_to: date | None = Query(default=None, alias="dateTo"),
    status_filter: ReservationStatus | None = Query(default=None, alias="status"),
    engine: SchedulingEngine = Depends(get_engine),
    identity: Identity = Depends(require_staff),
) -> list[ReservationOut]:
    """Single day via ``date``, or a calendar range via ``dateFrom``/``dateTo`` (inclusive)."""
    if date_from and date_to and date_from > date_to:
        raise ValidationError("dateFrom must not be after dateTo")
    async with engine.repository.snapshot() as session:
        reservations = await engine.repository.list_reservations(
            session, day=day, date_from=date_from, date_to=date_to, status=status_filter
        )
    return [ReservationOut.from_reservation(reservation, engine.tz) for reservation in reservations]


@router.patch("/reservations/{reservation_id}", response_model=ReservationOut)
async def staff_update_reservation(
    reservation_id: str,
    payload: ReservationUpdateIn,
    background_tasks: BackgroundTasks,
    engine: SchedulingEngine = Depends(get_engine),
    identity: Identity = Depends(require_staff),
) -> ReservationOut:
    changes = ReservationChanges(
        table_id=payload.table_id,
        reservation_date=payload.reservation_date,
        reservation_time=payload.reservation_time,
        guests=payload.guests,
        status=payload.status,
        special_requests=payload.special_requests,
    )
    reservation = await engine.guard.update(reservation_id, changes, identity)
    event = ReservationEvent.CANCELLED if payload.status == ReservationStatus.CANCELLED else ReservationEvent.UPDATED
    background_tasks.add_task(dispatch, engine.notifier, event, reservation)
    return ReservationOut.from_reservation(reservation, engine.tz)


@router.post("/reservations/{reservation_id}/seat", response_model=ReservationOut)
async def seat_reservation(
    reservation_id: str,
    background_tasks: BackgroundTasks,
    payload: SeatIn | None = None,
    engine: SchedulingEngine = Depends(get_engine),
    identity: Identity = Depends(require_staff),
) -> ReservationOut:
    arrived_at = payload.arrived_at if payload else None
    reservation = await engine.lifecycle.mark_seated(reservation_id, identity, arrived_at=arrived_at)
    background_tasks.add_task(dispatch, engine.notifier, ReservationEvent.SEATED, reservation)
    return ReservationOut.from_reservation(reservation, engine.tz)


@router.post("/reservations/{reservation_id}/complete", response_model=ReservationOut)
async def complete_reservation(
    reservation_id: str,
    background_tasks: BackgroundTasks,
    payload: CompleteIn | None = None,
    engine: SchedulingEngine = Depends(get_engine),
    identity: Identity = Depends(require_staff),
) -> ReservationOut:
    departed_at = payload.departed_at if payload else None
    reservation = await engine.lifecycle.mark_completed(reservation_id, identity, departed_at=departed_at)
    background_tasks.add_task(dispatch, engine.notifier, ReservationEvent.COMPLETED, reservation)
    return ReservationOut.from_reservation(reservation, engine.tz)


@router.post("/reservations/{reservation_id}/no-show", response_model=ReservationOut)
async def no_show_reservation(
    reservation_id: str,
    background_tasks: BackgroundTasks,
    engine: SchedulingEngine = Depends(get_engine),
    identity: Identity = Depends(require_staff),
) -> ReservationOut:
    reservation = await engine.lifecycle.mark_no_show(reservation_id, identity)
    background_tasks.add_task(dispatch, engine.notifier, ReservationEvent.NO_SHOW, reservation)
    return ReservationOut.from_reservation(reservation, engine.tz)


@router.get("/tables/overview", response_model=list[TableOverviewOut])
async def table_overview(
    day: date | None = Query(default=None, alias="date"),
    engine: SchedulingEngine = Depends(get_engine),
    identity: Identity = Depends(require_staff),
) -> list[TableOverviewOut]:
    """Each active table with its bookings for the day; defaults to today."""
    now = utc_now()
    day = day or to_local(now, engine.tz).date()
    overview = await engine.calculator.table_overview(day)
    return [TableOverviewOut.from_occupancy(occupancy, engine.tz, now) for occupancy in overview]
