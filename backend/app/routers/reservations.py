from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status

from backend.app.core.errors import Forbidden, SchedulingConflict
from backend.app.routers.deps import get_engine, get_identity, require_user
from backend.app.routers.schemas import ReservationCreateIn, ReservationOut
from backend.app.services.engine import SchedulingEngine
from backend.app.services.lifecycle import can_manage
from backend.app.services.models import Identity
from backend.app.services.notifications import ReservationEvent, dispatch
from backend.app.services.reservations import BookingRequest
from backend.app.services.timeutils import format_hhmm


router = APIRouter()


async def conflict_with_alternates(
    engine: SchedulingEngine, exc: SchedulingConflict, request: BookingRequest
) -> HTTPException:
    """409 carrying up to four later slots on the same day that can still seat the party."""
    slots = await engine.calculator.alternatives(request.reservation_date, request.guests, request.reservation_time)
    return HTTPException(
        status.HTTP_409_CONFLICT,
        detail={
            "message": exc.message,
            "code": exc.code,
            "alternates": [format_hhmm(slot.time) for slot in slots],
        },
    )


@router.post("/reservations", response_model=ReservationOut, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    payload: ReservationCreateIn,
    background_tasks: BackgroundTasks,
    engine: SchedulingEngine = Depends(get_engine),
    identity: Identity = Depends(get_identity),
) -> ReservationOut:
    request = BookingRequest(
        customer_name=payload.customer_name,
        customer_email=payload.customer_email,
        customer_phone=payload.customer_phone,
        reservation_date=payload.reservation_date,
        reservation_time=payload.reservation_time,
        guests=payload.guests,
        special_requests=payload.special_requests,
        # Only staff may book on behalf of another account.
        user_id=payload.user_id if identity.is_staff and payload.user_id else identity.user_id,
        source="web",
    )
    try:
        reservation = await engine.guard.book(request)
    except SchedulingConflict as exc:
        raise await conflict_with_alternates(engine, exc, request) from exc

    background_tasks.add_task(dispatch, engine.notifier, ReservationEvent.CREATED, reservation)
    return ReservationOut.from_reservation(reservation, engine.tz)


@router.get("/reservations/mine", response_model=list[ReservationOut])
async def my_reservations(
    engine: SchedulingEngine = Depends(get_engine),
    identity: Identity = Depends(require_user),
) -> list[ReservationOut]:
    async with engine.repository.snapshot() as session:
        reservations = await engine.repository.list_reservations(session, user_id=identity.user_id)
    return [ReservationOut.from_reservation(reservation, engine.tz) for reservation in reservations]


@router.get("/reservations/{reservation_id}", response_model=ReservationOut)
async def get_reservation(
    reservation_id: str,
    engine: SchedulingEngine = Depends(get_engine),
    identity: Identity = Depends(get_identity),
) -> ReservationOut:
    async with engine.repository.snapshot() as session:
        reservation = await engine.repository.require(session, reservation_id)
    if not can_manage(identity, reservation):
        raise Forbidden("Only the booking owner or staff can view this reservation")
    return ReservationOut.from_reservation(reservation, engine.tz)


@router.post("/reservations/{reservation_id}/cancel", response_model=ReservationOut)
async def cancel_reservation(
    reservation_id: str,
    background_tasks: BackgroundTasks,
    engine: SchedulingEngine = Depends(get_engine),
    identity: Identity = Depends(get_identity),
) -> ReservationOut:
    reservation = await engine.lifecycle.cancel(reservation_id, identity)
    background_tasks.add_task(dispatch, engine.notifier, ReservationEvent.CANCELLED, reservation)
    return ReservationOut.from_reservation(reservation, engine.tz)
