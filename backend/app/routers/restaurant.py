from datetime import date

from fastapi import APIRouter, Depends, Path

from backend.app.core.logging_config import get_logger
from backend.app.routers.deps import get_engine, require_staff
from backend.app.routers.schemas import PolicyOut, PolicyUpdateIn, TimeSlotsOut, WorkingHoursIn, WorkingHoursOut
from backend.app.services.engine import SchedulingEngine
from backend.app.services.models import Identity
from backend.app.services.restaurant_config import (
    load_policy,
    load_schedule,
    save_policy,
    save_working_hours,
    validate_policy_changes,
)
from backend.app.services.slots import SlotCatalog
from backend.app.services.timeutils import format_hhmm

logger = get_logger(__name__)

router = APIRouter(prefix="/restaurant")


@router.get("/config", response_model=PolicyOut)
async def get_config(
    engine: SchedulingEngine = Depends(get_engine),
    identity: Identity = Depends(require_staff),
) -> PolicyOut:
    async with engine.repository.snapshot() as session:
        policy = await load_policy(session, engine.defaults)
    return PolicyOut.from_policy(policy)


@router.put("/config", response_model=PolicyOut)
async def update_config(
    payload: PolicyUpdateIn,
    engine: SchedulingEngine = Depends(get_engine),
    identity: Identity = Depends(require_staff),
) -> PolicyOut:
    """Applies to bookings made from now on; existing reservations keep their values."""
    changes = validate_policy_changes(payload.model_dump(exclude_unset=True))
    async with engine.repository.transaction() as session:
        await save_policy(session, changes)
        policy = await load_policy(session, engine.defaults)
    logger.info("restaurant_config_updated", fields=sorted(changes))
    return PolicyOut.from_policy(policy)


@router.get("/working-hours", response_model=list[WorkingHoursOut])
async def get_working_hours(
    engine: SchedulingEngine = Depends(get_engine),
    identity: Identity = Depends(require_staff),
) -> list[WorkingHoursOut]:
    async with engine.repository.snapshot() as session:
        schedule = await load_schedule(session, engine.schedule)
    return [WorkingHoursOut.from_service_day(weekday, day) for weekday, day in enumerate(schedule.days)]


@router.put("/working-hours/{weekday}", response_model=WorkingHoursOut)
async def update_working_hours(
    payload: WorkingHoursIn,
    weekday: int = Path(ge=0, le=6, description="0 = Monday"),
    engine: SchedulingEngine = Depends(get_engine),
    identity: Identity = Depends(require_staff),
) -> WorkingHoursOut:
    day = payload.to_service_day()
    async with engine.repository.transaction() as session:
        await save_working_hours(session, weekday, day)
    logger.info("working_hours_updated", weekday=weekday, is_open=day.is_open)
    return WorkingHoursOut.from_service_day(weekday, day)


@router.get("/time-slots/{day}", response_model=TimeSlotsOut)
async def get_time_slots(
    day: date,
    engine: SchedulingEngine = Depends(get_engine),
    identity: Identity = Depends(require_staff),
) -> TimeSlotsOut:
    async with engine.repository.snapshot() as session:
        policy = await load_policy(session, engine.defaults)
        schedule = await load_schedule(session, engine.schedule)
    catalog = SlotCatalog(schedule, policy.slot_interval_minutes)
    return TimeSlotsOut(date=day, slots=[format_hhmm(slot) for slot in catalog.slots_for(day)])
