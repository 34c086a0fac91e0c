from __future__ import annotations

from datetime import date, time

from fastapi import APIRouter, Depends, Query

from backend.app.routers.deps import get_engine
from backend.app.routers.schemas import AvailabilityOut, NextAvailableOut, SlotOut
from backend.app.services.engine import SchedulingEngine

router = APIRouter()


@router.get("/availability/{day}", response_model=AvailabilityOut)
async def availability_for_date(
    day: date,
    guests: int | None = Query(default=None, ge=1, le=20),
    engine: SchedulingEngine = Depends(get_engine),
) -> AvailabilityOut:
    """Every catalog slot of the day with its free tables."""
    slots = await engine.calculator.for_date(day, guests)
    return AvailabilityOut(date=day, guests=guests, slots=[SlotOut.from_slot(slot) for slot in slots])


@router.get("/availability/{day}/next", response_model=NextAvailableOut)
async def next_available(
    day: date,
    guests: int = Query(ge=1, le=20),
    after: time | None = Query(default=None),
    engine: SchedulingEngine = Depends(get_engine),
) -> NextAvailableOut:
    slot = await engine.calculator.next_available(day, guests, after)
    return NextAvailableOut(date=day, guests=guests, slot=SlotOut.from_slot(slot) if slot else None)
