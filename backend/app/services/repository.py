"""Persistence port for reservations."""
from __future__ import annotations

import uuid
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Any

from sqlalchemy import insert, select, text, update
from sqlalchemy.engine import RowMapping
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.core.errors import NotFound
from backend.app.db.tables import table_reservations
from backend.app.services.models import BLOCKING_STATUSES, Reservation, ReservationStatus
from backend.app.services.timeutils import ensure_utc, utc_now

_DATETIME_COLUMNS = (
    "reservation_time",
    "reservation_end_time",
    "actual_arrival_time",
    "actual_departure_time",
    "created_at",
    "updated_at",
)


def _to_reservation(row: RowMapping) -> Reservation:
    data = dict(row)
    for column in _DATETIME_COLUMNS:
        if data[column] is not None:
            data[column] = ensure_utc(data[column])
    data["status"] = ReservationStatus(data["status"])
    return Reservation(**data)


def _is_postgres(session: AsyncSession) -> bool:
    return getattr(session.bind.dialect, "name", "") == "postgresql"


class ReservationRepository:
    """Reservation reads and writes; mutations happen inside ``transaction()``."""

    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = sessions

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        async with self._sessions() as session:
            async with session.begin():
                yield session

    # Reads share the same shape: one transaction, one consistent view.
    snapshot = transaction

    async def require(self, session: AsyncSession, reservation_id: str, *, for_update: bool = False) -> Reservation:
        reservation = await self.get(session, reservation_id, for_update=for_update)
        if reservation is None:
            raise NotFound(f"Reservation {reservation_id} not found")
        return reservation

    async def lock_table_day(self, session: AsyncSession, key: str) -> None:
        """Transaction-scoped advisory lock; other backends rely on the SlotLock alone."""
        if _is_postgres(session):
            await session.execute(text("SELECT pg_advisory_xact_lock(hashtext(:key))"), {"key": key})

    async def get(self, session: AsyncSession, reservation_id: str, *, for_update: bool = False) -> Reservation | None:
        stmt = select(table_reservations).where(table_reservations.c.id == reservation_id)
        if for_update and _is_postgres(session):
            stmt = stmt.with_for_update()
        row = (await session.execute(stmt)).mappings().one_or_none()
        return _to_reservation(row) if row is not None else None

    async def overlapping(
        self,
        session: AsyncSession,
        start: datetime,
        end: datetime,
        *,
        table_id: int | None = None,
        exclude_id: str | None = None,
        statuses: Iterable[ReservationStatus] = BLOCKING_STATUSES,
    ) -> list[Reservation]:
        """Reservations whose [time, end) intersects [start, end)."""
        c = table_reservations.c
        stmt = (
            select(table_reservations)
            .where(c.reservation_time < ensure_utc(end))
            .where(c.reservation_end_time > ensure_utc(start))
            .where(c.status.in_([status.value for status in statuses]))
            .order_by(c.reservation_time, c.id)
        )
        if table_id is not None:
            stmt = stmt.where(c.table_id == table_id)
        if exclude_id is not None:
            stmt = stmt.where(c.id != exclude_id)
        result = await session.execute(stmt)
        return [_to_reservation(row) for row in result.mappings()]

    async def list_reservations(
        self,
        session: AsyncSession,
        *,
        day: date | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
        status: ReservationStatus | None = None,
        user_id: str | None = None,
    ) -> list[Reservation]:
        """Filters combine; the date range is inclusive on both ends."""
        c = table_reservations.c
        stmt = select(table_reservations).order_by(c.reservation_date, c.reservation_time, c.id)
        if day is not None:
            stmt = stmt.where(c.reservation_date == day)
        if date_from is not None:
            stmt = stmt.where(c.reservation_date >= date_from)
        if date_to is not None:
            stmt = stmt.where(c.reservation_date <= date_to)
        if status is not None:
            stmt = stmt.where(c.status == status.value)
        if user_id is not None:
            stmt = stmt.where(c.user_id == user_id)
        result = await session.execute(stmt)
        return [_to_reservation(row) for row in result.mappings()]

    async def insert(self, session: AsyncSession, **values: Any) -> Reservation:
        now = utc_now()
        record = {
            "id": str(uuid.uuid4()),
            "status": ReservationStatus.CONFIRMED,
            "created_at": now,
            "updated_at": now,
            **values,
        }
        record["status"] = ReservationStatus(record["status"]).value
        for column in _DATETIME_COLUMNS:
            if record.get(column) is not None:
                record[column] = ensure_utc(record[column])
        await session.execute(insert(table_reservations).values(**record))
        return await self.require(session, record["id"])

    async def update(self, session: AsyncSession, reservation_id: str, **values: Any) -> Reservation:
        if "status" in values:
            values["status"] = ReservationStatus(values["status"]).value
        for column in _DATETIME_COLUMNS:
            if values.get(column) is not None:
                values[column] = ensure_utc(values[column])
        values["updated_at"] = utc_now()
        await session.execute(
            update(table_reservations).where(table_reservations.c.id == reservation_id).values(**values)
        )
        return await self.require(session, reservation_id)
