from sqlalchemy import select
from sqlalchemy.engine import RowMapping
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.tables import restaurant_tables
from backend.app.services.models import DiningTable


def _to_table(row: RowMapping) -> DiningTable:
    return DiningTable(
        id=row["id"],
        table_number=row["table_number"],
        capacity=row["capacity"],
        min_party_size=row["min_party_size"],
        is_active=row["is_active"],
        name=row["name"],
        table_type=row["table_type"],
        location_description=row["location_description"],
    )


async def active_tables(session: AsyncSession) -> list[DiningTable]:
    """Active tables, smallest first."""
    result = await session.execute(
        select(restaurant_tables)
        .where(restaurant_tables.c.is_active.is_(True))
        .order_by(restaurant_tables.c.capacity, restaurant_tables.c.id)
    )
    return [_to_table(row) for row in result.mappings()]


async def get_table(session: AsyncSession, table_id: int) -> DiningTable | None:
    result = await session.execute(select(restaurant_tables).where(restaurant_tables.c.id == table_id))
    row = result.mappings().one_or_none()
    return _to_table(row) if row is not None else None
