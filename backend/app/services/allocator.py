from collections.abc import Collection
from datetime import date, time

from backend.app.core.errors import NoTableAvailable
from backend.app.services.availability import AvailabilityCalculator
from backend.app.services.models import DiningTable


def best_fit(tables: list[DiningTable] | tuple[DiningTable, ...]) -> DiningTable | None:
    """Smallest table that is still free; lowest id breaks ties."""
    if not tables:
        return None
    return min(tables, key=lambda table: (table.capacity, table.id))


class TableAllocator:
    def __init__(self, calculator: AvailabilityCalculator) -> None:
        self.calculator = calculator

    async def allocate(
        self,
        day: date,
        at: time,
        guests: int,
        *,
        exclude: Collection[int] = (),
    ) -> DiningTable:
        slot = await self.calculator.at(day, at, guests)
        candidates = [table for table in slot.tables if table.id not in exclude]
        table = best_fit(candidates)
        if table is None:
            reason = "slot is at its booking cap" if slot.capped else "no free table fits the party"
            raise NoTableAvailable(
                f"No table available for {guests} guests on {day.isoformat()} at {at.strftime('%H:%M')}: {reason}"
            )
        return table
