import os
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

# Settings() is built at import time and requires a database URL.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import pytest
from sqlalchemy import insert

from backend.app.core.config import Settings
from backend.app.core.locks import LocalSlotLock
from backend.app.db.session import Database
from backend.app.db.tables import restaurant_tables
from backend.app.services.engine import build_engine
from backend.app.services.reservations import BookingRequest

RESTAURANT_TZ = "Europe/Madrid"


def local_today() -> date:
    return datetime.now(ZoneInfo(RESTAURANT_TZ)).date()


@pytest.fixture
def service_day() -> date:
    """A regular service date comfortably inside the booking horizon."""
    return local_today() + timedelta(days=7)


@pytest.fixture
def booking_settings() -> Settings:
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite+aiosqlite://",
        REDIS_URL=None,
        RESTAURANT_TIMEZONE=RESTAURANT_TZ,
        NOTIFY_WEBHOOK_URL=None,
    )


@pytest.fixture
async def database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'booking.db'}")
    await db.connect()
    await db.create_all()
    yield db
    await db.disconnect()


@pytest.fixture
def add_tables(database):
    async def _add(*capacities: int, min_party_size: int = 1) -> list[int]:
        async with database.sessions() as session:
            async with session.begin():
                ids = []
                for number, capacity in enumerate(capacities, start=1):
                    result = await session.execute(
                        insert(restaurant_tables).values(
                            table_number=number,
                            name=f"T{number}",
                            capacity=capacity,
                            min_party_size=min(min_party_size, capacity),
                        )
                    )
                    ids.append(result.inserted_primary_key[0])
        return ids

    return _add


@pytest.fixture
def engine(database, booking_settings):
    return build_engine(database, LocalSlotLock(), booking_settings)


@pytest.fixture
def make_request(service_day):
    def _make(at: time = time(19, 0), guests: int = 2, **overrides) -> BookingRequest:
        values = {
            "customer_name": "Ana Torres",
            "customer_email": "ana@example.com",
            "customer_phone": "+34600111222",
            "reservation_date": service_day,
            "reservation_time": at,
            "guests": guests,
            "user_id": "user-ana",
        }
        values.update(overrides)
        return BookingRequest(**values)

    return _make
