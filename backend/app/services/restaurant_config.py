from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any

from sqlalchemy import insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import Settings
from backend.app.core.errors import ValidationError
from backend.app.db.tables import restaurant_config, working_hours
from backend.app.services.slots import MIN_INTERVAL_MINUTES, ServiceDay, ServiceWindow, WeeklySchedule
from backend.app.services.timeutils import utc_now


@dataclass(frozen=True)
class BookingPolicy:
    """Current booking configuration; values are copied into each new reservation."""

    duration_minutes: int = 105
    grace_period_minutes: int = 15
    max_sitting_minutes: int = 120
    slot_interval_minutes: int = 30
    cancellation_window_minutes: int = 120
    advance_booking_days: int = 30
    # Optional flat per-slot caps across the whole restaurant.
    max_parties_per_slot: int | None = None
    max_covers_per_slot: int | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> BookingPolicy:
        return cls(
            duration_minutes=settings.RESERVATION_DURATION_MINUTES,
            grace_period_minutes=settings.GRACE_PERIOD_MINUTES,
            max_sitting_minutes=settings.MAX_SITTING_MINUTES,
            slot_interval_minutes=settings.SLOT_INTERVAL_MINUTES,
            cancellation_window_minutes=settings.CANCELLATION_WINDOW_MINUTES,
            advance_booking_days=settings.ADVANCE_BOOKING_DAYS,
            max_parties_per_slot=settings.MAX_PARTIES_PER_SLOT,
            max_covers_per_slot=settings.MAX_COVERS_PER_SLOT,
        )

    @property
    def has_slot_caps(self) -> bool:
        return self.max_parties_per_slot is not None or self.max_covers_per_slot is not None


# restaurant_config key -> BookingPolicy field
POLICY_KEYS: dict[str, str] = {
    "reservation_duration_minutes": "duration_minutes",
    "grace_period_minutes": "grace_period_minutes",
    "max_sitting_minutes": "max_sitting_minutes",
    "time_slot_interval_minutes": "slot_interval_minutes",
    "cancellation_window_minutes": "cancellation_window_minutes",
    "advance_booking_days": "advance_booking_days",
    "max_parties_per_slot": "max_parties_per_slot",
    "max_covers_per_slot": "max_covers_per_slot",
}
OPTIONAL_FIELDS = {"max_parties_per_slot", "max_covers_per_slot"}

# field -> inclusive bounds, mirroring the table constraints
POLICY_BOUNDS: dict[str, tuple[int, int]] = {
    "duration_minutes": (15, 480),
    "grace_period_minutes": (0, 60),
    "max_sitting_minutes": (1, 600),
    "slot_interval_minutes": (MIN_INTERVAL_MINUTES, 240),
    "cancellation_window_minutes": (0, 7 * 24 * 60),
    "advance_booking_days": (0, 365),
    "max_parties_per_slot": (1, 10_000),
    "max_covers_per_slot": (1, 100_000),
}


def default_schedule(settings: Settings) -> WeeklySchedule:
    return WeeklySchedule.uniform(
        ServiceDay(
            is_open=True,
            lunch=ServiceWindow(settings.LUNCH_START, settings.LUNCH_END),
            dinner=ServiceWindow(settings.DINNER_START, settings.DINNER_END),
        )
    )


def _decode(field_name: str, raw: str) -> int | None:
    if field_name in OPTIONAL_FIELDS and raw.strip().lower() in {"", "none", "null"}:
        return None
    return int(raw)


def validate_policy_changes(changes: dict[str, Any]) -> dict[str, int | None]:
    known = {f.name for f in fields(BookingPolicy)}
    cleaned: dict[str, int | None] = {}
    for name, value in changes.items():
        if name not in known:
            raise ValidationError(f"Unknown configuration field {name!r}")
        if value is None:
            if name not in OPTIONAL_FIELDS:
                raise ValidationError(f"{name} cannot be cleared")
            cleaned[name] = None
            continue
        low, high = POLICY_BOUNDS[name]
        if not isinstance(value, int) or not low <= value <= high:
            raise ValidationError(f"{name} must be an integer between {low} and {high}")
        cleaned[name] = value
    return cleaned


async def load_policy(session: AsyncSession, defaults: BookingPolicy) -> BookingPolicy:
    rows = (await session.execute(select(restaurant_config))).mappings().all()
    overrides: dict[str, int | None] = {}
    for row in rows:
        field_name = POLICY_KEYS.get(row["config_key"])
        if field_name is not None:
            overrides[field_name] = _decode(field_name, row["config_value"])
    return replace(defaults, **overrides)


async def save_policy(session: AsyncSession, changes: dict[str, int | None]) -> None:
    """Upsert config rows; callers own the transaction."""
    keys_by_field = {field_name: key for key, field_name in POLICY_KEYS.items()}
    existing = set((await session.execute(select(restaurant_config.c.config_key))).scalars().all())
    now = utc_now()
    for field_name, value in changes.items():
        key = keys_by_field[field_name]
        raw = "" if value is None else str(value)
        if key in existing:
            await session.execute(
                update(restaurant_config)
                .where(restaurant_config.c.config_key == key)
                .values(config_value=raw, updated_at=now)
            )
        else:
            await session.execute(
                insert(restaurant_config).values(config_key=key, config_value=raw, updated_at=now)
            )


def _window(enabled: bool, start, end) -> ServiceWindow | None:
    if not enabled or start is None or end is None:
        return None
    return ServiceWindow(start, end)


async def load_schedule(session: AsyncSession, defaults: WeeklySchedule) -> WeeklySchedule:
    schedule = defaults
    rows = (await session.execute(select(working_hours))).mappings().all()
    for row in rows:
        schedule = schedule.with_day(
            row["day_of_week"],
            ServiceDay(
                is_open=row["is_open"],
                lunch=_window(row["is_lunch_service"], row["lunch_start"], row["lunch_end"]),
                dinner=_window(row["is_dinner_service"], row["dinner_start"], row["dinner_end"]),
            ),
        )
    return schedule


async def save_working_hours(session: AsyncSession, weekday: int, day: ServiceDay) -> None:
    if not 0 <= weekday <= 6:
        raise ValidationError("weekday must be between 0 (Monday) and 6 (Sunday)")
    values = {
        "is_open": day.is_open,
        "is_lunch_service": day.lunch is not None,
        "lunch_start": day.lunch.start if day.lunch else None,
        "lunch_end": day.lunch.end if day.lunch else None,
        "is_dinner_service": day.dinner is not None,
        "dinner_start": day.dinner.start if day.dinner else None,
        "dinner_end": day.dinner.end if day.dinner else None,
        "updated_at": utc_now(),
    }
    found = (
        await session.execute(select(working_hours.c.day_of_week).where(working_hours.c.day_of_week == weekday))
    ).first()
    if found is None:
        await session.execute(insert(working_hours).values(day_of_week=weekday, **values))
    else:
        await session.execute(
            update(working_hours).where(working_hours.c.day_of_week == weekday).values(**values)
        )
