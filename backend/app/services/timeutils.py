from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open interval intersection: [a_start, a_end) and [b_start, b_end)."""
    return a_start < b_end and b_start < a_end


def resolve_timezone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError as exc:
        raise ValueError(f"Unknown timezone {name!r}") from exc


def ensure_utc(dt: datetime) -> datetime:
    # SQLite hands back naive values; everything stored is UTC.
    if dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def local_instant(day: date, at: time, tz: ZoneInfo) -> datetime:
    """UTC instant for a local wall-clock time on a service date."""
    return datetime.combine(day, at, tzinfo=tz).astimezone(timezone.utc)


def to_local(dt: datetime, tz: ZoneInfo) -> datetime:
    return ensure_utc(dt).astimezone(tz)


def format_hhmm(value: time | datetime) -> str:
    return value.strftime("%H:%M")
