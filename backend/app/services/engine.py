from __future__ import annotations

from dataclasses import dataclass
from zoneinfo import ZoneInfo

from backend.app.core.config import Settings
from backend.app.core.locks import SlotLock
from backend.app.db.session import Database
from backend.app.services.allocator import TableAllocator
from backend.app.services.availability import AvailabilityCalculator
from backend.app.services.lifecycle import ReservationLifecycle
from backend.app.services.notifications import LogNotificationSink, NotificationSink, WebhookNotificationSink
from backend.app.services.repository import ReservationRepository
from backend.app.services.reservations import ConflictGuard
from backend.app.services.restaurant_config import BookingPolicy, default_schedule
from backend.app.services.slots import WeeklySchedule
from backend.app.services.timeutils import resolve_timezone


@dataclass
class SchedulingEngine:
    """Everything the HTTP layer needs, wired once per application lifespan."""

    repository: ReservationRepository
    calculator: AvailabilityCalculator
    allocator: TableAllocator
    guard: ConflictGuard
    lifecycle: ReservationLifecycle
    notifier: NotificationSink
    defaults: BookingPolicy
    schedule: WeeklySchedule
    tz: ZoneInfo


def build_engine(
    database: Database,
    locks: SlotLock,
    settings: Settings,
    *,
    notifier: NotificationSink | None = None,
) -> SchedulingEngine:
    tz = resolve_timezone(settings.RESTAURANT_TIMEZONE)
    defaults = BookingPolicy.from_settings(settings)
    schedule = default_schedule(settings)

    repository = ReservationRepository(database.sessions)
    calculator = AvailabilityCalculator(repository, defaults=defaults, schedule=schedule, tz=tz)
    allocator = TableAllocator(calculator)
    guard = ConflictGuard(
        repository,
        calculator,
        allocator,
        locks,
        tz=tz,
        timeout=settings.BOOKING_TIMEOUT_SECONDS,
        max_retries=settings.BOOKING_MAX_RETRIES,
    )
    if notifier is None:
        if settings.NOTIFY_WEBHOOK_URL:
            notifier = WebhookNotificationSink(settings.NOTIFY_WEBHOOK_URL)
        else:
            notifier = LogNotificationSink()

    return SchedulingEngine(
        repository=repository,
        calculator=calculator,
        allocator=allocator,
        guard=guard,
        lifecycle=ReservationLifecycle(repository, defaults=defaults),
        notifier=notifier,
        defaults=defaults,
        schedule=schedule,
        tz=tz,
    )
