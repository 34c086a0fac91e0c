from __future__ import annotations

from enum import Enum
from typing import Any, Protocol

import httpx

from backend.app.core.logging_config import get_logger
from backend.app.services.models import Reservation

logger = get_logger(__name__)

WEBHOOK_TIMEOUT_SECONDS = 5.0


class ReservationEvent(str, Enum):
    CREATED = "reservation.created"
    UPDATED = "reservation.updated"
    CANCELLED = "reservation.cancelled"
    SEATED = "reservation.seated"
    COMPLETED = "reservation.completed"
    NO_SHOW = "reservation.no_show"


class NotificationSink(Protocol):
    async def send(self, event: ReservationEvent, reservation: Reservation) -> None: ...


def event_payload(event: ReservationEvent, reservation: Reservation) -> dict[str, Any]:
    return {
        "event": event.value,
        "reservationId": reservation.id,
        "status": reservation.status.value,
        "tableId": reservation.table_id,
        "reservationDate": reservation.reservation_date.isoformat(),
        "reservationTime": reservation.reservation_time.isoformat(),
        "reservationEndTime": reservation.reservation_end_time.isoformat(),
        "guests": reservation.number_of_guests,
        "customerName": reservation.customer_name,
        "customerEmail": reservation.customer_email,
        "customerPhone": reservation.customer_phone,
    }


class LogNotificationSink:
    """Default sink: records the event in the structured log."""

    async def send(self, event: ReservationEvent, reservation: Reservation) -> None:
        logger.info(
            "reservation_notification",
            notification_event=event.value,
            reservation_id=reservation.id,
            status=reservation.status.value,
        )


class WebhookNotificationSink:
    """POSTs each event as JSON to an external endpoint (mailer, SMS gateway, ...)."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = WEBHOOK_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.transport = transport

    async def send(self, event: ReservationEvent, reservation: Reservation) -> None:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.post(self.url, json=event_payload(event, reservation))
            response.raise_for_status()


async def dispatch(sink: NotificationSink, event: ReservationEvent, reservation: Reservation) -> None:
    """Background-task entry point; the reservation is already committed, so failures are only logged."""
    try:
        await sink.send(event, reservation)
    except httpx.HTTPError as exc:
        logger.warning(
            "notification_failed",
            notification_event=event.value,
            reservation_id=reservation.id,
            error_type=type(exc).__name__,
            error=str(exc),
        )
