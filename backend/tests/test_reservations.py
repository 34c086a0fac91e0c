import asyncio
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import insert

from backend.app.core.config import settings
from backend.app.db.tables import restaurant_tables
from backend.app.main import app, lifespan

STAFF_TOKEN = "test-staff-token"
STAFF_HEADERS = {"X-Staff-Token": STAFF_TOKEN}
ANA = {"X-User-Id": "user-ana"}
BOB = {"X-User-Id": "user-bob"}


@pytest.fixture
async def client(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'api.db'}")
    monkeypatch.setattr(settings, "AUTO_CREATE_SCHEMA", True)
    monkeypatch.setattr(settings, "REDIS_URL", None)
    monkeypatch.setattr(settings, "NOTIFY_WEBHOOK_URL", None)
    monkeypatch.setattr(settings, "STAFF_API_TOKEN", STAFF_TOKEN)
    monkeypatch.setattr(settings, "RESTAURANT_TIMEZONE", "Europe/Madrid")

    async with lifespan(app):
        async with app.state.database.sessions() as session:
            async with session.begin():
                for number, capacity in enumerate((2, 4, 6), start=1):
                    await session.execute(
                        insert(restaurant_tables).values(table_number=number, name=f"T{number}", capacity=capacity)
                    )
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client


@pytest.fixture
def day() -> str:
    return (datetime.now(ZoneInfo("Europe/Madrid")).date() + timedelta(days=7)).isoformat()


def booking(day: str, time: str = "19:00", guests: int = 2, **extra) -> dict:
    payload = {
        "customerName": "Ana Torres",
        "customerEmail": "ana@example.com",
        "customerPhone": "+34600111222",
        "date": day,
        "time": time,
        "guests": guests,
    }
    payload.update(extra)
    return payload


async def test_health_endpoints(client):
    health = await client.get("/api/v1/healthz")
    readiness = await client.get("/api/v1/readiness")

    assert health.status_code == 200
    assert health.json() == {"ok": True}
    assert readiness.status_code == 200
    assert readiness.json() == {"ready": True}


async def test_create_reservation(client, day):
    response = await client.post("/api/v1/reservations", json=booking(day), headers=ANA)

    assert response.status_code == 201, response.text
    data = response.json()
    assert data["assignedTable"] == 1
    assert data["reservationDate"] == day
    assert data["reservationTime"] == "19:00"
    assert data["reservationEndTime"] == "20:45"
    assert data["durationMinutes"] == 105
    assert data["gracePeriodMinutes"] == 15
    assert data["maxSittingMinutes"] == 120
    assert data["status"] == "confirmed"
    assert data["userId"] == "user-ana"


async def test_validation_errors(client, day):
    too_many = await client.post("/api/v1/reservations", json=booking(day, guests=21))
    bad_email = await client.post("/api/v1/reservations", json=booking(day, customerEmail="nope"))
    off_catalog = await client.post("/api/v1/reservations", json=booking(day, time="19:10"))

    assert too_many.status_code == 422
    assert bad_email.status_code == 422
    assert off_catalog.status_code == 422
    assert off_catalog.json()["code"] == "validation_error"


async def test_policy_errors(client):
    past = (datetime.now(ZoneInfo("Europe/Madrid")).date() - timedelta(days=1)).isoformat()
    far = (datetime.now(ZoneInfo("Europe/Madrid")).date() + timedelta(days=90)).isoformat()

    past_response = await client.post("/api/v1/reservations", json=booking(past))
    far_response = await client.post("/api/v1/reservations", json=booking(far))

    assert past_response.status_code == 400
    assert past_response.json()["code"] == "policy_violation"
    assert far_response.status_code == 400


async def test_availability_for_party_of_five(client, day):
    response = await client.get(f"/api/v1/availability/{day}", params={"guests": 5})

    assert response.status_code == 200
    slots = response.json()["slots"]
    assert len(slots) == 13
    assert slots[0]["time"] == "12:00"
    assert slots[-1]["time"] == "22:00"
    for slot in slots:
        assert slot["available"] is True
        assert slot["tableIds"] == [3]
        assert slot["availableTables"] == 1
        assert slot["totalCapacity"] == 6


async def test_conflict_returns_alternates(client, day):
    first = await client.post("/api/v1/reservations", json=booking(day, guests=5))
    second = await client.post("/api/v1/reservations", json=booking(day, guests=5))

    assert first.status_code == 201
    assert second.status_code == 409
    detail = second.json()["detail"]
    assert detail["code"] == "no_table_available"
    assert detail["alternates"] == ["21:00", "21:30", "22:00"]


async def test_next_available(client, day):
    await client.post("/api/v1/reservations", json=booking(day, guests=5))

    response = await client.get(f"/api/v1/availability/{day}/next", params={"guests": 5, "after": "18:00"})

    assert response.status_code == 200
    assert response.json()["slot"]["time"] == "21:00"


async def test_parallel_booking_race(client, day):
    payload = booking(day, time="20:00", guests=6)

    responses = await asyncio.gather(
        client.post("/api/v1/reservations", json=payload),
        client.post("/api/v1/reservations", json=payload),
    )

    status_codes = sorted(response.status_code for response in responses)
    assert status_codes == [201, 409]


async def test_cancel_and_ownership(client, day):
    created = (await client.post("/api/v1/reservations", json=booking(day), headers=ANA)).json()
    url = f"/api/v1/reservations/{created['id']}"

    assert (await client.get(url, headers=ANA)).status_code == 200
    assert (await client.get(url, headers=BOB)).status_code == 403
    assert (await client.post(f"{url}/cancel", headers=BOB)).status_code == 403

    cancelled = await client.post(f"{url}/cancel", headers=ANA)
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "cancelled"

    again = await client.post(f"{url}/cancel", headers=ANA)
    assert again.status_code == 409
    assert again.json()["code"] == "invalid_transition"

    missing = await client.post("/api/v1/reservations/unknown/cancel", headers=ANA)
    assert missing.status_code == 404


async def test_cancel_inside_window_is_too_late(client):
    soon = datetime.now(ZoneInfo("Europe/Madrid")) + timedelta(minutes=61)
    payload = booking(soon.date().isoformat(), time=soon.strftime("%H:%M"), userId="user-ana")

    created = await client.post("/api/v1/staff/reservations", json=payload, headers=STAFF_HEADERS)
    assert created.status_code == 201, created.text

    response = await client.post(f"/api/v1/reservations/{created.json()['id']}/cancel", headers=ANA)
    assert response.status_code == 400
    assert response.json()["code"] == "too_late_to_cancel"


async def test_my_reservations(client, day):
    await client.post("/api/v1/reservations", json=booking(day), headers=ANA)
    await client.post("/api/v1/reservations", json=booking(day, time="12:00"), headers=BOB)

    mine = await client.get("/api/v1/reservations/mine", headers=ANA)
    anonymous = await client.get("/api/v1/reservations/mine")

    assert mine.status_code == 200
    assert [item["userId"] for item in mine.json()] == ["user-ana"]
    assert anonymous.status_code == 403


async def test_staff_endpoints_require_token(client, day):
    assert (await client.get("/api/v1/staff/reservations")).status_code == 403
    wrong = await client.get("/api/v1/staff/reservations", headers={"X-Staff-Token": "guess"})
    assert wrong.status_code == 403
    assert (await client.get("/api/v1/restaurant/config")).status_code == 403


async def test_staff_booking_move_and_service_flow(client, day):
    created = await client.post(
        "/api/v1/staff/reservations",
        json=booking(day, time="19:15", guests=2, tableId=2),
        headers=STAFF_HEADERS,
    )
    assert created.status_code == 201, created.text
    assert created.json()["assignedTable"] == 2
    assert created.json()["source"] == "staff"
    reservation_id = created.json()["id"]

    blocker = await client.post(
        "/api/v1/staff/reservations", json=booking(day, time="21:00", tableId=3), headers=STAFF_HEADERS
    )
    assert blocker.status_code == 201

    clash = await client.patch(
        f"/api/v1/staff/reservations/{reservation_id}", json={"tableId": 3, "time": "20:00"}, headers=STAFF_HEADERS
    )
    assert clash.status_code == 409
    assert clash.json()["code"] == "scheduling_conflict"

    moved = await client.patch(
        f"/api/v1/staff/reservations/{reservation_id}",
        json={"time": "20:00", "specialRequests": "Birthday"},
        headers=STAFF_HEADERS,
    )
    assert moved.status_code == 200
    assert moved.json()["reservationTime"] == "20:00"
    assert moved.json()["reservationEndTime"] == "21:45"
    assert moved.json()["specialRequests"] == "Birthday"

    listed = await client.get(
        "/api/v1/staff/reservations", params={"date": day, "status": "confirmed"}, headers=STAFF_HEADERS
    )
    assert [item["id"] for item in listed.json()] == [reservation_id, blocker.json()["id"]]

    early_no_show = await client.post(f"/api/v1/staff/reservations/{reservation_id}/no-show", headers=STAFF_HEADERS)
    assert early_no_show.status_code == 400

    seated = await client.post(f"/api/v1/staff/reservations/{reservation_id}/seat", headers=STAFF_HEADERS)
    assert seated.status_code == 200
    assert seated.json()["status"] == "seated"
    assert seated.json()["actualArrivalTime"] is not None

    completed = await client.post(f"/api/v1/staff/reservations/{reservation_id}/complete", headers=STAFF_HEADERS)
    assert completed.status_code == 200
    assert completed.json()["status"] == "completed"
    assert completed.json()["overstayed"] is False


async def test_config_change_applies_to_new_bookings_only(client, day):
    old = (await client.post("/api/v1/reservations", json=booking(day, time="12:00"))).json()

    updated = await client.put("/api/v1/restaurant/config", json={"durationMinutes": 60}, headers=STAFF_HEADERS)
    assert updated.status_code == 200
    assert updated.json()["durationMinutes"] == 60

    invalid = await client.put("/api/v1/restaurant/config", json={"durationMinutes": 5}, headers=STAFF_HEADERS)
    assert invalid.status_code == 422

    new = (await client.post("/api/v1/reservations", json=booking(day, time="19:00"))).json()
    assert new["durationMinutes"] == 60
    assert new["reservationEndTime"] == "20:00"

    reread = (await client.get(f"/api/v1/staff/reservations?date={day}", headers=STAFF_HEADERS)).json()
    [old_again] = [item for item in reread if item["id"] == old["id"]]
    assert old_again["durationMinutes"] == 105
    assert old_again["reservationEndTime"] == "13:45"


async def test_working_hours_drive_time_slots(client, day):
    weekday = datetime.fromisoformat(day).weekday()

    closed = await client.put(
        f"/api/v1/restaurant/working-hours/{weekday}", json={"isOpen": False}, headers=STAFF_HEADERS
    )
    assert closed.status_code == 200
    slots = await client.get(f"/api/v1/restaurant/time-slots/{day}", headers=STAFF_HEADERS)
    assert slots.json()["slots"] == []

    dinner_only = await client.put(
        f"/api/v1/restaurant/working-hours/{weekday}",
        json={"isOpen": True, "dinner": {"start": "20:00", "end": "21:00"}},
        headers=STAFF_HEADERS,
    )
    assert dinner_only.status_code == 200
    slots = await client.get(f"/api/v1/restaurant/time-slots/{day}", headers=STAFF_HEADERS)
    assert slots.json()["slots"] == ["20:00", "20:30", "21:00"]

    week = await client.get("/api/v1/restaurant/working-hours", headers=STAFF_HEADERS)
    assert len(week.json()) == 7
    assert week.json()[weekday]["lunch"] is None

    bad_weekday = await client.put("/api/v1/restaurant/working-hours/7", json={}, headers=STAFF_HEADERS)
    assert bad_weekday.status_code == 422


async def test_staff_source_longer_than_column_is_rejected(client, day):
    response = await client.post(
        "/api/v1/staff/reservations", json=booking(day, source="x" * 17), headers=STAFF_HEADERS
    )

    assert response.status_code == 422


async def test_staff_calendar_range(client, day):
    start = datetime.fromisoformat(day).date()
    for offset in (0, 1, 3):
        await client.post("/api/v1/reservations", json=booking((start + timedelta(days=offset)).isoformat()))

    params = {"dateFrom": day, "dateTo": (start + timedelta(days=1)).isoformat()}
    in_range = await client.get("/api/v1/staff/reservations", params=params, headers=STAFF_HEADERS)
    assert in_range.status_code == 200
    assert [item["reservationDate"] for item in in_range.json()] == [day, params["dateTo"]]

    inverted = await client.get(
        "/api/v1/staff/reservations", params={"dateFrom": params["dateTo"], "dateTo": day}, headers=STAFF_HEADERS
    )
    assert inverted.status_code == 422


async def test_staff_table_overview(client, day):
    created = (await client.post("/api/v1/reservations", json=booking(day, guests=5))).json()

    response = await client.get("/api/v1/staff/tables/overview", params={"date": day}, headers=STAFF_HEADERS)

    assert response.status_code == 200
    overview = response.json()
    assert [item["tableId"] for item in overview] == [1, 2, 3]
    assert [item["reservations"] for item in overview[:2]] == [[], []]
    assert [r["id"] for r in overview[2]["reservations"]] == [created["id"]]
    assert overview[2]["currentReservationId"] is None
    assert (await client.get("/api/v1/staff/tables/overview")).status_code == 403
