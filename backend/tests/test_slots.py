from datetime import date, time

import pytest

from backend.app.services.restaurant_config import default_schedule
from backend.app.services.slots import ServiceDay, ServiceWindow, SlotCatalog, WeeklySchedule

MONDAY = date(2026, 11, 2)


def test_default_catalog_has_thirteen_slots(booking_settings):
    catalog = SlotCatalog(default_schedule(booking_settings), 30)

    slots = catalog.slots_for(MONDAY)

    assert [slot.strftime("%H:%M") for slot in slots] == [
        "12:00", "12:30", "13:00", "13:30", "14:00", "14:30",
        "19:00", "19:30", "20:00", "20:30", "21:00", "21:30", "22:00",
    ]


def test_closed_day_has_no_slots(booking_settings):
    schedule = default_schedule(booking_settings).with_day(MONDAY.weekday(), ServiceDay(is_open=False))
    catalog = SlotCatalog(schedule, 30)

    assert catalog.slots_for(MONDAY) == []
    # Tuesday keeps the defaults.
    assert len(catalog.slots_for(date(2026, 11, 3))) == 13


def test_disabled_lunch_leaves_dinner_only():
    schedule = WeeklySchedule.uniform(ServiceDay(dinner=ServiceWindow(time(19, 0), time(20, 0))))

    assert SlotCatalog(schedule, 30).slots_for(MONDAY) == [time(19, 0), time(19, 30), time(20, 0)]


def test_window_end_off_interval_is_not_a_start():
    schedule = WeeklySchedule.uniform(ServiceDay(lunch=ServiceWindow(time(12, 0), time(12, 45))))

    assert SlotCatalog(schedule, 30).slots_for(MONDAY) == [time(12, 0), time(12, 30)]


def test_overlapping_windows_are_deduplicated():
    schedule = WeeklySchedule.uniform(
        ServiceDay(lunch=ServiceWindow(time(12, 0), time(13, 0)), dinner=ServiceWindow(time(12, 30), time(13, 30)))
    )

    assert SlotCatalog(schedule, 30).slots_for(MONDAY) == [time(12, 0), time(12, 30), time(13, 0), time(13, 30)]


def test_slots_after_and_is_slot(booking_settings):
    catalog = SlotCatalog(default_schedule(booking_settings), 30)

    assert catalog.slots_after(MONDAY, time(21, 0)) == [time(21, 30), time(22, 0)]
    assert catalog.slots_after(MONDAY, None) == catalog.slots_for(MONDAY)
    assert catalog.is_slot(MONDAY, time(19, 30))
    assert not catalog.is_slot(MONDAY, time(19, 15))


def test_interval_and_window_validation():
    with pytest.raises(ValueError):
        SlotCatalog(WeeklySchedule(), 0)
    with pytest.raises(ValueError):
        ServiceWindow(time(14, 0), time(12, 0))
    with pytest.raises(ValueError):
        WeeklySchedule(days=(ServiceDay(),) * 6)
