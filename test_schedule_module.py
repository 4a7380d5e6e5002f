from datetime import date

from core.models import create_entity
from diners_limit_module import check_diners_limit
from schedule_module import (
    generate_slots_between,
    get_effective_windows,
    get_slot_times_for_date,
    is_date_closed,
    is_time_within_schedule,
)

WEDNESDAY = date(2027, 3, 10)


def test_generate_slots_between_includes_end():
    assert generate_slots_between("12:00", "13:30", 30) == ["12:00", "12:30", "13:00", "13:30"]
    assert generate_slots_between("12:00", "12:50", 30) == ["12:00", "12:30"]


async def test_split_service_day(mock_db):
    for opening, closing in (("13:00", "16:00"), ("20:00", "23:30")):
        await mock_db.restaurant_schedules.insert_one(create_entity({
            "day_of_week": 2, "opening_time": opening, "closing_time": closing, "active": True
        }))
    await mock_db.restaurant_schedules.insert_one(create_entity({
        "day_of_week": 2, "opening_time": "17:00", "closing_time": "18:00", "active": False
    }))

    windows = await get_effective_windows(WEDNESDAY)
    assert [(w.opening_time, w.closing_time) for w in windows] == [("13:00", "16:00"), ("20:00", "23:30")]

    assert await is_time_within_schedule(WEDNESDAY, "16:00")
    assert not await is_time_within_schedule(WEDNESDAY, "17:30")
    assert await is_time_within_schedule(WEDNESDAY, "23:30")
    assert not await is_time_within_schedule(date(2027, 3, 11), "20:00")


async def test_special_schedule_replaces_week(mock_db):
    await mock_db.restaurant_schedules.insert_one(create_entity({
        "day_of_week": 2, "opening_time": "13:00", "closing_time": "23:00", "active": True
    }))
    await mock_db.special_schedule_days.insert_one(create_entity({
        "date": "2027-03-10", "opening_time": "19:00", "closing_time": "21:00", "active": True
    }))

    windows = await get_effective_windows(WEDNESDAY)
    assert len(windows) == 1
    assert windows[0].source == "special"
    assert not await is_time_within_schedule(WEDNESDAY, "14:00")

    # The availability grid keeps using the weekly rows
    for t in ("14:00", "20:00"):
        await mock_db.time_slots.insert_one(create_entity({"time": t, "active": True}))
    assert await get_slot_times_for_date(WEDNESDAY) == ["14:00", "20:00"]


async def test_closed_days(mock_db):
    await mock_db.special_closed_days.insert_one(create_entity({
        "is_range": False, "date": "2027-03-10", "range_start": None, "range_end": None, "reason": "Inventory"
    }))
    await mock_db.special_closed_days.insert_one(create_entity({
        "is_range": True, "date": None, "range_start": "2027-08-01", "range_end": "2027-08-31", "reason": "Summer"
    }))

    assert await is_date_closed(WEDNESDAY) == (True, "Inventory")
    assert await is_date_closed(date(2027, 8, 20)) == (True, "Summer")
    assert await is_date_closed(date(2027, 9, 1)) == (False, None)


async def test_date_limit_overrides_weekday_limit(restaurant, mock_db):
    table = await restaurant.table("M1", 10)
    await restaurant.booking([table], "2027-03-10", "20:00", guests=8)
    await mock_db.diners_limits.insert_one(create_entity({
        "day_of_week": 2, "date": None, "start_time": "19:00", "end_time": "23:00", "max_diners": 10, "active": True
    }))

    assert not (await check_diners_limit(WEDNESDAY, "21:00", 4)).ok
    assert (await check_diners_limit(WEDNESDAY, "21:00", 2)).ok

    await mock_db.diners_limits.insert_one(create_entity({
        "day_of_week": None, "date": "2027-03-10", "start_time": "19:00", "end_time": "23:00",
        "max_diners": 40, "active": True
    }))
    check = await check_diners_limit(WEDNESDAY, "21:00", 4)
    assert check.ok

    assert (await check_diners_limit(date(2027, 3, 11), "21:00", 50)).ok
