import pytest

from core.exceptions import ValidationException
from core.models import create_entity
from slot_availability import SlotAvailability, list_available_slots

from conftest import FUTURE_DATE as DATE


@pytest.fixture
async def dining_room(restaurant):
    await restaurant.open_every_day("20:00", "23:00")
    await restaurant.grid("19:30", "20:00", "21:00", "22:00", "23:00", "23:30")
    return restaurant


async def test_closing_time_slot_is_included(dining_room):
    zone = await dining_room.zone("Main")
    await dining_room.table("M1", 4, zone)

    slots = await list_available_slots(DATE, 2)

    assert [s.time for s in slots] == ["20:00", "21:00", "22:00", "23:00"]
    assert all(s.zone_name == "Main" and s.zone_id == zone for s in slots)


async def test_zones_ordered_by_priority_with_unzoned_last(dining_room):
    terrace = await dining_room.zone("Terrace", priority_order=2)
    main = await dining_room.zone("Main", priority_order=1)
    await dining_room.table("T1", 4, terrace)
    await dining_room.table("M1", 4, main)
    await dining_room.table("M2", 6, main)
    await dining_room.table("Bar", 4)

    slots = [s for s in await list_available_slots(DATE, 4) if s.time == "20:00"]

    assert slots == [
        SlotAvailability(time="20:00", zone_name="Main", zone_id=main),
        SlotAvailability(time="20:00", zone_name="Terrace", zone_id=terrace),
        SlotAvailability(time="20:00", zone_name="No zone", zone_id=None),
    ]


async def test_booked_zone_disappears_only_for_overlapping_slots(dining_room):
    zone_a = await dining_room.zone("A", priority_order=0)
    zone_b = await dining_room.zone("B", priority_order=1)
    table_a = await dining_room.table("A1", 4, zone_a)
    await dining_room.table("B1", 4, zone_b)
    await dining_room.booking([table_a], DATE, "20:00", duration=90)

    slots = await list_available_slots(DATE, 4, duration_minutes=60)
    by_time = {}
    for s in slots:
        by_time.setdefault(s.time, []).append(s.zone_name)

    assert by_time["20:00"] == ["B"]
    assert by_time["21:00"] == ["B"]
    assert by_time["22:00"] == ["A", "B"]


async def test_combination_makes_zone_available(dining_room):
    zone = await dining_room.zone("Main")
    a1 = await dining_room.table("A1", 3, zone)
    a2 = await dining_room.table("A2", 3, zone)
    await dining_room.combination([a1, a2], zone, total_capacity=6)

    slots = await list_available_slots(DATE, 6)
    assert len(slots) == 4

    await dining_room.booking([a2], DATE, "20:00", duration=120)
    slots = await list_available_slots(DATE, 6)
    assert [s.time for s in slots] == ["22:00", "23:00"]


async def test_party_too_large_gives_nothing(dining_room):
    zone = await dining_room.zone("Main")
    await dining_room.table("M1", 4, zone)

    assert await list_available_slots(DATE, 5) == []


async def test_day_without_schedule_has_no_slots(restaurant):
    zone = await restaurant.zone("Main")
    await restaurant.table("M1", 4, zone)
    await restaurant.grid("20:00")
    await restaurant.db.restaurant_schedules.insert_one(create_entity({
        "day_of_week": 0, "opening_time": "12:00", "closing_time": "23:00", "active": True
    }))

    # DATE is a Wednesday
    assert await list_available_slots(DATE, 2) == []
    assert len(await list_available_slots("2027-03-08", 2)) == 1


async def test_repeated_calls_are_identical(dining_room):
    zone_a = await dining_room.zone("A", priority_order=0)
    zone_b = await dining_room.zone("B", priority_order=1)
    table_a = await dining_room.table("A1", 4, zone_a)
    await dining_room.table("B1", 2, zone_b)
    await dining_room.booking([table_a], DATE, "21:00")

    first = await list_available_slots(DATE, 2)
    second = await list_available_slots(DATE, 2)
    assert first == second


async def test_invalid_arguments(dining_room):
    with pytest.raises(ValidationException):
        await list_available_slots("2027-02-30", 2)
    with pytest.raises(ValidationException):
        await list_available_slots(DATE, 0)


async def test_unpadded_date_sees_bookings(dining_room):
    zone = await dining_room.zone("Main")
    table = await dining_room.table("M1", 4, zone)
    await dining_room.booking([table], DATE, "20:00", duration=120)

    slots = await list_available_slots("2027-3-10", 4)
    assert [s.time for s in slots] == ["22:00", "23:00"]
