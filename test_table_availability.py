from table_availability import (
    get_active_bookings,
    get_occupied_table_ids,
    intervals_overlap,
    is_table_available,
    occupied_tables_in_window,
)
from core.timeutils import reservation_window

DATE = "2027-03-10"


def test_intervals_overlap_half_open():
    assert intervals_overlap("10", "20", "15", "25")
    assert intervals_overlap("10", "20", "12", "18")
    assert not intervals_overlap("10", "20", "20", "30")
    assert not intervals_overlap("20", "30", "10", "20")


async def test_touching_windows_do_not_conflict(restaurant):
    table = await restaurant.table("T1", 4)
    await restaurant.booking([table], DATE, "20:00", duration=90)

    start, end = reservation_window(DATE, "21:30", 90)
    assert await is_table_available(table, DATE, start, end)

    start, end = reservation_window(DATE, "21:00", 90)
    assert not await is_table_available(table, DATE, start, end)

    start, end = reservation_window(DATE, "18:30", 90)
    assert await is_table_available(table, DATE, start, end)


async def test_only_confirmed_and_arrived_block(restaurant):
    table = await restaurant.table("T1", 4)
    for status in ("cancelled", "completed", "no_show"):
        await restaurant.booking([table], DATE, "20:00", status=status)

    start, end = reservation_window(DATE, "20:00", 90)
    assert await is_table_available(table, DATE, start, end)

    await restaurant.booking([table], DATE, "20:00", status="arrived")
    assert not await is_table_available(table, DATE, start, end)


async def test_other_dates_are_ignored(restaurant):
    table = await restaurant.table("T1", 4)
    await restaurant.booking([table], "2027-03-11", "20:00")

    start, end = reservation_window(DATE, "20:00", 90)
    assert await is_table_available(table, DATE, start, end)


async def test_exclude_reservation(restaurant):
    table = await restaurant.table("T1", 4)
    reservation_id = await restaurant.booking([table], DATE, "20:00")

    start, end = reservation_window(DATE, "20:00", 90)
    assert not await is_table_available(table, DATE, start, end)
    assert await is_table_available(table, DATE, start, end, exclude_reservation_id=reservation_id)


async def test_occupied_ids_restricted_to_given_tables(restaurant):
    t1 = await restaurant.table("T1", 4)
    t2 = await restaurant.table("T2", 4)
    await restaurant.booking([t1, t2], DATE, "20:00")

    start, end = reservation_window(DATE, "20:30", 60)
    assert await get_occupied_table_ids(DATE, start, end) == {t1, t2}
    assert await get_occupied_table_ids(DATE, start, end, table_ids=[t2]) == {t2}


async def test_preloaded_bookings_match_query(restaurant):
    t1 = await restaurant.table("T1", 4)
    t2 = await restaurant.table("T2", 4)
    await restaurant.booking([t1], DATE, "13:00")
    await restaurant.booking([t2], DATE, "20:00")

    bookings = await get_active_bookings(DATE)
    assert len(bookings) == 2

    for time_str in ("12:00", "13:30", "19:00", "21:30"):
        start, end = reservation_window(DATE, time_str, 90)
        assert occupied_tables_in_window(bookings, start, end) == await get_occupied_table_ids(DATE, start, end)
