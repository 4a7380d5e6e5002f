from table_status_module import list_tables_with_status

from conftest import FUTURE_DATE as DATE


async def test_all_active_tables_ordered_by_zone_then_name(restaurant):
    terrace = await restaurant.zone("Terrace", priority_order=2, color="#00aa00")
    main = await restaurant.zone("Main", priority_order=1)
    await restaurant.table("T2", 2, terrace)
    await restaurant.table("T1", 8, terrace, extra_capacity=2)
    await restaurant.table("Bar", 2)
    await restaurant.table("M1", 4, main)
    await restaurant.table("Old", 4, main, active=False)

    rows = await list_tables_with_status(DATE, "20:00")

    assert [r.table_name for r in rows] == ["M1", "T1", "T2", "Bar"]
    t1 = rows[1]
    assert (t1.capacity, t1.extra_capacity, t1.total_capacity) == (8, 2, 10)
    assert t1.zone_color == "#00aa00"
    assert rows[-1].zone_name == "No zone"
    assert rows[-1].zone_id is None
    assert all(r.is_available for r in rows)


async def test_exclude_reservation_reports_its_tables_free(restaurant):
    zone = await restaurant.zone("Main")
    m1 = await restaurant.table("M1", 4, zone)
    m2 = await restaurant.table("M2", 4, zone)
    mine = await restaurant.booking([m1], DATE, "20:00")
    await restaurant.booking([m2], DATE, "20:30")

    rows = {r.table_id: r.is_available for r in await list_tables_with_status(DATE, "20:00")}
    assert rows == {m1: False, m2: False}

    rows = {
        r.table_id: r.is_available
        for r in await list_tables_with_status(DATE, "20:00", exclude_reservation_id=mine)
    }
    assert rows == {m1: True, m2: False}


async def test_duration_controls_the_window(restaurant):
    zone = await restaurant.zone("Main")
    m1 = await restaurant.table("M1", 4, zone)
    await restaurant.booking([m1], DATE, "21:00")

    short = await list_tables_with_status(DATE, "20:00", duration_minutes=60)
    long = await list_tables_with_status(DATE, "20:00", duration_minutes=90)
    assert short[0].is_available
    assert not long[0].is_available
