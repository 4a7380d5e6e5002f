from floor_plan_module import CombinationInfo, FloorPlanSnapshot, TableInfo, ZoneInfo
from table_allocator import (
    CombinationAssignment,
    NoAssignment,
    SingleTableAssignment,
    assign_tables_to_reservation,
    choose_allocation,
    match_manual_selection,
)
from core.timeutils import reservation_window

DATE = "2027-03-10"


def make_plan():
    return FloorPlanSnapshot(
        zones=(
            ZoneInfo(id="z-main", name="Main", priority_order=0),
            ZoneInfo(id="z-terrace", name="Terrace", priority_order=1),
            ZoneInfo(id="z-closed", name="Closed room", priority_order=0, active=False),
        ),
        tables=(
            TableInfo(id="m2", name="M2", capacity=2, zone_id="z-main"),
            TableInfo(id="m4", name="M4", capacity=4, zone_id="z-main"),
            TableInfo(id="m6", name="M6", capacity=6, zone_id="z-main"),
            TableInfo(id="t4", name="T4", capacity=4, zone_id="z-terrace"),
            TableInfo(id="t3a", name="T3A", capacity=3, zone_id="z-terrace"),
            TableInfo(id="t3b", name="T3B", capacity=3, zone_id="z-terrace", extra_capacity=1),
            TableInfo(id="c8", name="C8", capacity=8, zone_id="z-closed"),
            TableInfo(id="x8", name="X8", capacity=8, zone_id=None),
        ),
        combinations=(
            CombinationInfo(id="comb-t", name="T3A+T3B", table_ids=("t3a", "t3b"), total_capacity=6, zone_id="z-terrace"),
            CombinationInfo(id="comb-m", name="M4+M6", table_ids=("m4", "m6"), total_capacity=10, zone_id="z-main"),
        ),
    )


def test_tightest_single_table_in_first_zone():
    allocation = choose_allocation(make_plan(), set(), 3)
    assert allocation == SingleTableAssignment(table_id="m4", zone_id="z-main", capacity=4)


def test_capacity_never_below_party():
    for guests in range(1, 7):
        allocation = choose_allocation(make_plan(), set(), guests)
        assert allocation.capacity >= guests


def test_preferred_zone_wins_over_priority():
    allocation = choose_allocation(make_plan(), set(), 4, preferred_zone_id="z-terrace")
    assert allocation.table_ids == ("t4",)


def test_preferred_zone_falls_back_to_other_zones():
    allocation = choose_allocation(make_plan(), {"t4", "t3a"}, 4, preferred_zone_id="z-terrace")
    assert allocation.zone_id == "z-main"
    assert allocation.table_ids == ("m4",)


def test_unknown_or_inactive_preferred_zone_is_ignored():
    for zone_id in ("nope", "z-closed"):
        allocation = choose_allocation(make_plan(), set(), 7, preferred_zone_id=zone_id)
        assert isinstance(allocation, CombinationAssignment)
        assert allocation.combination_id == "comb-m"


def test_single_table_preferred_over_combination_in_same_zone():
    allocation = choose_allocation(make_plan(), set(), 6, preferred_zone_id="z-terrace")
    assert isinstance(allocation, CombinationAssignment)

    allocation = choose_allocation(make_plan(), set(), 6)
    assert allocation == SingleTableAssignment(table_id="m6", zone_id="z-main", capacity=6)


def test_combination_needs_every_member_free():
    occupied = {"m6", "t3b"}
    allocation = choose_allocation(make_plan(), occupied, 6)
    assert isinstance(allocation, NoAssignment)
    assert allocation.table_ids == ()


def test_zone_less_and_inactive_zone_tables_are_not_allocated():
    # x8 (no zone) and c8 (inactive zone) would fit
    allocation = choose_allocation(make_plan(), {"m4"}, 7)
    assert isinstance(allocation, NoAssignment)


def test_manual_selection():
    plan = make_plan()

    single = match_manual_selection(plan, ["t3b"])
    assert single == SingleTableAssignment(table_id="t3b", zone_id="z-terrace", capacity=4)

    combination = match_manual_selection(plan, ["t3b", "t3a"])
    assert isinstance(combination, CombinationAssignment)
    assert combination.combination_id == "comb-t"
    assert combination.capacity == 7

    assert isinstance(match_manual_selection(plan, ["m2", "t4"]), NoAssignment)
    assert isinstance(match_manual_selection(plan, ["missing"]), NoAssignment)


async def test_booked_zone_falls_through_to_next_zone(restaurant, mock_db):
    zone_a = await restaurant.zone("A", priority_order=0)
    zone_b = await restaurant.zone("B", priority_order=1)
    table_a = await restaurant.table("A1", 4, zone_a)
    table_b = await restaurant.table("B1", 4, zone_b)
    await restaurant.booking([table_a], DATE, "20:00", duration=90)

    start, end = reservation_window(DATE, "20:00", 90)
    assigned = await assign_tables_to_reservation("res-new", DATE, start, end, 4)

    assert assigned == [table_b]
    rows = await mock_db.reservation_table_assignments.find({"reservation_id": "res-new"}).to_list(10)
    assert [r["table_id"] for r in rows] == [table_b]


async def test_combination_of_two_tables(restaurant):
    zone_a = await restaurant.zone("A", priority_order=0)
    zone_b = await restaurant.zone("B", priority_order=1)
    a1 = await restaurant.table("A1", 3, zone_a)
    a2 = await restaurant.table("A2", 3, zone_a)
    await restaurant.table("B1", 4, zone_b)
    await restaurant.combination([a1, a2], zone_a, total_capacity=6)

    start, end = reservation_window(DATE, "20:00", 90)
    assigned = await assign_tables_to_reservation("res-6", DATE, start, end, 6)

    assert sorted(assigned) == sorted([a1, a2])


async def test_nothing_fits_persists_nothing(restaurant, mock_db):
    zone_a = await restaurant.zone("A")
    await restaurant.table("A1", 2, zone_a)

    start, end = reservation_window(DATE, "20:00", 90)
    assert await assign_tables_to_reservation("res-x", DATE, start, end, 5) == []
    assert await mock_db.reservation_table_assignments.count_documents({}) == 0


async def test_combination_split_across_zones_is_ignored(restaurant, mock_db):
    zone_a = await restaurant.zone("A", priority_order=0)
    zone_b = await restaurant.zone("B", priority_order=1)
    a1 = await restaurant.table("A1", 3, zone_a)
    a2 = await restaurant.table("A2", 3, zone_a)
    await restaurant.combination([a1, a2], zone_a, total_capacity=6)
    await mock_db.tables.update_one({"id": a2}, {"$set": {"zone_id": zone_b}})

    start, end = reservation_window(DATE, "20:00", 90)
    assert await assign_tables_to_reservation("res-6", DATE, start, end, 6) == []
    assert await mock_db.reservation_table_assignments.count_documents({}) == 0
