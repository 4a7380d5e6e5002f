"""
MesaCore Table Allocator - Zone-Ranked Assignment
================================================================================

Search order:
1. Zones: preferred zone first (regardless of priority), then priority_order ASC
2. Per zone:
   a) single table - smallest capacity >= guests that is free
   b) only if (a) found nothing: combination - smallest total_capacity >= guests
      whose member tables are ALL free
   The first hit ends the whole search.
3. Nothing found -> NoAssignment

Tightest fit first keeps larger tables and combinations free for larger
parties. Zone order encodes the seating preference.

Persistence writes one assignment row per table. Any failure removes all rows
of the reservation before the error is raised (or aborts the surrounding
MongoDB transaction).
"""

from typing import Iterable, List, Literal, Optional, Set, Tuple, Union
from weakref import WeakValueDictionary
import asyncio
import logging
import uuid

from pydantic import BaseModel, ConfigDict

from core.database import db, session_kwargs
from core.exceptions import AllocationConflictException, MesaCoreException, ReservationFailedException
from core.models import now_iso
from floor_plan_module import FloorPlanSnapshot, get_floor_plan
from table_availability import get_occupied_table_ids

logger = logging.getLogger(__name__)


# ============== ALLOCATION RESULT ==============

class NoAssignment(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["none"] = "none"

    @property
    def table_ids(self) -> Tuple[str, ...]:
        return ()


class SingleTableAssignment(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["single"] = "single"
    table_id: str
    zone_id: Optional[str] = None
    capacity: int

    @property
    def table_ids(self) -> Tuple[str, ...]:
        return (self.table_id,)


class CombinationAssignment(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["combination"] = "combination"
    combination_id: str
    table_ids: Tuple[str, ...]
    zone_id: Optional[str] = None
    capacity: int


Allocation = Union[NoAssignment, SingleTableAssignment, CombinationAssignment]


# ============== WRITE SERIALIZATION ==============

# One lock per reservation date; released locks are garbage collected.
_date_locks: "WeakValueDictionary[str, asyncio.Lock]" = WeakValueDictionary()


def allocation_lock(date_str: str) -> asyncio.Lock:
    """Serializes check-then-assign for one date inside this process"""
    lock = _date_locks.get(date_str)
    if lock is None:
        lock = asyncio.Lock()
        _date_locks[date_str] = lock
    return lock


# ============== SELECTION ==============

def choose_allocation(
    floor_plan: FloorPlanSnapshot,
    occupied: Set[str],
    guests: int,
    preferred_zone_id: Optional[str] = None
) -> Allocation:
    """Pure zone-ranked search over the snapshot and the occupied table set"""
    for zone in floor_plan.ranked_zones(preferred_zone_id):
        singles = [
            t for t in floor_plan.tables_in_zone(zone.id)
            if t.capacity >= guests and t.id not in occupied
        ]
        if singles:
            best = min(singles, key=lambda t: (t.capacity, t.name, t.id))
            return SingleTableAssignment(table_id=best.id, zone_id=zone.id, capacity=best.capacity)

        combinations = [
            c for c in floor_plan.combinations_in_zone(zone.id)
            if c.total_capacity >= guests and not any(tid in occupied for tid in c.table_ids)
        ]
        if combinations:
            best = min(combinations, key=lambda c: (c.total_capacity, c.name or "", c.id))
            return CombinationAssignment(
                combination_id=best.id,
                table_ids=best.table_ids,
                zone_id=zone.id,
                capacity=best.total_capacity
            )

    return NoAssignment()


def match_manual_selection(floor_plan: FloorPlanSnapshot, table_ids: List[str]) -> Allocation:
    """
    Admin override: a selection is valid when it is one active table or
    exactly the table set of one active combination.
    """
    if len(table_ids) == 1:
        table = floor_plan.table(table_ids[0])
        if table and table.active:
            return SingleTableAssignment(
                table_id=table.id,
                zone_id=table.zone_id,
                capacity=table.total_capacity
            )
        return NoAssignment()

    combination = floor_plan.combination_for_tables(table_ids)
    if combination is None:
        return NoAssignment()

    # Extra seats count for manual placements
    capacity = sum(floor_plan.table(tid).total_capacity for tid in combination.table_ids)
    return CombinationAssignment(
        combination_id=combination.id,
        table_ids=combination.table_ids,
        zone_id=combination.zone_id,
        capacity=max(capacity, combination.total_capacity)
    )


# ============== PERSISTENCE ==============

async def _insert_assignment(reservation_id: str, table_id: str, session=None):
    await db.reservation_table_assignments.insert_one(
        {
            "id": str(uuid.uuid4()),
            "reservation_id": reservation_id,
            "table_id": table_id,
            "created_at": now_iso()
        },
        **session_kwargs(session)
    )


async def _claim_tables(table_ids, date_str: str, session):
    """
    Touch one anchor document per (table, date). Two transactions claiming the
    same table on the same date write-conflict and one of them aborts.
    """
    for table_id in sorted(table_ids):
        await db.table_day_claims.update_one(
            {"table_id": table_id, "date": date_str},
            {"$inc": {"version": 1}, "$set": {"updated_at": now_iso()}},
            upsert=True,
            session=session
        )


async def release_assignments(reservation_id: str, session=None) -> int:
    """Delete every assignment row of a reservation"""
    result = await db.reservation_table_assignments.delete_many(
        {"reservation_id": reservation_id}, **session_kwargs(session)
    )
    return result.deleted_count


async def restore_assignments(reservation_id: str, table_ids: Iterable[str]):
    """Put back a previous assignment set after a failed reassignment"""
    await release_assignments(reservation_id)
    for table_id in table_ids:
        await _insert_assignment(reservation_id, table_id)


async def get_assigned_table_ids(reservation_id: str) -> List[str]:
    rows = await db.reservation_table_assignments.find(
        {"reservation_id": reservation_id}, {"_id": 0, "table_id": 1}
    ).to_list(100)
    return [r["table_id"] for r in rows]


async def persist_allocation(
    reservation_id: str,
    date_str: str,
    start_at: str,
    end_at: str,
    allocation: Allocation,
    session=None
) -> List[str]:
    """
    Write the assignment rows of an allocation, then re-check the tables
    against reservations committed in the meantime.
    All or nothing: on failure no row of this reservation remains.
    """
    table_ids = list(allocation.table_ids)

    try:
        if session is not None:
            await _claim_tables(table_ids, date_str, session)

        for table_id in table_ids:
            await _insert_assignment(reservation_id, table_id, session)

        conflicts = await get_occupied_table_ids(
            date_str, start_at, end_at,
            exclude_reservation_id=reservation_id,
            table_ids=table_ids,
            session=session
        )
        if conflicts:
            raise AllocationConflictException(
                f"Tables {sorted(conflicts)} were claimed by another reservation, please retry"
            )
    except Exception as e:
        logger.error(f"Assigning tables to reservation {reservation_id} failed: {e}", exc_info=True)
        # Inside a transaction the abort discards the rows
        if session is None:
            await release_assignments(reservation_id)
        if isinstance(e, MesaCoreException):
            raise
        raise ReservationFailedException(f"Error assigning tables: {e}") from e

    return table_ids


async def assign_tables_to_reservation(
    reservation_id: str,
    date_str: str,
    start_at: str,
    end_at: str,
    guests: int,
    preferred_zone_id: Optional[str] = None,
    session=None
) -> List[str]:
    """
    Allocate and persist tables for a reservation.
    Returns the assigned table ids, empty list when nothing fits.
    """
    floor_plan = await get_floor_plan()
    occupied = await get_occupied_table_ids(date_str, start_at, end_at, session=session)

    allocation = choose_allocation(floor_plan, occupied, guests, preferred_zone_id)
    if isinstance(allocation, NoAssignment):
        logger.info(f"No table for {guests} guests on {date_str} {start_at}-{end_at}")
        return []

    table_ids = await persist_allocation(reservation_id, date_str, start_at, end_at, allocation, session)
    logger.info(
        f"Reservation {reservation_id}: {allocation.kind} assignment "
        f"in zone {allocation.zone_id} -> {table_ids}"
    )
    return table_ids


__all__ = [
    "Allocation",
    "NoAssignment",
    "SingleTableAssignment",
    "CombinationAssignment",
    "allocation_lock",
    "choose_allocation",
    "match_manual_selection",
    "persist_allocation",
    "release_assignments",
    "restore_assignments",
    "get_assigned_table_ids",
    "assign_tables_to_reservation"
]
