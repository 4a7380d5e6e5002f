"""
MesaCore Slot Availability
================================================================================
Which (time, zone) pairs can seat a party on a date

- Slots: active grid points inside an active weekly schedule row of the
  weekday, closing time included
- Per slot: window [slot, slot + duration) in restaurant time; a table is
  occupied when a confirmed/arrived reservation holding it overlaps the window
- Candidates: free active tables and free active combinations (all members
  free) with capacity >= guests
- One row per (slot, zone); tables without zone are grouped under "No zone"

Read-only, no locks. Bookings of the date are loaded once and evaluated per
slot in memory.
"""

from fastapi import APIRouter, Query
from pydantic import BaseModel, ConfigDict
from typing import Dict, List, Optional, Tuple
import logging

from core.config import settings
from core.timeutils import reservation_window
from core.validators import normalize_date, parse_date, validate_duration, validate_party_size
from floor_plan_module import FloorPlanSnapshot, get_floor_plan
from schedule_module import get_slot_times_for_date
from table_availability import get_active_bookings, occupied_tables_in_window

logger = logging.getLogger(__name__)


# ============== ROUTER ==============
availability_router = APIRouter(prefix="/public", tags=["Public"])


# ============== MODELS ==============

class SlotAvailability(BaseModel):
    model_config = ConfigDict(frozen=True)

    time: str
    zone_name: str
    zone_id: Optional[str] = None


def _candidates(floor_plan: FloorPlanSnapshot, guests: int) -> List[Tuple[Tuple[str, ...], int, Optional[str]]]:
    """(table_ids, capacity, zone_id) of every table/combination big enough"""
    options = [
        ((t.id,), t.capacity, t.zone_id)
        for t in floor_plan.active_tables() if t.capacity >= guests
    ]
    options += [
        (c.table_ids, c.total_capacity, c.zone_id)
        for c in floor_plan.active_combinations() if c.total_capacity >= guests
    ]
    return options


async def list_available_slots(
    date_str: str,
    guests: int,
    duration_minutes: Optional[int] = None
) -> List[SlotAvailability]:
    date_str = normalize_date(date_str)
    target_date = parse_date(date_str)
    guests = validate_party_size(guests)
    duration = validate_duration(duration_minutes, settings.DEFAULT_SLOT_DURATION_MINUTES)

    slot_times = await get_slot_times_for_date(target_date)
    if not slot_times:
        return []

    floor_plan = await get_floor_plan()
    candidates = _candidates(floor_plan, guests)
    if not candidates:
        return []

    bookings = await get_active_bookings(date_str)

    result = []
    for slot_time in slot_times:
        start_at, end_at = reservation_window(date_str, slot_time, duration)
        occupied = occupied_tables_in_window(bookings, start_at, end_at)

        # zone_name -> (priority, capacity, zone_id)
        best: Dict[str, Tuple[int, int, Optional[str]]] = {}
        for table_ids, capacity, zone_id in candidates:
            if any(tid in occupied for tid in table_ids):
                continue
            name = floor_plan.zone_name(zone_id)
            rank = (floor_plan.zone_priority(zone_id), capacity, zone_id if floor_plan.zone(zone_id) else None)
            if name not in best or rank[:2] < best[name][:2]:
                best[name] = rank

        rows = sorted(best.items(), key=lambda item: (item[1][0], item[0]))
        result.extend(
            SlotAvailability(time=slot_time, zone_name=name, zone_id=zone_id)
            for name, (_, _, zone_id) in rows
        )

    logger.debug(f"Availability {date_str} for {guests}: {len(result)} rows")
    return result


# ============== API ENDPOINTS ==============

@availability_router.get("/availability")
async def get_public_availability(
    date: str,
    guests: int = Query(..., ge=1),
    duration_minutes: Optional[int] = Query(None)
):
    """Public availability for the booking widget"""
    slots = await list_available_slots(date, guests, duration_minutes)
    return [s.model_dump() for s in slots]
