"""
MesaCore Table Status - admin floor map for manual assignment

Every active table with its free/occupied state for a date, time and
duration. No party size or zone filter. exclude_reservation_id lets an
admin editing a reservation see that reservation's own tables as free.
"""
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from typing import List, Optional
import logging

from core.auth import require_admin
from core.config import settings
from core.timeutils import reservation_window
from core.validators import normalize_date, parse_time, validate_duration
from floor_plan_module import get_floor_plan
from table_availability import get_occupied_table_ids

logger = logging.getLogger(__name__)

table_status_router = APIRouter(prefix="/tables", tags=["Tables"])


class TableStatus(BaseModel):
    table_id: str
    table_name: str
    capacity: int
    extra_capacity: int
    total_capacity: int
    zone_id: Optional[str] = None
    zone_name: str
    zone_color: Optional[str] = None
    is_available: bool


async def list_tables_with_status(
    date_str: str,
    time_str: str,
    duration_minutes: Optional[int] = None,
    exclude_reservation_id: Optional[str] = None
) -> List[TableStatus]:
    date_str = normalize_date(date_str)
    time_str = parse_time(time_str)
    duration = validate_duration(duration_minutes, settings.DEFAULT_DURATION_MINUTES)

    start_at, end_at = reservation_window(date_str, time_str, duration)
    occupied = await get_occupied_table_ids(
        date_str, start_at, end_at, exclude_reservation_id=exclude_reservation_id
    )

    floor_plan = await get_floor_plan()
    rows = []
    for table in floor_plan.active_tables():
        zone = floor_plan.zone(table.zone_id)
        rows.append(TableStatus(
            table_id=table.id,
            table_name=table.name,
            capacity=table.capacity,
            extra_capacity=table.extra_capacity,
            total_capacity=table.total_capacity,
            zone_id=zone.id if zone else None,
            zone_name=zone.name if zone else settings.UNZONED_LABEL,
            zone_color=zone.color if zone else None,
            is_available=table.id not in occupied
        ))

    # Tables without zone last
    rows.sort(key=lambda r: (
        r.zone_id is None,
        floor_plan.zone_priority(r.zone_id),
        r.table_name
    ))
    return rows


@table_status_router.get("/status")
async def get_tables_status(
    date: str,
    time: str,
    duration_minutes: Optional[int] = Query(None),
    exclude_reservation_id: Optional[str] = Query(None),
    current_user: dict = Depends(require_admin)
):
    return await list_tables_with_status(date, time, duration_minutes, exclude_reservation_id)
