"""
MesaCore Schedule Module
================================================================================
Opening hours, special days, closed days and the reservation time grid

Resolution for a date (highest first):
1. special_closed_days (single date or date range) -> closed
2. special_schedule_days (date-specific opening/closing) -> overrides the week
3. restaurant_schedules (weekly rows, several per weekday allowed)

Weekdays follow Python: 0=Monday .. 6=Sunday.
Boundaries are inclusive: a time equal to the closing time is inside.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import List, Optional, Tuple
from datetime import date, datetime

from core.database import db
from core.auth import require_admin
from core.audit import create_audit_log, safe_dict_for_audit
from core.exceptions import NotFoundException, ValidationException, ConflictException
from core.models import create_entity, now_iso
from core.timeutils import time_to_minutes, minutes_to_time

import logging
logger = logging.getLogger(__name__)


# ============== ROUTER ==============
schedule_router = APIRouter(prefix="/schedules", tags=["Schedules"])


# ============== HELPER FUNCTIONS ==============

def _validate_hhmm(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    try:
        datetime.strptime(v, "%H:%M")
    except ValueError:
        raise ValueError(f"Invalid time format: {v} (HH:MM expected)")
    return v


def _validate_ymd(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    try:
        datetime.strptime(v, "%Y-%m-%d")
    except ValueError:
        raise ValueError(f"Invalid date format: {v} (YYYY-MM-DD expected)")
    return v


def generate_slots_between(start: str, end: str, interval: int) -> List[str]:
    """Grid points from start to end (inclusive) every interval minutes"""
    slots = []
    current = time_to_minutes(start)
    end_min = time_to_minutes(end)

    while current <= end_min:
        slots.append(minutes_to_time(current))
        current += interval

    return slots


# ============== PYDANTIC MODELS ==============

class OpeningWindow(BaseModel):
    opening_time: str
    closing_time: str
    source: str = "weekly"  # weekly | special

    def contains(self, time_str: str) -> bool:
        return self.opening_time <= time_str <= self.closing_time


class WeeklyScheduleCreate(BaseModel):
    day_of_week: int = Field(..., ge=0, le=6)
    opening_time: str
    closing_time: str
    active: bool = True

    @field_validator('opening_time', 'closing_time')
    @classmethod
    def check_times(cls, v):
        return _validate_hhmm(v)

    @model_validator(mode='after')
    def check_order(self):
        if self.opening_time > self.closing_time:
            raise ValueError("Opening time must not be after closing time")
        return self


class WeeklyScheduleUpdate(BaseModel):
    opening_time: Optional[str] = None
    closing_time: Optional[str] = None
    active: Optional[bool] = None

    @field_validator('opening_time', 'closing_time')
    @classmethod
    def check_times(cls, v):
        return _validate_hhmm(v)


class SpecialScheduleCreate(BaseModel):
    """Date-specific opening hours, override the weekly rows"""
    date: str
    opening_time: str
    closing_time: str
    note: Optional[str] = Field(None, max_length=200)
    active: bool = True

    @field_validator('date')
    @classmethod
    def check_date(cls, v):
        return _validate_ymd(v)

    @field_validator('opening_time', 'closing_time')
    @classmethod
    def check_times(cls, v):
        return _validate_hhmm(v)

    @model_validator(mode='after')
    def check_order(self):
        if self.opening_time > self.closing_time:
            raise ValueError("Opening time must not be after closing time")
        return self


class ClosedDayCreate(BaseModel):
    """Closed day: a single date or an inclusive date range"""
    date: Optional[str] = None
    range_start: Optional[str] = None
    range_end: Optional[str] = None
    reason: str = Field(default="Closed", min_length=2, max_length=200)

    @field_validator('date', 'range_start', 'range_end')
    @classmethod
    def check_dates(cls, v):
        return _validate_ymd(v)

    @model_validator(mode='after')
    def check_shape(self):
        is_range = bool(self.range_start or self.range_end)
        if is_range == bool(self.date):
            raise ValueError("Give either date or range_start/range_end")
        if is_range:
            if not (self.range_start and self.range_end):
                raise ValueError("A range needs range_start and range_end")
            if self.range_start > self.range_end:
                raise ValueError("range_start must not be after range_end")
        return self


class TimeSlotCreate(BaseModel):
    time: str
    active: bool = True

    @field_validator('time')
    @classmethod
    def check_time(cls, v):
        return _validate_hhmm(v)


class GenerateGrid(BaseModel):
    """Automatic grid generation"""
    start: str
    end: str
    interval: int = Field(default=30, ge=5, le=120)

    @field_validator('start', 'end')
    @classmethod
    def check_times(cls, v):
        return _validate_hhmm(v)


# ============== CORE BUSINESS LOGIC ==============

async def is_date_closed(target_date: date) -> Tuple[bool, Optional[str]]:
    """
    Check special closed days.
    Returns (is_closed, reason)
    """
    date_str = target_date.strftime("%Y-%m-%d")

    closure = await db.special_closed_days.find_one(
        {
            "archived": False,
            "$or": [
                {"is_range": False, "date": date_str},
                {"is_range": True, "range_start": {"$lte": date_str}, "range_end": {"$gte": date_str}}
            ]
        },
        {"_id": 0}
    )

    if closure:
        return True, closure.get("reason", "Closed")
    return False, None


async def get_special_schedule(target_date: date) -> Optional[dict]:
    return await db.special_schedule_days.find_one(
        {"date": target_date.strftime("%Y-%m-%d"), "active": True, "archived": False},
        {"_id": 0}
    )


async def get_weekly_windows(weekday: int) -> List[OpeningWindow]:
    rows = await db.restaurant_schedules.find(
        {"day_of_week": weekday, "active": True, "archived": False},
        {"_id": 0}
    ).sort("opening_time", 1).to_list(20)

    return [
        OpeningWindow(opening_time=r["opening_time"], closing_time=r["closing_time"], source="weekly")
        for r in rows
    ]


async def get_effective_windows(target_date: date) -> List[OpeningWindow]:
    """
    Opening windows for a date: the special schedule when one exists,
    the weekly rows of the weekday otherwise. Empty list = closed.
    Closed days are checked separately (is_date_closed).
    """
    special = await get_special_schedule(target_date)
    if special:
        return [OpeningWindow(
            opening_time=special["opening_time"],
            closing_time=special["closing_time"],
            source="special"
        )]

    return await get_weekly_windows(target_date.weekday())


async def is_time_within_schedule(target_date: date, time_str: str) -> bool:
    windows = await get_effective_windows(target_date)
    return any(w.contains(time_str) for w in windows)


async def get_time_grid() -> List[str]:
    """Configured reservation grid, sorted"""
    rows = await db.time_slots.find(
        {"active": True, "archived": False}, {"_id": 0, "time": 1}
    ).to_list(500)
    return sorted({r["time"] for r in rows})


async def get_slot_times_for_date(target_date: date) -> List[str]:
    """Grid points inside the weekday's opening windows (closing time included)"""
    windows = await get_weekly_windows(target_date.weekday())
    if not windows:
        return []

    return [t for t in await get_time_grid() if any(w.contains(t) for w in windows)]


# ============== API ENDPOINTS: WEEKLY ==============

@schedule_router.get("/weekly")
async def list_weekly_schedules(current_user: dict = Depends(require_admin)):
    return await db.restaurant_schedules.find({"archived": False}, {"_id": 0}).sort(
        [("day_of_week", 1), ("opening_time", 1)]
    ).to_list(100)


@schedule_router.post("/weekly")
async def create_weekly_schedule(data: WeeklyScheduleCreate, current_user: dict = Depends(require_admin)):
    doc = create_entity(data.model_dump())
    await db.restaurant_schedules.insert_one(dict(doc))
    await create_audit_log(current_user, "restaurant_schedule", doc["id"], "create", None, safe_dict_for_audit(doc))
    return {"message": "Schedule created", "id": doc["id"], "schedule": doc}


@schedule_router.patch("/weekly/{schedule_id}")
async def update_weekly_schedule(
    schedule_id: str,
    data: WeeklyScheduleUpdate,
    current_user: dict = Depends(require_admin)
):
    existing = await db.restaurant_schedules.find_one({"id": schedule_id, "archived": False}, {"_id": 0})
    if not existing:
        raise NotFoundException("Schedule")

    update_data = {**data.model_dump(exclude_none=True), "updated_at": now_iso()}
    merged = {**existing, **update_data}
    if merged["opening_time"] > merged["closing_time"]:
        raise ValidationException("Opening time must not be after closing time")

    await db.restaurant_schedules.update_one({"id": schedule_id}, {"$set": update_data})
    await create_audit_log(current_user, "restaurant_schedule", schedule_id, "update", existing, merged)
    return {"message": "Schedule updated", "schedule": merged}


@schedule_router.delete("/weekly/{schedule_id}")
async def delete_weekly_schedule(schedule_id: str, current_user: dict = Depends(require_admin)):
    existing = await db.restaurant_schedules.find_one({"id": schedule_id, "archived": False}, {"_id": 0})
    if not existing:
        raise NotFoundException("Schedule")

    await db.restaurant_schedules.update_one(
        {"id": schedule_id}, {"$set": {"archived": True, "updated_at": now_iso()}}
    )
    await create_audit_log(current_user, "restaurant_schedule", schedule_id, "archive", existing)
    return {"message": "Schedule deleted"}


# ============== API ENDPOINTS: SPECIAL DAYS ==============

@schedule_router.get("/special-days")
async def list_special_days(current_user: dict = Depends(require_admin)):
    return await db.special_schedule_days.find({"archived": False}, {"_id": 0}).sort("date", 1).to_list(500)


@schedule_router.post("/special-days")
async def create_special_day(data: SpecialScheduleCreate, current_user: dict = Depends(require_admin)):
    existing = await db.special_schedule_days.find_one(
        {"date": data.date, "active": True, "archived": False}, {"_id": 0}
    )
    if existing:
        raise ConflictException(f"A special schedule for {data.date} already exists")

    doc = create_entity(data.model_dump())
    await db.special_schedule_days.insert_one(dict(doc))
    await create_audit_log(current_user, "special_schedule_day", doc["id"], "create", None, safe_dict_for_audit(doc))
    return {"message": f"Special schedule for {data.date} created", "id": doc["id"], "special_day": doc}


@schedule_router.delete("/special-days/{special_day_id}")
async def delete_special_day(special_day_id: str, current_user: dict = Depends(require_admin)):
    existing = await db.special_schedule_days.find_one({"id": special_day_id, "archived": False}, {"_id": 0})
    if not existing:
        raise NotFoundException("Special schedule")

    await db.special_schedule_days.update_one(
        {"id": special_day_id}, {"$set": {"archived": True, "active": False, "updated_at": now_iso()}}
    )
    await create_audit_log(current_user, "special_schedule_day", special_day_id, "archive", existing)
    return {"message": "Special schedule deleted"}


# ============== API ENDPOINTS: CLOSED DAYS ==============

@schedule_router.get("/closed-days")
async def list_closed_days(current_user: dict = Depends(require_admin)):
    return await db.special_closed_days.find({"archived": False}, {"_id": 0}).to_list(500)


@schedule_router.post("/closed-days")
async def create_closed_day(data: ClosedDayCreate, current_user: dict = Depends(require_admin)):
    doc = create_entity({
        "is_range": data.date is None,
        "date": data.date,
        "range_start": data.range_start,
        "range_end": data.range_end,
        "reason": data.reason
    })
    await db.special_closed_days.insert_one(dict(doc))
    await create_audit_log(current_user, "special_closed_day", doc["id"], "create", None, safe_dict_for_audit(doc))

    label = data.date or f"{data.range_start} - {data.range_end}"
    logger.info(f"Closed day created: {label} ({data.reason})")
    return {"message": f"Closed day {label} created", "id": doc["id"], "closed_day": doc}


@schedule_router.delete("/closed-days/{closed_day_id}")
async def delete_closed_day(closed_day_id: str, current_user: dict = Depends(require_admin)):
    existing = await db.special_closed_days.find_one({"id": closed_day_id, "archived": False}, {"_id": 0})
    if not existing:
        raise NotFoundException("Closed day")

    await db.special_closed_days.update_one(
        {"id": closed_day_id}, {"$set": {"archived": True, "updated_at": now_iso()}}
    )
    await create_audit_log(current_user, "special_closed_day", closed_day_id, "archive", existing)
    return {"message": "Closed day deleted"}


# ============== API ENDPOINTS: TIME GRID ==============

@schedule_router.get("/time-slots")
async def list_time_slots(current_user: dict = Depends(require_admin)):
    return await get_time_grid()


@schedule_router.post("/time-slots")
async def create_time_slot(data: TimeSlotCreate, current_user: dict = Depends(require_admin)):
    existing = await db.time_slots.find_one({"time": data.time, "archived": False}, {"_id": 0})
    if existing:
        raise ConflictException(f"Time slot {data.time} already exists")

    doc = create_entity(data.model_dump())
    await db.time_slots.insert_one(dict(doc))
    return {"message": f"Time slot {data.time} created", "id": doc["id"]}


@schedule_router.post("/time-slots/generate")
async def generate_time_slots(data: GenerateGrid, current_user: dict = Depends(require_admin)):
    """Add grid points between start and end, skipping existing ones"""
    if data.start > data.end:
        raise ValidationException("start must not be after end")

    existing = set(await get_time_grid())
    created = []
    for slot in generate_slots_between(data.start, data.end, data.interval):
        if slot in existing:
            continue
        await db.time_slots.insert_one(create_entity({"time": slot, "active": True}))
        created.append(slot)

    await create_audit_log(current_user, "time_slots", "grid", "create", None, {"created": created})
    return {"message": f"{len(created)} time slots created", "created": created}


@schedule_router.delete("/time-slots/{time_str}")
async def delete_time_slot(time_str: str, current_user: dict = Depends(require_admin)):
    result = await db.time_slots.update_many(
        {"time": time_str, "archived": False},
        {"$set": {"archived": True, "active": False, "updated_at": now_iso()}}
    )
    if result.modified_count == 0:
        raise NotFoundException("Time slot")
    return {"message": f"Time slot {time_str} deleted"}


__all__ = [
    "schedule_router",
    "OpeningWindow",
    "is_date_closed",
    "get_effective_windows",
    "is_time_within_schedule",
    "get_time_grid",
    "get_slot_times_for_date",
    "generate_slots_between"
]
