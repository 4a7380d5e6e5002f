"""
MesaCore Diners Limit Module
================================================================================
Maximum number of diners per time range

A limit row covers [start_time, end_time] (both inclusive) and is either
weekly (day_of_week, 0=Monday) or bound to one date. For a date, date-specific
rows replace the weekly rows of that weekday. No row -> no limit.

Occupancy = guests of confirmed/arrived reservations on the date whose
reservation time falls into the range.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import List, Optional
from datetime import date, datetime

from core.database import db
from core.auth import require_admin
from core.audit import create_audit_log, safe_dict_for_audit
from core.exceptions import NotFoundException
from core.models import ReservationStatus, create_entity, now_iso

import logging
logger = logging.getLogger(__name__)


# ============== ROUTER ==============
diners_limit_router = APIRouter(prefix="/diners-limits", tags=["Diners Limits"])


# ============== PYDANTIC MODELS ==============

class DinersLimitCheck(BaseModel):
    ok: bool
    reason: Optional[str] = None
    max_diners: Optional[int] = None
    current_diners: Optional[int] = None


class DinersLimitCreate(BaseModel):
    day_of_week: Optional[int] = Field(None, ge=0, le=6)
    date: Optional[str] = None
    start_time: str
    end_time: str
    max_diners: int = Field(..., ge=1, le=2000)
    active: bool = True

    @field_validator('start_time', 'end_time')
    @classmethod
    def validate_time(cls, v):
        datetime.strptime(v, "%H:%M")
        return v

    @field_validator('date')
    @classmethod
    def validate_date(cls, v):
        if v is not None:
            datetime.strptime(v, "%Y-%m-%d")
        return v

    @model_validator(mode='after')
    def check_scope(self):
        if (self.day_of_week is None) == (self.date is None):
            raise ValueError("Give either day_of_week or date")
        if self.start_time > self.end_time:
            raise ValueError("start_time must not be after end_time")
        return self


class DinersLimitUpdate(BaseModel):
    max_diners: Optional[int] = Field(None, ge=1, le=2000)
    active: Optional[bool] = None


# ============== CORE BUSINESS LOGIC ==============

async def get_limits_for_date(target_date: date) -> List[dict]:
    """Active limit rows for a date, date-specific rows first"""
    date_str = target_date.strftime("%Y-%m-%d")
    base = {"active": True, "archived": False}

    specific = await db.diners_limits.find({**base, "date": date_str}, {"_id": 0}).to_list(50)
    if specific:
        return specific

    return await db.diners_limits.find(
        {**base, "date": None, "day_of_week": target_date.weekday()}, {"_id": 0}
    ).to_list(50)


async def count_diners(date_str: str, start_time: str, end_time: str) -> int:
    reservations = await db.reservations.find(
        {
            "date": date_str,
            "status": {"$in": ReservationStatus.active_values()},
            "time": {"$gte": start_time, "$lte": end_time}
        },
        {"_id": 0, "guests": 1}
    ).to_list(5000)
    return sum(r.get("guests", 0) for r in reservations)


async def check_diners_limit(target_date: date, time_str: str, guests: int) -> DinersLimitCheck:
    """Would a party of `guests` at `time_str` stay within every matching limit?"""
    date_str = target_date.strftime("%Y-%m-%d")
    limits = [
        l for l in await get_limits_for_date(target_date)
        if l["start_time"] <= time_str <= l["end_time"]
    ]

    for limit in sorted(limits, key=lambda l: l["max_diners"]):
        current = await count_diners(date_str, limit["start_time"], limit["end_time"])
        if current + guests > limit["max_diners"]:
            return DinersLimitCheck(
                ok=False,
                reason=(
                    f"Maximum of {limit['max_diners']} diners between {limit['start_time']} "
                    f"and {limit['end_time']} reached ({current} booked)"
                ),
                max_diners=limit["max_diners"],
                current_diners=current
            )

    return DinersLimitCheck(ok=True)


# ============== API ENDPOINTS ==============

@diners_limit_router.get("")
async def list_diners_limits(current_user: dict = Depends(require_admin)):
    return await db.diners_limits.find({"archived": False}, {"_id": 0}).to_list(500)


@diners_limit_router.post("")
async def create_diners_limit(data: DinersLimitCreate, current_user: dict = Depends(require_admin)):
    doc = create_entity(data.model_dump())
    await db.diners_limits.insert_one(dict(doc))
    await create_audit_log(current_user, "diners_limit", doc["id"], "create", None, safe_dict_for_audit(doc))
    return {"message": "Diners limit created", "id": doc["id"], "limit": doc}


@diners_limit_router.patch("/{limit_id}")
async def update_diners_limit(limit_id: str, data: DinersLimitUpdate, current_user: dict = Depends(require_admin)):
    existing = await db.diners_limits.find_one({"id": limit_id, "archived": False}, {"_id": 0})
    if not existing:
        raise NotFoundException("Diners limit")

    update_data = {**data.model_dump(exclude_none=True), "updated_at": now_iso()}
    await db.diners_limits.update_one({"id": limit_id}, {"$set": update_data})
    await create_audit_log(current_user, "diners_limit", limit_id, "update", existing, {**existing, **update_data})
    return {"message": "Diners limit updated"}


@diners_limit_router.delete("/{limit_id}")
async def delete_diners_limit(limit_id: str, current_user: dict = Depends(require_admin)):
    existing = await db.diners_limits.find_one({"id": limit_id, "archived": False}, {"_id": 0})
    if not existing:
        raise NotFoundException("Diners limit")

    await db.diners_limits.update_one(
        {"id": limit_id}, {"$set": {"archived": True, "active": False, "updated_at": now_iso()}}
    )
    await create_audit_log(current_user, "diners_limit", limit_id, "archive", existing)
    return {"message": "Diners limit deleted"}
