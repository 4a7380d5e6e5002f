"""
MesaCore Reservation Module - Transaction Manager
================================================================================

create_reservation runs as one all-or-nothing unit:

1. closed day (single date or range)       -> RESTAURANT_CLOSED_DATE
2. opening window (special > weekly)       -> RESTAURANT_CLOSED_TIME
3. diners limit                            -> DINERS_LIMIT_EXCEEDED
4. [start_at, end_at) in restaurant time, stored as UTC
5. insert reservation (status confirmed)
6. allocate tables; nothing free -> delete reservation, NO_TABLES_AVAILABLE

Steps 5-6 hold the per-date allocation lock and run inside a MongoDB
transaction when MONGO_TRANSACTIONS is enabled. Without transactions every
failure after step 5 deletes the assignment rows and the reservation row
before the error surfaces.

Policy rejections and exhaustion come back as a failed ReservationResult,
unexpected failures as ReservationFailedException (HTTP 500).

Also here: cancellation, the check-in status workflow, manual table
reassignment and the public (phone based) booking API.
"""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from typing import List, Optional
import logging

from core.config import settings
from core.database import db, session_kwargs, write_transaction
from core.auth import require_admin, require_staff
from core.audit import create_audit_log, safe_dict_for_audit, SYSTEM_ACTOR
from core.exceptions import (
    MesaCoreException, NotFoundException, ValidationException, ConflictException,
    ReservationFailedException
)
from core.models import ReservationStatus, create_entity, now_iso
from core.timeutils import reservation_window, utc_now_iso
from core.validators import (
    validate_reservation_request, validate_status_transition, normalize_date, parse_date, parse_time
)
from customers_module import find_or_create_customer, get_customer_by_phone
from diners_limit_module import check_diners_limit
from floor_plan_module import get_floor_plan
from schedule_module import is_date_closed, is_time_within_schedule
from table_allocator import (
    NoAssignment, allocation_lock, assign_tables_to_reservation, match_manual_selection,
    persist_allocation, release_assignments, restore_assignments, get_assigned_table_ids
)
from table_availability import get_occupied_table_ids

logger = logging.getLogger(__name__)


# ============== ROUTERS ==============
reservation_router = APIRouter(prefix="/reservations", tags=["Reservations"])
public_router = APIRouter(prefix="/public", tags=["Public"])


# ============== ERROR CODES ==============
RESTAURANT_CLOSED_DATE = "RESTAURANT_CLOSED_DATE"
RESTAURANT_CLOSED_TIME = "RESTAURANT_CLOSED_TIME"
DINERS_LIMIT_EXCEEDED = "DINERS_LIMIT_EXCEEDED"
NO_TABLES_AVAILABLE = "NO_TABLES_AVAILABLE"

DEFAULT_CANCEL_REASON = "Cancelled by customer"


# ============== RESULT MODELS ==============

class ReservationResult(BaseModel):
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    reservation_id: Optional[str] = None
    assigned_tables: List[str] = Field(default_factory=list)

    @classmethod
    def failure(cls, error: str, error_code: str) -> "ReservationResult":
        return cls(success=False, error=error, error_code=error_code)


class CancellationResult(BaseModel):
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    reservation_id: Optional[str] = None


# ============== REQUEST MODELS ==============

class ReservationCreate(BaseModel):
    """Staff booking: existing customer id or name + phone"""
    customer_id: Optional[str] = None
    customer_name: Optional[str] = Field(None, max_length=100)
    customer_phone: Optional[str] = Field(None, max_length=30)
    customer_email: Optional[str] = Field(None, max_length=200)
    date: str
    time: str
    guests: int
    duration_minutes: Optional[int] = None
    special_requests: Optional[str] = Field(None, max_length=1000)
    preferred_zone_id: Optional[str] = None


class PublicReservationCreate(BaseModel):
    name: str = Field(..., max_length=100)
    phone: str = Field(..., max_length=30)
    email: Optional[str] = Field(None, max_length=200)
    date: str
    time: str
    guests: int
    duration_minutes: Optional[int] = None
    special_requests: Optional[str] = Field(None, max_length=1000)
    preferred_zone_id: Optional[str] = None


class PublicCancelRequest(BaseModel):
    phone: str = Field(..., max_length=30)
    date: str
    time: Optional[str] = None
    reason: Optional[str] = Field(None, max_length=500)


class StatusUpdate(BaseModel):
    status: ReservationStatus


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class TableSelection(BaseModel):
    table_ids: List[str] = Field(..., min_length=1)


# ============== HELPERS ==============

async def get_reservation_by_id(reservation_id: str) -> Optional[dict]:
    return await db.reservations.find_one({"id": reservation_id}, {"_id": 0})


async def _discard_reservation(reservation_id: str):
    """Compensation: drop every row the attempt may have written"""
    await release_assignments(reservation_id)
    await db.reservations.delete_one({"id": reservation_id})


# ============== TRANSACTION MANAGER ==============

async def create_reservation(
    customer_id: str,
    date: str,
    time: str,
    guests: int,
    special_requests: Optional[str] = None,
    duration_minutes: Optional[int] = None,
    preferred_zone_id: Optional[str] = None,
    actor: Optional[dict] = None
) -> ReservationResult:
    values = validate_reservation_request(date, time, guests, duration_minutes)
    date = values["date"]
    target_date = parse_date(date)
    time_str = values["time"]
    guests = values["guests"]
    duration = values["duration_minutes"]

    # 1. Closed day
    closed, reason = await is_date_closed(target_date)
    if closed:
        logger.warning(f"Reservation rejected, {date} is closed ({reason})")
        return ReservationResult.failure("Restaurant is closed on selected date", RESTAURANT_CLOSED_DATE)

    # 2. Opening window
    if not await is_time_within_schedule(target_date, time_str):
        logger.warning(f"Reservation rejected, {date} {time_str} is outside opening hours")
        return ReservationResult.failure("Restaurant is closed at selected time", RESTAURANT_CLOSED_TIME)

    # 3. Diners limit
    limit_check = await check_diners_limit(target_date, time_str, guests)
    if not limit_check.ok:
        logger.warning(f"Reservation rejected on {date} {time_str}: {limit_check.reason}")
        return ReservationResult.failure(limit_check.reason, DINERS_LIMIT_EXCEEDED)

    # 4. Window
    start_at, end_at = reservation_window(values["date"], time_str, duration)

    reservation = create_entity({
        "customer_id": customer_id,
        "date": values["date"],
        "time": time_str,
        "guests": guests,
        "duration_minutes": duration,
        "start_at": start_at,
        "end_at": end_at,
        "special_requests": special_requests,
        "preferred_zone_id": preferred_zone_id,
        "cancellation_reason": None
    }, {"status": ReservationStatus.CONFIRMED.value})
    reservation_id = reservation["id"]

    # 5. + 6. Insert and allocate
    async with allocation_lock(values["date"]):
        try:
            async with write_transaction() as session:
                await db.reservations.insert_one(dict(reservation), **session_kwargs(session))

                table_ids = await assign_tables_to_reservation(
                    reservation_id, values["date"], start_at, end_at, guests,
                    preferred_zone_id=preferred_zone_id,
                    session=session
                )
                if not table_ids:
                    await db.reservations.delete_one({"id": reservation_id}, **session_kwargs(session))
        except Exception as e:
            await _discard_reservation(reservation_id)
            if isinstance(e, MesaCoreException):
                raise
            logger.error(f"Creating reservation {reservation_id} failed: {e}", exc_info=True)
            raise ReservationFailedException(f"Error creating reservation: {e}") from e

    if not table_ids:
        logger.warning(f"No tables for {guests} guests on {date} {time_str}")
        return ReservationResult.failure(
            "No tables available for this capacity and time", NO_TABLES_AVAILABLE
        )

    await create_audit_log(
        actor or SYSTEM_ACTOR, "reservation", reservation_id, "create", None,
        safe_dict_for_audit({**reservation, "assigned_tables": table_ids})
    )
    logger.info(f"Reservation {reservation_id} created: {guests} guests on {date} {time_str}, tables {table_ids}")

    return ReservationResult(
        success=True,
        message="Reservation created successfully",
        reservation_id=reservation_id,
        assigned_tables=table_ids
    )


async def cancel_reservation(
    reservation_id: str,
    reason: Optional[str] = None,
    actor: Optional[dict] = None
) -> CancellationResult:
    """Status -> cancelled. The tables are free again for overlapping windows."""
    existing = await get_reservation_by_id(reservation_id)
    if not existing:
        raise NotFoundException("Reservation")

    validate_status_transition(existing["status"], ReservationStatus.CANCELLED.value)

    update_data = {
        "status": ReservationStatus.CANCELLED.value,
        "cancellation_reason": reason,
        "cancelled_at": now_iso(),
        "updated_at": now_iso()
    }
    await db.reservations.update_one({"id": reservation_id}, {"$set": update_data})
    await create_audit_log(
        actor or SYSTEM_ACTOR, "reservation", reservation_id, "cancel",
        existing, {**existing, **update_data}
    )
    logger.info(f"Reservation {reservation_id} cancelled ({reason})")

    return CancellationResult(
        success=True,
        message="Reservation cancelled successfully",
        reservation_id=reservation_id
    )


async def update_reservation_status(reservation_id: str, new_status: str, actor: dict) -> dict:
    """Check-in workflow, see settings.STATUS_TRANSITIONS"""
    existing = await get_reservation_by_id(reservation_id)
    if not existing:
        raise NotFoundException("Reservation")

    validate_status_transition(existing["status"], new_status)

    update_data = {"status": new_status, "updated_at": now_iso()}
    await db.reservations.update_one({"id": reservation_id}, {"$set": update_data})

    updated = {**existing, **update_data}
    await create_audit_log(actor, "reservation", reservation_id, "status_change", existing, updated)
    logger.info(f"Reservation {reservation_id}: {existing['status']} -> {new_status}")
    return updated


async def reassign_tables(reservation_id: str, table_ids: List[str], actor: dict) -> dict:
    """
    Manual override. The selection must be one active table or exactly the
    tables of one active combination, free for the reservation's window
    (the reservation itself excluded), with capacity incl. extra seats >= guests.
    """
    existing = await get_reservation_by_id(reservation_id)
    if not existing:
        raise NotFoundException("Reservation")
    if not ReservationStatus.is_active(existing["status"]):
        raise ValidationException(f"Tables of a {existing['status']} reservation cannot be changed")

    floor_plan = await get_floor_plan()
    allocation = match_manual_selection(floor_plan, list(dict.fromkeys(table_ids)))
    if isinstance(allocation, NoAssignment):
        raise ValidationException("Select one active table or exactly the tables of one active combination")
    if allocation.capacity < existing["guests"]:
        raise ValidationException(
            f"Selected tables seat {allocation.capacity}, the party has {existing['guests']} guests"
        )

    date_str = existing["date"]
    async with allocation_lock(date_str):
        occupied = await get_occupied_table_ids(
            date_str, existing["start_at"], existing["end_at"],
            exclude_reservation_id=reservation_id,
            table_ids=allocation.table_ids
        )
        if occupied:
            raise ConflictException(
                f"Tables {sorted(occupied)} are occupied at this time", error_code="TABLES_OCCUPIED"
            )

        previous = await get_assigned_table_ids(reservation_id)
        try:
            async with write_transaction() as session:
                await release_assignments(reservation_id, session)
                new_tables = await persist_allocation(
                    reservation_id, date_str, existing["start_at"], existing["end_at"],
                    allocation, session
                )
        except MesaCoreException:
            if not settings.MONGO_TRANSACTIONS:
                await restore_assignments(reservation_id, previous)
            raise

    await create_audit_log(
        actor, "reservation", reservation_id, "assign_tables",
        {"table_ids": previous}, {"table_ids": new_tables}
    )
    logger.info(f"Reservation {reservation_id} reassigned: {previous} -> {new_tables}")
    return {**existing, "assigned_tables": new_tables}


# ============== PUBLIC OPERATIONS ==============

async def public_create_reservation(
    name: str,
    phone: str,
    date: str,
    time: str,
    guests: int,
    email: Optional[str] = None,
    duration_minutes: Optional[int] = None,
    special_requests: Optional[str] = None,
    preferred_zone_id: Optional[str] = None
) -> ReservationResult:
    customer = await find_or_create_customer(name, phone, email)
    return await create_reservation(
        customer["id"], date, time, guests,
        special_requests=special_requests,
        duration_minutes=duration_minutes,
        preferred_zone_id=preferred_zone_id
    )


async def public_find_reservations(phone: str) -> List[dict]:
    """Upcoming confirmed/arrived reservations of the customer with this phone"""
    customer = await get_customer_by_phone(phone)
    if not customer:
        return []

    reservations = await db.reservations.find(
        {
            "customer_id": customer["id"],
            "status": {"$in": ReservationStatus.active_values()},
            "end_at": {"$gt": utc_now_iso()}
        },
        {"_id": 0}
    ).sort([("date", 1), ("time", 1)]).to_list(100)

    for r in reservations:
        r["customer_name"] = customer["name"]
        r["assigned_tables"] = await get_assigned_table_ids(r["id"])
    return reservations


async def public_cancel_reservation(
    phone: str,
    date: str,
    time: Optional[str] = None,
    reason: Optional[str] = None
) -> CancellationResult:
    """Cancel the first active reservation (by time) of this phone on the date"""
    date = normalize_date(date)
    customer = await get_customer_by_phone(phone)
    if not customer:
        return CancellationResult(success=False, error="No reservation found for this phone and date")

    query = {
        "customer_id": customer["id"],
        "date": date,
        "status": {"$in": ReservationStatus.active_values()}
    }
    if time:
        query["time"] = parse_time(time)

    matches = await db.reservations.find(query, {"_id": 0}).sort("time", 1).to_list(1)
    if not matches:
        return CancellationResult(success=False, error="No reservation found for this phone and date")

    return await cancel_reservation(matches[0]["id"], reason or DEFAULT_CANCEL_REASON, SYSTEM_ACTOR)


# ============== API ENDPOINTS: STAFF ==============

@reservation_router.post("")
async def create_reservation_endpoint(data: ReservationCreate, current_user: dict = Depends(require_admin)):
    customer_id = data.customer_id
    if customer_id is None:
        if not (data.customer_name and data.customer_phone):
            raise ValidationException("customer_id or customer_name and customer_phone are required")
        customer = await find_or_create_customer(data.customer_name, data.customer_phone, data.customer_email)
        customer_id = customer["id"]
    elif not await db.customers.find_one({"id": customer_id}, {"_id": 0, "id": 1}):
        raise NotFoundException("Customer")

    result = await create_reservation(
        customer_id, data.date, data.time, data.guests,
        special_requests=data.special_requests,
        duration_minutes=data.duration_minutes,
        preferred_zone_id=data.preferred_zone_id,
        actor=current_user
    )
    if not result.success:
        raise ConflictException(result.error, error_code=result.error_code)
    return result


@reservation_router.get("/{reservation_id}")
async def get_reservation(reservation_id: str, current_user: dict = Depends(require_staff)):
    reservation = await get_reservation_by_id(reservation_id)
    if not reservation:
        raise NotFoundException("Reservation")
    reservation["assigned_tables"] = await get_assigned_table_ids(reservation_id)
    return reservation


@reservation_router.patch("/{reservation_id}/status")
async def update_reservation_status_endpoint(
    reservation_id: str,
    data: StatusUpdate,
    current_user: dict = Depends(require_staff)
):
    return await update_reservation_status(reservation_id, data.status.value, current_user)


@reservation_router.post("/{reservation_id}/cancel")
async def cancel_reservation_endpoint(
    reservation_id: str,
    data: CancelRequest,
    current_user: dict = Depends(require_admin)
):
    return await cancel_reservation(reservation_id, data.reason, current_user)


@reservation_router.put("/{reservation_id}/tables")
async def reassign_tables_endpoint(
    reservation_id: str,
    data: TableSelection,
    current_user: dict = Depends(require_admin)
):
    return await reassign_tables(reservation_id, data.table_ids, current_user)


# ============== API ENDPOINTS: PUBLIC ==============

@public_router.post("/reservations")
async def public_create_reservation_endpoint(data: PublicReservationCreate):
    result = await public_create_reservation(
        data.name, data.phone, data.date, data.time, data.guests,
        email=data.email,
        duration_minutes=data.duration_minutes,
        special_requests=data.special_requests,
        preferred_zone_id=data.preferred_zone_id
    )
    if not result.success:
        raise ConflictException(result.error, error_code=result.error_code)
    return result


@public_router.get("/reservations")
async def public_find_reservations_endpoint(phone: str = Query(..., min_length=3, max_length=30)):
    return await public_find_reservations(phone)


@public_router.post("/reservations/cancel")
async def public_cancel_reservation_endpoint(data: PublicCancelRequest):
    result = await public_cancel_reservation(data.phone, data.date, data.time, data.reason)
    if not result.success:
        raise NotFoundException("Reservation")
    return result
