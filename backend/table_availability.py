"""
MesaCore Table Availability - Interval Overlap Checker
================================================================================

A table is occupied for a window [start, end) when a reservation on the same
date with status confirmed/arrived holds it and

    existing.start_at < end AND existing.end_at > start

Touching endpoints do not conflict (an 20:00-21:30 booking and a 21:30 booking
share the table without overlap).

Instants are the stored UTC ISO strings (see core.timeutils.to_utc_iso), so
the range filters run directly in MongoDB.

Read-only. No locking, callers on the write path re-validate.
"""

from typing import Iterable, List, Optional, Set, Tuple
import logging

from pydantic import BaseModel, ConfigDict

from core.database import db, session_kwargs
from core.models import ReservationStatus

logger = logging.getLogger(__name__)


class ActiveBooking(BaseModel):
    """Active reservation on a date together with the tables it holds"""
    model_config = ConfigDict(frozen=True)

    reservation_id: str
    start_at: str
    end_at: str
    table_ids: Tuple[str, ...] = ()


def intervals_overlap(start_a: str, end_a: str, start_b: str, end_b: str) -> bool:
    """Half-open interval overlap"""
    return start_a < end_b and end_a > start_b


async def get_overlapping_reservation_ids(
    date_str: str,
    start_at: str,
    end_at: str,
    exclude_reservation_id: Optional[str] = None,
    session=None
) -> List[str]:
    """Ids of confirmed/arrived reservations on the date overlapping [start_at, end_at)"""
    query = {
        "date": date_str,
        "status": {"$in": ReservationStatus.active_values()},
        "start_at": {"$lt": end_at},
        "end_at": {"$gt": start_at},
    }
    if exclude_reservation_id:
        query["id"] = {"$ne": exclude_reservation_id}

    docs = await db.reservations.find(
        query, {"_id": 0, "id": 1}, **session_kwargs(session)
    ).to_list(1000)
    return [d["id"] for d in docs]


async def get_occupied_table_ids(
    date_str: str,
    start_at: str,
    end_at: str,
    exclude_reservation_id: Optional[str] = None,
    table_ids: Optional[Iterable[str]] = None,
    session=None
) -> Set[str]:
    """
    Tables held by an overlapping active reservation.
    Restricted to table_ids when given.
    """
    reservation_ids = await get_overlapping_reservation_ids(
        date_str, start_at, end_at, exclude_reservation_id, session=session
    )
    if not reservation_ids:
        return set()

    query = {"reservation_id": {"$in": reservation_ids}}
    if table_ids is not None:
        query["table_id"] = {"$in": list(table_ids)}

    rows = await db.reservation_table_assignments.find(
        query, {"_id": 0, "table_id": 1}, **session_kwargs(session)
    ).to_list(5000)
    return {r["table_id"] for r in rows}


async def is_table_available(
    table_id: str,
    date_str: str,
    start_at: str,
    end_at: str,
    exclude_reservation_id: Optional[str] = None,
    session=None
) -> bool:
    """True when no active reservation holds the table during [start_at, end_at)"""
    occupied = await get_occupied_table_ids(
        date_str, start_at, end_at,
        exclude_reservation_id=exclude_reservation_id,
        table_ids=[table_id],
        session=session
    )
    return table_id not in occupied


async def get_active_bookings(
    date_str: str,
    exclude_reservation_id: Optional[str] = None
) -> List[ActiveBooking]:
    """
    All confirmed/arrived reservations of a date with their tables.
    Loaded once and evaluated per slot by the availability calculator.
    """
    query = {"date": date_str, "status": {"$in": ReservationStatus.active_values()}}
    if exclude_reservation_id:
        query["id"] = {"$ne": exclude_reservation_id}

    reservations = await db.reservations.find(
        query, {"_id": 0, "id": 1, "start_at": 1, "end_at": 1}
    ).to_list(2000)
    if not reservations:
        return []

    rows = await db.reservation_table_assignments.find(
        {"reservation_id": {"$in": [r["id"] for r in reservations]}},
        {"_id": 0, "reservation_id": 1, "table_id": 1}
    ).to_list(10000)

    tables_by_reservation = {}
    for row in rows:
        tables_by_reservation.setdefault(row["reservation_id"], []).append(row["table_id"])

    return [
        ActiveBooking(
            reservation_id=r["id"],
            start_at=r["start_at"],
            end_at=r["end_at"],
            table_ids=tuple(tables_by_reservation.get(r["id"], []))
        )
        for r in reservations
    ]


def occupied_tables_in_window(bookings: Iterable[ActiveBooking], start_at: str, end_at: str) -> Set[str]:
    """In-memory counterpart of get_occupied_table_ids over preloaded bookings"""
    occupied = set()
    for booking in bookings:
        if intervals_overlap(booking.start_at, booking.end_at, start_at, end_at):
            occupied.update(booking.table_ids)
    return occupied
