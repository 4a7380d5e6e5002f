"""
Shared fixtures: every test gets a fresh in-memory MongoDB (mongomock-motor)
patched into the modules that hold a `db` reference.
"""
import os

os.environ.setdefault("MONGO_URL", "mongodb://localhost:27017")
os.environ.setdefault("JWT_SECRET", "mesacore-test-secret-0123456789")
os.environ["MONGO_TRANSACTIONS"] = "false"
os.environ["RESTAURANT_TIMEZONE"] = "Europe/Madrid"

import uuid

import pytest
from mongomock_motor import AsyncMongoMockClient

import core.audit
import core.auth
import core.database
import customers_module
import diners_limit_module
import floor_plan_module
import reservation_module
import schedule_module
import server
import table_allocator
import table_availability
from core.models import create_entity
from core.timeutils import reservation_window

DB_MODULES = [
    core.database,
    core.auth,
    core.audit,
    floor_plan_module,
    table_availability,
    table_allocator,
    schedule_module,
    diners_limit_module,
    customers_module,
    reservation_module,
    server,
]

FUTURE_DATE = "2027-03-10"

ADMIN_USER = {
    "id": "admin-1",
    "email": "admin@mesacore.com",
    "name": "Admin",
    "role": "admin",
    "is_active": True,
}


@pytest.fixture(autouse=True)
def mock_db(monkeypatch):
    database = AsyncMongoMockClient()["mesacore_test"]
    for module in DB_MODULES:
        monkeypatch.setattr(module, "db", database)
    monkeypatch.setattr(floor_plan_module, "_snapshot", None)
    return database


class RestaurantBuilder:
    """Writes floor plan, schedule and booking documents straight into the mock db"""

    def __init__(self, database):
        self.db = database

    async def zone(self, name, priority_order=0, active=True, color=None):
        doc = create_entity({"name": name, "priority_order": priority_order, "color": color, "active": active})
        await self.db.zones.insert_one(doc)
        return doc["id"]

    async def table(self, name, capacity, zone_id=None, extra_capacity=0, active=True):
        doc = create_entity({
            "name": name,
            "capacity": capacity,
            "extra_capacity": extra_capacity,
            "shape": "square",
            "zone_id": zone_id,
            "active": active,
        })
        await self.db.tables.insert_one(doc)
        return doc["id"]

    async def combination(self, table_ids, zone_id, total_capacity, name=None, active=True):
        doc = create_entity({
            "name": name or "+".join(table_ids),
            "table_ids": list(table_ids),
            "total_capacity": total_capacity,
            "zone_id": zone_id,
            "active": active,
        })
        await self.db.table_combinations.insert_one(doc)
        return doc["id"]

    async def open_every_day(self, opening="12:00", closing="23:00"):
        for day in range(7):
            await self.db.restaurant_schedules.insert_one(create_entity({
                "day_of_week": day,
                "opening_time": opening,
                "closing_time": closing,
                "active": True,
            }))

    async def grid(self, *times):
        for t in times:
            await self.db.time_slots.insert_one(create_entity({"time": t, "active": True}))

    async def closed_day(self, date_str, reason="Holiday"):
        await self.db.special_closed_days.insert_one(create_entity({
            "is_range": False, "date": date_str, "range_start": None, "range_end": None, "reason": reason
        }))

    async def booking(self, table_ids, date_str, time_str, duration=90, guests=2, status="confirmed", customer_id=None):
        start_at, end_at = reservation_window(date_str, time_str, duration)
        doc = create_entity({
            "customer_id": customer_id or "walk-in",
            "date": date_str,
            "time": time_str,
            "guests": guests,
            "duration_minutes": duration,
            "start_at": start_at,
            "end_at": end_at,
        }, {"status": status})
        await self.db.reservations.insert_one(doc)
        for table_id in table_ids:
            await self.db.reservation_table_assignments.insert_one({
                "id": str(uuid.uuid4()), "reservation_id": doc["id"], "table_id": table_id
            })
        return doc["id"]

    async def reload(self):
        return await floor_plan_module.reload_floor_plan()


@pytest.fixture
def restaurant(mock_db):
    return RestaurantBuilder(mock_db)
