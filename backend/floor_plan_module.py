"""
MesaCore Floor Plan Module - Zones, Tables & Combinations
==================================================================

FEATURES:
1. Zone master data (priority order, color)
2. Table master data (capacity, extra capacity, shape, zone)
3. Pre-approved table combinations (fixed table sets per zone)
4. FloorPlanSnapshot - immutable, process-wide view used by the
   allocator, the slot calculator and the table-status report

RULES:
- Combinations only within one zone, at least 2 distinct active tables
- Tables are never deleted, only archived (history keeps referencing them)
- The snapshot is replaced on explicit reload, never mutated in place
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, List, Optional, Dict, Tuple
from enum import Enum

from core.database import db
from core.auth import require_admin
from core.audit import create_audit_log, safe_dict_for_audit
from core.config import settings
from core.exceptions import NotFoundException, ValidationException, ConflictException
from core.models import TableShape, create_entity, now_iso, strip_mongo_id

import logging
logger = logging.getLogger(__name__)


# ============== PYDANTIC MODELS ==============

# --- Zones ---
class ZoneCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    priority_order: int = Field(default=0, ge=0, le=998)
    color: Optional[str] = Field(None, max_length=20)
    active: bool = True


class ZoneUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    priority_order: Optional[int] = Field(None, ge=0, le=998)
    color: Optional[str] = Field(None, max_length=20)
    active: Optional[bool] = None


# --- Tables ---
class TableCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    capacity: int = Field(..., ge=1, le=50)
    extra_capacity: int = Field(default=0, ge=0, le=20)
    shape: TableShape = TableShape.SQUARE
    zone_id: Optional[str] = None
    active: bool = True
    position_x: Optional[float] = None
    position_y: Optional[float] = None


class TableUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    capacity: Optional[int] = Field(None, ge=1, le=50)
    extra_capacity: Optional[int] = Field(None, ge=0, le=20)
    shape: Optional[TableShape] = None
    zone_id: Optional[str] = None
    active: Optional[bool] = None
    position_x: Optional[float] = None
    position_y: Optional[float] = None


# --- Combinations ---
class TableCombinationCreate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    table_ids: List[str] = Field(..., min_length=2)
    zone_id: str
    total_capacity: Optional[int] = Field(None, ge=2, le=200)
    active: bool = True

    @field_validator('table_ids')
    @classmethod
    def validate_distinct(cls, v):
        if len(set(v)) != len(v):
            raise ValueError("A table can appear only once in a combination")
        return v


class TableCombinationUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    total_capacity: Optional[int] = Field(None, ge=2, le=200)
    active: Optional[bool] = None


# ============== SNAPSHOT ==============

class ZoneInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    priority_order: int = 0
    color: Optional[str] = None
    active: bool = True


class TableInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    capacity: int
    extra_capacity: int = 0
    shape: str = TableShape.SQUARE.value
    zone_id: Optional[str] = None
    active: bool = True

    @property
    def total_capacity(self) -> int:
        return self.capacity + self.extra_capacity


class CombinationInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: Optional[str] = None
    table_ids: Tuple[str, ...]
    total_capacity: int
    zone_id: Optional[str] = None
    active: bool = True


class FloorPlanSnapshot(BaseModel):
    """Read-only view of the restaurant's configuration"""
    model_config = ConfigDict(frozen=True)

    zones: Tuple[ZoneInfo, ...] = ()
    tables: Tuple[TableInfo, ...] = ()
    combinations: Tuple[CombinationInfo, ...] = ()
    loaded_at: Optional[str] = None

    def zone(self, zone_id: Optional[str]) -> Optional[ZoneInfo]:
        if zone_id is None:
            return None
        return next((z for z in self.zones if z.id == zone_id), None)

    def table(self, table_id: str) -> Optional[TableInfo]:
        return next((t for t in self.tables if t.id == table_id), None)

    def zone_priority(self, zone_id: Optional[str]) -> int:
        zone = self.zone(zone_id)
        return zone.priority_order if zone else settings.UNZONED_PRIORITY

    def zone_name(self, zone_id: Optional[str]) -> str:
        zone = self.zone(zone_id)
        return zone.name if zone else settings.UNZONED_LABEL

    def ranked_zones(self, preferred_zone_id: Optional[str] = None) -> List[ZoneInfo]:
        """
        Active zones in search order: the preferred zone first (whatever its
        priority), then ascending priority_order. Ties by name, then id.
        """
        active = [z for z in self.zones if z.active]
        return sorted(
            active,
            key=lambda z: (0 if z.id == preferred_zone_id else 1, z.priority_order, z.name, z.id)
        )

    def active_tables(self) -> List[TableInfo]:
        return [t for t in self.tables if t.active]

    def active_combinations(self) -> List[CombinationInfo]:
        """Active combinations whose member tables are all active and still in the combination's zone"""
        zone_of = {t.id: t.zone_id for t in self.tables if t.active}
        return [
            c for c in self.combinations
            if c.active and all(tid in zone_of and zone_of[tid] == c.zone_id for tid in c.table_ids)
        ]

    def tables_in_zone(self, zone_id: str) -> List[TableInfo]:
        return [t for t in self.active_tables() if t.zone_id == zone_id]

    def combinations_in_zone(self, zone_id: str) -> List[CombinationInfo]:
        return [c for c in self.active_combinations() if c.zone_id == zone_id]

    def combination_for_tables(self, table_ids) -> Optional[CombinationInfo]:
        """Active combination with exactly this table set"""
        wanted = set(table_ids)
        return next(
            (c for c in self.active_combinations() if set(c.table_ids) == wanted),
            None
        )


_snapshot: Optional[FloorPlanSnapshot] = None


async def load_floor_plan() -> FloorPlanSnapshot:
    """Read zones, tables and combinations into a new snapshot"""
    zones = await db.zones.find({"archived": False}, {"_id": 0}).to_list(200)
    tables = await db.tables.find({"archived": False}, {"_id": 0}).to_list(1000)
    combinations = await db.table_combinations.find({"archived": False}, {"_id": 0}).to_list(500)

    return FloorPlanSnapshot(
        zones=tuple(
            ZoneInfo(
                id=z["id"],
                name=z["name"],
                priority_order=z.get("priority_order", 0),
                color=z.get("color"),
                active=z.get("active", True)
            )
            for z in zones
        ),
        tables=tuple(
            TableInfo(
                id=t["id"],
                name=t["name"],
                capacity=t["capacity"],
                extra_capacity=t.get("extra_capacity") or 0,
                shape=t.get("shape", TableShape.SQUARE.value),
                zone_id=t.get("zone_id"),
                active=t.get("active", True)
            )
            for t in tables
        ),
        combinations=tuple(
            CombinationInfo(
                id=c["id"],
                name=c.get("name"),
                table_ids=tuple(c["table_ids"]),
                total_capacity=c["total_capacity"],
                zone_id=c.get("zone_id"),
                active=c.get("active", True)
            )
            for c in combinations
        ),
        loaded_at=now_iso()
    )


async def reload_floor_plan() -> FloorPlanSnapshot:
    """Replace the process-wide snapshot"""
    global _snapshot
    _snapshot = await load_floor_plan()
    logger.info(
        f"Floor plan loaded: {len(_snapshot.zones)} zones, "
        f"{len(_snapshot.tables)} tables, {len(_snapshot.combinations)} combinations"
    )
    return _snapshot


async def get_floor_plan() -> FloorPlanSnapshot:
    """Current snapshot, loaded on first use"""
    if _snapshot is None:
        return await reload_floor_plan()
    return _snapshot


# ============== HELPER FUNCTIONS ==============

async def get_zone_by_id(zone_id: str) -> Optional[dict]:
    return await db.zones.find_one({"id": zone_id, "archived": False}, {"_id": 0})


async def get_zone_by_name(name: str) -> Optional[dict]:
    return await db.zones.find_one({"name": name, "archived": False}, {"_id": 0})


async def get_table_by_id(table_id: str) -> Optional[dict]:
    return await db.tables.find_one({"id": table_id, "archived": False}, {"_id": 0})


async def get_table_by_name(name: str) -> Optional[dict]:
    return await db.tables.find_one({"name": name, "archived": False}, {"_id": 0})


async def validate_combination_tables(table_ids: List[str], zone_id: str) -> Dict[str, Any]:
    """
    Check that tables may be combined.
    Rules:
    - All tables exist and are active
    - All tables belong to the combination's zone
    - At least 2 tables
    """
    zone = await get_zone_by_id(zone_id)
    if not zone:
        return {"valid": False, "error": f"Zone {zone_id} not found"}

    tables = []
    for tid in table_ids:
        table = await get_table_by_id(tid)
        if not table:
            return {"valid": False, "error": f"Table {tid} not found"}
        if not table.get("active"):
            return {"valid": False, "error": f"Table {table['name']} is not active"}
        if table.get("zone_id") != zone_id:
            return {"valid": False, "error": f"Table {table['name']} is not in zone {zone['name']}"}
        tables.append(table)

    if len(tables) < 2:
        return {"valid": False, "error": "At least 2 tables required"}

    return {
        "valid": True,
        "tables": tables,
        "total_capacity": sum(t.get("capacity", 0) for t in tables),
        "table_names": [t["name"] for t in tables]
    }


def _update_fields(data: BaseModel) -> dict:
    update_data = {"updated_at": now_iso()}
    for field, value in data.model_dump(exclude_none=True).items():
        update_data[field] = value.value if isinstance(value, Enum) else value
    return update_data


# ============== ROUTERS ==============
zone_router = APIRouter(prefix="/zones", tags=["Zones"])
table_router = APIRouter(prefix="/tables", tags=["Tables"])
combination_router = APIRouter(prefix="/table-combinations", tags=["Table Combinations"])
floor_plan_router = APIRouter(prefix="/floor-plan", tags=["Floor Plan"])


# ============== ZONE ENDPOINTS ==============

@zone_router.get("")
async def list_zones(current_user: dict = Depends(require_admin)):
    """List zones by priority"""
    return await db.zones.find({"archived": False}, {"_id": 0}).sort(
        [("priority_order", 1), ("name", 1)]
    ).to_list(200)


@zone_router.post("")
async def create_zone(data: ZoneCreate, current_user: dict = Depends(require_admin)):
    if await get_zone_by_name(data.name):
        raise ConflictException(f"Zone {data.name} already exists")

    doc = create_entity(data.model_dump())
    await db.zones.insert_one(dict(doc))
    await create_audit_log(current_user, "zone", doc["id"], "create", None, safe_dict_for_audit(doc))
    await reload_floor_plan()
    return {"message": f"Zone {data.name} created", "id": doc["id"], "zone": doc}


@zone_router.patch("/{zone_id}")
async def update_zone(zone_id: str, data: ZoneUpdate, current_user: dict = Depends(require_admin)):
    zone = await get_zone_by_id(zone_id)
    if not zone:
        raise NotFoundException("Zone")

    if data.name and data.name != zone["name"] and await get_zone_by_name(data.name):
        raise ConflictException(f"Zone {data.name} already exists")

    await db.zones.update_one({"id": zone_id}, {"$set": _update_fields(data)})
    updated = await get_zone_by_id(zone_id)
    await create_audit_log(current_user, "zone", zone_id, "update", zone, updated)
    await reload_floor_plan()
    return {"message": "Zone updated", "zone": updated}


@zone_router.delete("/{zone_id}")
async def archive_zone(zone_id: str, current_user: dict = Depends(require_admin)):
    """Deactivate zone (soft delete)"""
    zone = await get_zone_by_id(zone_id)
    if not zone:
        raise NotFoundException("Zone")

    await db.zones.update_one(
        {"id": zone_id},
        {"$set": {"archived": True, "active": False, "updated_at": now_iso()}}
    )
    await create_audit_log(current_user, "zone", zone_id, "archive", zone)
    await reload_floor_plan()
    return {"message": f"Zone {zone['name']} archived"}


# ============== TABLE ENDPOINTS ==============

@table_router.get("")
async def list_tables(
    zone_id: Optional[str] = None,
    active_only: bool = True,
    current_user: dict = Depends(require_admin)
):
    query = {"archived": False}
    if zone_id:
        query["zone_id"] = zone_id
    if active_only:
        query["active"] = True

    return await db.tables.find(query, {"_id": 0}).sort("name", 1).to_list(1000)


@table_router.post("")
async def create_table(data: TableCreate, current_user: dict = Depends(require_admin)):
    if await get_table_by_name(data.name):
        raise ConflictException(f"Table {data.name} already exists")

    if data.zone_id and not await get_zone_by_id(data.zone_id):
        raise ValidationException(f"Zone {data.zone_id} not found")

    table_data = data.model_dump()
    table_data["shape"] = data.shape.value
    doc = create_entity(table_data)
    await db.tables.insert_one(dict(doc))

    await create_audit_log(current_user, "table", doc["id"], "create", None, safe_dict_for_audit(doc))
    await reload_floor_plan()
    return {"message": f"Table {data.name} created", "id": doc["id"], "table": doc}


@table_router.patch("/{table_id}")
async def update_table(table_id: str, data: TableUpdate, current_user: dict = Depends(require_admin)):
    table = await get_table_by_id(table_id)
    if not table:
        raise NotFoundException("Table")

    if data.zone_id and not await get_zone_by_id(data.zone_id):
        raise ValidationException(f"Zone {data.zone_id} not found")

    if data.zone_id and data.zone_id != table.get("zone_id"):
        combinations = await db.table_combinations.find(
            {"table_ids": table_id, "active": True, "archived": False},
            {"_id": 0, "id": 1, "name": 1}
        ).to_list(100)
        if combinations:
            names = ", ".join(c.get("name") or c["id"] for c in combinations)
            raise ConflictException(
                f"Table {table['name']} is part of combination(s) {names}; dissolve them before moving it"
            )

    await db.tables.update_one({"id": table_id}, {"$set": _update_fields(data)})

    updated = await get_table_by_id(table_id)
    await create_audit_log(current_user, "table", table_id, "update", table, updated)
    await reload_floor_plan()
    return {"message": "Table updated", "table": updated}


@table_router.delete("/{table_id}")
async def archive_table(table_id: str, current_user: dict = Depends(require_admin)):
    """Archive table (soft delete) - reservations keep referencing it"""
    table = await get_table_by_id(table_id)
    if not table:
        raise NotFoundException("Table")

    await db.tables.update_one(
        {"id": table_id},
        {"$set": {"archived": True, "active": False, "updated_at": now_iso()}}
    )
    await create_audit_log(current_user, "table", table_id, "archive", table, {**table, "archived": True})
    await reload_floor_plan()
    return {"message": f"Table {table['name']} archived"}


# ============== COMBINATION ENDPOINTS ==============

@combination_router.get("")
async def list_combinations(
    zone_id: Optional[str] = None,
    active_only: bool = True,
    current_user: dict = Depends(require_admin)
):
    query = {"archived": False}
    if zone_id:
        query["zone_id"] = zone_id
    if active_only:
        query["active"] = True

    return await db.table_combinations.find(query, {"_id": 0}).sort("total_capacity", 1).to_list(500)


@combination_router.post("")
async def create_combination(data: TableCombinationCreate, current_user: dict = Depends(require_admin)):
    validation = await validate_combination_tables(data.table_ids, data.zone_id)
    if not validation["valid"]:
        raise ValidationException(validation["error"])

    comb_data = {
        "name": data.name or " + ".join(validation["table_names"]),
        "table_ids": data.table_ids,
        "total_capacity": data.total_capacity or validation["total_capacity"],
        "zone_id": data.zone_id,
        "active": data.active
    }
    doc = create_entity(comb_data)
    await db.table_combinations.insert_one(dict(doc))

    await create_audit_log(current_user, "table_combination", doc["id"], "create", None, safe_dict_for_audit(doc))
    await reload_floor_plan()
    return {"message": f"Combination created: {comb_data['name']}", "id": doc["id"], "combination": doc}


@combination_router.patch("/{combination_id}")
async def update_combination(
    combination_id: str,
    data: TableCombinationUpdate,
    current_user: dict = Depends(require_admin)
):
    comb = await db.table_combinations.find_one({"id": combination_id, "archived": False}, {"_id": 0})
    if not comb:
        raise NotFoundException("Table combination")

    await db.table_combinations.update_one({"id": combination_id}, {"$set": _update_fields(data)})
    updated = await db.table_combinations.find_one({"id": combination_id}, {"_id": 0})
    await create_audit_log(current_user, "table_combination", combination_id, "update", comb, updated)
    await reload_floor_plan()
    return {"message": "Combination updated", "combination": updated}


@combination_router.delete("/{combination_id}")
async def dissolve_combination(combination_id: str, current_user: dict = Depends(require_admin)):
    comb = await db.table_combinations.find_one({"id": combination_id, "archived": False}, {"_id": 0})
    if not comb:
        raise NotFoundException("Table combination")

    await db.table_combinations.update_one(
        {"id": combination_id},
        {"$set": {"archived": True, "active": False, "updated_at": now_iso()}}
    )
    await create_audit_log(current_user, "table_combination", combination_id, "archive", strip_mongo_id(comb))
    await reload_floor_plan()
    return {"message": "Combination dissolved"}


# ============== SNAPSHOT ENDPOINTS ==============

@floor_plan_router.get("")
async def get_floor_plan_snapshot(current_user: dict = Depends(require_admin)):
    return (await get_floor_plan()).model_dump()


@floor_plan_router.post("/reload")
async def reload_floor_plan_endpoint(current_user: dict = Depends(require_admin)):
    snapshot = await reload_floor_plan()
    return {
        "message": "Floor plan reloaded",
        "zones": len(snapshot.zones),
        "tables": len(snapshot.tables),
        "combinations": len(snapshot.combinations),
        "loaded_at": snapshot.loaded_at
    }


__all__ = [
    "zone_router",
    "table_router",
    "combination_router",
    "floor_plan_router",
    "FloorPlanSnapshot",
    "ZoneInfo",
    "TableInfo",
    "CombinationInfo",
    "get_floor_plan",
    "reload_floor_plan",
    "validate_combination_tables"
]
