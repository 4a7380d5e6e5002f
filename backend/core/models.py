"""
Shared Enums and helpers
"""
from enum import Enum
from datetime import datetime, timezone
import uuid


class UserRole(str, Enum):
    """Staff roles"""
    ADMIN = "admin"
    HOST = "host"  # Front desk - check-in only


class ReservationStatus(str, Enum):
    """Reservation status with strict workflow"""
    CONFIRMED = "confirmed"
    ARRIVED = "arrived"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"

    @classmethod
    def active_values(cls) -> list:
        """Statuses that occupy tables"""
        return [cls.CONFIRMED.value, cls.ARRIVED.value]

    @classmethod
    def is_active(cls, status: str) -> bool:
        return status in cls.active_values()

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return status in [cls.CANCELLED.value, cls.COMPLETED.value, cls.NO_SHOW.value]


class TableShape(str, Enum):
    SQUARE = "square"
    ROUND = "round"


class AuditAction(str, Enum):
    """Audit log action types"""
    CREATE = "create"
    UPDATE = "update"
    ARCHIVE = "archive"
    STATUS_CHANGE = "status_change"
    ASSIGN_TABLES = "assign_tables"
    CANCEL = "cancel"
    LOGIN = "login"


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def create_entity(data: dict, extra_fields: dict = None) -> dict:
    """New document with id and timestamps"""
    entity = {
        "id": str(uuid.uuid4()),
        **data,
        "created_at": now_iso(),
        "updated_at": now_iso(),
        "archived": False
    }
    if extra_fields:
        entity.update(extra_fields)
    return entity


def strip_mongo_id(doc: dict) -> dict:
    """Copy of a document without Mongo's _id"""
    return {k: v for k, v in doc.items() if k != "_id"}
