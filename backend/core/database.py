"""
Database connection management
"""
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional
import logging

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING

from .config import settings

logger = logging.getLogger(__name__)

# MongoDB connection - singleton
client = AsyncIOMotorClient(settings.MONGO_URL)
db = client[settings.DB_NAME]


async def close_db_connection():
    """Close database connection"""
    client.close()


async def check_db_connection() -> bool:
    """Check if database is accessible"""
    try:
        await client.admin.command('ping')
        return True
    except Exception:
        return False


def session_kwargs(session) -> Dict[str, Any]:
    """Keyword arguments for collection calls inside an optional session"""
    return {"session": session} if session is not None else {}


@asynccontextmanager
async def write_transaction():
    """
    Yields a session running a multi-document transaction when
    MONGO_TRANSACTIONS is enabled, otherwise None.
    Leaving the block with an exception aborts the transaction.
    """
    if not settings.MONGO_TRANSACTIONS:
        yield None
        return

    async with await client.start_session() as session:
        async with session.start_transaction():
            yield session


async def ensure_indexes(database: Optional[Any] = None):
    """Create the indexes the reservation engine relies on"""
    target = database if database is not None else db

    await target.reservations.create_index([("id", ASCENDING)], unique=True)
    await target.reservations.create_index([("date", ASCENDING), ("status", ASCENDING)])
    await target.reservations.create_index([("customer_id", ASCENDING)])
    await target.reservation_table_assignments.create_index(
        [("reservation_id", ASCENDING), ("table_id", ASCENDING)], unique=True
    )
    await target.reservation_table_assignments.create_index([("table_id", ASCENDING)])
    await target.table_day_claims.create_index(
        [("table_id", ASCENDING), ("date", ASCENDING)], unique=True
    )
    await target.customers.create_index([("phone", ASCENDING)], unique=True)
    await target.users.create_index([("email", ASCENDING)], unique=True)

    logger.info("Database indexes ensured")
