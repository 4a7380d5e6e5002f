"""
MesaCore Customers - lookup and creation by phone number
"""
from typing import Optional
import logging

from pymongo.errors import DuplicateKeyError

from core.database import db
from core.exceptions import ValidationException
from core.models import create_entity, now_iso

logger = logging.getLogger(__name__)


def normalize_phone(phone: str) -> str:
    """Trim and drop inner spaces, keep a leading +"""
    return "".join((phone or "").split())


async def get_customer_by_phone(phone: str) -> Optional[dict]:
    """Get customer record by phone number"""
    return await db.customers.find_one({"phone": normalize_phone(phone)}, {"_id": 0})


async def find_or_create_customer(name: str, phone: str, email: Optional[str] = None) -> dict:
    """
    Upsert by phone. An existing customer gets the new name, and the email
    when a non-empty one is given.
    """
    name = (name or "").strip()
    phone = normalize_phone(phone)
    email = (email or "").strip() or None

    if not name:
        raise ValidationException("Customer name is required")
    if not phone:
        raise ValidationException("Customer phone is required")

    existing = await get_customer_by_phone(phone)
    if existing:
        update_data = {"name": name, "updated_at": now_iso()}
        if email:
            update_data["email"] = email
        await db.customers.update_one({"id": existing["id"]}, {"$set": update_data})
        return {**existing, **update_data}

    customer = create_entity({"name": name, "phone": phone, "email": email})
    try:
        await db.customers.insert_one(dict(customer))
    except DuplicateKeyError:
        # Created concurrently by another request
        return await find_or_create_customer(name, phone, email)

    logger.info(f"Customer created: {customer['id']} ({phone})")
    return customer
