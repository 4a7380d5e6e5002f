"""
Staff authentication for the MesaCore back office

Two roles guard the API:
- admin: floor plan, schedules, diners limits, bookings and table overrides
- host:  front desk, reads reservations and records arrivals / no-shows

The public booking endpoints carry no token; they are keyed by phone.
"""
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from datetime import datetime, timezone, timedelta
from typing import Optional
import jwt
import bcrypt

from .config import settings
from .database import db
from .models import UserRole
from .exceptions import UnauthorizedException, ForbiddenException

security = HTTPBearer()


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')


def verify_password(password: str, hashed: Optional[str]) -> bool:
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), hashed.encode('utf-8'))
    except ValueError:
        return False


def create_token(user_id: str, email: str, role: str) -> str:
    """Bearer token for a staff member, valid JWT_EXPIRATION_HOURS"""
    issued = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "email": email,
        "role": role,
        "exp": issued + timedelta(hours=settings.JWT_EXPIRATION_HOURS),
        "iat": issued
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise UnauthorizedException("Token expired")
    except jwt.InvalidTokenError:
        raise UnauthorizedException("Invalid token")


def _ensure_active(user: Optional[dict], missing_message: str) -> dict:
    if not user:
        raise UnauthorizedException(missing_message)
    if not user.get("is_active", True):
        raise UnauthorizedException("Account disabled")
    return user


async def authenticate_staff(email: str, password: str) -> dict:
    """
    Check login credentials of a staff account.
    Returns the user without its password hash.
    """
    user = await db.users.find_one({"email": email, "archived": False}, {"_id": 0})
    if not user or not verify_password(password, user.get("password_hash")):
        raise UnauthorizedException("Invalid credentials")

    _ensure_active(user, "Invalid credentials")
    user.pop("password_hash", None)
    return user


async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)) -> dict:
    """Staff member behind the bearer token"""
    payload = decode_token(credentials.credentials)

    user = await db.users.find_one(
        {"id": payload["sub"], "archived": False},
        {"_id": 0, "password_hash": 0}
    )
    return _ensure_active(user, "User not found")


def require_roles(*roles: UserRole):
    """Dependency that lets only the given staff roles through"""
    allowed_roles = [r.value for r in roles]

    async def role_checker(user: dict = Depends(get_current_user)):
        if user.get("role") not in allowed_roles:
            raise ForbiddenException(
                f"This action requires one of the roles: {', '.join(allowed_roles)}"
            )
        return user

    return role_checker


# Back office configuration and booking management
require_admin = require_roles(UserRole.ADMIN)
# Front desk: lookups and check-in
require_staff = require_roles(UserRole.ADMIN, UserRole.HOST)
