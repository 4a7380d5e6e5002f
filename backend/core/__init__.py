# Core Module - Shared configurations and utilities
from .config import settings, get_settings
from .database import db, client
from .auth import (
    get_current_user,
    require_roles,
    require_admin,
    require_staff,
    hash_password,
    verify_password,
    create_token,
    decode_token
)
from .audit import create_audit_log, safe_dict_for_audit, SYSTEM_ACTOR
from .models import UserRole, ReservationStatus, TableShape, AuditAction
from .validators import validate_status_transition, validate_reservation_request
from .exceptions import (
    MesaCoreException,
    UnauthorizedException,
    ForbiddenException,
    NotFoundException,
    ValidationException,
    ConflictException,
    AllocationConflictException,
    ReservationFailedException
)

__all__ = [
    'settings', 'get_settings', 'db', 'client',
    'get_current_user', 'require_roles', 'require_admin', 'require_staff',
    'hash_password', 'verify_password', 'create_token', 'decode_token',
    'create_audit_log', 'safe_dict_for_audit', 'SYSTEM_ACTOR',
    'UserRole', 'ReservationStatus', 'TableShape', 'AuditAction',
    'validate_status_transition', 'validate_reservation_request',
    'MesaCoreException', 'UnauthorizedException', 'ForbiddenException',
    'NotFoundException', 'ValidationException', 'ConflictException',
    'AllocationConflictException', 'ReservationFailedException'
]
