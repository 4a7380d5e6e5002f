"""
Validators - Centralized validation logic
"""
from datetime import datetime, date
from typing import Optional

from .config import settings
from .exceptions import ValidationException, InvalidStatusTransitionException


def validate_status_transition(current_status: str, new_status: str) -> bool:
    """
    Validate that a status transition is allowed.
    Raises InvalidStatusTransitionException if not allowed.

    Status workflow:
        confirmed → arrived, cancelled, no_show
        arrived → completed, no_show
        cancelled, completed, no_show → (terminal)
    """
    allowed_transitions = settings.STATUS_TRANSITIONS.get(current_status, [])

    if new_status not in allowed_transitions:
        raise InvalidStatusTransitionException(current_status, new_status)

    return True


def parse_date(date_str: str) -> date:
    try:
        return datetime.strptime(date_str, "%Y-%m-%d").date()
    except (TypeError, ValueError):
        raise ValidationException(f"Invalid date format: {date_str} (expected YYYY-MM-DD)")


def normalize_date(date_str: str) -> str:
    """Zero-padded YYYY-MM-DD, the form dates are stored, queried and locked by"""
    return parse_date(date_str).strftime("%Y-%m-%d")


def parse_time(time_str: str) -> str:
    """Normalize HH:MM or HH:MM:SS to HH:MM"""
    for fmt in ("%H:%M", "%H:%M:%S"):
        try:
            return datetime.strptime(time_str, fmt).strftime("%H:%M")
        except (TypeError, ValueError):
            continue
    raise ValidationException(f"Invalid time format: {time_str} (expected HH:MM)")


def validate_party_size(guests: int) -> int:
    if guests is None:
        raise ValidationException("Party size is required")
    if guests < settings.MIN_PARTY_SIZE:
        raise ValidationException(f"Party size must be at least {settings.MIN_PARTY_SIZE}")
    if guests > settings.MAX_PARTY_SIZE:
        raise ValidationException(f"Party size must not exceed {settings.MAX_PARTY_SIZE}")
    return guests


def validate_duration(duration_minutes: Optional[int], default: int) -> int:
    if duration_minutes is None:
        return default
    if not settings.MIN_DURATION_MINUTES <= duration_minutes <= settings.MAX_DURATION_MINUTES:
        raise ValidationException(
            f"Duration must be between {settings.MIN_DURATION_MINUTES} "
            f"and {settings.MAX_DURATION_MINUTES} minutes"
        )
    return duration_minutes


def validate_reservation_request(
    date_str: str,
    time_str: str,
    guests: int,
    duration_minutes: Optional[int] = None
) -> dict:
    """
    Validate the basic shape of a reservation request.
    Returns normalized values or raises ValidationException.
    """
    return {
        "date": normalize_date(date_str),
        "time": parse_time(time_str),
        "guests": validate_party_size(guests),
        "duration_minutes": validate_duration(duration_minutes, settings.DEFAULT_DURATION_MINUTES),
    }
