"""
Custom exceptions for consistent error handling
"""
from fastapi import HTTPException, status


class MesaCoreException(HTTPException):
    """Base exception for MesaCore"""
    def __init__(self, status_code: int, detail: str, error_code: str = None):
        super().__init__(status_code=status_code, detail=detail)
        self.error_code = error_code


class UnauthorizedException(MesaCoreException):
    """401 - Authentication required or failed"""
    def __init__(self, detail: str = "Not authorized"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code="UNAUTHORIZED"
        )


class ForbiddenException(MesaCoreException):
    """403 - Authenticated but not allowed"""
    def __init__(self, detail: str = "Permission denied"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            error_code="FORBIDDEN"
        )


class NotFoundException(MesaCoreException):
    """404 - Resource not found"""
    def __init__(self, resource: str = "Resource"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} not found",
            error_code="NOT_FOUND"
        )


class ValidationException(MesaCoreException):
    """400 - Validation error"""
    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            error_code="VALIDATION_ERROR"
        )


class ConflictException(MesaCoreException):
    """409 - Resource conflict"""
    def __init__(self, detail: str, error_code: str = "CONFLICT"):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code=error_code
        )


class InvalidStatusTransitionException(ValidationException):
    """Invalid status transition"""
    def __init__(self, current: str, target: str):
        super().__init__(
            detail=f"Invalid status transition: {current} → {target}"
        )


class AllocationConflictException(ConflictException):
    """Tables were claimed by a concurrent reservation"""
    def __init__(self, detail: str = "Tables were claimed by another reservation, please retry"):
        super().__init__(detail=detail, error_code="ALLOCATION_CONFLICT")


class ReservationFailedException(MesaCoreException):
    """500 - Persistence failed, the attempt was rolled back"""
    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            error_code="RESERVATION_FAILED"
        )
