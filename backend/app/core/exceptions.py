# backend/app/core/exceptions.py
"""
Domain-specific exceptions for the GymApp platform.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
None of them are retried by the core; retrying is the caller's call.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        """Convert to an HTTPException using the class status code."""
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when input fails business validation (before any mutation)."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class UnauthorizedException(DomainException):
    """Raised when the request carries no usable auth context."""

    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenException(DomainException):
    """Raised when user lacks permission for an action."""

    status_code = status.HTTP_403_FORBIDDEN


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Specific business exceptions


class CapacityExceededException(ConflictException):
    """Raised by the instance store when a roster increment would pass max capacity."""

    def __init__(self, class_instance_id: str, max_capacity: Optional[int] = None):
        super().__init__(
            message="Class instance is at full capacity",
            code="CAPACITY_EXCEEDED",
            details={"class_instance_id": class_instance_id, "max_capacity": max_capacity},
        )


class ClassFullException(ConflictException):
    """Raised by the booking ledger when no seat is left in the class."""

    def __init__(self, class_instance_id: str, max_capacity: Optional[int] = None):
        super().__init__(
            message="Class is fully booked",
            code="CLASS_FULL",
            details={"class_instance_id": class_instance_id, "max_capacity": max_capacity},
        )


class DuplicateBookingException(ConflictException):
    """Raised when the user already holds a confirmed booking for the class instance."""

    def __init__(self, user_id: str, class_instance_id: str):
        super().__init__(
            message="You already have a booking for this class",
            code="DUPLICATE_BOOKING",
            details={"user_id": user_id, "class_instance_id": class_instance_id},
        )


class AlreadyCancelledException(BusinessRuleException):
    """Raised when cancelling a booking that is no longer confirmed."""

    def __init__(self, booking_id: str, current_status: str):
        super().__init__(
            message=f"Booking cannot be cancelled - current status: {current_status}",
            code="ALREADY_CANCELLED",
            details={"booking_id": booking_id, "status": current_status},
        )


class InvalidStateTransitionException(BusinessRuleException):
    """Raised when a status change is not allowed by the lifecycle."""

    def __init__(self, entity: str, current_status: str, requested_status: str):
        super().__init__(
            message=f"Cannot move {entity} from '{current_status}' to '{requested_status}'",
            code="INVALID_STATE_TRANSITION",
            details={
                "entity": entity,
                "current_status": current_status,
                "requested_status": requested_status,
            },
        )


class CancellationWindowClosedException(BusinessRuleException):
    """Raised when a member cancels inside the hard cutoff before class start."""

    def __init__(self, cutoff_hours: float, hours_until_class: float):
        super().__init__(
            message=(
                f"Cannot cancel booking less than {cutoff_hours:g} hours before class"
            ),
            code="CANCELLATION_WINDOW_CLOSED",
            details={
                "cutoff_hours": cutoff_hours,
                "hours_until_class": round(hours_until_class, 2),
            },
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """
