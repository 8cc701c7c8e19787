"""
Error taxonomy for the order engine.

Services raise DomainError subclasses internally. Public service operations
never let them escape: the TransactionCoordinator turns them into failed
OperationResult values, and routers translate those into HTTP responses
through DomainHTTPException.

Usage:
    from shared.utils.exceptions import OrderNotFoundError, CapacityExceededError

    raise OrderNotFoundError(order_id)
    raise CapacityExceededError(capacity=4, guest_count=6, table_id=12)
"""

from enum import Enum
from typing import Any

from fastapi import HTTPException, status

from shared.config.logging import get_logger

logger = get_logger(__name__)


class ErrorCategory(str, Enum):
    """How a caller should react to a failure."""

    VALIDATION = "validation"  # fix the input and retry
    CONFLICT = "conflict"  # re-fetch current state before retrying
    POLICY = "policy"  # business rule rejection, carries the violated limit
    NOT_FOUND = "not_found"  # missing or outside the caller's scope
    AUTHORIZATION = "authorization"  # caller's role may not perform the action
    TRANSIENT = "transient"  # storage trouble, safe to retry in full


class ErrorKind(str, Enum):
    """Every failure a public operation can report."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNSUPPORTED_CHANNEL = "UNSUPPORTED_CHANNEL"
    TABLE_UNAVAILABLE = "TABLE_UNAVAILABLE"
    SHIFT_ALREADY_OPEN = "SHIFT_ALREADY_OPEN"
    SHIFT_ALREADY_CLOSED = "SHIFT_ALREADY_CLOSED"
    ALREADY_SETTLED = "ALREADY_SETTLED"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    NO_TABLE_AVAILABLE = "NO_TABLE_AVAILABLE"
    ORDER_NOT_FOUND = "ORDER_NOT_FOUND"
    TABLE_NOT_FOUND = "TABLE_NOT_FOUND"
    SHIFT_NOT_FOUND = "SHIFT_NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    TRANSIENT = "TRANSIENT"

    @property
    def category(self) -> ErrorCategory:
        return ERROR_CATEGORIES[self]


ERROR_CATEGORIES: dict[ErrorKind, ErrorCategory] = {
    ErrorKind.VALIDATION_ERROR: ErrorCategory.VALIDATION,
    ErrorKind.UNSUPPORTED_CHANNEL: ErrorCategory.VALIDATION,
    ErrorKind.INVALID_TRANSITION: ErrorCategory.CONFLICT,
    ErrorKind.TABLE_UNAVAILABLE: ErrorCategory.CONFLICT,
    ErrorKind.SHIFT_ALREADY_OPEN: ErrorCategory.CONFLICT,
    ErrorKind.SHIFT_ALREADY_CLOSED: ErrorCategory.CONFLICT,
    ErrorKind.ALREADY_SETTLED: ErrorCategory.CONFLICT,
    ErrorKind.CAPACITY_EXCEEDED: ErrorCategory.POLICY,
    ErrorKind.NO_TABLE_AVAILABLE: ErrorCategory.POLICY,
    ErrorKind.ORDER_NOT_FOUND: ErrorCategory.NOT_FOUND,
    ErrorKind.TABLE_NOT_FOUND: ErrorCategory.NOT_FOUND,
    ErrorKind.SHIFT_NOT_FOUND: ErrorCategory.NOT_FOUND,
    ErrorKind.UNAUTHORIZED: ErrorCategory.AUTHORIZATION,
    ErrorKind.TRANSIENT: ErrorCategory.TRANSIENT,
}

CATEGORY_STATUS_CODES: dict[ErrorCategory, int] = {
    ErrorCategory.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorCategory.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCategory.POLICY: 422,
    ErrorCategory.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCategory.AUTHORIZATION: status.HTTP_403_FORBIDDEN,
    ErrorCategory.TRANSIENT: status.HTTP_503_SERVICE_UNAVAILABLE,
}


# =============================================================================
# Domain errors
# =============================================================================


class DomainError(Exception):
    """
    Base class for business failures.

    `context` names the precondition that failed (limits, current status,
    ids) so a UI can present an actionable message.
    """

    kind: ErrorKind = ErrorKind.VALIDATION_ERROR

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    @property
    def category(self) -> ErrorCategory:
        return self.kind.category

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "category": self.category.value,
            "message": self.message,
            "context": self.context,
        }

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(kind={self.kind.value}, message={self.message!r})>"


class ValidationError(DomainError):
    """Missing or malformed input. Raised before any mutation."""

    kind = ErrorKind.VALIDATION_ERROR


class UnsupportedChannelError(DomainError):
    kind = ErrorKind.UNSUPPORTED_CHANNEL

    def __init__(self, channel: Any):
        super().__init__(f"Unsupported order channel: {channel}", channel=str(channel))


class InvalidTransitionError(DomainError):
    kind = ErrorKind.INVALID_TRANSITION

    def __init__(self, entity: str, from_status: str, to_status: str, **context: Any):
        super().__init__(
            f"Invalid transition from '{from_status}' to '{to_status}' for {entity}",
            entity=entity,
            from_status=from_status,
            to_status=to_status,
            **context,
        )


class TableUnavailableError(DomainError):
    kind = ErrorKind.TABLE_UNAVAILABLE

    def __init__(self, table_id: int, current_status: str | None = None, **context: Any):
        super().__init__(
            f"Table {table_id} is not available",
            table_id=table_id,
            current_status=current_status,
            **context,
        )


class ShiftAlreadyOpenError(DomainError):
    kind = ErrorKind.SHIFT_ALREADY_OPEN

    def __init__(self, rider_id: int, shift_id: int):
        super().__init__(
            "Rider already has an active open shift",
            rider_id=rider_id,
            shift_id=shift_id,
        )


class ShiftAlreadyClosedError(DomainError):
    kind = ErrorKind.SHIFT_ALREADY_CLOSED

    def __init__(self, shift_id: int):
        super().__init__(f"Shift {shift_id} is already closed", shift_id=shift_id)


class AlreadySettledError(DomainError):
    kind = ErrorKind.ALREADY_SETTLED

    def __init__(self, message: str, **context: Any):
        super().__init__(message, **context)


class CapacityExceededError(DomainError):
    """Guest count above the table's capacity while over-capacity is not allowed."""

    kind = ErrorKind.CAPACITY_EXCEEDED

    def __init__(self, capacity: int, guest_count: int, table_id: int | None = None):
        super().__init__(
            f"Party of {guest_count} exceeds table capacity of {capacity}",
            capacity=capacity,
            guest_count=guest_count,
            table_id=table_id,
        )


class NoTableAvailableError(DomainError):
    kind = ErrorKind.NO_TABLE_AVAILABLE

    def __init__(self, required_capacity: int, section_id: int | None = None):
        super().__init__(
            f"No available table for {required_capacity} guests",
            required_capacity=required_capacity,
            section_id=section_id,
        )


class NotFoundError(DomainError):
    """
    Entity missing or outside the caller's scope.
    Both cases produce the same message so existence is not leaked.
    """

    kind = ErrorKind.ORDER_NOT_FOUND
    entity = "Entity"

    def __init__(self, entity_id: int | str | None = None):
        super().__init__(f"{self.entity} {entity_id} not found", entity_id=entity_id)


class OrderNotFoundError(NotFoundError):
    kind = ErrorKind.ORDER_NOT_FOUND
    entity = "Order"


class TableNotFoundError(NotFoundError):
    kind = ErrorKind.TABLE_NOT_FOUND
    entity = "Table"


class ShiftNotFoundError(NotFoundError):
    kind = ErrorKind.SHIFT_NOT_FOUND
    entity = "Shift"


class UnauthorizedError(DomainError):
    kind = ErrorKind.UNAUTHORIZED

    def __init__(self, action: str, required_roles: list[str] | None = None):
        super().__init__(
            f"Not authorized to {action}",
            action=action,
            required_roles=sorted(required_roles) if required_roles else None,
        )


class TransientError(DomainError):
    """Storage failure that survived the transparent retry."""

    kind = ErrorKind.TRANSIENT

    def __init__(self, operation: str):
        super().__init__(
            "Temporary storage failure. The operation was not applied; please retry.",
            operation=operation,
        )


# =============================================================================
# HTTP layer
# =============================================================================


class AppException(HTTPException):
    """
    Base HTTP exception with automatic logging.
    """

    def __init__(
        self,
        status_code: int,
        detail: Any,
        log_level: str = "warning",
        headers: dict[str, str] | None = None,
        **log_context: Any,
    ):
        log_fn = getattr(logger, log_level, logger.warning)
        log_fn(
            detail if isinstance(detail, str) else "Request failed",
            status_code=status_code,
            **log_context,
        )
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class DomainHTTPException(AppException):
    """
    HTTP response for a failed operation. The status code follows the error
    category; the body carries the error kind and the failed precondition.
    """

    def __init__(self, error: DomainError):
        headers = None
        if error.category is ErrorCategory.TRANSIENT:
            headers = {"Retry-After": "1"}
        super().__init__(
            status_code=CATEGORY_STATUS_CODES[error.category],
            detail=error.to_dict(),
            log_level="debug",
            headers=headers,
            kind=error.kind.value,
        )
        self.error = error
