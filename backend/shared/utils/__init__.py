"""
Utilities module: error taxonomy, operation results, request schemas.
"""

from shared.utils.exceptions import (
    DomainError,
    ErrorCategory,
    ErrorKind,
    ValidationError,
    DomainHTTPException,
)
from shared.utils.result import OperationResult

__all__ = [
    # exceptions
    "DomainError",
    "ErrorCategory",
    "ErrorKind",
    "ValidationError",
    "DomainHTTPException",
    # results
    "OperationResult",
]
