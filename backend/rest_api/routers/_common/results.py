"""
Translate service results into HTTP responses.

Usage:
    from rest_api.routers._common.results import unwrap_result

    @router.post("/orders/{order_id}/settle", response_model=OrderOutput)
    def settle(...):
        return unwrap_result(OrderLifecycleService(db).settle(ctx, order_id, ...))
"""

from typing import TypeVar

from shared.utils.exceptions import DomainHTTPException
from shared.utils.result import OperationResult

T = TypeVar("T")


def unwrap_result(result: OperationResult[T]) -> T:
    """Return the value of a successful result, or raise the mapped HTTP error."""
    if result.ok:
        return result.value
    raise DomainHTTPException(result.error)
