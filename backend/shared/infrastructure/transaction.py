"""
Transaction Coordinator: the atomic-apply primitive used by every service.

A unit of work runs against one session and is committed once. Any failure
rolls the whole unit back, so callers never observe partial effects (an order
closed while its table is still occupied, cash credited without a sale).

Domain failures become failed OperationResult values. Storage failures that
look transient are retried with a fresh transaction, at most
`settings.transaction_retry_attempts` times, then reported as TRANSIENT.
"""

from __future__ import annotations

from typing import Any, Callable, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from shared.config.logging import get_logger
from shared.config.settings import settings
from shared.infrastructure.db import safe_commit
from shared.utils.exceptions import DomainError, TransientError
from shared.utils.result import OperationResult

logger = get_logger(__name__)

T = TypeVar("T")


def is_transient(exc: BaseException) -> bool:
    """
    Failures where re-running the whole unit can succeed: lost connections,
    lock or serialization aborts, stale versioned rows, and unique-key races
    (a concurrent writer got there first; the re-run sees its row and the
    service guard reports the proper domain error).
    """
    if isinstance(exc, (OperationalError, StaleDataError, IntegrityError)):
        return True
    return isinstance(exc, DBAPIError) and bool(exc.connection_invalidated)


class TransactionCoordinator:
    """
    Runs a unit of work atomically.

    Usage:
        coordinator = TransactionCoordinator(db)
        result = coordinator.run("settle", lambda: self._settle(ctx, order_id), order_id=order_id)
    """

    def __init__(self, db: Session, retry_attempts: int | None = None):
        self._db = db
        self._retry_attempts = (
            settings.transaction_retry_attempts if retry_attempts is None else retry_attempts
        )

    def run(
        self,
        operation: str,
        work: Callable[[], T],
        **log_context: Any,
    ) -> OperationResult[T]:
        attempt = 0
        while True:
            try:
                value = work()
                safe_commit(self._db)
                return OperationResult.success(value)
            except DomainError as e:
                self._db.rollback()
                fields = {**e.context, **log_context}
                fields.update(operation=operation, kind=e.kind.value, reason=e.message)
                logger.warning("Operation rejected", **fields)
                return OperationResult.failure(e)
            except Exception as e:
                self._db.rollback()
                if not is_transient(e):
                    raise
                if attempt < self._retry_attempts:
                    attempt += 1
                    logger.warning(
                        "Transient failure, retrying unit of work",
                        operation=operation,
                        attempt=attempt,
                        error=str(e),
                        **log_context,
                    )
                    continue
                logger.error(
                    "Unit of work failed after retry",
                    operation=operation,
                    attempts=attempt + 1,
                    error=str(e),
                    **log_context,
                )
                return OperationResult.failure(TransientError(operation))
