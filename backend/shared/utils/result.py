"""
Explicit outcome of a public service operation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

from shared.utils.exceptions import DomainError, ErrorKind

T = TypeVar("T")


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """
    Either a value (ok=True) or a DomainError (ok=False).

    Callers branch on `ok` / `kind` instead of catching exceptions:

        result = service.settle(ctx, order_id, 4500, "CASH")
        if not result.ok and result.kind is ErrorKind.ALREADY_SETTLED:
            ...
    """

    ok: bool
    value: T | None = None
    error: DomainError | None = None

    @classmethod
    def success(cls, value: T) -> OperationResult[T]:
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: DomainError) -> OperationResult[T]:
        return cls(ok=False, error=error)

    @property
    def kind(self) -> ErrorKind | None:
        return self.error.kind if self.error is not None else None

    def unwrap(self) -> T:
        """Return the value, or raise the carried error."""
        if not self.ok:
            raise self.error  # type: ignore[misc]
        return self.value  # type: ignore[return-value]
