"""
Caller identity passed into every service operation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable


@dataclass(frozen=True)
class ActorContext:
    """
    Who is acting and in which restaurant.

    Identity is resolved upstream (JWT); services only use it to scope
    queries to `restaurant_id`, check roles, and stamp audit fields.
    """

    restaurant_id: int
    staff_id: int
    role: str

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> ActorContext:
        return cls(
            restaurant_id=int(claims["restaurant_id"]),
            staff_id=int(claims["sub"]),
            role=str(claims["role"]),
        )

    def has_any_role(self, roles: Iterable[str]) -> bool:
        return self.role in set(roles)
