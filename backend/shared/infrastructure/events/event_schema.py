"""
Change notification schema.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

MAX_EVENT_SIZE = 64 * 1024  # bytes


@dataclass
class ChangeEvent:
    """
    One change notification: which entity changed, how, and the resulting record.

    Consumers are other terminals; delivery is fire-and-forget.
    """

    entity: str
    kind: str
    restaurant_id: int
    record: dict[str, Any] = field(default_factory=dict)
    actor: dict[str, Any] = field(default_factory=dict)
    ts: str | None = None
    v: int = 1

    def __post_init__(self) -> None:
        if not self.entity or not isinstance(self.entity, str):
            raise ValueError("Event entity must be a non-empty string")
        if not self.kind or not isinstance(self.kind, str):
            raise ValueError("Event kind must be a non-empty string")
        if not isinstance(self.restaurant_id, int) or self.restaurant_id <= 0:
            raise ValueError("Event restaurant_id must be a positive integer")
        if self.ts is None:
            self.ts = datetime.now(timezone.utc).isoformat()

    def to_json(self) -> str:
        data = json.dumps(asdict(self), default=str)
        if len(data.encode("utf-8")) > MAX_EVENT_SIZE:
            raise ValueError(f"Event {self.kind} exceeds max size of {MAX_EVENT_SIZE} bytes")
        return data

    @classmethod
    def from_json(cls, data: str) -> ChangeEvent:
        return cls(**json.loads(data))
