"""
Event Services - transactional change notifications.

Provides:
- write_outbox_event / write_change_event: queue a notification in the
  caller's unit of work
- OutboxProcessor: publishes committed notifications to the event sink
"""

from .outbox_service import (
    write_outbox_event,
    write_change_event,
)

from .outbox_processor import (
    OutboxProcessor,
    to_change_event,
    get_outbox_processor,
    start_outbox_processor,
    stop_outbox_processor,
    process_pending_events_once,
)

__all__ = [
    "write_outbox_event",
    "write_change_event",
    "OutboxProcessor",
    "to_change_event",
    "get_outbox_processor",
    "start_outbox_processor",
    "stop_outbox_processor",
    "process_pending_events_once",
]
