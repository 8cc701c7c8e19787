"""
Infrastructure module: database, transactions and Redis/events.

Provides:
- Database sessions (db.py)
- The atomic unit-of-work primitive (transaction.py)
- Redis pub/sub for change notifications (events/)
"""

from shared.infrastructure.db import (
    engine,
    SessionLocal,
    get_db,
    safe_commit,
)
from shared.infrastructure.transaction import TransactionCoordinator
from shared.infrastructure.events import (
    get_redis_pool,
    get_redis_sync_client,
    close_redis_pool,
    RedisEventSink,
)

__all__ = [
    # db
    "engine",
    "SessionLocal",
    "get_db",
    "safe_commit",
    # transactions
    "TransactionCoordinator",
    # events (Redis)
    "get_redis_pool",
    "get_redis_sync_client",
    "close_redis_pool",
    "RedisEventSink",
]
