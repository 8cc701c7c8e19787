"""
Shared infrastructure for the order engine.

STRUCTURE:
- shared.config: Configuration
  - settings.py: Environment config (pydantic-settings)
  - logging.py: Structured logging
  - constants.py: Roles, statuses, transitions, event types

- shared.infrastructure: Database and messaging
  - db.py: SQLAlchemy engine and sessions
  - transaction.py: TransactionCoordinator (atomic unit of work)
  - events/: Redis pools, change events, event sink

- shared.security: Caller identity
  - auth.py: JWT verification, current_actor dependency
  - token_blacklist.py: Redis-backed token revocation
  - context.py: ActorContext
  - rate_limit.py: slowapi limiter

- shared.utils: Utilities
  - exceptions.py: ErrorKind taxonomy and DomainError classes
  - result.py: OperationResult
  - schemas.py: Request/response pydantic schemas

IMPORT EXAMPLES:
    from shared.security.context import ActorContext
    from shared.infrastructure.transaction import TransactionCoordinator
    from shared.config.constants import OrderStatus, TableStatus
    from shared.utils.exceptions import ErrorKind, OrderNotFoundError
"""
