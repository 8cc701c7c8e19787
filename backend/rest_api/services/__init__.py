"""
Services module for business logic.

LAYOUT:
- domain/: Application services (public operations returning OperationResult)
- channels/: One behavior per order channel, picked by the resolver
- events/: Transactional outbox and its processor
- table_sync.py: Guarded table transitions shared by orders and floor
- audit.py: Audit log writer

Import from the submodules directly; this package re-exports nothing so the
channel behaviors and the domain services can depend on each other's
building blocks without import cycles.

Usage:
    from rest_api.services.domain import OrderLifecycleService
    service = OrderLifecycleService(db)
    result = service.settle(ctx, order_id, amount_cents=4500, method="CASH")
"""
