"""
Domain Services - application layer of the order engine.

Structure:
    Router (thin controller)
        ↓
    Service (business logic, one unit of work per public call)  ← YOU ARE HERE
        ↓
    Channel behaviors / TableSync / ledger helpers (no commits)
        ↓
    Model (entity)

Usage:
    from rest_api.services.domain import OrderLifecycleService

    # In router
    result = OrderLifecycleService(db).settle(ctx, order_id, 4500, "CASH")
"""

from .accounting_service import AccountingService
from .order_lifecycle_service import OrderLifecycleService
from .floor_service import FloorService
from .rider_shift_service import RiderShiftService
from .dispatch_service import DispatchService

__all__ = [
    "AccountingService",
    "OrderLifecycleService",
    "FloorService",
    "RiderShiftService",
    "DispatchService",
]
