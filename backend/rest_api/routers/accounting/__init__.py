"""
Accounting routers - /api/accounting/*
Payouts, ledger and customer reads.
"""

from .routes import router

__all__ = ["router"]
