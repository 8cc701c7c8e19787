"""
Order routers - /api/orders/*
Order lifecycle, payment and delivery dispatch.
"""

from .routes import router

__all__ = ["router"]
