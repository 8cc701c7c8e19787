"""
Floor routers - /api/floor/*
Seating, guest counts, table merges and the floor view.
"""

from .routes import router

__all__ = ["router"]
