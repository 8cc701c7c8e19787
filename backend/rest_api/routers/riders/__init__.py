"""
Rider routers - /api/riders/*
Shifts, courier cash and settlements.
"""

from .routes import router

__all__ = ["router"]
