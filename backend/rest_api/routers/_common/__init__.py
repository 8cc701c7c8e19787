"""
Common utilities shared across routers.
"""

from .results import unwrap_result

__all__ = ["unwrap_result"]
