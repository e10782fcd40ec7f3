"""API routers."""
from . import query, system

__all__ = ["query", "system"]
