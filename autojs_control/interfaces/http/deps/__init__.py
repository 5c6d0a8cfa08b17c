"""Reusable FastAPI dependencies."""

from .database import get_db_session
from .engine import get_app_container, get_dispatch_engine

__all__ = [
    "get_db_session",
    "get_app_container",
    "get_dispatch_engine",
]
