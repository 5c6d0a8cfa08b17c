"""Database infrastructure helpers (engine, sessions)."""

from .base import Base
from .session import get_engine, get_session, get_session_factory, init_db

__all__ = ["Base", "get_engine", "get_session", "get_session_factory", "init_db"]
