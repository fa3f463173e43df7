"""Database utilities for the training portal."""

from .base import Base
from .session import create_schema, dispose_engine, get_engine, get_session_factory, session_scope

__all__ = [
    "Base",
    "create_schema",
    "dispose_engine",
    "get_engine",
    "get_session_factory",
    "session_scope",
]
