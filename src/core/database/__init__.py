"""
Database subsystem for Monster Arena.

Provides the async SQLAlchemy engine and session management, plus the ORM
base classes and mixins used by model definitions.
"""

from src.core.database.base import Base, IdMixin, TimestampMixin, utc_now
from src.core.database.service import (
    DatabaseInitializationError,
    DatabaseNotInitializedError,
    DatabaseService,
)

__all__ = [
    "Base",
    "IdMixin",
    "TimestampMixin",
    "utc_now",
    "DatabaseService",
    "DatabaseInitializationError",
    "DatabaseNotInitializedError",
]
