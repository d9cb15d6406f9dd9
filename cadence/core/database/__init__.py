"""
Database infrastructure: declarative base, mixins and the session service.
"""

from cadence.core.database.base import Base, IdMixin, TimestampMixin
from cadence.core.database.service import (
    DatabaseInitializationError,
    DatabaseNotInitializedError,
    DatabaseService,
)

__all__ = [
    "Base",
    "IdMixin",
    "TimestampMixin",
    "DatabaseService",
    "DatabaseInitializationError",
    "DatabaseNotInitializedError",
]
