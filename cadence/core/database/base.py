"""
Declarative base and shared column mixins for all ORM models.

Schema only. Models inherit ``Base`` plus whichever mixins they need;
no model defines its own metadata.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Integer, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base shared by every Cadence model."""


class IdMixin:
    """
    Surrogate autoincrement primary key.

    Ids are monotonically assigned on insert, so they double as a stable
    insertion-order tiebreaker. SQLite only autoincrements INTEGER keys.
    """

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


__all__ = ["Base", "IdMixin", "TimestampMixin"]
