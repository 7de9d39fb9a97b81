"""
Module: vitalcheck_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.  Provides
    the integer surrogate key convention, the type annotation map for
    consistent column types, and the TrackedBase mixin for audit timestamps.
Architecture position: Kernel > DB.  This is the lowest-level import target
    within the kernel.  ALL model files import from here.  This module MUST NOT
    import from vitalcheck_batch or any outer layer.

Invariants enforced:
    - Integer surrogate keys: every model gets an autoincrementing ``id``.
      ``int`` maps to BigInteger on server databases and to INTEGER on
      SQLite, where only ``INTEGER PRIMARY KEY`` autoincrements.
    - Timestamps are declared timezone-aware system-wide.
    - TrackedBase provides created_at and updated_at for every mutable table.
"""

from datetime import date, datetime
from typing import ClassVar

from sqlalchemy import BigInteger, Date, DateTime, Integer, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# BIGINT on PostgreSQL/MSSQL, INTEGER on SQLite so the rowid alias autoincrements.
SurrogateKey = BigInteger().with_variant(Integer(), "sqlite")


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - id is an autoincrementing integer surrogate key.
        - datetime maps to DateTime(timezone=True).
        - date maps to Date.
        - int maps to BigInteger (INTEGER on SQLite).
    """

    type_annotation_map: ClassVar[dict] = {
        datetime: DateTime(timezone=True),
        date: Date(),
        int: SurrogateKey,
    }

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)


class TrackedBase(Base):
    """
    Abstract base with audit timestamps.

    Guarantees:
        - created_at is set to server NOW() on INSERT and never changes.
        - updated_at is set to server NOW() on INSERT and auto-updates on
          every ORM UPDATE (via onupdate=func.now()).
    """

    __abstract__ = True

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
