"""
Module: sales_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.  Provides
    the UUID primary key convention, the type annotation map for consistent
    column types, and the TrackedBase mixin for audit columns.
Architecture position: Kernel > DB.  This is the lowest-level import target
    within the kernel.  ALL ORM files import from here.  This module MUST NOT
    import from services/, domain/, or outer layers.

Invariants enforced:
    - UUID primary keys stored as String(36) for cross-database portability.
    - Money precision: type_annotation_map maps Python Decimal to
      Numeric(12, 2), the fixed two-decimal scale of ``Money``.
      NEVER use float for monetary amounts.
    - Audit columns: TrackedBase provides created_at, updated_at,
      created_by_id, updated_by_id and the deleted_at soft-delete marker.
      Their values come from the domain aggregates (and thus from the
      injected Clock), not from the database server.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, Date, DateTime, Numeric, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

MONEY_PRECISION = 12
MONEY_SCALE = 2


class UUIDString(TypeDecorator):
    """
    UUID type stored as String(36) for cross-database portability.

    Guarantees:
        - process_bind_param: UUID -> str on INSERT/UPDATE.
        - process_result_value: str -> UUID on SELECT.
        - cache_ok=True enables SQLAlchemy statement caching.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(value)
        return None


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - id is always a UUID stored as String(36).
        - Decimal maps to Numeric(12, 2) -- the money scale.
        - datetime maps to DateTime(timezone=True).
        - int maps to BigInteger -- safe for monotonic sequences.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(MONEY_PRECISION, MONEY_SCALE, asdecimal=True),
        datetime: DateTime(timezone=True),
        date: Date,
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base with audit columns and the soft-delete marker.

    Guarantees:
        - created_by_id is required (NOT NULL) -- every record has a creator.
        - updated_by_id is nullable (not set on initial creation).
        - deleted_at is NULL for live rows; every lookup filters on it.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    created_by_id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    updated_by_id: Mapped[PyUUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )


def is_unique_violation(error: Exception, constraint: str, table: str, *columns: str) -> bool:
    """
    True when an ``IntegrityError`` was raised by the named unique constraint.

    PostgreSQL reports the constraint (or index) name; SQLite reports the
    ``table.column`` list instead, so both forms are matched.
    """
    message = str(getattr(error, "orig", error))
    if constraint in message:
        return True
    qualified = ", ".join(f"{table}.{column}" for column in columns)
    return f"UNIQUE constraint failed: {qualified}" in message


# Re-export UUID for convenience
UUID = PyUUID
