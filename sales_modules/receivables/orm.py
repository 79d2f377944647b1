"""
Ledger Entry ORM Models (``sales_modules.receivables.orm``).

Responsibility
--------------
SQLAlchemy persistence for the LedgerEntry aggregate (``ledger_entries``).

Invariants enforced
-------------------
* ``folio`` is unique.
* ``version`` is the optimistic lock column (application-managed).
* The origin is a plain ``reference_type``/``reference_id`` pair, not a
  foreign key: a ledger entry is not owned by the sale it came from.
* At most one live (not soft-deleted) entry per origin
  (``uq_ledger_entries_reference``, a partial unique index).
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import BigInteger, Date, Index, String, Text, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from sales_kernel.db.base import TrackedBase
from sales_kernel.domain.values import Money

REFERENCE_INDEX = "uq_ledger_entries_reference"


class LedgerEntryModel(TrackedBase):
    """
    ORM model for receivable/payable entries.

    Guarantees:
        - folio is unique (uq_ledger_entries_folio).
        - balance and amount use Numeric(12, 2).
        - (reference_type, reference_id) is unique among rows that are not
          soft-deleted (uq_ledger_entries_reference).
    """

    __tablename__ = "ledger_entries"

    __table_args__ = (
        UniqueConstraint("folio", name="uq_ledger_entries_folio"),
        Index(
            REFERENCE_INDEX,
            "reference_type",
            "reference_id",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
        Index("idx_ledger_entries_customer_id", "customer_id"),
        Index("idx_ledger_entries_status_due", "status", "due_date"),
    )

    folio: Mapped[str] = mapped_column(String(50), nullable=False)
    direction: Mapped[str] = mapped_column(String(20), nullable=False)
    reference_type: Mapped[str] = mapped_column(String(30), nullable=False)
    reference_id: Mapped[UUID] = mapped_column(nullable=False)
    customer_id: Mapped[UUID] = mapped_column(nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    balance: Mapped[Decimal] = mapped_column(nullable=False)
    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending")
    version: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __mapper_args__ = {
        "version_id_col": version,
        "version_id_generator": False,
    }

    def to_domain(self):
        """Rebuild the ``LedgerEntry`` aggregate."""
        from sales_modules.receivables.models import (
            LedgerDirection,
            LedgerEntry,
            LedgerEntryStatus,
        )

        return LedgerEntry(
            id=self.id,
            folio=self.folio,
            direction=LedgerDirection(self.direction),
            reference_type=self.reference_type,
            reference_id=self.reference_id,
            customer_id=self.customer_id,
            amount=Money(self.amount),
            balance=Money(self.balance),
            issue_date=self.issue_date,
            due_date=self.due_date,
            status=LedgerEntryStatus(self.status),
            description=self.description,
            version=self.version,
            created_at=self.created_at,
            updated_at=self.updated_at,
            created_by_id=self.created_by_id,
            updated_by_id=self.updated_by_id,
            deleted_at=self.deleted_at,
        )

    @classmethod
    def from_domain(cls, entry) -> "LedgerEntryModel":
        model = cls(
            id=entry.id,
            folio=entry.folio,
            direction=entry.direction.value,
            reference_type=entry.reference_type,
            reference_id=entry.reference_id,
            customer_id=entry.customer_id,
            description=entry.description,
            amount=entry.amount.amount,
            issue_date=entry.issue_date,
            due_date=entry.due_date,
            created_at=entry.created_at,
            created_by_id=entry.created_by_id,
        )
        model.update_from_domain(entry)
        return model

    def update_from_domain(self, entry) -> None:
        self.balance = entry.balance.amount
        self.status = entry.status.value
        self.version = entry.version
        self.updated_at = entry.updated_at
        self.updated_by_id = entry.updated_by_id
        self.deleted_at = entry.deleted_at

    def __repr__(self) -> str:
        return f"<LedgerEntryModel {self.folio}: {self.balance}/{self.amount} {self.status}>"
