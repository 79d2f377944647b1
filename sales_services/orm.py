"""
Services ORM Models (``sales_services.orm``).

Responsibility
--------------
The payment-application journal: one row per balance movement caused by
a payment.  The (payment_id, kind) unique constraint makes a second
application, or a second reversal, of the same payment impossible even
when two transactions race past the domain checks.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from sales_kernel.db.base import Base

APPLICATION_CONSTRAINT = "uq_payment_applications_payment_kind"


class PaymentApplicationModel(Base):
    """
    ORM model for payment applications and reversals.

    Guarantees:
        - (payment_id, kind) is unique (uq_payment_applications_payment_kind).
        - kind is "application" or "reversal".
        - Rows are append-only.
    """

    __tablename__ = "payment_applications"

    __table_args__ = (
        UniqueConstraint("payment_id", "kind", name=APPLICATION_CONSTRAINT),
        Index("idx_payment_applications_entry_id", "entry_id"),
    )

    payment_id: Mapped[UUID] = mapped_column(ForeignKey("payments.id"), nullable=False)
    entry_id: Mapped[UUID] = mapped_column(ForeignKey("ledger_entries.id"), nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    balance_before: Mapped[Decimal] = mapped_column(nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(nullable=False)
    applied_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    applied_by_id: Mapped[UUID] = mapped_column(nullable=False)

    @classmethod
    def from_result(cls, result, applied_at: datetime, actor_id: UUID) -> "PaymentApplicationModel":
        return cls(
            payment_id=result.payment_id,
            entry_id=result.entry_id,
            kind=result.kind,
            amount=result.amount.amount,
            balance_before=result.balance_before.amount,
            balance_after=result.balance_after.amount,
            applied_at=applied_at,
            applied_by_id=actor_id,
        )

    def __repr__(self) -> str:
        return f"<PaymentApplicationModel {self.kind} {self.payment_id}: {self.amount}>"
