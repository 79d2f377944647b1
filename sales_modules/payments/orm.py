"""
Payment ORM Models (``sales_modules.payments.orm``).

Responsibility
--------------
SQLAlchemy persistence for the Payment aggregate (``payments``).
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import BigInteger, Date, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from sales_kernel.db.base import TrackedBase
from sales_kernel.domain.values import Money


class PaymentModel(TrackedBase):
    """
    ORM model for payments.

    Guarantees:
        - folio is unique (uq_payments_folio).
        - sale_id FK to sales.id; amount and sale_id never change after insert.
        - version is the optimistic lock column (application-managed).
    """

    __tablename__ = "payments"

    __table_args__ = (
        UniqueConstraint("folio", name="uq_payments_folio"),
        Index("idx_payments_sale_id", "sale_id"),
        Index("idx_payments_status", "status"),
    )

    folio: Mapped[str] = mapped_column(String(50), nullable=False)
    sale_id: Mapped[UUID] = mapped_column(ForeignKey("sales.id"), nullable=False)
    method: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending")
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __mapper_args__ = {
        "version_id_col": version,
        "version_id_generator": False,
    }

    def to_domain(self):
        from sales_modules.payments.models import Payment, PaymentMethod, PaymentStatus

        return Payment(
            id=self.id,
            folio=self.folio,
            sale_id=self.sale_id,
            method=PaymentMethod(self.method),
            amount=Money(self.amount),
            payment_date=self.payment_date,
            status=PaymentStatus(self.status),
            reference=self.reference,
            notes=self.notes,
            version=self.version,
            created_at=self.created_at,
            updated_at=self.updated_at,
            created_by_id=self.created_by_id,
            updated_by_id=self.updated_by_id,
            deleted_at=self.deleted_at,
        )

    @classmethod
    def from_domain(cls, payment) -> "PaymentModel":
        model = cls(
            id=payment.id,
            folio=payment.folio,
            sale_id=payment.sale_id,
            method=payment.method.value,
            amount=payment.amount.amount,
            payment_date=payment.payment_date,
            reference=payment.reference,
            notes=payment.notes,
            created_at=payment.created_at,
            created_by_id=payment.created_by_id,
        )
        model.update_from_domain(payment)
        return model

    def update_from_domain(self, payment) -> None:
        self.status = payment.status.value
        self.version = payment.version
        self.updated_at = payment.updated_at
        self.updated_by_id = payment.updated_by_id
        self.deleted_at = payment.deleted_at

    def __repr__(self) -> str:
        return f"<PaymentModel {self.folio}: {self.amount} {self.status}>"
