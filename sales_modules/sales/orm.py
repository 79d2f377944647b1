"""
Sale ORM Models (``sales_modules.sales.orm``).

Responsibility
--------------
SQLAlchemy persistence for the Sale aggregate.  Maps ``Sale`` and its
``LineItem`` values to the ``sales`` and ``sale_lines`` tables.

Architecture position
---------------------
**Modules layer** -- persistence.  Imports from ``sales_kernel.db.base``
and sibling ``models.py``.  MUST NOT be imported by ``sales_kernel``.

Invariants enforced
-------------------
* ``folio`` is unique.
* ``version`` is the optimistic lock column: every UPDATE carries
  ``WHERE version = <loaded>``; the aggregate supplies the new value.
* Lines cascade with their sale (``delete-orphan``) and keep their order
  through ``line_number``.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sales_kernel.db.base import Base, TrackedBase
from sales_kernel.domain.values import Money


class SaleModel(TrackedBase):
    """
    ORM model for sale headers.

    Guarantees:
        - folio is unique (uq_sales_folio).
        - Monetary fields use Numeric(12, 2) via type_annotation_map.
        - status stored as the string enum value.
    """

    __tablename__ = "sales"

    __table_args__ = (
        UniqueConstraint("folio", name="uq_sales_folio"),
        Index("idx_sales_customer_id", "customer_id"),
        Index("idx_sales_status", "status"),
    )

    folio: Mapped[str] = mapped_column(String(50), nullable=False)
    customer_id: Mapped[UUID] = mapped_column(nullable=False)
    sale_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="draft")
    subtotal: Mapped[Decimal] = mapped_column(nullable=False)
    discount: Mapped[Decimal] = mapped_column(nullable=False)
    tax: Mapped[Decimal] = mapped_column(nullable=False)
    total: Mapped[Decimal] = mapped_column(nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(BigInteger, nullable=False)

    lines: Mapped[list["SaleLineModel"]] = relationship(
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleLineModel.line_number",
        lazy="selectin",
    )

    __mapper_args__ = {
        "version_id_col": version,
        "version_id_generator": False,
    }

    def to_domain(self):
        """Rebuild the ``Sale`` aggregate."""
        from sales_modules.sales.models import Sale, SaleStatus

        return Sale(
            id=self.id,
            folio=self.folio,
            customer_id=self.customer_id,
            sale_date=self.sale_date,
            status=SaleStatus(self.status),
            line_items=[line.to_domain() for line in self.lines],
            subtotal=Money(self.subtotal),
            discount=Money(self.discount),
            tax=Money(self.tax),
            total=Money(self.total),
            notes=self.notes,
            version=self.version,
            created_at=self.created_at,
            updated_at=self.updated_at,
            created_by_id=self.created_by_id,
            updated_by_id=self.updated_by_id,
            deleted_at=self.deleted_at,
        )

    @classmethod
    def from_domain(cls, sale) -> "SaleModel":
        model = cls(
            id=sale.id,
            folio=sale.folio,
            customer_id=sale.customer_id,
            sale_date=sale.sale_date,
            created_at=sale.created_at,
            created_by_id=sale.created_by_id,
        )
        model.update_from_domain(sale)
        return model

    def update_from_domain(self, sale) -> None:
        """Copy mutable state (header, lines, version, audit) from the aggregate."""
        self.status = sale.status.value
        self.subtotal = sale.subtotal.amount
        self.discount = sale.discount.amount
        self.tax = sale.tax.amount
        self.total = sale.total.amount
        self.notes = sale.notes
        self.version = sale.version
        self.updated_at = sale.updated_at
        self.updated_by_id = sale.updated_by_id
        self.deleted_at = sale.deleted_at

        # Inserts flush before deletes, so never reuse a number removed here.
        next_number = max((line.line_number for line in self.lines), default=0)
        wanted = {item.id for item in sale.line_items}
        for line in list(self.lines):
            if line.id not in wanted:
                self.lines.remove(line)
        existing = {line.id for line in self.lines}
        for item in sale.line_items:
            if item.id not in existing:
                next_number += 1
                self.lines.append(SaleLineModel.from_domain(item, next_number))

    def __repr__(self) -> str:
        return f"<SaleModel {self.folio}: {self.status}>"


class SaleLineModel(Base):
    """
    ORM model for sale lines.

    Guarantees:
        - sale_id FK to sales.id.
        - line_number is unique within a sale (uq_sale_lines_sale_line).
    """

    __tablename__ = "sale_lines"

    __table_args__ = (
        UniqueConstraint("sale_id", "line_number", name="uq_sale_lines_sale_line"),
        Index("idx_sale_lines_sale_id", "sale_id"),
    )

    sale_id: Mapped[UUID] = mapped_column(ForeignKey("sales.id"), nullable=False)
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    product_id: Mapped[UUID] = mapped_column(nullable=False)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    discount: Mapped[Decimal] = mapped_column(nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(nullable=False)

    sale: Mapped["SaleModel"] = relationship(back_populates="lines")

    def to_domain(self):
        from sales_modules.sales.models import LineItem

        return LineItem(
            id=self.id,
            product_id=self.product_id,
            quantity=self.quantity,
            unit_price=Money(self.unit_price),
            discount=Money(self.discount),
            description=self.description,
        )

    @classmethod
    def from_domain(cls, item, line_number: int) -> "SaleLineModel":
        return cls(
            id=item.id,
            line_number=line_number,
            product_id=item.product_id,
            description=item.description,
            quantity=item.quantity,
            unit_price=item.unit_price.amount,
            discount=item.discount.amount,
            subtotal=item.subtotal.amount,
        )

    def __repr__(self) -> str:
        return f"<SaleLineModel {self.line_number}: {self.quantity} x {self.unit_price}>"
