"""
Sale Domain Models (``sales_modules.sales.models``).

Responsibility
--------------
The Sale aggregate: a header owning an ordered list of line items, the
computed subtotal/discount/tax/total, and the sale state machine.

Architecture position
---------------------
**Modules layer** -- pure domain logic with ZERO I/O.  Consumed by
``SaleService`` and returned to callers.  No dependency on the database.

Invariants enforced
-------------------
* ``subtotal == sum(line.subtotal)`` and ``total == subtotal - discount + tax``
  at every observable point; totals are computed as candidates and only
  committed when they satisfy ``discount <= subtotal``.
* Line items are added or removed only while the sale is Draft.
* A sale is confirmed only with at least one line item.
* State changes follow ``SALE_WORKFLOW``; Completed and Cancelled are terminal.

Failure modes
-------------
* ``ValidationError`` for malformed line items, headers or adjustments.
* ``InvalidStateError`` for operations the current state forbids.
* ``EmptySaleError`` when confirming a sale without line items.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from threading import RLock
from typing import Any, Iterable
from uuid import UUID, uuid4

from sales_kernel.domain.aggregate import VersionedAggregate
from sales_kernel.domain.values import Money
from sales_kernel.exceptions import (
    EmptySaleError,
    InvalidStateError,
    InvariantViolationError,
    ValidationError,
)
from sales_modules.sales.workflows import SALE_WORKFLOW


class SaleStatus(Enum):
    """Sale lifecycle states."""
    DRAFT = "draft"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


DELETABLE_SALE_STATES = (SaleStatus.DRAFT.value, SaleStatus.CANCELLED.value)


@dataclass(frozen=True)
class LineItem:
    """
    A single line of a sale.

    ``subtotal`` is derived: ``unit_price * quantity - discount``.  Raw
    numeric prices and discounts are coerced to ``Money``.
    """
    product_id: UUID
    quantity: int
    unit_price: Money
    discount: Money = field(default_factory=Money.zero)
    description: str | None = None
    id: UUID = field(default_factory=uuid4)
    subtotal: Money = field(init=False)

    def __post_init__(self) -> None:
        if not isinstance(self.unit_price, Money):
            object.__setattr__(self, "unit_price", Money.of(self.unit_price))
        if not isinstance(self.discount, Money):
            object.__setattr__(self, "discount", Money.of(self.discount))
        self.validate()
        object.__setattr__(self, "subtotal", self.compute_subtotal())

    @property
    def gross(self) -> Money:
        return self.unit_price.multiply_by_quantity(self.quantity)

    def compute_subtotal(self) -> Money:
        return self.gross.subtract(self.discount)

    def validate(self) -> None:
        if self.product_id is None:
            raise ValidationError("Line item requires a product", field="product_id")
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise ValidationError(
                "Quantity must be a whole number", field="quantity", value=self.quantity
            )
        if self.quantity < 1:
            raise ValidationError(
                "Quantity must be at least 1", field="quantity", value=self.quantity
            )
        if not self.unit_price.is_positive:
            raise ValidationError(
                "Unit price must be positive", field="unit_price", value=self.unit_price
            )
        if self.discount.is_negative:
            raise ValidationError(
                "Line discount cannot be negative", field="discount", value=self.discount
            )
        if self.discount > self.gross:
            raise ValidationError(
                f"Line discount {self.discount} exceeds line amount {self.gross}",
                field="discount",
                value=self.discount,
            )


def _non_negative(value: Money | Any, field_name: str) -> Money:
    money = Money.of(value, signed=True)
    if money.is_negative:
        raise ValidationError(
            f"{field_name} cannot be negative", field=field_name, value=money
        )
    return money


def _coerce_status(value: SaleStatus | str) -> SaleStatus:
    try:
        return SaleStatus(value)
    except ValueError as e:
        raise ValidationError(f"Unknown sale status {value!r}", field="status", value=value) from e


@dataclass(eq=False)
class Sale(VersionedAggregate):
    """
    Sale aggregate root.

    Exclusively owns its ``line_items`` (stored by value, in order).  All
    mutators hold the aggregate lock and bump ``version``.
    """

    entity_type = "Sale"

    id: UUID
    folio: str
    customer_id: UUID
    sale_date: date
    status: SaleStatus = SaleStatus.DRAFT
    line_items: list[LineItem] = field(default_factory=list)
    subtotal: Money = field(default_factory=Money.zero)
    discount: Money = field(default_factory=Money.zero)
    tax: Money = field(default_factory=Money.zero)
    total: Money = field(default_factory=Money.zero)
    notes: str | None = None
    version: int = 1
    created_at: datetime | None = None
    updated_at: datetime | None = None
    created_by_id: UUID | None = None
    updated_by_id: UUID | None = None
    deleted_at: datetime | None = None
    _lock: RLock = field(default_factory=RLock, init=False, repr=False, compare=False)

    @classmethod
    def create(
        cls,
        customer_id: UUID,
        sale_date: date,
        line_items: Iterable[LineItem] = (),
        *,
        discount: Money | Any = None,
        tax: Money | Any = None,
        notes: str | None = None,
        folio: str = "",
        sale_id: UUID | None = None,
        created_at: datetime | None = None,
        actor_id: UUID | None = None,
    ) -> Sale:
        """
        Create a Draft sale with totals computed over ``line_items``.

        Raises:
            ValidationError: missing customer or date, a malformed line
                item, negative adjustments, or discount above subtotal.
        """
        if customer_id is None:
            raise ValidationError("Sale requires a customer", field="customer_id")
        if isinstance(sale_date, datetime) or not isinstance(sale_date, date):
            raise ValidationError(
                "Sale date must be a calendar date", field="sale_date", value=sale_date
            )
        items = list(line_items)
        for item in items:
            if not isinstance(item, LineItem):
                raise ValidationError(
                    f"Expected LineItem, got {type(item).__name__}", field="line_items"
                )
            item.validate()

        discount_money = _non_negative(discount if discount is not None else 0, "discount")
        tax_money = _non_negative(tax if tax is not None else 0, "tax")
        subtotal, total = cls._compute_totals(items, discount_money, tax_money)

        return cls(
            id=sale_id or uuid4(),
            folio=folio,
            customer_id=customer_id,
            sale_date=sale_date,
            line_items=items,
            subtotal=subtotal,
            discount=discount_money,
            tax=tax_money,
            total=total,
            notes=notes,
            created_at=created_at,
            updated_at=created_at,
            created_by_id=actor_id,
        )

    # ------------------------------------------------------------------
    # Totals
    # ------------------------------------------------------------------

    @staticmethod
    def _compute_totals(
        items: Iterable[LineItem], discount: Money, tax: Money
    ) -> tuple[Money, Money]:
        subtotal = Money.sum(item.compute_subtotal() for item in items)
        if discount > subtotal:
            raise ValidationError(
                f"Discount {discount} exceeds subtotal {subtotal}",
                field="discount",
                value=discount,
            )
        return subtotal, subtotal.subtract(discount).add(tax)

    def recalculate_totals(self) -> Money:
        """Recompute subtotal and total from the current lines and adjustments.

        Idempotent: with no mutation in between, repeated calls yield
        identical totals and do not bump ``version``.
        """
        with self._lock:
            subtotal, total = self._compute_totals(self.line_items, self.discount, self.tax)
            if subtotal != self.subtotal or total != self.total:
                self.subtotal = subtotal
                self.total = total
                self._bump()
            return self.total

    # ------------------------------------------------------------------
    # Draft-only mutations
    # ------------------------------------------------------------------

    def _require_draft(self, attempted: str) -> None:
        if self.status is not SaleStatus.DRAFT:
            raise InvalidStateError(
                entity_type=self.entity_type,
                entity_id=self.id,
                current_state=self.status.value,
                attempted=attempted,
                message=(
                    f"Sale {self.folio or self.id}: cannot {attempted} while "
                    f"{self.status.value}; only draft sales can be modified"
                ),
            )

    def add_line_item(self, item: LineItem) -> LineItem:
        with self._lock:
            self._require_draft("add_line_item")
            if not isinstance(item, LineItem):
                raise ValidationError(
                    f"Expected LineItem, got {type(item).__name__}", field="line_items"
                )
            item.validate()
            if any(existing.id == item.id for existing in self.line_items):
                raise ValidationError(
                    f"Line item {item.id} already on sale", field="line_items", value=item.id
                )
            items = [*self.line_items, item]
            subtotal, total = self._compute_totals(items, self.discount, self.tax)
            self.line_items = items
            self.subtotal = subtotal
            self.total = total
            self._bump()
            return item

    def remove_line_item(self, item_id: UUID) -> LineItem:
        """
        Remove a line by id.

        Raises:
            ValidationError: unknown line, or the remaining subtotal would
                fall below the header discount.
        """
        with self._lock:
            self._require_draft("remove_line_item")
            removed = next((i for i in self.line_items if i.id == item_id), None)
            if removed is None:
                raise ValidationError(
                    f"Line item {item_id} not on sale", field="line_items", value=item_id
                )
            items = [i for i in self.line_items if i.id != item_id]
            subtotal, total = self._compute_totals(items, self.discount, self.tax)
            self.line_items = items
            self.subtotal = subtotal
            self.total = total
            self._bump()
            return removed

    def update_adjustments(
        self,
        *,
        discount: Money | Any = None,
        tax: Money | Any = None,
        notes: str | None = None,
    ) -> None:
        """Replace header discount and/or tax (Draft only) and recompute totals."""
        with self._lock:
            self._require_draft("update_adjustments")
            new_discount = self.discount if discount is None else _non_negative(discount, "discount")
            new_tax = self.tax if tax is None else _non_negative(tax, "tax")
            subtotal, total = self._compute_totals(self.line_items, new_discount, new_tax)
            self.discount = new_discount
            self.tax = new_tax
            self.subtotal = subtotal
            self.total = total
            if notes is not None:
                self.notes = notes
            self._bump()

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _transition(self, target: SaleStatus) -> None:
        SALE_WORKFLOW.require(
            self.status.value,
            target.value,
            entity_type=self.entity_type,
            entity_id=self.folio or self.id,
        )
        self.status = target
        self._bump()

    def confirm(self) -> None:
        """Draft -> Confirmed.  Totals are recomputed before the state changes."""
        with self._lock:
            SALE_WORKFLOW.require(
                self.status.value,
                SaleStatus.CONFIRMED.value,
                entity_type=self.entity_type,
                entity_id=self.folio or self.id,
            )
            if not self.line_items:
                raise EmptySaleError(self.folio or self.id, self.status.value)
            self.recalculate_totals()
            self._transition(SaleStatus.CONFIRMED)

    def mark_shipped(self) -> None:
        with self._lock:
            self._transition(SaleStatus.SHIPPED)

    def mark_completed(self) -> None:
        with self._lock:
            self._transition(SaleStatus.COMPLETED)

    def cancel(self) -> None:
        with self._lock:
            self._transition(SaleStatus.CANCELLED)

    def change_state(self, target: SaleStatus | str) -> None:
        """Generic entry point; confirmation still enforces the line-item guard."""
        status = _coerce_status(target)
        if status is SaleStatus.CONFIRMED:
            self.confirm()
            return
        with self._lock:
            self._transition(status)

    # ------------------------------------------------------------------
    # Queries and housekeeping
    # ------------------------------------------------------------------

    @property
    def is_modifiable(self) -> bool:
        return self.status is SaleStatus.DRAFT and self.deleted_at is None

    @property
    def line_count(self) -> int:
        return len(self.line_items)

    def mark_deleted(self, at: datetime, actor_id: UUID | None = None) -> None:
        """Soft-delete (Draft or Cancelled only).  The state is left as is."""
        self._mark_deleted(self.status.value, DELETABLE_SALE_STATES, at, actor_id)

    def check_invariants(self) -> None:
        """Raise ``InvariantViolationError`` if the totals do not reconcile."""
        with self._lock:
            expected_subtotal = Money.sum(i.compute_subtotal() for i in self.line_items)
            if self.subtotal != expected_subtotal:
                raise InvariantViolationError(
                    self.entity_type, self.id, "subtotal == sum(line.subtotal)"
                )
            if self.discount > self.subtotal:
                raise InvariantViolationError(
                    self.entity_type, self.id, "discount <= subtotal"
                )
            if self.total != self.subtotal.subtract(self.discount).add(self.tax):
                raise InvariantViolationError(
                    self.entity_type, self.id, "total == subtotal - discount + tax"
                )
            if self.status is not SaleStatus.DRAFT and self.status is not SaleStatus.CANCELLED:
                if not self.line_items:
                    raise InvariantViolationError(
                        self.entity_type, self.id, "confirmed sale has line items"
                    )
