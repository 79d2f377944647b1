"""
Payment Domain Models (``sales_modules.payments.models``).

Responsibility
--------------
The Payment aggregate: an amount received against a sale, its method and
its lifecycle.  Completion and refund are the two points at which the
ledger balance moves; the reconciliation coordinator pairs them with the
ledger entry mutation.

Invariants enforced
-------------------
* ``amount > 0`` and immutable after creation; ``sale_id`` immutable.
* Pending -> {Completed, Failed}; Completed -> {Refunded}; Failed and
  Refunded are terminal (``PAYMENT_WORKFLOW``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from threading import RLock
from typing import Any
from uuid import UUID, uuid4

from sales_kernel.domain.aggregate import VersionedAggregate
from sales_kernel.domain.values import Money
from sales_kernel.domain.workflow import Transition
from sales_kernel.exceptions import InvariantViolationError, ValidationError
from sales_modules.payments.workflows import PAYMENT_WORKFLOW


class PaymentMethod(Enum):
    """How the customer paid."""
    CASH = "cash"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    TRANSFER = "transfer"
    CHECK = "check"
    OTHER = "other"


class PaymentStatus(Enum):
    """Payment lifecycle states."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


DELETABLE_PAYMENT_STATES = (PaymentStatus.PENDING.value, PaymentStatus.FAILED.value)


def coerce_payment_status(value: PaymentStatus | str) -> PaymentStatus:
    try:
        return PaymentStatus(value)
    except ValueError as e:
        raise ValidationError(
            f"Unknown payment status {value!r}", field="status", value=value
        ) from e


@dataclass(eq=False)
class Payment(VersionedAggregate):
    """Payment aggregate root."""

    entity_type = "Payment"

    id: UUID
    folio: str
    sale_id: UUID
    method: PaymentMethod
    amount: Money
    payment_date: date
    status: PaymentStatus = PaymentStatus.PENDING
    reference: str | None = None
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
        sale_id: UUID,
        method: PaymentMethod | str,
        amount: Money | Any,
        payment_date: date,
        reference: str | None = None,
        notes: str | None = None,
        *,
        folio: str = "",
        payment_id: UUID | None = None,
        created_at: datetime | None = None,
        actor_id: UUID | None = None,
    ) -> Payment:
        """
        Create a Pending payment.

        Raises:
            ValidationError: missing sale, unknown method, missing date or
                non-positive amount.
        """
        if sale_id is None:
            raise ValidationError("Payment requires a sale", field="sale_id")
        try:
            method = PaymentMethod(method)
        except ValueError as e:
            raise ValidationError(
                f"Unknown payment method {method!r}", field="method", value=method
            ) from e
        money = Money.of(amount, signed=True)
        if not money.is_positive:
            raise ValidationError(
                f"Payment amount must be positive, got {money}",
                field="amount",
                value=money,
            )
        if payment_date is None:
            raise ValidationError("Payment requires a date", field="payment_date")

        return cls(
            id=payment_id or uuid4(),
            folio=folio,
            sale_id=sale_id,
            method=method,
            amount=money,
            payment_date=payment_date,
            reference=reference,
            notes=notes,
            created_at=created_at,
            updated_at=created_at,
            created_by_id=actor_id,
        )

    def check_transition(self, target: PaymentStatus | str) -> Transition:
        """Validate ``status -> target`` against the table without mutating."""
        status = coerce_payment_status(target)
        return PAYMENT_WORKFLOW.require(
            self.status.value,
            status.value,
            entity_type=self.entity_type,
            entity_id=self.folio or self.id,
        )

    def change_state(
        self,
        target: PaymentStatus | str,
        *,
        expected_version: int | None = None,
    ) -> None:
        """
        Generic transition entry point.

        Completing or refunding here moves only the payment; callers that
        need the ledger to follow go through the reconciliation coordinator.
        """
        with self._lock:
            self.check_version(expected_version)
            self.check_transition(target)
            self.status = coerce_payment_status(target)
            self._bump()

    def complete(self, *, expected_version: int | None = None) -> None:
        self.change_state(PaymentStatus.COMPLETED, expected_version=expected_version)

    def fail(self, *, expected_version: int | None = None) -> None:
        self.change_state(PaymentStatus.FAILED, expected_version=expected_version)

    def refund(self, *, expected_version: int | None = None) -> None:
        self.change_state(PaymentStatus.REFUNDED, expected_version=expected_version)

    @property
    def is_modifiable(self) -> bool:
        return self.status is PaymentStatus.PENDING and self.deleted_at is None

    def mark_deleted(self, at: datetime, actor_id: UUID | None = None) -> None:
        """Soft-delete (Pending or Failed only)."""
        self._mark_deleted(self.status.value, DELETABLE_PAYMENT_STATES, at, actor_id)

    def check_invariants(self) -> None:
        if not self.amount.is_positive:
            raise InvariantViolationError(self.entity_type, self.id, "amount > 0")
