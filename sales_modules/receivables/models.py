"""
Ledger Entry Domain Models (``sales_modules.receivables.models``).

Responsibility
--------------
The LedgerEntry aggregate: an amount owed (receivable) or owing (payable)
against an origin reference, with a remaining balance reduced by payments
and restored by refunds.

Architecture position
---------------------
**Modules layer** -- pure domain logic with ZERO I/O.  Balance mutation is
reached through ``sales_services.reconciliation_service`` only; the
entry itself knows nothing about payments.

Invariants enforced
-------------------
* ``0 <= balance <= amount`` at every observable point.
* ``amount`` is positive and immutable after opening.
* ``due_date >= issue_date`` at opening.
* Paid implies ``balance == 0``; Pending/Overdue imply ``balance > 0``.
* Overdue is entered only from Pending, lazily, when ``today > due_date``.
* Every balance mutation is a single check-and-update under the entry
  lock, optionally guarded by ``expected_version``.

Failure modes
-------------
* ``InvalidStateError`` -- reducing a Paid/Cancelled entry, cancelling a
  Paid entry, or restoring a Cancelled one.
* ``InvalidArgumentError`` -- non-positive amounts.
* ``ExceedsBalanceError`` / ``ExceedsAmountError`` -- the balance bounds.
* ``ConcurrencyConflictError`` -- ``expected_version`` mismatch.
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
from sales_kernel.exceptions import (
    ExceedsAmountError,
    ExceedsBalanceError,
    InvalidArgumentError,
    InvalidStateError,
    InvariantViolationError,
    ValidationError,
)
from sales_modules.receivables.workflows import LEDGER_ENTRY_WORKFLOW

SALE_REFERENCE = "SALE"


class LedgerDirection(Enum):
    """Which side of the business owes the balance."""
    RECEIVABLE = "receivable"
    PAYABLE = "payable"


class LedgerEntryStatus(Enum):
    """Ledger entry lifecycle states."""
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


OPEN_STATES = (LedgerEntryStatus.PENDING, LedgerEntryStatus.OVERDUE)
DELETABLE_ENTRY_STATES = (LedgerEntryStatus.PENDING.value, LedgerEntryStatus.CANCELLED.value)


def _positive_argument(value: Money | Any, operation: str) -> Money:
    money = Money.of(value, signed=True)
    if not money.is_positive:
        raise InvalidArgumentError(
            f"{operation} requires a positive amount, got {money}",
            field="amount",
            value=money,
        )
    return money


@dataclass(eq=False)
class LedgerEntry(VersionedAggregate):
    """
    Receivable/payable aggregate root.

    Linked to its origin by ``reference_type``/``reference_id`` only; it
    holds no pointer to the Sale and is not cancelled with it.
    """

    entity_type = "LedgerEntry"

    id: UUID
    folio: str
    direction: LedgerDirection
    reference_type: str
    reference_id: UUID
    customer_id: UUID
    amount: Money
    balance: Money
    issue_date: date
    due_date: date
    status: LedgerEntryStatus = LedgerEntryStatus.PENDING
    description: str | None = None
    version: int = 1
    created_at: datetime | None = None
    updated_at: datetime | None = None
    created_by_id: UUID | None = None
    updated_by_id: UUID | None = None
    deleted_at: datetime | None = None
    _lock: RLock = field(default_factory=RLock, init=False, repr=False, compare=False)

    @classmethod
    def open(
        cls,
        direction: LedgerDirection | str,
        reference_type: str,
        reference_id: UUID,
        customer_id: UUID,
        amount: Money | Any,
        issue_date: date,
        due_date: date,
        *,
        description: str | None = None,
        folio: str = "",
        entry_id: UUID | None = None,
        today: date | None = None,
        created_at: datetime | None = None,
        actor_id: UUID | None = None,
    ) -> LedgerEntry:
        """
        Open a Pending entry with ``balance == amount``.

        When ``today`` is given the overdue rule is evaluated immediately,
        so an entry recorded after its due date opens as Overdue.

        Raises:
            ValidationError: unknown direction, missing references,
                non-positive amount, or ``due_date < issue_date``.
        """
        try:
            direction = LedgerDirection(direction)
        except ValueError as e:
            raise ValidationError(
                f"Unknown ledger direction {direction!r}", field="direction", value=direction
            ) from e
        if not reference_type:
            raise ValidationError("Ledger entry requires a reference type", field="reference_type")
        if reference_id is None:
            raise ValidationError("Ledger entry requires a reference id", field="reference_id")
        if customer_id is None:
            raise ValidationError("Ledger entry requires a customer", field="customer_id")
        money = Money.of(amount, signed=True)
        if not money.is_positive:
            raise ValidationError(
                f"Ledger entry amount must be positive, got {money}",
                field="amount",
                value=money,
            )
        if issue_date is None or due_date is None:
            raise ValidationError("Ledger entry requires issue and due dates", field="due_date")
        if due_date < issue_date:
            raise ValidationError(
                f"Due date {due_date} precedes issue date {issue_date}",
                field="due_date",
                value=due_date,
            )

        entry = cls(
            id=entry_id or uuid4(),
            folio=folio,
            direction=direction,
            reference_type=reference_type,
            reference_id=reference_id,
            customer_id=customer_id,
            amount=money,
            balance=money,
            issue_date=issue_date,
            due_date=due_date,
            description=description,
            created_at=created_at,
            updated_at=created_at,
            created_by_id=actor_id,
        )
        if today is not None and entry._is_past_due(today):
            entry.status = LedgerEntryStatus.OVERDUE
        return entry

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _transition(self, target: LedgerEntryStatus) -> None:
        LEDGER_ENTRY_WORKFLOW.require(
            self.status.value,
            target.value,
            entity_type=self.entity_type,
            entity_id=self.folio or self.id,
        )
        self.status = target

    def _is_past_due(self, today: date) -> bool:
        return today > self.due_date and self.balance.is_positive

    def _require_open(self, attempted: str) -> None:
        if self.status not in OPEN_STATES:
            raise InvalidStateError(
                entity_type=self.entity_type,
                entity_id=self.folio or self.id,
                current_state=self.status.value,
                attempted=attempted,
                message=(
                    f"LedgerEntry {self.folio or self.id}: cannot {attempted} while "
                    f"{self.status.value}; only pending or overdue entries accept payments"
                ),
            )

    def refresh_overdue_status(self, today: date) -> bool:
        """
        Lazy overdue rule: Pending with ``today > due_date`` and a remaining
        balance becomes Overdue.  Returns True when the state changed.
        """
        with self._lock:
            if self.status is LedgerEntryStatus.PENDING and self._is_past_due(today):
                self._transition(LedgerEntryStatus.OVERDUE)
                self._bump()
                return True
            return False

    def reduce_balance(
        self,
        amount: Money | Any,
        *,
        today: date | None = None,
        expected_version: int | None = None,
    ) -> Money:
        """
        Apply a payment: subtract ``amount`` and settle at zero.

        The read-validate-write runs atomically under the entry lock.  When
        ``today`` is past the due date a Pending entry that keeps a balance
        moves to Overdue together with the subtraction; a rejected payment
        leaves status and version as they were.  Returns the new balance.

        Raises:
            ConcurrencyConflictError: ``expected_version`` is stale.
            InvalidStateError: entry is Paid or Cancelled.
            InvalidArgumentError: ``amount <= 0``.
            ExceedsBalanceError: ``amount > balance``.
        """
        with self._lock:
            self.check_version(expected_version)
            self._require_open("reduce_balance")
            payment = _positive_argument(amount, "reduce_balance")
            if payment > self.balance:
                raise ExceedsBalanceError(self.folio or self.id, self.balance, payment)

            self.balance = self.balance.subtract(payment)
            if self.balance.is_zero:
                self._transition(LedgerEntryStatus.PAID)
            elif (
                today is not None
                and self.status is LedgerEntryStatus.PENDING
                and self._is_past_due(today)
            ):
                self._transition(LedgerEntryStatus.OVERDUE)
            self._bump()
            return self.balance

    def increase_balance(
        self,
        amount: Money | Any,
        *,
        today: date | None = None,
        expected_version: int | None = None,
    ) -> Money:
        """
        Reverse a payment: add ``amount`` back, never above the original amount.

        A Paid entry returns to Pending, or to Overdue when ``today`` is
        given and is past the due date.  Returns the new balance.

        Raises:
            ConcurrencyConflictError: ``expected_version`` is stale.
            InvalidStateError: entry is Cancelled.
            InvalidArgumentError: ``amount <= 0``.
            ExceedsAmountError: ``balance + amount > amount``.
        """
        with self._lock:
            self.check_version(expected_version)
            if self.status is LedgerEntryStatus.CANCELLED:
                raise InvalidStateError(
                    entity_type=self.entity_type,
                    entity_id=self.folio or self.id,
                    current_state=self.status.value,
                    attempted="increase_balance",
                )
            refund = _positive_argument(amount, "increase_balance")
            restored = self.balance.add(refund)
            if restored > self.amount:
                raise ExceedsAmountError(
                    self.folio or self.id, self.balance, self.amount, refund
                )

            self.balance = restored
            if self.status is LedgerEntryStatus.PAID:
                if today is not None and self._is_past_due(today):
                    self._transition(LedgerEntryStatus.OVERDUE)
                else:
                    self._transition(LedgerEntryStatus.PENDING)
            elif today is not None and self.status is LedgerEntryStatus.PENDING:
                if self._is_past_due(today):
                    self._transition(LedgerEntryStatus.OVERDUE)
            self._bump()
            return self.balance

    def cancel(self) -> None:
        """Pending/Overdue -> Cancelled.  A settled (Paid) entry cannot be cancelled."""
        with self._lock:
            self._transition(LedgerEntryStatus.CANCELLED)
            self._bump()

    # ------------------------------------------------------------------
    # Queries and housekeeping
    # ------------------------------------------------------------------

    @property
    def paid_amount(self) -> Money:
        return self.amount.subtract(self.balance)

    @property
    def is_modifiable(self) -> bool:
        return self.status in OPEN_STATES and self.deleted_at is None

    def days_overdue(self, today: date) -> int:
        """0 unless a balance remains past the due date."""
        if self.status not in OPEN_STATES or not self._is_past_due(today):
            return 0
        return (today - self.due_date).days

    def mark_deleted(self, at: datetime, actor_id: UUID | None = None) -> None:
        """Soft-delete (Pending or Cancelled only).  The state is left as is."""
        self._mark_deleted(self.status.value, DELETABLE_ENTRY_STATES, at, actor_id)

    def check_invariants(self) -> None:
        with self._lock:
            if not self.amount.is_positive:
                raise InvariantViolationError(self.entity_type, self.id, "amount > 0")
            if self.balance.is_negative or self.balance > self.amount:
                raise InvariantViolationError(
                    self.entity_type, self.id, "0 <= balance <= amount"
                )
            if self.status is LedgerEntryStatus.PAID and not self.balance.is_zero:
                raise InvariantViolationError(
                    self.entity_type, self.id, "paid implies balance == 0"
                )
            if self.status in OPEN_STATES and self.balance.is_zero:
                raise InvariantViolationError(
                    self.entity_type, self.id, "open entry has a balance"
                )
            if self.due_date < self.issue_date:
                raise InvariantViolationError(
                    self.entity_type, self.id, "due_date >= issue_date"
                )
