"""
sales_services.reconciliation_coordinator -- Payment <-> ledger entry balance rules.

Responsibility:
    The single place where a payment's state and a ledger entry's balance
    are brought into agreement.  Completing a payment reduces the matching
    entry's balance exactly once; refunding it restores that amount.
    Nothing else in the system calls ``reduce_balance`` or
    ``increase_balance``.

Architecture position:
    Services -- pure orchestration over the module aggregates, zero I/O.
    ``ReconciliationService`` wraps it in a database transaction.

Invariants enforced:
    - The entry must reference the payment's sale (type "SALE").
    - apply requires a Completed payment; reverse requires a Refunded one.
    - Failures from the entry are surfaced unchanged, never clamped.
    - ``complete_payment`` / ``refund_payment`` hold the entry lock, then
      the payment lock, and run every check before mutating, so a rejected
      application leaves both aggregates as they were.

Failure modes:
    - ReferenceMismatchError: payment and entry point at different sales.
    - InvalidStateError: wrong payment state, or entry not open.
    - ExceedsBalanceError / ExceedsAmountError: balance bounds.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sales_kernel.domain.values import Money
from sales_kernel.exceptions import InvalidStateError, ReferenceMismatchError
from sales_kernel.logging_config import get_logger
from sales_modules.payments.models import Payment, PaymentStatus
from sales_modules.receivables.models import (
    SALE_REFERENCE,
    LedgerEntry,
    LedgerEntryStatus,
)

logger = get_logger("services.reconciliation")

APPLICATION = "application"
REVERSAL = "reversal"


@dataclass(frozen=True)
class ReconciliationResult:
    """Outcome of one balance movement."""
    kind: str
    payment_id: UUID
    entry_id: UUID
    amount: Money
    balance_before: Money
    balance_after: Money
    entry_status: LedgerEntryStatus
    payment_status: PaymentStatus


class ReconciliationCoordinator:
    """
    Applies and reverses payments against ledger entries.

    Contract:
        Stateless; every method takes the two aggregates it coordinates.
        Callers invoke apply/reverse exactly once per payment transition.
    """

    def _require_match(self, payment: Payment, entry: LedgerEntry) -> None:
        if entry.reference_type != SALE_REFERENCE or entry.reference_id != payment.sale_id:
            raise ReferenceMismatchError(
                payment_id=payment.folio or payment.id,
                sale_id=payment.sale_id,
                reference_type=entry.reference_type,
                reference_id=entry.reference_id,
            )

    def _require_payment_status(
        self, payment: Payment, required: PaymentStatus, attempted: str
    ) -> None:
        if payment.status is not required:
            raise InvalidStateError(
                entity_type=payment.entity_type,
                entity_id=payment.folio or payment.id,
                current_state=payment.status.value,
                attempted=attempted,
                message=(
                    f"Payment {payment.folio or payment.id}: cannot {attempted} "
                    f"while {payment.status.value}; payment must be {required.value}"
                ),
            )

    def _reduce(
        self, payment: Payment, entry: LedgerEntry, today: date | None
    ) -> tuple[Money, Money]:
        before = entry.balance
        after = entry.reduce_balance(payment.amount, today=today)
        return before, after

    def _increase(
        self, payment: Payment, entry: LedgerEntry, today: date | None
    ) -> tuple[Money, Money]:
        before = entry.balance
        after = entry.increase_balance(payment.amount, today=today)
        return before, after

    def _result(
        self,
        kind: str,
        payment: Payment,
        entry: LedgerEntry,
        before: Money,
        after: Money,
    ) -> ReconciliationResult:
        result = ReconciliationResult(
            kind=kind,
            payment_id=payment.id,
            entry_id=entry.id,
            amount=payment.amount,
            balance_before=before,
            balance_after=after,
            entry_status=entry.status,
            payment_status=payment.status,
        )
        logger.info(
            "ledger_balance_reduced" if kind == APPLICATION else "ledger_balance_restored",
            extra={
                "payment_id": str(payment.id),
                "entry_id": str(entry.id),
                "amount": str(payment.amount),
                "balance_before": str(before),
                "balance_after": str(after),
                "entry_status": entry.status.value,
            },
        )
        return result

    # ------------------------------------------------------------------
    # Balance movements for an already-transitioned payment
    # ------------------------------------------------------------------

    def apply_payment(
        self,
        payment: Payment,
        entry: LedgerEntry,
        today: date | None = None,
    ) -> ReconciliationResult:
        """Reduce ``entry`` by a Completed ``payment``."""
        with entry.mutation_lock, payment.mutation_lock:
            self._require_match(payment, entry)
            self._require_payment_status(payment, PaymentStatus.COMPLETED, "apply_payment")
            before, after = self._reduce(payment, entry, today)
            return self._result(APPLICATION, payment, entry, before, after)

    def reverse_payment(
        self,
        payment: Payment,
        entry: LedgerEntry,
        today: date | None = None,
    ) -> ReconciliationResult:
        """Restore ``entry`` by a Refunded ``payment``."""
        with entry.mutation_lock, payment.mutation_lock:
            self._require_match(payment, entry)
            self._require_payment_status(payment, PaymentStatus.REFUNDED, "reverse_payment")
            before, after = self._increase(payment, entry, today)
            return self._result(REVERSAL, payment, entry, before, after)

    # ------------------------------------------------------------------
    # Transition + balance movement as one unit
    # ------------------------------------------------------------------

    def complete_payment(
        self,
        payment: Payment,
        entry: LedgerEntry,
        today: date | None = None,
    ) -> ReconciliationResult:
        """Pending -> Completed and reduce the entry; all or nothing."""
        with entry.mutation_lock, payment.mutation_lock:
            self._require_match(payment, entry)
            payment.check_transition(PaymentStatus.COMPLETED)
            before, after = self._reduce(payment, entry, today)
            payment.complete()
            logger.info(
                "payment_completed",
                extra={"payment_id": str(payment.id), "amount": str(payment.amount)},
            )
            return self._result(APPLICATION, payment, entry, before, after)

    def refund_payment(
        self,
        payment: Payment,
        entry: LedgerEntry,
        today: date | None = None,
    ) -> ReconciliationResult:
        """Completed -> Refunded and restore the entry; all or nothing."""
        with entry.mutation_lock, payment.mutation_lock:
            self._require_match(payment, entry)
            payment.check_transition(PaymentStatus.REFUNDED)
            before, after = self._increase(payment, entry, today)
            payment.refund()
            logger.info(
                "payment_refunded",
                extra={"payment_id": str(payment.id), "amount": str(payment.amount)},
            )
            return self._result(REVERSAL, payment, entry, before, after)
