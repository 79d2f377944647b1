"""
sales_services.reconciliation_service -- Transactional shell for reconciliation.

Responsibility:
    Loads a payment and the ledger entry of its sale, lets
    ``ReconciliationCoordinator`` move the payment state and the balance
    together, then writes both back in one transaction together with a
    payment-application journal row.

Architecture position:
    Services -- the only writer of ledger balances.  ``PaymentService``
    delegates ``complete`` and ``refund`` here.

Invariants enforced:
    - Rows are read with ``SELECT ... FOR UPDATE`` and written back under
      the ``version`` optimistic lock, so a concurrent writer that slips
      between read and write surfaces as ``ConcurrencyConflictError``
      instead of a lost update.
    - One journal row per (payment, kind): a payment is applied at most
      once and reversed at most once.
    - For every entry: ``balance == amount - applied + reversed``
      (``verify_entry_balance``).

Failure modes:
    - EntityNotFoundError: payment, or the entry for its sale, is missing.
    - PaymentAlreadyAppliedError: the journal already holds this movement.
    - ConcurrencyConflictError: stale ``expected_version`` or a lost
      optimistic-lock race.  Retryable; the core never retries itself.
    - Anything raised by the coordinator, unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from sales_config import SalesConfig, get_active_config
from sales_kernel.db.base import is_unique_violation
from sales_kernel.domain.clock import Clock, SystemClock
from sales_kernel.domain.values import Money
from sales_kernel.exceptions import (
    ConcurrencyConflictError,
    EntityNotFoundError,
    InvariantViolationError,
    PaymentAlreadyAppliedError,
)
from sales_kernel.logging_config import LogContext, get_logger
from sales_modules.payments.models import Payment
from sales_modules.payments.orm import PaymentModel
from sales_modules.receivables.models import SALE_REFERENCE, LedgerEntry
from sales_modules.receivables.orm import LedgerEntryModel
from sales_services.orm import APPLICATION_CONSTRAINT, PaymentApplicationModel
from sales_services.reconciliation_coordinator import (
    APPLICATION,
    REVERSAL,
    ReconciliationCoordinator,
    ReconciliationResult,
)

logger = get_logger("services.reconciliation_service")


@dataclass(frozen=True)
class ReconciliationOutcome:
    """Both aggregates as committed, plus the balance movement."""
    payment: Payment
    entry: LedgerEntry
    result: ReconciliationResult


class ReconciliationService:
    """
    Completes and refunds payments with their ledger effect, atomically.

    Transaction boundary: commits on success, rolls back on failure.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: SalesConfig | None = None,
        coordinator: ReconciliationCoordinator | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or get_active_config()
        self._coordinator = coordinator or ReconciliationCoordinator()

    # =========================================================================
    # Loading
    # =========================================================================

    def _load_payment(self, payment_id: UUID) -> PaymentModel:
        model = self._session.execute(
            select(PaymentModel)
            .where(PaymentModel.id == payment_id, PaymentModel.deleted_at.is_(None))
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            raise EntityNotFoundError("Payment", payment_id)
        return model

    def _load_entry_for_sale(self, sale_id: UUID) -> LedgerEntryModel:
        model = self._session.execute(
            select(LedgerEntryModel)
            .where(
                LedgerEntryModel.reference_type == SALE_REFERENCE,
                LedgerEntryModel.reference_id == sale_id,
                LedgerEntryModel.deleted_at.is_(None),
            )
            .order_by(LedgerEntryModel.created_at)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars().first()
        if model is None:
            raise EntityNotFoundError("LedgerEntry", f"{SALE_REFERENCE}/{sale_id}")
        return model

    def _require_not_journaled(self, payment: Payment, kind: str) -> None:
        existing = self._session.execute(
            select(PaymentApplicationModel.id).where(
                PaymentApplicationModel.payment_id == payment.id,
                PaymentApplicationModel.kind == kind,
            )
        ).first()
        if existing is not None:
            raise PaymentAlreadyAppliedError(payment.folio or payment.id, kind)

    # =========================================================================
    # Reconciliation
    # =========================================================================

    def _reconcile(
        self,
        payment_id: UUID,
        kind: str,
        actor_id: UUID,
        expected_version: int | None,
    ) -> ReconciliationOutcome:
        with LogContext.bind(payment_id=payment_id, actor_id=actor_id):
            entry_id = None
            try:
                payment_model = self._load_payment(payment_id)
                payment = payment_model.to_domain()
                payment.check_version(expected_version)
                self._require_not_journaled(payment, kind)

                entry_model = self._load_entry_for_sale(payment.sale_id)
                entry_id = entry_model.id
                entry = entry_model.to_domain()

                today = self._clock.today()
                if kind == APPLICATION:
                    result = self._coordinator.complete_payment(payment, entry, today)
                else:
                    result = self._coordinator.refund_payment(payment, entry, today)

                now = self._clock.now()
                payment.touch(now, actor_id)
                entry.touch(now, actor_id)
                payment_model.update_from_domain(payment)
                entry_model.update_from_domain(entry)
                self._session.add(PaymentApplicationModel.from_result(result, now, actor_id))
                self._session.flush()
                self._session.commit()
            except StaleDataError as e:
                self._session.rollback()
                if entry_id is not None and LedgerEntryModel.__tablename__ in str(e):
                    raise ConcurrencyConflictError("LedgerEntry", entry_id) from e
                raise ConcurrencyConflictError("Payment", payment_id, expected_version) from e
            except IntegrityError as e:
                self._session.rollback()
                if is_unique_violation(
                    e,
                    APPLICATION_CONSTRAINT,
                    PaymentApplicationModel.__tablename__,
                    "payment_id",
                    "kind",
                ):
                    raise PaymentAlreadyAppliedError(payment_id, kind) from e
                raise
            except Exception:
                self._session.rollback()
                raise

            logger.info(
                "payment_reconciled",
                extra={
                    "kind": kind,
                    "payment_folio": payment.folio,
                    "entry_folio": entry.folio,
                    "amount": str(result.amount),
                    "balance_after": str(result.balance_after),
                    "entry_status": entry.status.value,
                    "payment_status": payment.status.value,
                },
            )
            return ReconciliationOutcome(payment=payment, entry=entry, result=result)

    def complete_payment(
        self,
        payment_id: UUID,
        *,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> ReconciliationOutcome:
        """Pending -> Completed, reducing the sale's ledger entry."""
        return self._reconcile(payment_id, APPLICATION, actor_id, expected_version)

    def refund_payment(
        self,
        payment_id: UUID,
        *,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> ReconciliationOutcome:
        """Completed -> Refunded, restoring the sale's ledger entry."""
        return self._reconcile(payment_id, REVERSAL, actor_id, expected_version)

    # =========================================================================
    # Journal queries
    # =========================================================================

    def applications_for_entry(self, entry_id: UUID) -> list[PaymentApplicationModel]:
        return list(
            self._session.execute(
                select(PaymentApplicationModel)
                .where(PaymentApplicationModel.entry_id == entry_id)
                .order_by(PaymentApplicationModel.applied_at, PaymentApplicationModel.kind)
            ).scalars()
        )

    def verify_entry_balance(self, entry_id: UUID) -> Money:
        """
        Re-derive the balance from the journal and compare.

        Returns the stored balance.

        Raises:
            EntityNotFoundError: no such entry.
            InvariantViolationError: stored and derived balances differ.
        """
        model = self._session.get(LedgerEntryModel, entry_id)
        if model is None:
            raise EntityNotFoundError("LedgerEntry", entry_id)

        applied = Money.zero()
        reversed_ = Money.zero()
        for row in self.applications_for_entry(entry_id):
            if row.kind == APPLICATION:
                applied = applied + Money(row.amount)
            elif row.kind == REVERSAL:
                reversed_ = reversed_ + Money(row.amount)

        derived = Money(model.amount).subtract(applied, allow_negative=True) + reversed_
        stored = Money(model.balance)
        if derived != stored:
            logger.error(
                "ledger_balance_mismatch",
                extra={
                    "entry_id": str(entry_id),
                    "stored": str(stored),
                    "derived": str(derived),
                },
            )
            raise InvariantViolationError(
                "LedgerEntry", entry_id, "balance == amount - applied + reversed"
            )
        return stored
