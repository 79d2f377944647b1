"""
Payment Module Service - transactional shell around the Payment aggregate.

Thin glue layer that:
1. Records payments against an accepting sale (Confirmed/Shipped/Completed)
2. Keeps the running total of completed payments within the sale total
3. Routes completion and refund through ``ReconciliationService`` so the
   ledger balance moves with the payment
4. Handles failure and soft-deletion directly (no ledger effect)

Usage:
    payments = PaymentService(session, clock=clock)
    payment = payments.create_payment(sale.id, "cash", "100.00", actor_id=actor_id)
    payments.complete(payment.id, actor_id=actor_id)
"""

from __future__ import annotations

from datetime import date
from typing import Any, Callable
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from sales_config import SalesConfig, get_active_config
from sales_kernel.domain.clock import Clock, SystemClock
from sales_kernel.domain.values import Money
from sales_kernel.exceptions import (
    ConcurrencyConflictError,
    EntityNotFoundError,
    ExceedsBalanceError,
    InvalidStateError,
)
from sales_kernel.logging_config import LogContext, get_logger
from sales_kernel.services.sequence_service import SequenceService
from sales_modules.payments.models import (
    Payment,
    PaymentMethod,
    PaymentStatus,
    coerce_payment_status,
)
from sales_modules.payments.orm import PaymentModel
from sales_modules.sales.models import SaleStatus
from sales_modules.sales.orm import SaleModel

logger = get_logger("modules.payments.service")

NON_ACCEPTING_SALE_STATES = (SaleStatus.DRAFT.value, SaleStatus.CANCELLED.value)


class PaymentService:
    """
    Orchestrates payment operations.

    Transaction boundary: this service commits on success, rolls back on
    failure.  ``complete`` and ``refund`` commit through the reconciliation
    service sharing this session.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: SalesConfig | None = None,
        reconciliation=None,
    ):
        from sales_services.reconciliation_service import ReconciliationService

        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or get_active_config()
        self._sequences = SequenceService(session)
        self._reconciliation = reconciliation or ReconciliationService(
            session, clock=self._clock, config=self._config
        )

    # =========================================================================
    # Lookups
    # =========================================================================

    def _load(self, payment_id: UUID, for_update: bool = False) -> PaymentModel:
        stmt = select(PaymentModel).where(
            PaymentModel.id == payment_id,
            PaymentModel.deleted_at.is_(None),
        )
        if for_update:
            stmt = stmt.with_for_update()
        model = self._session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            raise EntityNotFoundError("Payment", payment_id)
        return model

    def get_payment(self, payment_id: UUID) -> Payment:
        return self._load(payment_id).to_domain()

    def get_by_folio(self, folio: str) -> Payment:
        model = self._session.execute(
            select(PaymentModel).where(
                PaymentModel.folio == folio,
                PaymentModel.deleted_at.is_(None),
            )
        ).scalar_one_or_none()
        if model is None:
            raise EntityNotFoundError("Payment", folio)
        return model.to_domain()

    def list_for_sale(self, sale_id: UUID) -> list[Payment]:
        rows = self._session.execute(
            select(PaymentModel)
            .where(
                PaymentModel.sale_id == sale_id,
                PaymentModel.deleted_at.is_(None),
            )
            .order_by(PaymentModel.payment_date, PaymentModel.folio)
        ).scalars()
        return [row.to_domain() for row in rows]

    def total_completed_for_sale(self, sale_id: UUID) -> Money:
        total = self._session.execute(
            select(func.coalesce(func.sum(PaymentModel.amount), 0)).where(
                PaymentModel.sale_id == sale_id,
                PaymentModel.status == PaymentStatus.COMPLETED.value,
                PaymentModel.deleted_at.is_(None),
            )
        ).scalar_one()
        return Money.round_half_up(total)

    # =========================================================================
    # Creation
    # =========================================================================

    def create_payment(
        self,
        sale_id: UUID,
        method: PaymentMethod | str,
        amount: Money | Any,
        payment_date: date | None = None,
        reference: str | None = None,
        notes: str | None = None,
        *,
        actor_id: UUID,
    ) -> Payment:
        """
        Record a Pending payment for a sale.

        Raises:
            EntityNotFoundError: sale missing or deleted.
            InvalidStateError: sale is Draft or Cancelled.
            ValidationError: bad method or non-positive amount.
            ExceedsBalanceError: amount above the sale's unpaid total.
        """
        payment_date = payment_date or self._clock.today()
        with LogContext.bind(sale_id=sale_id, actor_id=actor_id):
            try:
                sale = self._session.execute(
                    select(SaleModel).where(
                        SaleModel.id == sale_id,
                        SaleModel.deleted_at.is_(None),
                    )
                ).scalar_one_or_none()
                if sale is None:
                    raise EntityNotFoundError("Sale", sale_id)
                if sale.status in NON_ACCEPTING_SALE_STATES:
                    raise InvalidStateError(
                        entity_type="Sale",
                        entity_id=sale.folio,
                        current_state=sale.status,
                        attempted="accept_payment",
                        message=(
                            f"Sale {sale.folio}: cannot accept payments while "
                            f"{sale.status}"
                        ),
                    )

                payment = Payment.create(
                    sale_id,
                    method,
                    amount,
                    payment_date,
                    reference,
                    notes,
                    created_at=self._clock.now(),
                    actor_id=actor_id,
                )
                unpaid = Money(sale.total).subtract(
                    self.total_completed_for_sale(sale_id), allow_negative=True
                )
                if payment.amount > unpaid:
                    raise ExceedsBalanceError(sale.folio, unpaid, payment.amount)

                folios = self._config.folios
                payment.folio = self._sequences.next_folio(
                    folios.payment_prefix, payment_date, folios.sequence_width
                )
                self._session.add(PaymentModel.from_domain(payment))
                self._session.commit()
            except Exception:
                self._session.rollback()
                raise

            logger.info(
                "payment_created",
                extra={
                    "payment_id": str(payment.id),
                    "folio": payment.folio,
                    "method": payment.method.value,
                    "amount": str(payment.amount),
                },
            )
            return payment

    # =========================================================================
    # Transitions
    # =========================================================================

    def complete(
        self,
        payment_id: UUID,
        *,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> Payment:
        """Pending -> Completed; the sale's ledger entry is reduced."""
        outcome = self._reconciliation.complete_payment(
            payment_id, actor_id=actor_id, expected_version=expected_version
        )
        return outcome.payment

    def refund(
        self,
        payment_id: UUID,
        *,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> Payment:
        """Completed -> Refunded; the sale's ledger entry is restored."""
        outcome = self._reconciliation.refund_payment(
            payment_id, actor_id=actor_id, expected_version=expected_version
        )
        return outcome.payment

    def _mutate(
        self,
        payment_id: UUID,
        actor_id: UUID,
        operation: Callable[[Payment], Any],
        event: str,
        expected_version: int | None = None,
    ) -> Payment:
        with LogContext.bind(payment_id=payment_id, actor_id=actor_id):
            try:
                model = self._load(payment_id, for_update=True)
                payment = model.to_domain()
                payment.check_version(expected_version)
                operation(payment)
                payment.touch(self._clock.now(), actor_id)
                model.update_from_domain(payment)
                self._session.commit()
            except StaleDataError as e:
                self._session.rollback()
                raise ConcurrencyConflictError("Payment", payment_id, expected_version) from e
            except Exception:
                self._session.rollback()
                raise

            logger.info(
                event,
                extra={
                    "folio": payment.folio,
                    "status": payment.status.value,
                    "version": payment.version,
                },
            )
            return payment

    def fail(
        self,
        payment_id: UUID,
        *,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> Payment:
        """Pending -> Failed.  No ledger effect."""
        return self._mutate(payment_id, actor_id, Payment.fail, "payment_failed", expected_version)

    def change_state(
        self,
        payment_id: UUID,
        target: PaymentStatus | str,
        *,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> Payment:
        """Generic transition; Completed and Refunded carry their ledger effect."""
        status = coerce_payment_status(target)
        if status is PaymentStatus.COMPLETED:
            return self.complete(payment_id, actor_id=actor_id, expected_version=expected_version)
        if status is PaymentStatus.REFUNDED:
            return self.refund(payment_id, actor_id=actor_id, expected_version=expected_version)
        return self._mutate(
            payment_id, actor_id, lambda p: p.change_state(status),
            "payment_state_changed", expected_version,
        )

    def delete(self, payment_id: UUID, *, actor_id: UUID) -> Payment:
        """Soft-delete a Pending or Failed payment."""
        now = self._clock.now()
        return self._mutate(
            payment_id, actor_id, lambda p: p.mark_deleted(now, actor_id), "payment_deleted",
        )
