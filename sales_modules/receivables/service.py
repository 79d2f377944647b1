"""
Ledger Entry Module Service - transactional shell around the LedgerEntry aggregate.

Thin glue layer that:
1. Opens receivable/payable entries (directly, or from a confirmed sale)
2. Evaluates the overdue rule lazily on every read
3. Cancels and soft-deletes entries

Balance mutation is NOT exposed here: payments move balances through
``sales_services.reconciliation_service.ReconciliationService`` only.

Usage:
    entries = LedgerEntryService(session, clock=clock)
    entry = entries.open_from_sale(sale.id, actor_id=actor_id)
    overdue = entries.list_overdue()
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Callable
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
    DuplicateLedgerEntryError,
    EntityNotFoundError,
    InvalidStateError,
)
from sales_kernel.logging_config import LogContext, get_logger
from sales_kernel.services.sequence_service import SequenceService
from sales_modules.receivables.models import (
    SALE_REFERENCE,
    LedgerDirection,
    LedgerEntry,
    LedgerEntryStatus,
)
from sales_modules.receivables.orm import REFERENCE_INDEX, LedgerEntryModel
from sales_modules.sales.models import SaleStatus
from sales_modules.sales.orm import SaleModel

logger = get_logger("modules.receivables.service")

BILLABLE_SALE_STATES = (
    SaleStatus.CONFIRMED.value,
    SaleStatus.SHIPPED.value,
    SaleStatus.COMPLETED.value,
)


class LedgerEntryService:
    """
    Orchestrates ledger entry operations.

    Transaction boundary: this service commits on success, rolls back on failure.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: SalesConfig | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or get_active_config()
        self._sequences = SequenceService(session)

    # =========================================================================
    # Opening
    # =========================================================================

    def _prefix(self, direction: LedgerDirection) -> str:
        folios = self._config.folios
        if direction is LedgerDirection.PAYABLE:
            return folios.payable_prefix
        return folios.receivable_prefix

    def _persist_new(self, entry: LedgerEntry) -> LedgerEntry:
        try:
            entry.folio = self._sequences.next_folio(
                self._prefix(entry.direction),
                entry.issue_date,
                self._config.folios.sequence_width,
            )
            self._session.add(LedgerEntryModel.from_domain(entry))
            self._session.commit()
        except IntegrityError as e:
            self._session.rollback()
            if not is_unique_violation(
                e, REFERENCE_INDEX, LedgerEntryModel.__tablename__, "reference_type", "reference_id"
            ):
                raise
            existing = self._find_model_for_reference(entry.reference_type, entry.reference_id)
            raise DuplicateLedgerEntryError(
                entry.reference_type,
                entry.reference_id,
                existing.folio if existing is not None else "",
            ) from e
        except Exception:
            self._session.rollback()
            raise

        logger.info(
            "ledger_entry_opened",
            extra={
                "entry_id": str(entry.id),
                "folio": entry.folio,
                "direction": entry.direction.value,
                "reference": f"{entry.reference_type}/{entry.reference_id}",
                "amount": str(entry.amount),
                "due_date": entry.due_date.isoformat(),
                "status": entry.status.value,
            },
        )
        return entry

    def open_entry(
        self,
        direction: LedgerDirection | str,
        reference_type: str,
        reference_id: UUID,
        customer_id: UUID,
        amount: Money | Any,
        issue_date: date,
        due_date: date,
        *,
        description: str | None = None,
        actor_id: UUID,
    ) -> LedgerEntry:
        """
        Open an entry for any origin (a sale, or an external payable).

        Raises:
            DuplicateLedgerEntryError: the origin already has a live entry.
        """
        entry = LedgerEntry.open(
            direction,
            reference_type,
            reference_id,
            customer_id,
            amount,
            issue_date,
            due_date,
            description=description,
            today=self._clock.today(),
            created_at=self._clock.now(),
            actor_id=actor_id,
        )
        return self._persist_new(entry)

    def open_from_sale(
        self,
        sale_id: UUID,
        *,
        due_date: date | None = None,
        credit_days: int | None = None,
        actor_id: UUID,
    ) -> LedgerEntry:
        """
        Open the receivable for a confirmed sale.

        Amount is the sale total, issued on the sale date and due
        ``credit_days`` later (``receivables.default_credit_days`` unless
        given).

        Raises:
            EntityNotFoundError: sale missing or deleted.
            InvalidStateError: sale is Draft or Cancelled.
            DuplicateLedgerEntryError: the sale already has an entry.
        """
        sale = self._session.execute(
            select(SaleModel).where(
                SaleModel.id == sale_id,
                SaleModel.deleted_at.is_(None),
            )
        ).scalar_one_or_none()
        if sale is None:
            raise EntityNotFoundError("Sale", sale_id)
        if sale.status not in BILLABLE_SALE_STATES:
            raise InvalidStateError(
                entity_type="Sale",
                entity_id=sale.folio,
                current_state=sale.status,
                attempted="open_ledger_entry",
                message=(
                    f"Sale {sale.folio}: cannot open a ledger entry while "
                    f"{sale.status}; sale must be confirmed"
                ),
            )
        existing = self._find_model_for_reference(SALE_REFERENCE, sale_id)
        if existing is not None:
            raise DuplicateLedgerEntryError(SALE_REFERENCE, sale_id, existing.folio)

        if due_date is None:
            days = credit_days if credit_days is not None else (
                self._config.receivables.default_credit_days
            )
            due_date = sale.sale_date + timedelta(days=days)

        entry = LedgerEntry.open(
            LedgerDirection.RECEIVABLE,
            SALE_REFERENCE,
            sale.id,
            sale.customer_id,
            Money(sale.total),
            sale.sale_date,
            due_date,
            description=f"Sale {sale.folio}",
            today=self._clock.today(),
            created_at=self._clock.now(),
            actor_id=actor_id,
        )
        return self._persist_new(entry)

    # =========================================================================
    # Lookups (each read evaluates the overdue rule)
    # =========================================================================

    def _find_model_for_reference(
        self, reference_type: str, reference_id: UUID
    ) -> LedgerEntryModel | None:
        return self._session.execute(
            select(LedgerEntryModel)
            .where(
                LedgerEntryModel.reference_type == reference_type,
                LedgerEntryModel.reference_id == reference_id,
                LedgerEntryModel.deleted_at.is_(None),
            )
            .order_by(LedgerEntryModel.created_at)
            .execution_options(populate_existing=True)
        ).scalars().first()

    def _load(self, entry_id: UUID, for_update: bool = False) -> LedgerEntryModel:
        stmt = select(LedgerEntryModel).where(
            LedgerEntryModel.id == entry_id,
            LedgerEntryModel.deleted_at.is_(None),
        )
        if for_update:
            stmt = stmt.with_for_update()
        model = self._session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            raise EntityNotFoundError("LedgerEntry", entry_id)
        return model

    def _observe(self, models: list[LedgerEntryModel], today: date | None = None) -> list[LedgerEntry]:
        """Rebuild aggregates, persisting any lazy Pending -> Overdue transition."""
        today = today or self._clock.today()
        now = self._clock.now()
        entries = []
        changed = 0
        key = models[0].id if len(models) == 1 else [m.id for m in models]
        try:
            for model in models:
                entry = model.to_domain()
                if entry.refresh_overdue_status(today):
                    entry.touch(now, None)
                    model.update_from_domain(entry)
                    changed += 1
                    logger.info(
                        "ledger_entry_overdue",
                        extra={
                            "entry_id": str(entry.id),
                            "folio": entry.folio,
                            "due_date": entry.due_date.isoformat(),
                            "days_overdue": entry.days_overdue(today),
                        },
                    )
                entries.append(entry)
            if changed:
                self._session.commit()
        except StaleDataError as e:
            self._session.rollback()
            raise ConcurrencyConflictError("LedgerEntry", key) from e
        except Exception:
            self._session.rollback()
            raise
        return entries

    def get_entry(self, entry_id: UUID) -> LedgerEntry:
        return self._observe([self._load(entry_id)])[0]

    def get_by_folio(self, folio: str) -> LedgerEntry:
        model = self._session.execute(
            select(LedgerEntryModel).where(
                LedgerEntryModel.folio == folio,
                LedgerEntryModel.deleted_at.is_(None),
            )
        ).scalar_one_or_none()
        if model is None:
            raise EntityNotFoundError("LedgerEntry", folio)
        return self._observe([model])[0]

    def find_for_sale(self, sale_id: UUID) -> LedgerEntry | None:
        model = self._find_model_for_reference(SALE_REFERENCE, sale_id)
        if model is None:
            return None
        return self._observe([model])[0]

    def list_for_customer(self, customer_id: UUID) -> list[LedgerEntry]:
        models = list(
            self._session.execute(
                select(LedgerEntryModel)
                .where(
                    LedgerEntryModel.customer_id == customer_id,
                    LedgerEntryModel.deleted_at.is_(None),
                )
                .order_by(LedgerEntryModel.due_date, LedgerEntryModel.folio)
            ).scalars()
        )
        return self._observe(models)

    def _past_due_models(self, today: date) -> list[LedgerEntryModel]:
        return list(
            self._session.execute(
                select(LedgerEntryModel)
                .where(
                    LedgerEntryModel.status.in_(
                        [LedgerEntryStatus.PENDING.value, LedgerEntryStatus.OVERDUE.value]
                    ),
                    LedgerEntryModel.due_date < today,
                    LedgerEntryModel.deleted_at.is_(None),
                )
                .order_by(LedgerEntryModel.due_date, LedgerEntryModel.folio)
            ).scalars()
        )

    def list_overdue(self, today: date | None = None) -> list[LedgerEntry]:
        """Open entries past their due date (observing them marks them Overdue)."""
        today = today or self._clock.today()
        entries = self._observe(self._past_due_models(today), today)
        return [e for e in entries if e.status is LedgerEntryStatus.OVERDUE]

    def refresh_overdue(self, today: date | None = None) -> int:
        """
        Explicit sweep: apply the overdue rule to every open past-due entry.

        Caller-invoked only; nothing schedules it.  Returns the number of
        entries that moved to Overdue.
        """
        today = today or self._clock.today()
        models = [
            m for m in self._past_due_models(today)
            if m.status == LedgerEntryStatus.PENDING.value
        ]
        entries = self._observe(models, today)
        count = sum(1 for e in entries if e.status is LedgerEntryStatus.OVERDUE)
        logger.info(
            "ledger_overdue_sweep_completed",
            extra={"as_of": today.isoformat(), "scanned": len(models), "marked": count},
        )
        return count

    # =========================================================================
    # Mutations
    # =========================================================================

    def _mutate(
        self,
        entry_id: UUID,
        actor_id: UUID,
        operation: Callable[[LedgerEntry], Any],
        event: str,
        expected_version: int | None = None,
    ) -> LedgerEntry:
        with LogContext.bind(entry_id=entry_id, actor_id=actor_id):
            try:
                model = self._load(entry_id, for_update=True)
                entry = model.to_domain()
                entry.check_version(expected_version)
                entry.refresh_overdue_status(self._clock.today())
                operation(entry)
                entry.touch(self._clock.now(), actor_id)
                model.update_from_domain(entry)
                self._session.commit()
            except StaleDataError as e:
                self._session.rollback()
                raise ConcurrencyConflictError("LedgerEntry", entry_id, expected_version) from e
            except Exception:
                self._session.rollback()
                raise

            logger.info(
                event,
                extra={
                    "folio": entry.folio,
                    "status": entry.status.value,
                    "balance": str(entry.balance),
                    "version": entry.version,
                },
            )
            return entry

    def cancel(
        self,
        entry_id: UUID,
        *,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> LedgerEntry:
        """Pending/Overdue -> Cancelled; a Paid entry is rejected."""
        return self._mutate(
            entry_id, actor_id, LedgerEntry.cancel, "ledger_entry_cancelled", expected_version
        )

    def delete(self, entry_id: UUID, *, actor_id: UUID) -> LedgerEntry:
        """Soft-delete a Pending or Cancelled entry."""
        now = self._clock.now()
        return self._mutate(
            entry_id, actor_id, lambda e: e.mark_deleted(now, actor_id), "ledger_entry_deleted"
        )
