"""
Sale Module Service - transactional shell around the Sale aggregate.

Thin glue layer that:
1. Loads the sale row and rebuilds the aggregate
2. Calls the aggregate operation (all rules live in ``models.py``)
3. Writes the aggregate back under the optimistic version lock
4. Allocates folios through the kernel ``SequenceService``

This service owns the transaction boundary: it commits on success and
rolls back on failure.  Soft-deleted sales are invisible to every lookup.

Usage:
    service = SaleService(session, clock=clock)
    sale = service.create_sale(customer_id, actor_id=actor_id)
    service.add_line_item(sale.id, product_id, 2, "50.00", actor_id=actor_id)
    service.confirm(sale.id, actor_id=actor_id)
"""

from __future__ import annotations

from datetime import date
from typing import Any, Callable, Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from sales_config import SalesConfig, get_active_config
from sales_kernel.domain.clock import Clock, SystemClock
from sales_kernel.domain.values import Money
from sales_kernel.exceptions import ConcurrencyConflictError, EntityNotFoundError
from sales_kernel.logging_config import LogContext, get_logger
from sales_kernel.services.sequence_service import SequenceService
from sales_modules.sales.models import LineItem, Sale, SaleStatus, _coerce_status
from sales_modules.sales.orm import SaleModel

logger = get_logger("modules.sales.service")


class SaleService:
    """
    Orchestrates sale operations.

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
    # Lookups
    # =========================================================================

    def _load(self, sale_id: UUID, for_update: bool = False) -> SaleModel:
        stmt = select(SaleModel).where(
            SaleModel.id == sale_id,
            SaleModel.deleted_at.is_(None),
        )
        if for_update:
            stmt = stmt.with_for_update()
        model = self._session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            raise EntityNotFoundError("Sale", sale_id)
        return model

    def get_sale(self, sale_id: UUID) -> Sale:
        return self._load(sale_id).to_domain()

    def get_by_folio(self, folio: str) -> Sale:
        model = self._session.execute(
            select(SaleModel).where(
                SaleModel.folio == folio,
                SaleModel.deleted_at.is_(None),
            )
        ).scalar_one_or_none()
        if model is None:
            raise EntityNotFoundError("Sale", folio)
        return model.to_domain()

    def list_by_customer(self, customer_id: UUID) -> list[Sale]:
        rows = self._session.execute(
            select(SaleModel)
            .where(
                SaleModel.customer_id == customer_id,
                SaleModel.deleted_at.is_(None),
            )
            .order_by(SaleModel.sale_date, SaleModel.folio)
        ).scalars()
        return [row.to_domain() for row in rows]

    def list_by_status(self, status: SaleStatus | str) -> list[Sale]:
        """Raises ValidationError for an unknown status."""
        rows = self._session.execute(
            select(SaleModel)
            .where(
                SaleModel.status == _coerce_status(status).value,
                SaleModel.deleted_at.is_(None),
            )
            .order_by(SaleModel.sale_date, SaleModel.folio)
        ).scalars()
        return [row.to_domain() for row in rows]

    # =========================================================================
    # Creation
    # =========================================================================

    def create_sale(
        self,
        customer_id: UUID,
        sale_date: date | None = None,
        line_items: Iterable[LineItem] = (),
        *,
        discount: Money | Any = None,
        tax: Money | Any = None,
        notes: str | None = None,
        actor_id: UUID,
    ) -> Sale:
        """Create a Draft sale with a freshly allocated ``VTA`` folio."""
        now = self._clock.now()
        sale_date = sale_date or self._clock.today()
        try:
            sale = Sale.create(
                customer_id,
                sale_date,
                line_items,
                discount=discount,
                tax=tax,
                notes=notes,
                created_at=now,
                actor_id=actor_id,
            )
            folios = self._config.folios
            sale.folio = self._sequences.next_folio(
                folios.sale_prefix, sale_date, folios.sequence_width
            )
            self._session.add(SaleModel.from_domain(sale))
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        logger.info(
            "sale_created",
            extra={
                "sale_id": str(sale.id),
                "folio": sale.folio,
                "customer_id": str(customer_id),
                "lines": sale.line_count,
                "total": str(sale.total),
            },
        )
        return sale

    # =========================================================================
    # Mutations
    # =========================================================================

    def _mutate(
        self,
        sale_id: UUID,
        actor_id: UUID,
        operation: Callable[[Sale], Any],
        event: str,
        expected_version: int | None = None,
    ) -> Sale:
        with LogContext.bind(sale_id=sale_id, actor_id=actor_id):
            try:
                model = self._load(sale_id, for_update=True)
                sale = model.to_domain()
                sale.check_version(expected_version)
                operation(sale)
                sale.touch(self._clock.now(), actor_id)
                model.update_from_domain(sale)
                self._session.commit()
            except StaleDataError as e:
                self._session.rollback()
                raise ConcurrencyConflictError("Sale", sale_id, expected_version) from e
            except Exception:
                self._session.rollback()
                raise

            logger.info(
                event,
                extra={
                    "folio": sale.folio,
                    "status": sale.status.value,
                    "version": sale.version,
                    "total": str(sale.total),
                },
            )
            return sale

    def add_line_item(
        self,
        sale_id: UUID,
        product_id: UUID,
        quantity: int,
        unit_price: Money | Any,
        discount: Money | Any = 0,
        description: str | None = None,
        *,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> Sale:
        item = LineItem(
            product_id=product_id,
            quantity=quantity,
            unit_price=unit_price,
            discount=discount,
            description=description,
        )
        return self._mutate(
            sale_id, actor_id, lambda s: s.add_line_item(item),
            "sale_line_item_added", expected_version,
        )

    def remove_line_item(
        self,
        sale_id: UUID,
        line_item_id: UUID,
        *,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> Sale:
        return self._mutate(
            sale_id, actor_id, lambda s: s.remove_line_item(line_item_id),
            "sale_line_item_removed", expected_version,
        )

    def update_adjustments(
        self,
        sale_id: UUID,
        *,
        discount: Money | Any = None,
        tax: Money | Any = None,
        notes: str | None = None,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> Sale:
        return self._mutate(
            sale_id,
            actor_id,
            lambda s: s.update_adjustments(discount=discount, tax=tax, notes=notes),
            "sale_adjustments_updated",
            expected_version,
        )

    def confirm(self, sale_id: UUID, *, actor_id: UUID, expected_version: int | None = None) -> Sale:
        return self._mutate(sale_id, actor_id, Sale.confirm, "sale_confirmed", expected_version)

    def mark_shipped(self, sale_id: UUID, *, actor_id: UUID, expected_version: int | None = None) -> Sale:
        return self._mutate(sale_id, actor_id, Sale.mark_shipped, "sale_shipped", expected_version)

    def mark_completed(self, sale_id: UUID, *, actor_id: UUID, expected_version: int | None = None) -> Sale:
        return self._mutate(sale_id, actor_id, Sale.mark_completed, "sale_completed", expected_version)

    def cancel(self, sale_id: UUID, *, actor_id: UUID, expected_version: int | None = None) -> Sale:
        return self._mutate(sale_id, actor_id, Sale.cancel, "sale_cancelled", expected_version)

    def change_state(
        self,
        sale_id: UUID,
        target: SaleStatus | str,
        *,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> Sale:
        return self._mutate(
            sale_id, actor_id, lambda s: s.change_state(target),
            "sale_state_changed", expected_version,
        )

    def delete(self, sale_id: UUID, *, actor_id: UUID) -> Sale:
        """Soft-delete a Draft or Cancelled sale."""
        now = self._clock.now()
        return self._mutate(
            sale_id, actor_id, lambda s: s.mark_deleted(now, actor_id), "sale_deleted",
        )
