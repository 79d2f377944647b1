"""
LedgerEntryService against a real database.

Covers opening entries from sales, duplicate prevention, the lazy overdue
rule on reads, the explicit overdue sweep, cancellation and deletion.
"""

import pytest
from datetime import date, timedelta
from uuid import uuid4

from sqlalchemy import select

from sales_kernel.domain.values import Money
from sales_kernel.exceptions import (
    ConcurrencyConflictError,
    DuplicateLedgerEntryError,
    EntityNotFoundError,
    InvalidStateError,
    ValidationError,
)
from sales_modules.receivables.models import LedgerDirection, LedgerEntryStatus
from sales_modules.receivables.orm import LedgerEntryModel
from sales_modules.receivables.service import LedgerEntryService
from tests.conftest import TEST_TODAY


class _LateWritingLedgerService(LedgerEntryService):
    """Runs another client's work after the duplicate check, before the insert."""

    def __init__(self, *args, before_write, **kwargs):
        super().__init__(*args, **kwargs)
        self._before_write = before_write

    def _persist_new(self, entry):
        self._before_write()
        return super()._persist_new(entry)


class TestOpenFromSale:

    def test_receivable_from_confirmed_sale(self, sale_entry, confirmed_sale):
        assert sale_entry.folio == "CXC-20240315-0001"
        assert sale_entry.direction is LedgerDirection.RECEIVABLE
        assert sale_entry.reference_type == "SALE"
        assert sale_entry.reference_id == confirmed_sale.id
        assert sale_entry.customer_id == confirmed_sale.customer_id
        assert sale_entry.amount == sale_entry.balance == Money.of("128.00")
        assert sale_entry.issue_date == TEST_TODAY
        assert sale_entry.due_date == TEST_TODAY + timedelta(days=30)
        assert sale_entry.status is LedgerEntryStatus.PENDING

    def test_credit_days_override(self, ledger_service, confirmed_sale, test_actor_id):
        entry = ledger_service.open_from_sale(
            confirmed_sale.id, credit_days=15, actor_id=test_actor_id
        )
        assert entry.due_date == date(2024, 3, 30)

    def test_second_entry_rejected(self, ledger_service, sale_entry, confirmed_sale, test_actor_id):
        with pytest.raises(DuplicateLedgerEntryError) as exc_info:
            ledger_service.open_from_sale(confirmed_sale.id, actor_id=test_actor_id)
        assert exc_info.value.existing_folio == sale_entry.folio

    def test_concurrent_open_yields_one_entry(
        self, session, other_session, deterministic_clock, config, confirmed_sale, test_actor_id
    ):
        other = LedgerEntryService(other_session, clock=deterministic_clock, config=config)
        service = _LateWritingLedgerService(
            session,
            clock=deterministic_clock,
            config=config,
            before_write=lambda: other.open_from_sale(confirmed_sale.id, actor_id=test_actor_id),
        )

        with pytest.raises(DuplicateLedgerEntryError) as exc_info:
            service.open_from_sale(confirmed_sale.id, actor_id=test_actor_id)
        assert exc_info.value.existing_folio == "CXC-20240315-0001"

        rows = session.execute(
            select(LedgerEntryModel).where(LedgerEntryModel.reference_id == confirmed_sale.id)
        ).scalars().all()
        assert len(rows) == 1

    def test_reopen_after_delete(self, ledger_service, sale_entry, confirmed_sale, test_actor_id):
        ledger_service.delete(sale_entry.id, actor_id=test_actor_id)
        entry = ledger_service.open_from_sale(confirmed_sale.id, actor_id=test_actor_id)
        assert entry.id != sale_entry.id
        assert ledger_service.find_for_sale(confirmed_sale.id).id == entry.id

    def test_draft_sale_rejected(self, ledger_service, sale_service, test_actor_id):
        draft = sale_service.create_sale(uuid4(), actor_id=test_actor_id)
        with pytest.raises(InvalidStateError) as exc_info:
            ledger_service.open_from_sale(draft.id, actor_id=test_actor_id)
        assert exc_info.value.attempted == "open_ledger_entry"

    def test_missing_sale(self, ledger_service, engine, test_actor_id):
        with pytest.raises(EntityNotFoundError):
            ledger_service.open_from_sale(uuid4(), actor_id=test_actor_id)

    def test_due_date_before_sale_date_rejected(self, ledger_service, confirmed_sale, test_actor_id):
        with pytest.raises(ValidationError):
            ledger_service.open_from_sale(
                confirmed_sale.id, due_date=date(2024, 3, 1), actor_id=test_actor_id
            )


class TestOpenEntry:

    def test_payable_uses_its_own_folio_series(self, ledger_service, engine, test_actor_id):
        entry = ledger_service.open_entry(
            LedgerDirection.PAYABLE, "PURCHASE", uuid4(), uuid4(), "75.50",
            date(2024, 3, 1), date(2024, 3, 31), actor_id=test_actor_id,
        )
        assert entry.folio == "CXP-20240301-0001"
        assert ledger_service.get_by_folio(entry.folio).amount == Money.of("75.50")

    def test_open_past_due_is_overdue(self, ledger_service, engine, test_actor_id):
        entry = ledger_service.open_entry(
            "receivable", "INVOICE", uuid4(), uuid4(), "10.00",
            date(2024, 1, 1), date(2024, 1, 31), actor_id=test_actor_id,
        )
        assert entry.status is LedgerEntryStatus.OVERDUE


class TestOverdue:

    def test_get_entry_marks_overdue_lazily(
        self, ledger_service, sale_entry, deterministic_clock, captured_logs
    ):
        deterministic_clock.set_date(sale_entry.due_date + timedelta(days=1))
        entry = ledger_service.get_entry(sale_entry.id)
        assert entry.status is LedgerEntryStatus.OVERDUE
        assert entry.version == sale_entry.version + 1
        assert any(r["message"] == "ledger_entry_overdue" for r in captured_logs())

        # persisted, so a second read changes nothing
        again = ledger_service.get_entry(sale_entry.id)
        assert again.version == entry.version

    def test_on_due_date_still_pending(self, ledger_service, sale_entry, deterministic_clock):
        deterministic_clock.set_date(sale_entry.due_date)
        assert ledger_service.get_entry(sale_entry.id).status is LedgerEntryStatus.PENDING

    def test_refresh_sweep(self, ledger_service, sale_entry, test_actor_id):
        ledger_service.open_entry(
            "receivable", "INVOICE", uuid4(), uuid4(), "10.00",
            date(2024, 3, 1), date(2024, 12, 31), actor_id=test_actor_id,
        )
        as_of = sale_entry.due_date + timedelta(days=5)
        assert ledger_service.refresh_overdue(as_of) == 1
        assert ledger_service.refresh_overdue(as_of) == 0

        overdue = ledger_service.list_overdue(as_of)
        assert [e.id for e in overdue] == [sale_entry.id]
        assert overdue[0].days_overdue(as_of) == 5

    def test_find_for_sale(self, ledger_service, sale_entry, confirmed_sale):
        assert ledger_service.find_for_sale(confirmed_sale.id).id == sale_entry.id
        assert ledger_service.find_for_sale(uuid4()) is None

    def test_list_for_customer(self, ledger_service, sale_entry):
        assert [e.id for e in ledger_service.list_for_customer(sale_entry.customer_id)] == [
            sale_entry.id
        ]


class TestCancelAndDelete:

    def test_cancel(self, ledger_service, sale_entry, test_actor_id):
        entry = ledger_service.cancel(sale_entry.id, actor_id=test_actor_id)
        assert entry.status is LedgerEntryStatus.CANCELLED
        assert ledger_service.get_entry(sale_entry.id).status is LedgerEntryStatus.CANCELLED

    def test_cancel_with_stale_version(self, ledger_service, sale_entry, deterministic_clock, test_actor_id):
        deterministic_clock.set_date(date(2024, 5, 1))
        ledger_service.get_entry(sale_entry.id)  # overdue bump -> version 2
        with pytest.raises(ConcurrencyConflictError):
            ledger_service.cancel(
                sale_entry.id, actor_id=test_actor_id, expected_version=sale_entry.version
            )

    def test_delete_pending_hides_entry(self, ledger_service, sale_entry, test_actor_id):
        ledger_service.delete(sale_entry.id, actor_id=test_actor_id)
        with pytest.raises(EntityNotFoundError):
            ledger_service.get_entry(sale_entry.id)
