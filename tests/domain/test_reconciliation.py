"""
Tests for ReconciliationCoordinator (pure, no database).

Walks the reference scenarios:
- B: two partial payments settle an entry
- C: an overpayment is rejected and leaves both aggregates untouched
- D: a refund reopens a settled entry
plus reference matching and payment-state preconditions.
"""

import pytest
from datetime import date
from uuid import uuid4

from sales_kernel.domain.values import Money
from sales_kernel.exceptions import (
    ExceedsBalanceError,
    InvalidStateError,
    ReferenceMismatchError,
    ValidationError,
)
from sales_modules.payments.models import Payment, PaymentStatus
from sales_modules.receivables.models import SALE_REFERENCE, LedgerEntry, LedgerEntryStatus
from sales_services.reconciliation_coordinator import (
    APPLICATION,
    REVERSAL,
    ReconciliationCoordinator,
)

TODAY = date(2024, 3, 20)


@pytest.fixture
def coordinator():
    return ReconciliationCoordinator()


@pytest.fixture
def sale_id():
    return uuid4()


@pytest.fixture
def entry(sale_id):
    return LedgerEntry.open(
        "receivable",
        SALE_REFERENCE,
        sale_id,
        uuid4(),
        "128.00",
        date(2024, 3, 15),
        date(2024, 4, 14),
    )


def _payment(sale_id, amount):
    return Payment.create(sale_id, "cash", amount, TODAY)


class TestApplyAndReverse:

    def test_scenario_b_two_payments_settle(self, coordinator, entry, sale_id):
        first = _payment(sale_id, "100.00")
        second = _payment(sale_id, "28.00")

        result = coordinator.complete_payment(first, entry, TODAY)
        assert result.kind == APPLICATION
        assert result.balance_before == Money.of("128.00")
        assert result.balance_after == Money.of("28.00")
        assert entry.status is LedgerEntryStatus.PENDING

        coordinator.complete_payment(second, entry, TODAY)
        assert entry.balance.is_zero
        assert entry.status is LedgerEntryStatus.PAID
        assert first.status is second.status is PaymentStatus.COMPLETED

    def test_scenario_c_overpayment_is_all_or_nothing(self, coordinator, entry, sale_id):
        payment = _payment(sale_id, "200.00")
        with pytest.raises(ExceedsBalanceError):
            coordinator.complete_payment(payment, entry, TODAY)
        assert entry.balance == Money.of("128.00")
        assert entry.version == 1
        assert payment.status is PaymentStatus.PENDING
        assert payment.version == 1

    def test_overpayment_past_due_does_not_mark_overdue(self, coordinator, entry, sale_id):
        payment = _payment(sale_id, "150.00")
        with pytest.raises(ExceedsBalanceError):
            coordinator.complete_payment(payment, entry, date(2024, 5, 1))
        assert entry.status is LedgerEntryStatus.PENDING
        assert entry.version == 1

        # the caller's version is still current, so a corrected retry goes through
        retry = _payment(sale_id, "28.00")
        coordinator.complete_payment(retry, entry, date(2024, 5, 1))
        assert entry.status is LedgerEntryStatus.OVERDUE
        assert entry.version == 2

    def test_scenario_d_refund_reopens(self, coordinator, entry, sale_id):
        first = _payment(sale_id, "100.00")
        second = _payment(sale_id, "28.00")
        coordinator.complete_payment(first, entry, TODAY)
        coordinator.complete_payment(second, entry, TODAY)

        result = coordinator.refund_payment(second, entry, TODAY)
        assert result.kind == REVERSAL
        assert entry.balance == Money.of("28.00")
        assert entry.status is LedgerEntryStatus.PENDING
        assert second.status is PaymentStatus.REFUNDED

    def test_refund_of_pending_payment_leaves_entry(self, coordinator, entry, sale_id):
        payment = _payment(sale_id, "28.00")
        with pytest.raises(InvalidStateError):
            coordinator.refund_payment(payment, entry, TODAY)
        assert entry.balance == Money.of("128.00")

    def test_apply_requires_completed(self, coordinator, entry, sale_id):
        payment = _payment(sale_id, "10.00")
        with pytest.raises(InvalidStateError):
            coordinator.apply_payment(payment, entry, TODAY)
        payment.complete()
        result = coordinator.apply_payment(payment, entry, TODAY)
        assert result.balance_after == Money.of("118.00")

    def test_reverse_requires_refunded(self, coordinator, entry, sale_id):
        payment = _payment(sale_id, "10.00")
        payment.complete()
        coordinator.apply_payment(payment, entry, TODAY)
        with pytest.raises(InvalidStateError):
            coordinator.reverse_payment(payment, entry, TODAY)
        payment.refund()
        coordinator.reverse_payment(payment, entry, TODAY)
        assert entry.balance == Money.of("128.00")

    def test_completing_twice_is_rejected(self, coordinator, entry, sale_id):
        payment = _payment(sale_id, "10.00")
        coordinator.complete_payment(payment, entry, TODAY)
        with pytest.raises(InvalidStateError):
            coordinator.complete_payment(payment, entry, TODAY)
        assert entry.balance == Money.of("118.00")


class TestReferenceMatching:

    def test_payment_for_other_sale_rejected(self, coordinator, entry):
        payment = _payment(uuid4(), "10.00")
        with pytest.raises(ReferenceMismatchError) as exc_info:
            coordinator.complete_payment(payment, entry, TODAY)
        assert isinstance(exc_info.value, ValidationError)
        assert entry.balance == Money.of("128.00")
        assert payment.status is PaymentStatus.PENDING

    def test_non_sale_reference_rejected(self, coordinator, sale_id):
        entry = LedgerEntry.open(
            "payable", "PURCHASE", sale_id, uuid4(), "50.00",
            date(2024, 3, 1), date(2024, 3, 31),
        )
        with pytest.raises(ReferenceMismatchError):
            coordinator.complete_payment(_payment(sale_id, "10.00"), entry, TODAY)
