"""
Tests for the Payment aggregate.

Covers creation rules, the payment state machine and soft deletion.
"""

import pytest
from datetime import date, datetime, timezone
from uuid import uuid4

from sales_kernel.domain.values import Money
from sales_kernel.exceptions import ConcurrencyConflictError, InvalidStateError, ValidationError
from sales_modules.payments.models import Payment, PaymentMethod, PaymentStatus

PAY_DATE = date(2024, 3, 20)
NOW = datetime(2024, 3, 20, 12, 0, tzinfo=timezone.utc)


def _payment(amount="100.00", method="cash") -> Payment:
    return Payment.create(uuid4(), method, amount, PAY_DATE)


class TestPaymentCreation:

    def test_created_pending(self):
        payment = _payment()
        assert payment.status is PaymentStatus.PENDING
        assert payment.method is PaymentMethod.CASH
        assert payment.amount == Money.of("100.00")
        assert payment.version == 1

    @pytest.mark.parametrize("method", list(PaymentMethod))
    def test_every_method_accepted(self, method):
        assert _payment(method=method).method is method

    def test_unknown_method_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            _payment(method="barter")
        assert exc_info.value.field == "method"

    @pytest.mark.parametrize("amount", ["0", "-10.00"])
    def test_non_positive_amount_rejected(self, amount):
        with pytest.raises(ValidationError):
            _payment(amount=amount)

    def test_sale_required(self):
        with pytest.raises(ValidationError):
            Payment.create(None, "cash", "1.00", PAY_DATE)

    def test_date_required(self):
        with pytest.raises(ValidationError):
            Payment.create(uuid4(), "cash", "1.00", None)


class TestPaymentLifecycle:

    def test_complete_then_refund(self):
        payment = _payment()
        payment.complete()
        assert payment.status is PaymentStatus.COMPLETED
        payment.refund()
        assert payment.status is PaymentStatus.REFUNDED
        assert payment.version == 3

    def test_fail(self):
        payment = _payment()
        payment.fail()
        assert payment.status is PaymentStatus.FAILED

    def test_refund_pending_rejected(self):
        payment = _payment()
        with pytest.raises(InvalidStateError) as exc_info:
            payment.refund()
        assert "pending can only transition to completed, failed" in str(exc_info.value)
        assert payment.status is PaymentStatus.PENDING

    @pytest.mark.parametrize("terminal", ["fail", "refund"])
    def test_terminal_states(self, terminal):
        payment = _payment()
        if terminal == "refund":
            payment.complete()
        getattr(payment, terminal)()
        with pytest.raises(InvalidStateError):
            payment.complete()

    def test_check_transition_does_not_mutate(self):
        payment = _payment()
        transition = payment.check_transition("completed")
        assert transition.action == "complete"
        assert payment.status is PaymentStatus.PENDING
        assert payment.version == 1

    def test_change_state_with_stale_version(self):
        payment = _payment()
        payment.complete()
        with pytest.raises(ConcurrencyConflictError):
            payment.change_state("refunded", expected_version=1)
        assert payment.status is PaymentStatus.COMPLETED

    def test_is_modifiable(self):
        payment = _payment()
        assert payment.is_modifiable
        payment.complete()
        assert not payment.is_modifiable


class TestPaymentDeletion:

    def test_delete_failed(self):
        payment = _payment()
        payment.fail()
        payment.mark_deleted(NOW)
        assert payment.is_deleted

    def test_delete_completed_rejected(self):
        payment = _payment()
        payment.complete()
        with pytest.raises(InvalidStateError):
            payment.mark_deleted(NOW)
