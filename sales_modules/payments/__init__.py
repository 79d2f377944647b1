"""
Payments Module.

Handles payments received against sales and their lifecycle.
Completion and refund move the ledger through ``sales_services``.
"""

from sales_modules.payments.models import Payment, PaymentMethod, PaymentStatus
from sales_modules.payments.service import PaymentService
from sales_modules.payments.workflows import PAYMENT_WORKFLOW

__all__ = [
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
    "PaymentService",
    "PAYMENT_WORKFLOW",
]
