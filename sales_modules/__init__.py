"""
Sales Modules.

Aggregates of the sale-to-cash flow, each a thin layer over the kernel.
Each module contains:
- Domain models (the nouns and their rules)
- Workflows (state machines as transition tables)
- ORM mapping
- Service (transaction boundary)

Modules:
- Sales: Sales and their line items
- Receivables: Ledger entries (receivable/payable) and overdue tracking
- Payments: Payments against sales

Balance movement between payments and ledger entries lives in
``sales_services``.
"""

from sales_modules import payments, receivables, sales

__all__ = [
    "sales",
    "receivables",
    "payments",
]
