"""
Receivables Module.

Handles ledger entries: amounts owed to us (receivable) or by us
(payable), their balances and the overdue rule.
"""

from sales_modules.receivables.models import (
    LedgerDirection,
    LedgerEntry,
    LedgerEntryStatus,
)
from sales_modules.receivables.service import LedgerEntryService
from sales_modules.receivables.workflows import LEDGER_ENTRY_WORKFLOW

__all__ = [
    "LedgerDirection",
    "LedgerEntry",
    "LedgerEntryStatus",
    "LedgerEntryService",
    "LEDGER_ENTRY_WORKFLOW",
]
