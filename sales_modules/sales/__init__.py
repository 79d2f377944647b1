"""
Sales Module.

Handles sales, their line items, totals and the sale lifecycle.
"""

from sales_modules.sales.models import LineItem, Sale, SaleStatus
from sales_modules.sales.service import SaleService
from sales_modules.sales.workflows import SALE_WORKFLOW

__all__ = [
    "LineItem",
    "Sale",
    "SaleStatus",
    "SaleService",
    "SALE_WORKFLOW",
]
