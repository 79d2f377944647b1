"""
sales_services -- Package init and public API.

Responsibility:
    Cross-aggregate orchestration.  ``ReconciliationCoordinator`` keeps a
    payment's state and its ledger entry's balance in agreement;
    ``ReconciliationService`` runs it inside a database transaction.

Architecture position:
    Services -- may import sales_modules and sales_kernel.
        sales_modules/ -> sales_services/ (only PaymentService, lazily)
        sales_kernel/  -> sales_services/ (FORBIDDEN)
"""

from sales_services.reconciliation_coordinator import (
    ReconciliationCoordinator,
    ReconciliationResult,
)
from sales_services.reconciliation_service import (
    ReconciliationOutcome,
    ReconciliationService,
)

__all__ = [
    "ReconciliationCoordinator",
    "ReconciliationOutcome",
    "ReconciliationResult",
    "ReconciliationService",
]
