"""Kernel services (imperative shell infrastructure)."""

from sales_kernel.services.sequence_service import SequenceService, format_folio

__all__ = ["SequenceService", "format_folio"]
