"""
Billing services layer.

- Views/APIs: request parsing, auth, response mapping
- Services: workflow orchestration, reconciliation, document rendering
- LedgerStore: persistence
"""

from .invoice_service import InvoiceService, WorkflowResult
from .pdf_service import PDFService
from .reconciliation_service import PaymentEventReconciler, ReconciliationOutcome

__all__ = [
    "InvoiceService",
    "WorkflowResult",
    "PDFService",
    "PaymentEventReconciler",
    "ReconciliationOutcome",
]
