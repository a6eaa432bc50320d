"""
Billing services.

Services:
    EnrollmentService: Creates enrollments with their payment schedule
    InvoiceOrchestrator: Checkout intents, per-row invoicing and the daily sweep
    SettlementReconciler: Paid, failed and refunded outcomes
    AccessGate: Payment-health check for course content
    ScheduleManager: Staff adjustments, pause/resume and retries
    ProcessorLedgerReconciler: Periodic convergence onto Stripe's records
    CredentialStore: Per-tenant processor credentials
"""

from billing.services.access_gate import AccessDecision, AccessGate, is_overdue
from billing.services.credentials import CredentialStore, ProcessorCredential
from billing.services.enrollment_service import EnrollmentService
from billing.services.invoice_orchestrator import (
    IntentResult,
    InvoiceCreationResult,
    InvoiceOrchestrator,
    SweepReport,
)
from billing.services.ledger_reconciliation import (
    ProcessorLedgerReconciler,
    ReconciliationReport,
)
from billing.services.schedule_manager import ScheduleManager
from billing.services.settlement_reconciler import RefundOutcome, SettlementReconciler

__all__ = [
    "AccessDecision",
    "AccessGate",
    "CredentialStore",
    "EnrollmentService",
    "IntentResult",
    "InvoiceCreationResult",
    "InvoiceOrchestrator",
    "ProcessorCredential",
    "ProcessorLedgerReconciler",
    "ReconciliationReport",
    "RefundOutcome",
    "ScheduleManager",
    "SettlementReconciler",
    "SweepReport",
    "is_overdue",
]
