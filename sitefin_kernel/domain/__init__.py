"""
sitefin_kernel.domain -- Pure types, clock and value helpers.

ZERO I/O apart from ``SystemClock``.
"""

from sitefin_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from sitefin_kernel.domain.types import (
    Alert,
    AlertPriority,
    AlertStats,
    AlertType,
    BlockedBy,
    BlockStatus,
    BreakdownLine,
    ClientSnapshot,
    ConversionCheck,
    ConversionResult,
    ConversionSummary,
    Expense,
    ExpenseStatus,
    HealthIndicator,
    Invoice,
    InvoiceDraft,
    InvoiceNumbering,
    InvoiceStatus,
    OverdueAlertScope,
    PaymentMethod,
    PaymentPlanEntry,
    PhaseBlock,
    ProjectPlan,
    Quote,
    QuotePhase,
    QuoteStatus,
    StartCheck,
    TreasuryBreakdown,
    TreasuryRecord,
    UnblockAuditEntry,
    VerificationInputs,
)

__all__ = [
    "Alert",
    "AlertPriority",
    "AlertStats",
    "AlertType",
    "BlockStatus",
    "BlockedBy",
    "BreakdownLine",
    "ClientSnapshot",
    "Clock",
    "ConversionCheck",
    "ConversionResult",
    "ConversionSummary",
    "DeterministicClock",
    "Expense",
    "ExpenseStatus",
    "HealthIndicator",
    "Invoice",
    "InvoiceDraft",
    "InvoiceNumbering",
    "InvoiceStatus",
    "OverdueAlertScope",
    "PaymentMethod",
    "PaymentPlanEntry",
    "PhaseBlock",
    "ProjectPlan",
    "Quote",
    "QuotePhase",
    "QuoteStatus",
    "StartCheck",
    "SystemClock",
    "TreasuryBreakdown",
    "TreasuryRecord",
    "UnblockAuditEntry",
    "VerificationInputs",
]
