"""
sitefin_kernel.domain.types -- Pure frozen dataclasses for the consistency engine.

ZERO I/O.  Every entity is an immutable snapshot; services produce updated
copies with ``dataclasses.replace`` and hand them to a repository.

Invariants enforced:
    - All DTOs are frozen dataclasses.
    - All monetary fields are ``Decimal`` -- NEVER ``float``.
    - All timestamps are timezone-aware UTC ``datetime`` values (normalized
      at the repository boundary).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


# =============================================================================
# Status enums
# =============================================================================


class InvoiceStatus(str, Enum):
    """Invoice lifecycle status."""

    DRAFT = "draft"
    SENT = "sent"
    COLLECTED = "collected"
    OVERDUE = "overdue"  # Only set by the explicit overdue sweep
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    TRANSFER = "transfer"
    CASH = "cash"
    CHEQUE = "cheque"
    CARD = "card"


class ExpenseStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


class BlockedBy(str, Enum):
    """Who placed a phase block."""

    SYSTEM = "system"
    USER = "user"


class HealthIndicator(str, Enum):
    """Treasury health against the next phase cost."""

    GREEN = "green"  # > 50%
    YELLOW = "yellow"  # > 20% and <= 50%
    RED = "red"  # <= 20%


class AlertType(str, Enum):
    TREASURY_LOW = "treasury_low"
    PENDING_COLLECTION = "pending_collection"
    COST_OVERRUN = "cost_overrun"
    OVERDUE_PAYMENT = "overdue_payment"
    PHASE_BLOCKED = "phase_blocked"
    OVERDUE_INVOICE = "overdue_invoice"


class AlertPriority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Sort rank, most urgent first."""
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    AlertPriority.CRITICAL: 0,
    AlertPriority.HIGH: 1,
    AlertPriority.MEDIUM: 2,
    AlertPriority.LOW: 3,
}


class QuoteStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    APPROVED = "approved"
    REJECTED = "rejected"
    CONVERTED = "converted"


class InvoiceNumbering(str, Enum):
    """Sequence policy for invoice display numbers."""

    GLOBAL = "global"  # seq = count of all invoices + 1
    YEARLY = "yearly"  # seq = count of invoices issued in the same year + 1


class OverdueAlertScope(str, Enum):
    """Deduplication key for overdue-invoice alerts."""

    PROJECT = "project"  # one alert per (project, type); last invoice wins
    INVOICE = "invoice"  # one alert per (project, type, invoice)


# =============================================================================
# Invoice DTOs
# =============================================================================


@dataclass(frozen=True)
class ClientSnapshot:
    """Client details frozen onto the invoice at issue time."""

    client_id: str
    name: str
    email: str
    company: str | None = None
    tax_id: str | None = None
    address: str | None = None


@dataclass(frozen=True)
class InvoiceDraft:
    """Caller-supplied fields for a new invoice.

    ``currency`` defaults to the configured ledger currency when None.
    """

    project_id: str
    quote_id: str
    client: ClientSnapshot
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    issued_at: datetime
    due_at: datetime
    currency: str | None = None
    linked_phase: int | None = None
    payment_plan_number: int | None = None
    concept: str | None = None


@dataclass(frozen=True)
class Invoice:
    """Immutable snapshot of an invoice."""

    invoice_id: UUID
    number: str
    project_id: str
    quote_id: str
    client: ClientSnapshot
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    currency: str
    issued_at: datetime
    due_at: datetime
    status: InvoiceStatus
    created_by: str
    created_at: datetime
    updated_at: datetime
    linked_phase: int | None = None
    payment_plan_number: int | None = None
    concept: str | None = None
    sent_at: datetime | None = None
    collected_at: datetime | None = None
    payment_method: PaymentMethod | None = None
    payment_reference: str | None = None

    @property
    def is_open(self) -> bool:
        """Still expecting payment (neither collected nor cancelled)."""
        return self.status not in (InvoiceStatus.COLLECTED, InvoiceStatus.CANCELLED)


# =============================================================================
# Treasury DTOs
# =============================================================================


@dataclass(frozen=True)
class TreasuryRecord:
    """Per-project treasury snapshot; always a full recomputation."""

    project_id: str
    collected_total: Decimal
    paid_expenses_total: Decimal
    balance: Decimal
    computed_at: datetime


@dataclass(frozen=True)
class BreakdownLine:
    concept: str
    amount: Decimal
    date: datetime


@dataclass(frozen=True)
class TreasuryBreakdown:
    """Display projection of the inputs behind a treasury balance."""

    project_id: str
    collections: tuple[BreakdownLine, ...] = ()
    paid_expenses: tuple[BreakdownLine, ...] = ()


# =============================================================================
# Phase gate DTOs
# =============================================================================


@dataclass(frozen=True)
class PhaseBlock:
    """Block record for (project, phase).  Unblocking keeps the record."""

    project_id: str
    phase_number: int
    blocked: bool
    reason: str | None = None
    blocked_at: datetime | None = None
    blocked_by: BlockedBy = BlockedBy.SYSTEM
    unblocked_at: datetime | None = None
    forceable: bool = True


@dataclass(frozen=True)
class UnblockAuditEntry:
    """Append-only record of a manual/forced unblock."""

    entry_id: UUID
    project_id: str
    phase_number: int
    user: str
    recorded_at: datetime
    reason: str
    forced: bool


@dataclass(frozen=True)
class StartCheck:
    """Answer to "may this phase start?"."""

    startable: bool
    reason: str | None = None


@dataclass(frozen=True)
class BlockStatus:
    blocked: bool
    reason: str | None = None
    forceable: bool = False


# =============================================================================
# Alert DTOs
# =============================================================================


@dataclass(frozen=True)
class Alert:
    """Deduplicated, resolvable financial alert."""

    alert_id: UUID
    project_id: str
    alert_type: AlertType
    priority: AlertPriority
    title: str
    message: str
    created_at: datetime
    recommended_action: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    resolved: bool = False
    resolution_note: str | None = None
    resolved_by: str | None = None
    resolved_at: datetime | None = None


@dataclass(frozen=True)
class AlertStats:
    """Counts over unresolved alerts."""

    total: int
    by_priority: dict[AlertPriority, int]
    by_type: dict[AlertType, int]


# =============================================================================
# Collaborator DTOs
# =============================================================================


@dataclass(frozen=True)
class Expense:
    """Expense record as exposed by the expense collaborator."""

    expense_id: UUID
    project_id: str
    amount: Decimal
    status: ExpenseStatus
    concept: str | None = None
    paid_at: datetime | None = None


@dataclass(frozen=True)
class ProjectPlan:
    """Phase costs and budget the verification cascade reads."""

    project_id: str
    phase_costs: dict[int, Decimal] = field(default_factory=dict)
    total_budget: Decimal | None = None
    active: bool = True

    def cost_of_phase(self, phase_number: int) -> Decimal:
        return self.phase_costs.get(phase_number, Decimal("0"))


@dataclass(frozen=True)
class VerificationInputs:
    """Inputs for one run of all alert rules.  None skips the rule."""

    next_phase_cost: Decimal | None = None
    current_phase: int | None = None
    phase_progress: Decimal | None = None
    total_budget: Decimal | None = None
    actual_costs: Decimal | None = None


# =============================================================================
# Quote conversion DTOs
# =============================================================================


@dataclass(frozen=True)
class PaymentPlanEntry:
    number: int
    description: str
    amount: Decimal


@dataclass(frozen=True)
class QuotePhase:
    number: int
    name: str
    amount: Decimal


@dataclass(frozen=True)
class Quote:
    """Approved estimate supplied by the quote collaborator."""

    quote_id: str
    number: str
    name: str
    status: QuoteStatus
    client: ClientSnapshot
    total: Decimal
    currency: str = "EUR"
    payment_plan: tuple[PaymentPlanEntry, ...] = ()
    phases: tuple[QuotePhase, ...] = ()
    converted_project_id: str | None = None


@dataclass(frozen=True)
class ConversionCheck:
    convertible: bool
    reason: str | None = None


@dataclass(frozen=True)
class ConversionSummary:
    project_name: str
    client_name: str
    total: Decimal
    advance_amount: Decimal
    advance_percent: Decimal
    phase_count: int
    payment_count: int


@dataclass(frozen=True)
class ConversionResult:
    project_id: str
    invoice: Invoice
    message: str
