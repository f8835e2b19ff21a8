"""
InvoiceLedger -- invoice lifecycle and numbering.

Responsibility:
    Creates invoices with sequential display numbers, drives them through
    ``draft -> sent -> collected`` (with ``cancelled`` and the sweep-only
    ``overdue`` branches) and, once a collection is persisted, runs the
    collection hooks that keep treasury, phase gates and alerts consistent.

Architecture position:
    Services.  Owns ``InvoiceRepository`` writes; nothing else mutates the
    invoice collection.

Invariants enforced:
    - ``total == subtotal + tax`` at creation.
    - Display numbers are unique within the ledger; the sequence follows the
      configured numbering policy.
    - Lifecycle transitions follow ``_ALLOWED_TRANSITIONS``; ``set_status``
      is the single unchecked escape hatch for sweeps and corrections.
    - A collection is persisted before any hook runs; hook failures never
      reach the caller.

Failure modes:
    - ``InvoiceNotFoundError`` for an unknown invoice id.
    - ``InvalidInvoiceTransitionError`` for a disallowed transition.
    - ``InvoiceAmountMismatchError`` for inconsistent amounts.
    - ``InvalidPhaseNumberError`` for a phase number below 1.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

from sitefin_config.schema import FinanceRules
from sitefin_kernel.domain.clock import Clock
from sitefin_kernel.domain.types import (
    ClientSnapshot,
    Invoice,
    InvoiceDraft,
    InvoiceNumbering,
    InvoiceStatus,
    PaymentMethod,
)
from sitefin_kernel.domain.values import normalize_timestamp, round_money, to_decimal
from sitefin_kernel.exceptions import (
    InvalidInvoiceTransitionError,
    InvalidPhaseNumberError,
    InvoiceAmountMismatchError,
)
from sitefin_kernel.logging_config import LogContext, get_logger
from sitefin_kernel.repositories.invoices import InvoiceRepository
from sitefin_services.hooks import HookOutcome, PostCommitHooks

logger = get_logger("services.invoice_ledger")

_ALLOWED_TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.DRAFT: frozenset({InvoiceStatus.SENT, InvoiceStatus.CANCELLED}),
    InvoiceStatus.SENT: frozenset({
        InvoiceStatus.COLLECTED,
        InvoiceStatus.CANCELLED,
        InvoiceStatus.OVERDUE,
    }),
    InvoiceStatus.OVERDUE: frozenset({InvoiceStatus.COLLECTED, InvoiceStatus.CANCELLED}),
    InvoiceStatus.COLLECTED: frozenset(),
    InvoiceStatus.CANCELLED: frozenset(),
}


def _check_transition(invoice: Invoice, target: InvoiceStatus) -> None:
    if target not in _ALLOWED_TRANSITIONS[invoice.status]:
        raise InvalidInvoiceTransitionError(
            str(invoice.invoice_id), invoice.status.value, target.value,
        )


class InvoiceLedger:
    """
    Invoice lifecycle service.

    Contract:
        Every mutating call returns the invoice exactly as persisted.
        ``collect`` additionally runs ``collection_hooks`` with the
        collected invoice.

    Guarantees:
        - Numbering and transition checks run under the invoice
          collection lock, against the collection being written.
        - Money is rounded with ``round_money`` only.

    Non-goals:
        - Does NOT derive treasury or alerts itself; that is the job of the
          collection hooks registered by the composition root.
    """

    def __init__(
        self,
        invoices: InvoiceRepository,
        clock: Clock,
        rules: FinanceRules,
        collection_hooks: PostCommitHooks | None = None,
    ):
        self._invoices = invoices
        self._clock = clock
        self._rules = rules
        self.collection_hooks = collection_hooks or PostCommitHooks("invoice_collected")
        self.last_hook_outcomes: list[HookOutcome] = []

    # =========================================================================
    # Creation
    # =========================================================================

    def create(self, draft: InvoiceDraft, actor_id: str) -> Invoice:
        """Persist a new draft invoice with the next display number."""
        if draft.total != draft.subtotal + draft.tax:
            raise InvoiceAmountMismatchError(
                str(draft.subtotal), str(draft.tax), str(draft.total),
            )
        if draft.linked_phase is not None and draft.linked_phase < 1:
            raise InvalidPhaseNumberError(draft.linked_phase)

        now = self._clock.now()

        def _build(existing: list[Invoice]) -> Invoice:
            return Invoice(
                invoice_id=uuid4(),
                number=self._next_number(existing, now),
                project_id=draft.project_id,
                quote_id=draft.quote_id,
                client=draft.client,
                subtotal=draft.subtotal,
                tax=draft.tax,
                total=draft.total,
                currency=draft.currency or self._rules.currency,
                issued_at=normalize_timestamp(draft.issued_at),
                due_at=normalize_timestamp(draft.due_at),
                status=InvoiceStatus.DRAFT,
                created_by=actor_id,
                created_at=now,
                updated_at=now,
                linked_phase=draft.linked_phase,
                payment_plan_number=draft.payment_plan_number,
                concept=draft.concept,
            )

        invoice = self._invoices.append_with(_build)
        logger.info(
            "invoice_created",
            extra={
                "invoice_id": str(invoice.invoice_id),
                "invoice_number": invoice.number,
                "project_id": invoice.project_id,
                "total": str(invoice.total),
                "linked_phase": invoice.linked_phase,
            },
        )
        return invoice

    def generate_for_phase(
        self,
        project_id: str,
        quote_id: str,
        phase_number: int,
        phase_amount: Decimal,
        client: ClientSnapshot,
        actor_id: str,
    ) -> Invoice:
        """
        Draft invoice for a completed phase.

        Tax at the configured rate, due after the configured payment terms,
        linked to the phase and to the payment-plan entry of the same number.
        """
        if phase_number < 1:
            raise InvalidPhaseNumberError(phase_number)

        subtotal = round_money(to_decimal(phase_amount))
        tax = round_money(subtotal * self._rules.tax_rate)
        issued_at = self._clock.now()

        draft = InvoiceDraft(
            project_id=project_id,
            quote_id=quote_id,
            client=client,
            subtotal=subtotal,
            tax=tax,
            total=subtotal + tax,
            issued_at=issued_at,
            due_at=issued_at + timedelta(days=self._rules.payment_terms_days),
            linked_phase=phase_number,
            payment_plan_number=phase_number,
            concept=f"Phase {phase_number}",
        )
        return self.create(draft, actor_id)

    def _next_number(self, existing: list[Invoice], now: datetime) -> str:
        year = now.year
        if self._rules.numbering == InvoiceNumbering.YEARLY:
            seq = sum(1 for i in existing if i.created_at.year == year) + 1
        else:
            seq = len(existing) + 1

        # Cleanup can remove invoices, so a count can land on a used number.
        taken = {i.number for i in existing}
        number = self._format_number(year, seq)
        while number in taken:
            seq += 1
            number = self._format_number(year, seq)
        return number

    def _format_number(self, year: int, seq: int) -> str:
        return f"{self._rules.invoice_prefix}-{year}-{seq:0{self._rules.invoice_digits}d}"

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def send(self, invoice_id: UUID) -> Invoice:
        """draft -> sent."""
        now = self._clock.now()

        def _send(invoice: Invoice) -> Invoice:
            _check_transition(invoice, InvoiceStatus.SENT)
            return replace(invoice, status=InvoiceStatus.SENT, sent_at=now, updated_at=now)

        invoice = self._invoices.update(invoice_id, _send)
        logger.info(
            "invoice_sent",
            extra={"invoice_id": str(invoice_id), "invoice_number": invoice.number},
        )
        return invoice

    def collect(
        self,
        invoice_id: UUID,
        collected_on: date | datetime,
        method: PaymentMethod,
        reference: str | None = None,
    ) -> Invoice:
        """
        sent | overdue -> collected, then run the collection hooks.

        The returned invoice is the persisted collected invoice regardless
        of hook outcomes; see ``last_hook_outcomes`` for those.
        """
        now = self._clock.now()
        collected_at = normalize_timestamp(collected_on)

        def _collect(invoice: Invoice) -> Invoice:
            _check_transition(invoice, InvoiceStatus.COLLECTED)
            return replace(
                invoice,
                status=InvoiceStatus.COLLECTED,
                collected_at=collected_at,
                payment_method=PaymentMethod(method),
                payment_reference=reference,
                updated_at=now,
            )

        invoice = self._invoices.update(invoice_id, _collect)
        with LogContext.bind(project_id=invoice.project_id, trigger="invoice_collected"):
            logger.info(
                "invoice_collected",
                extra={
                    "invoice_id": str(invoice_id),
                    "invoice_number": invoice.number,
                    "total": str(invoice.total),
                    "payment_method": invoice.payment_method,
                },
            )
            self.last_hook_outcomes = self.collection_hooks.run(invoice)
        return invoice

    def cancel(self, invoice_id: UUID) -> Invoice:
        """draft | sent | overdue -> cancelled."""
        now = self._clock.now()

        def _cancel(invoice: Invoice) -> Invoice:
            _check_transition(invoice, InvoiceStatus.CANCELLED)
            return replace(invoice, status=InvoiceStatus.CANCELLED, updated_at=now)

        invoice = self._invoices.update(invoice_id, _cancel)
        logger.info("invoice_cancelled", extra={"invoice_id": str(invoice_id)})
        return invoice

    def set_status(self, invoice_id: UUID, status: InvoiceStatus) -> Invoice:
        """Unchecked status change for sweeps and manual corrections."""
        now = self._clock.now()
        invoice = self._invoices.update(
            invoice_id,
            lambda current: replace(current, status=InvoiceStatus(status), updated_at=now),
        )
        logger.warning(
            "invoice_status_overridden",
            extra={"invoice_id": str(invoice_id), "status": invoice.status},
        )
        return invoice

    def mark_overdue(self, as_of: datetime | None = None) -> list[Invoice]:
        """Persist ``overdue`` for every sent invoice past its due date."""
        cutoff = normalize_timestamp(as_of) if as_of else self._clock.now()
        now = self._clock.now()

        changed = self._invoices.update_where(
            lambda i: i.status == InvoiceStatus.SENT and i.due_at < cutoff,
            lambda i: replace(i, status=InvoiceStatus.OVERDUE, updated_at=now),
        )
        if changed:
            logger.info(
                "invoices_marked_overdue",
                extra={
                    "count": len(changed),
                    "invoice_numbers": [i.number for i in changed],
                },
            )
        return changed

    # =========================================================================
    # Queries
    # =========================================================================

    def all(self) -> list[Invoice]:
        return self._invoices.all()

    def for_project(self, project_id: str) -> list[Invoice]:
        return self._invoices.for_project(project_id)

    def get(self, invoice_id: UUID) -> Invoice | None:
        return self._invoices.get(invoice_id)

    def remove_for_project(self, project_id: str) -> int:
        """Project cleanup: drop every invoice of the project."""
        removed = self._invoices.remove_for_project(project_id)
        logger.warning(
            "project_invoices_removed",
            extra={"project_id": project_id, "count": removed},
        )
        return removed
