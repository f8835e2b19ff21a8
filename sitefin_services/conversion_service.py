"""
ConversionService -- approved quote to project, with the advance invoice.

Responsibility:
    Validates that a quote can become a project, registers the project
    plan (phase costs and budget) the verification cascade reads, and
    issues the advance-payment invoice from the quote's payment plan.

Architecture position:
    Services.  Uses ``InvoiceLedger`` for the invoice and writes
    ``ProjectPlanRepository``.  The quote itself belongs to the quote
    collaborator; marking it converted is the caller's job, using the
    returned ``ConversionResult.project_id``.

Failure modes:
    - ``QuoteNotConvertibleError`` when the quote is not approved, was
      already converted, or has no payment plan.
"""

from __future__ import annotations

from datetime import timedelta
from uuid import uuid4

from sitefin_config.schema import FinanceRules
from sitefin_kernel.domain.clock import Clock
from sitefin_kernel.domain.types import (
    ConversionCheck,
    ConversionResult,
    ConversionSummary,
    InvoiceDraft,
    PaymentPlanEntry,
    ProjectPlan,
    Quote,
    QuoteStatus,
)
from sitefin_kernel.domain.values import ZERO, percent_of, round_money
from sitefin_kernel.exceptions import QuoteNotConvertibleError
from sitefin_kernel.logging_config import LogContext, get_logger
from sitefin_kernel.repositories.project_plans import ProjectPlanRepository
from sitefin_services.invoice_ledger import InvoiceLedger

logger = get_logger("services.conversion")

_ADVANCE_KEYWORDS = ("advance", "adelanto", "anticipo")


def find_advance_entry(quote: Quote) -> PaymentPlanEntry | None:
    """Plan entry numbered 1 or described as an advance, else the first entry."""
    for entry in quote.payment_plan:
        description = entry.description.lower()
        if entry.number == 1 or any(k in description for k in _ADVANCE_KEYWORDS):
            return entry
    return quote.payment_plan[0] if quote.payment_plan else None


class ConversionService:
    def __init__(
        self,
        ledger: InvoiceLedger,
        project_plans: ProjectPlanRepository,
        clock: Clock,
        rules: FinanceRules,
    ):
        self._ledger = ledger
        self._plans = project_plans
        self._clock = clock
        self._rules = rules

    def can_convert(self, quote: Quote) -> ConversionCheck:
        if quote.status != QuoteStatus.APPROVED:
            return ConversionCheck(False, "Quote must be approved")
        if quote.converted_project_id:
            return ConversionCheck(False, "Quote was already converted to a project")
        if not quote.payment_plan:
            return ConversionCheck(False, "Quote has no payment plan")
        return ConversionCheck(True)

    def summary(self, quote: Quote) -> ConversionSummary:
        advance = find_advance_entry(quote)
        advance_amount = advance.amount if advance else ZERO
        advance_percent = (
            round_money(percent_of(advance_amount, quote.total), 1)
            if quote.total else ZERO
        )
        return ConversionSummary(
            project_name=quote.name,
            client_name=quote.client.name,
            total=quote.total,
            advance_amount=advance_amount,
            advance_percent=advance_percent,
            phase_count=len(quote.phases),
            payment_count=len(quote.payment_plan),
        )

    def convert(
        self, quote: Quote, actor_id: str, project_id: str | None = None,
    ) -> ConversionResult:
        """
        Register the project plan and issue the advance invoice.

        The advance amount is tax-exclusive; tax is added at the configured
        rate, as for phase invoices.
        """
        check = self.can_convert(quote)
        if not check.convertible:
            raise QuoteNotConvertibleError(quote.quote_id, check.reason or "")

        project_id = project_id or f"proj-{uuid4().hex[:12]}"
        advance = find_advance_entry(quote)

        with LogContext.bind(project_id=project_id, actor_id=actor_id, trigger="quote_converted"):
            self._plans.put(ProjectPlan(
                project_id=project_id,
                phase_costs={phase.number: phase.amount for phase in quote.phases},
                total_budget=quote.total,
            ))

            subtotal = round_money(advance.amount)
            tax = round_money(subtotal * self._rules.tax_rate)
            issued_at = self._clock.now()
            invoice = self._ledger.create(
                InvoiceDraft(
                    project_id=project_id,
                    quote_id=quote.quote_id,
                    client=quote.client,
                    subtotal=subtotal,
                    tax=tax,
                    total=subtotal + tax,
                    issued_at=issued_at,
                    due_at=issued_at + timedelta(days=self._rules.payment_terms_days),
                    currency=quote.currency,
                    payment_plan_number=advance.number,
                    concept=advance.description or "Project advance",
                ),
                actor_id,
            )

            logger.info(
                "quote_converted",
                extra={
                    "quote_id": quote.quote_id,
                    "quote_number": quote.number,
                    "invoice_number": invoice.number,
                    "advance_amount": str(advance.amount),
                },
            )

        return ConversionResult(
            project_id=project_id,
            invoice=invoice,
            message=(
                f"Project created. Advance invoice {invoice.number} issued "
                f"for {invoice.total:.2f} {invoice.currency}"
            ),
        )
