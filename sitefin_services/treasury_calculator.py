"""
TreasuryCalculator -- a project's cash position as a pure function of its inputs.

Responsibility:
    balance = sum(collected invoice totals) - sum(paid expense amounts).
    Every read recomputes from the invoice and expense collections and
    persists the resulting ``TreasuryRecord``; the persisted record is a
    cache for dashboards, never an input.

Architecture position:
    Services.  Reads ``InvoiceRepository`` and ``ExpenseRepository``,
    writes ``TreasuryRepository``.

Invariants enforced:
    - No incremental patching: a record can never drift from its inputs.
    - Health thresholds are strictly-greater-than: exactly 50% is yellow,
      exactly 20% is red.
"""

from __future__ import annotations

from decimal import Decimal

from sitefin_config.schema import FinanceRules
from sitefin_kernel.domain.clock import Clock
from sitefin_kernel.domain.types import (
    BreakdownLine,
    HealthIndicator,
    InvoiceStatus,
    TreasuryBreakdown,
    TreasuryRecord,
)
from sitefin_kernel.domain.values import HUNDRED, ZERO, percent_of, to_decimal
from sitefin_kernel.logging_config import get_logger
from sitefin_kernel.repositories.expenses import ExpenseRepository
from sitefin_kernel.repositories.invoices import InvoiceRepository
from sitefin_kernel.repositories.treasury import TreasuryRepository

logger = get_logger("services.treasury")


class TreasuryCalculator:
    """
    Treasury balance, health and breakdown per project.

    Contract:
        ``balance`` and ``recompute`` always read the current invoice and
        expense collections.

    Non-goals:
        - Does NOT convert currencies; amounts are summed as stored.
    """

    def __init__(
        self,
        invoices: InvoiceRepository,
        expenses: ExpenseRepository,
        records: TreasuryRepository,
        clock: Clock,
        rules: FinanceRules,
    ):
        self._invoices = invoices
        self._expenses = expenses
        self._records = records
        self._clock = clock
        self._rules = rules

    def recompute(self, project_id: str) -> TreasuryRecord:
        """Full recomputation; persists and returns the new record."""
        collected = sum(
            (
                i.total for i in self._invoices.for_project(project_id)
                if i.status == InvoiceStatus.COLLECTED
            ),
            ZERO,
        )
        paid = sum((e.amount for e in self._expenses.paid_for_project(project_id)), ZERO)

        record = TreasuryRecord(
            project_id=project_id,
            collected_total=collected,
            paid_expenses_total=paid,
            balance=collected - paid,
            computed_at=self._clock.now(),
        )
        self._records.put(record)

        logger.info(
            "treasury_recomputed",
            extra={
                "project_id": project_id,
                "collected_total": str(collected),
                "paid_expenses_total": str(paid),
                "balance": str(record.balance),
            },
        )
        return record

    def balance(self, project_id: str) -> Decimal:
        return self.recompute(project_id).balance

    def health_indicator(
        self, project_id: str, next_phase_cost: Decimal,
    ) -> HealthIndicator:
        """Treasury as a percentage of the next phase cost, bucketed."""
        balance = self.balance(project_id)
        cost = to_decimal(next_phase_cost)
        ratio = HUNDRED if cost == ZERO else percent_of(balance, cost)

        if ratio > self._rules.health_green_above:
            return HealthIndicator.GREEN
        if ratio > self._rules.health_yellow_above:
            return HealthIndicator.YELLOW
        return HealthIndicator.RED

    def breakdown(self, project_id: str) -> TreasuryBreakdown:
        """Collected invoices and paid expenses behind the balance."""
        collections = tuple(
            BreakdownLine(
                concept=f"Invoice {i.number}",
                amount=i.total,
                date=i.collected_at or i.updated_at,
            )
            for i in self._invoices.for_project(project_id)
            if i.status == InvoiceStatus.COLLECTED
        )
        paid_expenses = tuple(
            BreakdownLine(
                concept=e.concept or "Expense",
                amount=e.amount,
                date=e.paid_at or self._clock.now(),
            )
            for e in self._expenses.paid_for_project(project_id)
        )
        return TreasuryBreakdown(
            project_id=project_id,
            collections=collections,
            paid_expenses=paid_expenses,
        )

    def record(self, project_id: str) -> TreasuryRecord:
        """Current record for the project; always freshly recomputed."""
        return self.recompute(project_id)

    def portfolio_total(self) -> Decimal:
        """
        Sum of current balances across every known project.

        A project is known if it has invoices, expenses or a persisted
        record; each one is recomputed, so records left behind by a
        project cleanup are overwritten rather than summed.
        """
        project_ids = (
            {r.project_id for r in self._records.all()}
            | {i.project_id for i in self._invoices.all()}
            | {e.project_id for e in self._expenses.all()}
        )
        return sum((self.balance(p) for p in sorted(project_ids)), ZERO)
