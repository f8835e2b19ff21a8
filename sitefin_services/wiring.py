"""
Composition root for the consistency engine.

``build_engine`` constructs every repository and service with explicit
constructor injection and registers the post-commit cascades:

    invoice collected -> treasury recompute -> phase auto-unblock
                      -> verification after collection
    phase completed   -> verification after phase completion

There are no module-level service instances; each call returns an
independent engine over the given Store.
"""

from __future__ import annotations

from dataclasses import dataclass

from sitefin_config import get_active_rules
from sitefin_config.schema import FinanceRules
from sitefin_kernel.domain.clock import Clock, SystemClock
from sitefin_kernel.domain.types import Alert, Expense, ExpenseStatus, Invoice
from sitefin_kernel.logging_config import LogContext, get_logger
from sitefin_kernel.repositories import (
    AlertRepository,
    ExpenseRepository,
    InvoiceRepository,
    PhaseBlockRepository,
    ProjectPlanRepository,
    TreasuryRepository,
    UnblockAuditRepository,
)
from sitefin_kernel.store.base import Store
from sitefin_services.alert_engine import AlertEngine
from sitefin_services.conversion_service import ConversionService
from sitefin_services.hooks import PostCommitHooks
from sitefin_services.invoice_ledger import InvoiceLedger
from sitefin_services.phase_gate import PhaseGate
from sitefin_services.treasury_calculator import TreasuryCalculator
from sitefin_services.verification_orchestrator import VerificationOrchestrator

logger = get_logger("services.wiring")


@dataclass(frozen=True)
class FinanceEngine:
    """Every service of one engine instance, sharing one Store."""

    store: Store
    rules: FinanceRules
    clock: Clock
    invoices: InvoiceRepository
    expenses: ExpenseRepository
    project_plans: ProjectPlanRepository
    ledger: InvoiceLedger
    treasury: TreasuryCalculator
    phase_gate: PhaseGate
    alerts: AlertEngine
    verification: VerificationOrchestrator
    conversion: ConversionService

    def record_expense(self, expense: Expense) -> list[Alert]:
        """Store an expense; a paid one refreshes treasury, then re-verify."""
        self.expenses.add(expense)
        with LogContext.bind(project_id=expense.project_id, trigger="expense_recorded"):
            if expense.status == ExpenseStatus.PAID:
                try:
                    self.treasury.recompute(expense.project_id)
                except Exception:
                    logger.exception(
                        "treasury_refresh_failed",
                        extra={"project_id": expense.project_id},
                    )
            return self.verification.run_after_expense(expense.project_id, expense.amount)


def build_engine(
    store: Store,
    rules: FinanceRules | None = None,
    clock: Clock | None = None,
) -> FinanceEngine:
    rules = rules or get_active_rules()
    clock = clock or SystemClock()

    invoices = InvoiceRepository(store)
    expenses = ExpenseRepository(store)
    plans = ProjectPlanRepository(store)

    treasury = TreasuryCalculator(invoices, expenses, TreasuryRepository(store), clock, rules)
    alert_engine = AlertEngine(AlertRepository(store), invoices, treasury, clock, rules)
    verification = VerificationOrchestrator(alert_engine, plans, expenses)

    completion_hooks = PostCommitHooks("phase_completed")
    completion_hooks.register(
        "verification",
        lambda project_id, phase_number: verification.run_after_phase_completion(
            project_id, phase_number,
        ),
    )
    gate = PhaseGate(
        invoices,
        PhaseBlockRepository(store),
        UnblockAuditRepository(store),
        clock,
        completion_hooks,
    )

    collection_hooks = PostCommitHooks("invoice_collected")
    collection_hooks.register(
        "treasury", lambda invoice: treasury.recompute(invoice.project_id),
    )
    collection_hooks.register("phase_unblock", lambda invoice: _unblock_next(gate, invoice))
    collection_hooks.register(
        "verification",
        lambda invoice: verification.run_after_collection(invoice.project_id, invoice.total),
    )
    ledger = InvoiceLedger(invoices, clock, rules, collection_hooks)

    logger.info(
        "engine_built",
        extra={
            "store": type(store).__name__,
            "rules_source": rules.source,
            "collection_hooks": list(collection_hooks.names),
        },
    )
    return FinanceEngine(
        store=store,
        rules=rules,
        clock=clock,
        invoices=invoices,
        expenses=expenses,
        project_plans=plans,
        ledger=ledger,
        treasury=treasury,
        phase_gate=gate,
        alerts=alert_engine,
        verification=verification,
        conversion=ConversionService(ledger, plans, clock, rules),
    )


def _unblock_next(gate: PhaseGate, invoice: Invoice) -> None:
    if invoice.linked_phase is not None:
        gate.auto_unblock_if_matching(invoice.project_id, invoice.linked_phase)
