"""
AlertEngine -- threshold rules that raise, deduplicate and resolve alerts.

Responsibility:
    Four independent rules (treasury coverage, pending collection of a
    completed phase, cost overrun, overdue invoices) each turn the current
    financial state into at most one alert per evaluation, plus the
    resolve / query / stats surface over the alert collection.

Architecture position:
    Services.  Reads ``TreasuryCalculator`` and ``InvoiceRepository``;
    owns ``AlertRepository`` writes.  Called by the
    ``VerificationOrchestrator`` and directly by calling layers.

Invariants enforced:
    - At most one unresolved alert per (project, type).  A re-trigger
      updates the existing record in place (same ``alert_id``).  With the
      ``invoice`` overdue scope the key for overdue alerts becomes
      (project, type, invoice).
    - Treasury and cost-overrun alerts auto-resolve (``resolved_by =
      "system"``) when their condition clears; pending-collection and
      overdue alerts resolve manually only.
    - ``resolve`` is idempotent: resolving twice overwrites the resolution
      metadata and is not an error.

Failure modes:
    - Collaborator errors (e.g. the treasury lookup) propagate out of the
      individual rule; the orchestrator isolates them.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Callable
from dataclasses import replace
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sitefin_config.schema import FinanceRules
from sitefin_kernel.domain.clock import Clock
from sitefin_kernel.domain.types import (
    Alert,
    AlertPriority,
    AlertStats,
    AlertType,
    Invoice,
    InvoiceStatus,
    OverdueAlertScope,
)
from sitefin_kernel.domain.values import (
    HUNDRED,
    ZERO,
    format_percent,
    percent_of,
    to_decimal,
    whole_days_between,
)
from sitefin_kernel.logging_config import get_logger
from sitefin_kernel.repositories.alerts import AlertRepository
from sitefin_kernel.repositories.invoices import InvoiceRepository
from sitefin_services.treasury_calculator import TreasuryCalculator

logger = get_logger("services.alert_engine")

SYSTEM_RESOLVER = "system"


class AlertEngine:
    """
    Alert rules plus the alert query surface.

    Contract:
        Each ``check_*`` method returns the alert it raised or updated, or
        None (a list for the overdue rule).  Every raised alert is already
        persisted when returned.
    """

    def __init__(
        self,
        alerts: AlertRepository,
        invoices: InvoiceRepository,
        treasury: TreasuryCalculator,
        clock: Clock,
        rules: FinanceRules,
    ):
        self._alerts = alerts
        self._invoices = invoices
        self._treasury = treasury
        self._clock = clock
        self._rules = rules

    # =========================================================================
    # Rules
    # =========================================================================

    def check_treasury(self, project_id: str, next_phase_cost: Decimal) -> Alert | None:
        """Critical alert while the balance is below cost * treasury factor."""
        cost = to_decimal(next_phase_cost)
        if cost <= ZERO:
            logger.warning(
                "treasury_check_skipped",
                extra={"project_id": project_id, "next_phase_cost": str(cost)},
            )
            return None

        balance = self._treasury.balance(project_id)
        threshold = cost * self._rules.treasury_alert_factor

        if balance >= threshold:
            self._resolve_by_type(project_id, AlertType.TREASURY_LOW, "Treasury recovered")
            return None

        return self._raise(
            project_id,
            AlertType.TREASURY_LOW,
            AlertPriority.CRITICAL,
            title="Insufficient treasury",
            message=(
                f"Current treasury ({balance:.2f}) cannot cover the next phase. "
                f"At least {threshold:.2f} is required "
                f"({self._rules.treasury_alert_factor * HUNDRED:.0f}% of the phase cost)."
            ),
            recommended_action="Chase pending collections or re-plan the next phase",
            data={
                "balance": balance,
                "next_phase_cost": cost,
                "threshold": threshold,
                "deficit": threshold - balance,
                "available_percent": percent_of(balance, cost),
            },
        )

    def check_pending_collection(
        self, project_id: str, phase_number: int, progress_percent: Decimal,
    ) -> Alert | None:
        """High alert for a fully completed phase whose invoice is unpaid."""
        if to_decimal(progress_percent) < HUNDRED:
            return None

        invoice = next(
            (
                i for i in self._invoices.for_phase(project_id, phase_number)
                if i.status != InvoiceStatus.COLLECTED
            ),
            None,
        )
        if invoice is None:
            return None

        days_pending = whole_days_between(invoice.issued_at, self._clock.now())
        return self._raise(
            project_id,
            AlertType.PENDING_COLLECTION,
            AlertPriority.HIGH,
            title="Completed phase pending collection",
            message=(
                f"Phase {phase_number} is 100% complete but invoice {invoice.number} "
                f"has not been collected ({days_pending} days pending)."
            ),
            recommended_action="Send a payment reminder or issue the invoice",
            data={
                "phase_number": phase_number,
                "invoice_id": invoice.invoice_id,
                "invoice_number": invoice.number,
                "amount": invoice.total,
                "days_pending": days_pending,
            },
        )

    def check_cost_overrun(
        self, project_id: str, total_budget: Decimal, actual_costs: Decimal,
    ) -> Alert | None:
        """High alert while actual costs exceed budget * overrun factor."""
        budget = to_decimal(total_budget)
        actual = to_decimal(actual_costs)
        if budget <= ZERO:
            logger.warning(
                "cost_overrun_check_skipped",
                extra={"project_id": project_id, "total_budget": str(budget)},
            )
            return None

        threshold = budget * self._rules.cost_overrun_factor
        if actual <= threshold:
            self._resolve_by_type(project_id, AlertType.COST_OVERRUN, "Costs under control")
            return None

        overrun_percent = format_percent(percent_of(actual, budget) - HUNDRED)
        return self._raise(
            project_id,
            AlertType.COST_OVERRUN,
            AlertPriority.HIGH,
            title="Cost overrun detected",
            message=(
                f"Actual costs ({actual:.2f}) exceed the budget ({budget:.2f}) "
                f"by {overrun_percent}%."
            ),
            recommended_action="Review expenses and adjust the budget or reduce costs",
            data={
                "total_budget": budget,
                "actual_costs": actual,
                "overrun": actual - budget,
                "overrun_percent": overrun_percent,
            },
        )

    def check_overdue_invoices(self, project_id: str) -> list[Alert]:
        """
        One entry per open invoice past its due date, in invoice order.

        Under the ``project`` scope every overdue invoice updates the same
        alert, so the entries share one ``alert_id`` and the last one holds
        the stored state.
        """
        now = self._clock.now()
        raised: list[Alert] = []

        for invoice in self._invoices.for_project(project_id):
            if not invoice.is_open or invoice.due_at >= now:
                continue
            alert = self._raise_overdue(project_id, invoice, whole_days_between(invoice.due_at, now))
            raised.append(alert)

        return raised

    def _raise_overdue(self, project_id: str, invoice: Invoice, days_overdue: int) -> Alert:
        if days_overdue > self._rules.overdue_critical_after_days:
            priority = AlertPriority.CRITICAL
        elif days_overdue > self._rules.overdue_high_after_days:
            priority = AlertPriority.HIGH
        else:
            priority = AlertPriority.MEDIUM

        match = None
        if self._rules.overdue_alert_scope == OverdueAlertScope.INVOICE:
            match = lambda alert: alert.data.get("invoice_id") == invoice.invoice_id  # noqa: E731

        return self._raise(
            project_id,
            AlertType.OVERDUE_INVOICE,
            priority,
            title="Overdue invoice",
            message=(
                f"Invoice {invoice.number} is {days_overdue} days overdue "
                f"(due {invoice.due_at.date().isoformat()})."
            ),
            recommended_action="Send an urgent payment reminder to the client",
            data={
                "invoice_id": invoice.invoice_id,
                "invoice_number": invoice.number,
                "amount": invoice.total,
                "due_at": invoice.due_at.isoformat(),
                "days_overdue": days_overdue,
            },
            match=match,
        )

    # =========================================================================
    # Dedup / resolution
    # =========================================================================

    def _raise(
        self,
        project_id: str,
        alert_type: AlertType,
        priority: AlertPriority,
        *,
        title: str,
        message: str,
        recommended_action: str | None,
        data: dict[str, Any],
        match: Callable[[Alert], bool] | None = None,
    ) -> Alert:
        now = self._clock.now()

        def _matches(alert: Alert) -> bool:
            if alert.project_id != project_id or alert.alert_type != alert_type:
                return False
            return match is None or match(alert)

        def _build(existing: Alert | None) -> Alert:
            if existing is not None:
                return replace(
                    existing,
                    priority=priority,
                    message=message,
                    data=data,
                    created_at=now,
                )
            return Alert(
                alert_id=uuid4(),
                project_id=project_id,
                alert_type=alert_type,
                priority=priority,
                title=title,
                message=message,
                created_at=now,
                recommended_action=recommended_action,
                data=data,
            )

        alert = self._alerts.upsert_unresolved(_matches, _build)
        logger.info(
            "alert_raised",
            extra={
                "alert_id": str(alert.alert_id),
                "project_id": project_id,
                "alert_type": alert_type,
                "priority": priority,
            },
        )
        return alert

    def _resolve_by_type(self, project_id: str, alert_type: AlertType, note: str) -> list[Alert]:
        now = self._clock.now()
        resolved = self._alerts.update_where(
            lambda a: a.project_id == project_id and a.alert_type == alert_type and not a.resolved,
            lambda a: replace(
                a,
                resolved=True,
                resolved_at=now,
                resolved_by=SYSTEM_RESOLVER,
                resolution_note=note,
            ),
        )
        if resolved:
            logger.info(
                "alert_auto_resolved",
                extra={
                    "project_id": project_id,
                    "alert_type": alert_type,
                    "count": len(resolved),
                },
            )
        return resolved

    def resolve(self, alert_id: UUID, user: str, note: str | None = None) -> Alert | None:
        """Mark an alert resolved; None for an unknown id."""
        now = self._clock.now()
        changed = self._alerts.update_where(
            lambda a: a.alert_id == alert_id,
            lambda a: replace(
                a,
                resolved=True,
                resolved_at=now,
                resolved_by=user,
                resolution_note=note,
            ),
        )
        if not changed:
            logger.info("alert_resolve_unknown", extra={"alert_id": str(alert_id)})
            return None
        logger.info(
            "alert_resolved",
            extra={"alert_id": str(alert_id), "resolved_by": user},
        )
        return changed[0]

    # =========================================================================
    # Queries
    # =========================================================================

    def for_project(self, project_id: str, active_only: bool = True) -> list[Alert]:
        """Project alerts, most urgent first, newest first within a priority."""
        alerts = self._alerts.for_project(project_id)
        if active_only:
            alerts = [a for a in alerts if not a.resolved]
        alerts.sort(key=lambda a: a.created_at, reverse=True)
        alerts.sort(key=lambda a: a.priority.rank)
        return alerts

    def active(self) -> list[Alert]:
        return self._alerts.unresolved()

    def get(self, alert_id: UUID) -> Alert | None:
        return self._alerts.get(alert_id)

    def stats(self, project_id: str | None = None) -> AlertStats:
        alerts = self._alerts.unresolved()
        if project_id is not None:
            alerts = [a for a in alerts if a.project_id == project_id]

        priorities = Counter(a.priority for a in alerts)
        types = Counter(a.alert_type for a in alerts)
        return AlertStats(
            total=len(alerts),
            by_priority={p: priorities.get(p, 0) for p in AlertPriority},
            by_type={t: types.get(t, 0) for t in AlertType},
        )

    def clear_for_project(self, project_id: str) -> int:
        removed = self._alerts.remove_for_project(project_id)
        logger.warning(
            "project_alerts_cleared",
            extra={"project_id": project_id, "count": removed},
        )
        return removed
