"""
VerificationOrchestrator -- runs every alert rule after a triggering event.

Responsibility:
    Builds the rule inputs for a project (next phase cost and budget from
    the project plan, actual costs from the expense collaborator) and runs
    the four AlertEngine rules in sequence.  Triggers: payment collected,
    phase completed, expense recorded, periodic sweep.

Architecture position:
    Services > orchestration.  Registered as the last collection hook and
    as the phase-completion hook by ``sitefin_services.wiring``.

Invariants enforced:
    - Each rule is fault-isolated: a failure is logged and the remaining
      rules still run; the result holds whatever alerts were produced.
    - A rule runs only when its inputs are present and non-zero; the
      overdue rule always runs.
    - Verification never raises into the triggering operation.
"""

from __future__ import annotations

from collections.abc import Callable
from decimal import Decimal

from sitefin_kernel.domain.types import Alert, AlertPriority, VerificationInputs
from sitefin_kernel.domain.values import HUNDRED, ZERO
from sitefin_kernel.logging_config import LogContext, get_logger
from sitefin_kernel.repositories.expenses import ExpenseRepository
from sitefin_kernel.repositories.project_plans import ProjectPlanRepository
from sitefin_services.alert_engine import AlertEngine

logger = get_logger("services.verification")


class VerificationOrchestrator:
    """
    Fault-isolated batch of alert rules.

    Contract:
        ``run_all`` returns the alerts produced by this run, in rule order.
        The ``run_after_*`` entry points return an empty list for a project
        without a plan.
    """

    def __init__(
        self,
        alert_engine: AlertEngine,
        project_plans: ProjectPlanRepository,
        expenses: ExpenseRepository,
    ):
        self._alerts = alert_engine
        self._plans = project_plans
        self._expenses = expenses

    def run_all(self, project_id: str, inputs: VerificationInputs) -> list[Alert]:
        checks: list[tuple[str, Callable[[], list[Alert]]]] = []

        if inputs.next_phase_cost:
            checks.append((
                "treasury",
                lambda: _as_list(self._alerts.check_treasury(project_id, inputs.next_phase_cost)),
            ))
        if inputs.current_phase and inputs.phase_progress:
            checks.append((
                "pending_collection",
                lambda: _as_list(self._alerts.check_pending_collection(
                    project_id, inputs.current_phase, inputs.phase_progress,
                )),
            ))
        if inputs.total_budget and inputs.actual_costs:
            checks.append((
                "cost_overrun",
                lambda: _as_list(self._alerts.check_cost_overrun(
                    project_id, inputs.total_budget, inputs.actual_costs,
                )),
            ))
        checks.append((
            "overdue_invoices",
            lambda: self._alerts.check_overdue_invoices(project_id),
        ))

        produced: list[Alert] = []
        failed: list[str] = []
        for name, check in checks:
            try:
                produced.extend(check())
            except Exception:
                failed.append(name)
                logger.exception(
                    "verification_check_failed",
                    extra={"project_id": project_id, "check": name},
                )

        critical = sum(1 for a in produced if a.priority == AlertPriority.CRITICAL)
        logger.info(
            "verification_completed",
            extra={
                "project_id": project_id,
                "checks_run": [name for name, _ in checks],
                "checks_failed": failed,
                "alert_count": len(produced),
                "critical_count": critical,
            },
        )
        return produced

    def build_inputs(
        self,
        project_id: str,
        phase_number: int | None = None,
        progress_percent: Decimal | None = None,
    ) -> VerificationInputs | None:
        """Rule inputs from the project plan and expenses; None without a plan."""
        plan = self._plans.get(project_id)
        if plan is None:
            return None

        current_phase = phase_number or 1
        next_phase_cost = plan.cost_of_phase(current_phase + 1)
        actual_costs = self._expenses.total_for_project(project_id)

        return VerificationInputs(
            next_phase_cost=next_phase_cost if next_phase_cost > ZERO else None,
            current_phase=current_phase,
            phase_progress=progress_percent if progress_percent is not None else ZERO,
            total_budget=plan.total_budget,
            actual_costs=actual_costs if actual_costs > ZERO else None,
        )

    def _verify(
        self,
        project_id: str,
        trigger: str,
        phase_number: int | None = None,
        progress_percent: Decimal | None = None,
    ) -> list[Alert]:
        with LogContext.bind(project_id=project_id, trigger=trigger):
            try:
                inputs = self.build_inputs(project_id, phase_number, progress_percent)
            except Exception:
                logger.exception("verification_inputs_failed", extra={"project_id": project_id})
                return []
            if inputs is None:
                logger.warning("verification_skipped_no_plan", extra={"project_id": project_id})
                return []
            return self.run_all(project_id, inputs)

    def run_after_collection(self, project_id: str, amount: Decimal) -> list[Alert]:
        logger.info("verification_after_collection", extra={"project_id": project_id, "amount": str(amount)})
        return self._verify(project_id, "invoice_collected")

    def run_after_phase_completion(
        self,
        project_id: str,
        phase_number: int,
        progress_percent: Decimal = HUNDRED,
    ) -> list[Alert]:
        logger.info(
            "verification_after_phase_completion",
            extra={
                "project_id": project_id,
                "phase_number": phase_number,
                "progress_percent": str(progress_percent),
            },
        )
        return self._verify(project_id, "phase_completed", phase_number, progress_percent)

    def run_after_expense(self, project_id: str, amount: Decimal) -> list[Alert]:
        logger.info("verification_after_expense", extra={"project_id": project_id, "amount": str(amount)})
        return self._verify(project_id, "expense_recorded")

    def run_periodic(self) -> dict[str, list[Alert]]:
        """Verify every active project plan; one project's failure skips only it."""
        results: dict[str, list[Alert]] = {}
        plans = self._plans.active()
        for plan in plans:
            try:
                results[plan.project_id] = self._verify(plan.project_id, "periodic")
            except Exception:
                logger.exception("periodic_verification_failed", extra={"project_id": plan.project_id})
                results[plan.project_id] = []
        logger.info("periodic_verification_completed", extra={"project_count": len(plans)})
        return results


def _as_list(alert: Alert | None) -> list[Alert]:
    return [] if alert is None else [alert]
