"""ProjectPlanRepository -- phase costs and budget per project."""

from __future__ import annotations

from typing import Any

from sitefin_kernel.domain.types import ProjectPlan
from sitefin_kernel.repositories.base import (
    CollectionRepository,
    money_from_record,
    money_to_text,
)


class ProjectPlanRepository(CollectionRepository[ProjectPlan]):
    key = "project_plans"

    def _to_record(self, plan: ProjectPlan) -> dict[str, Any]:
        return {
            "project_id": plan.project_id,
            # JSON object keys are strings
            "phase_costs": {
                str(number): money_to_text(cost)
                for number, cost in sorted(plan.phase_costs.items())
            },
            "total_budget": money_to_text(plan.total_budget),
            "active": plan.active,
        }

    def _from_record(self, record: dict[str, Any]) -> ProjectPlan:
        return ProjectPlan(
            project_id=record["project_id"],
            phase_costs={
                int(number): money_from_record(cost)
                for number, cost in (record.get("phase_costs") or {}).items()
            },
            total_budget=money_from_record(record.get("total_budget")),
            active=bool(record.get("active", True)),
        )

    def get(self, project_id: str) -> ProjectPlan | None:
        for plan in self._load():
            if plan.project_id == project_id:
                return plan
        return None

    def put(self, plan: ProjectPlan) -> ProjectPlan:
        def _upsert(plans: list[ProjectPlan]) -> list[ProjectPlan]:
            others = [p for p in plans if p.project_id != plan.project_id]
            return [*others, plan]

        self._mutate(_upsert)
        return plan

    def active(self) -> list[ProjectPlan]:
        return [p for p in self._load() if p.active]
