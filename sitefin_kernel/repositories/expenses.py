"""ExpenseRepository -- the expense collaborator's records."""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal
from typing import Any
from uuid import UUID

from sitefin_kernel.domain.types import Expense, ExpenseStatus
from sitefin_kernel.domain.values import ZERO, normalize_timestamp, timestamp_to_text
from sitefin_kernel.repositories.base import (
    CollectionRepository,
    money_from_record,
    money_to_text,
)


class ExpenseRepository(CollectionRepository[Expense]):
    """
    Read side used by the treasury calculation and the verification
    cascade.  ``add`` exists so callers and tests can record expenses; the
    expense lifecycle itself is owned elsewhere.
    """

    key = "expenses"

    def _to_record(self, expense: Expense) -> dict[str, Any]:
        return {
            "id": str(expense.expense_id),
            "project_id": expense.project_id,
            "amount": money_to_text(expense.amount),
            "status": expense.status.value,
            "concept": expense.concept,
            "paid_at": timestamp_to_text(expense.paid_at),
        }

    def _from_record(self, record: dict[str, Any]) -> Expense:
        return Expense(
            expense_id=UUID(record["id"]),
            project_id=record["project_id"],
            amount=money_from_record(record["amount"]),
            status=ExpenseStatus(record["status"]),
            concept=record.get("concept"),
            paid_at=normalize_timestamp(record.get("paid_at")),
        )

    def add(self, expense: Expense) -> Expense:
        self._mutate(lambda expenses: [*expenses, expense])
        return expense

    def add_many(self, expenses: Iterable[Expense]) -> None:
        batch = list(expenses)
        self._mutate(lambda current: [*current, *batch])

    def for_project(self, project_id: str) -> list[Expense]:
        return [e for e in self._load() if e.project_id == project_id]

    def paid_for_project(self, project_id: str) -> list[Expense]:
        return [
            e for e in self.for_project(project_id)
            if e.status == ExpenseStatus.PAID
        ]

    def total_for_project(self, project_id: str) -> Decimal:
        """Sum of every expense of the project, paid or not."""
        return sum((e.amount for e in self.for_project(project_id)), ZERO)
