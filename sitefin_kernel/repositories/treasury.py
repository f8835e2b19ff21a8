"""TreasuryRepository -- last computed treasury snapshot per project."""

from __future__ import annotations

from typing import Any

from sitefin_kernel.domain.types import TreasuryRecord
from sitefin_kernel.domain.values import normalize_timestamp, timestamp_to_text
from sitefin_kernel.repositories.base import (
    CollectionRepository,
    money_from_record,
    money_to_text,
)


class TreasuryRepository(CollectionRepository[TreasuryRecord]):
    key = "treasury"

    def _to_record(self, record: TreasuryRecord) -> dict[str, Any]:
        return {
            "project_id": record.project_id,
            "collected_total": money_to_text(record.collected_total),
            "paid_expenses_total": money_to_text(record.paid_expenses_total),
            "balance": money_to_text(record.balance),
            "computed_at": timestamp_to_text(record.computed_at),
        }

    def _from_record(self, record: dict[str, Any]) -> TreasuryRecord:
        return TreasuryRecord(
            project_id=record["project_id"],
            collected_total=money_from_record(record["collected_total"]),
            paid_expenses_total=money_from_record(record["paid_expenses_total"]),
            balance=money_from_record(record["balance"]),
            computed_at=normalize_timestamp(record["computed_at"]),
        )

    def get(self, project_id: str) -> TreasuryRecord | None:
        for record in self._load():
            if record.project_id == project_id:
                return record
        return None

    def put(self, record: TreasuryRecord) -> TreasuryRecord:
        """Replace the project's snapshot (insert when absent)."""

        def _upsert(records: list[TreasuryRecord]) -> list[TreasuryRecord]:
            others = [r for r in records if r.project_id != record.project_id]
            return [*others, record]

        self._mutate(_upsert)
        return record
