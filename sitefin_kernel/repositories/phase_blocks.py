"""
PhaseBlockRepository and UnblockAuditRepository.

Block records are keyed by (project, phase) and never deleted by the gate;
unblocking flips ``blocked`` and keeps the reason for history.  The audit
collection is append-only apart from project cleanup.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any
from uuid import UUID

from sitefin_kernel.domain.types import BlockedBy, PhaseBlock, UnblockAuditEntry
from sitefin_kernel.domain.values import normalize_timestamp, timestamp_to_text
from sitefin_kernel.repositories.base import CollectionRepository


class PhaseBlockRepository(CollectionRepository[PhaseBlock]):
    key = "phase_blocks"

    def _to_record(self, block: PhaseBlock) -> dict[str, Any]:
        return {
            "project_id": block.project_id,
            "phase_number": block.phase_number,
            "blocked": block.blocked,
            "reason": block.reason,
            "blocked_at": timestamp_to_text(block.blocked_at),
            "blocked_by": block.blocked_by.value,
            "unblocked_at": timestamp_to_text(block.unblocked_at),
            "forceable": block.forceable,
        }

    def _from_record(self, record: dict[str, Any]) -> PhaseBlock:
        return PhaseBlock(
            project_id=record["project_id"],
            phase_number=int(record["phase_number"]),
            blocked=bool(record["blocked"]),
            reason=record.get("reason"),
            blocked_at=normalize_timestamp(record.get("blocked_at")),
            blocked_by=BlockedBy(record.get("blocked_by", BlockedBy.SYSTEM.value)),
            unblocked_at=normalize_timestamp(record.get("unblocked_at")),
            forceable=bool(record.get("forceable", True)),
        )

    def get(self, project_id: str, phase_number: int) -> PhaseBlock | None:
        for block in self._load():
            if block.project_id == project_id and block.phase_number == phase_number:
                return block
        return None

    def for_project(self, project_id: str) -> list[PhaseBlock]:
        blocks = [b for b in self._load() if b.project_id == project_id]
        return sorted(blocks, key=lambda b: b.phase_number)

    def upsert(
        self,
        project_id: str,
        phase_number: int,
        change: Callable[[PhaseBlock | None], PhaseBlock | None],
    ) -> PhaseBlock | None:
        """
        Replace the (project, phase) record with ``change(current)``.

        ``change`` receives None when no record exists; returning None
        leaves the collection untouched.
        """
        result: list[PhaseBlock | None] = [None]

        def _apply(blocks: list[PhaseBlock]) -> list[PhaseBlock]:
            current = None
            others = []
            for block in blocks:
                if block.project_id == project_id and block.phase_number == phase_number:
                    current = block
                else:
                    others.append(block)
            updated = change(current)
            result[0] = updated
            if updated is None:
                return blocks
            return [*others, updated]

        self._mutate(_apply)
        return result[0]

    def remove_for_project(self, project_id: str) -> int:
        removed = 0

        def _filter(blocks: list[PhaseBlock]) -> list[PhaseBlock]:
            nonlocal removed
            kept = [b for b in blocks if b.project_id != project_id]
            removed = len(blocks) - len(kept)
            return kept

        self._mutate(_filter)
        return removed


class UnblockAuditRepository(CollectionRepository[UnblockAuditEntry]):
    key = "unblock_audit"

    def _to_record(self, entry: UnblockAuditEntry) -> dict[str, Any]:
        return {
            "id": str(entry.entry_id),
            "project_id": entry.project_id,
            "phase_number": entry.phase_number,
            "user": entry.user,
            "recorded_at": timestamp_to_text(entry.recorded_at),
            "reason": entry.reason,
            "forced": entry.forced,
        }

    def _from_record(self, record: dict[str, Any]) -> UnblockAuditEntry:
        return UnblockAuditEntry(
            entry_id=UUID(record["id"]),
            project_id=record["project_id"],
            phase_number=int(record["phase_number"]),
            user=record["user"],
            recorded_at=normalize_timestamp(record["recorded_at"]),
            reason=record.get("reason", ""),
            forced=bool(record.get("forced", False)),
        )

    def append(self, entry: UnblockAuditEntry) -> UnblockAuditEntry:
        self._mutate(lambda entries: [*entries, entry])
        return entry

    def for_project(self, project_id: str) -> list[UnblockAuditEntry]:
        return [e for e in self._load() if e.project_id == project_id]
