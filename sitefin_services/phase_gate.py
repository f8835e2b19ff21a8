"""
PhaseGate -- sequential phase gating on prior-phase payment.

Responsibility:
    Decides whether a phase may start, blocks the next phase when a phase
    completes without its invoice collected, and lifts those blocks when
    the payment arrives (automatically) or when a user overrides them
    (with an audit entry).

Architecture position:
    Services.  Reads ``InvoiceRepository``; owns ``PhaseBlockRepository``
    and ``UnblockAuditRepository``.  Runs ``completion_hooks`` (the
    verification cascade) after a phase completes.

Invariants enforced:
    - Phase 1 is always startable and never receives a system block.
    - Phase N > 1 is startable iff a collected invoice linked to phase N-1
      exists.
    - Automatic unblocking only lifts a block whose reason references the
      paid phase as a whole word (``Phase 1`` never matches ``Phase 10``).
    - Every forced unblock with an actor leaves an audit entry.

Failure modes:
    - ``InvalidPhaseNumberError`` for phase numbers below 1.
    - Completion hook failures are logged, never raised.
"""

from __future__ import annotations

import re
from dataclasses import replace
from uuid import uuid4

from sitefin_kernel.domain.clock import Clock
from sitefin_kernel.domain.types import (
    BlockedBy,
    BlockStatus,
    InvoiceStatus,
    PhaseBlock,
    StartCheck,
    UnblockAuditEntry,
)
from sitefin_kernel.exceptions import InvalidPhaseNumberError
from sitefin_kernel.logging_config import LogContext, get_logger
from sitefin_kernel.repositories.invoices import InvoiceRepository
from sitefin_kernel.repositories.phase_blocks import (
    PhaseBlockRepository,
    UnblockAuditRepository,
)
from sitefin_services.hooks import HookOutcome, PostCommitHooks

logger = get_logger("services.phase_gate")

FORCED_UNBLOCK_REASON = "Forced unblock by user"


def pending_collection_reason(phase_number: int) -> str:
    return f"Pending collection Phase {phase_number}"


def _references_phase(reason: str | None, phase_number: int) -> bool:
    if not reason:
        return False
    return re.search(rf"\bPhase {phase_number}\b", reason) is not None


def _check_phase_number(phase_number: int) -> None:
    if phase_number < 1:
        raise InvalidPhaseNumberError(phase_number)


class PhaseGate:
    """
    Per (project, phase) gate: unblocked by default, or blocked(reason).

    Contract:
        ``block`` is an idempotent upsert; ``unblock`` and ``force_unblock``
        report whether anything changed.

    Guarantees:
        - Block records are never deleted by the gate; unblocking flips the
          flag and stamps ``unblocked_at``.
        - The audit collection is append-only.

    Non-goals:
        - ``can_start`` does NOT consult block records; it answers the
          payment question only.
    """

    def __init__(
        self,
        invoices: InvoiceRepository,
        blocks: PhaseBlockRepository,
        audit: UnblockAuditRepository,
        clock: Clock,
        completion_hooks: PostCommitHooks | None = None,
    ):
        self._invoices = invoices
        self._blocks = blocks
        self._audit = audit
        self._clock = clock
        self.completion_hooks = completion_hooks or PostCommitHooks("phase_completed")
        self.last_hook_outcomes: list[HookOutcome] = []

    # =========================================================================
    # Decisions
    # =========================================================================

    def can_start(self, project_id: str, phase_number: int) -> StartCheck:
        _check_phase_number(phase_number)
        if phase_number == 1:
            return StartCheck(startable=True)

        previous = phase_number - 1
        if self._phase_collected(project_id, previous):
            return StartCheck(startable=True)
        return StartCheck(startable=False, reason=pending_collection_reason(previous))

    def _phase_collected(self, project_id: str, phase_number: int) -> bool:
        return any(
            i.status == InvoiceStatus.COLLECTED
            for i in self._invoices.for_phase(project_id, phase_number)
        )

    # =========================================================================
    # Block / unblock
    # =========================================================================

    def block(
        self,
        project_id: str,
        phase_number: int,
        reason: str,
        blocked_by: BlockedBy = BlockedBy.SYSTEM,
    ) -> PhaseBlock:
        """Upsert a block; re-blocking replaces reason and timestamps."""
        _check_phase_number(phase_number)
        block = PhaseBlock(
            project_id=project_id,
            phase_number=phase_number,
            blocked=True,
            reason=reason,
            blocked_at=self._clock.now(),
            blocked_by=BlockedBy(blocked_by),
        )
        self._blocks.upsert(project_id, phase_number, lambda _current: block)
        logger.info(
            "phase_blocked",
            extra={
                "project_id": project_id,
                "phase_number": phase_number,
                "reason": reason,
                "blocked_by": block.blocked_by,
            },
        )
        return block

    def unblock(
        self,
        project_id: str,
        phase_number: int,
        actor: str | None = None,
        forced: bool = False,
    ) -> bool:
        """
        Clear an active block.

        Returns False when the phase has no block record or is not blocked.
        A forced unblock with an actor appends an audit entry.
        """
        if not self._lift(project_id, phase_number, require_blocked=True):
            return False
        if forced and actor:
            self._record_audit(project_id, phase_number, actor, FORCED_UNBLOCK_REASON)
        logger.info(
            "phase_unblocked",
            extra={
                "project_id": project_id,
                "phase_number": phase_number,
                "actor_id": actor,
                "forced": forced,
            },
        )
        return True

    def force_unblock(
        self, project_id: str, phase_number: int, actor: str, reason: str,
    ) -> bool:
        """Unconditional unblock with a custom audit reason."""
        if not self._lift(project_id, phase_number, require_blocked=False):
            return False
        self._record_audit(project_id, phase_number, actor, reason)
        logger.warning(
            "phase_force_unblocked",
            extra={
                "project_id": project_id,
                "phase_number": phase_number,
                "actor_id": actor,
                "reason": reason,
            },
        )
        return True

    def auto_unblock_if_matching(self, project_id: str, paid_phase: int) -> bool:
        """
        Unblock ``paid_phase + 1`` if its block was placed for ``paid_phase``.

        A block on the same phase for an unrelated reason is left untouched.
        """
        next_phase = paid_phase + 1
        current = self._blocks.get(project_id, next_phase)
        if current is None or not current.blocked:
            return False
        if not _references_phase(current.reason, paid_phase):
            logger.info(
                "phase_auto_unblock_skipped",
                extra={
                    "project_id": project_id,
                    "phase_number": next_phase,
                    "reason": current.reason,
                },
            )
            return False
        return self.unblock(project_id, next_phase)

    def _lift(self, project_id: str, phase_number: int, *, require_blocked: bool) -> bool:
        now = self._clock.now()

        def _change(current: PhaseBlock | None) -> PhaseBlock | None:
            if current is None:
                return None
            if require_blocked and not current.blocked:
                return None
            return replace(current, blocked=False, unblocked_at=now)

        return self._blocks.upsert(project_id, phase_number, _change) is not None

    def _record_audit(
        self, project_id: str, phase_number: int, actor: str, reason: str,
    ) -> UnblockAuditEntry:
        entry = UnblockAuditEntry(
            entry_id=uuid4(),
            project_id=project_id,
            phase_number=phase_number,
            user=actor,
            recorded_at=self._clock.now(),
            reason=reason,
            forced=True,
        )
        return self._audit.append(entry)

    # =========================================================================
    # Phase completion
    # =========================================================================

    def verify_after_phase_completion(
        self, project_id: str, completed_phase: int,
    ) -> PhaseBlock | None:
        """
        Block the next phase unless the completed phase is paid, then run
        the completion hooks.  Returns the block placed, if any.
        """
        _check_phase_number(completed_phase)
        placed = None
        with LogContext.bind(project_id=project_id, trigger="phase_completed"):
            if not self._phase_collected(project_id, completed_phase):
                placed = self.block(
                    project_id,
                    completed_phase + 1,
                    pending_collection_reason(completed_phase),
                    BlockedBy.SYSTEM,
                )
            self.last_hook_outcomes = self.completion_hooks.run(project_id, completed_phase)
        return placed

    # =========================================================================
    # Queries
    # =========================================================================

    def status(self, project_id: str, phase_number: int) -> BlockStatus:
        block = self._blocks.get(project_id, phase_number)
        if block is None or not block.blocked:
            return BlockStatus(blocked=False)
        return BlockStatus(blocked=True, reason=block.reason, forceable=block.forceable)

    def list_blocked(self, project_id: str) -> list[PhaseBlock]:
        return [b for b in self._blocks.for_project(project_id) if b.blocked]

    def audit_trail(self, project_id: str) -> list[UnblockAuditEntry]:
        return self._audit.for_project(project_id)

    def clear_for_project(self, project_id: str) -> int:
        """Drop every block record of the project; the audit trail is kept."""
        removed = self._blocks.remove_for_project(project_id)
        logger.warning(
            "project_blocks_cleared",
            extra={"project_id": project_id, "count": removed},
        )
        return removed
