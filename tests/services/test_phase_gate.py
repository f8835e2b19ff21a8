"""Tests for PhaseGate: start checks, blocks, unblocking and the audit trail."""

import pytest

from sitefin_kernel.domain.types import BlockedBy
from sitefin_kernel.exceptions import InvalidPhaseNumberError
from sitefin_kernel.repositories.invoices import InvoiceRepository
from sitefin_kernel.repositories.phase_blocks import (
    PhaseBlockRepository,
    UnblockAuditRepository,
)
from sitefin_services.hooks import PostCommitHooks
from sitefin_services.phase_gate import FORCED_UNBLOCK_REASON, PhaseGate

PROJECT = "proj-001"


@pytest.fixture
def gate(engine):
    return engine.phase_gate


class TestCanStart:
    def test_phase_one_always_startable(self, gate):
        assert gate.can_start(PROJECT, 1).startable

    def test_requires_previous_phase_collected(self, gate, issue_invoice):
        issue_invoice(linked_phase=1)

        check = gate.can_start(PROJECT, 2)

        assert not check.startable
        assert check.reason == "Pending collection Phase 1"

    def test_startable_once_previous_collected(self, gate, collect_invoice):
        collect_invoice(linked_phase=1)
        assert gate.can_start(PROJECT, 2).startable

    def test_other_project_payment_does_not_count(self, gate, collect_invoice):
        collect_invoice(project_id="proj-002", linked_phase=1)
        assert not gate.can_start(PROJECT, 2).startable

    def test_phase_zero_rejected(self, gate):
        with pytest.raises(InvalidPhaseNumberError):
            gate.can_start(PROJECT, 0)


class TestBlockAndUnblock:
    def test_block_then_status(self, gate):
        gate.block(PROJECT, 3, "Waiting on permits", BlockedBy.USER)

        status = gate.status(PROJECT, 3)

        assert status.blocked
        assert status.reason == "Waiting on permits"
        assert status.forceable
        assert [b.phase_number for b in gate.list_blocked(PROJECT)] == [3]

    def test_reblock_replaces_reason(self, gate):
        gate.block(PROJECT, 2, "first")
        gate.block(PROJECT, 2, "second")
        assert gate.status(PROJECT, 2).reason == "second"
        assert len(gate.list_blocked(PROJECT)) == 1

    def test_unknown_phase_is_unblocked(self, gate):
        assert not gate.status(PROJECT, 4).blocked

    def test_unblock_keeps_the_record(self, engine, gate, clock):
        gate.block(PROJECT, 2, "reason")
        clock.advance(7200)

        assert gate.unblock(PROJECT, 2, actor="user-1")

        record = PhaseBlockRepository(engine.store).get(PROJECT, 2)
        assert not record.blocked
        assert record.unblocked_at == clock.now()
        assert gate.list_blocked(PROJECT) == []

    def test_unblock_without_record_or_block(self, gate):
        assert not gate.unblock(PROJECT, 2)
        gate.block(PROJECT, 2, "reason")
        gate.unblock(PROJECT, 2)
        assert not gate.unblock(PROJECT, 2)

    def test_forced_unblock_with_actor_is_audited(self, gate):
        gate.block(PROJECT, 2, "reason")
        gate.unblock(PROJECT, 2, actor="user-9", forced=True)

        trail = gate.audit_trail(PROJECT)

        assert [(e.user, e.reason, e.forced) for e in trail] == [
            ("user-9", FORCED_UNBLOCK_REASON, True),
        ]

    def test_plain_unblock_not_audited(self, gate):
        gate.block(PROJECT, 2, "reason")
        gate.unblock(PROJECT, 2, actor="user-9")
        assert gate.audit_trail(PROJECT) == []

    def test_force_unblock_records_custom_reason(self, gate):
        gate.block(PROJECT, 2, "reason")

        assert gate.force_unblock(PROJECT, 2, "manager-1", "Client paid in cash on site")

        assert not gate.status(PROJECT, 2).blocked
        assert gate.audit_trail(PROJECT)[0].reason == "Client paid in cash on site"

    def test_force_unblock_needs_a_record(self, gate):
        assert not gate.force_unblock(PROJECT, 2, "manager-1", "why")
        assert gate.audit_trail(PROJECT) == []

    def test_clear_keeps_audit_trail(self, gate):
        gate.block(PROJECT, 2, "reason")
        gate.force_unblock(PROJECT, 2, "manager-1", "why")
        gate.block(PROJECT, 3, "other")

        assert gate.clear_for_project(PROJECT) == 2
        assert gate.list_blocked(PROJECT) == []
        assert len(gate.audit_trail(PROJECT)) == 1


class TestAutoUnblock:
    def test_matching_reason_lifted(self, gate):
        gate.block(PROJECT, 2, "Pending collection Phase 1")
        assert gate.auto_unblock_if_matching(PROJECT, 1)
        assert not gate.status(PROJECT, 2).blocked

    def test_unrelated_reason_left_untouched(self, gate):
        gate.block(PROJECT, 2, "Waiting on permits", BlockedBy.USER)
        assert not gate.auto_unblock_if_matching(PROJECT, 1)
        assert gate.status(PROJECT, 2).blocked

    def test_phase_one_does_not_match_phase_ten(self, gate):
        gate.block(PROJECT, 2, "Pending collection Phase 10")
        assert not gate.auto_unblock_if_matching(PROJECT, 1)
        assert gate.status(PROJECT, 2).blocked

    def test_no_block_is_a_no_op(self, gate):
        assert not gate.auto_unblock_if_matching(PROJECT, 1)


class TestPhaseCompletion:
    def test_unpaid_phase_blocks_next(self, gate, issue_invoice):
        issue_invoice(linked_phase=1)

        placed = gate.verify_after_phase_completion(PROJECT, 1)

        assert placed.phase_number == 2
        assert placed.reason == "Pending collection Phase 1"
        assert placed.blocked_by == BlockedBy.SYSTEM
        assert gate.status(PROJECT, 2).blocked

    def test_paid_phase_places_no_block(self, gate, collect_invoice):
        collect_invoice(linked_phase=1)
        assert gate.verify_after_phase_completion(PROJECT, 1) is None
        assert gate.list_blocked(PROJECT) == []

    def test_completion_hook_failure_is_isolated(self, store, clock, captured_logs):
        hooks = PostCommitHooks("phase_completed")
        hooks.register("broken", lambda project_id, phase: {}["missing"])
        gate = PhaseGate(
            InvoiceRepository(store),
            PhaseBlockRepository(store),
            UnblockAuditRepository(store),
            clock,
            hooks,
        )

        placed = gate.verify_after_phase_completion(PROJECT, 1)

        assert placed is not None
        assert [(o.name, o.succeeded) for o in gate.last_hook_outcomes] == [("broken", False)]
        failures = [r for r in captured_logs() if r["message"] == "post_commit_hook_failed"]
        assert failures[0]["event"] == "phase_completed"
