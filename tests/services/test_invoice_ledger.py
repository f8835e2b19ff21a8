"""
Tests for InvoiceLedger: numbering, lifecycle transitions, phase invoices,
the overdue sweep and collection hook isolation.
"""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from sitefin_kernel.domain.types import InvoiceNumbering, InvoiceStatus, PaymentMethod
from sitefin_kernel.exceptions import (
    InvalidInvoiceTransitionError,
    InvalidPhaseNumberError,
    InvoiceAmountMismatchError,
    InvoiceNotFoundError,
)
from sitefin_kernel.repositories.invoices import InvoiceRepository
from sitefin_services.hooks import PostCommitHooks
from sitefin_services.invoice_ledger import InvoiceLedger

PROJECT = "proj-001"


@pytest.fixture
def ledger(engine):
    return engine.ledger


class TestCreate:
    def test_sequential_numbers(self, ledger, make_draft):
        first = ledger.create(make_draft(), actor_id="user-1")
        second = ledger.create(make_draft(), actor_id="user-1")

        assert first.number == "FAC-2025-001"
        assert second.number == "FAC-2025-002"
        assert first.status == InvoiceStatus.DRAFT
        assert first.created_by == "user-1"
        assert first.currency == "EUR"

    def test_global_numbering_does_not_reset_per_year(self, ledger, make_draft, clock):
        ledger.create(make_draft(), actor_id="user-1")
        clock.set_time(datetime(2026, 1, 5, tzinfo=timezone.utc))

        assert ledger.create(make_draft(), actor_id="user-1").number == "FAC-2026-002"

    def test_yearly_numbering_restarts(self, store, rules, clock, make_draft):
        ledger = InvoiceLedger(
            InvoiceRepository(store), clock, replace(rules, numbering=InvoiceNumbering.YEARLY),
        )
        ledger.create(make_draft(), actor_id="user-1")
        ledger.create(make_draft(), actor_id="user-1")
        clock.set_time(datetime(2026, 1, 5, tzinfo=timezone.utc))

        assert ledger.create(make_draft(), actor_id="user-1").number == "FAC-2026-001"

    def test_numbers_stay_unique_after_cleanup(self, ledger, make_draft):
        ledger.create(make_draft(project_id="gone"), actor_id="user-1")
        ledger.create(make_draft(), actor_id="user-1")
        ledger.remove_for_project("gone")

        created = ledger.create(make_draft(), actor_id="user-1")

        assert created.number == "FAC-2025-003"
        assert len({i.number for i in ledger.all()}) == 2

    def test_amount_mismatch_rejected(self, ledger, make_draft):
        draft = replace(make_draft(), total=Decimal("1.00"))
        with pytest.raises(InvoiceAmountMismatchError):
            ledger.create(draft, actor_id="user-1")
        assert ledger.all() == []


class TestGenerateForPhase:
    def test_tax_due_date_and_link(self, ledger, client, clock):
        invoice = ledger.generate_for_phase(
            PROJECT, "quote-001", 2, Decimal("40000"), client, "user-1",
        )

        assert invoice.subtotal == Decimal("40000.00")
        assert invoice.tax == Decimal("8400.00")
        assert invoice.total == Decimal("48400.00")
        assert invoice.due_at == clock.now() + timedelta(days=30)
        assert invoice.linked_phase == 2
        assert invoice.payment_plan_number == 2
        assert invoice.status == InvoiceStatus.DRAFT

    def test_tax_rounded_half_up(self, ledger, client):
        invoice = ledger.generate_for_phase(
            PROJECT, "quote-001", 1, Decimal("0.50"), client, "user-1",
        )
        assert invoice.tax == Decimal("0.11")

    def test_phase_zero_rejected(self, ledger, client):
        with pytest.raises(InvalidPhaseNumberError):
            ledger.generate_for_phase(PROJECT, "q", 0, Decimal("1"), client, "user-1")


class TestLifecycle:
    def test_send_stamps_sent_at(self, ledger, make_draft, clock):
        invoice = ledger.create(make_draft(), actor_id="user-1")
        clock.advance(days=1)

        sent = ledger.send(invoice.invoice_id)

        assert sent.status == InvoiceStatus.SENT
        assert sent.sent_at == clock.now()

    def test_send_unknown_invoice(self, ledger):
        with pytest.raises(InvoiceNotFoundError):
            ledger.send(uuid4())

    def test_collect_stamps_payment(self, ledger, issue_invoice):
        invoice = issue_invoice()
        collected = ledger.collect(
            invoice.invoice_id,
            datetime(2025, 3, 10, tzinfo=timezone.utc),
            PaymentMethod.TRANSFER,
            reference="TRX-778",
        )

        assert collected.status == InvoiceStatus.COLLECTED
        assert collected.collected_at == datetime(2025, 3, 10, tzinfo=timezone.utc)
        assert collected.payment_method == PaymentMethod.TRANSFER
        assert collected.payment_reference == "TRX-778"
        assert ledger.get(invoice.invoice_id) == collected

    def test_collect_draft_rejected(self, ledger, make_draft, clock):
        invoice = ledger.create(make_draft(), actor_id="user-1")
        with pytest.raises(InvalidInvoiceTransitionError) as exc_info:
            ledger.collect(invoice.invoice_id, clock.now(), PaymentMethod.CASH)
        assert exc_info.value.current_status == "draft"
        assert ledger.get(invoice.invoice_id).status == InvoiceStatus.DRAFT

    def test_collect_unknown_invoice(self, ledger, clock):
        with pytest.raises(InvoiceNotFoundError):
            ledger.collect(uuid4(), clock.now(), PaymentMethod.CASH)

    def test_collect_twice_rejected(self, ledger, collect_invoice, clock):
        invoice = collect_invoice()
        with pytest.raises(InvalidInvoiceTransitionError):
            ledger.collect(invoice.invoice_id, clock.now(), PaymentMethod.CASH)

    def test_cancel_from_sent(self, ledger, issue_invoice):
        invoice = issue_invoice()
        assert ledger.cancel(invoice.invoice_id).status == InvoiceStatus.CANCELLED

    def test_cancelled_cannot_be_sent(self, ledger, make_draft):
        invoice = ledger.create(make_draft(), actor_id="user-1")
        ledger.cancel(invoice.invoice_id)
        with pytest.raises(InvalidInvoiceTransitionError):
            ledger.send(invoice.invoice_id)

    def test_set_status_bypasses_transition_rules(self, ledger, make_draft):
        invoice = ledger.create(make_draft(), actor_id="user-1")
        assert ledger.set_status(invoice.invoice_id, InvoiceStatus.OVERDUE).status == InvoiceStatus.OVERDUE


class TestOverdueSweep:
    def test_marks_only_sent_invoices_past_due(self, ledger, issue_invoice, make_draft, clock):
        late = issue_invoice(due_in_days=10)
        on_time = issue_invoice(due_in_days=60)
        draft = ledger.create(make_draft(due_in_days=5), actor_id="user-1")
        clock.advance(days=20)

        changed = ledger.mark_overdue()

        assert [i.invoice_id for i in changed] == [late.invoice_id]
        assert ledger.get(late.invoice_id).status == InvoiceStatus.OVERDUE
        assert ledger.get(on_time.invoice_id).status == InvoiceStatus.SENT
        assert ledger.get(draft.invoice_id).status == InvoiceStatus.DRAFT

    def test_overdue_invoice_can_be_collected(self, ledger, issue_invoice, clock):
        invoice = issue_invoice(due_in_days=1)
        clock.advance(days=2)
        ledger.mark_overdue()

        collected = ledger.collect(invoice.invoice_id, clock.now(), PaymentMethod.CHEQUE)

        assert collected.status == InvoiceStatus.COLLECTED

    def test_explicit_cutoff(self, ledger, issue_invoice, clock):
        issue_invoice(due_in_days=10)
        assert ledger.mark_overdue(as_of=clock.now() + timedelta(days=5)) == []
        assert len(ledger.mark_overdue(as_of=clock.now() + timedelta(days=11))) == 1


class TestCollectionHooks:
    def test_hook_failure_does_not_abort_collection(self, store, rules, clock, make_draft, captured_logs):
        calls = []
        hooks = PostCommitHooks("invoice_collected")
        hooks.register("broken", lambda invoice: 1 / 0)
        hooks.register("after", lambda invoice: calls.append(invoice.number))
        ledger = InvoiceLedger(InvoiceRepository(store), clock, rules, hooks)
        invoice = ledger.send(ledger.create(make_draft(), actor_id="user-1").invoice_id)

        collected = ledger.collect(invoice.invoice_id, clock.now(), PaymentMethod.TRANSFER)

        assert collected.status == InvoiceStatus.COLLECTED
        assert ledger.get(invoice.invoice_id).status == InvoiceStatus.COLLECTED
        assert calls == [invoice.number]
        assert [(o.name, o.succeeded) for o in ledger.last_hook_outcomes] == [
            ("broken", False),
            ("after", True),
        ]
        failures = [r for r in captured_logs() if r["message"] == "post_commit_hook_failed"]
        assert failures[0]["hook"] == "broken"
        assert failures[0]["project_id"] == PROJECT

    def test_hooks_not_run_when_collection_rejected(self, store, rules, clock, make_draft):
        calls = []
        hooks = PostCommitHooks("invoice_collected")
        hooks.register("spy", calls.append)
        ledger = InvoiceLedger(InvoiceRepository(store), clock, rules, hooks)
        invoice = ledger.create(make_draft(), actor_id="user-1")

        with pytest.raises(InvalidInvoiceTransitionError):
            ledger.collect(invoice.invoice_id, clock.now(), PaymentMethod.TRANSFER)
        assert calls == []

    def test_duplicate_hook_name_rejected(self):
        hooks = PostCommitHooks("invoice_collected")
        hooks.register("treasury", print)
        with pytest.raises(ValueError):
            hooks.register("treasury", print)
