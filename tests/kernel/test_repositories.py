"""
Tests for the Store-backed repositories.

Every repository runs against both Store adapters: the codec must round-trip
through JSON, and legacy document shapes must normalize at the boundary.
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from sitefin_kernel.domain.types import (
    Alert,
    AlertPriority,
    AlertType,
    BlockedBy,
    ClientSnapshot,
    Expense,
    ExpenseStatus,
    Invoice,
    InvoiceStatus,
    PaymentMethod,
    PhaseBlock,
    ProjectPlan,
    TreasuryRecord,
)
from sitefin_kernel.exceptions import InvoiceNotFoundError, StoreWriteError
from sitefin_kernel.repositories import (
    AlertRepository,
    ExpenseRepository,
    InvoiceRepository,
    PhaseBlockRepository,
    ProjectPlanRepository,
    TreasuryRepository,
)
from sitefin_kernel.store.base import InMemoryStore

WHEN = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture(params=["memory", "sql"])
def any_store(request, store):
    if request.param == "memory":
        return store
    return request.getfixturevalue("sql_store")


def _invoice(project_id="proj-001", number="FAC-2025-001", **overrides) -> Invoice:
    fields = dict(
        invoice_id=uuid4(),
        number=number,
        project_id=project_id,
        quote_id="quote-001",
        client=ClientSnapshot(client_id="cli-1", name="Client", email="c@example.com"),
        subtotal=Decimal("10000.00"),
        tax=Decimal("2100.00"),
        total=Decimal("12100.00"),
        currency="EUR",
        issued_at=WHEN,
        due_at=WHEN,
        status=InvoiceStatus.DRAFT,
        created_by="user-1",
        created_at=WHEN,
        updated_at=WHEN,
    )
    fields.update(overrides)
    return Invoice(**fields)


class TestInvoiceRepository:
    def test_round_trip(self, any_store):
        repo = InvoiceRepository(any_store)
        invoice = _invoice(
            status=InvoiceStatus.COLLECTED,
            linked_phase=2,
            collected_at=WHEN,
            payment_method=PaymentMethod.TRANSFER,
            payment_reference="TRX-1",
        )
        repo.append_with(lambda existing: invoice)

        assert repo.get(invoice.invoice_id) == invoice
        assert repo.for_phase("proj-001", 2) == [invoice]

    def test_update_unknown_raises(self, any_store):
        repo = InvoiceRepository(any_store)
        with pytest.raises(InvoiceNotFoundError):
            repo.update(uuid4(), lambda i: i)

    def test_failed_change_leaves_collection_untouched(self, any_store):
        repo = InvoiceRepository(any_store)
        invoice = repo.append_with(lambda existing: _invoice())

        def _boom(_invoice):
            raise RuntimeError("rejected")

        with pytest.raises(RuntimeError):
            repo.update(invoice.invoice_id, _boom)
        assert repo.get(invoice.invoice_id) == invoice

    def test_remove_for_project(self, any_store):
        repo = InvoiceRepository(any_store)
        repo.append_with(lambda existing: _invoice("a", "FAC-2025-001"))
        repo.append_with(lambda existing: _invoice("b", "FAC-2025-002"))

        assert repo.remove_for_project("a") == 1
        assert [i.project_id for i in repo.all()] == ["b"]

    def test_legacy_document_shapes_normalized(self):
        invoice_id = uuid4()
        store = InMemoryStore({"invoices": [{
            "id": str(invoice_id),
            "number": "FAC-2024-007",
            "project_id": "legacy",
            "client": {"client_id": "c", "name": "N", "email": "e"},
            "subtotal": 1000,
            "tax": 210,
            "total": 1210,
            "issued_at": {"seconds": 1740819600, "nanoseconds": 0},
            "due_at": "2025-03-31T09:00:00",
            "status": "sent",
            "created_at": {"_seconds": 1740819600, "_nanoseconds": 0},
        }]})

        invoice = InvoiceRepository(store).get(invoice_id)

        assert invoice.total == Decimal("1210")
        assert invoice.issued_at == WHEN
        assert invoice.due_at == datetime(2025, 3, 31, 9, 0, tzinfo=timezone.utc)
        assert invoice.updated_at == WHEN
        assert invoice.currency == "EUR"


class TestTreasuryRepository:
    def test_put_replaces_per_project(self, any_store):
        repo = TreasuryRepository(any_store)
        first = TreasuryRecord("p", Decimal("1"), Decimal("0"), Decimal("1"), WHEN)
        second = TreasuryRecord("p", Decimal("5"), Decimal("2"), Decimal("3"), WHEN)
        repo.put(first)
        repo.put(second)

        assert repo.all() == [second]


class TestPhaseBlockRepository:
    def test_upsert_and_query(self, any_store):
        repo = PhaseBlockRepository(any_store)
        block = PhaseBlock("p", 2, True, "Pending collection Phase 1", WHEN, BlockedBy.SYSTEM)
        repo.upsert("p", 2, lambda current: block)

        assert repo.get("p", 2) == block
        assert repo.get("p", 3) is None

    def test_upsert_returning_none_is_a_no_op(self, any_store):
        repo = PhaseBlockRepository(any_store)
        assert repo.upsert("p", 2, lambda current: None) is None
        assert repo.all() == []


class TestAlertRepository:
    def test_payload_types_survive_round_trip(self, any_store):
        repo = AlertRepository(any_store)
        invoice_id = uuid4()
        alert = Alert(
            alert_id=uuid4(),
            project_id="p",
            alert_type=AlertType.OVERDUE_INVOICE,
            priority=AlertPriority.HIGH,
            title="Overdue invoice",
            message="m",
            created_at=WHEN,
            data={
                "invoice_id": invoice_id,
                "amount": Decimal("12100.00"),
                "days_overdue": 16,
                "due_at": WHEN.isoformat(),
            },
        )
        repo.upsert_unresolved(lambda a: False, lambda existing: alert)

        loaded = repo.get(alert.alert_id)
        assert loaded == alert
        assert loaded.data["invoice_id"] == invoice_id
        assert loaded.data["amount"] == Decimal("12100.00")


class TestExpenseAndPlanRepositories:
    def test_paid_filter_and_total(self, any_store):
        repo = ExpenseRepository(any_store)
        repo.add_many([
            Expense(uuid4(), "p", Decimal("5000"), ExpenseStatus.PAID),
            Expense(uuid4(), "p", Decimal("700"), ExpenseStatus.PENDING),
            Expense(uuid4(), "q", Decimal("9"), ExpenseStatus.PAID),
        ])

        assert [e.amount for e in repo.paid_for_project("p")] == [Decimal("5000")]
        assert repo.total_for_project("p") == Decimal("5700")

    def test_plan_phase_keys_are_ints(self, any_store):
        repo = ProjectPlanRepository(any_store)
        repo.put(ProjectPlan("p", {1: Decimal("10"), 2: Decimal("20")}, Decimal("30")))

        plan = repo.get("p")
        assert plan.cost_of_phase(2) == Decimal("20")
        assert plan.cost_of_phase(9) == Decimal("0")


class _RefusingStore(InMemoryStore):
    def set(self, key, value):
        return False


class TestWriteFailure:
    def test_refused_write_raises(self):
        repo = ExpenseRepository(_RefusingStore())
        with pytest.raises(StoreWriteError) as exc_info:
            repo.add(Expense(uuid4(), "p", Decimal("1"), ExpenseStatus.PAID))
        assert exc_info.value.key == "expenses"
