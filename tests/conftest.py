"""
Pytest fixtures for the sitefin test suite.

Provides:
- Deterministic clock and default finance rules
- In-memory Store and a SQLite-backed SqlStore (no external database)
- A fully wired FinanceEngine
- Invoice / expense / plan builders
- Captured structured logs
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from sitefin_config.schema import FinanceRules
from sitefin_kernel.db.engine import (
    create_engine_from_url,
    create_tables,
    drop_tables,
    make_session_factory,
)
from sitefin_kernel.domain.clock import DeterministicClock
from sitefin_kernel.domain.types import (
    ClientSnapshot,
    Expense,
    ExpenseStatus,
    InvoiceDraft,
    PaymentMethod,
    ProjectPlan,
)
from sitefin_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from sitefin_kernel.store.base import InMemoryStore
from sitefin_kernel.store.sql_store import SqlStore
from sitefin_services.wiring import build_engine

PROJECT = "proj-001"
START = datetime(2025, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture sitefin logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, engine):
            engine.ledger.collect(...)
            logs = captured_logs()
            assert any(r["message"] == "invoice_collected" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("sitefin")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Core fixtures
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock(START)


@pytest.fixture
def rules():
    return FinanceRules()


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def sql_session_factory():
    """In-memory SQLite database with the sitefin tables."""
    db = create_engine_from_url("sqlite:///:memory:")
    create_tables(db)
    yield make_session_factory(db)
    drop_tables(db)
    db.dispose()


@pytest.fixture
def sql_store(sql_session_factory):
    return SqlStore(sql_session_factory)


@pytest.fixture
def engine(store, rules, clock):
    return build_engine(store, rules=rules, clock=clock)


# =============================================================================
# Builders
# =============================================================================


@pytest.fixture
def client():
    return ClientSnapshot(
        client_id="cli-001",
        name="Obras Norte SL",
        email="billing@obrasnorte.example",
        tax_id="B12345678",
    )


@pytest.fixture
def make_draft(client, clock):
    """Build an InvoiceDraft; ``subtotal`` gets 21% tax unless ``tax`` is given."""

    def _make(
        project_id: str = PROJECT,
        subtotal: Decimal = Decimal("10000.00"),
        tax: Decimal | None = None,
        linked_phase: int | None = None,
        due_in_days: int = 30,
        issued_at: datetime | None = None,
    ) -> InvoiceDraft:
        tax = tax if tax is not None else (subtotal * Decimal("0.21")).quantize(Decimal("0.01"))
        issued = issued_at or clock.now()
        return InvoiceDraft(
            project_id=project_id,
            quote_id="quote-001",
            client=client,
            subtotal=subtotal,
            tax=tax,
            total=subtotal + tax,
            issued_at=issued,
            due_at=issued + timedelta(days=due_in_days),
            linked_phase=linked_phase,
        )

    return _make


@pytest.fixture
def issue_invoice(engine, make_draft):
    """Create and send an invoice; returns the sent invoice."""

    def _issue(**kwargs):
        invoice = engine.ledger.create(make_draft(**kwargs), actor_id="user-1")
        return engine.ledger.send(invoice.invoice_id)

    return _issue


@pytest.fixture
def collect_invoice(engine, issue_invoice, clock):
    """Issue, send and collect an invoice; returns the collected invoice."""

    def _collect(**kwargs):
        invoice = issue_invoice(**kwargs)
        return engine.ledger.collect(invoice.invoice_id, clock.now(), PaymentMethod.TRANSFER)

    return _collect


@pytest.fixture
def add_expense(engine):
    def _add(
        amount: Decimal,
        status: ExpenseStatus = ExpenseStatus.PAID,
        project_id: str = PROJECT,
        concept: str | None = None,
    ) -> Expense:
        return engine.expenses.add(Expense(
            expense_id=uuid4(),
            project_id=project_id,
            amount=amount,
            status=status,
            concept=concept,
            paid_at=START if status == ExpenseStatus.PAID else None,
        ))

    return _add


@pytest.fixture
def plan(engine):
    """Register a three-phase plan for PROJECT with a 100000 budget."""
    return engine.project_plans.put(ProjectPlan(
        project_id=PROJECT,
        phase_costs={
            1: Decimal("30000"),
            2: Decimal("40000"),
            3: Decimal("30000"),
        },
        total_budget=Decimal("100000"),
    ))
