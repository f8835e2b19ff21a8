"""InvoiceRepository -- the ``invoices`` collection."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import asdict
from typing import Any
from uuid import UUID

from sitefin_kernel.domain.types import (
    ClientSnapshot,
    Invoice,
    InvoiceStatus,
    PaymentMethod,
)
from sitefin_kernel.domain.values import normalize_timestamp, timestamp_to_text
from sitefin_kernel.exceptions import InvoiceNotFoundError
from sitefin_kernel.repositories.base import (
    CollectionRepository,
    money_from_record,
    money_to_text,
)


class InvoiceRepository(CollectionRepository[Invoice]):
    """
    Invoices in issue order.

    ``append_with`` and ``update`` run their callback under the collection
    lock so numbering and lifecycle checks see the collection exactly as
    it will be written.
    """

    key = "invoices"

    def _to_record(self, invoice: Invoice) -> dict[str, Any]:
        return {
            "id": str(invoice.invoice_id),
            "number": invoice.number,
            "project_id": invoice.project_id,
            "quote_id": invoice.quote_id,
            "client": asdict(invoice.client),
            "subtotal": money_to_text(invoice.subtotal),
            "tax": money_to_text(invoice.tax),
            "total": money_to_text(invoice.total),
            "currency": invoice.currency,
            "issued_at": timestamp_to_text(invoice.issued_at),
            "due_at": timestamp_to_text(invoice.due_at),
            "status": invoice.status.value,
            "created_by": invoice.created_by,
            "created_at": timestamp_to_text(invoice.created_at),
            "updated_at": timestamp_to_text(invoice.updated_at),
            "linked_phase": invoice.linked_phase,
            "payment_plan_number": invoice.payment_plan_number,
            "concept": invoice.concept,
            "sent_at": timestamp_to_text(invoice.sent_at),
            "collected_at": timestamp_to_text(invoice.collected_at),
            "payment_method": (
                invoice.payment_method.value if invoice.payment_method else None
            ),
            "payment_reference": invoice.payment_reference,
        }

    def _from_record(self, record: dict[str, Any]) -> Invoice:
        method = record.get("payment_method")
        return Invoice(
            invoice_id=UUID(record["id"]),
            number=record["number"],
            project_id=record["project_id"],
            quote_id=record.get("quote_id", ""),
            client=ClientSnapshot(**record["client"]),
            subtotal=money_from_record(record["subtotal"]),
            tax=money_from_record(record["tax"]),
            total=money_from_record(record["total"]),
            currency=record.get("currency", "EUR"),
            issued_at=normalize_timestamp(record["issued_at"]),
            due_at=normalize_timestamp(record["due_at"]),
            status=InvoiceStatus(record["status"]),
            created_by=record.get("created_by", ""),
            created_at=normalize_timestamp(record["created_at"]),
            updated_at=normalize_timestamp(record.get("updated_at") or record["created_at"]),
            linked_phase=record.get("linked_phase"),
            payment_plan_number=record.get("payment_plan_number"),
            concept=record.get("concept"),
            sent_at=normalize_timestamp(record.get("sent_at")),
            collected_at=normalize_timestamp(record.get("collected_at")),
            payment_method=PaymentMethod(method) if method else None,
            payment_reference=record.get("payment_reference"),
        )

    # -- queries ------------------------------------------------------------

    def get(self, invoice_id: UUID) -> Invoice | None:
        for invoice in self._load():
            if invoice.invoice_id == invoice_id:
                return invoice
        return None

    def for_project(self, project_id: str) -> list[Invoice]:
        return [i for i in self._load() if i.project_id == project_id]

    def for_phase(self, project_id: str, phase_number: int) -> list[Invoice]:
        return [
            i for i in self._load()
            if i.project_id == project_id and i.linked_phase == phase_number
        ]

    # -- writes -------------------------------------------------------------

    def append_with(self, build: Callable[[list[Invoice]], Invoice]) -> Invoice:
        """Build a new invoice from the current collection and append it."""
        created: list[Invoice] = []

        def _append(invoices: list[Invoice]) -> list[Invoice]:
            invoice = build(invoices)
            created.append(invoice)
            return [*invoices, invoice]

        self._mutate(_append)
        return created[0]

    def update(
        self, invoice_id: UUID, change: Callable[[Invoice], Invoice],
    ) -> Invoice:
        """
        Replace one invoice with ``change(invoice)``.

        Raises:
            InvoiceNotFoundError: No invoice with that id.
        """
        updated: list[Invoice] = []

        def _replace(invoices: list[Invoice]) -> list[Invoice]:
            result = []
            for invoice in invoices:
                if invoice.invoice_id == invoice_id:
                    invoice = change(invoice)
                    updated.append(invoice)
                result.append(invoice)
            if not updated:
                raise InvoiceNotFoundError(str(invoice_id))
            return result

        self._mutate(_replace)
        return updated[0]

    def update_where(
        self,
        predicate: Callable[[Invoice], bool],
        change: Callable[[Invoice], Invoice],
    ) -> list[Invoice]:
        """Apply ``change`` to every matching invoice; returns the changed ones."""
        updated: list[Invoice] = []

        def _replace(invoices: list[Invoice]) -> list[Invoice]:
            result = []
            for invoice in invoices:
                if predicate(invoice):
                    invoice = change(invoice)
                    updated.append(invoice)
                result.append(invoice)
            return result

        self._mutate(_replace)
        return updated

    def remove_for_project(self, project_id: str) -> int:
        removed = 0

        def _filter(invoices: list[Invoice]) -> list[Invoice]:
            nonlocal removed
            kept = [i for i in invoices if i.project_id != project_id]
            removed = len(invoices) - len(kept)
            return kept

        self._mutate(_filter)
        return removed
