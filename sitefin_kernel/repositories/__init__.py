"""Store-backed repositories, one per entity collection."""

from sitefin_kernel.repositories.alerts import AlertRepository
from sitefin_kernel.repositories.base import CollectionRepository
from sitefin_kernel.repositories.expenses import ExpenseRepository
from sitefin_kernel.repositories.invoices import InvoiceRepository
from sitefin_kernel.repositories.phase_blocks import (
    PhaseBlockRepository,
    UnblockAuditRepository,
)
from sitefin_kernel.repositories.project_plans import ProjectPlanRepository
from sitefin_kernel.repositories.treasury import TreasuryRepository

__all__ = [
    "AlertRepository",
    "CollectionRepository",
    "ExpenseRepository",
    "InvoiceRepository",
    "PhaseBlockRepository",
    "ProjectPlanRepository",
    "TreasuryRepository",
    "UnblockAuditRepository",
]
