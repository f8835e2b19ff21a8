"""
FinanceRules schema.

The runtime rule set of the consistency engine: tax and payment terms for
generated invoices, the numbering policy, and every alert and health
threshold.  YAML files are parsed into this frozen dataclass by the loader;
services receive it through their constructors.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from sitefin_kernel.domain.types import InvoiceNumbering, OverdueAlertScope


@dataclass(frozen=True)
class FinanceRules:
    """Thresholds and rates applied by the services."""

    # Invoicing
    currency: str = "EUR"
    tax_rate: Decimal = Decimal("0.21")
    payment_terms_days: int = 30
    invoice_prefix: str = "FAC"
    invoice_digits: int = 3
    numbering: InvoiceNumbering = InvoiceNumbering.GLOBAL

    # Alert thresholds
    treasury_alert_factor: Decimal = Decimal("1.2")  # balance < cost * factor
    cost_overrun_factor: Decimal = Decimal("1.1")  # actual > budget * factor
    overdue_critical_after_days: int = 30
    overdue_high_after_days: int = 15
    overdue_alert_scope: OverdueAlertScope = OverdueAlertScope.PROJECT

    # Treasury health (percent of next phase cost covered)
    health_green_above: Decimal = Decimal("50")
    health_yellow_above: Decimal = Decimal("20")

    # Identity, filled by the loader
    source: str = "defaults"
    checksum: str | None = None
