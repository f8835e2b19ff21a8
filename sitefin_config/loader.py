"""
Rules loader (``sitefin_config.loader``).

Responsibility
--------------
Reads a YAML rules file and parses it into a validated ``FinanceRules``.
Services never call this directly; the runtime entry point is
``sitefin_config.get_active_rules()``.

Invariants enforced
-------------------
* Unknown keys are rejected; a typo must not silently fall back to a default.
* Rates and factors are parsed as ``Decimal`` from their textual form, so
  ``0.21`` in YAML never passes through a binary float.
* ``compute_checksum`` is deterministic for identical input.

Failure modes
-------------
* Missing YAML file -> ``FileNotFoundError`` propagates.
* Malformed YAML -> ``yaml.YAMLError`` propagates.
* Out-of-range or unknown values -> ``InvalidRulesError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields, replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from sitefin_config.schema import FinanceRules
from sitefin_kernel.domain.types import InvoiceNumbering, OverdueAlertScope
from sitefin_kernel.exceptions import InvalidRulesError

_DECIMAL_FIELDS = frozenset({
    "tax_rate",
    "treasury_alert_factor",
    "cost_overrun_factor",
    "health_green_above",
    "health_yellow_above",
})
_INT_FIELDS = frozenset({
    "payment_terms_days",
    "invoice_digits",
    "overdue_critical_after_days",
    "overdue_high_after_days",
})
_ENUM_FIELDS = {
    "numbering": InvoiceNumbering,
    "overdue_alert_scope": OverdueAlertScope,
}
_IDENTITY_FIELDS = frozenset({"source", "checksum"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _parse_decimal(name: str, value: Any) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise InvalidRulesError(name, value, "must be numeric") from exc


def _parse_int(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidRulesError(name, value, "must be an integer")
    return value


def rules_from_dict(data: dict[str, Any], source: str = "inline") -> FinanceRules:
    """
    Build ``FinanceRules`` from a parsed mapping.

    Keys absent from ``data`` keep their defaults.  The result carries the
    checksum of ``data`` and the given ``source`` label.

    Raises:
        InvalidRulesError: unknown key or invalid value.
    """
    known = {f.name for f in fields(FinanceRules)} - _IDENTITY_FIELDS
    values: dict[str, Any] = {}

    for name, raw in data.items():
        if name not in known:
            raise InvalidRulesError(name, raw, "unknown rule")
        if name in _DECIMAL_FIELDS:
            values[name] = _parse_decimal(name, raw)
        elif name in _INT_FIELDS:
            values[name] = _parse_int(name, raw)
        elif name in _ENUM_FIELDS:
            try:
                values[name] = _ENUM_FIELDS[name](raw)
            except ValueError as exc:
                allowed = ", ".join(m.value for m in _ENUM_FIELDS[name])
                raise InvalidRulesError(name, raw, f"must be one of: {allowed}") from exc
        else:
            values[name] = str(raw)

    rules = replace(
        FinanceRules(), **values, source=source, checksum=compute_checksum(data),
    )
    validate_rules(rules)
    return rules


def validate_rules(rules: FinanceRules) -> None:
    """
    Range checks across fields.

    Raises:
        InvalidRulesError: first violation found.
    """
    if not (Decimal("0") <= rules.tax_rate < Decimal("1")):
        raise InvalidRulesError("tax_rate", rules.tax_rate, "must be in [0, 1)")
    if rules.payment_terms_days < 0:
        raise InvalidRulesError(
            "payment_terms_days", rules.payment_terms_days, "must be >= 0",
        )
    if rules.invoice_digits < 1:
        raise InvalidRulesError("invoice_digits", rules.invoice_digits, "must be >= 1")
    if not rules.invoice_prefix:
        raise InvalidRulesError("invoice_prefix", rules.invoice_prefix, "must not be empty")
    if len(rules.currency) != 3:
        raise InvalidRulesError("currency", rules.currency, "must be an ISO 4217 code")
    for name in ("treasury_alert_factor", "cost_overrun_factor"):
        if getattr(rules, name) <= 0:
            raise InvalidRulesError(name, getattr(rules, name), "must be > 0")
    if rules.health_yellow_above >= rules.health_green_above:
        raise InvalidRulesError(
            "health_yellow_above",
            rules.health_yellow_above,
            "must be below health_green_above",
        )
    if rules.overdue_high_after_days >= rules.overdue_critical_after_days:
        raise InvalidRulesError(
            "overdue_high_after_days",
            rules.overdue_high_after_days,
            "must be below overdue_critical_after_days",
        )


def load_rules(path: Path) -> FinanceRules:
    """Load and validate a rules file."""
    data = load_yaml_file(path)
    if not isinstance(data, dict):
        raise InvalidRulesError("<root>", data, "rules file must contain a mapping")
    # Accept either a bare mapping or one nested under ``rules:``
    if set(data) == {"rules"} and isinstance(data["rules"], dict):
        data = data["rules"]
    return rules_from_dict(data, source=str(path))
