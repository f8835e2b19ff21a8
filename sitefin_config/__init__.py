"""
sitefin_config -- single public entrypoint for finance rules.

Responsibility:
    ``get_active_rules()`` is the only way services obtain their rates and
    thresholds at runtime.  No other component reads rule files or
    environment variables.

Architecture position:
    Configuration.  Sits above ``sitefin_kernel`` and below
    ``sitefin_services``; the kernel never imports from this package.

Failure modes:
    - ``FileNotFoundError`` -- the requested rules file does not exist.
    - ``InvalidRulesError`` -- unknown key or out-of-range value.

Audit relevance:
    Every successful call emits a ``SITEFIN_RULES_TRACE`` log entry with
    the source path and checksum, tying alerts and invoices back to the
    exact rule set that produced them.
"""

from __future__ import annotations

import os
from pathlib import Path

from sitefin_config.loader import compute_checksum, load_rules, rules_from_dict
from sitefin_config.schema import FinanceRules
from sitefin_kernel.logging_config import get_logger

_logger = get_logger("config")

RULES_PATH_ENV = "SITEFIN_RULES_PATH"
DEFAULT_RULES_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_rules(path: Path | str | None = None) -> FinanceRules:
    """
    Load the active rule set.

    Resolution order: explicit ``path``, then ``$SITEFIN_RULES_PATH``, then
    the packaged ``defaults.yaml``.
    """
    if path is None:
        path = os.environ.get(RULES_PATH_ENV) or DEFAULT_RULES_PATH
    rules = load_rules(Path(path))

    _logger.info(
        "SITEFIN_RULES_TRACE",
        extra={
            "trace_type": "SITEFIN_RULES_TRACE",
            "rules_source": rules.source,
            "checksum": rules.checksum,
            "numbering": rules.numbering.value,
            "overdue_alert_scope": rules.overdue_alert_scope.value,
        },
    )
    return rules


__all__ = [
    "DEFAULT_RULES_PATH",
    "FinanceRules",
    "RULES_PATH_ENV",
    "compute_checksum",
    "get_active_rules",
    "load_rules",
    "rules_from_dict",
]
