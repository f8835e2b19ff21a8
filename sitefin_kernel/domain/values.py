"""
Money and time value helpers.

Responsibility:
    Centralizes decimal coercion, rounding, percentage arithmetic and the
    single timestamp normalization used at the repository boundary.

Invariants enforced:
    - No floats for monetary amounts: ``to_decimal`` rejects ``float``.
    - ``round_money`` is the only rounding function for money and
      percentages.
    - Every timestamp leaving ``normalize_timestamp`` is a timezone-aware
      UTC ``datetime``.
"""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

DEFAULT_ROUNDING = ROUND_HALF_UP
ZERO = Decimal("0")
HUNDRED = Decimal("100")
_SECONDS_PER_DAY = 86400


def to_decimal(value: Any) -> Decimal:
    """
    Coerce an amount to ``Decimal``.

    Accepts ``Decimal``, ``int`` and numeric strings.

    Raises:
        TypeError: If value is a float (or bool).
        ValueError: If a string is not numeric.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"Monetary amounts must not be {type(value).__name__}: {value!r}")
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, str):
        try:
            return Decimal(value.strip())
        except InvalidOperation as exc:
            raise ValueError(f"Not a numeric amount: {value!r}") from exc
    raise TypeError(f"Cannot convert {type(value).__name__} to Decimal")


def round_money(value: Decimal, decimal_places: int = 2) -> Decimal:
    """Round a monetary value (ROUND_HALF_UP)."""
    quantum = Decimal(1).scaleb(-decimal_places)
    return value.quantize(quantum, rounding=DEFAULT_ROUNDING)


def percent_of(part: Decimal, whole: Decimal) -> Decimal:
    """``part / whole * 100``; caller guarantees ``whole != 0``."""
    return part / whole * HUNDRED


def format_percent(value: Decimal) -> str:
    """One-decimal textual percentage, e.g. ``"15.0"``."""
    return str(round_money(value, 1))


def whole_days_between(earlier: datetime, later: datetime) -> int:
    """Whole days elapsed from ``earlier`` to ``later`` (floored)."""
    seconds = (later - earlier).total_seconds()
    return int(seconds // _SECONDS_PER_DAY)


def normalize_timestamp(value: Any) -> datetime | None:
    """
    Normalize any stored timestamp shape into an aware UTC ``datetime``.

    Accepted shapes:
        - ``datetime`` (naive values are treated as UTC)
        - ``date`` (midnight UTC)
        - ISO-8601 string
        - wrapped timestamps ``{"seconds": int, "nanoseconds": int}``
          (also ``_seconds`` / ``_nanoseconds``) as written by document stores
        - ``None`` passes through

    Raises:
        ValueError: If the value cannot be interpreted as a timestamp.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if isinstance(value, str):
        return normalize_timestamp(datetime.fromisoformat(value))
    if isinstance(value, dict):
        seconds = value.get("seconds", value.get("_seconds"))
        if seconds is None:
            raise ValueError(f"Cannot interpret timestamp mapping: {value!r}")
        nanos = value.get("nanoseconds", value.get("_nanoseconds", 0)) or 0
        return datetime.fromtimestamp(
            int(seconds) + int(nanos) / 1_000_000_000, tz=timezone.utc,
        )
    raise ValueError(f"Cannot interpret timestamp: {value!r}")


def timestamp_to_text(value: datetime | None) -> str | None:
    """Serialize a timestamp for storage (ISO-8601, UTC)."""
    if value is None:
        return None
    return normalize_timestamp(value).isoformat()
