"""
AlertRepository -- the ``alerts`` collection.

Alert payloads carry Decimals and UUIDs.  They are tagged on the way into
the Store so a reloaded alert compares equal to the one that was written.
"""

from __future__ import annotations

from collections.abc import Callable
from decimal import Decimal
from typing import Any
from uuid import UUID

from sitefin_kernel.domain.types import Alert, AlertPriority, AlertType
from sitefin_kernel.domain.values import normalize_timestamp, timestamp_to_text
from sitefin_kernel.repositories.base import CollectionRepository

_DECIMAL_TAG = "$decimal"
_UUID_TAG = "$uuid"


def _encode_payload(value: Any) -> Any:
    if isinstance(value, Decimal):
        return {_DECIMAL_TAG: str(value)}
    if isinstance(value, UUID):
        return {_UUID_TAG: str(value)}
    if isinstance(value, dict):
        return {k: _encode_payload(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode_payload(v) for v in value]
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


def _decode_payload(value: Any) -> Any:
    if isinstance(value, dict):
        if set(value) == {_DECIMAL_TAG}:
            return Decimal(value[_DECIMAL_TAG])
        if set(value) == {_UUID_TAG}:
            return UUID(value[_UUID_TAG])
        return {k: _decode_payload(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_decode_payload(v) for v in value]
    return value


class AlertRepository(CollectionRepository[Alert]):
    key = "alerts"

    def _to_record(self, alert: Alert) -> dict[str, Any]:
        return {
            "id": str(alert.alert_id),
            "project_id": alert.project_id,
            "type": alert.alert_type.value,
            "priority": alert.priority.value,
            "title": alert.title,
            "message": alert.message,
            "recommended_action": alert.recommended_action,
            "data": _encode_payload(alert.data),
            "resolved": alert.resolved,
            "resolution_note": alert.resolution_note,
            "resolved_by": alert.resolved_by,
            "resolved_at": timestamp_to_text(alert.resolved_at),
            "created_at": timestamp_to_text(alert.created_at),
        }

    def _from_record(self, record: dict[str, Any]) -> Alert:
        return Alert(
            alert_id=UUID(record["id"]),
            project_id=record["project_id"],
            alert_type=AlertType(record["type"]),
            priority=AlertPriority(record["priority"]),
            title=record.get("title", ""),
            message=record.get("message", ""),
            created_at=normalize_timestamp(record["created_at"]),
            recommended_action=record.get("recommended_action"),
            data=_decode_payload(record.get("data") or {}),
            resolved=bool(record.get("resolved", False)),
            resolution_note=record.get("resolution_note"),
            resolved_by=record.get("resolved_by"),
            resolved_at=normalize_timestamp(record.get("resolved_at")),
        )

    # -- queries ------------------------------------------------------------

    def get(self, alert_id: UUID) -> Alert | None:
        for alert in self._load():
            if alert.alert_id == alert_id:
                return alert
        return None

    def for_project(self, project_id: str) -> list[Alert]:
        return [a for a in self._load() if a.project_id == project_id]

    def unresolved(self) -> list[Alert]:
        return [a for a in self._load() if not a.resolved]

    # -- writes -------------------------------------------------------------

    def upsert_unresolved(
        self,
        match: Callable[[Alert], bool],
        build: Callable[[Alert | None], Alert],
    ) -> Alert:
        """
        Update the first unresolved alert satisfying ``match`` in place, or
        append a new one.  ``build`` receives the existing alert (or None).
        """
        result: list[Alert] = []

        def _apply(alerts: list[Alert]) -> list[Alert]:
            for index, alert in enumerate(alerts):
                if not alert.resolved and match(alert):
                    updated = build(alert)
                    result.append(updated)
                    return [*alerts[:index], updated, *alerts[index + 1:]]
            created = build(None)
            result.append(created)
            return [*alerts, created]

        self._mutate(_apply)
        return result[0]

    def update_where(
        self,
        predicate: Callable[[Alert], bool],
        change: Callable[[Alert], Alert],
    ) -> list[Alert]:
        """Apply ``change`` to every matching alert; returns the changed ones."""
        changed: list[Alert] = []

        def _apply(alerts: list[Alert]) -> list[Alert]:
            result = []
            for alert in alerts:
                if predicate(alert):
                    alert = change(alert)
                    changed.append(alert)
                result.append(alert)
            return result

        self._mutate(_apply)
        return changed

    def remove_for_project(self, project_id: str) -> int:
        removed = 0

        def _filter(alerts: list[Alert]) -> list[Alert]:
            nonlocal removed
            kept = [a for a in alerts if a.project_id != project_id]
            removed = len(alerts) - len(kept)
            return kept

        self._mutate(_filter)
        return removed
