"""
CollectionRepository -- abstract base for the per-entity repositories.

Responsibility:
    Every entity collection (invoices, treasury records, phase blocks,
    audit entries, alerts, expenses, project plans) lives in the Store as a
    single JSON-compatible list under a fixed key.  This base class owns
    the codec boundary and the locked read-modify-write cycle; subclasses
    supply ``_to_record`` / ``_from_record`` and their queries.

Architecture position:
    Kernel > Repositories.  Depends on the Store and the domain types only.
    Services receive repositories through their constructors and never
    touch the Store directly.

Invariants enforced:
    - Timestamps leave the repository as aware UTC ``datetime`` values
      whatever shape the Store returned (``normalize_timestamp``).
    - Money leaves the repository as ``Decimal`` and is stored as a string.
    - Whole-collection writes happen under ``Store.lock(key)``; two
      in-process writers of one collection never lose an update.

Failure modes:
    - ``StoreWriteError`` when ``Store.set`` reports failure.  The
      collection is left as the Store last persisted it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from decimal import Decimal
from typing import Any, Generic, TypeVar

from sitefin_kernel.domain.values import to_decimal
from sitefin_kernel.exceptions import StoreWriteError
from sitefin_kernel.logging_config import get_logger
from sitefin_kernel.store.base import Store

logger = get_logger("repositories")

EntityType = TypeVar("EntityType")


def money_to_text(value: Decimal | None) -> str | None:
    if value is None:
        return None
    return str(value)


def money_from_record(value: Any) -> Decimal | None:
    """Stored amounts are strings; legacy rows may hold ints."""
    if value is None:
        return None
    if isinstance(value, float):
        # Legacy documents written by a JavaScript client.
        return Decimal(str(value))
    return to_decimal(value)


class CollectionRepository(ABC, Generic[EntityType]):
    """
    Abstract base class for Store-backed collections.

    Contract:
        ``_load()`` returns every entity in the collection in stored order;
        ``_mutate(fn)`` applies ``fn`` to the decoded list under the
        collection lock and persists whatever list it returns.

    Guarantees:
        - The stored list is always fully rewritten, never patched.
        - A failed write raises and leaves no partial state in memory.

    Non-goals:
        - Does NOT provide cross-collection atomicity.  A cascade touching
          invoices and alerts performs two independent writes.
    """

    key: str = ""

    def __init__(self, store: Store):
        self._store = store

    @abstractmethod
    def _to_record(self, entity: EntityType) -> dict[str, Any]:
        ...

    @abstractmethod
    def _from_record(self, record: dict[str, Any]) -> EntityType:
        ...

    def _load(self) -> list[EntityType]:
        records = self._store.get(self.key, [])
        return [self._from_record(record) for record in records or []]

    def _save(self, entities: Iterable[EntityType]) -> None:
        records = [self._to_record(entity) for entity in entities]
        if not self._store.set(self.key, records):
            logger.error("collection_write_failed", extra={"key": self.key})
            raise StoreWriteError(self.key)

    def _mutate(
        self, fn: Callable[[list[EntityType]], list[EntityType]],
    ) -> list[EntityType]:
        """Locked read-modify-write of the whole collection."""
        with self._store.lock(self.key):
            updated = fn(self._load())
            self._save(updated)
            return updated

    def all(self) -> list[EntityType]:
        return self._load()
