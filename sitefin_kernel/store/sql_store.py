"""
SqlStore -- Store adapter backed by a SQLAlchemy table.

Contract:
    One row per collection key; the collection is a JSON document.  Every
    successful ``set`` bumps the row's ``version`` so an external writer can
    detect that a collection changed underneath it.

Failure modes:
    - ``set`` returns False (and logs the database error) when the write
      transaction fails; repositories turn that into ``StoreWriteError``.
    - ``get`` lets database errors propagate; there is no meaningful default
      for an unreachable database.
"""

from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, String, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Mapped, Session, mapped_column, sessionmaker

from sitefin_kernel.db.base import Base
from sitefin_kernel.db.engine import session_scope
from sitefin_kernel.logging_config import get_logger
from sitefin_kernel.store.base import Store

logger = get_logger("store.sql")


class KeyValueRecord(Base):
    """A whole collection persisted under a fixed key."""

    __tablename__ = "sitefin_collections"

    key: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=True)
    version: Mapped[int] = mapped_column(nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<KeyValueRecord {self.key} v{self.version}>"


class SqlStore(Store):
    """Key-value Store over ``sitefin_collections``."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        super().__init__()
        self._session_factory = session_factory

    def get(self, key: str, default: Any) -> Any:
        with session_scope(self._session_factory) as session:
            record = self._find(session, key)
            if record is None or record.value is None:
                return default
            return copy.deepcopy(record.value)

    def set(self, key: str, value: Any) -> bool:
        try:
            with session_scope(self._session_factory) as session:
                record = self._find(session, key)
                now = datetime.now(timezone.utc)
                if record is None:
                    record = KeyValueRecord(key=key, value=value, version=1, updated_at=now)
                    session.add(record)
                    version = 1
                else:
                    record.value = copy.deepcopy(value)
                    record.version = record.version + 1
                    record.updated_at = now
                    version = record.version
        except SQLAlchemyError:
            logger.exception("store_write_failed", extra={"key": key})
            return False

        logger.debug("store_write", extra={"key": key, "version": version})
        return True

    def version(self, key: str) -> int:
        """Current version of a collection (0 when never written)."""
        with session_scope(self._session_factory) as session:
            record = self._find(session, key)
            return 0 if record is None else record.version

    @staticmethod
    def _find(session: Session, key: str) -> KeyValueRecord | None:
        return session.execute(
            select(KeyValueRecord).where(KeyValueRecord.key == key)
        ).scalar_one_or_none()
