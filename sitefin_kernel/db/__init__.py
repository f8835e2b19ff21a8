"""SQLAlchemy plumbing for the database-backed Store adapter."""

from sitefin_kernel.db.base import Base, UUIDString
from sitefin_kernel.db.engine import (
    create_engine_from_url,
    create_tables,
    drop_tables,
    make_session_factory,
    session_scope,
)

__all__ = [
    "Base",
    "UUIDString",
    "create_engine_from_url",
    "create_tables",
    "drop_tables",
    "make_session_factory",
    "session_scope",
]
