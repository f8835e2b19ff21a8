"""Key-value Store collaborator and its adapters."""

from sitefin_kernel.store.base import InMemoryStore, Store
from sitefin_kernel.store.sql_store import KeyValueRecord, SqlStore

__all__ = [
    "InMemoryStore",
    "KeyValueRecord",
    "SqlStore",
    "Store",
]
