"""
Module: sitefin_kernel.db.engine
Responsibility: SQLAlchemy engine construction, session factories and the
    transactional scope used by ``SqlStore``.
Architecture position: Kernel > DB.  May import from db/base.py only.

Engines are built explicitly and handed to the store that needs them; this
module keeps no module-level engine.

Failure modes:
    - ``sqlalchemy.exc.ArgumentError`` for a malformed database URL.
    - Connection errors surface on first use, not at construction.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from sitefin_kernel.db.base import Base
from sitefin_kernel.logging_config import get_logger

logger = get_logger("db.engine")


def create_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 5,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
) -> Engine:
    """
    Build an engine for the given URL.

    SQLite URLs (including ``sqlite:///:memory:``) share one connection via
    ``StaticPool`` so an in-memory database survives across sessions.
    Any other backend uses a ``QueuePool`` with pre-ping.
    """
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        engine = create_engine(
            database_url,
            echo=echo,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
        )

    logger.info(
        "engine_initialized",
        extra={"dialect": engine.dialect.name, "echo": echo},
    )
    return engine


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Session factory bound to ``engine`` (objects survive commit)."""
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(
    session_factory: sessionmaker[Session],
) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Commits on normal exit; rolls back and re-raises on exception; always
    closes the session.
    """
    session = session_factory()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(engine: Engine) -> None:
    """Create all tables known to ``Base.metadata``."""
    # Register the key-value model with the metadata before create_all.
    from sitefin_kernel.store import sql_store  # noqa: F401

    Base.metadata.create_all(engine)


def drop_tables(engine: Engine) -> None:
    """Drop all tables. Use with caution - primarily for testing."""
    Base.metadata.drop_all(engine)
