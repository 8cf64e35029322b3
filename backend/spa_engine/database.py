# backend/spa_engine/database.py
"""
Database engine, session factory, and metadata shared across the engine.
"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .core.config import settings

logger = logging.getLogger(__name__)

Base = declarative_base()

# PostgreSQL SQLSTATEs for serialization failure / deadlock, plus SQLite lock contention
_TRANSIENT_SQLSTATES = {"40001", "40P01"}
_TRANSIENT_ERROR_SNIPPETS = (
    "could not serialize access",
    "deadlock detected",
    "database is locked",
    "database table is locked",
)


# Session execution option marking a unit of work that will write
WRITE_TRANSACTION_OPTION = "spa_write_transaction"


def _install_sqlite_serialization(engine: Engine) -> None:
    """
    Make SQLite take the write lock up front, but only for write units.

    pysqlite defers BEGIN until the first DML statement, which lets two writers
    both pass a read-then-write check. Units marked with
    ``WRITE_TRANSACTION_OPTION`` emit ``BEGIN IMMEDIATE`` so check-then-write
    sequences are serialized the same way row locks serialize them on
    PostgreSQL. Everything else gets a deferred ``BEGIN``, and WAL journaling
    keeps open readers from blocking a writer's commit.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()
        connection_record.info["connect_time"] = datetime.now()

    @event.listens_for(engine, "begin")
    def _begin(conn: Any) -> None:
        if conn.get_execution_options().get(WRITE_TRANSACTION_OPTION):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")


def create_db_engine(url: str | None = None, **overrides: Any) -> Engine:
    """
    Build an engine for the given URL with dialect-appropriate settings.

    SQLite engines get a generous busy timeout and immediate write transactions;
    PostgreSQL engines get pooling and a statement timeout, which is the
    effective bound on every engine operation.
    """
    db_url = settings.get_database_url(url)
    kwargs: dict[str, Any] = {"echo": settings.database_echo, "future": True}

    if db_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": 30}
        connect_args.update(overrides.pop("connect_args", {}))
        kwargs["connect_args"] = connect_args
        kwargs.update(overrides)
        engine = create_engine(db_url, **kwargs)
        _install_sqlite_serialization(engine)
        return engine

    kwargs.update(
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout,
        pool_recycle=3600,
        pool_pre_ping=True,
        connect_args={
            "connect_timeout": 10,
            "application_name": "spa_reservation_engine",
            "options": f"-c statement_timeout={settings.db_statement_timeout_ms}",
        },
    )
    kwargs.update(overrides)
    engine = create_engine(db_url, **kwargs)

    @event.listens_for(engine, "connect")
    def receive_connect(dbapi_connection: Any, connection_record: Any) -> None:
        connection_record.info["connect_time"] = datetime.now()
        logger.debug("Database connection established")

    return engine


def create_session_factory(bind: Engine) -> sessionmaker[Session]:
    return sessionmaker(autocommit=False, autoflush=False, bind=bind, expire_on_commit=False)


engine: Engine = create_db_engine()
SessionLocal = create_session_factory(engine)


def get_db() -> Generator[Session, None, None]:
    """Get database session with proper cleanup."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db(bind: Engine | None = None) -> None:
    """Create all tables (development and tests; production uses migrations)."""
    from . import models  # noqa: F401  - register mappers

    Base.metadata.create_all(bind=bind or engine)


def is_transient_db_error(exc: BaseException) -> bool:
    """
    True for storage conflicts worth retrying: serialization failures,
    deadlocks and SQLite lock contention.

    Wrapped errors (a repository exception raised ``from`` the driver error)
    are unwrapped through ``__cause__``.
    """
    while exc is not None and not isinstance(exc, DBAPIError):
        exc = exc.__cause__  # type: ignore[assignment]
    if exc is None:
        return False
    orig = getattr(exc, "orig", None)
    pgcode = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if pgcode in _TRANSIENT_SQLSTATES:
        return True
    message = str(exc).lower()
    return any(snippet in message for snippet in _TRANSIENT_ERROR_SNIPPETS)


__all__ = [
    "Base",
    "SessionLocal",
    "create_db_engine",
    "create_session_factory",
    "engine",
    "get_db",
    "init_db",
    "is_transient_db_error",
]
