"""Engine/session helpers shared by the CLI and the import workers.

Usage
-----
from db.client import session_scope

with session_scope() as s:
    s.execute(...)
"""

from __future__ import annotations

import os
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event, make_url
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

_ENGINE: Engine | None = None
_SESSION_MAKER: sessionmaker[Session] | None = None
_DB_URL: str | None = None
# Import workers may race to create the engine on first use.
_LOCK = threading.Lock()
# Seconds a SQLite writer waits for another worker's transaction to finish.
SQLITE_BUSY_TIMEOUT = 30.0


def _database_url(override: str | None = None) -> str:
    url = override or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is not set; cannot initialize database client")
    return url


def _configure_sqlite(engine: Engine) -> None:
    """Enforce foreign keys and let SQLAlchemy own transaction boundaries.

    pysqlite defers ``BEGIN`` until the first DML statement, which breaks
    ``SAVEPOINT`` (used for sign corrections, keyword upserts and account
    creation). The driver's own transaction handling is switched off and
    ``BEGIN IMMEDIATE`` emitted explicitly. Taking the write lock up front
    queues parallel import workers behind each other; two deferred
    transactions that both read and then write would deadlock instead.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_conn, _record) -> None:  # pragma: no cover - tiny bridge
        dbapi_conn.isolation_level = None
        cur = dbapi_conn.cursor()
        cur.execute("PRAGMA foreign_keys = ON")
        cur.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn) -> None:  # pragma: no cover - tiny bridge
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def get_engine(*, database_url: str | None = None) -> Engine:
    """Return a shared SQLAlchemy engine, creating it on first use."""

    global _ENGINE, _SESSION_MAKER, _DB_URL
    url = _database_url(database_url)
    with _LOCK:
        if _ENGINE is None:
            if make_url(url).get_backend_name() == "sqlite":
                engine = create_engine(
                    url, pool_pre_ping=True, connect_args={"timeout": SQLITE_BUSY_TIMEOUT}
                )
                _configure_sqlite(engine)
            else:
                engine = create_engine(url, pool_pre_ping=True)
            _SESSION_MAKER = sessionmaker(bind=engine, expire_on_commit=False, class_=Session)
            _ENGINE = engine
            _DB_URL = url
            return engine
    # Engine already initialized; guard against cross-environment misuse.
    if _DB_URL is not None and url != _DB_URL:
        raise RuntimeError(
            "get_engine() already initialized with a different DATABASE_URL; "
            "call dispose_engine() first or avoid passing a different URL"
        )
    return _ENGINE


def dispose_engine() -> None:
    """Drop the shared engine so the next call can bind a different URL."""

    global _ENGINE, _SESSION_MAKER, _DB_URL
    with _LOCK:
        if _ENGINE is not None:
            _ENGINE.dispose()
        _ENGINE = None
        _SESSION_MAKER = None
        _DB_URL = None


def get_session(*, database_url: str | None = None) -> Session:
    """Return a new SQLAlchemy session bound to the shared engine."""

    get_engine(database_url=database_url)
    assert _SESSION_MAKER is not None  # bound by get_engine
    return _SESSION_MAKER()


@contextmanager
def session_scope(*, database_url: str | None = None) -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""

    session = get_session(database_url=database_url)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


__all__ = [
    "dispose_engine",
    "get_engine",
    "get_session",
    "session_scope",
]
