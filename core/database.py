"""
core/database.py -- Engine construction and startup connectivity check.

connect_db() is called once from the API lifespan. It builds a SQLAlchemy
engine from the configured connection URL, selects DB_NAME when the URL does
not name a database itself, and pings with SELECT 1 before returning. A store
that is unreachable at startup is fatal: DatabaseConnectionError propagates
out of the lifespan and the server refuses to start.

apply_timeout() bounds a single connection's statements. SQLite gets a busy
timeout; PostgreSQL gets a transaction-local statement_timeout. Other
dialects run unbounded.

Layer rule: core/ is the kernel. No imports from api/, auth/, or audit/.
"""

from __future__ import annotations

import logging

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import URL, Connection, Engine, make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

logger = logging.getLogger("sharedlibs.database")

_PING_TIMEOUT_SECONDS = 5.0


class DatabaseConnectionError(Exception):
    """The configured database could not be reached at startup."""


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL so readers are not blocked while the audit writer commits."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def resolve_url(uri: str, db_name: str = "") -> URL:
    """Parse uri. db_name fills in the database when uri omits it."""
    try:
        url = make_url(uri)
    except ArgumentError as exc:
        raise DatabaseConnectionError(f"invalid database URI: {exc}") from exc
    if db_name and not url.database and url.get_backend_name() != "sqlite":
        url = url.set(database=db_name)
    return url


def create_db_engine(uri: str, db_name: str = "") -> Engine:
    """Build an engine for uri. db_name fills in the database when uri omits it."""
    url = resolve_url(uri, db_name)
    kwargs: dict = {}
    if url.get_backend_name() == "sqlite":
        kwargs["connect_args"] = {"check_same_thread": False}
        if url.database in (None, "", ":memory:"):
            # Every thread must see the same in-memory database.
            kwargs["poolclass"] = StaticPool
    try:
        engine = create_engine(url, **kwargs)
    except ArgumentError as exc:
        # NoSuchModuleError (unknown dialect) is an ArgumentError subclass.
        raise DatabaseConnectionError(f"unsupported database URI: {exc}") from exc
    except ImportError as exc:
        raise DatabaseConnectionError(f"database driver not installed: {exc}") from exc
    if url.get_backend_name() == "sqlite" and url.database not in (None, "", ":memory:"):
        event.listen(engine, "connect", _set_wal_mode)
    return engine


def apply_timeout(conn: Connection, seconds: float) -> None:
    """Bound statements on conn to roughly `seconds`."""
    millis = int(seconds * 1000)
    dialect = conn.dialect.name
    if dialect == "sqlite":
        conn.execute(text(f"PRAGMA busy_timeout = {millis}"))
    elif dialect == "postgresql":
        conn.execute(text(f"SET LOCAL statement_timeout = {millis}"))


def ping(engine: Engine, timeout: float = _PING_TIMEOUT_SECONDS) -> None:
    with engine.connect() as conn:
        apply_timeout(conn, timeout)
        conn.execute(text("SELECT 1"))


def connect_db(uri: str, db_name: str = "") -> Engine:
    """Create an engine and verify it answers within 5 seconds.

    Raises DatabaseConnectionError if the URI is missing, malformed, or the
    server does not respond. The engine is disposed before raising.
    """
    if not uri:
        raise DatabaseConnectionError("MONGO_URI is not configured")
    engine = create_db_engine(uri, db_name)
    try:
        ping(engine)
    except SQLAlchemyError as exc:
        engine.dispose()
        raise DatabaseConnectionError(f"failed to connect to database: {exc}") from exc
    logger.info("Connected to database (%s)", engine.url.render_as_string(hide_password=True))
    return engine
