"""
audit/store.py -- SQLAlchemy Core persistence for the audit trail.

Pattern: Repository + Data Mapper. AuditStore is the repository;
_row_to_entry is the mapper. Route handlers never touch SQL.

Write path (record):
  Best-effort. A failed insert is logged with its stack trace and record()
  returns None; the calling operation carries on.
  Statements are bounded to 5 seconds.

Read path (query):
  Filter by admin_id and/or target_id, newest first, bounded page size
  (MAX_PAGE_SIZE). Statements are bounded to 10 seconds. Store failures raise
  AuditQueryError so routes can answer 500.

The table is append-only: there is no update or delete method.

Security: all queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Index, MetaData, String, Table, Text, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from audit.models import AuditFilter, AuditLogEntry
from core.database import apply_timeout, create_db_engine

logger = logging.getLogger("sharedlibs.audit")

DEFAULT_COLLECTION = "oms_audit_logs"
DEFAULT_PAGE_SIZE = 100
MAX_PAGE_SIZE = 500

_WRITE_TIMEOUT_SECONDS = 5.0
_READ_TIMEOUT_SECONDS = 10.0


class AuditQueryError(Exception):
    """Audit entries could not be read from the store."""


def _audit_table(name: str, metadata: MetaData) -> Table:
    return Table(
        name,
        metadata,
        Column("id", String(32), primary_key=True),
        Column("admin_id", String(255), nullable=False),
        Column("action", Text, nullable=False),
        Column("target_id", String(255), nullable=False),
        Column("timestamp", String(32), nullable=False),  # ISO 8601 UTC, microseconds
        Index(f"ix_{name}_admin_id", "admin_id"),
        Index(f"ix_{name}_target_id", "target_id"),
        Index(f"ix_{name}_timestamp", "timestamp"),
    )


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _to_iso(ts: datetime) -> str:
    # Fixed width so lexical order matches chronological order.
    return ts.isoformat(timespec="microseconds")


class AuditStore:
    """Repository for AuditLogEntry records.

    Usage:
        store = AuditStore("sqlite:///audit.db")
        store.record("admin1", "delete_user", "user42")
        entries = store.query(AuditFilter(target_id="user42"))
        store.close()

    Pass engine= to share the engine created by core.database.connect_db().
    The store disposes only engines it created itself.
    """

    def __init__(
        self,
        db_url: str = "",
        collection: str = DEFAULT_COLLECTION,
        engine: Optional[Engine] = None,
    ) -> None:
        if engine is None and not db_url:
            raise ValueError("AuditStore needs either db_url or engine")
        self._owns_engine = engine is None
        self.engine: Engine = engine if engine is not None else create_db_engine(db_url)
        self._metadata = MetaData()
        self._table = _audit_table(collection, self._metadata)
        self._metadata.create_all(self.engine)

    @property
    def collection(self) -> str:
        return self._table.name

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def record(self, admin_id: str, action: str, target_id: str) -> Optional[AuditLogEntry]:
        """Append one entry. Returns it, or None if the insert failed.

        Never raises for store errors -- the failure is logged instead.
        """
        entry = AuditLogEntry(
            id=uuid.uuid4().hex,
            admin_id=admin_id,
            action=action,
            target_id=target_id,
            timestamp=_now(),
        )
        try:
            with self.engine.connect() as conn:
                apply_timeout(conn, _WRITE_TIMEOUT_SECONDS)
                conn.execute(
                    self._table.insert().values(
                        id=entry.id,
                        admin_id=entry.admin_id,
                        action=entry.action,
                        target_id=entry.target_id,
                        timestamp=_to_iso(entry.timestamp),
                    )
                )
                conn.commit()
        except SQLAlchemyError:
            logger.exception(
                "Failed to log audit (admin_id=%s action=%s target_id=%s)",
                admin_id,
                action,
                target_id,
            )
            return None
        return entry

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def query(
        self,
        audit_filter: Optional[AuditFilter] = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> list[AuditLogEntry]:
        """Return matching entries, newest first.

        limit is clamped to [1, MAX_PAGE_SIZE]; a negative offset is treated
        as 0. Raises AuditQueryError if the store cannot be read.
        """
        audit_filter = audit_filter or AuditFilter()
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        offset = max(0, offset)

        t = self._table
        stmt = select(t)
        if audit_filter.admin_id is not None:
            stmt = stmt.where(t.c.admin_id == audit_filter.admin_id)
        if audit_filter.target_id is not None:
            stmt = stmt.where(t.c.target_id == audit_filter.target_id)
        stmt = stmt.order_by(t.c.timestamp.desc(), t.c.id.desc()).limit(limit).offset(offset)

        try:
            with self.engine.connect() as conn:
                apply_timeout(conn, _READ_TIMEOUT_SECONDS)
                rows = conn.execute(stmt).fetchall()
        except SQLAlchemyError as exc:
            logger.error("Audit query failed: %s", exc)
            raise AuditQueryError("failed to fetch audit logs") from exc
        return [_row_to_entry(r) for r in rows]

    def close(self) -> None:
        if self._owns_engine:
            self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_entry(row) -> AuditLogEntry:
    ts = datetime.fromisoformat(row.timestamp)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return AuditLogEntry(
        id=row.id,
        admin_id=row.admin_id,
        action=row.action,
        target_id=row.target_id,
        timestamp=ts,
    )
