"""
audit/models.py -- Domain dataclass for the audit trail.

Pure data container with zero logic. Writing and querying live in
audit/store.py; HTTP shapes live in api/models.py.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class AuditLogEntry:
    """One administrative action, written once and never changed.

    admin_id is the actor (the JWT user_id of whoever performed the action).
    action is a free-text label such as "delete_user". target_id names the
    resource acted on. timestamp is timezone-aware UTC, stamped by the store.
    """

    id: str
    admin_id: str
    action: str
    target_id: str
    timestamp: datetime


@dataclass(frozen=True)
class AuditFilter:
    """Query filter. Both fields None means every entry."""

    admin_id: Optional[str] = None
    target_id: Optional[str] = None
