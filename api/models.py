"""
API request and response models for the shared-libs REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in audit/models.py and
auth/models.py, which own the internal domain representation. Route handlers
map between the two.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from audit.models import AuditLogEntry
from auth.models import Principal

# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    config_mode: str
    components: dict[str, str]


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------


class AuditLogResponse(BaseModel):
    """One audit entry as returned by the /audit routes."""

    model_config = ConfigDict(frozen=True)

    id: str
    admin_id: str
    action: str
    target_id: str
    timestamp: datetime

    @classmethod
    def from_entry(cls, entry: AuditLogEntry) -> "AuditLogResponse":
        return cls(
            id=entry.id,
            admin_id=entry.admin_id,
            action=entry.action,
            target_id=entry.target_id,
            timestamp=entry.timestamp,
        )


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class MeResponse(BaseModel):
    """Response for GET /api/v1/auth/me."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    organization_id: str
    role: str

    @classmethod
    def from_principal(cls, principal: Principal) -> "MeResponse":
        return cls(
            user_id=principal.user_id,
            organization_id=principal.organization_id,
            role=principal.role,
        )
