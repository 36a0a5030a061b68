"""
api/routes/v1/audit.py -- Read-only audit log endpoints.

Routes:
  GET /api/v1/audit/logs                  -- every entry
  GET /api/v1/audit/admin/{admin_id}      -- entries written by one actor
  GET /api/v1/audit/resource/{target_id}  -- entries about one resource

All three return a JSON array, newest first, paged with ?limit= (1..500,
default 100) and ?offset=. A blank path parameter answers 400; a store
failure answers 500. Writing happens in-process through AuditStore.record(),
never over HTTP.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from api.limiter import limiter
from api.models import AuditLogResponse
from audit.models import AuditFilter
from audit.store import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, AuditQueryError, AuditStore
from auth.dependencies import require_admin

# Auth policy:
# - every /audit route requires "admin" or "super_admin" (require_admin)
# Router-level dependency enforces it; handlers do not repeat it.
router = APIRouter(dependencies=[Depends(require_admin)])


def _fetch(
    request: Request,
    audit_filter: AuditFilter,
    limit: int,
    offset: int,
    failure: str,
) -> list[AuditLogResponse]:
    store: AuditStore = request.app.state.audit_store
    try:
        entries = store.query(audit_filter, limit=limit, offset=offset)
    except AuditQueryError as exc:
        raise HTTPException(
            status_code=500,
            detail={"code": "audit_query_failed", "message": failure},
        ) from exc
    return [AuditLogResponse.from_entry(e) for e in entries]


def _required(value: str, message: str) -> str:
    value = value.strip()
    if not value:
        raise HTTPException(
            status_code=400,
            detail={"code": "missing_parameter", "message": message},
        )
    return value


@limiter.limit("60/minute")
@router.get("/audit/logs", response_model=list[AuditLogResponse])
def get_audit_logs(
    request: Request,
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
) -> list[AuditLogResponse]:
    """Return all audit entries, newest first."""
    return _fetch(request, AuditFilter(), limit, offset, "Failed to fetch audit logs")


@limiter.limit("60/minute")
@router.get("/audit/admin/{admin_id}", response_model=list[AuditLogResponse])
def get_admin_audit_logs(
    request: Request,
    admin_id: str,
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
) -> list[AuditLogResponse]:
    """Return entries recorded for one admin (actor id)."""
    admin_id = _required(admin_id, "Admin ID is required")
    return _fetch(request, AuditFilter(admin_id=admin_id), limit, offset, "Failed to fetch admin audit logs")


@limiter.limit("60/minute")
@router.get("/audit/resource/{target_id}", response_model=list[AuditLogResponse])
def get_resource_audit_logs(
    request: Request,
    target_id: str,
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
) -> list[AuditLogResponse]:
    """Return entries recorded against one resource (target id)."""
    target_id = _required(target_id, "Target/Resource ID is required")
    return _fetch(request, AuditFilter(target_id=target_id), limit, offset, "Failed to fetch resource audit logs")
