"""
api/routes/v1/auth.py -- Identity endpoint for authenticated callers.

Routes:
  GET /api/v1/auth/me -- the principal extracted from the access token

Tokens are issued by the hosting service through auth.tokens; this library
exposes no login route.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from api.models import MeResponse
from auth.dependencies import get_current_principal
from auth.models import Principal

# Auth policy:
# - GET /api/v1/auth/me: requires a valid access token (get_current_principal)
router = APIRouter()


@router.get("/auth/me", response_model=MeResponse)
async def me(principal: Principal = Depends(get_current_principal)) -> MeResponse:
    """Return identity information for the current caller."""
    return MeResponse.from_principal(principal)
