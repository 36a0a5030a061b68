"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Token encoding and
claim validation live in auth/tokens.py.

Layer rule: no imports from api/ or audit/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Principal:
    """The authenticated caller of one request.

    user_id is the actor id written to audit entries. organization_id scopes
    the caller to one tenant. role is "" when the token carries none -- the
    role gates in auth/dependencies.py reject that.
    """

    user_id: str
    organization_id: str
    role: str = ""


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
