"""
auth/tokens.py -- JWT issuance/verification and password hashing.

Security design decisions:
  JWT: python-jose with HS256, signed with the configured JWT secret.
       Access tokens live 1 hour and carry user_id, organization_id, role and
       type="access". Refresh tokens live 7 days and carry only user_id and
       type="refresh". The type discriminator stops a refresh token from being
       replayed as an access token and vice versa.

       Verification raises InvalidTokenError (never returns a half-trusted
       payload). Missing or wrongly-typed claims are treated exactly like a
       bad signature -- the route layer turns all of them into a 401.

  Passwords: bcrypt at the library's default cost, then standard base64 so
       the stored value is plain ASCII with no "$" separators.
       compare_passwords() returns False for anything it cannot decode rather
       than raising, so a corrupted record simply fails login.

  Secret: every function takes an optional secret. When omitted, the process
       configuration is used (core.config.get_jwt_secret). An empty secret is
       refused -- HMAC with an empty key signs nothing meaningful.

Layer rule: no imports from api/ or audit/. Import from core/ is allowed.
"""

from __future__ import annotations

import base64
import binascii
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from auth.models import Principal, TokenPair
from core.config import get_jwt_secret

logger = logging.getLogger("sharedlibs.auth")

_ALGORITHM = "HS256"

ACCESS_TOKEN_TTL = timedelta(hours=1)
REFRESH_TOKEN_TTL = timedelta(days=7)
LEGACY_TOKEN_TTL = timedelta(hours=72)

TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"


class InvalidTokenError(Exception):
    """A token failed signature, expiry, type or claim validation.

    code is machine-readable ("invalid_token", "token_expired",
    "wrong_token_type", "invalid_claims"); message is safe to return to clients.
    """

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(message)


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return base64(bcrypt(plain)) for storage.

    bcrypt only considers the first 72 bytes of input; current bcrypt releases
    raise ValueError for longer passwords instead of truncating, and that error
    is propagated to the caller.
    """
    hashed = bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt())
    return base64.b64encode(hashed).decode("ascii")


def compare_passwords(encoded_hash: str, plain: str) -> bool:
    """Return True if plain matches a value produced by hash_password()."""
    try:
        hashed = base64.b64decode(encoded_hash, validate=True)
    except (binascii.Error, ValueError):
        logger.debug("Stored password hash is not valid base64")
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed)
    except ValueError:
        # Malformed bcrypt hash ("Invalid salt") or over-long password.
        return False


# ---------------------------------------------------------------------------
# JWT encode
# ---------------------------------------------------------------------------


def _secret_or_config(secret: str | None) -> str:
    key = secret if secret is not None else get_jwt_secret()
    if not key:
        raise InvalidTokenError("server_misconfigured", "JWT secret is not configured.")
    return key


def _encode(claims: dict[str, Any], secret: str | None) -> str:
    return jwt.encode(claims, _secret_or_config(secret), algorithm=_ALGORITHM)


def create_access_token(user_id: str, organization_id: str, role: str, secret: str | None = None) -> str:
    now = datetime.now(timezone.utc)
    return _encode(
        {
            "user_id": user_id,
            "organization_id": organization_id,
            "role": role,
            "type": TOKEN_TYPE_ACCESS,
            "exp": now + ACCESS_TOKEN_TTL,
            "iat": now,
        },
        secret,
    )


def create_refresh_token(user_id: str, secret: str | None = None) -> str:
    return _encode(
        {
            "user_id": user_id,
            "type": TOKEN_TYPE_REFRESH,
            "exp": datetime.now(timezone.utc) + REFRESH_TOKEN_TTL,
        },
        secret,
    )


def create_token_pair(user_id: str, organization_id: str, role: str, secret: str | None = None) -> TokenPair:
    """Issue a short-lived access token and a long-lived refresh token."""
    return TokenPair(
        access_token=create_access_token(user_id, organization_id, role, secret),
        refresh_token=create_refresh_token(user_id, secret),
    )


def generate_token(user_id: str, role: str, secret: str | None = None) -> str:
    """Issue a single 72-hour token without organization or type claims.

    Kept for services that predate token pairs. These tokens carry no
    organization_id, so decode_access_token() rejects them.
    """
    return _encode(
        {"user_id": user_id, "role": role, "exp": datetime.now(timezone.utc) + LEGACY_TOKEN_TTL},
        secret,
    )


# ---------------------------------------------------------------------------
# JWT decode
# ---------------------------------------------------------------------------


def _decode(token: str, secret: str | None) -> dict[str, Any]:
    key = _secret_or_config(secret)
    try:
        return jwt.decode(token, key, algorithms=[_ALGORITHM])
    except ExpiredSignatureError as exc:
        raise InvalidTokenError("token_expired", "Token has expired.") from exc
    except JWTError as exc:
        raise InvalidTokenError("invalid_token", "Invalid token.") from exc


def _require_str(claims: dict[str, Any], name: str) -> str:
    value = claims.get(name)
    if not isinstance(value, str) or not value:
        raise InvalidTokenError("invalid_claims", f"Token claim '{name}' is missing or invalid.")
    return value


def decode_access_token(token: str, secret: str | None = None) -> Principal:
    """Verify an access token and return the caller it identifies.

    A token without a "type" claim is accepted as long as its identity claims
    are present; a token typed as anything other than "access" is rejected.
    """
    claims = _decode(token, secret)
    token_type = claims.get("type", TOKEN_TYPE_ACCESS)
    if token_type != TOKEN_TYPE_ACCESS:
        raise InvalidTokenError("wrong_token_type", "Refresh tokens cannot be used for authentication.")
    role = claims.get("role", "")
    if not isinstance(role, str):
        raise InvalidTokenError("invalid_claims", "Token claim 'role' is invalid.")
    return Principal(
        user_id=_require_str(claims, "user_id"),
        organization_id=_require_str(claims, "organization_id"),
        role=role,
    )


def verify_refresh_token(token: str, secret: str | None = None) -> dict[str, Any]:
    """Verify a refresh token and return its claims.

    Raises InvalidTokenError for a bad signature, an expired token, or any
    token whose type is not "refresh".
    """
    claims = _decode(token, secret)
    if claims.get("type") != TOKEN_TYPE_REFRESH:
        raise InvalidTokenError("wrong_token_type", "Not a refresh token.")
    _require_str(claims, "user_id")
    return claims
