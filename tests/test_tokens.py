"""Unit tests for auth/tokens.py -- passwords and JWT issuance/verification.

Covers:
- hash_password / compare_passwords round trip and tamper detection
- Access/refresh token claims and the type discriminator
- Tampered signatures, wrong secrets and expired tokens
- Missing or mistyped identity claims
- Default secret taken from the loaded process configuration
"""

from __future__ import annotations

import base64
from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from auth.models import Principal
from auth.tokens import (
    InvalidTokenError,
    compare_passwords,
    create_access_token,
    create_refresh_token,
    create_token_pair,
    decode_access_token,
    generate_token,
    hash_password,
    verify_refresh_token,
)
from core.config import ConfigMode, ConfigOptions, load_config

SECRET = "unit-test-secret-0123456789abcdef0123456789"


def _tamper_signature(token: str) -> str:
    header, payload, signature = token.split(".")
    # Flip a character well inside the signature; the final character may only
    # carry padding bits and decode to the same bytes.
    replacement = "A" if signature[5] != "A" else "B"
    return ".".join([header, payload, signature[:5] + replacement + signature[6:]])


def _mutate(value: str, index: int) -> str:
    replacement = "A" if value[index] != "A" else "B"
    return value[:index] + replacement + value[index + 1 :]


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------


class TestPasswords:
    @pytest.mark.parametrize("password", ["hunter2", "correct horse battery staple", "", "pässwörd-ünïcode"])
    def test_hash_then_compare(self, password: str) -> None:
        assert compare_passwords(hash_password(password), password) is True

    def test_stored_value_is_base64_bcrypt(self) -> None:
        stored = hash_password("secret")
        assert base64.b64decode(stored).startswith(b"$2")

    def test_salted(self) -> None:
        assert hash_password("same") != hash_password("same")

    def test_wrong_password(self) -> None:
        assert compare_passwords(hash_password("right"), "wrong") is False

    @pytest.mark.parametrize("index", [0, 10, 40])
    def test_mutated_hash_fails(self, index: int) -> None:
        stored = hash_password("secret")
        assert compare_passwords(_mutate(stored, index), "secret") is False

    def test_not_base64(self) -> None:
        assert compare_passwords("not*base64!", "secret") is False

    def test_base64_but_not_bcrypt(self) -> None:
        assert compare_passwords(base64.b64encode(b"plain text").decode(), "secret") is False


# ---------------------------------------------------------------------------
# Issuance
# ---------------------------------------------------------------------------


class TestIssuance:
    def test_access_token_claims(self) -> None:
        token = create_access_token("u1", "org1", "admin", secret=SECRET)
        claims = jwt.decode(token, SECRET, algorithms=["HS256"])
        assert claims["user_id"] == "u1"
        assert claims["organization_id"] == "org1"
        assert claims["role"] == "admin"
        assert claims["type"] == "access"
        assert claims["exp"] - claims["iat"] == 3600

    def test_refresh_token_claims(self) -> None:
        claims = jwt.decode(create_refresh_token("u1", secret=SECRET), SECRET, algorithms=["HS256"])
        assert claims["type"] == "refresh"
        assert claims["user_id"] == "u1"
        assert "role" not in claims
        expected = datetime.now(timezone.utc) + timedelta(days=7)
        assert abs(claims["exp"] - expected.timestamp()) < 60

    def test_token_pair(self) -> None:
        pair = create_token_pair("u1", "org1", "user", secret=SECRET)
        assert decode_access_token(pair.access_token, secret=SECRET) == Principal("u1", "org1", "user")
        assert verify_refresh_token(pair.refresh_token, secret=SECRET)["user_id"] == "u1"

    def test_legacy_token_has_72_hour_expiry(self) -> None:
        claims = jwt.decode(generate_token("u1", "admin", secret=SECRET), SECRET, algorithms=["HS256"])
        expected = datetime.now(timezone.utc) + timedelta(hours=72)
        assert abs(claims["exp"] - expected.timestamp()) < 60
        assert "type" not in claims

    def test_empty_secret_refused(self) -> None:
        with pytest.raises(InvalidTokenError) as excinfo:
            create_access_token("u1", "org1", "admin", secret="")
        assert excinfo.value.code == "server_misconfigured"


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------


class TestVerification:
    def test_access_token_rejected_as_refresh(self) -> None:
        access = create_access_token("u1", "org1", "admin", secret=SECRET)
        with pytest.raises(InvalidTokenError) as excinfo:
            verify_refresh_token(access, secret=SECRET)
        assert excinfo.value.code == "wrong_token_type"

    def test_refresh_token_rejected_as_access(self) -> None:
        refresh = create_refresh_token("u1", secret=SECRET)
        with pytest.raises(InvalidTokenError) as excinfo:
            decode_access_token(refresh, secret=SECRET)
        assert excinfo.value.code == "wrong_token_type"

    def test_tampered_signature_rejected_everywhere(self) -> None:
        pair = create_token_pair("u1", "org1", "admin", secret=SECRET)
        with pytest.raises(InvalidTokenError):
            decode_access_token(_tamper_signature(pair.access_token), secret=SECRET)
        with pytest.raises(InvalidTokenError):
            verify_refresh_token(_tamper_signature(pair.refresh_token), secret=SECRET)

    def test_wrong_secret_rejected(self) -> None:
        token = create_access_token("u1", "org1", "admin", secret=SECRET)
        with pytest.raises(InvalidTokenError) as excinfo:
            decode_access_token(token, secret="another-secret")
        assert excinfo.value.code == "invalid_token"

    def test_expired_token(self) -> None:
        token = jwt.encode(
            {
                "user_id": "u1",
                "organization_id": "org1",
                "role": "admin",
                "type": "access",
                "exp": datetime.now(timezone.utc) - timedelta(minutes=1),
            },
            SECRET,
            algorithm="HS256",
        )
        with pytest.raises(InvalidTokenError) as excinfo:
            decode_access_token(token, secret=SECRET)
        assert excinfo.value.code == "token_expired"

    def test_garbage_token(self) -> None:
        with pytest.raises(InvalidTokenError):
            decode_access_token("not-a-jwt", secret=SECRET)

    def test_legacy_token_lacks_organization(self) -> None:
        token = generate_token("u1", "admin", secret=SECRET)
        with pytest.raises(InvalidTokenError) as excinfo:
            decode_access_token(token, secret=SECRET)
        assert excinfo.value.code == "invalid_claims"

    @pytest.mark.parametrize(
        "claims",
        [
            {"organization_id": "org1", "role": "admin"},
            {"user_id": 42, "organization_id": "org1", "role": "admin"},
            {"user_id": "u1", "organization_id": ["org1"], "role": "admin"},
            {"user_id": "u1", "organization_id": "org1", "role": 7},
        ],
    )
    def test_missing_or_mistyped_claims(self, claims: dict) -> None:
        token = jwt.encode(claims, SECRET, algorithm="HS256")
        with pytest.raises(InvalidTokenError) as excinfo:
            decode_access_token(token, secret=SECRET)
        assert excinfo.value.code == "invalid_claims"

    def test_missing_role_is_empty(self) -> None:
        token = jwt.encode({"user_id": "u1", "organization_id": "org1"}, SECRET, algorithm="HS256")
        assert decode_access_token(token, secret=SECRET).role == ""


# ---------------------------------------------------------------------------
# Process configuration
# ---------------------------------------------------------------------------


class TestConfiguredSecret:
    def test_uses_loaded_jwt_secret(self, default_config: pytest.MonkeyPatch) -> None:
        default_config.setenv("APP_ENV", "test")
        default_config.setenv("JWT_SECRET", SECRET)
        load_config(ConfigOptions(mode=ConfigMode.basic))

        token = create_access_token("u1", "org1", "admin")
        assert decode_access_token(token).user_id == "u1"
        # Same secret passed explicitly verifies too.
        assert decode_access_token(token, secret=SECRET).organization_id == "org1"
