"""
core/secrets.py -- Ordered secret providers for configuration loading.

A provider answers one question: "what is the value for this logical key?"
It either returns a non-empty string or raises SecretUnavailableError. The
loader walks providers in order and the first success wins; exhausting the
chain raises UnresolvedConfigKeyError so callers decide whether the key was
required.

Providers:
  SecretManagerProvider -- Google Cloud Secret Manager, latest version,
      10 second deadline per access. One client is created lazily per
      provider and reused for every key.
  EnvProvider -- reads the matching field from EnvSettings, so every env
      read still goes through pydantic-settings.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, or audit/.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Protocol

from google.api_core import exceptions as gcp_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import secretmanager

if TYPE_CHECKING:
    from core.config import EnvSettings

logger = logging.getLogger("sharedlibs.secrets")

_ACCESS_TIMEOUT_SECONDS = 10.0


class SecretUnavailableError(Exception):
    """A single provider could not produce a value for a key."""


class UnresolvedConfigKeyError(Exception):
    """Every provider in the chain failed for a configuration key."""

    def __init__(self, key: str, errors: Sequence[str] = ()) -> None:
        self.key = key
        self.errors = list(errors)
        reasons = "; ".join(self.errors) or "no providers configured"
        super().__init__(f"configuration key {key!r} could not be resolved ({reasons})")


class SecretProvider(Protocol):
    name: str

    def get(self, secret_key: str, env_key: str) -> str: ...


class SecretManagerProvider:
    """Reads `projects/{project}/secrets/{secret_key}/versions/latest`."""

    name = "secret-manager"

    def __init__(self, project_id: str, client=None, timeout: float = _ACCESS_TIMEOUT_SECONDS) -> None:
        self.project_id = project_id
        self.timeout = timeout
        self._client = client

    def _get_client(self):
        if self._client is None:
            try:
                self._client = secretmanager.SecretManagerServiceClient()
            except auth_exceptions.DefaultCredentialsError as exc:
                raise SecretUnavailableError(f"failed to create secret manager client: {exc}") from exc
        return self._client

    def get(self, secret_key: str, env_key: str) -> str:
        client = self._get_client()
        name = f"projects/{self.project_id}/secrets/{secret_key}/versions/latest"
        try:
            response = client.access_secret_version(request={"name": name}, timeout=self.timeout)
        except (gcp_exceptions.GoogleAPIError, auth_exceptions.GoogleAuthError) as exc:
            raise SecretUnavailableError(f"failed to access secret {secret_key}: {exc}") from exc
        try:
            value = response.payload.data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise SecretUnavailableError(f"secret {secret_key} is not valid UTF-8") from exc
        if not value:
            raise SecretUnavailableError(f"secret {secret_key} is empty")
        return value


class EnvProvider:
    """Falls back to the environment variable paired with a secret key."""

    name = "env"

    def __init__(self, settings: EnvSettings) -> None:
        self.settings = settings

    def get(self, secret_key: str, env_key: str) -> str:
        value = getattr(self.settings, env_key.lower(), "")
        if not value:
            raise SecretUnavailableError(f"environment variable {env_key} is empty")
        return value


def resolve(secret_key: str, env_key: str, providers: Sequence[SecretProvider]) -> str:
    """Return the first value any provider yields for secret_key.

    Raises UnresolvedConfigKeyError once every provider has failed. Each
    failure is logged at WARNING so a silent fallback is still visible in
    startup logs.
    """
    errors: list[str] = []
    for provider in providers:
        try:
            return provider.get(secret_key, env_key)
        except SecretUnavailableError as exc:
            errors.append(f"{provider.name}: {exc}")
            logger.warning("Provider %s failed for %s: %s", provider.name, secret_key, exc)
    raise UnresolvedConfigKeyError(secret_key, errors)
