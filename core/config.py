"""
core/config.py -- Process-wide configuration via pydantic-settings + Secret Manager.

All environment variable reads happen here. No module should call os.getenv()
or os.environ.get() directly -- use EnvSettings, load_config() or the typed
accessors below.

Design patterns used:
  BaseSettings (pydantic-settings): EnvSettings maps field names to env vars
      (mongo_uri -> MONGO_URI). env_ignore_empty treats MONGO_URI="" the same
      as an unset variable, so defaults apply to both.

  Load once, read many: ConfigLoader builds an immutable AppConfig exactly
      once. Concurrent callers serialize on a lock and the double-checked
      guard collapses them into a single load; every later call returns the
      cached instance. Readers only ever see a reference to a frozen object,
      so no read lock is needed once the reference is published.

  Provider chain: in secret_manager mode each logical secret is resolved by
      core.secrets.resolve() over [Secret Manager, env]. The env provider is
      dropped when fallback_to_env is False.

Fail fast:
  Every configuration error is a ConfigurationError subclass and nothing in
  this package catches it. A service that cannot load its configuration
  refuses to start.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, or audit/.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.secrets import (
    EnvProvider,
    SecretManagerProvider,
    SecretProvider,
    UnresolvedConfigKeyError,
    resolve,
)

logger = logging.getLogger("sharedlibs.config")

CONFIG_VERSION = "2.0.0"

_DEFAULT_DB_NAME = "mrexperiences_service"

# Logical secret name -> environment variable used as fallback.
SECRET_ENV_KEYS: dict[str, str] = {
    "mongo-uri": "MONGO_URI",
    "db-name": "DB_NAME",
    "jwt-secret": "JWT_SECRET",
    "nats-url": "NATS_URL",
}


class ConfigMode(str, Enum):
    basic = "basic"
    secret_manager = "secret_manager"
    auto = "auto"


class ConfigurationError(Exception):
    """Configuration could not be loaded. Startup must not continue."""


class ConfigNotLoadedError(ConfigurationError):
    """An accessor was called before load_config() completed."""

    def __init__(self) -> None:
        super().__init__("Configuration not loaded. Call load_config() first.")


class EnvSettings(BaseSettings):
    """Raw environment values. No .env file is read here -- see _load_env_file()."""

    model_config = SettingsConfigDict(extra="ignore", env_ignore_empty=True)

    app_env: str = "development"
    port: str = "8080"
    mongo_uri: str = ""
    db_name: str = ""
    jwt_secret: str = ""
    nats_url: str = ""
    allowed_origins: str = ""
    google_cloud_project: str = ""
    use_secret_manager: str = ""

    # Transactional email
    sender_email: str = ""
    frontend_url: str = ""
    sendgrid_api_key: str = ""


@dataclass(frozen=True)
class ConfigOptions:
    """How a service wants its configuration loaded.

    required_secrets / optional_secrets hold logical secret names
    ("mongo-uri", "db-name", "jwt-secret", "nats-url"). A required secret that
    cannot be resolved fails the load. Anything else is left empty; misses on
    keys listed in optional_secrets are logged at WARNING.
    """

    mode: ConfigMode = ConfigMode.auto
    enable_secret_manager: bool = False
    project_id: str = ""
    required_secrets: frozenset[str] = frozenset()
    optional_secrets: frozenset[str] = frozenset()
    fallback_to_env: bool = True
    env_file: str = ".env"


@dataclass(frozen=True)
class AppConfig:
    """Resolved settings for the lifetime of the process. Never mutated."""

    mode: ConfigMode
    app_env: str
    port: str
    project_id: str = ""
    mongo_uri: str = ""
    db_name: str = _DEFAULT_DB_NAME
    jwt_secret: str = ""
    nats_url: str = ""
    allowed_origins: str = ""
    version: str = CONFIG_VERSION
    load_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def origins(self) -> list[str]:
        """allowed_origins split on commas, blanks removed."""
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]


def default_allowed_origins(app_env: str) -> str:
    if app_env == "production":
        return "https://your-production-domain.com"
    if app_env == "staging":
        return "https://staging.your-domain.com"
    return "http://localhost:5173,http://127.0.0.1:5173"


def detect_config_mode(env: EnvSettings) -> ConfigMode:
    """Pick secret_manager on Google Cloud or when explicitly opted in."""
    if env.google_cloud_project:
        logger.info("Google Cloud environment detected, using Secret Manager mode")
        return ConfigMode.secret_manager
    if env.use_secret_manager.lower() == "true":
        logger.info("Secret Manager explicitly enabled")
        return ConfigMode.secret_manager
    logger.info("Standard environment detected, using basic mode")
    return ConfigMode.basic


def _load_env_file(path: str) -> None:
    if not Path(path).is_file():
        logger.warning("%s file not found, using system environment variables", path)
        return
    load_dotenv(path, override=False)
    logger.info("Loaded %s file for development", path)


def _allowed_origins(env: EnvSettings, app_env: str) -> str:
    return env.allowed_origins or default_allowed_origins(app_env)


class ConfigLoader:
    """Builds one AppConfig and hands out the same instance afterwards.

    Usage:
        loader = ConfigLoader()
        config = loader.load(ConfigOptions(mode=ConfigMode.basic))
        loader.get().jwt_secret

    secret_manager_factory builds the Secret Manager provider for a project
    id. Tests pass a factory returning an in-memory fake.
    """

    def __init__(
        self,
        secret_manager_factory: Callable[[str], SecretProvider] = SecretManagerProvider,
    ) -> None:
        self._secret_manager_factory = secret_manager_factory
        self._lock = threading.Lock()
        self._config: AppConfig | None = None

    @property
    def loaded(self) -> bool:
        return self._config is not None

    def load(self, options: ConfigOptions | None = None) -> AppConfig:
        """Load configuration once. Later calls return the cached AppConfig."""
        config = self._config
        if config is not None:
            return config
        with self._lock:
            if self._config is None:
                self._config = self._build(options or ConfigOptions())
            return self._config

    def get(self) -> AppConfig:
        config = self._config
        if config is None:
            raise ConfigNotLoadedError()
        return config

    def mode(self) -> ConfigMode:
        config = self._config
        return config.mode if config is not None else ConfigMode.basic

    def reset(self) -> None:
        """Forget the cached configuration. Intended for tests only."""
        with self._lock:
            self._config = None

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    def _build(self, options: ConfigOptions) -> AppConfig:
        logger.info("Loading configuration (shared-libs v%s)", CONFIG_VERSION)
        env = EnvSettings()
        app_env = env.app_env

        if app_env == "development":
            _load_env_file(options.env_file)
            # Re-read so values from the env file are visible.
            env = EnvSettings()

        mode = options.mode
        if options.enable_secret_manager and mode == ConfigMode.auto:
            mode = ConfigMode.secret_manager
        elif mode == ConfigMode.auto:
            mode = detect_config_mode(env)

        if mode == ConfigMode.basic:
            config = self._load_basic(env, app_env)
        elif mode == ConfigMode.secret_manager:
            config = self._load_from_secret_manager(env, app_env, options)
        else:
            raise ConfigurationError(f"unsupported config mode: {mode!r}")

        logger.info("Configuration loaded (mode: %s, env: %s)", config.mode.value, config.app_env)
        return config

    def _load_basic(self, env: EnvSettings, app_env: str) -> AppConfig:
        logger.info("Loading basic configuration from environment variables")
        return AppConfig(
            mode=ConfigMode.basic,
            app_env=app_env,
            port=env.port,
            mongo_uri=env.mongo_uri,
            db_name=env.db_name or _DEFAULT_DB_NAME,
            jwt_secret=env.jwt_secret,
            nats_url=env.nats_url,
            allowed_origins=_allowed_origins(env, app_env),
        )

    def _load_from_secret_manager(self, env: EnvSettings, app_env: str, options: ConfigOptions) -> AppConfig:
        logger.info("Loading configuration with Secret Manager")
        project_id = options.project_id or env.google_cloud_project
        if not project_id:
            raise ConfigurationError("Google Cloud project ID is required for Secret Manager mode")

        providers: list[SecretProvider] = [self._secret_manager_factory(project_id)]
        if options.fallback_to_env:
            providers.append(EnvProvider(env))

        values = _resolve_all(
            SECRET_ENV_KEYS.items(),
            providers,
            options.required_secrets,
            options.optional_secrets,
        )

        logger.info("Secret Manager configuration loaded (project: %s)", project_id)
        return AppConfig(
            mode=ConfigMode.secret_manager,
            app_env=app_env,
            port=env.port,
            project_id=project_id,
            mongo_uri=values["mongo-uri"],
            db_name=values["db-name"] or _DEFAULT_DB_NAME,
            jwt_secret=values["jwt-secret"],
            nats_url=values["nats-url"],
            allowed_origins=_allowed_origins(env, app_env),
        )


def _resolve_all(
    keys: Iterable[tuple[str, str]],
    providers: list[SecretProvider],
    required: frozenset[str],
    optional: frozenset[str],
) -> dict[str, str]:
    """Resolve every key. A miss on a required key is fatal; other misses
    leave the value empty. Only keys declared optional are warned about.
    """
    values: dict[str, str] = {}
    for secret_key, env_key in keys:
        try:
            values[secret_key] = resolve(secret_key, env_key, providers)
        except UnresolvedConfigKeyError as exc:
            if secret_key in required:
                raise ConfigurationError(f"required secret {secret_key} failed to load: {exc}") from exc
            if secret_key in optional:
                logger.warning("Optional secret %s not available: %s", secret_key, exc)
            else:
                logger.debug("Secret %s not available, left empty", secret_key)
            values[secret_key] = ""
    return values


# ---------------------------------------------------------------------------
# Process default loader and accessors
# ---------------------------------------------------------------------------

_default_loader = ConfigLoader()


def load_config(options: ConfigOptions | None = None) -> AppConfig:
    """Load the process configuration (auto mode, env fallback by default)."""
    return _default_loader.load(options)


def load_config_with_secret_manager(project_id: str, required_secrets: Iterable[str] = ()) -> AppConfig:
    return _default_loader.load(
        ConfigOptions(
            mode=ConfigMode.secret_manager,
            enable_secret_manager=True,
            project_id=project_id,
            required_secrets=frozenset(required_secrets),
            fallback_to_env=True,
        )
    )


def reset_config() -> None:
    """Clear the process configuration. Tests call this between cases."""
    _default_loader.reset()


def get_config() -> AppConfig:
    return _default_loader.get()


def get_mongo_uri() -> str:
    return _default_loader.get().mongo_uri


def get_db_name() -> str:
    return _default_loader.get().db_name


def get_jwt_secret() -> str:
    return _default_loader.get().jwt_secret


def get_nats_url() -> str:
    return _default_loader.get().nats_url


def get_allowed_origins() -> str:
    return _default_loader.get().allowed_origins


def get_port() -> str:
    return _default_loader.get().port


def get_app_env() -> str:
    return _default_loader.get().app_env


def get_config_mode() -> ConfigMode:
    """Current mode, or basic when nothing has been loaded yet."""
    return _default_loader.mode()


def is_secret_manager_enabled() -> bool:
    return get_config_mode() == ConfigMode.secret_manager
