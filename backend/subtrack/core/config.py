"""Application settings with environment-based simple classes."""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Any, Final

from dotenv import load_dotenv

# Public selector env var (keep neutral name to avoid collisions)
ENV_VAR: Final[str] = "APP_ENV"  # 'development' | 'testing' | 'production'

# Loads .env during development (no-op when the file is missing)
load_dotenv()

GOOGLE_CLIENT_SUFFIX: Final[str] = ".apps.googleusercontent.com"
ANON_KEY_MIN_LENGTH: Final[int] = 50
PLACEHOLDER_MARKERS: Final[tuple[str, ...]] = ("your-", "your_", "changeme", "xxx", "<")

REQUIRED_KEYS: Final[tuple[str, ...]] = (
    "SUBTRACK_SUPABASE_URL",
    "SUBTRACK_SUPABASE_ANON_KEY",
    "SUBTRACK_GOOGLE_CLIENT_ID",
)


class ConfigurationError(RuntimeError):
    """Raised when required settings are missing or malformed.

    Parameters
    ----------
    problems: list[str]
        One human-readable line per failing key.
    """

    def __init__(self, problems: list[str]) -> None:
        self.problems = problems
        super().__init__("Invalid configuration: " + "; ".join(problems))


def env_bool(name: str, default: bool = False) -> bool:
    """Parse a boolean flag from an environment variable.

    Parameters
    ----------
    name: str
        Environment variable to inspect.
    default: bool, optional
        Value returned when the variable is unset. Defaults to ``False``.

    Returns
    -------
    bool
        ``True`` if the value resembles ``{"1", "true", "yes", "y", "on"}``
        ignoring case; otherwise ``False`` or ``default`` when missing.
    """
    val = os.getenv(name)
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "y", "on"}


def env_float(name: str, default: float) -> float:
    val = os.getenv(name)
    if val is None or not val.strip():
        return default
    return float(val)


def env_int(name: str, default: int) -> int:
    val = os.getenv(name)
    if val is None or not val.strip():
        return default
    return int(val)


def default_redirect_url(site_url: str) -> str:
    """Return the OAuth/confirmation landing page for ``site_url``."""
    return f"{site_url.rstrip('/')}/#/auth/callback"


class BaseConfig:
    """Base configuration shared across environments.

    Attributes
    ----------
    API_BASE_PREFIX: str
        Root path for registering API blueprints.
    SECRET_KEY: str
        Flask secret used for session signing.
    SUBTRACK_SUPABASE_URL: str
        Project URL of the hosted backend (GoTrue + PostgREST).
    SUBTRACK_SUPABASE_ANON_KEY: str
        Public anon key sent with every request.
    SUBTRACK_GOOGLE_CLIENT_ID: str
        OAuth client id used for Google sign-in.
    SUBTRACK_SITE_URL: str
        Public URL of the web client.
    SUBTRACK_AUTH_REDIRECT_URL: str
        Landing page for confirmation emails and OAuth callbacks.
    HTTP_TIMEOUT: float
        Per-request timeout (seconds) for calls to the hosted backend.
    RETRY_BASE_DELAY: float
        First backoff delay (seconds) when loading subscriptions.
    RETRY_MAX_ATTEMPTS: int
        Retries after the first attempt for transient failures.
    NOTIFICATION_TOAST_SECONDS: float
        Delay before a notification toast is hidden.
    NOTIFICATION_HISTORY_LIMIT: int
        Number of notifications loaded from the store.
    SIGNUP_SESSION_LIMIT: int
        Maximum number of concurrent signup wizard sessions kept in memory.
    SIGNUP_LOCK_TIMEOUT: float
        Seconds a request waits for another request on the same signup session.
    JSON_SORT_KEYS: bool
        Keeps JSON output order stable when ``False``.
    PROPAGATE_EXCEPTIONS: bool
        Controls Flask error propagation.
    LOG_LEVEL: str
        Root logging verbosity (``INFO`` by default).
    CORS_ORIGINS: str
        Comma-separated list of allowed origins for CORS.

    Notes
    -----
    Values are primarily sourced from environment variables, enabling
    configuration without code changes.
    """

    API_BASE_PREFIX = "/api"

    SECRET_KEY = os.getenv("SECRET_KEY", "CHANGE_ME")

    # Hosted backend
    SUBTRACK_SUPABASE_URL = os.getenv("SUBTRACK_SUPABASE_URL", "")
    SUBTRACK_SUPABASE_ANON_KEY = os.getenv("SUBTRACK_SUPABASE_ANON_KEY", "")
    SUBTRACK_GOOGLE_CLIENT_ID = os.getenv("SUBTRACK_GOOGLE_CLIENT_ID", "")
    SUBTRACK_SITE_URL = os.getenv("SUBTRACK_SITE_URL", "http://localhost:3000")
    SUBTRACK_AUTH_REDIRECT_URL = os.getenv("SUBTRACK_AUTH_REDIRECT_URL") or default_redirect_url(
        SUBTRACK_SITE_URL
    )

    # Service tuning
    HTTP_TIMEOUT = env_float("HTTP_TIMEOUT", 10.0)
    RETRY_BASE_DELAY = env_float("RETRY_BASE_DELAY", 1.0)
    RETRY_MAX_ATTEMPTS = env_int("RETRY_MAX_ATTEMPTS", 3)
    NOTIFICATION_TOAST_SECONDS = env_float("NOTIFICATION_TOAST_SECONDS", 5.0)
    NOTIFICATION_HISTORY_LIMIT = env_int("NOTIFICATION_HISTORY_LIMIT", 50)
    SIGNUP_SESSION_LIMIT = env_int("SIGNUP_SESSION_LIMIT", 1000)
    SIGNUP_LOCK_TIMEOUT = env_float("SIGNUP_LOCK_TIMEOUT", 30.0)

    # Flask & JSON
    JSON_SORT_KEYS = False
    PROPAGATE_EXCEPTIONS = False

    # Logging & CORS
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:3000")

    # Flask built-ins
    DEBUG = False
    TESTING = False


class DevelopmentConfig(BaseConfig):
    """Configuration tailored for local development."""

    DEBUG = env_bool("FLASK_DEBUG", True)
    CORS_MAX_AGE = 600  # 10 minutes


class TestingConfig(BaseConfig):
    """Configuration for automated test runs.

    Notes
    -----
    - Forces ``TESTING`` mode and disables debug logs.
    - Supplies well-formed placeholder credentials so settings validation
      passes without a real project; tests inject fake gateways anyway.
    - Removes retry delays.
    """

    TESTING = True
    DEBUG = False
    PROPAGATE_EXCEPTIONS = True
    SUBTRACK_SUPABASE_URL = "https://testing-project.supabase.co"
    SUBTRACK_SUPABASE_ANON_KEY = "test-anon-key-" + "0" * 64
    SUBTRACK_GOOGLE_CLIENT_ID = "1234567890-testing" + GOOGLE_CLIENT_SUFFIX
    SUBTRACK_SITE_URL = "http://localhost:3000"
    SUBTRACK_AUTH_REDIRECT_URL = default_redirect_url(SUBTRACK_SITE_URL)
    RETRY_BASE_DELAY = 0.0
    NOTIFICATION_TOAST_SECONDS = 0.0
    LOG_LEVEL = "WARNING"


class ProductionConfig(BaseConfig):
    """Configuration defaults for production deployments."""

    DEBUG = False
    PROPAGATE_EXCEPTIONS = False


# Map names -> classes (simple, explicit)
CONFIG_MAP: Mapping[str, type[BaseConfig]] = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}


def get_config() -> type[BaseConfig]:
    """Return the configuration class inferred from ``APP_ENV``.

    Returns
    -------
    type[BaseConfig]
        Class to pass to :meth:`flask.Config.from_object`.

    Notes
    -----
    Falls back to :class:`DevelopmentConfig` when ``APP_ENV`` is unset or
    unknown.
    """
    name = os.getenv(ENV_VAR, "development").strip().lower()
    return CONFIG_MAP.get(name, DevelopmentConfig)


def _looks_like_placeholder(value: str) -> bool:
    lowered = value.lower()
    return any(marker in lowered for marker in PLACEHOLDER_MARKERS)


def check_settings(settings: Mapping[str, Any]) -> list[str]:
    """Return one message per missing or malformed setting (empty when valid).

    Parameters
    ----------
    settings: Mapping[str, Any]
        Flask config, ``os.environ`` or a parsed ``.env`` file.
    """
    problems: list[str] = []
    for key in REQUIRED_KEYS:
        value = str(settings.get(key) or "").strip()
        if not value:
            problems.append(f"{key} is required")
        elif _looks_like_placeholder(value):
            problems.append(f"{key} still holds a placeholder value")
    if problems:
        return problems

    url = str(settings["SUBTRACK_SUPABASE_URL"]).strip()
    if not url.startswith("https://"):
        problems.append("SUBTRACK_SUPABASE_URL must start with https://")
    if len(str(settings["SUBTRACK_SUPABASE_ANON_KEY"]).strip()) < ANON_KEY_MIN_LENGTH:
        problems.append(
            f"SUBTRACK_SUPABASE_ANON_KEY looks too short (expected at least {ANON_KEY_MIN_LENGTH} characters)"
        )
    if GOOGLE_CLIENT_SUFFIX not in str(settings["SUBTRACK_GOOGLE_CLIENT_ID"]):
        problems.append(f"SUBTRACK_GOOGLE_CLIENT_ID must end with {GOOGLE_CLIENT_SUFFIX}")

    site_url = str(settings.get("SUBTRACK_SITE_URL") or "").strip()
    if site_url and not site_url.startswith("http"):
        problems.append("SUBTRACK_SITE_URL must start with http:// or https://")
    redirect_url = str(settings.get("SUBTRACK_AUTH_REDIRECT_URL") or "").strip()
    if redirect_url and not redirect_url.startswith("http"):
        problems.append("SUBTRACK_AUTH_REDIRECT_URL must start with http:// or https://")
    return problems


def validate_settings(settings: Mapping[str, Any]) -> None:
    """Fail fast when the hosted-backend settings are unusable.

    Raises
    ------
    ConfigurationError
        Listing every problem found by :func:`check_settings`.
    """
    problems = check_settings(settings)
    if problems:
        raise ConfigurationError(problems)
