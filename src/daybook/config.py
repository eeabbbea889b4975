"""Daybook configuration loading and validation.

Reads ``daybook.toml``, resolves ``${VAR_NAME}`` references from the
environment, and returns a validated :class:`DaybookConfig` dataclass.

Example::

    [google]
    client_id = "${GOOGLE_CLIENT_ID}"
    client_secret = "${GOOGLE_CLIENT_SECRET}"

    [sync]
    past_days = 30
    future_days = 180

    [logging]
    level = "DEBUG"
    format = "json"
"""

from __future__ import annotations

import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

GOOGLE_OAUTH_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_CALENDAR_API_BASE_URL = "https://www.googleapis.com/calendar/v3"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"

DEFAULT_CONFIG_PATH = Path("daybook.toml")

# Matches ${VAR_NAME} with alphanumeric and underscore names.
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


class ConfigError(Exception):
    """Raised when daybook configuration is missing, malformed, or invalid."""


@dataclass
class GoogleConfig:
    """OAuth client and endpoint settings from the [google] section."""

    client_id: str
    client_secret: str
    token_url: str = GOOGLE_OAUTH_TOKEN_URL
    api_base_url: str = GOOGLE_CALENDAR_API_BASE_URL
    userinfo_url: str = GOOGLE_USERINFO_URL

    def __repr__(self) -> str:
        return f"GoogleConfig(client_id={self.client_id!r}, client_secret=<REDACTED>)"


@dataclass
class SyncConfig:
    """Reconciliation window from the [sync] section."""

    past_days: int = 30
    future_days: int = 180
    max_results: int = 250
    calendar_id: str = "primary"


@dataclass
class AuthConfig:
    """Token freshness settings from the [auth] section.

    A cached access token is reused only while it stays valid for longer
    than ``refresh_buffer_seconds``.
    """

    refresh_buffer_seconds: int = 60


@dataclass
class HttpConfig:
    timeout_s: float = 30.0
    connect_timeout_s: float = 10.0


@dataclass
class LoggingConfig:
    """Logging configuration from the [logging] section."""

    level: str = "INFO"
    format: str = "text"  # "text" or "json"
    log_root: str | None = None


@dataclass
class DatabaseConfig:
    url: str | None = None
    min_pool_size: int = 2
    max_pool_size: int = 10


@dataclass
class DaybookConfig:
    """Fully parsed daybook configuration."""

    google: GoogleConfig
    sync: SyncConfig = field(default_factory=SyncConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    db: DatabaseConfig = field(default_factory=DatabaseConfig)


def resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ``${VAR_NAME}`` references in config values.

    Walks dicts, lists, and strings. Non-string leaves pass through unchanged.

    Raises
    ------
    ConfigError
        If a referenced environment variable is not set.
    """
    if isinstance(value, dict):
        return {k: resolve_env_vars(v) for k, v in value.items()}

    if isinstance(value, list):
        return [resolve_env_vars(item) for item in value]

    if isinstance(value, str):
        return _resolve_string(value)

    return value


def _resolve_string(s: str) -> str:
    """Replace all ``${VAR_NAME}`` occurrences in *s* with env var values.

    Collects all missing variable names and reports them in a single error.
    """
    missing: list[str] = []

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is None:
            missing.append(var_name)
            return match.group(0)
        return env_value

    result = _ENV_VAR_PATTERN.sub(_replace, s)

    if missing:
        vars_str = ", ".join(missing)
        raise ConfigError(f"Unresolved environment variable(s) in config value: {vars_str}")

    return result


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name, {})
    if not isinstance(section, dict):
        raise ConfigError(f"[{name}] must be a table")
    return section


def _required_string(section: dict[str, Any], key: str, *, prefix: str) -> str:
    value = section.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"Missing required field: {prefix}.{key}")
    return value.strip()


def _positive_int(section: dict[str, Any], key: str, default: int, *, prefix: str) -> int:
    raw = section.get(key, default)
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid {prefix}.{key}: {raw!r}. Must be an integer.") from exc
    if value <= 0:
        raise ConfigError(f"Invalid {prefix}.{key}: {value!r}. Must be a positive integer.")
    return value


def _parse_google(section: dict[str, Any]) -> GoogleConfig:
    return GoogleConfig(
        client_id=_required_string(section, "client_id", prefix="google"),
        client_secret=_required_string(section, "client_secret", prefix="google"),
        token_url=str(section.get("token_url", GOOGLE_OAUTH_TOKEN_URL)),
        api_base_url=str(section.get("api_base_url", GOOGLE_CALENDAR_API_BASE_URL)).rstrip("/"),
        userinfo_url=str(section.get("userinfo_url", GOOGLE_USERINFO_URL)),
    )


def _parse_sync(section: dict[str, Any]) -> SyncConfig:
    max_results = _positive_int(section, "max_results", 250, prefix="sync")
    if max_results > 2500:
        raise ConfigError(
            f"Invalid sync.max_results: {max_results!r}. Google caps a page at 2500."
        )
    calendar_id = str(section.get("calendar_id", "primary")).strip()
    if not calendar_id:
        raise ConfigError("sync.calendar_id must be a non-empty string")
    return SyncConfig(
        past_days=_positive_int(section, "past_days", 30, prefix="sync"),
        future_days=_positive_int(section, "future_days", 180, prefix="sync"),
        max_results=max_results,
        calendar_id=calendar_id,
    )


def _parse_auth(section: dict[str, Any]) -> AuthConfig:
    raw = section.get("refresh_buffer_seconds", 60)
    try:
        buffer_seconds = int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid auth.refresh_buffer_seconds: {raw!r}") from exc
    if buffer_seconds < 0:
        raise ConfigError("auth.refresh_buffer_seconds must not be negative")
    return AuthConfig(refresh_buffer_seconds=buffer_seconds)


def _parse_http(section: dict[str, Any]) -> HttpConfig:
    try:
        timeout_s = float(section.get("timeout_s", 30.0))
        connect_timeout_s = float(section.get("connect_timeout_s", 10.0))
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid [http] timeout: {exc}") from exc
    if timeout_s <= 0 or connect_timeout_s <= 0:
        raise ConfigError("[http] timeouts must be positive")
    return HttpConfig(timeout_s=timeout_s, connect_timeout_s=connect_timeout_s)


def _parse_logging(section: dict[str, Any]) -> LoggingConfig:
    log_level = str(section.get("level", "INFO")).upper()
    log_format = str(section.get("format", "text")).lower()
    if log_format not in ("text", "json"):
        raise ConfigError(f"Invalid logging.format: {log_format!r}. Expected 'text' or 'json'.")
    return LoggingConfig(level=log_level, format=log_format, log_root=section.get("log_root"))


def _parse_db(section: dict[str, Any]) -> DatabaseConfig:
    url = section.get("url") or os.environ.get("DATABASE_URL")
    return DatabaseConfig(
        url=url,
        min_pool_size=_positive_int(section, "min_pool_size", 2, prefix="db"),
        max_pool_size=_positive_int(section, "max_pool_size", 10, prefix="db"),
    )


def parse_config(data: dict[str, Any]) -> DaybookConfig:
    """Build a :class:`DaybookConfig` from already-decoded TOML data."""
    data = resolve_env_vars(data)

    google_section = data.get("google")
    if not isinstance(google_section, dict):
        raise ConfigError("Missing [google] section in config")

    return DaybookConfig(
        google=_parse_google(google_section),
        sync=_parse_sync(_section(data, "sync")),
        auth=_parse_auth(_section(data, "auth")),
        http=_parse_http(_section(data, "http")),
        logging=_parse_logging(_section(data, "logging")),
        db=_parse_db(_section(data, "db")),
    )


def load_config(config_path: Path = DEFAULT_CONFIG_PATH) -> DaybookConfig:
    """Load and validate ``daybook.toml`` at *config_path*.

    Raises
    ------
    ConfigError
        If the file is missing, contains invalid TOML, or lacks required fields.
    """
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    raw_bytes = config_path.read_bytes()
    try:
        data = tomllib.loads(raw_bytes.decode())
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {config_path}: {exc}") from exc

    return parse_config(data)
