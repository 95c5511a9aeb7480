"""
Ardent Auth configuration.
Loaded once at startup into an immutable Settings value and passed to consumers.
Precedence: explicit overrides > ARDENT_* environment variables > defaults below.
"""
import logging
import os
import secrets
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping

logger = logging.getLogger(__name__)

VERSION = "1.0.0"

_DEVELOPMENT_ENVIRONMENTS = {"development", "test"}


@dataclass(frozen=True)
class Settings:
    environment: str = "production"
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 3003

    # Storage
    data_dir: str = "./ardent-data"
    database_url: str = ""
    # Bounded wait for the SQLite write lock (e.g. held by a backup process)
    busy_timeout_ms: int = 5000

    # Public URLs of this service and of the web client it serves
    auth_base_url: str = "https://auth.ardent-insight.com"
    www_base_url: str = "https://ardent-insight.com"

    # Upstream (Frontier) OAuth server and companion API
    frontier_auth_url: str = "https://auth.frontierstore.net"
    frontier_api_url: str = "https://companion.orerve.net"
    client_id: str = ""
    oauth_scope: str = "auth capi"
    oauth_audience: str = "all"
    upstream_timeout_seconds: float = 10.0

    # Session credential (JWT in an httpOnly cookie)
    jwt_secret: str = ""
    cookie_name: str = "ardent.jwt"
    cookie_domain: str | None = None
    credential_max_age_seconds: int = 60 * 60 * 24 * 30
    credential_renew_after_seconds: int = 60 * 60 * 24

    # Sign-in attempts must complete within this window
    flow_ttl_seconds: int = 600

    # Refresh scheduler
    refresh_interval_seconds: int = 15 * 60
    refresh_horizon_seconds: int = 60 * 60

    # None: cached responses are served until overwritten or purged
    cache_max_age_seconds: int | None = None

    @property
    def is_production(self) -> bool:
        return self.environment not in _DEVELOPMENT_ENVIRONMENTS

    @property
    def callback_url(self) -> str:
        return f"{self.auth_base_url}/callback"

    @property
    def signed_in_url(self) -> str:
        return f"{self.www_base_url}/auth/signed-in"

    @property
    def signed_out_url(self) -> str:
        return f"{self.www_base_url}/auth/signed-out"

    @property
    def error_url(self) -> str:
        return f"{self.www_base_url}/auth/error"


# Settings field -> (environment variable, parser)
_ENV_VARS = {
    "environment": ("ARDENT_ENV", str),
    "log_level": ("ARDENT_LOG_LEVEL", str),
    "host": ("ARDENT_AUTH_HOST", str),
    "port": ("ARDENT_AUTH_LOCAL_PORT", int),
    "data_dir": ("ARDENT_DATA_DIR", str),
    "database_url": ("ARDENT_DATABASE_URL", str),
    "busy_timeout_ms": ("ARDENT_BUSY_TIMEOUT_MS", int),
    "auth_base_url": ("ARDENT_AUTH_BASE_URL", str),
    "www_base_url": ("ARDENT_WWW_BASE_URL", str),
    "frontier_auth_url": ("ARDENT_FRONTIER_AUTH_URL", str),
    "frontier_api_url": ("ARDENT_FRONTIER_API_URL", str),
    "client_id": ("ARDENT_AUTH_CLIENT_ID", str),
    "oauth_scope": ("ARDENT_AUTH_SCOPE", str),
    "oauth_audience": ("ARDENT_AUTH_AUDIENCE", str),
    "upstream_timeout_seconds": ("ARDENT_UPSTREAM_TIMEOUT", float),
    "jwt_secret": ("ARDENT_AUTH_JWT_SECRET", str),
    "cookie_name": ("ARDENT_AUTH_COOKIE_NAME", str),
    "cookie_domain": ("ARDENT_AUTH_COOKIE_DOMAIN", str),
    "credential_max_age_seconds": ("ARDENT_CREDENTIAL_MAX_AGE", int),
    "credential_renew_after_seconds": ("ARDENT_CREDENTIAL_RENEW_AFTER", int),
    "flow_ttl_seconds": ("ARDENT_FLOW_TTL", int),
    "refresh_interval_seconds": ("ARDENT_REFRESH_INTERVAL", int),
    "refresh_horizon_seconds": ("ARDENT_REFRESH_HORIZON", int),
    "cache_max_age_seconds": ("ARDENT_CACHE_MAX_AGE", int),
}

_URL_FIELDS = ("auth_base_url", "www_base_url", "frontier_auth_url", "frontier_api_url")


def _from_environ(environ: Mapping[str, str]) -> dict:
    values = {}
    for field_name, (var, parse) in _ENV_VARS.items():
        raw = environ.get(var, "").strip()
        if not raw:
            continue
        try:
            values[field_name] = parse(raw)
        except ValueError as e:
            raise ValueError(f"Invalid value for {var}: {raw!r}") from e
    return values


def load_settings(environ: Mapping[str, str] | None = None, **overrides) -> Settings:
    """
    Build the immutable Settings for this process.
    `environ` defaults to os.environ; keyword overrides win over both environment and defaults.
    """
    if environ is None:
        environ = os.environ
    values = _from_environ(environ)
    values.update(overrides)
    for name in _URL_FIELDS:
        if name in values:
            values[name] = values[name].rstrip("/")

    settings = Settings(**values)
    if not settings.database_url:
        db_path = Path(settings.data_dir) / "auth.db"
        settings = replace(settings, database_url=f"sqlite:///{db_path}")
    if not settings.jwt_secret:
        logger.warning(
            "ARDENT_AUTH_JWT_SECRET was not set, generating temporary secret (will change when server restarts)"
        )
        settings = replace(settings, jwt_secret=secrets.token_hex(64))
    return settings
