"""Application settings and configuration.

This module defines all configuration options for the Shonra admin backend.
Settings are loaded from environment variables with sensible defaults; every
field keeps the environment name operators already use in deployment files.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from urllib.parse import quote_plus

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

_SECOND_MS = 1000
_MINUTE_MS = 60 * _SECOND_MS
_HOUR_MS = 60 * _MINUTE_MS
_DAY_MS = 24 * _HOUR_MS


def _split_csv(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files. Tests
    construct instances directly, using either the field name or its alias.
    """

    # Application metadata
    app_name: str = Field(default="Shonra Admin Backend", alias="APP_NAME")
    app_version: str = Field(default="1.0.0", alias="APP_VERSION")
    environment: str = Field(default="development", alias="NODE_ENV")
    server_port: int = Field(default=3002, alias="SERVER_PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database configuration
    database_url: str | None = Field(default=None, alias="DATABASE_URL")
    db_host: str | None = Field(default=None, alias="DB_HOST")
    db_port: int = Field(default=3306, alias="DB_PORT")
    db_user: str = Field(default="root", alias="DB_USER")
    db_password: str = Field(default="", alias="DB_PASSWORD")
    db_name: str = Field(default="shopee_affiliate", alias="DB_NAME")
    db_connection_limit: int | None = Field(default=None, alias="DB_CONNECTION_LIMIT")
    db_connect_timeout: int = Field(default=10, alias="DB_CONNECT_TIMEOUT")
    db_timezone: str = Field(default="+00:00", alias="DB_TIMEZONE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Sessions
    session_timeout_ms: int = Field(default=7 * _DAY_MS, alias="SESSION_TIMEOUT_MS")
    auto_refresh_threshold_ms: int = Field(default=_DAY_MS, alias="AUTO_REFRESH_THRESHOLD_MS")
    session_sweep_interval_ms: int = Field(default=_HOUR_MS, alias="SESSION_SWEEP_INTERVAL_MS")

    # Account lockout
    max_failed_login_attempts: int = Field(default=5, alias="MAX_FAILED_LOGIN_ATTEMPTS")
    account_lockout_minutes: int = Field(default=30, alias="ACCOUNT_LOCKOUT_MINUTES")
    login_violation_soft_threshold: int = Field(
        default=3,
        alias="LOGIN_VIOLATION_SOFT_THRESHOLD",
    )

    # Rate limiting
    rate_limit_window_ms: int = Field(default=_MINUTE_MS, alias="RATE_LIMIT_WINDOW_MS")
    rate_limit_max_requests: int = Field(default=60, alias="RATE_LIMIT_MAX_REQUESTS")
    strict_rate_limit_window_ms: int = Field(
        default=15 * _MINUTE_MS,
        alias="STRICT_RATE_LIMIT_WINDOW_MS",
    )
    strict_rate_limit_max_requests: int = Field(
        default=20,
        alias="STRICT_RATE_LIMIT_MAX_REQUESTS",
    )
    rate_limit_sweep_interval_ms: int = Field(
        default=5 * _MINUTE_MS,
        alias="RATE_LIMIT_SWEEP_INTERVAL_MS",
    )

    # IP blocking
    auto_block_enabled: bool = Field(default=True, alias="AUTO_BLOCK_ENABLED")
    violation_threshold: int = Field(default=10, alias="VIOLATION_THRESHOLD")
    violation_window_ms: int = Field(default=15 * _MINUTE_MS, alias="VIOLATION_WINDOW_MS")
    block_duration_ms: int = Field(default=_HOUR_MS, alias="BLOCK_DURATION_MS")
    block_sweep_interval_ms: int = Field(default=5 * _MINUTE_MS, alias="BLOCK_SWEEP_INTERVAL_MS")
    whitelisted_ips_raw: str = Field(default="", alias="WHITELISTED_IPS")
    trust_proxy: bool = Field(default=True, alias="TRUST_PROXY")
    frontend_api_secret: str | None = Field(default=None, alias="FRONTEND_API_SECRET")

    # Response cache
    response_cache_ttl_ms: int = Field(default=5 * _MINUTE_MS, alias="RESPONSE_CACHE_TTL_MS")
    cache_sweep_interval_ms: int = Field(default=_MINUTE_MS, alias="CACHE_SWEEP_INTERVAL_MS")

    # Origin / referer allow-list
    client_url: str | None = Field(default=None, alias="CLIENT_URL")
    backend_url: str | None = Field(default=None, alias="BACKEND_URL")
    dev_origins_raw: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        alias="DEV_ORIGINS",
    )

    # Affiliate API credentials
    shopee_app_id: str | None = Field(default=None, alias="SHOPEE_APP_ID")
    shopee_app_secret: str | None = Field(default=None, alias="SHOPEE_APP_SECRET")
    shopee_api_url: str = Field(
        default="https://open-api.affiliate.shopee.co.th/graphql",
        alias="SHOPEE_API_URL",
    )
    shopee_http_timeout_seconds: float = Field(default=30.0, alias="SHOPEE_HTTP_TIMEOUT_SECONDS")

    # Request budget
    request_timeout_ms: int = Field(default=30 * _SECOND_MS, alias="REQUEST_TIMEOUT_MS")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        populate_by_name=True,
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        """Return True when strict production behaviour is selected."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Return True when error details may be exposed to clients."""
        return self.environment.lower() == "development"

    @property
    def whitelisted_ips(self) -> list[str]:
        """Return the configured whitelist seed as a list."""
        return _split_csv(self.whitelisted_ips_raw)

    @property
    def allowed_origins(self) -> list[str]:
        """Return the origin allow-list, configured URLs first, without duplicates."""
        origins: list[str] = []
        for origin in [self.client_url, self.backend_url, *_split_csv(self.dev_origins_raw)]:
            if origin and origin.rstrip("/") not in origins:
                origins.append(origin.rstrip("/"))
        return origins

    @property
    def effective_database_url(self) -> str:
        """Return the database URL, composing a MySQL URL from ``DB_*`` if needed.

        Returns:
            ``DATABASE_URL`` when set, a ``mysql+pymysql`` URL when ``DB_HOST`` is
            set, otherwise a local SQLite file.
        """
        if self.database_url:
            return self.database_url
        if self.db_host:
            password = quote_plus(self.db_password)
            return (
                f"mysql+pymysql://{self.db_user}:{password}@{self.db_host}:"
                f"{self.db_port}/{self.db_name}?charset=utf8mb4"
            )
        return "sqlite:///./shonra_admin.db"

    @property
    def db_pool_size(self) -> int:
        """Return the bounded connection pool size."""
        if self.db_connection_limit:
            return self.db_connection_limit
        return 20 if self.is_production else 10

    @property
    def lockout_duration(self) -> timedelta:
        """Return the account lockout duration."""
        return timedelta(minutes=self.account_lockout_minutes)

    @property
    def affiliate_configured(self) -> bool:
        """Return True when both affiliate credentials are present."""
        return bool(self.shopee_app_id and self.shopee_app_secret)


def validate_runtime(config: Settings) -> None:
    """Log configuration gaps that degrade a production deployment."""
    if not config.is_production:
        return
    if not config.affiliate_configured:
        logger.warning("SHOPEE_APP_ID / SHOPEE_APP_SECRET are not set; affiliate API calls will fail")
    if not config.client_url:
        logger.warning("CLIENT_URL is not set; only DEV_ORIGINS will pass the origin check")


settings = Settings()
