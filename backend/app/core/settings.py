"""
Application settings with validation using pydantic-settings.
Validates all required environment variables at startup.
"""
import socket
from urllib.parse import quote_plus
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _resolve_db_host(host: str) -> str:
    """Resolve DB host to IP so asyncpg avoids getaddrinfo in asyncio context (e.g. in Docker)."""
    if not host or host in ("localhost", "127.0.0.1"):
        return host
    try:
        return socket.gethostbyname(host)
    except socket.gaierror:
        return host


class Settings(BaseSettings):
    """Application settings with validation."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database configuration
    DB_USER: str = Field(..., description="PostgreSQL username")
    DB_PASSWORD: str = Field(..., description="PostgreSQL password")
    DB_NAME: str = Field(..., description="PostgreSQL database name")
    DB_HOST: str = Field(default="localhost", description="PostgreSQL host")
    DB_PORT: str = Field(default="5432", description="PostgreSQL port")
    DB_READ_REPLICA_URL: Optional[str] = Field(default=None, description="PostgreSQL read replica URL (optional)")

    # Database pool configuration
    DB_POOL_SIZE: int = Field(default=20, description="Database connection pool size")
    DB_MAX_OVERFLOW: int = Field(default=40, description="Database max overflow connections")
    DB_POOL_RECYCLE: int = Field(default=3600, description="Database connection recycle time (seconds)")

    # Security configuration
    ADMIN_SECRET: Optional[str] = Field(default=None, description="Admin token for report endpoints (required in production)")

    # CORS configuration
    ALLOWED_ORIGINS: str = Field(default="", description="Comma-separated list of allowed CORS origins")

    # Environment
    ENVIRONMENT: str = Field(default="production", description="Environment: development or production")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")

    # Reporting
    REPORT_TIMEZONE: Optional[str] = Field(
        default=None,
        description="IANA timezone for hourly bucketing and presets; server local time when unset",
    )
    VAT_RATE: float = Field(default=0.15, ge=0, lt=1, description="VAT rate applied to report revenue")
    EOD_REPORT_PREFIX: str = Field(default="EOD", description="Prefix of sequential report numbers")
    ORDER_NUMBER_PREFIX: str = Field(default="ORD", description="Prefix of sequential order numbers")
    BEST_SELLERS_LIMIT: Optional[int] = Field(default=None, gt=0, description="Max best-selling rows (all when unset)")
    EOD_RATE_LIMIT: str = Field(default="30/minute", description="Rate limit for report generation")

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment value."""
        if v not in ("development", "production"):
            raise ValueError("ENVIRONMENT must be 'development' or 'production'")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    @field_validator("REPORT_TIMEZONE")
    @classmethod
    def validate_report_timezone(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return None
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"REPORT_TIMEZONE '{v}' is not a known IANA timezone")
        return v

    def validate_production_settings(self) -> list[str]:
        """
        Validate that all required settings are present in production.
        Returns list of missing settings.
        """
        errors = []

        if self.ENVIRONMENT == "production":
            if not self.ADMIN_SECRET:
                errors.append("ADMIN_SECRET is required in production")
            if not self.ALLOWED_ORIGINS:
                errors.append("ALLOWED_ORIGINS is required in production")

        return errors

    @property
    def db_url(self) -> str:
        """Get database URL. Resolve host to IP so connections work in Docker/async context."""
        host = _resolve_db_host(self.DB_HOST)
        password = quote_plus(self.DB_PASSWORD)
        return f"postgresql+asyncpg://{self.DB_USER}:{password}@{host}:{self.DB_PORT}/{self.DB_NAME}"

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.ENVIRONMENT == "production"

    @property
    def allowed_origins_list(self) -> list[str]:
        """Get list of allowed CORS origins."""
        if not self.ALLOWED_ORIGINS:
            return []
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]

    @property
    def report_tz(self) -> Optional[ZoneInfo]:
        """Timezone for report bucketing; None means the server's local timezone."""
        return ZoneInfo(self.REPORT_TIMEZONE) if self.REPORT_TIMEZONE else None


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get application settings (singleton)."""
    global _settings
    if _settings is None:
        _settings = Settings()
        # Validate production settings
        errors = _settings.validate_production_settings()
        if errors:
            error_msg = "Configuration errors:\n" + "\n".join(f"  - {e}" for e in errors)
            raise ValueError(error_msg)
    return _settings
