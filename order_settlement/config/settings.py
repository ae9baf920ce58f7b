"""Application settings using Pydantic for environment-based configuration."""
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from order_settlement.domain.statuses import Currency


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Comgate Configuration
    comgate_base_url: str = Field(
        default="https://payments.comgate.cz/v2.0", description="Comgate REST API base URL"
    )
    comgate_merchant_id: Optional[str] = Field(default=None, description="Comgate merchant ID")
    comgate_secret: Optional[str] = Field(
        default=None, description="Comgate API secret (also signs webhooks)"
    )
    comgate_test_mode: Optional[bool] = Field(
        default=None, description="Send test payments (defaults to non-production)"
    )
    comgate_method: str = Field(default="ALL", description="Allowed payment methods")
    comgate_lang: str = Field(default="cs", description="Payment page language")
    comgate_country: str = Field(default="CZ", description="Payer country")
    comgate_connect_timeout: float = Field(default=10.0, description="Connect timeout (seconds)")
    comgate_read_timeout: float = Field(default=30.0, description="Read timeout (seconds)")
    verify_webhook_signatures: bool = Field(
        default=True, description="Verify webhook HMAC signatures (always on in production)"
    )

    # Database Configuration
    database_url: str = Field(
        default="sqlite+aiosqlite:///./order_settlement.db",
        description="Async SQLAlchemy connection URL",
    )
    database_pool_size: int = Field(default=20, description="Database connection pool size")
    database_max_overflow: int = Field(default=50, description="Max database connection overflow")
    database_echo: bool = Field(default=False, description="Echo SQL queries (debug)")

    # Application Configuration
    app_name: str = Field(default="order-settlement", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/production)")
    log_level: str = Field(default="INFO", description="Logging level")
    debug: bool = Field(default=False, description="Debug mode")

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")
    api_workers: int = Field(default=4, description="Number of API workers")
    allowed_origins: str = Field(
        default="http://localhost:3000,http://localhost:8000",
        description="CORS allowed origins (comma-separated)"
    )

    # Orders
    supported_currencies: str = Field(
        default="CZK,EUR", description="Order currencies (comma-separated)"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()

    @field_validator("comgate_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Endpoints are appended with a leading slash."""
        return v.rstrip("/")

    @field_validator("supported_currencies")
    @classmethod
    def validate_supported_currencies(cls, v: str) -> str:
        """Only currencies orders can be placed in (Currency) may be enabled."""
        known = {c.value for c in Currency}
        codes = [c.strip().upper() for c in v.split(",") if c.strip()]
        if not codes:
            raise ValueError("At least one supported currency is required")
        unknown = [c for c in codes if c not in known]
        if unknown:
            raise ValueError(
                f"Unsupported currencies: {', '.join(unknown)}. Must be among: {sorted(known)}"
            )
        return ",".join(codes)

    def get_allowed_origins_list(self) -> List[str]:
        """Parse allowed origins from comma-separated string."""
        return [origin.strip() for origin in self.allowed_origins.split(",")]

    def get_supported_currencies(self) -> List[str]:
        """Parse supported currencies from comma-separated string."""
        return [c.strip().upper() for c in self.supported_currencies.split(",") if c.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env.lower() == "production"

    @property
    def gateway_test_mode(self) -> bool:
        """Whether payments are created as Comgate test payments."""
        if self.comgate_test_mode is None:
            return not self.is_production
        return self.comgate_test_mode

    @property
    def webhook_verification_required(self) -> bool:
        """Signature checks can only be switched off outside production."""
        return self.is_production or self.verify_webhook_signatures

    def missing_gateway_credentials(self) -> List[str]:
        """Names of Comgate credentials that are not configured."""
        missing = []
        if not self.comgate_merchant_id:
            missing.append("merchant_id")
        if not self.comgate_secret:
            missing.append("secret")
        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
