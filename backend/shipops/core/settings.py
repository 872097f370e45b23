"""
ShipOps - Configuration Management with pydantic-settings

Provides validated, type-safe configuration from environment variables.
All settings can be overridden via environment variables or .env file.
"""
from functools import lru_cache
from typing import Optional, List
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings with validation.

    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra env vars
    )

    # ===================
    # Application Settings
    # ===================
    PROJECT_NAME: str = "ShipOps"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    DEBUG: bool = Field(default=False, description="Enable debug mode")
    ENVIRONMENT: str = Field(default="development", description="deployment environment")

    # ===================
    # Database Settings
    # ===================
    DATABASE_URL: str = Field(
        default="sqlite:///./shipops.db",
        description="SQLAlchemy database URL",
    )

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")

    # ===================
    # Security Settings
    # ===================
    API_KEY: Optional[str] = Field(
        default=None,
        description="When set, every shipment endpoint requires a matching X-API-Key header",
    )

    # ===================
    # CORS Settings
    # ===================
    ALLOWED_ORIGINS: List[str] = Field(
        default=[
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
        description="Allowed CORS origins"
    )

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse comma-separated string to list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    # ===================
    # Carrier Integrations
    # ===================
    ENABLED_CARRIERS: List[str] = Field(
        default=["blue_dart", "fedex", "dhl"],
        description="Carrier keys registered at startup",
    )

    @field_validator("ENABLED_CARRIERS", mode="before")
    @classmethod
    def parse_enabled_carriers(cls, v):
        """Parse comma-separated string to list."""
        if isinstance(v, str):
            return [key.strip().lower() for key in v.split(",") if key.strip()]
        return v

    BLUE_DART_API_KEY: Optional[str] = Field(default=None, description="Blue Dart API key")
    BLUE_DART_BASE_URL: str = Field(
        default="https://api.bluedart.com",
        description="Blue Dart API base URL"
    )
    FEDEX_API_KEY: Optional[str] = Field(default=None, description="FedEx API key")
    FEDEX_BASE_URL: str = Field(
        default="https://apis.fedex.com",
        description="FedEx API base URL"
    )
    DHL_API_KEY: Optional[str] = Field(default=None, description="DHL API key")
    DHL_BASE_URL: str = Field(
        default="https://api-eu.dhl.com",
        description="DHL API base URL"
    )

    CARRIER_TIMEOUT_SECONDS: float = Field(
        default=30.0,
        description="Upper bound for a single carrier call",
    )
    CARRIER_MAX_RETRIES: int = Field(
        default=0,
        ge=0,
        description="Extra attempts for transient carrier failures (0 = fail immediately)",
    )
    CARRIER_RETRY_BACKOFF_SECONDS: float = Field(
        default=0.5,
        description="Base delay for exponential backoff between carrier retries",
    )

    # ===================
    # Delayed Shipment Sweep
    # ===================
    DELAYED_SWEEP_ENABLED: bool = Field(
        default=False,
        description="Run the delayed-shipment sweep on a schedule",
    )
    DELAYED_SWEEP_INTERVAL_MINUTES: int = Field(
        default=5,
        description="Minutes between delayed-shipment sweeps",
    )

    # ===================
    # Logging Settings
    # ===================
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: str = Field(default="json", description="Log format: json or text")
    LOG_FILE: Optional[str] = Field(default=None, description="Log file path (optional)")
    AUDIT_LOG_FILE: Optional[str] = Field(
        default="./logs/audit.log",
        description="Audit log file path for business events"
    )

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to avoid re-reading environment on every call.
    Call get_settings.cache_clear() to reload settings.
    """
    return Settings()


# Global settings instance for convenience
settings = get_settings()
