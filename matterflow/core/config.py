# matterflow/core/config.py - Service configuration
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, SecretStr
from typing import List, Optional


class Settings(BaseSettings):
    """
    Settings for the MatterFlow workflow engine, read from the environment or .env
    """
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Database Settings
    DATABASE_URL: str = Field(..., description="Async SQLAlchemy URL (postgresql+asyncpg://... or sqlite+aiosqlite://...)")

    # Application Settings
    ENVIRONMENT: str = Field("development", description="Environment name")
    LOG_LEVEL: str = Field("INFO", description="Log level")

    # Logging Configuration
    ENABLE_JSON_LOGGING: bool = Field(True, description="Enable JSON structured logging")

    # OpenTelemetry Tracing Settings
    ENABLE_OTEL_EXPORTER: bool = Field(True, description="Enable OpenTelemetry tracer provider and instrumentation")
    ENABLE_OTEL_CONSOLE_EXPORT: bool = Field(False, description="Enable OpenTelemetry console span export")

    # CORS Settings
    CORS_ORIGINS: str = Field(
        "http://localhost:3000,http://127.0.0.1:3000",
        description="Comma-separated list of allowed CORS origins"
    )

    # Rate Limiting Settings
    RATE_LIMIT_ENABLED: bool = Field(True, description="Enable rate limiting")
    DEFAULT_RATE_LIMIT: str = Field("100/minute", description="Default rate limit")

    # Performance Settings
    DB_POOL_SIZE: int = Field(20, description="Database connection pool size")
    DB_MAX_OVERFLOW: int = Field(0, description="Database max overflow connections")

    # SLA monitoring
    SLA_SWEEP_ENABLED: bool = Field(True, description="Run the periodic SLA breach sweep")
    SLA_SWEEP_INTERVAL_SECONDS: int = Field(900, ge=10, description="Seconds between SLA sweeps")
    SEED_DEFAULT_SLA_RULES: bool = Field(True, description="Create the per-priority SLA rules at startup")

    # Notification delivery relay
    NOTIFICATION_WEBHOOK_URL: Optional[str] = Field(None, description="Downstream delivery service endpoint")
    NOTIFICATION_WEBHOOK_SECRET: Optional[SecretStr] = Field(None, description="HMAC secret for signing relayed events")
    NOTIFICATION_RELAY_WORKERS: int = Field(2, ge=1, description="Number of relay delivery workers")
    NOTIFICATION_RELAY_MAX_TRIES: int = Field(5, ge=1, description="Delivery attempts per event")
    NOTIFICATION_RELAY_QUEUE_SIZE: int = Field(1000, ge=1, description="Events held for delivery before new ones are dropped")

    # Analytics
    VELOCITY_WINDOW_DAYS: int = Field(7, ge=1, le=365, description="Default trailing window for task velocity")
    OVERLOADED_ASSIGNEE_THRESHOLD: int = Field(5, ge=1, description="Open tasks above which an assignee is overloaded")

    @property
    def cors_origins_list(self) -> List[str]:
        """Convert CORS_ORIGINS string to list"""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def should_use_json_logging(self) -> bool:
        """Use JSON logging in production or when explicitly enabled"""
        return self.ENVIRONMENT == "production" or self.ENABLE_JSON_LOGGING

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")


# Create settings instance
settings = Settings()
