"""
Electronica Data Warehouse
Centralized Configuration Management

Pydantic settings with environment variable support for the warehouse
loader and the HYBRIDJOIN fact builder.
"""

from functools import lru_cache
from typing import Optional
from pydantic import Field, field_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

class DatabaseSettings(BaseSettings):
    """Warehouse Database Configuration"""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_")

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    db: str = Field(default="electronica_dw", alias="database", description="Database name")
    user: str = Field(default="electronica", description="Database user")
    password: SecretStr = Field(default="secure_password", description="Database password")
    echo: bool = Field(default=False, description="Echo SQL queries")
    url: Optional[str] = Field(default=None, alias="DATABASE_URL", description="Database URL (overrides host/port)")

    @property
    def async_url(self) -> str:
        """Async database URL - uses DATABASE_URL if set, otherwise asyncpg"""
        if self.url:
            return self.url
        return f"postgresql+asyncpg://{self.user}:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"

class SourceSettings(BaseSettings):
    """Source File Configuration"""

    model_config = SettingsConfigDict(env_prefix="SOURCE_")

    transactions_file: str = Field(default="data/transactions.csv", description="Transactional source file")
    master_data_file: str = Field(default="data/master_data.csv", description="Master data source file")
    delimiter: str = Field(default=",", description="Field delimiter")

class HybridJoinSettings(BaseSettings):
    """HYBRIDJOIN Fact Builder Configuration"""

    model_config = SettingsConfigDict(env_prefix="HYBRIDJOIN_")

    batch_size: int = Field(default=10, description="Stream records per batch")
    pace_ms: int = Field(default=1000, description="Delay between batch dispatches in milliseconds")
    channel_capacity: int = Field(default=1, description="Hand-off channel capacity (0 = unbounded)")
    max_attempts: int = Field(default=1, description="Attempts per lookup/sink call")
    retry_backoff_ms: int = Field(default=0, description="Delay between attempts in milliseconds")
    absent_dimension_id: Optional[int] = Field(
        default=None,
        description="Id written for a missing dimension row (None keeps it absent)",
    )
    outer_page_size: int = Field(default=500, description="Outer relation rows fetched per page")

    @field_validator("batch_size", "max_attempts", "outer_page_size")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate strictly positive values"""
        if v < 1:
            raise ValueError("Value must be a positive integer")
        return v

    @field_validator("pace_ms", "channel_capacity", "retry_backoff_ms")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        """Validate non-negative values"""
        if v < 0:
            raise ValueError("Value must not be negative")
        return v

    @property
    def pace_seconds(self) -> float:
        """Pacing delay in seconds"""
        return self.pace_ms / 1000

class MonitoringSettings(BaseSettings):
    """Monitoring and Observability Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="text", alias="LOG_FORMAT", description="Log format: json or text")

class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")

    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    sources: SourceSettings = Field(default_factory=SourceSettings)
    hybrid_join: HybridJoinSettings = Field(default_factory=HybridJoinSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
