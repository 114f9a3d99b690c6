"""
DCD Property Store
Centralized Configuration Management

Configuration is read from environment variables (and an optional .env file)
through Pydantic settings, one section per backend.
"""

from functools import lru_cache
from typing import Optional
from pydantic import Field, field_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Relational Store Configuration"""
    
    model_config = SettingsConfigDict(env_prefix="DB_")
    
    driver: str = Field(default="postgresql+asyncpg", description="SQLAlchemy async driver")
    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    name: str = Field(default="dcd", description="Database name")
    user: str = Field(default="dcd", description="Database user")
    password: SecretStr = Field(default="secure_password", description="Database password")
    url: Optional[str] = Field(default=None, description="Full database URL (overrides host/port)")
    echo: bool = Field(default=False, description="Echo SQL queries")
    insert_chunk_size: int = Field(default=1000, description="Rows per multi-row INSERT statement")
    
    @property
    def async_url(self) -> str:
        """Async database URL"""
        if self.url:
            return self.url
        return f"{self.driver}://{self.user}:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.name}"


class TimeSeriesSettings(BaseSettings):
    """InfluxDB Time-Series Store Configuration"""
    
    model_config = SettingsConfigDict(env_prefix="INFLUX_")
    
    url: str = Field(default="http://localhost:8086", description="InfluxDB HTTP endpoint")
    database: str = Field(default="dcd", description="InfluxDB database")
    username: Optional[str] = Field(default=None, description="InfluxDB user")
    password: Optional[SecretStr] = Field(default=None, description="InfluxDB password")
    timeout: float = Field(default=10.0, description="Request timeout in seconds")
    precision: str = Field(default="ms", description="Write precision for points; queries and results use milliseconds")
    mirror_writes: bool = Field(default=False, description="Also write ingested values to InfluxDB")
    
    @field_validator("precision")
    @classmethod
    def validate_precision(cls, v: str) -> str:
        allowed = ["ns", "u", "ms", "s", "m", "h"]
        if v not in allowed:
            raise ValueError(f"Precision must be one of: {allowed}")
        return v


class KafkaSettings(BaseSettings):
    """Kafka Publish Channel Configuration"""
    
    model_config = SettingsConfigDict(env_prefix="KAFKA_")
    
    enabled: bool = Field(default=False, description="Publish to Kafka")
    bootstrap_servers: str = Field(default="localhost:9092", description="Kafka bootstrap servers")
    client_id: str = Field(default="dcd-property-store", description="Producer client id")
    max_batch_messages: int = Field(default=1000, description="Max messages sent per batch")
    
    # Topic configuration
    topics_properties: str = Field(default="properties", description="Property catalog topic")
    topics_values: str = Field(default="values", description="Property values topic")


class MonitoringSettings(BaseSettings):
    """Logging Configuration"""
    
    model_config = SettingsConfigDict(env_prefix="")
    
    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or text")


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
    
    app_name: str = Field(default="dcd-property-store", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    default_backend: str = Field(
        default="relational",
        alias="DEFAULT_BACKEND",
        description="Backend answering ranged reads: relational or timeseries",
    )
    
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    timeseries: TimeSeriesSettings = Field(default_factory=TimeSeriesSettings)
    kafka: KafkaSettings = Field(default_factory=KafkaSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)
    
    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()
    
    @field_validator("default_backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        allowed = ["relational", "timeseries"]
        if v.lower() not in allowed:
            raise ValueError(f"Backend must be one of: {allowed}")
        return v.lower()
    
    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.app_env == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.
    
    Uses LRU cache to ensure settings are only loaded once.
    
    Returns:
        Settings: Application settings instance
    """
    return Settings()
