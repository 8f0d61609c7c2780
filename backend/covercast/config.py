"""
Configuration management for CoverCast using Pydantic Settings.

Loads configuration from environment variables with type validation and sane defaults.
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration with environment variable support."""
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )
    
    # Application
    app_env: str = Field(default="development", description="Environment: development, staging, production")
    debug: bool = Field(default=False, description="Debug mode")
    default_timezone: str = Field(default="America/Los_Angeles", description="Timezone for restaurants without one")
    
    # Database
    database_url: str = Field(default="sqlite:///covercast.db", description="SQLAlchemy connection URL")
    
    # Weather (OpenWeather)
    openweather_api_key: str = Field(default="", description="OpenWeather API key")
    openweather_base_url: str = Field(default="https://api.openweathermap.org/data/2.5", description="OpenWeather base URL")
    openweather_rate_limit_requests: int = Field(default=50, description="OpenWeather requests per period")
    openweather_rate_limit_period: int = Field(default=60, description="OpenWeather rate limit period (seconds)")
    
    # Events (Ticketmaster)
    ticketmaster_api_key: str = Field(default="", description="Ticketmaster Discovery API key")
    ticketmaster_base_url: str = Field(default="https://app.ticketmaster.com/discovery/v2", description="Ticketmaster base URL")
    ticketmaster_rate_limit_requests: int = Field(default=5, description="Ticketmaster requests per period")
    ticketmaster_rate_limit_period: int = Field(default=1, description="Ticketmaster rate limit period (seconds)")
    
    # Sports (TheSportsDB)
    sportsdb_base_url: str = Field(default="https://www.thesportsdb.com/api/v1/json/3", description="TheSportsDB base URL")
    sportsdb_rate_limit_requests: int = Field(default=30, description="TheSportsDB requests per period")
    sportsdb_rate_limit_period: int = Field(default=60, description="TheSportsDB rate limit period (seconds)")
    
    # Provider plumbing
    provider_timeout_seconds: float = Field(default=10.0, description="Timeout for a single provider HTTP call")
    provider_max_retries: int = Field(default=3, description="Attempts per provider call before giving up")
    provider_max_workers: int = Field(default=4, description="Concurrent days fetched during context collection")
    
    # Caching
    cache_enabled: bool = Field(default=True, description="Enable caching")
    weather_cache_ttl: int = Field(default=3600, description="Weather response cache TTL in seconds")
    events_cache_ttl: int = Field(default=1800, description="Events response cache TTL in seconds")
    
    # Rate Limiting
    rate_limit_enabled: bool = Field(default=True, description="Enable rate limiting")
    
    # Discovery / validation / prediction windows
    discovery_window_days: int = Field(default=90, description="History analysed by the nightly discovery job")
    validation_window_days: int = Field(default=14, description="Fresh window used to re-test patterns")
    baseline_window_days: int = Field(default=30, description="Trailing window for prediction baselines")
    min_discovery_transactions: int = Field(default=30, description="Transactions required before discovery runs")
    prediction_min_confidence: float = Field(default=60.0, description="Minimum pattern confidence used in predictions")
    global_min_accuracy: float = Field(default=70.0, description="Accuracy required to contribute to pooled patterns")
    global_min_data_points: int = Field(default=20, description="Data points required to contribute to pooled patterns")
    regional_learning_enabled: bool = Field(default=True, description="Also pool patterns per region")
    
    # Logging
    log_level: str = Field(default="INFO", description="Log level: DEBUG, INFO, WARNING, ERROR")
    log_format: str = Field(default="text", description="Log format: json or text")
    log_file: str = Field(default="", description="Log file path (empty disables the file sink)")
    
    # Scheduler
    scheduler_enabled: bool = Field(default=True, description="Enable background scheduler")
    discovery_cron_hour: int = Field(default=2, description="Hour of day the nightly discovery job runs")
    discovery_cron_timezone: str = Field(default="America/Los_Angeles", description="Timezone of the nightly schedule")
    
    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Accept lower-case log levels from the environment."""
        return v.upper()
    
    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env == "development"


# Global settings instance
settings = Settings()
