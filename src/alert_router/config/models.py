"""Pydantic models for application configuration with validation."""

from typing import Dict, Literal, Optional
from pydantic import BaseModel, Field, field_validator


class BrokerConfig(BaseModel):
    """Broker REST gateway configuration."""

    base_url: str = Field(
        default="https://api.dhan.co/v2",
        description="Base URL of the broker REST API"
    )
    request_timeout_seconds: float = Field(
        default=10.0,
        ge=1.0,
        le=60.0,
        description="Timeout for broker API requests"
    )
    exchange_segment: str = Field(
        default="NSE_EQ",
        description="Exchange segment used for every order"
    )
    product_type: str = Field(
        default="CNC",
        description="Product type used for every order"
    )
    security_ids: Dict[str, str] = Field(
        default_factory=dict,
        description="Ticker to broker security id mapping"
    )

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class RebaseConfig(BaseModel):
    """Stop-loss/target rebase worker settings."""

    max_attempts: int = Field(
        default=5,
        ge=1,
        le=30,
        description="Order status polls before a task is abandoned"
    )
    attempt_delay_seconds: float = Field(
        default=3.0,
        ge=0.0,
        le=60.0,
        description="Wait between order status polls"
    )
    inter_task_delay_seconds: float = Field(
        default=0.5,
        ge=0.0,
        le=10.0,
        description="Pause after each task before the next one starts"
    )
    max_results: int = Field(
        default=1000,
        ge=1,
        le=100000,
        description="How many terminal results are retained for inspection"
    )


class RateLimitConfig(BaseModel):
    """Token bucket applied to broker calls made by the rebase worker."""

    enabled: bool = Field(
        default=False,
        description="Enable/disable the broker call rate limiter"
    )
    rate_per_second: float = Field(
        default=5.0,
        gt=0.0,
        le=100.0,
        description="Tokens added per second"
    )
    burst: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Bucket capacity"
    )


class RedisConfig(BaseModel):
    """Redis connection for the duplicate-ticker store."""

    enabled: bool = Field(
        default=True,
        description="Use redis for the duplicate-ticker store; in-memory when disabled"
    )
    url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL"
    )
    ticker_ttl_seconds: int = Field(
        default=2 * 24 * 60 * 60,
        ge=60,
        description="Expiry of per-day ordered-ticker sets"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Root log level"
    )
    format: Literal["text", "json"] = Field(
        default="text",
        description="Line format for all handlers"
    )
    log_dir: Optional[str] = Field(
        default=None,
        description="Directory for the rotating log file; console only when unset"
    )
    backup_count: int = Field(
        default=30,
        ge=1,
        le=365,
        description="Days of rotated logs to keep"
    )

    @field_validator("level", mode="before")
    @classmethod
    def upper_level(cls, v):
        return v.upper() if isinstance(v, str) else v


class AppConfig(BaseModel):
    """Root application configuration."""

    accounts_file: str = Field(
        default="accounts.yaml",
        description="YAML file listing account configurations"
    )
    broker: BrokerConfig = Field(
        default_factory=BrokerConfig,
        description="Broker connection settings"
    )
    rebase: RebaseConfig = Field(
        default_factory=RebaseConfig,
        description="Rebase queue settings"
    )
    rate_limit: RateLimitConfig = Field(
        default_factory=RateLimitConfig,
        description="Broker call rate limiting"
    )
    redis: RedisConfig = Field(
        default_factory=RedisConfig,
        description="Duplicate-ticker store"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging settings"
    )
