"""Application configuration management for the alert order router."""

from .models import (
    AppConfig,
    BrokerConfig,
    RebaseConfig,
    RateLimitConfig,
    RedisConfig,
    LoggingConfig,
)
from .loader import load_config, get_config

__all__ = [
    "AppConfig",
    "BrokerConfig",
    "RebaseConfig",
    "RateLimitConfig",
    "RedisConfig",
    "LoggingConfig",
    "load_config",
    "get_config",
]
