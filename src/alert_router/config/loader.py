"""Configuration loader with validation and singleton access."""

import logging
import yaml
from pathlib import Path
from typing import Optional

from .models import AppConfig

logger = logging.getLogger(__name__)

# Loaded by the entry point; core components receive their sections explicitly
_config: Optional[AppConfig] = None


def load_config(config_path: str | Path) -> AppConfig:
    """
    Load and validate configuration from YAML file.

    Args:
        config_path: Path to config.yaml file

    Returns:
        Validated AppConfig instance

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config validation fails
        yaml.YAMLError: If YAML parsing fails
    """
    global _config

    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    logger.info(f"Loading configuration from: {config_path}")

    with open(config_path, 'r') as f:
        raw_config = yaml.safe_load(f)

    if raw_config is None:
        raw_config = {}

    try:
        _config = AppConfig(**raw_config)
    except Exception as e:
        logger.error(f"Configuration validation failed: {e}")
        raise ValueError(f"Invalid configuration: {e}") from e

    # Relative accounts file is resolved against the config file location
    accounts_path = Path(_config.accounts_file)
    if not accounts_path.is_absolute():
        _config = _config.model_copy(
            update={'accounts_file': str(config_path.parent / accounts_path)}
        )

    # Log loaded configuration for audit trail
    logger.info("Configuration loaded successfully:")
    logger.info(f"  Accounts file: {_config.accounts_file}")
    logger.info(f"  Broker base URL: {_config.broker.base_url}")
    logger.info(f"  Broker request timeout: {_config.broker.request_timeout_seconds}s")
    logger.info(f"  Rebase max attempts: {_config.rebase.max_attempts}")
    logger.info(f"  Rebase attempt delay: {_config.rebase.attempt_delay_seconds}s")
    logger.info(f"  Rebase inter-task delay: {_config.rebase.inter_task_delay_seconds}s")
    logger.info(f"  Rate limit: {'enabled' if _config.rate_limit.enabled else 'disabled'} "
                f"({_config.rate_limit.rate_per_second}/s, burst {_config.rate_limit.burst})")
    logger.info(f"  Log level: {_config.logging.level}")

    return _config


def get_config() -> AppConfig:
    """
    Get the current loaded configuration.

    Returns:
        Current AppConfig instance

    Raises:
        RuntimeError: If config hasn't been loaded yet
    """
    if _config is None:
        raise RuntimeError(
            "Configuration not loaded. Call load_config() first."
        )
    return _config
