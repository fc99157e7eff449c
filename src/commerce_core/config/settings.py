"""
Configuration loading for the commerce core service.

This module provides utilities for loading configuration from a JSON file,
from environment variables, or from built-in defaults.
"""

import logging
import os
from pathlib import Path
from typing import Any

from .models import AppConfig

logger = logging.getLogger(__name__)

# Environment variable -> dotted config path
ENV_VARS = {
    "COMMERCE_DATABASE_URL": "database.url",
    "COMMERCE_BANK_TRANSFER_RATE": "pricing.bank_transfer_surcharge_rate",
    "COMMERCE_EXCHANGE_RATE": "pricing.default_exchange_rate",
    "COMMERCE_EXCHANGE_RATE_URL": "pricing.exchange_rate_url",
    "COMMERCE_CATALOG_DIR": "catalog.output_dir",
    "COMMERCE_CATALOG_TITLE": "catalog.title",
    "COMMERCE_IMAGE_BASE_URL": "catalog.image_base_url",
    "COMMERCE_ROOM_MAX_MEMBERS": "rooms.max_members",
    "COMMERCE_ROOM_TTL_SECONDS": "rooms.ttl_seconds",
    "COMMERCE_API_KEY": "api_key",
    "COMMERCE_LOG_LEVEL": "log_level",
}


def load_config(
    config_path: str | Path | None = None, config_name: str = "config.json"
) -> AppConfig:
    """
    Load configuration from file with path resolution.

    Args:
        config_path: Explicit path to config file or directory containing config
        config_name: Name of config file (default: "config.json")

    Returns:
        AppConfig: Loaded and validated configuration

    Raises:
        FileNotFoundError: If no configuration file is found
        ValueError: If configuration is invalid
    """
    if config_path is None:
        search_paths = [
            Path.cwd() / config_name,
            Path.cwd() / "config" / config_name,
        ]

        for path in search_paths:
            if path.exists():
                config_path = path
                break
        else:
            raise FileNotFoundError(
                f"Configuration file '{config_name}' not found in any of: "
                f"{[str(p) for p in search_paths]}"
            )

    config_path = Path(config_path)

    if config_path.is_dir():
        config_path = config_path / config_name

    return AppConfig.from_file(config_path)


def _set_dotted(data: dict[str, Any], dotted: str, value: str) -> None:
    section, _, key = dotted.rpartition(".")
    target = data
    if section:
        target = data.setdefault(section, {})
    target[key] = value


def get_config_from_env(environ: dict[str, str] | None = None) -> AppConfig | None:
    """
    Try to load configuration from environment variables.

    Args:
        environ: Mapping to read instead of ``os.environ``

    Returns:
        AppConfig if any COMMERCE_* variable is set, None otherwise

    Raises:
        ValueError: If a variable holds a value the config model rejects
    """
    environ = os.environ if environ is None else environ

    config_file_env = environ.get("COMMERCE_CONFIG_FILE")
    if config_file_env:
        return load_config(config_file_env)

    env_values = {name: environ.get(name) for name in ENV_VARS}
    if not any(env_values.values()):
        return None

    config_data: dict[str, Any] = {}
    for name, value in env_values.items():
        if value:
            _set_dotted(config_data, ENV_VARS[name], value)

    try:
        return AppConfig(**config_data)
    except (ValueError, TypeError) as e:
        raise ValueError(f"Invalid environment variable configuration: {e}")


def load_config_with_fallback(config_path: str | Path | None = None) -> AppConfig:
    """
    Load configuration with fallback to environment variables and defaults.

    Priority order:
    1. Explicit config file path
    2. Environment variable COMMERCE_CONFIG_FILE
    3. Individual COMMERCE_* environment variables
    4. Default locations (config.json, config/config.json)
    5. Built-in defaults

    Args:
        config_path: Optional explicit path to config file

    Returns:
        AppConfig: Loaded configuration
    """
    if config_path:
        try:
            return load_config(config_path)
        except FileNotFoundError:
            logger.warning(f"Config file {config_path} not found, trying fallbacks")

    try:
        env_config = get_config_from_env()
        if env_config:
            return env_config
    except (ValueError, FileNotFoundError) as e:
        logger.warning(f"Ignoring environment configuration: {e}")

    try:
        return load_config()
    except FileNotFoundError:
        pass

    logger.info("No configuration found, using built-in defaults")
    return AppConfig()
