"""Configuration loader for the Broker Agent.

Loads and validates broker configuration from YAML files, dictionaries or
the ``BROKER_CONFIG_PATH`` environment variable.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import ValidationError

from .schemas import BrokerConfig

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV_VAR = "BROKER_CONFIG_PATH"


class ConfigurationError(Exception):
    """Raised when configuration loading or validation fails."""

    pass


def load_config_from_yaml(config_path: Union[str, Path]) -> BrokerConfig:
    """Load and validate broker configuration from a YAML file.

    An empty file yields the default configuration.

    Args:
        config_path: Path to the YAML configuration file

    Returns:
        Validated BrokerConfig instance

    Raises:
        ConfigurationError: If the file cannot be read or validation fails
        FileNotFoundError: If the configuration file doesn't exist
    """
    path = Path(config_path)

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    if not path.is_file():
        raise ConfigurationError(f"Configuration path is not a file: {config_path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            config_data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse YAML file: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Failed to read configuration file: {e}") from e

    if config_data is None:
        logger.info("Configuration file %s is empty, using defaults", path)
        config_data = {}

    if not isinstance(config_data, dict):
        raise ConfigurationError("Configuration must be a YAML object (dict)")

    return load_config_from_dict(config_data)


def load_config_from_dict(config_dict: Dict[str, Any]) -> BrokerConfig:
    """Load and validate broker configuration from a dictionary.

    Args:
        config_dict: Configuration dictionary

    Returns:
        Validated BrokerConfig instance

    Raises:
        ConfigurationError: If validation fails
    """
    try:
        return BrokerConfig(**config_dict)
    except ValidationError as e:
        raise ConfigurationError(f"Configuration validation failed: {e}") from e


def load_config(config_path: Optional[Union[str, Path]] = None) -> BrokerConfig:
    """Load configuration from an explicit path, the environment, or defaults.

    Args:
        config_path: Optional path overriding ``BROKER_CONFIG_PATH``

    Returns:
        Validated BrokerConfig instance
    """
    path = config_path or os.getenv(CONFIG_PATH_ENV_VAR)
    if not path:
        return BrokerConfig()
    return load_config_from_yaml(path)
