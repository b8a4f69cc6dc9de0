"""Broker Agent - Configuration Package."""

from .loader import (
    ConfigurationError,
    load_config,
    load_config_from_dict,
    load_config_from_yaml,
)
from .schemas import (
    DEFAULT_SYSTEM_PROMPT,
    BrokerConfig,
    CheckpointConfig,
    DataSourceConfig,
    LLMConfig,
    LLMProvider,
)

__version__ = "0.1.0"

__all__ = [
    "DEFAULT_SYSTEM_PROMPT",
    "BrokerConfig",
    "CheckpointConfig",
    "ConfigurationError",
    "DataSourceConfig",
    "LLMConfig",
    "LLMProvider",
    "load_config",
    "load_config_from_dict",
    "load_config_from_yaml",
]
