"""Configuration module for rfcbridge."""

from rfcbridge.config.loader import get_config_path, load_settings, save_settings
from rfcbridge.config.schema import (
    BridgeSettings,
    DestinationConfig,
    DestinationDefaults,
    LoggingConfig,
    build_destination_config,
)

__all__ = [
    "BridgeSettings",
    "DestinationConfig",
    "DestinationDefaults",
    "LoggingConfig",
    "build_destination_config",
    "get_config_path",
    "load_settings",
    "save_settings",
]
