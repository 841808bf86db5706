"""Configuration management module for the mailbox forwarder."""

from .environment import EnvironmentConfig, GraphCredentials, load_environment_config
from .exceptions import ConfigurationError
from .loader import load_config, merge_overrides, validate_config_file
from .models import (
    AppConfig,
    ForwardingConfig,
    GraphConfig,
    LogFormat,
    LogLevel,
    LoggingConfig,
    PollingConfig,
    RunSettings,
)

__all__ = [
    # Main loader functions
    "load_config",
    "merge_overrides",
    "validate_config_file",
    "load_environment_config",
    # Configuration models
    "AppConfig",
    "RunSettings",
    "PollingConfig",
    "ForwardingConfig",
    "GraphConfig",
    "LoggingConfig",
    "EnvironmentConfig",
    "GraphCredentials",
    # Enums
    "LogLevel",
    "LogFormat",
    # Exceptions
    "ConfigurationError",
]
