from .loader import (
    Config,
    ConfigError,
    LoggingConfig,
    ServerConfig,
    load_config,
    load_config_data,
    parse_duration,
)

__all__ = [
    "Config", "ConfigError", "LoggingConfig", "ServerConfig",
    "load_config", "load_config_data", "parse_duration",
]
