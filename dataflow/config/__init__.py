"""
Config Module

YAML/env configuration loading and validation.
"""

from .loader import AggregationConfig, ConfigError, MonitorConfig, RecordsConfig, StreamConfig, load_config

__all__ = [
    "AggregationConfig",
    "ConfigError",
    "MonitorConfig",
    "RecordsConfig",
    "StreamConfig",
    "load_config",
]
