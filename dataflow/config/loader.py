"""
Config Loader

Loads the monitor configuration from an optional YAML file and applies
environment overrides. Validation is done by the pydantic models.

Example monitor.yaml:

    symbol: SIM
    stream:
      url: ws://localhost:3000/ws
      reconnect_delay: 3.0
      buffer_size: 100
    aggregation:
      bucket_seconds: 1
    records:
      api_base: http://localhost:8080
      poll_interval: 5
"""

import logging
import os
from pathlib import Path
from typing import Dict, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

# Environment variable -> (section, field)
ENV_OVERRIDES = {
    "MONITOR_SYMBOL": (None, "symbol"),
    "MONITOR_STREAM_URL": ("stream", "url"),
    "MONITOR_RECONNECT_DELAY": ("stream", "reconnect_delay"),
    "MONITOR_BUCKET_SECONDS": ("aggregation", "bucket_seconds"),
    "MONITOR_API_BASE": ("records", "api_base"),
    "MONITOR_POLL_INTERVAL": ("records", "poll_interval"),
}


class ConfigError(ValueError):
    """Raised when the configuration file or overrides are invalid"""


class StreamConfig(BaseModel):
    """Live feed connection settings"""
    url: str = "ws://localhost:3000/ws"
    reconnect_delay: float = Field(default=3.0, gt=0)
    buffer_size: int = Field(default=100, ge=1)


class AggregationConfig(BaseModel):
    """Candle bucketing; the bucket width is a policy choice"""
    bucket_seconds: float = Field(default=1.0, gt=0)


class RecordsConfig(BaseModel):
    """Records REST API and polling"""
    api_base: str = "http://localhost:8080"
    poll_interval: float = Field(default=5.0, gt=0)
    timeout: float = Field(default=10.0, gt=0)


class MonitorConfig(BaseModel):
    """Complete monitor configuration"""
    symbol: str = "SIM"
    stream: StreamConfig = Field(default_factory=StreamConfig)
    aggregation: AggregationConfig = Field(default_factory=AggregationConfig)
    records: RecordsConfig = Field(default_factory=RecordsConfig)


def load_config(
    path: Optional[Union[str, Path]] = None,
    env: Optional[Dict[str, str]] = None,
) -> MonitorConfig:
    """
    Load configuration from YAML (if given) and environment overrides.

    Args:
        path: YAML file path; None uses defaults only
        env: Environment mapping, defaults to os.environ

    Returns:
        Validated MonitorConfig

    Raises:
        ConfigError: If the file is missing, unreadable or fails validation
    """
    env = os.environ if env is None else env
    raw: dict = {}

    if path:
        config_path = Path(path)
        if not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}")
        try:
            with open(config_path) as f:
                raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse {config_path}: {e}") from e
        if not isinstance(raw, dict):
            raise ConfigError(f"{config_path} must contain a mapping at the top level")
        logger.info(f"Loaded config from {config_path}")

    for var, (section, key) in ENV_OVERRIDES.items():
        value = env.get(var)
        if value is None:
            continue
        target = raw if section is None else raw.setdefault(section, {})
        if not isinstance(target, dict):
            raise ConfigError(f"Section '{section}' must be a mapping to apply {var}")
        target[key] = value
        logger.debug(f"Override {var} -> {section or ''}.{key}")

    try:
        return MonitorConfig(**raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
