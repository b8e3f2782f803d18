"""Configuration models and parser for sidecar.yaml."""

from sidecar.config.models import SidecarConfig, WorkerConfig
from sidecar.config.parser import ConfigError, load_config

__all__ = [
    "ConfigError",
    "SidecarConfig",
    "WorkerConfig",
    "load_config",
]
