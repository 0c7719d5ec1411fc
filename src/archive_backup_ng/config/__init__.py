"""Configuration system for archive-backup-ng.

This module provides TOML-based configuration loading, validation,
and schema definitions for the job catalogue, targets and sets.
"""

from .loader import ConfigError, find_config_file, load_config, parse_config
from .schema import (
    Config,
    GlobalConfig,
    JobConfig,
    SetConfig,
    TargetConfig,
)

__all__ = [
    "GlobalConfig",
    "JobConfig",
    "SetConfig",
    "TargetConfig",
    "Config",
    "load_config",
    "parse_config",
    "find_config_file",
    "ConfigError",
]
