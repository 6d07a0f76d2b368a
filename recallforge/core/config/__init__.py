"""
Configuration Management for RecallForge.

Public API
----------
    from recallforge.core.config import Config, SchedulerConfig, ConfigStore
    from recallforge.core.config_loaders import load_config

Architecture
------------
    config/
    ├── scheduler.py     # SchedulerConfig (engine constants)
    ├── features.py      # ServerConfig, BatchConfig, LoggingSettings
    ├── store.py         # ConfigStore (atomic swap of SchedulerConfig)
    └── config.py        # Main Config class
"""

from recallforge.core.config.config import Config
from recallforge.core.config.features import (
    BatchConfig,
    LoggingSettings,
    ServerConfig,
)
from recallforge.core.config.scheduler import (
    LEGACY_KEYS,
    MINUTES_PER_DAY,
    SchedulerConfig,
)
from recallforge.core.config.store import ConfigStore

__all__ = [
    "Config",
    "SchedulerConfig",
    "BatchConfig",
    "ServerConfig",
    "LoggingSettings",
    "ConfigStore",
    "LEGACY_KEYS",
    "MINUTES_PER_DAY",
]
