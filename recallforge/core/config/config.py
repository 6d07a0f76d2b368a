"""
Main configuration class for RecallForge.

This module provides the Config dataclass that aggregates all sub-configs
and handles YAML parsing.

Architecture Context
--------------------
Configuration sits at the Core layer and is consumed by every other module.
The Config object is created once at startup:

    User's config.yaml
           ↓
    load_config() → Config object
           ↓
    Passed to: ReviewService, BatchCoordinator, API app, CLI

Configuration Hierarchy
-----------------------
    Config
    ├── SchedulerConfig    # Engine constants (frozen, hot-swappable)
    ├── BatchConfig        # Worker fan-out and batch size limits
    ├── ServerConfig       # API host/port/CORS
    └── LoggingSettings    # Log level and destinations

Example config.yaml
-------------------
    scheduler:
      learning_steps: [1, 10]
      max_interval: ${RECALLFORGE_MAX_INTERVAL:36500}
    batch:
      max_workers: 8
    server:
      port: 8081
    logging:
      level: DEBUG
"""

from dataclasses import dataclass, field, fields
from typing import Any, Dict, Optional, Type

from recallforge.core.config.features import (
    BatchConfig,
    LoggingSettings,
    ServerConfig,
)
from recallforge.core.config.scheduler import SchedulerConfig
from recallforge.core.exceptions import ConfigValidationError


@dataclass
class Config:
    """Main RecallForge configuration."""

    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Config":
        """Create Config from dictionary."""
        # Import here to avoid circular dependency
        from recallforge.core.config_loaders import expand_env_vars

        data = expand_env_vars(data or {})
        if not isinstance(data, dict):
            raise ConfigValidationError("Configuration root must be a mapping")

        return cls(
            scheduler=SchedulerConfig.from_dict(_section(data, "scheduler")),
            batch=BatchConfig(**cls._filter_fields(BatchConfig, data.get("batch"))),
            server=ServerConfig(
                **cls._filter_fields(ServerConfig, data.get("server"))
            ),
            logging=LoggingSettings(
                **cls._filter_fields(LoggingSettings, data.get("logging"))
            ),
        )

    @staticmethod
    def _filter_fields(config_cls: Type[Any], data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """Keep only keys that are fields of ``config_cls``."""
        if not data:
            return {}
        allowed = {f.name for f in fields(config_cls)}
        return {k: v for k, v in data.items() if k in allowed}

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to a YAML-friendly dictionary."""
        return {
            "scheduler": self.scheduler.to_dict(),
            "batch": {"max_workers": self.batch.max_workers, "max_items": self.batch.max_items},
            "server": {
                "host": self.server.host,
                "port": self.server.port,
                "cors_origins": list(self.server.cors_origins),
                "reload": self.server.reload,
            },
            "logging": {
                "level": self.logging.level,
                "file": self.logging.file,
                "console": self.logging.console,
            },
        }


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigValidationError(f"'{name}' section must be a mapping")
    return section
