"""
Configuration Loading and Management Functions.

Handles loading, saving, and applying environment overrides to RecallForge
configuration.

Configuration precedence: 1. Env vars, 2. YAML file, 3. Defaults
"""

import os
import re
from pathlib import Path
from typing import Any, Optional, TYPE_CHECKING

import yaml

from recallforge.core.config.features import MAX_BATCH_WORKERS
from recallforge.core.config.scheduler import INTERVAL_MODIFIER_RANGE
from recallforge.core.env import LOG_LEVELS, get_env_float, get_env_int, get_env_whitelist
from recallforge.core.exceptions import ConfigurationError
from recallforge.core.logging import get_logger

if TYPE_CHECKING:
    from recallforge.core.config import Config

logger = get_logger(__name__)

CONFIG_FILENAMES = ("config.yaml", "recallforge.yaml")


def expand_env_vars(value: Any) -> Any:
    """Recursively expand environment variables in config values.

    Handles strings with ${VAR_NAME} or ${VAR_NAME:default} syntax inside
    nested dictionaries and lists.

    Args:
        value: Configuration value (string, dict, list, or primitive)

    Returns:
        Value with all environment variables expanded
    """
    if isinstance(value, str):
        pattern = r"\$\{([^}:]+)(?::([^}]*))?\}"

        def replace_env_var(match: re.Match) -> str:
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else ""
            return os.environ.get(var_name, default_value)

        expanded = re.sub(pattern, replace_env_var, value)
        return _parse_scalar(expanded) if expanded != value else expanded
    elif isinstance(value, dict):
        return {k: expand_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [expand_env_vars(item) for item in value]
    return value


def _parse_scalar(text: str) -> Any:
    """Give expanded placeholders the type YAML would have given a literal."""
    try:
        return yaml.safe_load(text) if text else text
    except yaml.YAMLError:
        return text


def _apply_env_overrides(config: "Config") -> "Config":
    """
    Apply environment variable overrides to configuration.

    Environment variables take precedence over config file values.
    """
    _apply_server_overrides(config)
    _apply_batch_overrides(config)
    _apply_logging_overrides(config)
    _apply_scheduler_overrides(config)
    return config


def _apply_server_overrides(config: "Config") -> None:
    """Apply API server host/port overrides.

    Security:
        Uses get_env_int with port bounds (1-65535).
    """
    host = os.environ.get("RECALLFORGE_HOST")
    if host and re.match(r"^[a-zA-Z0-9.\-]+$", host):
        config.server.host = host

    port = get_env_int("RECALLFORGE_PORT", min_value=1, max_value=65535)
    if port is not None:
        config.server.port = port


def _apply_batch_overrides(config: "Config") -> None:
    workers = get_env_int(
        "RECALLFORGE_BATCH_WORKERS", min_value=1, max_value=MAX_BATCH_WORKERS
    )
    if workers is not None:
        config.batch.max_workers = workers


def _apply_logging_overrides(config: "Config") -> None:
    level = get_env_whitelist("RECALLFORGE_LOG_LEVEL", LOG_LEVELS)
    if level is not None:
        config.logging.level = level


def _apply_scheduler_overrides(config: "Config") -> None:
    """Apply the global interval modifier override.

    Security:
        Uses get_env_float clamped to the modifier's allowed range.
    """
    modifier = get_env_float(
        "RECALLFORGE_INTERVAL_MODIFIER",
        min_value=INTERVAL_MODIFIER_RANGE[0],
        max_value=INTERVAL_MODIFIER_RANGE[1],
    )
    if modifier is not None:
        config.scheduler = config.scheduler.merged({"interval_modifier": modifier})


def load_config(
    config_path: Optional[Path] = None, base_path: Optional[Path] = None
) -> "Config":
    """
    Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to config file. Defaults to config.yaml in base_path.
        base_path: Directory searched for a config file. Defaults to cwd.

    Returns:
        Config object with all settings.

    Raises:
        ConfigurationError: If an explicitly given file is missing, or any
            config file is unreadable or invalid.
    """
    # Lazy import to avoid circular dependency
    from recallforge.core.config import Config

    if config_path is None:
        config_path = _find_config_file(base_path or Path.cwd())
        if config_path is None:
            return _apply_env_overrides(Config())
    elif not config_path.exists():
        raise ConfigurationError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Could not read {config_path}: {e}") from e

    config = Config.from_dict(data)
    logger.debug("Loaded configuration", path=str(config_path))
    return _apply_env_overrides(config)


def _find_config_file(base_path: Path) -> Optional[Path]:
    for filename in CONFIG_FILENAMES:
        candidate = base_path / filename
        if candidate.exists():
            return candidate
    return None


def save_config(config: "Config", config_path: Path) -> None:
    """Write ``config`` as YAML to ``config_path``.

    Raises:
        ConfigurationError: If the file cannot be written.
    """
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)
    except OSError as e:
        raise ConfigurationError(f"Could not write {config_path}: {e}") from e
    logger.info("Saved configuration", path=str(config_path))
