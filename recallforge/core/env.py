"""
Safe environment variable parsing with validation.

Provides type-safe functions for reading environment variables with bounds
checking and whitelist validation.

Usage Pattern
-------------
Instead of unsafe direct environment access:

    # DANGEROUS - no validation
    port = int(os.environ.get("PORT", "8081"))

Use safe getters:

    # SAFE - bounds checked
    from recallforge.core.env import get_env_int
    port = get_env_int("RECALLFORGE_PORT", default=8081, min_value=1, max_value=65535)
"""

from __future__ import annotations

import logging
import math
import os
from typing import FrozenSet, Optional

logger = logging.getLogger(__name__)


LOG_LEVELS: FrozenSet[str] = frozenset(
    ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
)


def get_env_int(
    name: str,
    default: Optional[int] = None,
    min_value: Optional[int] = None,
    max_value: Optional[int] = None,
) -> Optional[int]:
    """
    Get integer from environment variable with bounds validation.

    Args:
        name: Environment variable name.
        default: Default value if not set or invalid.
        min_value: Minimum allowed value (clamped if exceeded).
        max_value: Maximum allowed value (clamped if exceeded).

    Returns:
        Validated integer or default.

    Example:
        >>> get_env_int("RECALLFORGE_PORT", default=8081, min_value=1, max_value=65535)
        8081  # If RECALLFORGE_PORT not set
    """
    value = os.environ.get(name)
    if value is None:
        return default

    try:
        int_value = int(value)
    except ValueError:
        logger.warning(
            f"Invalid integer value for {name}={value}: Returning default {default}"
        )
        return default

    # Clamp to bounds
    if min_value is not None and int_value < min_value:
        return min_value
    if max_value is not None and int_value > max_value:
        return max_value

    return int_value


def get_env_float(
    name: str,
    default: Optional[float] = None,
    min_value: Optional[float] = None,
    max_value: Optional[float] = None,
) -> Optional[float]:
    """
    Get float from environment variable with bounds validation.

    Args:
        name: Environment variable name.
        default: Default value if not set or invalid.
        min_value: Minimum allowed value (clamped if exceeded).
        max_value: Maximum allowed value (clamped if exceeded).

    Returns:
        Validated float or default.
    """
    value = os.environ.get(name)
    if value is None:
        return default

    try:
        float_value = float(value)
    except ValueError:
        logger.warning(
            f"Invalid float value for {name}={value}: Returning default {default}"
        )
        return default

    if math.isnan(float_value):
        logger.warning(f"NaN is not allowed for {name}: Returning default {default}")
        return default
    if min_value is not None and float_value < min_value:
        return min_value
    if max_value is not None and float_value > max_value:
        return max_value

    return float_value


def get_env_whitelist(
    name: str,
    allowed: FrozenSet[str],
    default: Optional[str] = None,
    case_sensitive: bool = False,
) -> Optional[str]:
    """
    Get string from environment variable, validated against a whitelist.

    Args:
        name: Environment variable name.
        allowed: Set of permitted values.
        default: Default value if not set or not permitted.
        case_sensitive: Whether comparison is case sensitive.

    Returns:
        Permitted value (normalized to the whitelist spelling) or default.
    """
    value = os.environ.get(name)
    if value is None:
        return default

    if case_sensitive:
        return value if value in allowed else default

    lookup = {item.lower(): item for item in allowed}
    match = lookup.get(value.strip().lower())
    if match is None:
        logger.warning(f"Value for {name} not in allowed set: Returning default {default}")
        return default
    return match
