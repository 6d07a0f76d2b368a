"""
Atomic holder for the live scheduler configuration.

Readers take one reference to the current SchedulerConfig and use it for the
whole computation, so a review in flight sees either the old or the new
configuration in its entirety. Writers build and validate a complete new
value first and only then swap the reference. The lock serialises writers
against each other; readers never take it.
"""

from __future__ import annotations

import threading
from typing import Any, Mapping, Optional

from recallforge.core.config.scheduler import SchedulerConfig
from recallforge.core.logging import get_logger

logger = get_logger(__name__)


class ConfigStore:
    """Holds the current SchedulerConfig behind a single reference."""

    def __init__(self, initial: Optional[SchedulerConfig] = None) -> None:
        self._initial = initial or SchedulerConfig()
        self._current = self._initial
        self._write_lock = threading.Lock()
        self._version = 0

    @property
    def current(self) -> SchedulerConfig:
        """Snapshot of the configuration in effect right now."""
        return self._current

    @property
    def version(self) -> int:
        """Number of successful replacements since creation."""
        return self._version

    def replace(self, overrides: Mapping[str, Any]) -> SchedulerConfig:
        """Merge ``overrides`` onto the current value and swap it in.

        Raises:
            ConfigValidationError: If the merged value is invalid. The
                previous configuration remains in effect.
        """
        with self._write_lock:
            candidate = self._current.merged(overrides)
            self._current = candidate
            self._version += 1

        logger.info(
            "Scheduler configuration replaced",
            version=self._version,
            keys=",".join(sorted(overrides)),
        )
        return candidate

    def reset(self) -> SchedulerConfig:
        """Swap back to the configuration the store was created with."""
        with self._write_lock:
            self._current = self._initial
            self._version += 1

        logger.info("Scheduler configuration reset", version=self._version)
        return self._current
