"""
Service-level configuration: API server, batch fan-out and logging.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from recallforge.core.exceptions import ConfigValidationError

# Rule #2: Fixed upper bounds
MAX_BATCH_WORKERS = 32
MAX_BATCH_ITEMS = 1000


@dataclass
class ServerConfig:
    """API server configuration."""

    host: str = "0.0.0.0"
    port: int = 8081
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    reload: bool = False


@dataclass
class BatchConfig:
    """Batch coordinator settings.

    max_workers=1 runs entries sequentially on the calling thread.
    """

    max_workers: int = 4
    max_items: int = 100

    def __post_init__(self) -> None:
        try:
            self.max_workers = int(self.max_workers)
            self.max_items = int(self.max_items)
        except (TypeError, ValueError) as e:
            raise ConfigValidationError(f"batch settings must be integers: {e}") from e
        if not 1 <= self.max_workers <= MAX_BATCH_WORKERS:
            raise ConfigValidationError(
                f"batch.max_workers must be between 1 and {MAX_BATCH_WORKERS}"
            )
        if not 1 <= self.max_items <= MAX_BATCH_ITEMS:
            raise ConfigValidationError(
                f"batch.max_items must be between 1 and {MAX_BATCH_ITEMS}"
            )


@dataclass
class LoggingSettings:
    """Log output settings applied at startup."""

    level: str = "INFO"
    file: Optional[str] = None
    console: bool = True
