"""
Scheduler tuning parameters.

SchedulerConfig groups every numeric constant the forgetting-curve engine
uses: learning steps, grading thresholds, ease bounds, interval bounds and
modifiers. Instances are frozen; a new configuration is always a new value,
which is what lets ConfigStore swap it atomically.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any, Dict, Mapping, Tuple

from recallforge.core.exceptions import ConfigValidationError

MINUTES_PER_DAY: int = 24 * 60

# Allowed ranges: (min, max), inclusive.
_RANGES: Dict[str, Tuple[float, float]] = {
    "min_ease_factor": (1.0, 2.0),
    "max_ease_factor": (2.5, 5.0),
    "initial_ease": (1.5, 3.0),
    "ease_bonus": (0.0, 0.5),
    "ease_penalty": (0.0, 0.5),
    "graduating_interval": (1.0, 10.0),
    "relearning_interval_cap": (0.01, 1.0),
    "min_interval": (1.0, 7.0),
    "max_interval": (100.0, 36500.0),
    "interval_modifier": (0.5, 2.0),
    "passing_grade": (2, 4),
    "easy_grade": (3, 5),
}

INTERVAL_MODIFIER_RANGE: Tuple[float, float] = _RANGES["interval_modifier"]
MAX_INTERVAL_LIMIT: float = _RANGES["max_interval"][1]
_STEP_RANGE: Tuple[float, float] = (1.0, 1440.0)
_INT_FIELDS = frozenset({"passing_grade", "easy_grade"})

# Upper-case keys accepted from older clients of the config endpoint.
LEGACY_KEYS: Dict[str, str] = {
    "SM2_MIN_EASE_FACTOR": "min_ease_factor",
    "SM2_MAX_EASE_FACTOR": "max_ease_factor",
    "SM2_INITIAL_EASE": "initial_ease",
    "SM2_EASE_BONUS": "ease_bonus",
    "SM2_EASE_PENALTY": "ease_penalty",
    "LEARNING_STEPS": "learning_steps",
    "GRADUATING_INTERVAL": "graduating_interval",
    "RELEARNING_INTERVAL_CAP": "relearning_interval_cap",
    "MIN_INTERVAL": "min_interval",
    "MAX_INTERVAL": "max_interval",
    "INTERVAL_MODIFIER": "interval_modifier",
    "PASSING_GRADE": "passing_grade",
    "EASY_GRADE": "easy_grade",
}


@dataclass(frozen=True)
class SchedulerConfig:
    """Forgetting-curve scheduler parameters.

    Attributes:
        min_ease_factor: Lower ease bound
        max_ease_factor: Upper ease bound
        initial_ease: Ease assigned when a card graduates
        ease_bonus: Constant term of the SM-2 ease update
        ease_penalty: Ease lost on a failed review
        learning_steps: Learning step lengths in minutes
        graduating_interval: First REVIEW interval in days
        relearning_interval_cap: Longest relearning step in days
        min_interval: Shortest REVIEW interval in days
        max_interval: Longest interval in days
        interval_modifier: Global multiplier on grown intervals
        passing_grade: Lowest grade counted as recalled
        easy_grade: Lowest grade counted as easy
    """

    min_ease_factor: float = 1.3
    max_ease_factor: float = 3.5
    initial_ease: float = 2.5
    ease_bonus: float = 0.1
    ease_penalty: float = 0.2
    learning_steps: Tuple[float, ...] = field(default=(1.0, 10.0))
    graduating_interval: float = 1.0
    relearning_interval_cap: float = 0.5
    min_interval: float = 1.0
    max_interval: float = 36500.0
    interval_modifier: float = 1.0
    passing_grade: int = 3
    easy_grade: int = 4

    def __post_init__(self) -> None:
        """Validate ranges and cross-field consistency."""
        self._validate_ranges()
        self._validate_steps()
        self._validate_consistency()

    def _validate_ranges(self) -> None:
        for name, (low, high) in _RANGES.items():
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigValidationError(
                    f"{name} must be a number, got {type(value).__name__}"
                )
            if name in _INT_FIELDS and int(value) != value:
                raise ConfigValidationError(f"{name} must be a whole grade")
            if not low <= value <= high:
                raise ConfigValidationError(
                    f"{name}={value} is outside the allowed range [{low}, {high}]"
                )

    def _validate_steps(self) -> None:
        if not isinstance(self.learning_steps, tuple) or not self.learning_steps:
            raise ConfigValidationError("learning_steps must be a non-empty sequence")
        low, high = _STEP_RANGE
        for step in self.learning_steps:
            if isinstance(step, bool) or not isinstance(step, (int, float)):
                raise ConfigValidationError("learning_steps must contain numbers")
            if not low <= step <= high:
                raise ConfigValidationError(
                    f"learning step {step} is outside [{low}, {high}] minutes"
                )

    def _validate_consistency(self) -> None:
        if self.min_ease_factor >= self.max_ease_factor:
            raise ConfigValidationError(
                "min_ease_factor must be below max_ease_factor"
            )
        if not self.min_ease_factor <= self.initial_ease <= self.max_ease_factor:
            raise ConfigValidationError(
                "initial_ease must lie between min_ease_factor and max_ease_factor"
            )
        if self.passing_grade > self.easy_grade:
            raise ConfigValidationError("passing_grade must not exceed easy_grade")
        if self.min_interval >= self.max_interval:
            raise ConfigValidationError("min_interval must be below max_interval")

    @property
    def first_step_days(self) -> float:
        """Length of the first learning step in days."""
        return self.learning_steps[0] / MINUTES_PER_DAY

    def step_days(self, index: int) -> float:
        """Length of learning step ``index`` in days, clamped to the last step."""
        index = max(0, min(index, len(self.learning_steps) - 1))
        return self.learning_steps[index] / MINUTES_PER_DAY

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with snake_case keys."""
        data = asdict(self)
        data["learning_steps"] = list(self.learning_steps)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SchedulerConfig":
        """Create a config from a mapping.

        Keys missing from ``data`` take their defaults; unknown keys raise
        ConfigValidationError, as in merged().
        """
        return cls.defaults().merged(data)

    @classmethod
    def defaults(cls) -> "SchedulerConfig":
        return cls()

    def merged(self, overrides: Mapping[str, Any]) -> "SchedulerConfig":
        """Return a new validated config with ``overrides`` applied.

        Accepts snake_case names and the legacy upper-case names. Unknown
        keys are rejected so a typo never silently keeps the old value.
        """
        known = {f.name for f in fields(self)}
        changes: Dict[str, Any] = {}
        for key, value in overrides.items():
            name = LEGACY_KEYS.get(key, key)
            if name not in known:
                raise ConfigValidationError(f"Unknown scheduler setting: {key}")
            changes[name] = _coerce(name, value)
        return replace(self, **changes)


def _coerce(name: str, value: Any) -> Any:
    """Normalize container types coming from JSON/YAML."""
    if name == "learning_steps" and isinstance(value, (list, tuple)):
        return tuple(value)
    return value
