"""Review card value object.

One ReviewCard holds the scheduling parameters and performance history of a
single learner/item pairing. The engine never mutates a card; it returns a
ReviewOutcome which the caller applies with ``outcome.apply_to(card)``.

Snapshots produced by ``to_dict()`` carry ISO-8601 timestamps and restore
losslessly through ``from_dict()``."""

from __future__ import annotations

import math
import re
import uuid
from dataclasses import dataclass, field, fields
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from recallforge.core.exceptions import SnapshotError

SECONDS_PER_DAY: float = 86400.0

# Bounds shared with the engine
MIN_MEMORY_STRENGTH: float = 0.1
MAX_MEMORY_STRENGTH: float = 0.95
MIN_STABILITY_FACTOR: float = 0.5

DEFAULT_EASE_FACTOR: float = 2.5
DEFAULT_MEMORY_STRENGTH: float = 0.5


class LearningState(str, Enum):
    """Place of an item in the acquisition lifecycle."""

    NEW = "NEW"
    LEARNING = "LEARNING"
    REVIEW = "REVIEW"
    RELEARNING = "RELEARNING"


class ItemType(str, Enum):
    """Kind of content a card points at."""

    SENTENCE = "sentence"
    PATTERN = "pattern"
    VOCABULARY = "vocabulary"


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Interpret naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_instant(value: Any, field_name: str) -> Optional[datetime]:
    """Turn a snapshot timestamp back into an aware datetime.

    Accepts datetimes, ISO-8601 strings (a trailing ``Z`` is allowed) and
    epoch milliseconds.

    Raises:
        SnapshotError: If the value cannot be interpreted.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return ensure_utc(datetime.fromisoformat(text))
        except ValueError as e:
            raise SnapshotError(f"Invalid timestamp for {field_name}: {value!r}") from e
    raise SnapshotError(
        f"Invalid timestamp for {field_name}: expected ISO string, got {type(value).__name__}"
    )


def epoch_ms(value: datetime) -> int:
    """Milliseconds since the Unix epoch."""
    return int(round(ensure_utc(value).timestamp() * 1000))


def _days_between(later: datetime, earlier: datetime) -> float:
    return (ensure_utc(later) - ensure_utc(earlier)).total_seconds() / SECONDS_PER_DAY


@dataclass
class ReviewCard:
    """Scheduling state for one (user_id, item_id) pairing.

    Attributes:
        user_id: Learner identifier
        item_id: Content identifier (sentence/pattern/vocabulary ID)
        item_type: Kind of content
        id: Opaque record identifier
        ease_factor: Interval growth multiplier, kept within [1.3, 3.5]
        interval: Days until the next review
        repetition: Successful reviews in the current cycle
        last_quality: Grade of the most recent review
        memory_strength: Normalized recall confidence, kept within [0.1, 0.95]
        stability_factor: Slows memory decay for consolidated items
        difficulty_factor: Penalizes historically error-prone items
        last_reviewed: Time of the most recent review, None if never reviewed
        next_review: Scheduled presentation time
        created_at: Creation time
        updated_at: Time of the last update
        total_reviews: Number of reviews recorded
        correct_streak: Consecutive passing reviews
        lapses: Failures after graduation
        average_response_time: Running mean of positive response times (seconds)
        learning_state: Current learning state
        graduated: True once the card has left initial learning
        suspended: Suspended cards are never due
    """

    user_id: str = ""
    item_id: str = ""
    item_type: ItemType = ItemType.SENTENCE
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    ease_factor: float = DEFAULT_EASE_FACTOR
    interval: float = 1.0
    repetition: int = 0
    last_quality: int = 0

    memory_strength: float = DEFAULT_MEMORY_STRENGTH
    stability_factor: float = 1.0
    difficulty_factor: float = 1.0

    last_reviewed: Optional[datetime] = None
    next_review: datetime = field(default_factory=utcnow)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    total_reviews: int = 0
    correct_streak: int = 0
    lapses: int = 0
    average_response_time: float = 0.0

    learning_state: LearningState = LearningState.NEW
    graduated: bool = False
    suspended: bool = False

    @classmethod
    def new(
        cls,
        user_id: str,
        item_id: str,
        item_type: ItemType = ItemType.SENTENCE,
        now: Optional[datetime] = None,
    ) -> "ReviewCard":
        """Materialize a card with defaults, due immediately."""
        now = ensure_utc(now) if now else utcnow()
        return cls(
            user_id=user_id,
            item_id=item_id,
            item_type=ItemType(item_type),
            next_review=now,
            created_at=now,
            updated_at=now,
        )

    @property
    def key(self) -> Tuple[str, str]:
        """Identity of the learner/item pairing."""
        return (self.user_id, self.item_id)

    # ------------------------------------------------------------------
    # Derived queries
    # ------------------------------------------------------------------

    def is_due(self, now: Optional[datetime] = None) -> bool:
        """Check if card is due for review."""
        now = now or utcnow()
        return ensure_utc(self.next_review) <= ensure_utc(now) and not self.suspended

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        """Check if more than one day has passed since the card became due."""
        now = now or utcnow()
        return _days_between(now, self.next_review) > 1 and not self.suspended

    def days_since_last_review(self, now: Optional[datetime] = None) -> int:
        """Whole days since the last review (floor), 0 if never reviewed."""
        if self.last_reviewed is None:
            return 0
        return math.floor(_days_between(now or utcnow(), self.last_reviewed))

    def days_until_next_review(self, now: Optional[datetime] = None) -> int:
        """Whole days until the next review (ceil), negative once overdue."""
        return math.ceil(_days_between(self.next_review, now or utcnow()))

    def calculate_current_memory_strength(self, now: Optional[datetime] = None) -> float:
        """Memory strength decayed exponentially since the last review.

        Decay rate is 0.1 / stability_factor; the result never drops below 0.1.
        """
        if self.last_reviewed is None:
            return self.memory_strength

        stability = self.stability_factor
        if stability <= 0:
            stability = MIN_STABILITY_FACTOR
        decay_rate = 0.1 / stability
        decay = math.exp(-decay_rate * self.days_since_last_review(now))
        return max(MIN_MEMORY_STRENGTH, self.memory_strength * decay)

    def get_priority_score(self, now: Optional[datetime] = None) -> float:
        """Urgency score for external due-card selection (higher = sooner).

        Combines weakness, overdue time, difficulty and lapse history. The
        score has no upper bound; callers sort descending.
        """
        now = now or utcnow()
        current_strength = self.calculate_current_memory_strength(now)
        overdue_days = max(0.0, _days_between(now, self.next_review))

        strength_factor = 1 - current_strength
        overdue_factor = min(10.0, overdue_days * 2)
        lapse_factor = self.lapses * 0.5

        return strength_factor * 10 + overdue_factor + self.difficulty_factor + lapse_factor

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def update_after_review(
        self,
        quality: int,
        response_time: float = 0.0,
        now: Optional[datetime] = None,
        passing_grade: int = 3,
    ) -> "ReviewCard":
        """Record a review in the card's performance counters.

        Engine-owned fields (interval, ease, learning state, ...) are written
        by ReviewOutcome.apply_to() before this runs.

        Args:
            quality: Grade of this review (0-5)
            response_time: Seconds the learner took, 0 if unknown
            now: Review time
            passing_grade: Lowest grade that keeps the streak alive

        Returns:
            self, for chaining
        """
        now = ensure_utc(now) if now else utcnow()
        self.last_reviewed = now
        self.updated_at = now
        self.last_quality = quality
        self.total_reviews += 1

        if response_time and response_time > 0:
            if self.total_reviews == 1 or self.average_response_time <= 0:
                self.average_response_time = float(response_time)
            else:
                previous_total = self.average_response_time * (self.total_reviews - 1)
                self.average_response_time = (previous_total + response_time) / self.total_reviews

        if quality >= passing_grade:
            self.correct_streak += 1
        else:
            if self.graduated:
                self.lapses += 1
            self.correct_streak = 0

        return self

    # ------------------------------------------------------------------
    # Snapshot round-trip
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Flat snapshot with ISO-8601 timestamps and snake_case keys."""
        data: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, datetime):
                value = ensure_utc(value).isoformat()
            elif isinstance(value, Enum):
                value = value.value
            data[f.name] = value
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ReviewCard":
        """Rebuild a card from a snapshot.

        Accepts snake_case or camelCase keys. Missing or null fields fall back
        to defaults; unknown keys are ignored.

        Raises:
            SnapshotError: If a field has the wrong type or an unknown enum value.
        """
        if not isinstance(data, Mapping):
            raise SnapshotError(f"Card snapshot must be a mapping, got {type(data).__name__}")

        values: Dict[str, Any] = {}
        for key, raw in data.items():
            name = _FIELD_NAMES.get(key)
            if name is None or raw is None:
                continue
            values[name] = _convert_field(name, raw)

        return cls(**values)


def _to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _to_snake(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


_FIELD_NAMES: Dict[str, str] = {}
for _f in fields(ReviewCard):
    _FIELD_NAMES[_f.name] = _f.name
    _FIELD_NAMES[_to_camel(_f.name)] = _f.name
# Older snapshots call the last grade "quality"
_FIELD_NAMES["quality"] = "last_quality"

_DATETIME_FIELDS = frozenset({"last_reviewed", "next_review", "created_at", "updated_at"})
_FLOAT_FIELDS = frozenset(
    {
        "ease_factor",
        "interval",
        "memory_strength",
        "stability_factor",
        "difficulty_factor",
        "average_response_time",
    }
)
_INT_FIELDS = frozenset(
    {"repetition", "last_quality", "total_reviews", "correct_streak", "lapses"}
)
_BOOL_FIELDS = frozenset({"graduated", "suspended"})


def _convert_field(name: str, raw: Any) -> Any:
    """Coerce one snapshot value to the field's Python type."""
    if name in _DATETIME_FIELDS:
        return parse_instant(raw, name)
    try:
        if name == "learning_state":
            return LearningState(raw)
        if name == "item_type":
            return ItemType(raw)
        if name in _FLOAT_FIELDS:
            return _number(raw, float)
        if name in _INT_FIELDS:
            return _number(raw, int)
        if name in _BOOL_FIELDS:
            if not isinstance(raw, bool):
                raise TypeError(f"expected boolean, got {type(raw).__name__}")
            return raw
    except (TypeError, ValueError) as e:
        raise SnapshotError(f"Invalid value for {name}: {raw!r} ({e})") from e
    return str(raw)


def _number(raw: Any, kind: type) -> Any:
    if isinstance(raw, bool):
        raise TypeError("expected a number, got boolean")
    value = float(raw)
    if math.isnan(value) or math.isinf(value):
        raise ValueError("value must be finite")
    if kind is int:
        if value != int(value):
            raise ValueError("expected a whole number")
        return int(value)
    return value
