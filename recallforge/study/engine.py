"""Forgetting-curve scheduling engine.

Computes the next review of a card from its current state and the grade the
learner just gave. The algorithm is SM-2 extended with a four-state learning
lifecycle (NEW, LEARNING, REVIEW, RELEARNING), a memory-strength estimate and
adjustments for response time, lapse history and streaks.

The engine is pure: it reads a card and returns a ReviewOutcome without
mutating anything. Configuration is read once per call from a ConfigStore,
so a concurrent configuration replacement never mixes old and new values
within one computation."""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Callable, Dict, Iterable, Optional, Sequence, Tuple, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from recallforge.core.config import ConfigStore, SchedulerConfig
from recallforge.core.exceptions import ValidationError
from recallforge.core.logging import get_logger
from recallforge.study.card import (
    MAX_MEMORY_STRENGTH,
    MIN_MEMORY_STRENGTH,
    MIN_STABILITY_FACTOR,
    LearningState,
    ReviewCard,
    ensure_utc,
    utcnow,
)

logger = get_logger(__name__)

# SM-2 interval ladder for the first successful reviews
FIRST_SUCCESS_INTERVAL: float = 1.0
SECOND_SUCCESS_INTERVAL: float = 6.0

# Memory strength targets
NEW_PASS_BASE_STRENGTH: float = 0.3
NEW_PASS_STRENGTH_STEP: float = 0.15
LEARNING_STRENGTH_CAP: float = 0.9
GRADUATION_STRENGTH: float = 0.8
RELEARNED_STRENGTH_CAP: float = 0.7

MAX_STABILITY_FACTOR: float = 2.0
MAX_DIFFICULTY_FACTOR: float = 2.0

# Response-time ratios relative to the card's running average
FAST_RESPONSE_RATIO: float = 0.5
SLOW_RESPONSE_RATIO: float = 2.0

STREAK_BONUS_THRESHOLD: int = 5
MAX_STREAK_BONUS: float = 0.3
MAX_LAPSE_PENALTY: float = 0.5
RELEARNED_INTERVAL_FACTOR: float = 0.25

DEFAULT_OPTIMAL_HOURS: Tuple[int, ...] = (9, 10, 19, 20)

MIN_QUALITY: int = 0
MAX_QUALITY: int = 5


def round_half_up(value: float) -> float:
    """Round to the nearest whole day, halves away from zero for positives."""
    return float(math.floor(value + 0.5))


def clamp_quality(quality: float) -> float:
    """Clamp a grade into 0-5."""
    return max(MIN_QUALITY, min(MAX_QUALITY, quality))


def next_learning_state(
    state: LearningState, passed: bool, steps_exhausted: bool = False
) -> LearningState:
    """Transition function of the learning lifecycle.

    NEW      --pass--> LEARNING      NEW      --fail--> NEW
    LEARNING --pass--> LEARNING, or REVIEW once all steps are done
    LEARNING --fail--> LEARNING (back to the first step)
    REVIEW   --pass--> REVIEW        REVIEW   --fail--> RELEARNING
    RELEARNING --pass--> REVIEW      RELEARNING --fail--> RELEARNING
    """
    return _TRANSITIONS[state](passed, steps_exhausted)


_TRANSITIONS: Dict[LearningState, Callable[[bool, bool], LearningState]] = {
    LearningState.NEW: lambda passed, _: (
        LearningState.LEARNING if passed else LearningState.NEW
    ),
    LearningState.LEARNING: lambda passed, exhausted: (
        LearningState.REVIEW if passed and exhausted else LearningState.LEARNING
    ),
    LearningState.REVIEW: lambda passed, _: (
        LearningState.REVIEW if passed else LearningState.RELEARNING
    ),
    LearningState.RELEARNING: lambda passed, _: (
        LearningState.REVIEW if passed else LearningState.RELEARNING
    ),
}
assert set(_TRANSITIONS) == set(LearningState), "every learning state needs a transition"


@dataclass(frozen=True)
class ReviewOutcome:
    """Result of scheduling one review.

    Carries every engine-owned card field. ``apply_to`` produces the updated
    card; the input card is left untouched.
    """

    interval: float
    ease_factor: float
    repetition: int
    memory_strength: float
    stability_factor: float
    difficulty_factor: float
    learning_state: LearningState
    graduated: bool
    next_review: datetime
    reviewed_at: datetime
    quality: int
    response_time: float = 0.0
    previous_state: Optional[LearningState] = None

    @property
    def interval_days(self) -> int:
        """Interval rounded to whole days, for display."""
        return int(round_half_up(self.interval))

    def apply_to(self, card: ReviewCard, passing_grade: int = 3) -> ReviewCard:
        """Return a copy of ``card`` with this outcome written into it.

        Review bookkeeping (counters, streak, lapses, response-time average)
        is recorded through ReviewCard.update_after_review().
        """
        updated = replace(
            card,
            interval=self.interval,
            ease_factor=self.ease_factor,
            repetition=self.repetition,
            memory_strength=self.memory_strength,
            stability_factor=self.stability_factor,
            difficulty_factor=self.difficulty_factor,
            learning_state=self.learning_state,
            graduated=self.graduated,
            next_review=self.next_review,
        )
        return updated.update_after_review(
            int(self.quality),
            response_time=self.response_time,
            now=self.reviewed_at,
            passing_grade=passing_grade,
        )


@dataclass
class _Draft:
    """Mutable working copy of the engine-owned fields."""

    interval: float
    ease_factor: float
    repetition: int
    memory_strength: float
    stability_factor: float
    difficulty_factor: float
    learning_state: LearningState
    graduated: bool

    @classmethod
    def from_card(cls, card: ReviewCard) -> "_Draft":
        return cls(
            interval=card.interval,
            ease_factor=card.ease_factor,
            repetition=card.repetition,
            memory_strength=card.memory_strength,
            stability_factor=card.stability_factor,
            difficulty_factor=card.difficulty_factor,
            learning_state=card.learning_state,
            graduated=card.graduated,
        )


def _previous_interval(card: ReviewCard, config: SchedulerConfig) -> float:
    """Card interval limited to max_interval; non-finite values count as the maximum."""
    if not math.isfinite(card.interval):
        return config.max_interval
    return min(card.interval, config.max_interval)


def _raise_difficulty(value: float, amount: float) -> float:
    """Increase difficulty up to the cap without lowering values already above it."""
    if value >= MAX_DIFFICULTY_FACTOR:
        return value
    return min(MAX_DIFFICULTY_FACTOR, value + amount)


# ----------------------------------------------------------------------
# State handlers
# ----------------------------------------------------------------------


def _handle_new(
    draft: _Draft, card: ReviewCard, quality: float, response_time: float, config: SchedulerConfig
) -> None:
    passed = quality >= config.passing_grade
    draft.repetition = 1
    draft.interval = config.first_step_days
    if passed:
        draft.memory_strength = min(
            LEARNING_STRENGTH_CAP,
            NEW_PASS_BASE_STRENGTH + (quality - 1) * NEW_PASS_STRENGTH_STEP,
        )
    else:
        draft.memory_strength = MIN_MEMORY_STRENGTH
    draft.learning_state = next_learning_state(card.learning_state, passed)


def _handle_learning(
    draft: _Draft, card: ReviewCard, quality: float, response_time: float, config: SchedulerConfig
) -> None:
    passed = quality >= config.passing_grade
    if not passed:
        draft.repetition = 1
        draft.interval = config.first_step_days
        draft.memory_strength = max(MIN_MEMORY_STRENGTH, card.memory_strength - 0.3)
        draft.learning_state = next_learning_state(card.learning_state, passed)
        return

    draft.repetition = card.repetition + 1
    exhausted = draft.repetition >= len(config.learning_steps) + 1
    if exhausted:
        draft.interval = config.graduating_interval
        draft.ease_factor = config.initial_ease
        draft.memory_strength = GRADUATION_STRENGTH
        draft.graduated = True
    else:
        draft.interval = config.step_days(draft.repetition - 1)
        draft.memory_strength = min(LEARNING_STRENGTH_CAP, card.memory_strength + 0.2)
    draft.learning_state = next_learning_state(card.learning_state, passed, exhausted)


def _handle_review(
    draft: _Draft, card: ReviewCard, quality: float, response_time: float, config: SchedulerConfig
) -> None:
    passed = quality >= config.passing_grade
    draft.repetition = card.repetition + 1
    draft.learning_state = next_learning_state(card.learning_state, passed)

    if not passed:
        draft.ease_factor = max(config.min_ease_factor, card.ease_factor - config.ease_penalty)
        draft.interval = min(config.first_step_days, config.relearning_interval_cap)
        draft.memory_strength = max(MIN_MEMORY_STRENGTH, card.memory_strength * 0.5)
        draft.stability_factor = max(MIN_STABILITY_FACTOR, card.stability_factor - 0.1)
        return

    # SM-2 ease update
    miss = 5 - quality
    ease = card.ease_factor + (config.ease_bonus - miss * (0.08 + miss * 0.02))
    draft.ease_factor = max(config.min_ease_factor, min(config.max_ease_factor, ease))

    previous = _previous_interval(card, config)
    if previous < FIRST_SUCCESS_INTERVAL:
        draft.interval = FIRST_SUCCESS_INTERVAL
    elif previous < SECOND_SUCCESS_INTERVAL:
        draft.interval = SECOND_SUCCESS_INTERVAL
    else:
        draft.interval = round_half_up(previous * draft.ease_factor * config.interval_modifier)

    draft.memory_strength = min(MAX_MEMORY_STRENGTH, card.memory_strength + (quality - 2) * 0.1)
    if quality >= config.easy_grade:
        draft.stability_factor = min(MAX_STABILITY_FACTOR, card.stability_factor + 0.1)

    _adjust_for_performance(draft, card, response_time)
    draft.interval = max(config.min_interval, min(config.max_interval, draft.interval))


def _adjust_for_performance(draft: _Draft, card: ReviewCard, response_time: float) -> None:
    """Stretch or shrink a grown REVIEW interval from the learner's history."""
    if response_time > 0 and card.average_response_time > 0:
        ratio = response_time / card.average_response_time
        if ratio < FAST_RESPONSE_RATIO:
            draft.interval = round_half_up(draft.interval * 1.1)
            draft.memory_strength = min(MAX_MEMORY_STRENGTH, draft.memory_strength + 0.05)
        elif ratio > SLOW_RESPONSE_RATIO:
            draft.interval = round_half_up(draft.interval * 0.9)
            draft.difficulty_factor = _raise_difficulty(draft.difficulty_factor, 0.1)

    if card.lapses > 0:
        penalty = min(MAX_LAPSE_PENALTY, card.lapses * 0.1)
        draft.interval = round_half_up(draft.interval * (1 - penalty))
        draft.difficulty_factor = _raise_difficulty(draft.difficulty_factor, penalty)

    if card.correct_streak > STREAK_BONUS_THRESHOLD:
        bonus = min(MAX_STREAK_BONUS, (card.correct_streak - STREAK_BONUS_THRESHOLD) * 0.05)
        draft.interval = round_half_up(draft.interval * (1 + bonus))


def _handle_relearning(
    draft: _Draft, card: ReviewCard, quality: float, response_time: float, config: SchedulerConfig
) -> None:
    passed = quality >= config.passing_grade
    draft.learning_state = next_learning_state(card.learning_state, passed)
    if passed:
        draft.repetition = card.repetition + 1
        draft.interval = max(
            config.min_interval,
            round_half_up(_previous_interval(card, config) * RELEARNED_INTERVAL_FACTOR),
        )
        draft.memory_strength = min(RELEARNED_STRENGTH_CAP, card.memory_strength + 0.3)
        draft.graduated = True
    else:
        draft.interval = min(config.first_step_days, config.relearning_interval_cap)
        draft.memory_strength = max(MIN_MEMORY_STRENGTH, card.memory_strength - 0.1)


_Handler = Callable[[_Draft, ReviewCard, float, float, SchedulerConfig], None]

_HANDLERS: Dict[LearningState, _Handler] = {
    LearningState.NEW: _handle_new,
    LearningState.LEARNING: _handle_learning,
    LearningState.REVIEW: _handle_review,
    LearningState.RELEARNING: _handle_relearning,
}
assert set(_HANDLERS) == set(LearningState), "every learning state needs a handler"


def _enforce_bounds(draft: _Draft, config: SchedulerConfig) -> None:
    """Keep every outcome inside the engine's invariants."""
    draft.ease_factor = max(config.min_ease_factor, min(config.max_ease_factor, draft.ease_factor))
    draft.memory_strength = max(
        MIN_MEMORY_STRENGTH, min(MAX_MEMORY_STRENGTH, draft.memory_strength)
    )
    draft.stability_factor = max(0.0, draft.stability_factor)
    draft.difficulty_factor = max(0.0, draft.difficulty_factor)
    if draft.learning_state is LearningState.REVIEW:
        draft.interval = max(config.min_interval, min(config.max_interval, draft.interval))
    else:
        draft.interval = min(config.max_interval, draft.interval)


# ----------------------------------------------------------------------
# Engine
# ----------------------------------------------------------------------


class ForgettingCurveEngine:
    """Spaced-repetition scheduler combining SM-2 with a forgetting curve.

    Example:
        >>> engine = ForgettingCurveEngine()
        >>> card = ReviewCard.new("user-1", "sentence-42")
        >>> outcome = engine.calculate_next_interval(card, quality=4)
        >>> outcome.learning_state
        <LearningState.LEARNING: 'LEARNING'>
        >>> card = outcome.apply_to(card)
    """

    def __init__(self, store: Optional[ConfigStore] = None) -> None:
        self.store = store or ConfigStore()

    @property
    def config(self) -> SchedulerConfig:
        """Configuration currently in effect."""
        return self.store.current

    def calculate_next_interval(
        self,
        card: ReviewCard,
        quality: float,
        response_time: Optional[float] = 0.0,
        now: Optional[datetime] = None,
    ) -> ReviewOutcome:
        """Schedule the next review of ``card`` after a grade of ``quality``.

        Args:
            card: Current card state (not modified)
            quality: Grade 0-5; out-of-range values are clamped
            response_time: Seconds taken to answer; 0 or None means unknown
            now: Review time, defaults to the current UTC time

        Returns:
            ReviewOutcome with the new interval, ease, strength and state
        """
        config = self.store.current
        now = ensure_utc(now) if now else utcnow()
        grade = clamp_quality(quality)
        seconds = (
            float(response_time)
            if response_time and response_time > 0 and math.isfinite(response_time)
            else 0.0
        )

        draft = _Draft.from_card(card)
        _HANDLERS[card.learning_state](draft, card, grade, seconds, config)
        _enforce_bounds(draft, config)

        outcome = ReviewOutcome(
            interval=draft.interval,
            ease_factor=draft.ease_factor,
            repetition=draft.repetition,
            memory_strength=draft.memory_strength,
            stability_factor=draft.stability_factor,
            difficulty_factor=draft.difficulty_factor,
            learning_state=draft.learning_state,
            graduated=draft.graduated,
            next_review=now + timedelta(days=draft.interval),
            reviewed_at=now,
            quality=grade,
            response_time=seconds,
            previous_state=card.learning_state,
        )
        logger.debug(
            "Computed next interval",
            state=card.learning_state.value,
            next_state=outcome.learning_state.value,
            quality=grade,
            interval=f"{outcome.interval:.4f}",
        )
        return outcome

    def retention_probability(
        self, card: ReviewCard, target: Optional[datetime] = None
    ) -> float:
        """Predicted probability of recall at ``target``.

        R = exp(-t / S) * memory_strength, where t is whole days since the
        last review and S = stability_factor * ease_factor. Capped at 0.95.
        """
        days = card.days_since_last_review(target)
        stability = card.stability_factor * card.ease_factor
        if stability <= 0:
            stability = MIN_STABILITY_FACTOR
        retention = math.exp(-days / stability) * card.memory_strength
        return max(0.0, min(MAX_MEMORY_STRENGTH, retention))

    def optimal_review_time(
        self,
        card: ReviewCard,
        preferred_hours: Optional[Sequence[int]] = None,
        now: Optional[datetime] = None,
        tz: Union[str, tzinfo, None] = None,
    ) -> datetime:
        """Shift the scheduled review onto the nearest preferred hour of day.

        If the scheduled hour is already preferred the time is returned
        unchanged. Otherwise the nearest preferred hour on the same day is
        chosen (ties go to the earlier entry in ``preferred_hours``); if that
        instant is not after ``now`` it moves one day later.

        Args:
            card: Card whose next_review is adjusted
            preferred_hours: Hours 0-23, defaults to 9, 10, 19 and 20
            now: Reference time, defaults to the current UTC time
            tz: Time zone the hours refer to (name or tzinfo), defaults to UTC

        Raises:
            ValidationError: For an hour outside 0-23 or an unknown time zone
        """
        hours = _validate_hours(preferred_hours)
        zone = _resolve_zone(tz)
        now = ensure_utc(now) if now else utcnow()

        scheduled = ensure_utc(card.next_review)
        local = scheduled.astimezone(zone)
        if local.hour in hours:
            return scheduled

        nearest = min(hours, key=lambda hour: abs(hour - local.hour))
        candidate = local.replace(hour=nearest, minute=0, second=0, microsecond=0)
        if candidate <= now:
            candidate = candidate + timedelta(days=1)
        return candidate.astimezone(timezone.utc)


def _validate_hours(preferred_hours: Optional[Iterable[int]]) -> Tuple[int, ...]:
    if not preferred_hours:
        return DEFAULT_OPTIMAL_HOURS
    hours = tuple(preferred_hours)
    for hour in hours:
        if isinstance(hour, bool) or not isinstance(hour, int) or not 0 <= hour <= 23:
            raise ValidationError(f"Preferred hours must be integers 0-23, got {hour!r}")
    return hours


def _resolve_zone(tz: Union[str, tzinfo, None]) -> tzinfo:
    if tz is None:
        return timezone.utc
    if isinstance(tz, tzinfo):
        return tz
    try:
        return ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValidationError(f"Unknown time zone: {tz!r}") from e
