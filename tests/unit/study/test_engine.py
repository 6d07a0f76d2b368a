"""Tests for the forgetting-curve engine.

Tests the learning-state machine and its numeric rules:
- NEW, LEARNING, REVIEW and RELEARNING transitions
- SM-2 ease update and interval ladder
- Response-time, lapse and streak adjustments
- Bounds on ease, interval and memory strength
- Retention probability and optimal review time
"""

import math
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from recallforge.core.config import ConfigStore
from recallforge.core.exceptions import ValidationError
from recallforge.study.card import LearningState, ReviewCard
from recallforge.study.engine import (
    DEFAULT_OPTIMAL_HOURS,
    ForgettingCurveEngine,
    clamp_quality,
    next_learning_state,
    round_half_up,
)

ONE_MINUTE = 1 / 1440
TEN_MINUTES = 10 / 1440


# =============================================================================
# Helpers
# =============================================================================


class TestHelpers:
    """Test rounding, clamping and the transition function."""

    @pytest.mark.unit
    def test_round_half_up(self) -> None:
        assert round_half_up(10.5) == 11
        assert round_half_up(2.5) == 3
        assert round_half_up(14.16) == 14

    @pytest.mark.unit
    def test_clamp_quality(self) -> None:
        assert clamp_quality(-2) == 0
        assert clamp_quality(9) == 5
        assert clamp_quality(3) == 3

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "state,passed,exhausted,expected",
        [
            (LearningState.NEW, True, False, LearningState.LEARNING),
            (LearningState.NEW, False, False, LearningState.NEW),
            (LearningState.LEARNING, True, False, LearningState.LEARNING),
            (LearningState.LEARNING, True, True, LearningState.REVIEW),
            (LearningState.LEARNING, False, True, LearningState.LEARNING),
            (LearningState.REVIEW, True, False, LearningState.REVIEW),
            (LearningState.REVIEW, False, False, LearningState.RELEARNING),
            (LearningState.RELEARNING, True, False, LearningState.REVIEW),
            (LearningState.RELEARNING, False, False, LearningState.RELEARNING),
        ],
    )
    def test_transition_table(self, state, passed, exhausted, expected) -> None:
        assert next_learning_state(state, passed, exhausted) is expected


# =============================================================================
# NEW
# =============================================================================


class TestNewCards:
    """Test the first review of a card."""

    @pytest.mark.unit
    def test_pass_moves_to_learning(self, engine, new_card, now) -> None:
        """
        GIVEN a new card
        WHEN it is graded 4
        THEN it enters LEARNING one minute out with strength 0.75
        """
        outcome = engine.calculate_next_interval(new_card, 4, now=now)

        assert outcome.learning_state is LearningState.LEARNING
        assert outcome.repetition == 1
        assert outcome.interval == pytest.approx(ONE_MINUTE)
        assert outcome.memory_strength == pytest.approx(0.75)
        assert outcome.next_review == now + timedelta(minutes=1)

    @pytest.mark.unit
    def test_perfect_grade_caps_strength(self, engine, new_card, now) -> None:
        outcome = engine.calculate_next_interval(new_card, 5, now=now)
        assert outcome.memory_strength == pytest.approx(0.9)

    @pytest.mark.unit
    @pytest.mark.parametrize("quality", [0, 1, 2])
    def test_fail_stays_new(self, engine, new_card, now, quality) -> None:
        outcome = engine.calculate_next_interval(new_card, quality, now=now)

        assert outcome.learning_state is LearningState.NEW
        assert outcome.repetition == 1
        assert outcome.interval == pytest.approx(ONE_MINUTE)
        assert outcome.memory_strength == pytest.approx(0.1)

    @pytest.mark.unit
    def test_out_of_range_quality_is_clamped(self, engine, new_card, now) -> None:
        high = engine.calculate_next_interval(new_card, 9, now=now)
        low = engine.calculate_next_interval(new_card, -4, now=now)

        assert high.memory_strength == pytest.approx(0.9)
        assert high.learning_state is LearningState.LEARNING
        assert low.learning_state is LearningState.NEW

    @pytest.mark.unit
    def test_input_card_not_mutated(self, engine, new_card, now) -> None:
        before = new_card.to_dict()
        engine.calculate_next_interval(new_card, 4, now=now)
        assert new_card.to_dict() == before


# =============================================================================
# LEARNING
# =============================================================================


class TestLearningCards:
    """Test progression through the learning steps."""

    @pytest.mark.unit
    def test_pass_advances_to_next_step(self, engine, learning_card, now) -> None:
        outcome = engine.calculate_next_interval(learning_card, 4, now=now)

        assert outcome.learning_state is LearningState.LEARNING
        assert outcome.repetition == 2
        assert outcome.interval == pytest.approx(TEN_MINUTES)
        assert outcome.memory_strength == pytest.approx(0.9)

    @pytest.mark.unit
    def test_graduates_after_last_step(self, engine, learning_card, now) -> None:
        """
        GIVEN a learning card that has passed both steps
        WHEN it passes again
        THEN it graduates to REVIEW with the graduating interval
        """
        card = replace(learning_card, repetition=2, ease_factor=1.8)
        outcome = engine.calculate_next_interval(card, 4, now=now)

        assert outcome.learning_state is LearningState.REVIEW
        assert outcome.graduated is True
        assert outcome.interval == 1.0
        assert outcome.ease_factor == 2.5
        assert outcome.memory_strength == pytest.approx(0.8)

    @pytest.mark.unit
    def test_repetition_three_graduates(self, engine, learning_card, now) -> None:
        card = replace(learning_card, repetition=3)
        outcome = engine.calculate_next_interval(card, 4, now=now)

        assert outcome.learning_state is LearningState.REVIEW
        assert outcome.repetition == 4

    @pytest.mark.unit
    def test_fail_restarts_steps(self, engine, learning_card, now) -> None:
        card = replace(learning_card, repetition=2)
        outcome = engine.calculate_next_interval(card, 1, now=now)

        assert outcome.learning_state is LearningState.LEARNING
        assert outcome.repetition == 1
        assert outcome.interval == pytest.approx(ONE_MINUTE)
        assert outcome.memory_strength == pytest.approx(0.45)

    @pytest.mark.unit
    def test_custom_steps(self, now) -> None:
        store = ConfigStore()
        store.replace({"learning_steps": [5, 30, 120]})
        engine = ForgettingCurveEngine(store)
        card = ReviewCard(learning_state=LearningState.LEARNING, repetition=2, next_review=now)

        outcome = engine.calculate_next_interval(card, 3, now=now)

        assert outcome.learning_state is LearningState.LEARNING
        assert outcome.interval == pytest.approx(120 / 1440)


# =============================================================================
# REVIEW
# =============================================================================


class TestReviewCards:
    """Test SM-2 growth and performance adjustments."""

    @pytest.mark.unit
    def test_good_grade_keeps_ease(self, engine, review_card, now) -> None:
        """
        GIVEN a review card with interval 6 and ease 2.5
        WHEN it is graded 4
        THEN ease stays 2.5 and the interval grows to 15 days
        """
        outcome = engine.calculate_next_interval(review_card, 4, now=now)

        assert outcome.learning_state is LearningState.REVIEW
        assert outcome.ease_factor == pytest.approx(2.5)
        assert outcome.interval == 15
        assert outcome.repetition == 4
        assert outcome.memory_strength == pytest.approx(0.95)
        assert outcome.stability_factor == pytest.approx(1.1)
        assert outcome.next_review == now + timedelta(days=15)

    @pytest.mark.unit
    def test_hard_grade_lowers_ease(self, engine, review_card, now) -> None:
        outcome = engine.calculate_next_interval(review_card, 3, now=now)

        assert outcome.ease_factor == pytest.approx(2.36)
        assert outcome.interval == 14
        assert outcome.memory_strength == pytest.approx(0.9)
        assert outcome.stability_factor == pytest.approx(1.0)

    @pytest.mark.unit
    def test_easy_grade_raises_ease(self, engine, review_card, now) -> None:
        outcome = engine.calculate_next_interval(review_card, 5, now=now)

        assert outcome.ease_factor == pytest.approx(2.6)
        assert outcome.interval == 16

    @pytest.mark.unit
    @pytest.mark.parametrize("previous,expected", [(0.5, 1), (1.0, 6), (3.0, 6)])
    def test_interval_ladder(self, engine, review_card, now, previous, expected) -> None:
        card = replace(review_card, interval=previous)
        outcome = engine.calculate_next_interval(card, 4, now=now)
        assert outcome.interval == expected

    @pytest.mark.unit
    def test_fail_enters_relearning(self, engine, review_card, now) -> None:
        outcome = engine.calculate_next_interval(review_card, 1, now=now)

        assert outcome.learning_state is LearningState.RELEARNING
        assert outcome.ease_factor == pytest.approx(2.3)
        assert outcome.interval == pytest.approx(ONE_MINUTE)
        assert outcome.interval <= 0.5
        assert outcome.memory_strength == pytest.approx(0.4)
        assert outcome.stability_factor == pytest.approx(0.9)

    @pytest.mark.unit
    def test_lapses_shorten_interval(self, engine, review_card, now) -> None:
        card = replace(review_card, lapses=2)
        outcome = engine.calculate_next_interval(card, 4, now=now)

        assert outcome.interval == 12
        assert outcome.difficulty_factor == pytest.approx(1.2)

    @pytest.mark.unit
    def test_three_lapses(self, engine, review_card, now) -> None:
        card = replace(review_card, lapses=3)
        outcome = engine.calculate_next_interval(card, 4, now=now)
        assert outcome.interval == 11

    @pytest.mark.unit
    def test_streak_bonus(self, engine, review_card, now) -> None:
        card = replace(review_card, correct_streak=10)
        outcome = engine.calculate_next_interval(card, 4, now=now)
        assert outcome.interval == 19

    @pytest.mark.unit
    def test_fast_response_extends_interval(self, engine, review_card, now) -> None:
        card = replace(review_card, average_response_time=10.0)
        outcome = engine.calculate_next_interval(card, 4, response_time=4.0, now=now)

        assert outcome.interval == 17
        assert outcome.memory_strength == pytest.approx(0.95)

    @pytest.mark.unit
    def test_slow_response_shortens_interval(self, engine, review_card, now) -> None:
        card = replace(review_card, average_response_time=10.0)
        outcome = engine.calculate_next_interval(card, 4, response_time=25.0, now=now)

        assert outcome.interval == 14
        assert outcome.difficulty_factor == pytest.approx(1.1)

    @pytest.mark.unit
    def test_unknown_response_time_ignored(self, engine, review_card, now) -> None:
        card = replace(review_card, average_response_time=10.0)
        outcome = engine.calculate_next_interval(card, 4, response_time=None, now=now)
        assert outcome.interval == 15

    @pytest.mark.unit
    def test_interval_capped_at_max(self, engine, review_card, now) -> None:
        card = replace(review_card, interval=30000.0, ease_factor=3.5)
        outcome = engine.calculate_next_interval(card, 5, now=now)
        assert outcome.interval == 36500

    @pytest.mark.unit
    @pytest.mark.parametrize("interval", [1e308, math.inf])
    def test_oversized_interval_clamped(self, engine, review_card, now, interval) -> None:
        """
        GIVEN a card built in code with an interval far beyond max_interval
        WHEN it is reviewed successfully
        THEN the next interval is max_interval and the next review is representable
        """
        card = replace(review_card, interval=interval)

        outcome = engine.calculate_next_interval(card, 4, now=now)

        assert outcome.interval == 36500
        assert outcome.next_review == now + timedelta(days=36500)

    @pytest.mark.unit
    def test_non_finite_response_time_ignored(self, engine, review_card, now) -> None:
        card = replace(review_card, average_response_time=10.0)
        outcome = engine.calculate_next_interval(card, 4, response_time=math.inf, now=now)
        assert outcome.interval == 15

    @pytest.mark.unit
    def test_ease_bounds(self, engine, review_card, now) -> None:
        low = engine.calculate_next_interval(replace(review_card, ease_factor=1.3), 0, now=now)
        high = engine.calculate_next_interval(replace(review_card, ease_factor=3.5), 5, now=now)

        assert low.ease_factor == pytest.approx(1.3)
        assert high.ease_factor == pytest.approx(3.5)

    @pytest.mark.unit
    def test_interval_modifier(self, review_card, now) -> None:
        store = ConfigStore()
        store.replace({"interval_modifier": 2.0})
        outcome = ForgettingCurveEngine(store).calculate_next_interval(review_card, 4, now=now)
        assert outcome.interval == 30


# =============================================================================
# RELEARNING
# =============================================================================


class TestRelearningCards:
    """Test recovery from a lapse."""

    @pytest.mark.unit
    def test_pass_returns_to_review(self, engine, relearning_card, now) -> None:
        outcome = engine.calculate_next_interval(relearning_card, 4, now=now)

        assert outcome.learning_state is LearningState.REVIEW
        assert outcome.graduated is True
        assert outcome.repetition == 6
        assert outcome.interval == 5
        assert outcome.memory_strength == pytest.approx(0.7)

    @pytest.mark.unit
    def test_pass_interval_at_least_one_day(self, engine, relearning_card, now) -> None:
        card = replace(relearning_card, interval=ONE_MINUTE)
        outcome = engine.calculate_next_interval(card, 3, now=now)
        assert outcome.interval == 1

    @pytest.mark.unit
    def test_pass_with_oversized_interval(self, engine, relearning_card, now) -> None:
        card = replace(relearning_card, interval=math.inf)
        outcome = engine.calculate_next_interval(card, 4, now=now)
        assert outcome.interval <= 36500

    @pytest.mark.unit
    def test_fail_stays_relearning(self, engine, relearning_card, now) -> None:
        outcome = engine.calculate_next_interval(relearning_card, 0, now=now)

        assert outcome.learning_state is LearningState.RELEARNING
        assert outcome.interval == pytest.approx(ONE_MINUTE)
        assert outcome.memory_strength == pytest.approx(0.3)


# =============================================================================
# Invariants
# =============================================================================


class TestInvariants:
    """Every outcome stays within the engine's bounds."""

    @pytest.mark.unit
    def test_bounds_for_every_state_and_grade(
        self, engine, new_card, learning_card, review_card, relearning_card, now
    ) -> None:
        config = engine.config
        for card in (new_card, learning_card, review_card, relearning_card):
            for quality in range(6):
                outcome = engine.calculate_next_interval(card, quality, now=now)

                assert config.min_ease_factor <= outcome.ease_factor <= config.max_ease_factor
                assert 0.1 <= outcome.memory_strength <= 0.95
                assert 0 < outcome.interval <= config.max_interval
                assert outcome.next_review > now
                if outcome.learning_state is LearningState.REVIEW:
                    assert outcome.interval >= config.min_interval

    @pytest.mark.unit
    def test_deterministic(self, engine, review_card, now) -> None:
        first = engine.calculate_next_interval(review_card, 4, response_time=3.0, now=now)
        second = engine.calculate_next_interval(review_card, 4, response_time=3.0, now=now)
        assert first == second


# =============================================================================
# ReviewOutcome.apply_to
# =============================================================================


class TestApplyOutcome:
    """Test writing an outcome back onto a card."""

    @pytest.mark.unit
    def test_apply_updates_copy(self, engine, review_card, now) -> None:
        outcome = engine.calculate_next_interval(review_card, 4, now=now)
        updated = outcome.apply_to(review_card)

        assert updated is not review_card
        assert updated.interval == 15
        assert updated.next_review == now + timedelta(days=15)
        assert updated.last_reviewed == now
        assert updated.last_quality == 4
        assert updated.total_reviews == 5
        assert updated.correct_streak == 3
        assert review_card.total_reviews == 4

    @pytest.mark.unit
    def test_apply_records_lapse_for_graduated_card(self, engine, review_card, now) -> None:
        updated = engine.calculate_next_interval(review_card, 1, now=now).apply_to(review_card)

        assert updated.lapses == 1
        assert updated.correct_streak == 0
        assert updated.learning_state is LearningState.RELEARNING

    @pytest.mark.unit
    def test_apply_no_lapse_before_graduation(self, engine, new_card, now) -> None:
        updated = engine.calculate_next_interval(new_card, 0, now=now).apply_to(new_card)

        assert updated.lapses == 0
        assert updated.correct_streak == 0

    @pytest.mark.unit
    def test_full_lifecycle(self, engine, new_card, now) -> None:
        """
        GIVEN a new card
        WHEN it is passed three times in a row
        THEN it graduates to REVIEW
        """
        card = new_card
        when = now
        for _ in range(3):
            card = engine.calculate_next_interval(card, 4, now=when).apply_to(card)
            when = card.next_review

        assert card.learning_state is LearningState.REVIEW
        assert card.graduated is True
        assert card.total_reviews == 3
        assert card.interval == 1.0


# =============================================================================
# Retention probability
# =============================================================================


class TestRetentionProbability:
    """Test recall prediction."""

    @pytest.mark.unit
    def test_formula(self, engine, review_card, now) -> None:
        expected = math.exp(-6 / 2.5) * 0.8
        assert engine.retention_probability(review_card, now) == pytest.approx(expected)

    @pytest.mark.unit
    def test_never_reviewed_uses_strength(self, engine, new_card, now) -> None:
        assert engine.retention_probability(new_card, now) == pytest.approx(0.5)

    @pytest.mark.unit
    def test_capped(self, engine, new_card, now) -> None:
        card = replace(new_card, memory_strength=1.0)
        assert engine.retention_probability(card, now) == pytest.approx(0.95)

    @pytest.mark.unit
    def test_strictly_decreasing_over_time(self, engine, review_card, now) -> None:
        """
        GIVEN a card whose retention is below the 0.95 cap
        WHEN retention is evaluated further and further from the last review
        THEN every later value is strictly lower
        """
        values = [
            engine.retention_probability(review_card, now + timedelta(days=d))
            for d in range(0, 60, 5)
        ]
        assert values[0] < 0.95
        assert all(a > b for a, b in zip(values, values[1:]))
        assert all(0 <= v <= 0.95 for v in values)


# =============================================================================
# Optimal review time
# =============================================================================


class TestOptimalReviewTime:
    """Test alignment to preferred hours."""

    @pytest.mark.unit
    def test_default_hours(self) -> None:
        assert DEFAULT_OPTIMAL_HOURS == (9, 10, 19, 20)

    @pytest.mark.unit
    def test_preferred_hour_unchanged(self, engine, new_card, now) -> None:
        scheduled = datetime(2024, 3, 2, 19, 42, tzinfo=timezone.utc)
        card = replace(new_card, next_review=scheduled)
        assert engine.optimal_review_time(card, now=now) == scheduled

    @pytest.mark.unit
    def test_moves_to_nearest_hour(self, engine, new_card, now) -> None:
        card = replace(new_card, next_review=datetime(2024, 3, 2, 14, 37, tzinfo=timezone.utc))
        result = engine.optimal_review_time(card, now=now)
        assert result == datetime(2024, 3, 2, 10, 0, tzinfo=timezone.utc)

    @pytest.mark.unit
    def test_past_candidate_moves_to_next_day(self, engine, new_card, now) -> None:
        card = replace(new_card, next_review=datetime(2024, 3, 1, 12, 45, tzinfo=timezone.utc))
        result = engine.optimal_review_time(card, now=now)
        assert result == datetime(2024, 3, 2, 10, 0, tzinfo=timezone.utc)

    @pytest.mark.unit
    def test_tie_goes_to_first_listed_hour(self, engine, new_card, now) -> None:
        card = replace(new_card, next_review=datetime(2024, 3, 5, 10, 15, tzinfo=timezone.utc))
        result = engine.optimal_review_time(card, preferred_hours=[8, 12], now=now)
        assert result == datetime(2024, 3, 5, 8, 0, tzinfo=timezone.utc)

    @pytest.mark.unit
    def test_timezone_offset(self, engine, new_card, now) -> None:
        eastern = timezone(timedelta(hours=-5))
        card = replace(new_card, next_review=datetime(2024, 3, 2, 19, 0, tzinfo=timezone.utc))

        result = engine.optimal_review_time(card, now=now, tz=eastern)

        assert result == datetime(2024, 3, 2, 15, 0, tzinfo=timezone.utc)

    @pytest.mark.unit
    def test_invalid_hour_rejected(self, engine, new_card, now) -> None:
        with pytest.raises(ValidationError):
            engine.optimal_review_time(new_card, preferred_hours=[25], now=now)

    @pytest.mark.unit
    def test_unknown_timezone_rejected(self, engine, new_card, now) -> None:
        with pytest.raises(ValidationError, match="Unknown time zone"):
            engine.optimal_review_time(new_card, now=now, tz="Not/AZone")
