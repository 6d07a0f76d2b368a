"""Card portfolio statistics.

Summarizes a learner's cards and review history for progress dashboards:
- Learning-state distribution
- Memory strength bands
- Retention forecast and expected review workload
- Review quality, accuracy, streaks and daily trends
- Learning efficiency (lapse rate, mastery rate, answers per minute)
- Mastery projection, insights and recommendations"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence

from recallforge.core.logging import get_logger
from recallforge.study.card import (
    SECONDS_PER_DAY,
    LearningState,
    ReviewCard,
    ensure_utc,
    utcnow,
)
from recallforge.study.performance import (
    DailyTrend,
    MasteryProjection,
    ReviewEvent,
    current_streak,
    daily_trends,
    in_window,
    longest_streak,
    project_mastery,
    summarize_reviews,
)

logger = get_logger(__name__)

FORECAST_DAYS: Sequence[int] = (1, 7, 30, 90)
WORKLOAD_DAYS: Sequence[int] = (1, 7, 30)
FORECAST_FLOOR: float = 0.05
FORECAST_CEILING: float = 0.95
DEFAULT_PERIOD_DAYS: int = 30

# Insight and recommendation thresholds
EXCELLENT_QUALITY: float = 4.5
POOR_QUALITY: float = 2.5
LOW_QUALITY: float = 3.0
EXCELLENT_STREAK: int = 21
HABIT_STREAK: int = 3
FAST_RESPONSE_SECONDS: float = 3.0
SLOW_RESPONSE_SECONDS: float = 15.0
HIGH_LAPSE_RATE: float = 0.3
SLOW_ANSWERS_PER_MINUTE: float = 2.0
NEW_CARD_SHARE: float = 0.5


class MemoryBand(Enum):
    """Current memory strength classification."""

    STRONG = "strong"  # > 0.8
    MODERATE = "moderate"  # > 0.5
    WEAK = "weak"  # > 0.2
    CRITICAL = "critical"

    @classmethod
    def for_strength(cls, strength: float) -> "MemoryBand":
        if strength > 0.8:
            return cls.STRONG
        if strength > 0.5:
            return cls.MODERATE
        if strength > 0.2:
            return cls.WEAK
        return cls.CRITICAL


class InsightKind(str, Enum):
    POSITIVE = "positive"
    WARNING = "warning"
    SUGGESTION = "suggestion"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"


@dataclass
class Insight:
    """Observation about the learner's recent performance."""

    type: InsightKind
    category: str
    message: str


@dataclass
class Recommendation:
    """Suggested change to the learner's study routine."""

    type: str
    priority: Priority
    title: str
    description: str


@dataclass
class ReportPeriod:
    """Window of review history covered by a report."""

    days: int
    start: datetime
    end: datetime


@dataclass
class DeckStats:
    """Aggregate statistics for one card portfolio.

    Attributes:
        user_id: Owner of the first card, when any card carries one
        period: Review-history window the review metrics cover
        total_cards: Number of cards
        due_now: Cards due at the reference time
        overdue: Cards overdue by more than a day
        suspended: Suspended cards
        mastered_cards: Cards in REVIEW
        learning_cards: Cards in LEARNING or RELEARNING
        new_cards: Cards never answered correctly enough to leave NEW
        state_distribution: Count per learning state
        memory_distribution: Count per memory band
        retention_forecast: Mean projected retention, keyed "1d", "7d", ...
        expected_workload: Cards due within each horizon, keyed "1d", "7d", ...
        average_ease: Mean ease factor
        average_memory_strength: Mean decayed memory strength
        total_reviews: Reviews inside the period
        average_quality: Mean grade of those reviews
        accuracy: Share of those reviews at or above the passing grade
        quality_distribution: Review count per grade present
        current_streak: Days of unbroken passing reviews up to now
        longest_streak: Longest run of days with a passing review
        average_response_time: Mean of the positive response times, seconds
        trends: One entry per day of the period, oldest first
        lapse_rate: Lapses per graduated card
        average_reviews_to_mastery: Mean review count of graduated cards
        mastery_rate: Graduated cards per hour of study time
        answers_per_minute: Passing reviews per minute of study time
        total_study_time: Summed response time, whole seconds
        total_study_hours: Summed response time, hours to one decimal
        mastery_projection: Estimate for the cards still being learned
        insights: Observations derived from the figures above
        recommendations: Suggested routine changes
    """

    user_id: Optional[str] = None
    period: Optional[ReportPeriod] = None
    total_cards: int = 0
    due_now: int = 0
    overdue: int = 0
    suspended: int = 0
    mastered_cards: int = 0
    learning_cards: int = 0
    new_cards: int = 0
    state_distribution: Dict[str, int] = field(
        default_factory=lambda: {state.value: 0 for state in LearningState}
    )
    memory_distribution: Dict[str, int] = field(
        default_factory=lambda: {band.value: 0 for band in MemoryBand}
    )
    retention_forecast: Dict[str, float] = field(default_factory=dict)
    expected_workload: Dict[str, int] = field(default_factory=dict)
    average_ease: float = 0.0
    average_memory_strength: float = 0.0
    total_reviews: int = 0
    average_quality: float = 0.0
    accuracy: float = 0.0
    quality_distribution: Dict[str, int] = field(default_factory=dict)
    current_streak: int = 0
    longest_streak: int = 0
    average_response_time: float = 0.0
    trends: List[DailyTrend] = field(default_factory=list)
    lapse_rate: float = 0.0
    average_reviews_to_mastery: float = 0.0
    mastery_rate: float = 0.0
    answers_per_minute: float = 0.0
    total_study_time: int = 0
    total_study_hours: float = 0.0
    mastery_projection: MasteryProjection = field(default_factory=MasteryProjection)
    insights: List[Insight] = field(default_factory=list)
    recommendations: List[Recommendation] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class StatsAggregator:
    """Aggregates statistics over a list of ReviewCards and their review log."""

    def summarize(
        self,
        cards: Iterable[ReviewCard],
        now: Optional[datetime] = None,
        reviews: Iterable[ReviewEvent] = (),
        days: int = DEFAULT_PERIOD_DAYS,
        passing_grade: int = 3,
    ) -> DeckStats:
        """Get portfolio statistics at ``now``.

        Args:
            cards: Cards to summarize
            now: Reference time, defaults to the current UTC time
            reviews: Review history; only entries within ``days`` of ``now`` count
            days: Length of the review-history window
            passing_grade: Lowest grade counted as correct

        Returns:
            DeckStats with all metrics
        """
        cards = list(cards)
        now = ensure_utc(now) if now else utcnow()
        start = now - timedelta(days=days)
        recent = in_window(reviews, start, now)

        stats = DeckStats(
            user_id=next((c.user_id for c in cards if c.user_id), None),
            period=ReportPeriod(days=days, start=start, end=now),
            total_cards=len(cards),
        )
        self._fill_cards(stats, cards, now)
        self._fill_reviews(stats, recent, now, days, passing_grade)
        self._fill_efficiency(stats, cards, recent, passing_grade)
        stats.mastery_projection = project_mastery(cards, recent, now)
        stats.insights = self._insights(stats)
        stats.recommendations = self._recommendations(stats)

        logger.debug(
            "Summarized portfolio",
            total_cards=stats.total_cards,
            total_reviews=stats.total_reviews,
        )
        return stats

    def _fill_cards(self, stats: DeckStats, cards: List[ReviewCard], now: datetime) -> None:
        strengths: List[float] = []
        for card in cards:
            stats.state_distribution[card.learning_state.value] += 1
            strength = card.calculate_current_memory_strength(now)
            strengths.append(strength)
            stats.memory_distribution[MemoryBand.for_strength(strength).value] += 1
            if card.suspended:
                stats.suspended += 1
            if card.is_due(now):
                stats.due_now += 1
            if card.is_overdue(now):
                stats.overdue += 1

        states = stats.state_distribution
        stats.mastered_cards = states[LearningState.REVIEW.value]
        stats.learning_cards = (
            states[LearningState.LEARNING.value] + states[LearningState.RELEARNING.value]
        )
        stats.new_cards = states[LearningState.NEW.value]
        if cards:
            stats.average_ease = round(sum(c.ease_factor for c in cards) / len(cards), 3)
            stats.average_memory_strength = round(sum(strengths) / len(strengths), 3)
        stats.retention_forecast = self._retention_forecast(cards, now)
        stats.expected_workload = self._expected_workload(cards, now)

    def _fill_reviews(
        self,
        stats: DeckStats,
        reviews: List[ReviewEvent],
        now: datetime,
        days: int,
        passing_grade: int,
    ) -> None:
        summary = summarize_reviews(reviews, passing_grade)
        stats.total_reviews = summary.total_reviews
        stats.average_quality = summary.average_quality
        stats.accuracy = summary.accuracy
        stats.quality_distribution = summary.quality_distribution
        stats.average_response_time = summary.average_response_time
        stats.current_streak = current_streak(reviews, now, passing_grade)
        stats.longest_streak = longest_streak(reviews, passing_grade)
        stats.trends = daily_trends(reviews, now, days, passing_grade)

    def _retention_forecast(self, cards: List[ReviewCard], now: datetime) -> Dict[str, float]:
        """Mean projected retention of reviewed cards at each horizon.

        Uses fractional elapsed days; every card's value is kept within
        [0.05, 0.95] before averaging.
        """
        reviewed = [c for c in cards if c.last_reviewed is not None]
        forecast: Dict[str, float] = {}
        for days in FORECAST_DAYS:
            future = now + timedelta(days=days)
            total = 0.0
            for card in reviewed:
                elapsed = (future - ensure_utc(card.last_reviewed)).total_seconds() / SECONDS_PER_DAY
                stability = card.stability_factor * card.ease_factor
                retention = math.exp(-elapsed / stability) * card.memory_strength if stability > 0 else 0.0
                total += min(FORECAST_CEILING, max(FORECAST_FLOOR, retention))
            forecast[f"{days}d"] = round(total / len(reviewed), 2) if reviewed else 0.0
        return forecast

    def _expected_workload(self, cards: List[ReviewCard], now: datetime) -> Dict[str, int]:
        """Cards that will be due within each horizon."""
        workload: Dict[str, int] = {}
        for days in WORKLOAD_DAYS:
            horizon = now + timedelta(days=days)
            workload[f"{days}d"] = sum(
                1 for c in cards if ensure_utc(c.next_review) <= horizon and not c.suspended
            )
        return workload

    def _fill_efficiency(
        self,
        stats: DeckStats,
        cards: List[ReviewCard],
        reviews: List[ReviewEvent],
        passing_grade: int,
    ) -> None:
        graduated = [c for c in cards if c.graduated]
        if graduated:
            total_lapses = sum(c.lapses for c in cards)
            stats.lapse_rate = round(total_lapses / len(graduated), 2)
            stats.average_reviews_to_mastery = round(
                sum(c.total_reviews for c in graduated) / len(graduated), 1
            )

        total_time = sum(e.response_time for e in reviews if e.response_time > 0)
        stats.total_study_time = round(total_time)
        stats.total_study_hours = round(total_time / 3600, 1)
        if total_time <= 0:
            return
        correct = sum(1 for e in reviews if e.passed(passing_grade))
        stats.mastery_rate = round(len(graduated) / (total_time / 3600), 2)
        stats.answers_per_minute = round(correct / (total_time / 60), 2)

    def _insights(self, stats: DeckStats) -> List[Insight]:
        """Observations on quality, consistency, retention and fluency.

        Quality and fluency are only judged when the period has reviews
        (and, for fluency, timed reviews).
        """
        insights: List[Insight] = []
        if stats.total_reviews:
            if stats.average_quality >= EXCELLENT_QUALITY:
                insights.append(Insight(
                    InsightKind.POSITIVE, "quality",
                    "Excellent response quality! You are demonstrating strong understanding.",
                ))
            elif stats.average_quality <= POOR_QUALITY:
                insights.append(Insight(
                    InsightKind.WARNING, "quality",
                    "Response quality is low. Consider reviewing the material more thoroughly.",
                ))

        if stats.current_streak >= EXCELLENT_STREAK:
            insights.append(Insight(
                InsightKind.POSITIVE, "consistency",
                f"Amazing {stats.current_streak}-day streak! Consistency is key to long-term retention.",
            ))
        elif stats.current_streak == 0:
            insights.append(Insight(
                InsightKind.SUGGESTION, "consistency",
                "Try to review daily to build a learning streak and improve retention.",
            ))

        if stats.lapse_rate > HIGH_LAPSE_RATE:
            insights.append(Insight(
                InsightKind.WARNING, "retention",
                "High forgetting rate detected. Consider shorter intervals or more focused study.",
            ))

        if stats.average_response_time > 0:
            if stats.average_response_time < FAST_RESPONSE_SECONDS:
                insights.append(Insight(
                    InsightKind.POSITIVE, "fluency",
                    "Quick response times indicate good fluency with the material.",
                ))
            elif stats.average_response_time > SLOW_RESPONSE_SECONDS:
                insights.append(Insight(
                    InsightKind.SUGGESTION, "fluency",
                    "Slow response times may indicate difficulty. Consider breaking down complex items.",
                ))
        return insights

    def _recommendations(self, stats: DeckStats) -> List[Recommendation]:
        recommendations: List[Recommendation] = []
        if stats.current_streak < HABIT_STREAK:
            recommendations.append(Recommendation(
                "schedule", Priority.HIGH, "Establish Daily Review Habit",
                "Set a consistent daily time for reviews to build momentum and improve retention.",
            ))
        if stats.total_reviews and stats.average_quality < LOW_QUALITY:
            recommendations.append(Recommendation(
                "difficulty", Priority.HIGH, "Focus on Challenging Items",
                "Spend extra time on items with low quality scores. Use additional learning resources.",
            ))
        if stats.total_study_time > 0 and stats.answers_per_minute < SLOW_ANSWERS_PER_MINUTE:
            recommendations.append(Recommendation(
                "efficiency", Priority.MEDIUM, "Improve Review Speed",
                "Practice active recall techniques to improve response speed and efficiency.",
            ))
        if stats.total_cards and stats.new_cards / stats.total_cards > NEW_CARD_SHARE:
            recommendations.append(Recommendation(
                "balance", Priority.MEDIUM, "Balance New and Review Cards",
                "Focus on reviewing existing cards before adding too many new ones.",
            ))
        return recommendations
