"""Review-log performance metrics.

Works on a learner's review history rather than on card state:
- Quality, accuracy and response-time summary
- Current and longest daily streaks
- Per-day trends over a reporting window
- Mastery projection for cards that have not graduated yet

All day boundaries are UTC calendar days."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

from recallforge.study.card import SECONDS_PER_DAY, LearningState, ReviewCard, ensure_utc

PROJECTION_WINDOW_DAYS: int = 7
DEFAULT_REVIEWS_TO_GRADUATION: float = 5.0
CONFIDENT_SAMPLE_SIZE: int = 10
CONFIDENT_PROJECTION: float = 0.8
MAX_TENTATIVE_CONFIDENCE: float = 0.5


@dataclass(frozen=True)
class ReviewEvent:
    """One answered review from the learner's history."""

    quality: int
    reviewed_at: datetime
    response_time: float = 0.0
    item_id: Optional[str] = None

    def passed(self, passing_grade: int) -> bool:
        return self.quality >= passing_grade


@dataclass
class ReviewSummary:
    """Quality and timing figures over a set of reviews."""

    total_reviews: int = 0
    average_quality: float = 0.0
    accuracy: float = 0.0
    quality_distribution: Dict[str, int] = field(default_factory=dict)
    average_response_time: float = 0.0


@dataclass
class DailyTrend:
    """Review activity on one UTC calendar day."""

    date: date
    reviews: int = 0
    average_quality: float = 0.0
    accuracy: float = 0.0
    average_response_time: float = 0.0


@dataclass
class MasteryProjection:
    """Estimated days until every NEW or LEARNING card graduates.

    Attributes:
        estimated_days: Days at the recent review rate; 0 when nothing is
            left or nothing was reviewed recently
        confidence: 0.8 with ten or more graduated cards, otherwise at most 0.5
        remaining_cards: NEW and LEARNING cards
    """

    estimated_days: int = 0
    confidence: float = 0.0
    remaining_cards: int = 0


def in_window(
    events: Iterable[ReviewEvent], start: datetime, end: datetime
) -> List[ReviewEvent]:
    """Reviews with start <= reviewed_at <= end."""
    return [e for e in events if start <= ensure_utc(e.reviewed_at) <= end]


def summarize_reviews(events: Sequence[ReviewEvent], passing_grade: int = 3) -> ReviewSummary:
    """Average quality, accuracy, grade histogram and mean response time."""
    summary = ReviewSummary(total_reviews=len(events))
    if not events:
        return summary

    summary.average_quality = round(sum(e.quality for e in events) / len(events), 2)
    correct = sum(1 for e in events if e.passed(passing_grade))
    summary.accuracy = round(correct / len(events), 2)
    for grade in sorted({e.quality for e in events}):
        summary.quality_distribution[str(grade)] = sum(1 for e in events if e.quality == grade)

    timed = [e.response_time for e in events if e.response_time > 0]
    if timed:
        summary.average_response_time = round(sum(timed) / len(timed), 2)
    return summary


def current_streak(
    events: Sequence[ReviewEvent], now: datetime, passing_grade: int = 3
) -> int:
    """Whole days back from ``now`` covered by an unbroken run of passing reviews.

    Reviews are walked newest first. A review made N whole days before
    ``now`` extends the streak to N when N is one more than the current
    streak; a review on an already counted day keeps it. A failed review or
    a skipped day ends the walk.
    """
    streak = 0
    for event in sorted(events, key=lambda e: ensure_utc(e.reviewed_at), reverse=True):
        elapsed = (now - ensure_utc(event.reviewed_at)).total_seconds() / SECONDS_PER_DAY
        days_ago = math.floor(elapsed)
        if days_ago > streak + 1 or not event.passed(passing_grade):
            break
        if days_ago == streak + 1:
            streak += 1
    return streak


def longest_streak(events: Sequence[ReviewEvent], passing_grade: int = 3) -> int:
    """Longest run of consecutive calendar days with at least one passing review."""
    days = sorted({ensure_utc(e.reviewed_at).date() for e in events if e.passed(passing_grade)})
    if not days:
        return 0

    longest = run = 1
    for previous, current in zip(days, days[1:]):
        run = run + 1 if (current - previous).days == 1 else 1
        longest = max(longest, run)
    return longest


def daily_trends(
    events: Sequence[ReviewEvent], now: datetime, days: int, passing_grade: int = 3
) -> List[DailyTrend]:
    """One entry per calendar day of the window ending today, oldest first."""
    today = now.date()
    by_day: Dict[date, List[ReviewEvent]] = {
        today - timedelta(days=offset): [] for offset in range(days)
    }
    for event in events:
        day = ensure_utc(event.reviewed_at).date()
        if day in by_day:
            by_day[day].append(event)

    trends: List[DailyTrend] = []
    for day in sorted(by_day):
        summary = summarize_reviews(by_day[day], passing_grade)
        trends.append(
            DailyTrend(
                date=day,
                reviews=summary.total_reviews,
                average_quality=summary.average_quality,
                accuracy=summary.accuracy,
                average_response_time=summary.average_response_time,
            )
        )
    return trends


def project_mastery(
    cards: Sequence[ReviewCard], events: Sequence[ReviewEvent], now: datetime
) -> MasteryProjection:
    """Estimate when the NEW and LEARNING cards will graduate.

    Remaining reviews per card come from the average review count of the
    graduated cards (5 when none have graduated). The pace is the number of
    reviews over the last seven days divided by seven.
    """
    pending = [
        c for c in cards if c.learning_state in (LearningState.NEW, LearningState.LEARNING)
    ]
    if not pending:
        return MasteryProjection()

    graduated = [c for c in cards if c.graduated]
    reviews_to_graduate = (
        sum(c.total_reviews for c in graduated) / len(graduated)
        if graduated
        else DEFAULT_REVIEWS_TO_GRADUATION
    )

    since = now - timedelta(days=PROJECTION_WINDOW_DAYS)
    recent = [e for e in events if ensure_utc(e.reviewed_at) > since]
    remaining = sum(max(0.0, reviews_to_graduate - c.total_reviews) for c in pending)
    # remaining / (len(recent) / window), kept exact for whole numbers
    estimated_days = (
        math.ceil(remaining * PROJECTION_WINDOW_DAYS / len(recent)) if recent else 0
    )

    if len(graduated) >= CONFIDENT_SAMPLE_SIZE:
        confidence = CONFIDENT_PROJECTION
    else:
        confidence = min(MAX_TENTATIVE_CONFIDENCE, len(graduated) / CONFIDENT_SAMPLE_SIZE)

    return MasteryProjection(
        estimated_days=estimated_days,
        confidence=round(confidence, 2),
        remaining_cards=len(pending),
    )
