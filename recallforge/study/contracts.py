"""
Request and response contracts for the review service.

Pydantic models shared by the service facade, the HTTP API and the CLI.
Wire names are camelCase; snake_case names are accepted on input as well.

JPL Compliance:
- Rule #7: Inputs validated at the boundary.
- Rule #9: Complete type hints.
"""

from datetime import date, datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from recallforge.core.config.scheduler import MAX_INTERVAL_LIMIT
from recallforge.study.card import ItemType, LearningState, ReviewCard, epoch_ms
from recallforge.study.stats import InsightKind, Priority

if TYPE_CHECKING:
    from recallforge.study.engine import ReviewOutcome


class _Contract(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, allow_inf_nan=False
    )


# =============================================================================
# Card snapshot
# =============================================================================


class CardSnapshot(_Contract):
    """Serialized ReviewCard as exchanged with clients."""

    id: Optional[str] = None
    user_id: str = ""
    item_id: str = ""
    item_type: ItemType = ItemType.SENTENCE

    ease_factor: float = Field(default=2.5, ge=1.0, le=5.0)
    interval: float = Field(default=1.0, ge=0, le=MAX_INTERVAL_LIMIT)
    repetition: int = Field(default=0, ge=0)
    last_quality: int = Field(
        default=0,
        ge=0,
        le=5,
        validation_alias=AliasChoices("lastQuality", "last_quality", "quality"),
        serialization_alias="lastQuality",
    )

    memory_strength: float = Field(default=0.5, ge=0, le=1)
    stability_factor: float = Field(default=1.0, ge=0.1, le=5)
    difficulty_factor: float = Field(default=1.0, ge=0.1, le=5)

    last_reviewed: Optional[datetime] = None
    next_review: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    total_reviews: int = Field(default=0, ge=0)
    correct_streak: int = Field(default=0, ge=0)
    lapses: int = Field(default=0, ge=0)
    average_response_time: float = Field(default=0.0, ge=0)

    learning_state: LearningState = LearningState.NEW
    graduated: bool = False
    suspended: bool = False

    def to_card(self) -> ReviewCard:
        """Build a ReviewCard, letting unset fields take card defaults."""
        return ReviewCard.from_dict(self.model_dump(exclude_none=True))

    @classmethod
    def from_card(cls, card: ReviewCard) -> "CardSnapshot":
        return cls.model_validate(card.to_dict())


# =============================================================================
# Schedule
# =============================================================================


class ScheduleRequest(_Contract):
    """One graded review to schedule."""

    user_id: str = Field(..., min_length=1, description="Learner identifier")
    item_id: str = Field(..., min_length=1, description="Content identifier")
    quality: int = Field(..., description="Grade 0-5")
    response_time: Optional[float] = Field(
        default=None, ge=0, description="Seconds taken to answer"
    )
    item_type: Optional[ItemType] = None
    card: Optional[CardSnapshot] = Field(
        default=None,
        validation_alias=AliasChoices("card", "cardData", "card_data", "cardSnapshot"),
        description="Existing card state; a new card is created when omitted",
    )

    @field_validator("user_id", "item_id")
    @classmethod
    def not_blank(cls, v: str) -> str:
        """Reject whitespace-only identifiers."""
        if not v.strip():
            raise ValueError("Identifier cannot be empty or whitespace-only")
        return v.strip()


class ScheduleResult(_Contract):
    """Next review of one card."""

    user_id: str
    item_id: str
    next_review: datetime
    next_review_epoch_ms: int
    interval: float = Field(..., description="Days until the next review")
    interval_days: int
    ease_factor: float
    memory_strength: float
    learning_state: LearningState
    previous_state: Optional[LearningState] = None
    card: CardSnapshot

    @classmethod
    def build(cls, card: ReviewCard, outcome: "ReviewOutcome") -> "ScheduleResult":
        """Describe ``card`` after ``outcome`` has been applied to it."""
        return cls(
            user_id=card.user_id,
            item_id=card.item_id,
            next_review=card.next_review,
            next_review_epoch_ms=epoch_ms(card.next_review),
            interval=card.interval,
            interval_days=outcome.interval_days,
            ease_factor=card.ease_factor,
            memory_strength=card.memory_strength,
            learning_state=card.learning_state,
            previous_state=outcome.previous_state,
            card=CardSnapshot.from_card(card),
        )


# =============================================================================
# Retention / optimal time
# =============================================================================


class RetentionRequest(_Contract):
    """Card snapshot and instant to estimate recall at."""

    card: CardSnapshot = Field(
        ..., validation_alias=AliasChoices("card", "cardSnapshot", "cardData", "card_data")
    )
    target: Optional[datetime] = Field(
        default=None,
        validation_alias=AliasChoices("target", "targetDate", "targetInstant"),
        description="Defaults to now",
    )


class RetentionEstimate(_Contract):
    """Recall estimate plus the card's derived queries at one instant."""

    retention_probability: float
    current_memory_strength: float
    days_since_last_review: int
    days_until_next_review: int
    priority_score: float
    is_due: bool
    is_overdue: bool


class OptimalTimeRequest(_Contract):
    """Card snapshot and the learner's preferred study hours."""

    card: CardSnapshot = Field(
        ..., validation_alias=AliasChoices("card", "cardSnapshot", "cardData", "card_data")
    )
    preferred_hours: Optional[List[int]] = Field(
        default=None,
        validation_alias=AliasChoices("preferredHours", "preferred_hours", "optimalHours"),
        serialization_alias="preferredHours",
    )
    timezone: Optional[str] = None

    @field_validator("preferred_hours")
    @classmethod
    def hours_in_day(cls, v: Optional[List[int]]) -> Optional[List[int]]:
        """Validate every hour is 0-23."""
        if v is None:
            return v
        for hour in v:
            if not 0 <= hour <= 23:
                raise ValueError(f"Hour {hour} is outside 0-23")
        return v


class OptimalTimeResult(_Contract):
    """Scheduled review time aligned to a preferred hour."""

    scheduled_review: datetime
    optimal_review: datetime
    scheduled_review_epoch_ms: int
    optimal_review_epoch_ms: int
    adjustment_ms: int
    adjustment_hours: float


# =============================================================================
# Batch
# =============================================================================


class BatchScheduleRequest(_Contract):
    """Independent reviews scheduled in one call.

    Entries stay raw so that a malformed entry fails on its own instead of
    rejecting the whole batch.
    """

    reviews: List[Any] = Field(..., description="Review entries shaped like ScheduleRequest")


class BatchItemResult(_Contract):
    """Outcome of one batch entry."""

    index: int
    success: bool
    user_id: Optional[str] = None
    item_id: Optional[str] = None
    result: Optional[ScheduleResult] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


class BatchSummary(_Contract):
    total: int
    successful: int
    failed: int


class BatchScheduleResult(_Contract):
    """Per-entry results in input order plus counts."""

    results: List[BatchItemResult]
    summary: BatchSummary


# =============================================================================
# Configuration / analytics
# =============================================================================


class ConfigView(_Contract):
    """Scheduler configuration currently in effect."""

    version: int
    config: Dict[str, Any]


class ReviewRecord(_Contract):
    """One answered review from the learner's history."""

    quality: int = Field(..., ge=0, le=5, description="Grade 0-5")
    reviewed_at: datetime = Field(
        ...,
        validation_alias=AliasChoices("reviewedAt", "reviewed_at", "timestamp"),
    )
    response_time: float = Field(
        default=0.0,
        ge=0,
        validation_alias=AliasChoices("responseTime", "response_time"),
        description="Seconds taken to answer",
    )
    item_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("itemId", "item_id", "cardId")
    )


class AnalyticsRequest(_Contract):
    """A learner's card portfolio and review history."""

    cards: List[CardSnapshot] = Field(default_factory=list)
    reviews: List[ReviewRecord] = Field(default_factory=list)
    days: int = Field(default=30, ge=1, le=365, description="Review-history window")
    now: Optional[datetime] = None


class ReportPeriodView(_Contract):
    days: int
    start: datetime
    end: datetime


class DailyTrendView(_Contract):
    date: date
    reviews: int
    average_quality: float
    accuracy: float
    average_response_time: float


class MasteryProjectionView(_Contract):
    estimated_days: int
    confidence: float
    remaining_cards: int


class InsightView(_Contract):
    type: InsightKind
    category: str
    message: str


class RecommendationView(_Contract):
    type: str
    priority: Priority
    title: str
    description: str


class DeckReport(_Contract):
    """Aggregate statistics over a card portfolio and its review history."""

    user_id: Optional[str] = None
    period: ReportPeriodView
    total_cards: int
    due_now: int
    overdue: int
    suspended: int
    mastered_cards: int
    learning_cards: int
    new_cards: int
    state_distribution: Dict[str, int]
    memory_distribution: Dict[str, int]
    retention_forecast: Dict[str, float]
    expected_workload: Dict[str, int]
    average_ease: float
    average_memory_strength: float
    total_reviews: int
    average_quality: float
    accuracy: float
    quality_distribution: Dict[str, int]
    current_streak: int
    longest_streak: int
    average_response_time: float
    trends: List[DailyTrendView]
    lapse_rate: float
    average_reviews_to_mastery: float
    mastery_rate: float
    answers_per_minute: float
    total_study_time: int
    total_study_hours: float
    mastery_projection: MasteryProjectionView
    insights: List[InsightView]
    recommendations: List[RecommendationView]
