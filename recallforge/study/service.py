"""
Review scheduling service.

Transport-independent facade in front of the forgetting-curve engine. It
validates requests, materializes cards from snapshots, runs the engine,
applies the outcome and shapes the response. The HTTP routes and the CLI are
thin wrappers around this class.

Usage
-----
    from recallforge.study.service import ReviewService

    service = ReviewService()
    result = service.schedule_review({"userId": "u1", "itemId": "s42", "quality": 4})
    print(result.next_review, result.learning_state)
"""

from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Sequence, Type, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from recallforge.core.config import Config, ConfigStore, SchedulerConfig
from recallforge.core.exceptions import QualityRangeError, ValidationError
from recallforge.core.logging import ReviewLogger, get_logger
from recallforge.study.batch import BatchCoordinator
from recallforge.study.card import ReviewCard, ensure_utc, epoch_ms, utcnow
from recallforge.study.contracts import (
    AnalyticsRequest,
    BatchScheduleResult,
    CardSnapshot,
    ConfigView,
    DeckReport,
    OptimalTimeRequest,
    OptimalTimeResult,
    RetentionEstimate,
    RetentionRequest,
    ScheduleRequest,
    ScheduleResult,
)
from recallforge.study.engine import MAX_QUALITY, MIN_QUALITY, ForgettingCurveEngine
from recallforge.study.performance import ReviewEvent
from recallforge.study.stats import StatsAggregator

logger = get_logger(__name__)

RequestT = TypeVar("RequestT", bound=BaseModel)


def parse_request(model: Type[RequestT], payload: Any) -> RequestT:
    """Validate ``payload`` against ``model``.

    Raises:
        ValidationError: With the first pydantic error location and message.
    """
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        message = first.get("msg", str(e))
        raise ValidationError(
            f"Invalid {model.__name__}: {location}: {message}" if location else message
        ) from e


class ReviewService:
    """Scheduling facade.

    Args:
        config: Application configuration; defaults to built-in values
        store: Scheduler config holder; created from ``config`` when omitted
        engine: Engine instance; created around ``store`` when omitted
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        store: Optional[ConfigStore] = None,
        engine: Optional[ForgettingCurveEngine] = None,
    ) -> None:
        self.config = config or Config()
        self.store = store or ConfigStore(self.config.scheduler)
        self.engine = engine or ForgettingCurveEngine(self.store)
        self.batch = BatchCoordinator(
            max_workers=self.config.batch.max_workers,
            max_items=self.config.batch.max_items,
        )
        self.stats = StatsAggregator()

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def schedule_review(
        self,
        request: Union[ScheduleRequest, Dict[str, Any]],
        now: Optional[datetime] = None,
    ) -> ScheduleResult:
        """Schedule the next review for one graded answer.

        Raises:
            ValidationError: For a malformed request
            QualityRangeError: For a grade outside 0-5
            SnapshotError: For a card snapshot that cannot be restored
        """
        req = parse_request(ScheduleRequest, request)
        if not MIN_QUALITY <= req.quality <= MAX_QUALITY:
            raise QualityRangeError(f"Quality must be between 0 and 5, got {req.quality}")

        now = ensure_utc(now) if now else utcnow()
        review_log = ReviewLogger(req.user_id, req.item_id)
        card = self._card_for(req, now)

        outcome = self.engine.calculate_next_interval(
            card, req.quality, response_time=req.response_time, now=now
        )
        updated = outcome.apply_to(card, passing_grade=self.store.current.passing_grade)

        if outcome.previous_state is not outcome.learning_state:
            review_log.transition(
                card.learning_state.value, updated.learning_state.value, quality=req.quality
            )
        review_log.finish(True, interval=updated.interval)
        return ScheduleResult.build(updated, outcome)

    def _card_for(self, req: ScheduleRequest, now: datetime) -> ReviewCard:
        """Restore the supplied snapshot or materialize a new card.

        Raises:
            ValidationError: If the snapshot belongs to another user or item
        """
        if req.card is None:
            kwargs = {"item_type": req.item_type} if req.item_type else {}
            return ReviewCard.new(req.user_id, req.item_id, now=now, **kwargs)

        card = req.card.to_card()
        for field_name, requested in (("user_id", req.user_id), ("item_id", req.item_id)):
            stored = getattr(card, field_name)
            if stored and stored != requested:
                raise ValidationError(
                    f"Card snapshot {field_name} {stored!r} does not match request {requested!r}",
                    how_to_fix=[
                        "Send the snapshot returned for this user and item",
                        "Omit the card to start a new one",
                    ],
                )
        card.user_id = card.user_id or req.user_id
        card.item_id = card.item_id or req.item_id
        if req.item_type is not None:
            card.item_type = req.item_type
        return card

    def batch_schedule(
        self, reviews: Sequence[Any], now: Optional[datetime] = None
    ) -> BatchScheduleResult:
        """Schedule independent reviews; failures are reported per entry."""
        if isinstance(reviews, (str, bytes)) or not isinstance(reviews, Sequence):
            raise ValidationError("reviews must be a list of review entries")
        now = ensure_utc(now) if now else utcnow()
        return self.batch.run(reviews, lambda entry: self.schedule_review(entry, now=now))

    # ------------------------------------------------------------------
    # Estimators
    # ------------------------------------------------------------------

    def estimate_retention(
        self,
        request: Union[RetentionRequest, Dict[str, Any]],
        now: Optional[datetime] = None,
    ) -> RetentionEstimate:
        """Predict recall probability and report the card's derived queries."""
        req = parse_request(RetentionRequest, request)
        card = req.card.to_card()
        target = ensure_utc(req.target) if req.target else (ensure_utc(now) if now else utcnow())

        return RetentionEstimate(
            retention_probability=self.engine.retention_probability(card, target),
            current_memory_strength=card.calculate_current_memory_strength(target),
            days_since_last_review=card.days_since_last_review(target),
            days_until_next_review=card.days_until_next_review(target),
            priority_score=card.get_priority_score(target),
            is_due=card.is_due(target),
            is_overdue=card.is_overdue(target),
        )

    def optimal_time(
        self,
        request: Union[OptimalTimeRequest, Dict[str, Any]],
        now: Optional[datetime] = None,
    ) -> OptimalTimeResult:
        """Align the card's next review with the learner's preferred hours."""
        req = parse_request(OptimalTimeRequest, request)
        card = req.card.to_card()
        now = ensure_utc(now) if now else utcnow()

        optimal = self.engine.optimal_review_time(
            card, preferred_hours=req.preferred_hours, now=now, tz=req.timezone
        )
        scheduled_ms = epoch_ms(card.next_review)
        optimal_ms = epoch_ms(optimal)
        adjustment_ms = optimal_ms - scheduled_ms
        return OptimalTimeResult(
            scheduled_review=card.next_review,
            optimal_review=optimal,
            scheduled_review_epoch_ms=scheduled_ms,
            optimal_review_epoch_ms=optimal_ms,
            adjustment_ms=adjustment_ms,
            adjustment_hours=round(adjustment_ms / 3_600_000, 2),
        )

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def get_config(self) -> ConfigView:
        """Scheduler configuration currently in effect."""
        return ConfigView(version=self.store.version, config=self.store.current.to_dict())

    def replace_config(self, overrides: Dict[str, Any]) -> ConfigView:
        """Merge ``overrides`` onto the live configuration and swap it in.

        Raises:
            ValidationError: If ``overrides`` is not a mapping
            ConfigValidationError: If the merged configuration is invalid;
                the previous configuration stays in effect
        """
        if not isinstance(overrides, dict):
            raise ValidationError("Configuration overrides must be a JSON object")
        self.store.replace(overrides)
        return self.get_config()

    def reset_config(self) -> ConfigView:
        """Restore the scheduler configuration the service started with."""
        self.store.reset()
        return self.get_config()

    @property
    def scheduler_config(self) -> SchedulerConfig:
        return self.store.current

    # ------------------------------------------------------------------
    # Analytics
    # ------------------------------------------------------------------

    def analytics(
        self,
        request: Union[AnalyticsRequest, Dict[str, Any]],
        now: Optional[datetime] = None,
    ) -> DeckReport:
        """Portfolio statistics for card snapshots and their review history."""
        req = parse_request(AnalyticsRequest, request)
        reference = req.now or now
        cards = _restore(req.cards)
        reviews = [
            ReviewEvent(
                quality=record.quality,
                reviewed_at=ensure_utc(record.reviewed_at),
                response_time=record.response_time,
                item_id=record.item_id,
            )
            for record in req.reviews
        ]
        stats = self.stats.summarize(
            cards,
            now=reference,
            reviews=reviews,
            days=req.days,
            passing_grade=self.store.current.passing_grade,
        )
        return DeckReport(**stats.to_dict())


def _restore(snapshots: Iterable[CardSnapshot]) -> list:
    return [snapshot.to_card() for snapshot in snapshots]
