"""Study scheduling package.

- card: ReviewCard value object and learning states
- engine: Forgetting-curve scheduling engine
- contracts: Request/response models
- batch: Batch coordinator
- service: Scheduling facade
- performance: Review-log metrics (streaks, trends, mastery projection)
- stats: Card portfolio and review-history statistics
"""

from __future__ import annotations

from recallforge.study.card import (
    ItemType,
    LearningState,
    ReviewCard,
)

from recallforge.study.engine import (
    DEFAULT_OPTIMAL_HOURS,
    ForgettingCurveEngine,
    ReviewOutcome,
    next_learning_state,
)

from recallforge.study.batch import BatchCoordinator

from recallforge.study.performance import ReviewEvent

from recallforge.study.service import ReviewService

from recallforge.study.stats import (
    DeckStats,
    MemoryBand,
    StatsAggregator,
)

__all__ = [
    # Card
    "ItemType",
    "LearningState",
    "ReviewCard",
    # Engine
    "DEFAULT_OPTIMAL_HOURS",
    "ForgettingCurveEngine",
    "ReviewOutcome",
    "next_learning_state",
    # Batch / service
    "BatchCoordinator",
    "ReviewService",
    # Stats
    "DeckStats",
    "MemoryBand",
    "StatsAggregator",
    "ReviewEvent",
]
