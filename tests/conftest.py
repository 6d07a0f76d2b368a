"""
Shared pytest fixtures and configuration for RecallForge tests.

Fixture Organization
--------------------
- **now**: Fixed reference instant (UTC)
- **engine / store**: Engine around a fresh ConfigStore
- **service**: ReviewService with sequential batches
- **new_card / learning_card / review_card / relearning_card**: Cards in each state
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generator

import pytest

from recallforge.core.config import BatchConfig, Config, ConfigStore
from recallforge.study.card import LearningState, ReviewCard
from recallforge.study.engine import ForgettingCurveEngine
from recallforge.study.service import ReviewService


def pytest_configure(config):
    """Configure pytest markers and settings."""
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "unit: marks tests as unit tests")


# ============================================================================
# Clock / Config Fixtures
# ============================================================================


@pytest.fixture
def now() -> datetime:
    """Fixed reference time: 2024-03-01 12:30 UTC."""
    return datetime(2024, 3, 1, 12, 30, tzinfo=timezone.utc)


@pytest.fixture
def store() -> ConfigStore:
    return ConfigStore()


@pytest.fixture
def engine(store: ConfigStore) -> ForgettingCurveEngine:
    return ForgettingCurveEngine(store)


@pytest.fixture
def service() -> ReviewService:
    """Service with default scheduler config and single-threaded batches."""
    return ReviewService(Config(batch=BatchConfig(max_workers=1)))


@pytest.fixture
def temp_dir(tmp_path: Path) -> Generator[Path, None, None]:
    yield tmp_path


# ============================================================================
# Card Fixtures
# ============================================================================


@pytest.fixture
def new_card(now: datetime) -> ReviewCard:
    return ReviewCard.new("user-1", "sentence-1", now=now)


@pytest.fixture
def learning_card(now: datetime) -> ReviewCard:
    return ReviewCard(
        user_id="user-1",
        item_id="sentence-2",
        learning_state=LearningState.LEARNING,
        repetition=1,
        interval=1 / 1440,
        memory_strength=0.75,
        total_reviews=1,
        correct_streak=1,
        last_reviewed=now - timedelta(minutes=1),
        next_review=now,
    )


@pytest.fixture
def review_card(now: datetime) -> ReviewCard:
    """Graduated card with a 6-day interval and clean history."""
    return ReviewCard(
        user_id="user-1",
        item_id="sentence-3",
        learning_state=LearningState.REVIEW,
        graduated=True,
        repetition=3,
        interval=6.0,
        ease_factor=2.5,
        memory_strength=0.8,
        total_reviews=4,
        correct_streak=2,
        last_reviewed=now - timedelta(days=6),
        next_review=now,
    )


@pytest.fixture
def relearning_card(now: datetime) -> ReviewCard:
    return ReviewCard(
        user_id="user-1",
        item_id="sentence-4",
        learning_state=LearningState.RELEARNING,
        graduated=True,
        repetition=5,
        interval=20.0,
        ease_factor=2.3,
        memory_strength=0.4,
        lapses=1,
        total_reviews=6,
        last_reviewed=now - timedelta(hours=12),
        next_review=now,
    )
