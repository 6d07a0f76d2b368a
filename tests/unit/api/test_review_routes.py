"""Tests for the review scheduling API.

Exercises every route through FastAPI's TestClient, including the mapping
of RecallForgeError subclasses onto HTTP status codes.
"""

from datetime import datetime, timedelta, timezone

import pytest

pytest.importorskip("fastapi")

from fastapi.testclient import TestClient

from recallforge import __version__
from recallforge.api.main import create_app
from recallforge.core.config import BatchConfig, Config
from recallforge.study.contracts import CardSnapshot
from recallforge.study.service import ReviewService


@pytest.fixture
def app():
    """Create FastAPI test app with its own service."""
    return create_app(service=ReviewService(Config(batch=BatchConfig(max_workers=2))))


@pytest.fixture
def client(app):
    """Create test client."""
    return TestClient(app)


@pytest.fixture
def review_snapshot(review_card):
    return CardSnapshot.from_card(review_card).model_dump(by_alias=True, mode="json")


# =============================================================================
# Health
# =============================================================================


@pytest.mark.unit
def test_health(client) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["service"] == "recallforge"
    assert body["version"] == __version__


# =============================================================================
# Schedule
# =============================================================================


class TestScheduleEndpoint:
    """Test POST /v1/schedule."""

    @pytest.mark.unit
    def test_new_card(self, client) -> None:
        response = client.post("/v1/schedule", json={"userId": "u1", "itemId": "s1", "quality": 4})

        assert response.status_code == 200
        body = response.json()
        assert body["userId"] == "u1"
        assert body["learningState"] == "LEARNING"
        assert body["card"]["totalReviews"] == 1
        assert body["card"]["lastQuality"] == 4
        assert isinstance(body["nextReviewEpochMs"], int)

    @pytest.mark.unit
    def test_existing_card(self, client, review_snapshot) -> None:
        response = client.post(
            "/v1/schedule",
            json={"userId": "user-1", "itemId": "sentence-3", "quality": 4, "card": review_snapshot},
        )

        body = response.json()
        assert response.status_code == 200
        assert body["interval"] == 15
        assert body["intervalDays"] == 15
        assert body["easeFactor"] == pytest.approx(2.5)

    @pytest.mark.unit
    def test_legacy_card_field_name(self, client, review_snapshot) -> None:
        response = client.post(
            "/v1/schedule",
            json={"userId": "user-1", "itemId": "sentence-3", "quality": 1, "cardData": review_snapshot},
        )
        assert response.json()["learningState"] == "RELEARNING"

    @pytest.mark.unit
    def test_quality_out_of_range(self, client) -> None:
        response = client.post("/v1/schedule", json={"userId": "u1", "itemId": "s1", "quality": 7})

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "RF-VAL-002"
        assert body["error"] == "QualityRangeError"
        assert body["howToFix"]

    @pytest.mark.unit
    def test_missing_field(self, client) -> None:
        response = client.post("/v1/schedule", json={"itemId": "s1", "quality": 3})
        assert response.status_code == 422

    @pytest.mark.unit
    def test_bad_snapshot(self, client) -> None:
        response = client.post(
            "/v1/schedule",
            json={"userId": "u1", "itemId": "s1", "quality": 3, "card": {"learningState": "DONE"}},
        )
        assert response.status_code == 422

    @pytest.mark.unit
    def test_interval_beyond_limit(self, client) -> None:
        """
        GIVEN a REVIEW snapshot with an astronomically large interval
        WHEN it is posted for scheduling
        THEN the request fails validation instead of returning a server error
        """
        response = client.post(
            "/v1/schedule",
            json={
                "userId": "u1",
                "itemId": "s1",
                "quality": 4,
                "card": {"learningState": "REVIEW", "interval": 1e308, "easeFactor": 2.5},
            },
        )
        assert response.status_code == 422

    @pytest.mark.unit
    def test_snapshot_for_other_user(self, client, review_snapshot) -> None:
        response = client.post(
            "/v1/schedule",
            json={"userId": "user-2", "itemId": "sentence-3", "quality": 4, "card": review_snapshot},
        )

        assert response.status_code == 400
        assert response.json()["code"] == "RF-VAL-000"


# =============================================================================
# Retention / optimal time
# =============================================================================


class TestEstimatorEndpoints:
    """Test POST /v1/retention and /v1/optimal-time."""

    @pytest.mark.unit
    def test_retention(self, client, review_snapshot, now) -> None:
        response = client.post(
            "/v1/retention",
            json={"cardSnapshot": review_snapshot, "target": now.isoformat()},
        )

        assert response.status_code == 200
        body = response.json()
        assert 0 <= body["retentionProbability"] <= 0.95
        assert body["daysSinceLastReview"] == 6
        assert body["isOverdue"] is False
        assert "priorityScore" in body

    @pytest.mark.unit
    def test_optimal_time(self, client, review_snapshot) -> None:
        scheduled = datetime.now(timezone.utc).replace(hour=14, minute=37, second=0, microsecond=0)
        review_snapshot["nextReview"] = (scheduled + timedelta(days=2)).isoformat()

        response = client.post(
            "/v1/optimal-time", json={"card": review_snapshot, "preferredHours": [9, 10]}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["adjustmentMs"] == -(4 * 3600 + 37 * 60) * 1000
        assert body["optimalReviewEpochMs"] - body["scheduledReviewEpochMs"] == body["adjustmentMs"]

    @pytest.mark.unit
    def test_optimal_time_bad_hour(self, client, review_snapshot) -> None:
        response = client.post(
            "/v1/optimal-time", json={"card": review_snapshot, "preferredHours": [30]}
        )
        assert response.status_code == 422

    @pytest.mark.unit
    def test_optimal_time_unknown_zone(self, client, review_snapshot) -> None:
        response = client.post(
            "/v1/optimal-time", json={"card": review_snapshot, "timezone": "Not/AZone"}
        )
        assert response.status_code == 400
        assert response.json()["code"] == "RF-VAL-000"


# =============================================================================
# Batch
# =============================================================================


class TestBatchEndpoint:
    """Test POST /v1/batch-schedule."""

    @pytest.mark.unit
    def test_mixed_batch(self, client) -> None:
        response = client.post(
            "/v1/batch-schedule",
            json={
                "reviews": [
                    {"userId": "u1", "itemId": "a", "quality": 5},
                    {"userId": "u1", "itemId": "b", "quality": 11},
                    "garbage",
                    {"userId": "u1", "itemId": "d", "quality": 3},
                ]
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert [r["success"] for r in body["results"]] == [True, False, False, True]
        assert [r["index"] for r in body["results"]] == [0, 1, 2, 3]
        assert body["results"][0]["result"]["learningState"] == "LEARNING"
        assert body["results"][1]["errorCode"] == "RF-VAL-002"
        assert body["summary"] == {"total": 4, "successful": 2, "failed": 2}

    @pytest.mark.unit
    def test_oversized_batch(self, client) -> None:
        reviews = [{"userId": "u1", "itemId": f"s{i}", "quality": 3} for i in range(101)]
        response = client.post("/v1/batch-schedule", json={"reviews": reviews})

        assert response.status_code == 400
        assert "exceeds maximum 100" in response.json()["message"]


# =============================================================================
# Config
# =============================================================================


class TestConfigEndpoint:
    """Test GET/PUT/POST /v1/config."""

    @pytest.mark.unit
    def test_read(self, client) -> None:
        body = client.get("/v1/config").json()
        assert body["version"] == 0
        assert body["config"]["initial_ease"] == 2.5

    @pytest.mark.unit
    def test_replace(self, client) -> None:
        response = client.put("/v1/config", json={"max_interval": 3650, "LEARNING_STEPS": [2, 20]})

        assert response.status_code == 200
        assert response.json()["config"]["max_interval"] == 3650
        assert client.get("/v1/config").json()["config"]["learning_steps"] == [2, 20]

    @pytest.mark.unit
    def test_post_alias(self, client) -> None:
        response = client.post("/v1/config", json={"ease_penalty": 0.3})
        assert response.json()["version"] == 1

    @pytest.mark.unit
    def test_invalid_replace_rejected(self, client) -> None:
        response = client.put("/v1/config", json={"min_ease_factor": 4.0})

        assert response.status_code == 400
        assert response.json()["code"] == "RF-CFG-001"
        assert client.get("/v1/config").json()["config"]["min_ease_factor"] == 1.3

    @pytest.mark.unit
    def test_reset(self, client) -> None:
        """
        GIVEN a configuration changed through PUT
        WHEN DELETE /v1/config is called
        THEN the startup configuration is restored under a new version
        """
        client.put("/v1/config", json={"max_interval": 3650})

        response = client.delete("/v1/config")

        assert response.status_code == 200
        body = response.json()
        assert body["version"] == 2
        assert body["config"]["max_interval"] == 36500.0
        assert client.get("/v1/config").json()["config"]["max_interval"] == 36500.0


# =============================================================================
# Analytics
# =============================================================================


@pytest.mark.unit
def test_analytics(client, review_snapshot, now) -> None:
    response = client.post(
        "/v1/analytics", json={"cards": [review_snapshot], "now": now.isoformat()}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["totalCards"] == 1
    assert body["stateDistribution"]["REVIEW"] == 1
    assert body["expectedWorkload"]["1d"] == 1


@pytest.mark.unit
def test_analytics_review_history(client, review_snapshot, now) -> None:
    """
    GIVEN a card and two passing reviews on consecutive days
    WHEN analytics are requested for a three-day window
    THEN review metrics, trends and coaching output use camelCase names
    """
    reviews = [
        {"quality": 5, "reviewedAt": (now - timedelta(hours=1)).isoformat(), "responseTime": 2},
        {"quality": 4, "reviewedAt": (now - timedelta(hours=25)).isoformat(), "responseTime": 2},
    ]

    response = client.post(
        "/v1/analytics",
        json={"cards": [review_snapshot], "reviews": reviews, "days": 3, "now": now.isoformat()},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["userId"] == "user-1"
    assert body["period"]["days"] == 3
    assert body["totalReviews"] == 2
    assert body["averageQuality"] == 4.5
    assert body["currentStreak"] == 1
    assert body["longestStreak"] == 2
    assert [t["date"] for t in body["trends"]] == ["2024-02-28", "2024-02-29", "2024-03-01"]
    assert body["masteryProjection"] == {"estimatedDays": 0, "confidence": 0.0, "remainingCards": 0}
    assert {"type": "positive", "category": "quality"}.items() <= body["insights"][0].items()
    assert body["recommendations"][0]["priority"] == "high"


@pytest.mark.unit
def test_analytics_rejects_bad_review(client) -> None:
    response = client.post(
        "/v1/analytics", json={"reviews": [{"quality": 9, "reviewedAt": "2024-03-01T10:00:00Z"}]}
    )
    assert response.status_code == 422
