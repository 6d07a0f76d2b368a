"""Review Scheduling API Endpoints.

Endpoints:
- POST /v1/schedule - Schedule the next review of one card
- POST /v1/retention - Predict recall probability
- POST /v1/optimal-time - Align a review with preferred study hours
- POST /v1/batch-schedule - Schedule independent reviews in one call
- GET/PUT/POST /v1/config - Read or replace the scheduler configuration
- DELETE /v1/config - Restore the configuration loaded at startup
- POST /v1/analytics - Card portfolio and review-history statistics

The routes are thin: every operation is delegated to the ReviewService held
in ``app.state.review_service``. RecallForgeError subclasses raised here are
turned into JSON responses by the handlers registered in api.main.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Request

from recallforge.core.logging import get_logger
from recallforge.study.contracts import (
    AnalyticsRequest,
    BatchScheduleRequest,
    BatchScheduleResult,
    ConfigView,
    DeckReport,
    OptimalTimeRequest,
    OptimalTimeResult,
    RetentionEstimate,
    RetentionRequest,
    ScheduleRequest,
    ScheduleResult,
)
from recallforge.study.service import ReviewService

logger = get_logger(__name__)

router = APIRouter(prefix="/v1", tags=["review"])


def get_review_service(request: Request) -> ReviewService:
    """Service instance attached to the application at startup."""
    return request.app.state.review_service


@router.post("/schedule", response_model=ScheduleResult)
def schedule_review(
    payload: ScheduleRequest, service: ReviewService = Depends(get_review_service)
) -> ScheduleResult:
    """Schedule the next review after a graded answer."""
    return service.schedule_review(payload)


@router.post("/retention", response_model=RetentionEstimate)
def estimate_retention(
    payload: RetentionRequest, service: ReviewService = Depends(get_review_service)
) -> RetentionEstimate:
    """Predict the probability of recall at a target instant (default now)."""
    return service.estimate_retention(payload)


@router.post("/optimal-time", response_model=OptimalTimeResult)
def optimal_time(
    payload: OptimalTimeRequest, service: ReviewService = Depends(get_review_service)
) -> OptimalTimeResult:
    """Shift the scheduled review onto the nearest preferred hour."""
    return service.optimal_time(payload)


@router.post("/batch-schedule", response_model=BatchScheduleResult)
def batch_schedule(
    payload: BatchScheduleRequest, service: ReviewService = Depends(get_review_service)
) -> BatchScheduleResult:
    """Schedule many reviews; each entry succeeds or fails on its own."""
    return service.batch_schedule(payload.reviews)


@router.get("/config", response_model=ConfigView)
def get_config(service: ReviewService = Depends(get_review_service)) -> ConfigView:
    """Scheduler configuration currently in effect."""
    return service.get_config()


@router.api_route("/config", methods=["PUT", "POST"], response_model=ConfigView)
def replace_config(
    overrides: Dict[str, Any] = Body(...),
    service: ReviewService = Depends(get_review_service),
) -> ConfigView:
    """Merge overrides onto the live configuration and swap it in atomically."""
    view = service.replace_config(overrides)
    logger.info("Configuration updated via API", version=view.version)
    return view


@router.delete("/config", response_model=ConfigView)
def reset_config(service: ReviewService = Depends(get_review_service)) -> ConfigView:
    """Restore the configuration loaded at startup."""
    view = service.reset_config()
    logger.info("Configuration reset via API", version=view.version)
    return view


@router.post("/analytics", response_model=DeckReport)
def analytics(
    payload: AnalyticsRequest, service: ReviewService = Depends(get_review_service)
) -> DeckReport:
    """Portfolio and review-history statistics for a learner."""
    return service.analytics(payload)
