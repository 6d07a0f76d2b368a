"""RecallForge API Routes."""

from recallforge.api.routes.health import router as health_router
from recallforge.api.routes.review import router as review_router

__all__ = ["health_router", "review_router"]
