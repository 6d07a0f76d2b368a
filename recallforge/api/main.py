"""
RecallForge API application.

Builds the FastAPI app: review and health routers, CORS, and the mapping of
RecallForgeError subclasses onto HTTP responses.

    ValidationError      -> 400
    ConfigurationError   -> 400
    other RecallForgeError -> 500

Error bodies carry ``{error, code, message, howToFix}``.
"""

from typing import Optional

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from recallforge import __version__
from recallforge.api.routes.health import router as health_router
from recallforge.api.routes.review import router as review_router
from recallforge.core.config import Config
from recallforge.core.exceptions import (
    ConfigurationError,
    RecallForgeError,
    ValidationError,
)
from recallforge.core.logging import get_logger
from recallforge.study.service import ReviewService

logger = get_logger(__name__)


def _status_for(exc: RecallForgeError) -> int:
    if isinstance(exc, (ValidationError, ConfigurationError)):
        return status.HTTP_400_BAD_REQUEST
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def _handle_recallforge_error(request: Request, exc: RecallForgeError) -> JSONResponse:
    code = _status_for(exc)
    if code >= 500:
        logger.error("Request failed", path=request.url.path, code=exc.error_code, error=str(exc))
    else:
        logger.warning("Request rejected", path=request.url.path, code=exc.error_code, error=str(exc))
    return JSONResponse(status_code=code, content=exc.to_dict())


def create_app(
    config: Optional[Config] = None, service: Optional[ReviewService] = None
) -> FastAPI:
    """
    Create the API application.

    Args:
        config: Application configuration; defaults to built-in values
        service: Pre-built service (tests inject their own)

    Returns:
        Configured FastAPI instance
    """
    config = config or (service.config if service else Config())
    app = FastAPI(
        title="RecallForge API",
        version=__version__,
        description="Forgetting-curve spaced repetition scheduler",
    )
    app.state.review_service = service or ReviewService(config)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RecallForgeError, _handle_recallforge_error)

    app.include_router(health_router)
    app.include_router(review_router)
    return app


def run_server(config: Config) -> None:
    """Serve the API with uvicorn using ``config.server``."""
    logger.info("Starting API server", host=config.server.host, port=config.server.port)
    uvicorn.run(
        create_app(config),
        host=config.server.host,
        port=config.server.port,
        log_level=config.logging.level.lower(),
    )
