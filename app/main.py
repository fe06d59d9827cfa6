"""
FastAPI application factory.

Creates and configures the FastAPI application instance.  The
:class:`ScoringService` is built once in the lifespan and shared through
``app.state``.
"""

import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.api.v1.router import api_router
from app.core.config import settings
from app.core.errors import PersistenceError
from app.core.logging import configure_logging, get_logger
from app.services.scoring_service import ScoringService

configure_logging()
logger = get_logger(__name__)

RETRY_AFTER_SECONDS = 5


def _default_service() -> ScoringService:
    from app.db.init_db import init_db
    from app.db.session import engine

    init_db(engine)
    return ScoringService.from_settings(engine, settings)


def create_app(service: Optional[ScoringService] = None) -> FastAPI:
    """Application factory; tests pass their own *service*."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        scoring = service or _default_service()
        app.state.scoring_service = scoring
        await scoring.start()
        logger.info("application_startup", version=app.version)
        try:
            yield
        finally:
            await scoring.stop()
            logger.info("application_shutdown")

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        description="Daily sleep and recovery scores from raw physiological samples.",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    @app.middleware("http")
    async def request_tracing_middleware(request: Request, call_next):
        """Bind a request id to the log context and echo it back."""
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
        )
        return response

    @app.exception_handler(PersistenceError)
    async def persistence_error_handler(request: Request, exc: PersistenceError):
        logger.error("request_persistence_failed", path=request.url.path, operation=exc.operation)
        return JSONResponse(
            status_code=503,
            content={"detail": str(exc), "retryable": exc.retryable},
            headers={"Retry-After": str(RETRY_AFTER_SECONDS)},
        )

    # Include API router
    app.include_router(api_router, prefix="/api/v1")

    @app.get("/")
    async def root():
        """Root endpoint - health check."""
        return {
            "message": "Sleep & Recovery Scores API",
            "version": settings.VERSION,
            "status": "healthy",
        }

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint for monitoring."""
        scoring: ScoringService = request.app.state.scoring_service
        return {
            "status": "healthy",
            "service": "scores-api",
            "version": settings.VERSION,
            "recalculation_running": scoring.status().running,
        }

    @app.get("/info")
    async def info():
        return {
            "project name": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "authors": settings.AUTHORS,
            "authors emails": settings.AUTHORS_EMAILS,
            "project url": settings.PROJECT_URL,
        }

    return app


app = create_app()
