"""FastAPI application setup."""

import logging
import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from insight_atlas.api.dependencies import AppServices
from insight_atlas.api.response import error_response, rate_limit_headers
from insight_atlas.api.routes import health, insights, ws
from insight_atlas.services import (
    BookNotFoundError,
    JobNotFoundError,
    PersistenceError,
    RateLimitExceeded,
)

logger = logging.getLogger(__name__)

DEFAULT_CORS_ORIGINS = "http://localhost:5173,http://127.0.0.1:5173"


def create_app(services: Optional[AppServices] = None) -> FastAPI:
    """Build the application.

    Args:
        services: Pre-built service container. Built from the environment
            at startup when omitted.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler."""
        # Startup
        app.state.services = services or AppServices.build()
        await app.state.services.init()
        yield
        # Shutdown
        await app.state.services.shutdown()

    app = FastAPI(
        title="Insight Atlas API",
        description="Book insight generation with live progress",
        version="1.0.0",
        lifespan=lifespan,
    )

    # CORS middleware for frontend dev server
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", DEFAULT_CORS_ORIGINS).split(",") if o.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["RateLimit-Limit", "RateLimit-Remaining", "RateLimit-Reset", "Retry-After"],
    )

    register_exception_handlers(app)

    # Register routes
    app.include_router(health.router)
    app.include_router(insights.router, prefix="/api")
    app.include_router(ws.router)

    return app


def register_exception_handlers(app: FastAPI) -> None:
    """Map domain exceptions to the response envelope."""

    @app.exception_handler(BookNotFoundError)
    async def book_not_found_handler(request: Request, exc: BookNotFoundError) -> JSONResponse:
        """Handle book not found errors."""
        return JSONResponse(
            status_code=404,
            content=error_response("BOOK_NOT_FOUND", str(exc)),
        )

    @app.exception_handler(JobNotFoundError)
    async def job_not_found_handler(request: Request, exc: JobNotFoundError) -> JSONResponse:
        """Handle insight job not found errors."""
        return JSONResponse(
            status_code=404,
            content=error_response("JOB_NOT_FOUND", str(exc)),
        )

    @app.exception_handler(PersistenceError)
    async def persistence_error_handler(request: Request, exc: PersistenceError) -> JSONResponse:
        """Handle job store failures."""
        logger.error(f"Persistence error on {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=503,
            content=error_response("PERSISTENCE_ERROR", "Storage is not available. Please try again later."),
        )

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        """Handle admission denials."""
        return JSONResponse(
            status_code=429,
            content={
                "error": exc.error,
                "message": exc.message,
                "retryAfter": exc.retry_after,
            },
            headers=rate_limit_headers(exc.limit, 0, exc.retry_after, retry_after=exc.retry_after),
        )


app = create_app()
