"""
Noir Relay FastAPI Application

Main application factory and configuration.
"""

import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from fastapi.staticfiles import StaticFiles

from noirrelay import __version__
from noirrelay.config import settings

from .routes import health, relay

logger = structlog.get_logger()


# ══════════════════════════════════════════════════════════════
# Lifespan Management
# ══════════════════════════════════════════════════════════════


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    logger.info(
        "Starting Noir Relay",
        version=__version__,
        environment=settings.app_env,
        open_mode=settings.open_mode,
        upstream_configured=bool(settings.gemini_api_key),
    )

    if not settings.gemini_api_key:
        logger.error("GEMINI_API_KEY is missing; every session will be refused")

    yield

    logger.info("Shutting down Noir Relay")

    from noirrelay.relay.registry import registry

    closed = await registry.close_all()
    logger.info("Noir Relay shutdown complete", sessions_closed=closed)


# ══════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description="WebSocket relay between browser clients and a live generative-AI endpoint",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    # ──────────────────────────────────────────────────────────
    # Middleware
    # ──────────────────────────────────────────────────────────

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all requests with timing."""
        start = time.perf_counter()

        response = await call_next(request)

        duration = (time.perf_counter() - start) * 1000
        logger.info(
            "Request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round(duration, 2),
        )

        return response

    # ──────────────────────────────────────────────────────────
    # Routes
    # ──────────────────────────────────────────────────────────

    app.include_router(
        health.router,
        tags=["Health"],
    )

    # WebSocket relay on "/", ahead of the static mount
    app.include_router(
        relay.router,
        tags=["Relay"],
    )

    # Browser UI
    static_dir = Path(settings.static_dir)
    if static_dir.is_dir():
        app.mount("/", StaticFiles(directory=static_dir, html=True), name="static")
        logger.info("Serving static files", directory=str(static_dir))

    return app


# Create default app instance
app = create_app()
