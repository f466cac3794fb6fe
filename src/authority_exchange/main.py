"""FastAPI application entry point for the Authority Exchange escrow core.

Lifecycle:
    1. Startup: Initialize logging, database, Redis, create tables (dev mode),
       start the dispute sweep scheduler.
    2. Running: Serve the REST API at /api/v1/* on a single Uvicorn process.
    3. Shutdown: Stop the scheduler, close database and Redis connections.

Run with:
    uvicorn authority_exchange.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from authority_exchange import __version__
from authority_exchange.config import get_settings
from authority_exchange.logging_config import get_logger, setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    settings = get_settings()

    # 1. Setup structured logging
    setup_logging(
        log_level=settings.app_log_level,
        json_logs=not settings.is_development,
    )
    logger = get_logger(__name__)
    logger.info(
        "app.starting",
        env=settings.app_env,
        debug=settings.app_debug,
    )

    # 2. Initialize database
    from authority_exchange.infrastructure.database.engine import close_db, init_db

    await init_db()

    # 3. Initialize Redis
    from authority_exchange.infrastructure.redis_client import close_redis, init_redis

    try:
        await init_redis()
    except Exception as exc:
        logger.warning("app.redis_unavailable", error=str(exc))

    # 4. Background jobs
    from authority_exchange.jobs.scheduler import shutdown_scheduler, start_scheduler

    if settings.scheduler_enabled:
        start_scheduler()

    logger.info("app.started", host=settings.app_host, port=settings.app_port)

    yield

    # Shutdown
    logger.info("app.shutting_down")
    shutdown_scheduler()
    await close_db()
    await close_redis()
    logger.info("app.stopped")


def create_app() -> FastAPI:
    """Application factory - creates and configures the FastAPI app."""
    settings = get_settings()

    app = FastAPI(
        title="Authority Exchange",
        description=(
            "Escrow transactions, offer negotiation and the unlock-credit ledger "
            "for the operating-authority marketplace."
        ),
        version=__version__,
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # --- Middleware ---
    from authority_exchange.api.middleware import setup_middleware

    setup_middleware(app)

    # --- REST API Routes ---
    from authority_exchange.api.routes.credits import router as credits_router
    from authority_exchange.api.routes.disputes import router as disputes_router
    from authority_exchange.api.routes.health import router as health_router
    from authority_exchange.api.routes.listings import router as listings_router
    from authority_exchange.api.routes.offers import router as offers_router
    from authority_exchange.api.routes.premium import router as premium_router
    from authority_exchange.api.routes.transactions import payments_router
    from authority_exchange.api.routes.transactions import router as transactions_router

    app.include_router(health_router)
    app.include_router(offers_router)
    app.include_router(transactions_router)
    app.include_router(payments_router)
    app.include_router(credits_router)
    app.include_router(premium_router)
    app.include_router(listings_router)
    app.include_router(disputes_router)

    return app


# The app instance used by Uvicorn
app = create_app()
