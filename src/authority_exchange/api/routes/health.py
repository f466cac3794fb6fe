"""Health check endpoint.

Reports the stores the exchange cannot work without (PostgreSQL for the
ledgers and escrow rows, Redis for session revocation) and whether the
dispute sweep is scheduled. A submitted account dispute only unblocks on
time while the sweep runs, so a stopped sweep degrades the status too.
"""

from __future__ import annotations

from fastapi import APIRouter
from sqlalchemy import text

from authority_exchange import __version__
from authority_exchange.config import get_settings
from authority_exchange.jobs.scheduler import sweep_status
from authority_exchange.logging_config import get_logger
from authority_exchange.schemas.common import HealthResponse

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)

HEALTHY = "healthy"


async def _check_database() -> str:
    from authority_exchange.infrastructure.database.engine import _get_engine

    try:
        async with _get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as exc:
        logger.error("health.db_check_failed", error=str(exc))
        return f"unhealthy: {exc}"
    return HEALTHY


async def _check_redis() -> str:
    from authority_exchange.infrastructure.redis_client import get_redis

    try:
        await get_redis().ping()
    except Exception as exc:
        logger.error("health.redis_check_failed", error=str(exc))
        return f"unhealthy: {exc}"
    return HEALTHY


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns the status of the stores and the dispute sweep.",
)
async def health_check() -> HealthResponse:
    database = await _check_database()
    redis = await _check_redis()

    running, next_run = sweep_status()
    if not get_settings().scheduler_enabled:
        sweep = "disabled"
    else:
        sweep = "running" if running else "stopped"

    ok = database == HEALTHY and redis == HEALTHY and sweep != "stopped"
    return HealthResponse(
        status="ok" if ok else "degraded",
        version=__version__,
        database=database,
        redis=redis,
        dispute_sweep=sweep,
        next_dispute_sweep_at=next_run,
    )
