"""Schemas shared by every router."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Body of every non-2xx response produced by ErrorHandlerMiddleware."""

    error: str = Field(..., description="Machine-readable error code", examples=["NOT_FOUND"])
    message: str = Field(..., description="Human-readable explanation")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    database: str
    redis: str
    dispute_sweep: str = Field(..., examples=["running", "stopped", "disabled"])
    next_dispute_sweep_at: datetime | None = None
