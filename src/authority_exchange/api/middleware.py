"""FastAPI middleware for request tracing, error handling, and CORS.

Middleware stack (applied bottom-up):
    1. RequestIDMiddleware - injects X-Request-ID into every request/response
    2. ErrorHandlerMiddleware - catches domain exceptions -> structured JSON errors
    3. CORSMiddleware - lets the marketplace frontend call the API
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

import structlog
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from authority_exchange.config import get_settings
from authority_exchange.domain.exceptions import (
    AlreadyExistsError,
    BadRequestError,
    ExchangeError,
    ForbiddenError,
    InsufficientCreditsError,
    InvalidTransitionError,
    NotFoundError,
    OperationFailedError,
    PlanNotEligibleError,
)

if TYPE_CHECKING:
    from fastapi import FastAPI, Request, Response

logger = structlog.get_logger(__name__)

# Most specific first; the first isinstance match wins.
_STATUS_BY_ERROR: tuple[tuple[type[ExchangeError], int], ...] = (
    (NotFoundError, 404),
    (PlanNotEligibleError, 403),
    (ForbiddenError, 403),
    (InvalidTransitionError, 400),
    (BadRequestError, 400),
    (InsufficientCreditsError, 402),
    (AlreadyExistsError, 409),
    (OperationFailedError, 503),
)


def status_for(exc: ExchangeError) -> int:
    """HTTP status code for a domain error."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 400


def _error_body(exc: ExchangeError) -> dict[str, str]:
    return {"error": exc.code, "message": exc.message}


# ---------------------------------------------------------------------------
# 1. Request ID Middleware
# ---------------------------------------------------------------------------
class RequestIDMiddleware(BaseHTTPMiddleware):
    """Inject a unique X-Request-ID into every request for log correlation."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        # Use client-provided ID or generate one
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))

        # Bind to structlog context for all log entries in this request
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


# ---------------------------------------------------------------------------
# 2. Error Handler Middleware
# ---------------------------------------------------------------------------
class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Catch domain exceptions and return structured JSON error responses."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except OperationFailedError as exc:
            # Already logged with full context by unit_of_work.
            return JSONResponse(status_code=503, content=_error_body(exc))
        except InvalidTransitionError as exc:
            logger.warning(
                "state_machine.invalid_transition",
                entity=exc.entity,
                current=exc.current_state,
                expected=exc.expected,
            )
            return JSONResponse(status_code=400, content=_error_body(exc))
        except ExchangeError as exc:
            status_code = status_for(exc)
            logger.warning("domain.error", code=exc.code, error=exc.message, status=status_code)
            return JSONResponse(status_code=status_code, content=_error_body(exc))
        except Exception as exc:
            logger.exception("unhandled.error", error=str(exc))
            return JSONResponse(
                status_code=500,
                content={
                    "error": "INTERNAL_ERROR",
                    "message": "An unexpected error occurred",
                },
            )


# ---------------------------------------------------------------------------
# Setup function
# ---------------------------------------------------------------------------
def setup_middleware(app: FastAPI) -> None:
    """Register all middleware on the FastAPI application.

    Order matters - middleware is applied bottom-up, so the last added
    middleware runs first.
    """
    # CORS (runs first)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[get_settings().frontend_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Error handling (runs second)
    app.add_middleware(ErrorHandlerMiddleware)

    # Request ID (runs last = outermost)
    app.add_middleware(RequestIDMiddleware)
