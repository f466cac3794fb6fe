"""Domain exceptions for the Authority Exchange escrow core.

These exceptions are framework-agnostic and represent business rule violations.
They are caught and translated to HTTP responses by the API layer's middleware.
Every one of them is recoverable and caller-facing except OperationFailedError,
which means the unit of work was rolled back and the caller may retry.
"""

from __future__ import annotations

from collections.abc import Iterable


class ExchangeError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "EXCHANGE_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


class NotFoundError(ExchangeError):
    """Raised when a referenced entity does not exist."""

    def __init__(self, entity: str, entity_id: object) -> None:
        super().__init__(
            message=f"{entity} not found: {entity_id}",
            code="NOT_FOUND",
        )
        self.entity = entity
        self.entity_id = entity_id


class ForbiddenError(ExchangeError):
    """Raised when the actor has no rights over the entity."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="FORBIDDEN")


class BadRequestError(ExchangeError):
    """Raised when a request is malformed for the entity it targets."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="BAD_REQUEST")


# --- State Machine Errors ---


class InvalidTransitionError(BadRequestError):
    """Raised when an operation is illegal from the entity's current state.

    Example: approving a transaction that is still AWAITING_DEPOSIT.
    """

    def __init__(
        self,
        entity: str,
        current_state: str,
        attempted: str,
        expected: Iterable[str] = (),
    ) -> None:
        expected = sorted(str(s) for s in expected)
        message = f"Cannot {attempted} {entity} in status {current_state}"
        if expected:
            message += f"; expected one of: {', '.join(expected)}"
        super().__init__(message)
        self.code = "INVALID_TRANSITION"
        self.entity = entity
        self.current_state = current_state
        self.attempted = attempted
        self.expected = expected


# --- Ledger Errors ---


class InsufficientCreditsError(ExchangeError):
    """Raised when a debit exceeds the user's available credits."""

    def __init__(self, required: int, available: int) -> None:
        super().__init__(
            message=f"Insufficient credits: required {required}, available {available}",
            code="INSUFFICIENT_CREDITS",
        )
        self.required = required
        self.available = available


# --- Uniqueness Errors ---


class AlreadyExistsError(ExchangeError):
    """Raised when creating something that already exists."""

    def __init__(self, message: str, code: str = "ALREADY_EXISTS") -> None:
        super().__init__(message=message, code=code)


class DuplicateRequestError(AlreadyExistsError):
    """Raised when a live request for the same subject already exists."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="DUPLICATE_REQUEST")


class AlreadyUnlockedError(AlreadyExistsError):
    """Raised when a buyer already holds an unlock for the listing."""

    def __init__(self, listing_id: object) -> None:
        super().__init__(
            message=f"Listing already unlocked: {listing_id}",
            code="ALREADY_UNLOCKED",
        )
        self.listing_id = listing_id


# --- Policy Errors ---


class PlanNotEligibleError(ExchangeError):
    """Raised when the buyer's subscription plan may not use premium access."""

    def __init__(self, plan: str) -> None:
        super().__init__(
            message=f"Subscription plan {plan} is not eligible for premium access",
            code="PLAN_NOT_ELIGIBLE",
        )
        self.plan = plan


# --- Persistence Errors ---


class OperationFailedError(ExchangeError):
    """Raised when a unit of work failed in the persistence layer and was rolled back."""

    def __init__(self, operation: str) -> None:
        super().__init__(
            message=f"Operation failed, please retry: {operation}",
            code="OPERATION_FAILED",
        )
        self.operation = operation
