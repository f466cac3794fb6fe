"""Domain layer - pure business logic with zero framework dependencies."""

from authority_exchange.domain.enums import (
    OfferStatus,
    PaymentMethod,
    TransactionStatus,
)
from authority_exchange.domain.exceptions import (
    ExchangeError,
    InvalidTransitionError,
    NotFoundError,
)
from authority_exchange.domain.ports import (
    Clock,
    Notification,
    NotificationSink,
    SessionRevoker,
    SystemClock,
)
from authority_exchange.domain.pricing import PricingPolicy
from authority_exchange.domain.state_machine import (
    TransactionStateMachine,
    derive_approval_status,
    fire,
)

__all__ = [
    "OfferStatus",
    "PaymentMethod",
    "TransactionStatus",
    "ExchangeError",
    "InvalidTransitionError",
    "NotFoundError",
    "Clock",
    "Notification",
    "NotificationSink",
    "SessionRevoker",
    "SystemClock",
    "PricingPolicy",
    "TransactionStateMachine",
    "derive_approval_status",
    "fire",
]
