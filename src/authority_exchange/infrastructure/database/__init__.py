"""Database infrastructure - engine, ORM models, and repositories."""

from authority_exchange.infrastructure.database.engine import (
    close_db,
    get_async_session,
    init_db,
    unit_of_work,
)
from authority_exchange.infrastructure.database.orm_models import (
    AccountDispute,
    Base,
    CreditTransaction,
    Listing,
    Offer,
    Payment,
    PremiumRequest,
    Subscription,
    Transaction,
    TransactionTimeline,
    UnlockedListing,
    User,
)

__all__ = [
    "AccountDispute",
    "Base",
    "CreditTransaction",
    "Listing",
    "Offer",
    "Payment",
    "PremiumRequest",
    "Subscription",
    "Transaction",
    "TransactionTimeline",
    "UnlockedListing",
    "User",
    "get_async_session",
    "init_db",
    "close_db",
    "unit_of_work",
]
