"""Domain enumerations for the Authority Exchange escrow core.

These enums define the canonical states and types used throughout the system.
They are framework-agnostic (no SQLAlchemy, no FastAPI imports). Legal moves
between the lifecycle states live in domain/state_machine.py, never here.
"""

import enum


class UserRole(enum.StrEnum):
    BUYER = "BUYER"
    SELLER = "SELLER"
    ADMIN = "ADMIN"


class UserStatus(enum.StrEnum):
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"


class ListingStatus(enum.StrEnum):
    DRAFT = "DRAFT"
    PENDING_REVIEW = "PENDING_REVIEW"
    ACTIVE = "ACTIVE"
    RESERVED = "RESERVED"
    SOLD = "SOLD"
    REJECTED = "REJECTED"


class OfferStatus(enum.StrEnum):
    """Lifecycle states of an offer. ACCEPTED, REJECTED and WITHDRAWN are terminal."""

    PENDING = "PENDING"
    COUNTERED = "COUNTERED"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    WITHDRAWN = "WITHDRAWN"


class TransactionStatus(enum.StrEnum):
    """Lifecycle states of an escrow transaction.

    State transitions are enforced by the TransactionStateMachine guard.
    See domain/state_machine.py for the transition table.
    """

    AWAITING_DEPOSIT = "AWAITING_DEPOSIT"
    DEPOSIT_RECEIVED = "DEPOSIT_RECEIVED"
    IN_REVIEW = "IN_REVIEW"
    BUYER_APPROVED = "BUYER_APPROVED"
    SELLER_APPROVED = "SELLER_APPROVED"
    BOTH_APPROVED = "BOTH_APPROVED"
    PAYMENT_PENDING = "PAYMENT_PENDING"
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    DISPUTED = "DISPUTED"


TERMINAL_TRANSACTION_STATUSES = frozenset(
    {TransactionStatus.COMPLETED, TransactionStatus.CANCELLED}
)


class PaymentType(enum.StrEnum):
    DEPOSIT = "DEPOSIT"
    FINAL_PAYMENT = "FINAL_PAYMENT"


class PaymentMethod(enum.StrEnum):
    """How a payment is settled.

    STRIPE settles through the payment gateway (webhook event); the others
    are settled by hand and need an admin to verify receipt.
    """

    STRIPE = "STRIPE"
    ZELLE = "ZELLE"
    WIRE = "WIRE"
    CHECK = "CHECK"

    @property
    def is_gateway_settled(self) -> bool:
        return self is PaymentMethod.STRIPE


class PaymentStatus(enum.StrEnum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class CreditTransactionType(enum.StrEnum):
    """Kinds of entries in the append-only credit ledger."""

    PURCHASE = "PURCHASE"
    USAGE = "USAGE"
    REFUND = "REFUND"
    BONUS = "BONUS"


class SubscriptionPlan(enum.StrEnum):
    STARTER = "STARTER"
    PREMIUM = "PREMIUM"
    ENTERPRISE = "ENTERPRISE"
    VIP_ACCESS = "VIP_ACCESS"


class SubscriptionStatus(enum.StrEnum):
    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"
    PAST_DUE = "PAST_DUE"


class PremiumRequestStatus(enum.StrEnum):
    PENDING = "PENDING"
    CONTACTED = "CONTACTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


LIVE_PREMIUM_REQUEST_STATUSES = frozenset(
    {
        PremiumRequestStatus.PENDING,
        PremiumRequestStatus.CONTACTED,
        PremiumRequestStatus.IN_PROGRESS,
    }
)


class DisputeStatus(enum.StrEnum):
    """Lifecycle states of an account dispute (payment identity mismatch)."""

    PENDING = "PENDING"
    SUBMITTED = "SUBMITTED"
    RESOLVED = "RESOLVED"
    REJECTED = "REJECTED"


LIVE_DISPUTE_STATUSES = frozenset({DisputeStatus.PENDING, DisputeStatus.SUBMITTED})


class DisputeResolution(enum.StrEnum):
    """How an admin settles a disputed escrow transaction."""

    RESUME = "RESUME"
    CANCEL = "CANCEL"
