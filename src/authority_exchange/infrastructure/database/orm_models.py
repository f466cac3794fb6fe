"""SQLAlchemy 2.0 ORM models for the Authority Exchange escrow core.

Tables:
    1. users                 - Buyers, sellers and admins; owns the credit balance.
    2. subscriptions         - Subscription plans (gate the premium fast path).
    3. listings              - Sellable operating authorities.
    4. offers                - Bids against a listing.
    5. escrow_transactions   - The escrow record created from an accepted offer.
    6. payments              - One row per deposit / final payment attempt.
    7. transaction_timeline  - Append-only audit log of every escrow transition.
    8. credit_transactions   - Append-only credit ledger.
    9. unlocked_listings     - Restricted listings a buyer has paid to see.
   10. premium_requests      - Requests for access to restricted listings.
   11. account_disputes      - Account suspensions pending identity verification.

Design decisions:
    - UUIDs as primary keys for entities; autoincrement integers for the two
      append-only logs so their order is total.
    - Decimal for money (no floating point rounding errors).
    - Entities reference each other by foreign key only; there are no ORM
      relationships across the listing/offer/transaction/user cycle.
    - CHECK constraints on every status column, generated from the enums.
    - Partial unique indexes enforce the "at most one live X" invariants at
      the database level, so a race between two writers fails on commit.
    - version_id_col on every mutable aggregate: a lost update raises
      StaleDataError, which the unit of work surfaces as OperationFailed.
    - transaction_timeline and credit_transactions are append-only: mapper
      listeners reject UPDATE and DELETE.
"""

from __future__ import annotations

import enum
import uuid
from datetime import UTC, datetime
from decimal import Decimal  # noqa: TC003 - needed at runtime by SQLAlchemy Mapped[]

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    Uuid,
    event,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.exc import InvalidRequestError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from authority_exchange.domain.enums import (
    LIVE_DISPUTE_STATUSES,
    LIVE_PREMIUM_REQUEST_STATUSES,
    TERMINAL_TRANSACTION_STATUSES,
    CreditTransactionType,
    DisputeStatus,
    ListingStatus,
    OfferStatus,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
    PremiumRequestStatus,
    SubscriptionPlan,
    SubscriptionStatus,
    TransactionStatus,
    UserRole,
    UserStatus,
)

Money = Numeric(14, 2)
JSONDocument = JSON().with_variant(JSONB(), "postgresql")
LogId = BigInteger().with_variant(Integer(), "sqlite")


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime that always round-trips as UTC.

    SQLite hands back naive values; they are stored as UTC, so UTC is
    re-attached on the way out.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):  # noqa: ANN001, ANN201
        if value is not None:
            if value.tzinfo is None:
                raise ValueError(f"Naive datetime not allowed: {value!r}")
            value = value.astimezone(UTC)
        return value

    def process_result_value(self, value, dialect):  # noqa: ANN001, ANN201
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _values_sql(values) -> str:  # noqa: ANN001
    return ", ".join(f"'{v}'" for v in sorted(str(v) for v in values))


def _status_check(column: str, enum_cls: type[enum.Enum], name: str) -> CheckConstraint:
    """CHECK constraint limiting a column to the values of a StrEnum."""
    return CheckConstraint(f"{column} IN ({_values_sql(enum_cls)})", name=name)


def _partial_unique(name: str, *columns: str, where: str) -> Index:
    """Unique index over rows matching `where` (PostgreSQL and SQLite)."""
    return Index(
        name,
        *columns,
        unique=True,
        postgresql_where=text(where),
        sqlite_where=text(where),
    )


# ---------------------------------------------------------------------------
# Helper: auto-set updated_at on flush
# ---------------------------------------------------------------------------
def _set_updated_at(mapper, connection, target):  # noqa: ANN001
    """SQLAlchemy event listener that updates `updated_at` before flush."""
    if hasattr(target, "updated_at"):
        target.updated_at = _utcnow()


def _reject_mutation(mapper, connection, target):  # noqa: ANN001
    """Block UPDATE/DELETE on append-only tables."""
    raise InvalidRequestError(
        f"{mapper.local_table.name} is append-only; rows cannot be modified or deleted"
    )


# ---------------------------------------------------------------------------
# 1. users
# ---------------------------------------------------------------------------
class User(Base):
    """A marketplace account.

    The credit balance lives on this row (`total_credits - used_credits`);
    only CreditLedger writes these two columns.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(40), nullable=True, default=None)
    company_name: Mapped[str | None] = mapped_column(String(200), nullable=True, default=None)

    role: Mapped[str] = mapped_column(String(20), nullable=False, default=UserRole.BUYER.value)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=UserStatus.ACTIVE.value
    )

    # --- Credit balance ---
    total_credits: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    used_credits: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(timezone=True), nullable=False, default=_utcnow
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        _status_check("role", UserRole, "ck_user_valid_role"),
        _status_check("status", UserStatus, "ck_user_valid_status"),
        CheckConstraint(
            "used_credits >= 0 AND used_credits <= total_credits",
            name="ck_user_credit_bounds",
        ),
    )

    @property
    def available_credits(self) -> int:
        return self.total_credits - self.used_credits

    def __repr__(self) -> str:
        return f"<User id={self.id} role={self.role} status={self.status}>"


# ---------------------------------------------------------------------------
# 2. subscriptions
# ---------------------------------------------------------------------------
class Subscription(Base):
    """A user's subscription plan."""

    __tablename__ = "subscriptions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    plan: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SubscriptionStatus.ACTIVE.value
    )
    current_period_end: Mapped[datetime | None] = mapped_column(
        UTCDateTime(timezone=True), nullable=True, default=None
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        _status_check("plan", SubscriptionPlan, "ck_subscription_valid_plan"),
        _status_check("status", SubscriptionStatus, "ck_subscription_valid_status"),
        Index("idx_subscription_user", "user_id"),
    )


# ---------------------------------------------------------------------------
# 3. listings
# ---------------------------------------------------------------------------
class Listing(Base):
    """An operating authority offered for sale."""

    __tablename__ = "listings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    seller_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    authority_number: Mapped[str | None] = mapped_column(
        String(20), nullable=True, default=None, comment="Regulator-issued authority number"
    )
    price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ListingStatus.DRAFT.value
    )
    is_premium: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Restricted listing: details require an unlock or a qualifying plan",
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(timezone=True), nullable=False, default=_utcnow
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        _status_check("status", ListingStatus, "ck_listing_valid_status"),
        CheckConstraint("price > 0", name="ck_listing_positive_price"),
        Index("idx_listing_seller", "seller_id"),
        Index("idx_listing_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<Listing id={self.id} status={self.status} price={self.price}>"


# ---------------------------------------------------------------------------
# 4. offers
# ---------------------------------------------------------------------------
class Offer(Base):
    """A buyer's bid on a listing."""

    __tablename__ = "offers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    listing_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("listings.id"), nullable=False
    )
    buyer_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    seller_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id"),
        nullable=False,
        comment="Denormalized from the listing at creation",
    )

    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    counter_amount: Mapped[Decimal | None] = mapped_column(Money, nullable=True, default=None)
    message: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)
    counter_message: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)
    is_buy_now: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=OfferStatus.PENDING.value
    )
    responded_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(timezone=True), nullable=True, default=None
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(timezone=True), nullable=False, default=_utcnow
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        _status_check("status", OfferStatus, "ck_offer_valid_status"),
        CheckConstraint("amount > 0", name="ck_offer_positive_amount"),
        CheckConstraint(
            "counter_amount IS NULL OR counter_amount > 0",
            name="ck_offer_positive_counter",
        ),
        Index("idx_offer_listing_status", "listing_id", "status"),
        Index("idx_offer_buyer", "buyer_id"),
    )

    @property
    def agreed_price(self) -> Decimal:
        """Price both parties agreed on: the counter if one stands, else the bid."""
        return self.counter_amount if self.counter_amount is not None else self.amount

    def __repr__(self) -> str:
        return f"<Offer id={self.id} status={self.status} amount={self.amount}>"


# ---------------------------------------------------------------------------
# 5. escrow_transactions
# ---------------------------------------------------------------------------
class Transaction(Base):
    """The escrow record coordinating one sale.

    Status is only ever written with the result of the TransactionStateMachine.
    The four boolean flags are independent; the approval status is derived
    from buyer_approved/seller_approved.
    """

    __tablename__ = "escrow_transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    offer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("offers.id"), nullable=False, unique=True
    )
    listing_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("listings.id"), nullable=False
    )
    buyer_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    seller_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)

    # --- Financials ---
    agreed_price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    deposit_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    platform_fee: Mapped[Decimal] = mapped_column(Money, nullable=False)
    final_payment_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)

    # --- Status (state machine guarded) ---
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=TransactionStatus.AWAITING_DEPOSIT.value,
        comment="Current lifecycle state (guarded by TransactionStateMachine)",
    )
    status_before_dispute: Mapped[str | None] = mapped_column(
        String(20), nullable=True, default=None
    )

    # --- Flags ---
    buyer_accepted_terms: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    seller_accepted_terms: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    buyer_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    seller_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # --- Milestones ---
    buyer_accepted_terms_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(timezone=True), nullable=True, default=None
    )
    seller_accepted_terms_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(timezone=True), nullable=True, default=None
    )
    deposit_received_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(timezone=True), nullable=True, default=None
    )
    buyer_approved_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(timezone=True), nullable=True, default=None
    )
    seller_approved_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(timezone=True), nullable=True, default=None
    )
    admin_approved_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(timezone=True), nullable=True, default=None
    )
    admin_approved_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, nullable=True, default=None
    )
    final_payment_received_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(timezone=True), nullable=True, default=None
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(timezone=True), nullable=True, default=None
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(timezone=True), nullable=True, default=None
    )
    cancelled_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True, default=None)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)
    disputed_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(timezone=True), nullable=True, default=None
    )
    disputed_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True, default=None)
    dispute_reason: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(timezone=True), nullable=False, default=_utcnow
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        _status_check("status", TransactionStatus, "ck_transaction_valid_status"),
        CheckConstraint("agreed_price > 0", name="ck_transaction_positive_price"),
        CheckConstraint("deposit_amount >= 0", name="ck_transaction_deposit_non_negative"),
        _partial_unique(
            "uq_transaction_live_listing",
            "listing_id",
            where=f"status NOT IN ({_values_sql(TERMINAL_TRANSACTION_STATUSES)})",
        ),
        Index("idx_transaction_status", "status"),
        Index("idx_transaction_buyer", "buyer_id"),
        Index("idx_transaction_seller", "seller_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Transaction id={self.id} status={self.status} "
            f"price={self.agreed_price}>"
        )


# ---------------------------------------------------------------------------
# 6. payments
# ---------------------------------------------------------------------------
class Payment(Base):
    """One money movement attempt against a transaction."""

    __tablename__ = "payments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    transaction_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("escrow_transactions.id"), nullable=False
    )
    payer_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)

    type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    method: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentStatus.PENDING.value
    )
    reference: Mapped[str | None] = mapped_column(
        String(120),
        nullable=True,
        default=None,
        comment="Gateway or bank reference supplied by the payer",
    )
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)

    verified_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True, default=None)
    verified_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(timezone=True), nullable=True, default=None
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(timezone=True), nullable=False, default=_utcnow
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        _status_check("type", PaymentType, "ck_payment_valid_type"),
        _status_check("method", PaymentMethod, "ck_payment_valid_method"),
        _status_check("status", PaymentStatus, "ck_payment_valid_status"),
        CheckConstraint("amount > 0", name="ck_payment_positive_amount"),
        _partial_unique(
            "uq_payment_completed_per_type",
            "transaction_id",
            "type",
            where=f"status = '{PaymentStatus.COMPLETED.value}'",
        ),
        Index("idx_payment_transaction", "transaction_id"),
    )

    def __repr__(self) -> str:
        return f"<Payment id={self.id} type={self.type} status={self.status}>"


# ---------------------------------------------------------------------------
# 7. transaction_timeline (Append-Only Audit Log)
# ---------------------------------------------------------------------------
class TransactionTimeline(Base):
    """Immutable record of one escrow transition.

    This table is APPEND-ONLY. No UPDATE or DELETE operations are permitted
    at the application level.
    """

    __tablename__ = "transaction_timeline"

    id: Mapped[int] = mapped_column(LogId, primary_key=True, autoincrement=True)
    transaction_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("escrow_transactions.id"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, comment="Transaction status after this entry"
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)
    actor_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, nullable=True, default=None, comment="Null for system actions"
    )
    actor_role: Mapped[str] = mapped_column(String(20), nullable=False, default="SYSTEM")
    metadata_json: Mapped[dict | None] = mapped_column(
        "metadata", JSONDocument, nullable=True, default=None
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (Index("idx_timeline_transaction", "transaction_id", "id"),)

    def __repr__(self) -> str:
        return f"<TransactionTimeline id={self.id} status={self.status} title={self.title!r}>"


# ---------------------------------------------------------------------------
# 8. credit_transactions (Append-Only Ledger)
# ---------------------------------------------------------------------------
class CreditTransaction(Base):
    """Immutable credit ledger entry.

    `amount` is signed (negative for usage); `balance_after` is the user's
    available balance once this entry applied.
    """

    __tablename__ = "credit_transactions"

    id: Mapped[int] = mapped_column(LogId, primary_key=True, autoincrement=True)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(255), nullable=False)
    reference_type: Mapped[str | None] = mapped_column(String(40), nullable=True, default=None)
    reference_id: Mapped[str | None] = mapped_column(String(64), nullable=True, default=None)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        _status_check("type", CreditTransactionType, "ck_credit_valid_type"),
        CheckConstraint("amount <> 0", name="ck_credit_non_zero_amount"),
        CheckConstraint("balance_after >= 0", name="ck_credit_non_negative_balance"),
        Index("idx_credit_user", "user_id", "id"),
    )

    def __repr__(self) -> str:
        return (
            f"<CreditTransaction id={self.id} type={self.type} "
            f"amount={self.amount} balance={self.balance_after}>"
        )


# ---------------------------------------------------------------------------
# 9. unlocked_listings
# ---------------------------------------------------------------------------
class UnlockedListing(Base):
    """A restricted listing a buyer may see in full."""

    __tablename__ = "unlocked_listings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    listing_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("listings.id"), nullable=False
    )
    credits_used: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        UniqueConstraint("user_id", "listing_id", name="uq_unlocked_user_listing"),
    )


# ---------------------------------------------------------------------------
# 10. premium_requests
# ---------------------------------------------------------------------------
class PremiumRequest(Base):
    """A buyer's request for access to a restricted listing."""

    __tablename__ = "premium_requests"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    buyer_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    listing_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("listings.id"), nullable=False
    )
    message: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PremiumRequestStatus.PENDING.value
    )
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)
    handled_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True, default=None)
    completed_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(timezone=True), nullable=True, default=None
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(timezone=True), nullable=False, default=_utcnow
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        _status_check("status", PremiumRequestStatus, "ck_premium_valid_status"),
        _partial_unique(
            "uq_premium_live_request",
            "buyer_id",
            "listing_id",
            where=f"status IN ({_values_sql(LIVE_PREMIUM_REQUEST_STATUSES)})",
        ),
        Index("idx_premium_status", "status"),
    )


# ---------------------------------------------------------------------------
# 11. account_disputes
# ---------------------------------------------------------------------------
class AccountDispute(Base):
    """An account suspension awaiting identity verification."""

    __tablename__ = "account_disputes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)

    # --- Evidence ---
    cardholder_name: Mapped[str] = mapped_column(String(200), nullable=False)
    account_name: Mapped[str] = mapped_column(String(200), nullable=False)
    blocked_reason: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DisputeStatus.PENDING.value
    )

    # --- Submission ---
    explanation: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)
    contact_email: Mapped[str | None] = mapped_column(String(255), nullable=True, default=None)
    submitted_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(timezone=True), nullable=True, default=None
    )
    auto_unblock_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(timezone=True), nullable=True, default=None
    )

    # --- Resolution ---
    resolved_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(timezone=True), nullable=True, default=None
    )
    resolved_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, nullable=True, default=None, comment="Null when resolved by the sweep"
    )
    resolution_note: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(timezone=True), nullable=False, default=_utcnow
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        _status_check("status", DisputeStatus, "ck_dispute_valid_status"),
        _partial_unique(
            "uq_dispute_live_user",
            "user_id",
            where=f"status IN ({_values_sql(LIVE_DISPUTE_STATUSES)})",
        ),
        Index("idx_dispute_status_deadline", "status", "auto_unblock_at"),
    )

    def __repr__(self) -> str:
        return f"<AccountDispute id={self.id} user={self.user_id} status={self.status}>"


# ---------------------------------------------------------------------------
# Register listeners
# ---------------------------------------------------------------------------
for _model in (User, Listing, Offer, Transaction, Payment, PremiumRequest, AccountDispute):
    event.listen(_model, "before_update", _set_updated_at)

for _model in (TransactionTimeline, CreditTransaction):
    event.listen(_model, "before_update", _reject_mutation)
    event.listen(_model, "before_delete", _reject_mutation)
