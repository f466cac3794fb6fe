"""Repository classes for database access.

Repositories encapsulate all SQL queries and provide a clean interface
to the service layer. They accept an AsyncSession and never manage
their own transactions (that's the caller's responsibility, through
engine.unit_of_work).

Loads that precede a state transition go through `get_for_update`, which
takes a row lock (SELECT ... FOR UPDATE) and refreshes any copy already in
the identity map, so a transition is always checked against the current
persisted status.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Generic, TypeVar

from sqlalchemy import func, select

from authority_exchange.domain.enums import (
    LIVE_DISPUTE_STATUSES,
    LIVE_PREMIUM_REQUEST_STATUSES,
    TERMINAL_TRANSACTION_STATUSES,
    DisputeStatus,
    OfferStatus,
    PaymentStatus,
    SubscriptionStatus,
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

if TYPE_CHECKING:
    import uuid
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

ModelT = TypeVar("ModelT", bound=Base)

_LIVE_OFFER_STATUSES = (OfferStatus.PENDING.value, OfferStatus.COUNTERED.value)


class _EntityRepository(Generic[ModelT]):
    """Shared lookups for entities keyed by UUID."""

    model: type[ModelT]

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, entity: ModelT) -> ModelT:
        """Insert a new row."""
        self._session.add(entity)
        await self._session.flush()
        return entity

    async def get_by_id(self, entity_id: uuid.UUID) -> ModelT | None:
        """Fetch a row by its UUID."""
        result = await self._session.execute(
            select(self.model).where(self.model.id == entity_id)
        )
        return result.scalar_one_or_none()

    async def get_for_update(self, entity_id: uuid.UUID) -> ModelT | None:
        """Fetch a row by its UUID under a row lock, refreshing any cached copy."""
        result = await self._session.execute(
            select(self.model)
            .where(self.model.id == entity_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def flush(self) -> None:
        await self._session.flush()


class UserRepository(_EntityRepository[User]):
    """Data access for users."""

    model = User


class SubscriptionRepository(_EntityRepository[Subscription]):
    """Data access for subscriptions."""

    model = Subscription

    async def get_active_plan(self, user_id: uuid.UUID) -> str | None:
        """Plan of the user's newest active subscription, if any."""
        result = await self._session.execute(
            select(Subscription.plan)
            .where(
                Subscription.user_id == user_id,
                Subscription.status == SubscriptionStatus.ACTIVE.value,
            )
            .order_by(Subscription.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()


class ListingRepository(_EntityRepository[Listing]):
    """Data access for listings."""

    model = Listing


class OfferRepository(_EntityRepository[Offer]):
    """Data access for offers."""

    model = Offer

    async def find_live_by_buyer(
        self, listing_id: uuid.UUID, buyer_id: uuid.UUID
    ) -> Offer | None:
        """The buyer's non-terminal offer on a listing, if any."""
        result = await self._session.execute(
            select(Offer)
            .where(
                Offer.listing_id == listing_id,
                Offer.buyer_id == buyer_id,
                Offer.status.in_(_LIVE_OFFER_STATUSES),
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_live_siblings_for_update(
        self, listing_id: uuid.UUID, exclude_offer_id: uuid.UUID
    ) -> list[Offer]:
        """Lock every other non-terminal offer on the listing."""
        result = await self._session.execute(
            select(Offer)
            .where(
                Offer.listing_id == listing_id,
                Offer.id != exclude_offer_id,
                Offer.status.in_(_LIVE_OFFER_STATUSES),
            )
            .order_by(Offer.created_at.asc())
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())


class TransactionRepository(_EntityRepository[Transaction]):
    """Data access for escrow transactions."""

    model = Transaction

    async def get_live_for_listing(self, listing_id: uuid.UUID) -> Transaction | None:
        """The listing's non-terminal transaction, if any."""
        terminal = [s.value for s in TERMINAL_TRANSACTION_STATUSES]
        result = await self._session.execute(
            select(Transaction).where(
                Transaction.listing_id == listing_id,
                Transaction.status.not_in(terminal),
            )
        )
        return result.scalar_one_or_none()

    async def get_by_party(self, user_id: uuid.UUID) -> list[Transaction]:
        """Transactions where the user is buyer or seller, newest first."""
        result = await self._session.execute(
            select(Transaction)
            .where((Transaction.buyer_id == user_id) | (Transaction.seller_id == user_id))
            .order_by(Transaction.created_at.desc())
        )
        return list(result.scalars().all())


class PaymentRepository(_EntityRepository[Payment]):
    """Data access for payment attempts."""

    model = Payment

    async def get_by_transaction(self, transaction_id: uuid.UUID) -> list[Payment]:
        """All attempts for a transaction, oldest first."""
        result = await self._session.execute(
            select(Payment)
            .where(Payment.transaction_id == transaction_id)
            .order_by(Payment.created_at.asc())
        )
        return list(result.scalars().all())

    async def has_open_attempt(self, transaction_id: uuid.UUID, payment_type: str) -> bool:
        """Whether a pending or processing attempt of this type exists."""
        result = await self._session.execute(
            select(func.count())
            .select_from(Payment)
            .where(
                Payment.transaction_id == transaction_id,
                Payment.type == payment_type,
                Payment.status.in_(
                    (PaymentStatus.PENDING.value, PaymentStatus.PROCESSING.value)
                ),
            )
        )
        return result.scalar_one() > 0


class TimelineRepository:
    """Data access for the append-only transaction timeline."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record(
        self,
        transaction_id: uuid.UUID,
        status: str,
        title: str,
        description: str | None = None,
        actor_id: uuid.UUID | None = None,
        actor_role: str = "SYSTEM",
        metadata: dict | None = None,
        created_at: datetime | None = None,
    ) -> TransactionTimeline:
        """Append a new timeline entry. This is the ONLY write operation allowed."""
        entry = TransactionTimeline(
            transaction_id=transaction_id,
            status=str(status),
            title=title,
            description=description,
            actor_id=actor_id,
            actor_role=str(actor_role),
            metadata_json=metadata,
        )
        if created_at is not None:
            entry.created_at = created_at
        self._session.add(entry)
        await self._session.flush()
        return entry

    async def get_by_transaction(self, transaction_id: uuid.UUID) -> list[TransactionTimeline]:
        """Fetch all entries for a transaction in append order."""
        result = await self._session.execute(
            select(TransactionTimeline)
            .where(TransactionTimeline.transaction_id == transaction_id)
            .order_by(TransactionTimeline.id.asc())
        )
        return list(result.scalars().all())


class CreditTransactionRepository:
    """Data access for the append-only credit ledger."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def append(self, entry: CreditTransaction) -> CreditTransaction:
        """Append a ledger entry. This is the ONLY write operation allowed."""
        self._session.add(entry)
        await self._session.flush()
        return entry

    async def get_page(
        self, user_id: uuid.UUID, offset: int, limit: int
    ) -> list[CreditTransaction]:
        """Ledger entries for a user, newest first."""
        result = await self._session.execute(
            select(CreditTransaction)
            .where(CreditTransaction.user_id == user_id)
            .order_by(CreditTransaction.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def count_for_user(self, user_id: uuid.UUID) -> int:
        result = await self._session.execute(
            select(func.count())
            .select_from(CreditTransaction)
            .where(CreditTransaction.user_id == user_id)
        )
        return result.scalar_one()

    async def sum_for_user(self, user_id: uuid.UUID) -> int:
        """Sum of signed amounts; equals the user's available balance."""
        result = await self._session.execute(
            select(func.coalesce(func.sum(CreditTransaction.amount), 0)).where(
                CreditTransaction.user_id == user_id
            )
        )
        return int(result.scalar_one())


class UnlockRepository(_EntityRepository[UnlockedListing]):
    """Data access for unlocked listings."""

    model = UnlockedListing

    async def exists(self, user_id: uuid.UUID, listing_id: uuid.UUID) -> bool:
        result = await self._session.execute(
            select(func.count())
            .select_from(UnlockedListing)
            .where(
                UnlockedListing.user_id == user_id,
                UnlockedListing.listing_id == listing_id,
            )
        )
        return result.scalar_one() > 0

    async def get(self, user_id: uuid.UUID, listing_id: uuid.UUID) -> UnlockedListing | None:
        result = await self._session.execute(
            select(UnlockedListing).where(
                UnlockedListing.user_id == user_id,
                UnlockedListing.listing_id == listing_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_by_user(self, user_id: uuid.UUID) -> list[UnlockedListing]:
        """A user's unlocks, newest first."""
        result = await self._session.execute(
            select(UnlockedListing)
            .where(UnlockedListing.user_id == user_id)
            .order_by(UnlockedListing.created_at.desc())
        )
        return list(result.scalars().all())


class PremiumRequestRepository(_EntityRepository[PremiumRequest]):
    """Data access for premium access requests."""

    model = PremiumRequest

    async def find_live(
        self, buyer_id: uuid.UUID, listing_id: uuid.UUID
    ) -> PremiumRequest | None:
        """The pair's non-terminal request, if any."""
        live = [s.value for s in LIVE_PREMIUM_REQUEST_STATUSES]
        result = await self._session.execute(
            select(PremiumRequest).where(
                PremiumRequest.buyer_id == buyer_id,
                PremiumRequest.listing_id == listing_id,
                PremiumRequest.status.in_(live),
            )
        )
        return result.scalar_one_or_none()

    async def get_by_buyer(self, buyer_id: uuid.UUID) -> list[PremiumRequest]:
        result = await self._session.execute(
            select(PremiumRequest)
            .where(PremiumRequest.buyer_id == buyer_id)
            .order_by(PremiumRequest.created_at.desc())
        )
        return list(result.scalars().all())


class AccountDisputeRepository(_EntityRepository[AccountDispute]):
    """Data access for account disputes."""

    model = AccountDispute

    async def find_live_for_user(self, user_id: uuid.UUID) -> AccountDispute | None:
        """The user's non-terminal dispute, if any."""
        live = [s.value for s in LIVE_DISPUTE_STATUSES]
        result = await self._session.execute(
            select(AccountDispute).where(
                AccountDispute.user_id == user_id,
                AccountDispute.status.in_(live),
            )
        )
        return result.scalar_one_or_none()

    async def get_due_ids(self, now: datetime) -> list[uuid.UUID]:
        """IDs of submitted disputes whose auto-unblock deadline has passed."""
        result = await self._session.execute(
            select(AccountDispute.id)
            .where(
                AccountDispute.status == DisputeStatus.SUBMITTED.value,
                AccountDispute.auto_unblock_at <= now,
            )
            .order_by(AccountDispute.auto_unblock_at.asc())
        )
        return list(result.scalars().all())
