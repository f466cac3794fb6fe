"""Offer Service - negotiation on a listing.

Owns the offer lifecycle (create, counter, accept counter, withdraw,
reject). Acceptance hands off to the EscrowService exactly once, which
accepts the offer and opens the transaction in the same unit of work.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from authority_exchange.domain.enums import ListingStatus, OfferStatus, UserRole
from authority_exchange.domain.exceptions import (
    BadRequestError,
    DuplicateRequestError,
    ForbiddenError,
    NotFoundError,
)
from authority_exchange.domain.ports import Clock, Notification, SystemClock
from authority_exchange.domain.pricing import to_money
from authority_exchange.domain.state_machine import OfferStateMachine, fire
from authority_exchange.infrastructure.database.engine import unit_of_work
from authority_exchange.infrastructure.database.orm_models import Offer
from authority_exchange.infrastructure.database.repositories import (
    ListingRepository,
    OfferRepository,
)
from authority_exchange.infrastructure.notifications import (
    LoggingNotificationSink,
    NotificationDispatcher,
)
from authority_exchange.logging_config import get_logger
from authority_exchange.services.escrow_service import EscrowService

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from authority_exchange.domain.actor import Actor
    from authority_exchange.domain.ports import NotificationSink
    from authority_exchange.domain.pricing import PricingPolicy
    from authority_exchange.infrastructure.database.orm_models import Transaction

logger = get_logger(__name__)


class OfferService:
    """Manages offers from creation until acceptance or a terminal refusal."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        clock: Clock | None = None,
        notifier: NotificationSink | None = None,
        pricing: PricingPolicy | None = None,
    ) -> None:
        self._session = session
        self._clock = clock or SystemClock()
        self._notifier = notifier or LoggingNotificationSink()
        self._dispatcher = NotificationDispatcher(self._notifier)
        self._pricing = pricing
        self._offer_repo = OfferRepository(session)
        self._listing_repo = ListingRepository(session)

    # ------------------------------------------------------------------
    # Buyer actions
    # ------------------------------------------------------------------

    async def create(
        self,
        actor: Actor,
        listing_id: uuid.UUID,
        amount: Decimal | None = None,
        message: str | None = None,
        is_buy_now: bool = False,
    ) -> Offer:
        """Place an offer. Buy-now offers carry the listing price."""
        if actor.role != UserRole.BUYER:
            raise ForbiddenError("Only buyers can make offers")

        async with unit_of_work(self._session, "offer.create", listing_id=str(listing_id)):
            listing = await self._listing_repo.get_by_id(listing_id)
            if listing is None:
                raise NotFoundError("Listing", listing_id)
            if listing.status != ListingStatus.ACTIVE:
                raise BadRequestError(f"Listing {listing_id} is not accepting offers")
            if listing.seller_id == actor.id:
                raise BadRequestError("You cannot make an offer on your own listing")
            if await self._offer_repo.find_live_by_buyer(listing.id, actor.id) is not None:
                raise DuplicateRequestError("You already have an open offer on this listing")

            if is_buy_now:
                amount = listing.price
            elif amount is None:
                raise BadRequestError("Offer amount is required")
            amount = to_money(amount)
            if amount <= 0:
                raise BadRequestError("Offer amount must be positive")

            offer = await self._offer_repo.add(
                Offer(
                    listing_id=listing.id,
                    buyer_id=actor.id,
                    seller_id=listing.seller_id,
                    amount=amount,
                    message=message,
                    is_buy_now=is_buy_now,
                    status=OfferStatus.PENDING.value,
                )
            )

        logger.info(
            "offer.created",
            offer_id=str(offer.id),
            listing_id=str(listing_id),
            amount=str(amount),
            buy_now=is_buy_now,
        )
        title = "Buy Now Request" if is_buy_now else "New Offer Received"
        await self._dispatcher.dispatch(
            [
                Notification(
                    user_id=offer.seller_id,
                    title=title,
                    message=f"You received an offer of ${amount} on your listing.",
                    link=f"/offers/{offer.id}",
                )
            ]
        )
        return offer

    async def accept_counter(self, actor: Actor, offer_id: uuid.UUID) -> Offer:
        """Buyer takes the seller's counter; the offer returns to PENDING at that amount."""
        async with unit_of_work(self._session, "offer.accept_counter", offer_id=str(offer_id)):
            offer = await self._lock_offer(offer_id)
            self._require_buyer(offer, actor)
            offer.status = fire(OfferStateMachine, offer.status, "accept_counter")
            offer.amount = offer.counter_amount
            offer.counter_amount = None
            offer.responded_at = self._clock.now()

        logger.info("offer.counter_accepted", offer_id=str(offer.id), amount=str(offer.amount))
        await self._dispatcher.dispatch(
            [
                Notification(
                    user_id=offer.seller_id,
                    title="Counter Offer Accepted",
                    message=f"The buyer accepted your counter of ${offer.amount}. "
                    "Accept the offer to open the transaction.",
                    link=f"/offers/{offer.id}",
                )
            ]
        )
        return offer

    async def withdraw(self, actor: Actor, offer_id: uuid.UUID) -> Offer:
        """Buyer withdraws a live offer."""
        async with unit_of_work(self._session, "offer.withdraw", offer_id=str(offer_id)):
            offer = await self._lock_offer(offer_id)
            self._require_buyer(offer, actor)
            offer.status = fire(OfferStateMachine, offer.status, "withdraw")
            offer.responded_at = self._clock.now()

        logger.info("offer.withdrawn", offer_id=str(offer.id))
        return offer

    # ------------------------------------------------------------------
    # Seller actions
    # ------------------------------------------------------------------

    async def counter(
        self,
        actor: Actor,
        offer_id: uuid.UUID,
        counter_amount: Decimal,
        message: str | None = None,
    ) -> Offer:
        """Seller proposes a different price."""
        counter_amount = to_money(counter_amount)
        if counter_amount <= 0:
            raise BadRequestError("Counter amount must be positive")

        async with unit_of_work(self._session, "offer.counter", offer_id=str(offer_id)):
            offer = await self._lock_offer(offer_id)
            if actor.id != offer.seller_id:
                raise ForbiddenError("Only the seller can counter this offer")
            if offer.is_buy_now:
                raise BadRequestError("Buy-now offers cannot be countered")
            offer.status = fire(OfferStateMachine, offer.status, "counter")
            offer.counter_amount = counter_amount
            offer.counter_message = message
            offer.responded_at = self._clock.now()

        logger.info(
            "offer.countered", offer_id=str(offer.id), counter_amount=str(counter_amount)
        )
        await self._dispatcher.dispatch(
            [
                Notification(
                    user_id=offer.buyer_id,
                    title="Counter Offer Received",
                    message=f"The seller countered your offer with ${counter_amount}.",
                    link=f"/offers/{offer.id}",
                )
            ]
        )
        return offer

    async def reject(
        self, actor: Actor, offer_id: uuid.UUID, reason: str | None = None
    ) -> Offer:
        """Seller (or admin) declines; the buyer may decline a counter."""
        async with unit_of_work(self._session, "offer.reject", offer_id=str(offer_id)):
            offer = await self._lock_offer(offer_id)
            buyer_declining_counter = (
                actor.id == offer.buyer_id and offer.status == OfferStatus.COUNTERED
            )
            if actor.id != offer.seller_id and not actor.is_admin and not buyer_declining_counter:
                raise ForbiddenError("You cannot reject this offer")
            offer.status = fire(OfferStateMachine, offer.status, "reject")
            offer.responded_at = self._clock.now()

        logger.info("offer.rejected", offer_id=str(offer.id), by=str(actor.id))
        recipient = offer.seller_id if actor.id == offer.buyer_id else offer.buyer_id
        await self._dispatcher.dispatch(
            [
                Notification(
                    user_id=recipient,
                    title="Offer Rejected",
                    message=reason or "The offer was rejected.",
                    link=f"/offers/{offer.id}",
                )
            ]
        )
        return offer

    async def accept(self, actor: Actor, offer_id: uuid.UUID) -> Transaction:
        """Accept a pending offer, opening its escrow transaction atomically."""
        escrow = EscrowService(
            self._session, clock=self._clock, notifier=self._notifier, pricing=self._pricing
        )
        return await escrow.create_from_offer(actor, offer_id)

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def get_offer(self, actor: Actor, offer_id: uuid.UUID) -> Offer:
        offer = await self._offer_repo.get_by_id(offer_id)
        if offer is None:
            raise NotFoundError("Offer", offer_id)
        if actor.id not in (offer.buyer_id, offer.seller_id) and not actor.is_admin:
            raise ForbiddenError("You cannot view this offer")
        return offer

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _lock_offer(self, offer_id: uuid.UUID) -> Offer:
        offer = await self._offer_repo.get_for_update(offer_id)
        if offer is None:
            raise NotFoundError("Offer", offer_id)
        return offer

    @staticmethod
    def _require_buyer(offer: Offer, actor: Actor) -> None:
        if actor.id != offer.buyer_id:
            raise ForbiddenError("Only the buyer can act on this offer")
