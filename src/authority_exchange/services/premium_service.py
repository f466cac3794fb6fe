"""Premium Access Service - credit-gated access to restricted listings.

Two paths lead to an unlock:
    - Fast path: the buyer holds a qualifying subscription plan. The request
      is created and completed in the same unit of work.
    - Slow path: the request waits in PENDING until an admin approves it
      (or cancels it, with no ledger effect).

Both paths complete through _grant_unlock(), which completes the request in
the same unit of work that records the unlock and debits the ledger.

Listings that are not restricted skip the request workflow: unlock_listing()
spends the credit directly and is idempotent per buyer and listing.

The buyer's row stays locked from the eligibility checks to the debit, so
two concurrent calls cannot both spend the same credit.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from authority_exchange.config import get_settings
from authority_exchange.domain.enums import PremiumRequestStatus, UserRole
from authority_exchange.domain.exceptions import (
    AlreadyUnlockedError,
    BadRequestError,
    DuplicateRequestError,
    ForbiddenError,
    InsufficientCreditsError,
    NotFoundError,
    PlanNotEligibleError,
)
from authority_exchange.domain.ports import Clock, Notification, SystemClock
from authority_exchange.domain.state_machine import PremiumRequestStateMachine, fire
from authority_exchange.infrastructure.database.engine import unit_of_work
from authority_exchange.infrastructure.database.orm_models import (
    PremiumRequest,
    UnlockedListing,
)
from authority_exchange.infrastructure.database.repositories import (
    ListingRepository,
    PremiumRequestRepository,
    SubscriptionRepository,
    UnlockRepository,
    UserRepository,
)
from authority_exchange.infrastructure.notifications import (
    LoggingNotificationSink,
    NotificationDispatcher,
)
from authority_exchange.logging_config import get_logger
from authority_exchange.services.credit_ledger import CreditLedger

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from authority_exchange.config import Settings
    from authority_exchange.domain.actor import Actor
    from authority_exchange.domain.ports import NotificationSink

logger = get_logger(__name__)

UNLOCK_REFERENCE_TYPE = "PREMIUM_REQUEST"
DIRECT_UNLOCK_REFERENCE_TYPE = "LISTING"


@dataclass(frozen=True)
class PremiumAccessPolicy:
    """Which plans skip manual approval, which are refused, and the unlock price."""

    fast_path_plans: frozenset[str]
    blocked_plans: frozenset[str]
    unlock_cost: int = 1

    @classmethod
    def from_settings(cls, settings: Settings) -> PremiumAccessPolicy:
        return cls(
            fast_path_plans=frozenset(settings.fast_path_plan_list),
            blocked_plans=frozenset(settings.blocked_plan_list),
            unlock_cost=settings.premium_unlock_cost,
        )


@dataclass(frozen=True)
class UnlockResult:
    unlock: UnlockedListing
    already_unlocked: bool


class PremiumAccessService:
    """Requests, grants and refusals of access to restricted listings."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        clock: Clock | None = None,
        notifier: NotificationSink | None = None,
        policy: PremiumAccessPolicy | None = None,
    ) -> None:
        self._session = session
        self._clock = clock or SystemClock()
        self._dispatcher = NotificationDispatcher(notifier or LoggingNotificationSink())
        self._policy = policy or PremiumAccessPolicy.from_settings(get_settings())
        self._ledger = CreditLedger(session)
        self._user_repo = UserRepository(session)
        self._listing_repo = ListingRepository(session)
        self._subscription_repo = SubscriptionRepository(session)
        self._unlock_repo = UnlockRepository(session)
        self._request_repo = PremiumRequestRepository(session)

    # ------------------------------------------------------------------
    # Buyer
    # ------------------------------------------------------------------

    async def request_access(
        self,
        actor: Actor,
        listing_id: uuid.UUID,
        message: str | None = None,
    ) -> PremiumRequest:
        """Ask for access to a restricted listing.

        Raises:
            PlanNotEligibleError: The buyer's plan is barred from this workflow.
            AlreadyUnlockedError: The buyer already holds an unlock.
            DuplicateRequestError: A live request for the pair already exists.
            InsufficientCreditsError: The buyer cannot pay for the unlock.
        """
        if actor.role != UserRole.BUYER:
            raise ForbiddenError("Only buyers can request premium access")

        cost = self._policy.unlock_cost
        async with unit_of_work(
            self._session, "premium.request", buyer_id=str(actor.id), listing_id=str(listing_id)
        ):
            buyer = await self._user_repo.get_for_update(actor.id)
            if buyer is None:
                raise NotFoundError("User", actor.id)
            listing = await self._listing_repo.get_by_id(listing_id)
            if listing is None:
                raise NotFoundError("Listing", listing_id)
            if not listing.is_premium:
                raise BadRequestError("This listing is not restricted; it can be unlocked directly")

            plan = await self._subscription_repo.get_active_plan(buyer.id)
            if plan is not None and plan in self._policy.blocked_plans:
                raise PlanNotEligibleError(plan)
            if await self._unlock_repo.exists(buyer.id, listing.id):
                raise AlreadyUnlockedError(listing.id)
            if await self._request_repo.find_live(buyer.id, listing.id) is not None:
                raise DuplicateRequestError("You already have a pending request for this listing")
            if buyer.available_credits < cost:
                raise InsufficientCreditsError(required=cost, available=buyer.available_credits)

            request = await self._request_repo.add(
                PremiumRequest(
                    buyer_id=buyer.id,
                    listing_id=listing.id,
                    message=message,
                    status=PremiumRequestStatus.PENDING.value,
                )
            )

            fast_path = plan is not None and plan in self._policy.fast_path_plans
            if fast_path:
                await self._grant_unlock(request, handled_by=None)

        logger.info(
            "premium.requested",
            request_id=str(request.id),
            buyer_id=str(actor.id),
            listing_id=str(listing_id),
            plan=plan,
            fast_path=fast_path,
        )
        if fast_path:
            notification = Notification(
                user_id=actor.id,
                title="Premium Access Granted",
                message=f"Your {plan} plan unlocked this listing. "
                f"{cost} credit(s) were used.",
                link=f"/listings/{listing_id}",
            )
        else:
            notification = Notification(
                user_id=actor.id,
                title="Premium Request Received",
                message="Our team will review your request and contact you shortly.",
                link=f"/listings/{listing_id}",
            )
        await self._dispatcher.dispatch([notification])
        return request

    async def unlock_listing(self, actor: Actor, listing_id: uuid.UUID) -> UnlockResult:
        """Spend credits to reveal an unrestricted listing.

        Unlocking a listing the buyer already holds returns the existing
        unlock and spends nothing.
        """
        if actor.role != UserRole.BUYER:
            raise ForbiddenError("Only buyers can unlock listings")

        async with unit_of_work(
            self._session, "premium.unlock", buyer_id=str(actor.id), listing_id=str(listing_id)
        ):
            buyer = await self._user_repo.get_for_update(actor.id)
            if buyer is None:
                raise NotFoundError("User", actor.id)
            listing = await self._listing_repo.get_by_id(listing_id)
            if listing is None:
                raise NotFoundError("Listing", listing_id)
            if listing.is_premium:
                raise BadRequestError("This listing is restricted; request premium access instead")

            existing = await self._unlock_repo.get(buyer.id, listing.id)
            if existing is not None:
                return UnlockResult(unlock=existing, already_unlocked=True)

            unlock = await self._record_unlock(
                buyer.id,
                listing.id,
                reason=f"Unlocked listing {listing.authority_number}",
                reference_type=DIRECT_UNLOCK_REFERENCE_TYPE,
                reference_id=listing.id,
            )

        logger.info(
            "premium.listing_unlocked",
            buyer_id=str(actor.id),
            listing_id=str(listing_id),
            credits_used=unlock.credits_used,
        )
        return UnlockResult(unlock=unlock, already_unlocked=False)

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    async def admin_approve(
        self, actor: Actor, request_id: uuid.UUID, notes: str | None = None
    ) -> PremiumRequest:
        """Grant a pending request.

        The buyer's plan and credits are checked again: either may have
        changed since the request was filed.

        Raises:
            PlanNotEligibleError: The buyer has since moved to a blocked plan.
            InsufficientCreditsError: The buyer's credits were spent meanwhile.
        """
        self._require_admin(actor)
        async with unit_of_work(self._session, "premium.approve", request_id=str(request_id)):
            request = await self._lock_request(request_id)
            # Buyer row before anything else, same order as request_access.
            await self._user_repo.get_for_update(request.buyer_id)
            plan = await self._subscription_repo.get_active_plan(request.buyer_id)
            if plan is not None and plan in self._policy.blocked_plans:
                raise PlanNotEligibleError(plan)
            if notes is not None:
                request.admin_notes = notes
            await self._grant_unlock(request, handled_by=actor.id)

        logger.info("premium.approved", request_id=str(request.id), admin=str(actor.id))
        await self._dispatcher.dispatch(
            [
                Notification(
                    user_id=request.buyer_id,
                    title="Premium Access Granted",
                    message="Your request was approved. The listing is now unlocked.",
                    link=f"/listings/{request.listing_id}",
                )
            ]
        )
        return request

    async def admin_reject(
        self, actor: Actor, request_id: uuid.UUID, notes: str | None = None
    ) -> PremiumRequest:
        """Cancel a request. No credits move."""
        self._require_admin(actor)
        async with unit_of_work(self._session, "premium.reject", request_id=str(request_id)):
            request = await self._lock_request(request_id)
            request.status = fire(PremiumRequestStateMachine, request.status, "cancel")
            request.handled_by = actor.id
            if notes is not None:
                request.admin_notes = notes

        logger.info("premium.rejected", request_id=str(request.id), admin=str(actor.id))
        await self._dispatcher.dispatch(
            [
                Notification(
                    user_id=request.buyer_id,
                    title="Premium Request Declined",
                    message=notes or "Your premium access request was declined.",
                    link=f"/listings/{request.listing_id}",
                )
            ]
        )
        return request

    async def mark_contacted(
        self, actor: Actor, request_id: uuid.UUID, notes: str | None = None
    ) -> PremiumRequest:
        return await self._bookkeep(actor, request_id, "mark_contacted", notes)

    async def mark_in_progress(
        self, actor: Actor, request_id: uuid.UUID, notes: str | None = None
    ) -> PremiumRequest:
        return await self._bookkeep(actor, request_id, "mark_in_progress", notes)

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def list_for_buyer(self, actor: Actor) -> list[PremiumRequest]:
        return await self._request_repo.get_by_buyer(actor.id)

    async def list_unlocked(self, actor: Actor) -> list[UnlockedListing]:
        return await self._unlock_repo.get_by_user(actor.id)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _grant_unlock(
        self, request: PremiumRequest, handled_by: uuid.UUID | None
    ) -> UnlockedListing:
        """Complete the request, record the unlock and debit the buyer.

        Runs inside the caller's unit of work; any failure rolls all three back.
        """
        new_status = fire(PremiumRequestStateMachine, request.status, "approve")
        if await self._unlock_repo.exists(request.buyer_id, request.listing_id):
            raise AlreadyUnlockedError(request.listing_id)

        unlock = await self._record_unlock(
            request.buyer_id,
            request.listing_id,
            reason="Premium listing unlock",
            reference_type=UNLOCK_REFERENCE_TYPE,
            reference_id=request.id,
        )

        request.status = new_status
        request.handled_by = handled_by
        request.completed_at = self._clock.now()
        return unlock

    async def _record_unlock(
        self,
        buyer_id: uuid.UUID,
        listing_id: uuid.UUID,
        *,
        reason: str,
        reference_type: str,
        reference_id: uuid.UUID,
    ) -> UnlockedListing:
        cost = self._policy.unlock_cost
        unlock = await self._unlock_repo.add(
            UnlockedListing(user_id=buyer_id, listing_id=listing_id, credits_used=cost)
        )
        await self._ledger.debit(
            buyer_id,
            cost,
            reason=reason,
            reference_type=reference_type,
            reference_id=reference_id,
        )
        return unlock

    async def _bookkeep(
        self, actor: Actor, request_id: uuid.UUID, event: str, notes: str | None
    ) -> PremiumRequest:
        self._require_admin(actor)
        async with unit_of_work(self._session, f"premium.{event}", request_id=str(request_id)):
            request = await self._lock_request(request_id)
            request.status = fire(PremiumRequestStateMachine, request.status, event)
            request.handled_by = actor.id
            if notes is not None:
                request.admin_notes = notes

        logger.info(
            "premium.status_changed", request_id=str(request.id), status=request.status
        )
        return request

    async def _lock_request(self, request_id: uuid.UUID) -> PremiumRequest:
        request = await self._request_repo.get_for_update(request_id)
        if request is None:
            raise NotFoundError("PremiumRequest", request_id)
        return request

    @staticmethod
    def _require_admin(actor: Actor) -> None:
        if not actor.is_admin:
            raise ForbiddenError("Admin access required")
