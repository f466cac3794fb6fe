"""Escrow Service - the transaction engine.

This is the application layer that coordinates between:
    - Domain state machines (transition guards)
    - Repositories (data access)
    - Timeline (audit trail)
    - Notification dispatch (after commit, best-effort)

Every public write runs as one unit of work. The transaction row is loaded
under a row lock before its status is checked, so two concurrent calls
serialize and the second one observes the first one's effect. Lock order
is transaction, then payment, then listing.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

from authority_exchange.config import get_settings
from authority_exchange.domain.enums import (
    TERMINAL_TRANSACTION_STATUSES,
    DisputeResolution,
    ListingStatus,
    OfferStatus,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
    TransactionStatus,
    UserRole,
)
from authority_exchange.domain.exceptions import (
    AlreadyExistsError,
    BadRequestError,
    DuplicateRequestError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
)
from authority_exchange.domain.ports import Clock, Notification, SystemClock
from authority_exchange.domain.pricing import PricingPolicy, to_money
from authority_exchange.domain.state_machine import (
    OfferStateMachine,
    PaymentStateMachine,
    TransactionStateMachine,
    derive_approval_status,
    expected_sources,
    fire,
)
from authority_exchange.infrastructure.database.engine import unit_of_work
from authority_exchange.infrastructure.database.orm_models import (
    Listing,
    Offer,
    Payment,
    Transaction,
    User,
)
from authority_exchange.infrastructure.database.repositories import (
    ListingRepository,
    OfferRepository,
    PaymentRepository,
    TimelineRepository,
    TransactionRepository,
    UserRepository,
)
from authority_exchange.infrastructure.notifications import (
    LoggingNotificationSink,
    NotificationDispatcher,
)
from authority_exchange.logging_config import get_logger

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from authority_exchange.domain.actor import Actor
    from authority_exchange.domain.ports import NotificationSink
    from authority_exchange.infrastructure.database.orm_models import TransactionTimeline

logger = get_logger(__name__)

_ACTIVE_STATUSES = tuple(
    s.value for s in TransactionStatus if s not in TERMINAL_TRANSACTION_STATUSES
)


@dataclass(frozen=True)
class PartyContact:
    name: str
    email: str | None
    phone: str | None
    company_name: str | None


@dataclass(frozen=True)
class TransactionView:
    """Read projection of a transaction for one viewer.

    Contact details of the counterparty are None while the visibility rule
    withholds them.
    """

    transaction: Transaction
    viewer_role: str
    buyer: PartyContact
    seller: PartyContact
    buyer_contact_visible: bool
    seller_contact_visible: bool


class EscrowService:
    """Manages the escrow transaction lifecycle."""

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
        self._dispatcher = NotificationDispatcher(notifier or LoggingNotificationSink())
        self._pricing = pricing or PricingPolicy.from_settings(get_settings())
        self._tx_repo = TransactionRepository(session)
        self._offer_repo = OfferRepository(session)
        self._listing_repo = ListingRepository(session)
        self._payment_repo = PaymentRepository(session)
        self._user_repo = UserRepository(session)
        self._timeline_repo = TimelineRepository(session)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_from_offer(self, actor: Actor, offer_id: uuid.UUID) -> Transaction:
        """Accept an offer and open its escrow transaction in one atomic unit.

        Marks the offer ACCEPTED, creates the transaction in AWAITING_DEPOSIT,
        reserves the listing and rejects every other live offer on it.
        """
        outbox: list[Notification] = []
        async with unit_of_work(self._session, "escrow.create", offer_id=str(offer_id)):
            offer = await self._offer_repo.get_for_update(offer_id)
            if offer is None:
                raise NotFoundError("Offer", offer_id)
            if actor.id != offer.seller_id and not (actor.is_admin and offer.is_buy_now):
                raise ForbiddenError("Only the seller can accept this offer")

            new_offer_status = fire(OfferStateMachine, offer.status, "accept")
            listing = await self._lock_available_listing(offer.listing_id)

            offer.status = new_offer_status
            offer.responded_at = self._clock.now()
            tx = await self._open_transaction(
                actor, offer, listing, offer.agreed_price, deposit_override=None, outbox=outbox
            )

        outbox.insert(
            0,
            Notification(
                user_id=tx.buyer_id,
                title="Offer Accepted",
                message=f"Your offer of ${tx.agreed_price} was accepted. "
                f"Please submit the ${tx.deposit_amount} deposit.",
                link=_tx_link(tx),
            ),
        )
        await self._dispatcher.dispatch(outbox)
        return tx

    async def admin_create(
        self,
        actor: Actor,
        listing_id: uuid.UUID,
        buyer_id: uuid.UUID,
        agreed_price: Decimal,
        deposit_amount: Decimal | None = None,
        notes: str | None = None,
    ) -> Transaction:
        """Admin opens a transaction directly, skipping negotiation.

        A placeholder ACCEPTED offer is created so every transaction keeps
        exactly one originating offer.
        """
        self._require_admin(actor)
        agreed_price = to_money(agreed_price)
        if agreed_price <= 0:
            raise BadRequestError("Agreed price must be positive")
        if deposit_amount is not None:
            deposit_amount = to_money(deposit_amount)
            if not Decimal("0") < deposit_amount < agreed_price:
                raise BadRequestError("Deposit must be positive and less than the agreed price")

        outbox: list[Notification] = []
        async with unit_of_work(self._session, "escrow.admin_create", listing_id=str(listing_id)):
            listing = await self._lock_available_listing(listing_id)
            buyer = await self._user_repo.get_by_id(buyer_id)
            if buyer is None:
                raise NotFoundError("User", buyer_id)
            if buyer.id == listing.seller_id:
                raise BadRequestError("Buyer cannot be the same as seller")

            offer = await self._offer_repo.add(
                Offer(
                    listing_id=listing.id,
                    buyer_id=buyer.id,
                    seller_id=listing.seller_id,
                    amount=agreed_price,
                    message=notes or "Transaction created by admin",
                    status=fire(OfferStateMachine, OfferStatus.PENDING, "accept"),
                    responded_at=self._clock.now(),
                )
            )
            tx = await self._open_transaction(
                actor, offer, listing, agreed_price, deposit_override=deposit_amount, outbox=outbox
            )

        outbox.extend(
            self._notify_parties(
                tx,
                "Transaction Created",
                "An administrator opened an escrow transaction for this listing.",
            )
        )
        await self._dispatcher.dispatch(outbox)
        return tx

    # ------------------------------------------------------------------
    # Terms
    # ------------------------------------------------------------------

    async def accept_terms(self, actor: Actor, transaction_id: uuid.UUID) -> Transaction:
        """Buyer or seller accepts the transaction terms."""
        async with unit_of_work(
            self._session, "escrow.accept_terms", transaction_id=str(transaction_id)
        ):
            tx = await self._lock_transaction(transaction_id)
            role = self._party_role(tx, actor, allow_admin=False)
            if tx.status in TERMINAL_TRANSACTION_STATUSES:
                raise InvalidTransitionError(
                    "transaction", tx.status, "accept terms for", expected=_ACTIVE_STATUSES
                )

            now = self._clock.now()
            if role == UserRole.BUYER:
                if tx.buyer_accepted_terms:
                    raise BadRequestError("Terms already accepted")
                tx.buyer_accepted_terms = True
                tx.buyer_accepted_terms_at = now
            else:
                if tx.seller_accepted_terms:
                    raise BadRequestError("Terms already accepted")
                tx.seller_accepted_terms = True
                tx.seller_accepted_terms_at = now

            party = role.value.capitalize()
            await self._record(
                tx,
                actor,
                f"{party} Accepted Terms",
                f"{party} has accepted the transaction terms and conditions",
            )

        logger.info("escrow.terms_accepted", transaction_id=str(tx.id), party=role.value)
        return tx

    # ------------------------------------------------------------------
    # Deposit
    # ------------------------------------------------------------------

    async def submit_deposit(
        self,
        actor: Actor,
        transaction_id: uuid.UUID,
        method: PaymentMethod,
        reference: str | None = None,
    ) -> Payment:
        """Buyer submits the deposit. Gateway methods start PROCESSING, manual ones PENDING."""
        return await self._submit_payment(
            actor,
            transaction_id,
            PaymentType.DEPOSIT,
            PaymentMethod(method),
            reference,
            guard_event="deposit_verified",
        )

    async def verify_deposit(
        self, actor: Actor, transaction_id: uuid.UUID, payment_id: uuid.UUID
    ) -> Transaction:
        """Admin confirms a manually-settled deposit.

        Payment COMPLETED, Transaction DEPOSIT_RECEIVED.
        """
        return await self._verify_manual_payment(
            actor, transaction_id, payment_id, PaymentType.DEPOSIT
        )

    async def start_review(self, actor: Actor, transaction_id: uuid.UUID) -> Transaction:
        """Admin moves a funded transaction into review."""
        self._require_admin(actor)
        async with unit_of_work(
            self._session, "escrow.start_review", transaction_id=str(transaction_id)
        ):
            tx = await self._lock_transaction(transaction_id)
            tx.status = fire(TransactionStateMachine, tx.status, "start_review")
            await self._record(
                tx, actor, "In Review", "Transaction documents are under admin review"
            )

        logger.info("escrow.review_started", transaction_id=str(tx.id))
        return tx

    # ------------------------------------------------------------------
    # Approvals
    # ------------------------------------------------------------------

    async def approve(self, actor: Actor, transaction_id: uuid.UUID) -> Transaction:
        """Buyer or seller approves.

        The first mover moves the status to BUYER_APPROVED / SELLER_APPROVED,
        the second to BOTH_APPROVED. Approving again while the transaction
        still sits in an approval state is a no-op; anywhere else it is an
        invalid transition.
        """
        outbox: list[Notification] = []
        async with unit_of_work(
            self._session, "escrow.approve", transaction_id=str(transaction_id)
        ):
            tx = await self._lock_transaction(transaction_id)
            role = self._party_role(tx, actor, allow_admin=False)
            if role == UserRole.BUYER:
                already, own_status = tx.buyer_approved, TransactionStatus.BUYER_APPROVED
            else:
                already, own_status = tx.seller_approved, TransactionStatus.SELLER_APPROVED
            if already and tx.status in (own_status, TransactionStatus.BOTH_APPROVED):
                logger.info(
                    "escrow.approval_repeated", transaction_id=str(tx.id), party=role.value
                )
                return tx

            event = "buyer_approves" if role == UserRole.BUYER else "seller_approves"
            fire(TransactionStateMachine, tx.status, event)

            now = self._clock.now()
            if role == UserRole.BUYER:
                tx.buyer_approved = True
                tx.buyer_approved_at = now
            else:
                tx.seller_approved = True
                tx.seller_approved_at = now
            tx.status = derive_approval_status(tx.buyer_approved, tx.seller_approved)

            party = role.value.capitalize()
            await self._record(
                tx, actor, f"{party} Approved", f"{party} has approved the transaction"
            )

            if tx.status == TransactionStatus.BOTH_APPROVED:
                outbox.extend(
                    self._notify_parties(
                        tx,
                        "Both Parties Approved",
                        "Buyer and seller have approved. Awaiting admin review.",
                    )
                )
            else:
                other = tx.seller_id if role == UserRole.BUYER else tx.buyer_id
                outbox.append(
                    Notification(
                        user_id=other,
                        title=f"{party} Approved",
                        message=f"The {role.value.lower()} approved the transaction. "
                        "Your approval is needed.",
                        link=_tx_link(tx),
                    )
                )

        logger.info(
            "escrow.approved", transaction_id=str(tx.id), party=role.value, status=tx.status
        )
        await self._dispatcher.dispatch(outbox)
        return tx

    async def admin_approve(self, actor: Actor, transaction_id: uuid.UUID) -> Transaction:
        """Admin signs off a bilaterally approved transaction: BOTH_APPROVED -> PAYMENT_PENDING."""
        self._require_admin(actor)
        async with unit_of_work(
            self._session, "escrow.admin_approve", transaction_id=str(transaction_id)
        ):
            tx = await self._lock_transaction(transaction_id)
            tx.status = fire(TransactionStateMachine, tx.status, "admin_approves")
            tx.admin_approved_at = self._clock.now()
            tx.admin_approved_by = actor.id
            await self._record(
                tx,
                actor,
                "Admin Approved - Payment Pending",
                "Admin has approved. Awaiting final payment from buyer.",
            )

        logger.info("escrow.admin_approved", transaction_id=str(tx.id), admin=str(actor.id))
        await self._dispatcher.dispatch(
            self._notify_parties(
                tx,
                "Ready for Final Payment",
                f"Transaction approved. Buyer can now submit the final payment of "
                f"${tx.final_payment_amount}.",
            )
        )
        return tx

    # ------------------------------------------------------------------
    # Final payment
    # ------------------------------------------------------------------

    async def submit_final_payment(
        self,
        actor: Actor,
        transaction_id: uuid.UUID,
        method: PaymentMethod,
        reference: str | None = None,
    ) -> Payment:
        """Buyer submits the balance (agreed price minus deposit)."""
        return await self._submit_payment(
            actor,
            transaction_id,
            PaymentType.FINAL_PAYMENT,
            PaymentMethod(method),
            reference,
            guard_event="final_payment_verified",
        )

    async def verify_final_payment(
        self, actor: Actor, transaction_id: uuid.UUID, payment_id: uuid.UUID
    ) -> Transaction:
        """Admin confirms the final payment.

        Payment COMPLETED, Transaction COMPLETED, Listing SOLD.
        """
        return await self._verify_manual_payment(
            actor, transaction_id, payment_id, PaymentType.FINAL_PAYMENT
        )

    # ------------------------------------------------------------------
    # Payment collaborator events
    # ------------------------------------------------------------------

    async def record_gateway_event(
        self,
        payment_id: uuid.UUID,
        succeeded: bool,
        failure_reason: str | None = None,
    ) -> Payment:
        """Apply a settle/fail event from the payment gateway.

        Success performs the same atomic unit as manual verification;
        failure marks the attempt FAILED so the buyer may retry.
        """
        attempt = await self._payment_repo.get_by_id(payment_id)
        if attempt is None:
            raise NotFoundError("Payment", payment_id)
        if not PaymentMethod(attempt.method).is_gateway_settled:
            raise BadRequestError(f"Payment {payment_id} is settled manually, not by the gateway")

        outbox: list[Notification] = []
        async with unit_of_work(self._session, "escrow.gateway_event", payment_id=str(payment_id)):
            tx = await self._lock_transaction(attempt.transaction_id)
            payment = await self._lock_payment(tx, payment_id)
            if succeeded:
                outbox.extend(await self._settle(tx, payment, actor=None))
            else:
                outbox.extend(
                    await self._fail(tx, payment, failure_reason or "Declined by gateway", None)
                )

        await self._dispatcher.dispatch(outbox)
        return payment

    async def fail_payment(
        self, actor: Actor, payment_id: uuid.UUID, reason: str
    ) -> Payment:
        """Admin rejects a manually-settled attempt (e.g. a wire that never arrived)."""
        self._require_admin(actor)
        attempt = await self._payment_repo.get_by_id(payment_id)
        if attempt is None:
            raise NotFoundError("Payment", payment_id)
        if PaymentMethod(attempt.method).is_gateway_settled:
            raise BadRequestError(f"Payment {payment_id} is settled by the payment gateway")

        async with unit_of_work(self._session, "escrow.fail_payment", payment_id=str(payment_id)):
            tx = await self._lock_transaction(attempt.transaction_id)
            payment = await self._lock_payment(tx, payment_id)
            outbox = await self._fail(tx, payment, reason, actor)

        await self._dispatcher.dispatch(outbox)
        return payment

    # ------------------------------------------------------------------
    # Cancellation & disputes
    # ------------------------------------------------------------------

    async def cancel(self, actor: Actor, transaction_id: uuid.UUID, reason: str) -> Transaction:
        """Either party or an admin cancels; the listing goes back to ACTIVE.

        Refunds are the payment collaborator's concern and are not issued here.
        """
        async with unit_of_work(
            self._session, "escrow.cancel", transaction_id=str(transaction_id)
        ):
            tx = await self._lock_transaction(transaction_id)
            self._party_role(tx, actor, allow_admin=True)
            await self._apply_cancel(tx, actor, reason)

        logger.info("escrow.cancelled", transaction_id=str(tx.id), by=str(actor.id))
        await self._dispatcher.dispatch(
            self._notify_parties(tx, "Transaction Cancelled", reason)
        )
        return tx

    async def open_dispute(
        self, actor: Actor, transaction_id: uuid.UUID, reason: str
    ) -> Transaction:
        """Either party freezes the transaction pending admin resolution."""
        async with unit_of_work(
            self._session, "escrow.open_dispute", transaction_id=str(transaction_id)
        ):
            tx = await self._lock_transaction(transaction_id)
            self._party_role(tx, actor, allow_admin=False)
            previous = tx.status
            tx.status = fire(TransactionStateMachine, tx.status, "open_dispute")
            tx.status_before_dispute = previous
            tx.disputed_at = self._clock.now()
            tx.disputed_by = actor.id
            tx.dispute_reason = reason
            await self._record(
                tx, actor, "Dispute Opened", reason, metadata={"previous_status": previous}
            )

        logger.info("escrow.dispute_opened", transaction_id=str(tx.id), by=str(actor.id))
        await self._dispatcher.dispatch(
            self._notify_parties(tx, "Dispute Opened", f"A dispute was opened: {reason}")
        )
        return tx

    async def resolve_dispute(
        self,
        actor: Actor,
        transaction_id: uuid.UUID,
        resolution: DisputeResolution,
        note: str | None = None,
    ) -> Transaction:
        """Admin settles a dispute by resuming the prior status or cancelling."""
        self._require_admin(actor)
        resolution = DisputeResolution(resolution)
        async with unit_of_work(
            self._session, "escrow.resolve_dispute", transaction_id=str(transaction_id)
        ):
            tx = await self._lock_transaction(transaction_id)
            if resolution == DisputeResolution.CANCEL:
                if tx.status != TransactionStatus.DISPUTED:
                    raise InvalidTransitionError(
                        "transaction",
                        tx.status,
                        "resolve dispute on",
                        expected=[TransactionStatus.DISPUTED],
                    )
                await self._apply_cancel(tx, actor, note or "Cancelled on dispute resolution")
                message = "The dispute was resolved by cancelling the transaction."
            else:
                tx.status = fire(
                    TransactionStateMachine,
                    tx.status,
                    "resume",
                    resume_to=tx.status_before_dispute,
                )
                tx.status_before_dispute = None
                await self._record(
                    tx,
                    actor,
                    "Dispute Resolved",
                    note or f"Transaction resumed at {tx.status}",
                )
                message = f"The dispute was resolved. The transaction resumed at {tx.status}."

        logger.info(
            "escrow.dispute_resolved",
            transaction_id=str(tx.id),
            resolution=resolution.value,
            status=tx.status,
        )
        await self._dispatcher.dispatch(self._notify_parties(tx, "Dispute Resolved", message))
        return tx

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def get_transaction(self, actor: Actor, transaction_id: uuid.UUID) -> Transaction:
        """Get a transaction the actor takes part in (admins see all)."""
        tx = await self._get_transaction_or_raise(transaction_id)
        self._party_role(tx, actor, allow_admin=True)
        return tx

    async def list_mine(self, actor: Actor) -> list[Transaction]:
        """Transactions the actor buys or sells in, newest first."""
        return await self._tx_repo.get_by_party(actor.id)

    async def view(self, actor: Actor, transaction_id: uuid.UUID) -> TransactionView:
        """Transaction projection with the contact-visibility rule applied.

        Seller contact is withheld from the buyer until the final payment is
        received; buyer contact is withheld from the seller until the deposit
        is received. Admins see both.
        """
        tx = await self.get_transaction(actor, transaction_id)
        viewer_role = self._party_role(tx, actor, allow_admin=True)

        seller_visible = viewer_role in (UserRole.SELLER, UserRole.ADMIN) or (
            tx.final_payment_received_at is not None
        )
        buyer_visible = viewer_role in (UserRole.BUYER, UserRole.ADMIN) or (
            tx.deposit_received_at is not None
        )

        buyer = await self._user_repo.get_by_id(tx.buyer_id)
        seller = await self._user_repo.get_by_id(tx.seller_id)
        return TransactionView(
            transaction=tx,
            viewer_role=viewer_role.value,
            buyer=_contact(buyer, visible=buyer_visible),
            seller=_contact(seller, visible=seller_visible),
            buyer_contact_visible=buyer_visible,
            seller_contact_visible=seller_visible,
        )

    async def timeline(
        self, actor: Actor, transaction_id: uuid.UUID
    ) -> list[TransactionTimeline]:
        """Audit trail in append order."""
        await self.get_transaction(actor, transaction_id)
        return await self._timeline_repo.get_by_transaction(transaction_id)

    async def payments(self, actor: Actor, transaction_id: uuid.UUID) -> list[Payment]:
        await self.get_transaction(actor, transaction_id)
        return await self._payment_repo.get_by_transaction(transaction_id)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _open_transaction(
        self,
        actor: Actor,
        offer: Offer,
        listing: Listing,
        price: Decimal,
        deposit_override: Decimal | None,
        outbox: list[Notification],
    ) -> Transaction:
        """Create the transaction, reserve the listing and reject sibling offers."""
        price = to_money(price)
        deposit = (
            deposit_override if deposit_override is not None else self._pricing.deposit_for(price)
        )
        final_payment = self._pricing.final_payment_for(price, deposit)
        # A zero balance could never be paid: payments must be positive.
        if final_payment <= 0:
            raise BadRequestError(
                f"A price of ${price} leaves nothing due after the ${deposit} deposit; "
                f"the price must exceed the deposit"
            )
        tx = await self._tx_repo.add(
            Transaction(
                offer_id=offer.id,
                listing_id=listing.id,
                buyer_id=offer.buyer_id,
                seller_id=listing.seller_id,
                agreed_price=price,
                deposit_amount=deposit,
                platform_fee=self._pricing.fee_for(price),
                final_payment_amount=final_payment,
                status=TransactionStatus.AWAITING_DEPOSIT.value,
            )
        )

        listing.status = ListingStatus.RESERVED.value

        now = self._clock.now()
        siblings = await self._offer_repo.get_live_siblings_for_update(listing.id, offer.id)
        for sibling in siblings:
            sibling.status = fire(OfferStateMachine, sibling.status, "reject")
            sibling.responded_at = now
            outbox.append(
                Notification(
                    user_id=sibling.buyer_id,
                    title="Offer Declined",
                    message="The listing you bid on has accepted another offer.",
                    link=f"/listings/{listing.id}",
                )
            )

        await self._record(
            tx,
            actor,
            "Transaction Created",
            f"Offer accepted at ${price}. Deposit of ${deposit} is due.",
            metadata={"offer_id": str(offer.id), "rejected_offers": len(siblings)},
        )

        logger.info(
            "escrow.created",
            transaction_id=str(tx.id),
            offer_id=str(offer.id),
            listing_id=str(listing.id),
            agreed_price=str(price),
            deposit=str(deposit),
            rejected_offers=len(siblings),
        )
        return tx

    async def _submit_payment(
        self,
        actor: Actor,
        transaction_id: uuid.UUID,
        payment_type: PaymentType,
        method: PaymentMethod,
        reference: str | None,
        guard_event: str,
    ) -> Payment:
        label = "deposit" if payment_type == PaymentType.DEPOSIT else "final payment"
        async with unit_of_work(
            self._session,
            f"escrow.submit_{payment_type.value.lower()}",
            transaction_id=str(transaction_id),
        ):
            tx = await self._lock_transaction(transaction_id)
            if actor.id != tx.buyer_id:
                raise ForbiddenError(f"Only the buyer can submit the {label}")

            allowed = expected_sources(TransactionStateMachine, guard_event)
            if tx.status not in allowed:
                raise InvalidTransitionError(
                    "transaction", tx.status, f"submit {label} for", expected=allowed
                )
            if await self._payment_repo.has_open_attempt(tx.id, payment_type.value):
                raise DuplicateRequestError(f"A {label} is already awaiting settlement")

            status = PaymentStatus.PENDING.value
            if method.is_gateway_settled:
                status = fire(PaymentStateMachine, status, "hand_to_gateway")

            amount = (
                tx.deposit_amount
                if payment_type == PaymentType.DEPOSIT
                else tx.final_payment_amount
            )
            payment = await self._payment_repo.add(
                Payment(
                    transaction_id=tx.id,
                    payer_id=actor.id,
                    type=payment_type.value,
                    amount=amount,
                    method=method.value,
                    status=status,
                    reference=reference,
                )
            )

            if method.is_gateway_settled:
                description = (
                    f"Buyer started a {method.value} payment. Awaiting gateway confirmation."
                )
            else:
                description = (
                    f"Buyer submitted {method.value} payment. Awaiting admin verification."
                )
            await self._record(
                tx,
                actor,
                f"{label.capitalize()} Submitted",
                description,
                metadata={"payment_id": str(payment.id), "amount": str(amount)},
            )

        logger.info(
            f"escrow.{payment_type.value.lower()}_submitted",
            transaction_id=str(tx.id),
            payment_id=str(payment.id),
            method=method.value,
            amount=str(amount),
        )
        return payment

    async def _verify_manual_payment(
        self,
        actor: Actor,
        transaction_id: uuid.UUID,
        payment_id: uuid.UUID,
        payment_type: PaymentType,
    ) -> Transaction:
        self._require_admin(actor)
        async with unit_of_work(
            self._session,
            f"escrow.verify_{payment_type.value.lower()}",
            transaction_id=str(transaction_id),
            payment_id=str(payment_id),
        ):
            tx = await self._lock_transaction(transaction_id)
            payment = await self._lock_payment(tx, payment_id)
            if payment.type != payment_type.value:
                raise BadRequestError(
                    f"Payment {payment_id} is a {payment.type}, not a {payment_type}"
                )
            if PaymentMethod(payment.method).is_gateway_settled:
                raise BadRequestError(f"Payment {payment_id} is settled by the payment gateway")
            outbox = await self._settle(tx, payment, actor)

        await self._dispatcher.dispatch(outbox)
        return tx

    async def _settle(
        self, tx: Transaction, payment: Payment, actor: Actor | None
    ) -> list[Notification]:
        """Complete a payment and advance the transaction. Caller holds the unit of work."""
        new_payment_status = fire(PaymentStateMachine, payment.status, "settle")
        now = self._clock.now()

        if payment.type == PaymentType.DEPOSIT:
            new_tx_status = fire(TransactionStateMachine, tx.status, "deposit_verified")
            payment.status = new_payment_status
            payment.verified_by = actor.id if actor else None
            payment.verified_at = now
            tx.status = new_tx_status
            tx.deposit_received_at = now
            await self._record(
                tx,
                actor,
                "Deposit Verified",
                "The deposit payment has been verified",
                metadata={"payment_id": str(payment.id)},
            )
            logger.info(
                "escrow.deposit_verified", transaction_id=str(tx.id), payment_id=str(payment.id)
            )
            return self._notify_parties(
                tx,
                "Deposit Confirmed",
                "The deposit has been verified. Transaction is now in review.",
            )

        received = fire(TransactionStateMachine, tx.status, "final_payment_verified")
        completed = fire(TransactionStateMachine, received, "complete")
        listing = await self._listing_repo.get_for_update(tx.listing_id)
        if listing is None:
            raise NotFoundError("Listing", tx.listing_id)

        payment.status = new_payment_status
        payment.verified_by = actor.id if actor else None
        payment.verified_at = now

        tx.status = received
        tx.final_payment_received_at = now
        await self._record(
            tx,
            actor,
            "Final Payment Received",
            "The final payment has been verified",
            metadata={"payment_id": str(payment.id)},
        )

        tx.status = completed
        tx.completed_at = now
        listing.status = ListingStatus.SOLD.value
        await self._record(
            tx,
            actor,
            "Transaction Completed",
            "All payments verified. Transaction successfully completed.",
        )
        logger.info(
            "escrow.completed",
            transaction_id=str(tx.id),
            payment_id=str(payment.id),
            listing_id=str(listing.id),
        )
        return self._notify_parties(
            tx,
            "Transaction Completed!",
            "Congratulations! The authority transfer has been completed.",
        )

    async def _fail(
        self, tx: Transaction, payment: Payment, reason: str, actor: Actor | None
    ) -> list[Notification]:
        payment.status = fire(PaymentStateMachine, payment.status, "fail")
        payment.failure_reason = reason
        label = "Deposit" if payment.type == PaymentType.DEPOSIT else "Final Payment"
        await self._record(
            tx,
            actor,
            f"{label} Failed",
            reason,
            metadata={"payment_id": str(payment.id)},
        )
        logger.info(
            "escrow.payment_failed",
            transaction_id=str(tx.id),
            payment_id=str(payment.id),
            reason=reason,
        )
        return [
            Notification(
                user_id=tx.buyer_id,
                title=f"{label} Failed",
                message=f"Your payment could not be completed: {reason}. Please try again.",
                link=_tx_link(tx),
            )
        ]

    async def _apply_cancel(self, tx: Transaction, actor: Actor, reason: str) -> None:
        """Cancel the transaction, close open attempts and release the listing."""
        new_status = fire(TransactionStateMachine, tx.status, "cancel")
        now = self._clock.now()

        for payment in await self._payment_repo.get_by_transaction(tx.id):
            if payment.status in (PaymentStatus.PENDING, PaymentStatus.PROCESSING):
                locked = await self._payment_repo.get_for_update(payment.id)
                locked.status = fire(PaymentStateMachine, locked.status, "fail")
                locked.failure_reason = "Transaction cancelled"

        listing = await self._listing_repo.get_for_update(tx.listing_id)
        if listing is None:
            raise NotFoundError("Listing", tx.listing_id)
        listing.status = ListingStatus.ACTIVE.value

        tx.status = new_status
        tx.status_before_dispute = None
        tx.cancelled_at = now
        tx.cancelled_by = actor.id
        tx.cancellation_reason = reason
        await self._record(tx, actor, "Transaction Cancelled", reason)

    async def _lock_available_listing(self, listing_id: uuid.UUID) -> Listing:
        listing = await self._listing_repo.get_for_update(listing_id)
        if listing is None:
            raise NotFoundError("Listing", listing_id)
        if await self._tx_repo.get_live_for_listing(listing.id) is not None:
            raise AlreadyExistsError(
                f"Listing {listing_id} already has an active transaction",
                code="LISTING_RESERVED",
            )
        if listing.status != ListingStatus.ACTIVE:
            raise BadRequestError(
                f"Listing {listing_id} is {listing.status}, not available for sale"
            )
        return listing

    async def _get_transaction_or_raise(self, transaction_id: uuid.UUID) -> Transaction:
        tx = await self._tx_repo.get_by_id(transaction_id)
        if tx is None:
            raise NotFoundError("Transaction", transaction_id)
        return tx

    async def _lock_transaction(self, transaction_id: uuid.UUID) -> Transaction:
        tx = await self._tx_repo.get_for_update(transaction_id)
        if tx is None:
            raise NotFoundError("Transaction", transaction_id)
        return tx

    async def _lock_payment(self, tx: Transaction, payment_id: uuid.UUID) -> Payment:
        payment = await self._payment_repo.get_for_update(payment_id)
        if payment is None or payment.transaction_id != tx.id:
            raise NotFoundError("Payment", payment_id)
        return payment

    async def _record(
        self,
        tx: Transaction,
        actor: Actor | None,
        title: str,
        description: str | None = None,
        metadata: dict | None = None,
    ) -> None:
        await self._timeline_repo.record(
            transaction_id=tx.id,
            status=tx.status,
            title=title,
            description=description,
            actor_id=actor.id if actor else None,
            actor_role=actor.role.value if actor else "SYSTEM",
            metadata=metadata,
            created_at=self._clock.now(),
        )

    @staticmethod
    def _party_role(tx: Transaction, actor: Actor, allow_admin: bool) -> UserRole:
        if actor.id == tx.buyer_id:
            return UserRole.BUYER
        if actor.id == tx.seller_id:
            return UserRole.SELLER
        if allow_admin and actor.is_admin:
            return UserRole.ADMIN
        raise ForbiddenError(f"You are not a party to transaction {tx.id}")

    @staticmethod
    def _require_admin(actor: Actor) -> None:
        if not actor.is_admin:
            raise ForbiddenError("Admin access required")

    @staticmethod
    def _notify_parties(tx: Transaction, title: str, message: str) -> list[Notification]:
        return [
            Notification(user_id=user_id, title=title, message=message, link=_tx_link(tx))
            for user_id in (tx.buyer_id, tx.seller_id)
        ]


def _tx_link(tx: Transaction) -> str:
    return f"/transactions/{tx.id}"


def _contact(user: User | None, visible: bool) -> PartyContact:
    if user is None:
        return PartyContact(name="Unknown", email=None, phone=None, company_name=None)
    if not visible:
        return PartyContact(name=user.name, email=None, phone=None, company_name=None)
    return PartyContact(
        name=user.name,
        email=user.email,
        phone=user.phone,
        company_name=user.company_name,
    )

