"""Account Dispute Service - suspension for a payment-identity mismatch.

Lifecycle:
    block()   -> PENDING     account suspended, sessions revoked
    submit()  -> SUBMITTED   auto_unblock_at = now + window
    resolve() -> RESOLVED    account restored (admin)
    reject()  -> REJECTED    account stays suspended (admin)
    sweep()   -> RESOLVED    for every SUBMITTED dispute past its deadline

An admin resolution and the sweep may race on the same dispute. Both lock
the dispute row first and treat an already RESOLVED dispute as done, so
whichever comes second is a no-op.
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from authority_exchange.config import get_settings
from authority_exchange.domain.enums import DisputeStatus, UserStatus
from authority_exchange.domain.exceptions import BadRequestError, ForbiddenError, NotFoundError
from authority_exchange.domain.ports import Clock, Notification, SystemClock
from authority_exchange.domain.state_machine import AccountDisputeStateMachine, fire
from authority_exchange.infrastructure.database.engine import unit_of_work
from authority_exchange.infrastructure.database.orm_models import AccountDispute, User
from authority_exchange.infrastructure.database.repositories import (
    AccountDisputeRepository,
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
    from authority_exchange.domain.ports import NotificationSink, SessionRevoker

logger = get_logger(__name__)


class AccountDisputeService:
    """Blocks accounts on a cardholder mismatch and restores them again."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        revoker: SessionRevoker | None = None,
        clock: Clock | None = None,
        notifier: NotificationSink | None = None,
        auto_unblock_hours: int | None = None,
    ) -> None:
        self._session = session
        self._revoker = revoker
        self._clock = clock or SystemClock()
        self._dispatcher = NotificationDispatcher(notifier or LoggingNotificationSink())
        hours = (
            auto_unblock_hours
            if auto_unblock_hours is not None
            else get_settings().dispute_auto_unblock_hours
        )
        self._window = timedelta(hours=hours)
        self._user_repo = UserRepository(session)
        self._dispute_repo = AccountDisputeRepository(session)

    async def block(
        self,
        user_id: uuid.UUID,
        cardholder_name: str,
        account_name: str,
        reason: str | None = None,
    ) -> AccountDispute:
        """Suspend an account whose payment card name does not match it.

        Returns the existing dispute unchanged if the user already has a
        live one.
        """
        if self._revoker is None:
            raise RuntimeError("Blocking an account requires a SessionRevoker")

        async with unit_of_work(self._session, "dispute.block", user_id=str(user_id)):
            user = await self._lock_user(user_id)
            existing = await self._dispute_repo.find_live_for_user(user.id)
            if existing is not None:
                logger.info(
                    "dispute.block_skipped", user_id=str(user_id), dispute_id=str(existing.id)
                )
                return existing

            user.status = UserStatus.SUSPENDED.value
            dispute = await self._dispute_repo.add(
                AccountDispute(
                    user_id=user.id,
                    cardholder_name=cardholder_name,
                    account_name=account_name,
                    blocked_reason=reason
                    or f"Cardholder name '{cardholder_name}' does not match account name "
                    f"'{account_name}'",
                    status=DisputeStatus.PENDING.value,
                )
            )
            # Inside the unit: if revocation fails the suspension rolls back with it.
            revoked = await self._revoker.revoke_all_sessions(user.id)

        logger.info(
            "dispute.blocked",
            user_id=str(user_id),
            dispute_id=str(dispute.id),
            sessions_revoked=revoked,
        )
        await self._dispatcher.dispatch(
            [
                Notification(
                    user_id=user.id,
                    title="Account Suspended",
                    message="The name on your payment card does not match your account. "
                    "Submit an explanation to restore access.",
                    link=f"/account/dispute/{dispute.id}",
                )
            ]
        )
        return dispute

    async def submit(
        self,
        actor: Actor,
        dispute_id: uuid.UUID,
        explanation: str,
        contact_email: str | None = None,
    ) -> AccountDispute:
        """User explains the mismatch; starts the auto-unblock window."""
        if not explanation or not explanation.strip():
            raise BadRequestError("An explanation is required")

        async with unit_of_work(self._session, "dispute.submit", dispute_id=str(dispute_id)):
            dispute = await self._lock_dispute(dispute_id)
            if dispute.user_id != actor.id:
                raise ForbiddenError("You can only submit your own dispute")
            dispute.status = fire(AccountDisputeStateMachine, dispute.status, "submit")
            now = self._clock.now()
            dispute.explanation = explanation.strip()
            dispute.contact_email = contact_email
            dispute.submitted_at = now
            dispute.auto_unblock_at = now + self._window

        logger.info(
            "dispute.submitted",
            dispute_id=str(dispute.id),
            auto_unblock_at=dispute.auto_unblock_at.isoformat(),
        )
        return dispute

    async def resolve(
        self, actor: Actor, dispute_id: uuid.UUID, note: str | None = None
    ) -> AccountDispute:
        """Admin restores the account. Resolving a resolved dispute is a no-op."""
        self._require_admin(actor)
        async with unit_of_work(self._session, "dispute.resolve", dispute_id=str(dispute_id)):
            dispute = await self._lock_dispute(dispute_id)
            if dispute.status == DisputeStatus.RESOLVED:
                logger.info("dispute.already_resolved", dispute_id=str(dispute.id))
                return dispute
            dispute.status = fire(AccountDisputeStateMachine, dispute.status, "resolve")
            await self._restore(dispute, resolved_by=actor.id, note=note)

        logger.info("dispute.resolved", dispute_id=str(dispute.id), by=str(actor.id))
        await self._notify_restored(dispute)
        return dispute

    async def reject(
        self, actor: Actor, dispute_id: uuid.UUID, note: str | None = None
    ) -> AccountDispute:
        """Admin refuses the explanation; the account stays suspended."""
        self._require_admin(actor)
        async with unit_of_work(self._session, "dispute.reject", dispute_id=str(dispute_id)):
            dispute = await self._lock_dispute(dispute_id)
            dispute.status = fire(AccountDisputeStateMachine, dispute.status, "reject")
            dispute.resolved_at = self._clock.now()
            dispute.resolved_by = actor.id
            dispute.resolution_note = note

        logger.info("dispute.rejected", dispute_id=str(dispute.id), by=str(actor.id))
        await self._dispatcher.dispatch(
            [
                Notification(
                    user_id=dispute.user_id,
                    title="Dispute Rejected",
                    message=note or "Your account dispute was rejected. Contact support.",
                    link=f"/account/dispute/{dispute.id}",
                )
            ]
        )
        return dispute

    async def sweep(self) -> int:
        """Resolve every submitted dispute whose deadline has passed.

        Each dispute is resolved in its own unit of work and re-checked
        under its row lock, so a concurrent admin action or a second sweep
        instance turns the later attempt into a no-op.
        """
        now = self._clock.now()
        async with unit_of_work(self._session, "dispute.sweep_scan"):
            due = await self._dispute_repo.get_due_ids(now)

        resolved: list[AccountDispute] = []
        for dispute_id in due:
            async with unit_of_work(self._session, "dispute.sweep", dispute_id=str(dispute_id)):
                dispute = await self._dispute_repo.get_for_update(dispute_id)
                if (
                    dispute is None
                    or dispute.status != DisputeStatus.SUBMITTED
                    or dispute.auto_unblock_at is None
                    or dispute.auto_unblock_at > now
                ):
                    continue
                dispute.status = fire(AccountDisputeStateMachine, dispute.status, "auto_resolve")
                await self._restore(dispute, resolved_by=None, note="Automatically resolved")
            resolved.append(dispute)

        logger.info("dispute.sweep_completed", due=len(due), resolved=len(resolved))
        for dispute in resolved:
            await self._notify_restored(dispute)
        return len(resolved)

    async def get_dispute(self, actor: Actor, dispute_id: uuid.UUID) -> AccountDispute:
        dispute = await self._dispute_repo.get_by_id(dispute_id)
        if dispute is None:
            raise NotFoundError("AccountDispute", dispute_id)
        if dispute.user_id != actor.id and not actor.is_admin:
            raise ForbiddenError("You cannot view this dispute")
        return dispute

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _restore(
        self, dispute: AccountDispute, resolved_by: uuid.UUID | None, note: str | None
    ) -> None:
        user = await self._lock_user(dispute.user_id)
        user.status = UserStatus.ACTIVE.value
        dispute.resolved_at = self._clock.now()
        dispute.resolved_by = resolved_by
        dispute.resolution_note = note

    async def _notify_restored(self, dispute: AccountDispute) -> None:
        await self._dispatcher.dispatch(
            [
                Notification(
                    user_id=dispute.user_id,
                    title="Account Restored",
                    message="Your account has been restored. You can sign in again.",
                )
            ]
        )

    async def _lock_user(self, user_id: uuid.UUID) -> User:
        user = await self._user_repo.get_for_update(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    async def _lock_dispute(self, dispute_id: uuid.UUID) -> AccountDispute:
        dispute = await self._dispute_repo.get_for_update(dispute_id)
        if dispute is None:
            raise NotFoundError("AccountDispute", dispute_id)
        return dispute

    @staticmethod
    def _require_admin(actor: Actor) -> None:
        if not actor.is_admin:
            raise ForbiddenError("Admin access required")
