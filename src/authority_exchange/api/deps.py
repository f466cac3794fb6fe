"""FastAPI dependency injection providers.

These are used with Depends() in route handlers to inject database sessions,
the acting identity, collaborators and the per-request service instances.

Authentication happens upstream: the identity gateway asserts who is calling
through the X-Actor-Id and X-Actor-Role headers.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from authority_exchange.domain.actor import Actor
from authority_exchange.domain.enums import UserRole
from authority_exchange.domain.exceptions import ForbiddenError
from authority_exchange.domain.ports import Clock, NotificationSink, SessionRevoker, SystemClock
from authority_exchange.infrastructure.database.engine import get_async_session
from authority_exchange.infrastructure.notifications import LoggingNotificationSink
from authority_exchange.infrastructure.redis_client import RedisSessionRevoker, get_redis
from authority_exchange.services.account_dispute_service import AccountDisputeService
from authority_exchange.services.credit_ledger import CreditLedger
from authority_exchange.services.escrow_service import EscrowService
from authority_exchange.services.offer_service import OfferService
from authority_exchange.services.premium_service import PremiumAccessService


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session for a request."""
    async for session in get_async_session():
        yield session


def get_actor(
    x_actor_id: str = Header(..., description="Authenticated user id"),
    x_actor_role: str = Header(..., description="BUYER, SELLER or ADMIN"),
) -> Actor:
    """Build the acting identity from the gateway headers."""
    try:
        actor_id = uuid.UUID(x_actor_id)
        role = UserRole(x_actor_role.upper())
    except ValueError as exc:
        raise ForbiddenError("Missing or malformed actor identity") from exc
    return Actor(id=actor_id, role=role)


def get_admin(actor: Actor = Depends(get_actor)) -> Actor:
    """Like get_actor, but only admins pass."""
    if not actor.is_admin:
        raise ForbiddenError("Admin access required")
    return actor


def get_clock() -> Clock:
    return SystemClock()


def get_notifier() -> NotificationSink:
    return LoggingNotificationSink()


def get_session_revoker() -> SessionRevoker:
    """Revoker backed by the Redis session store."""
    return RedisSessionRevoker(get_redis())


# --- Services (one instance per request, bound to the request's session) ---


def get_offer_service(
    session: AsyncSession = Depends(get_db_session),
    clock: Clock = Depends(get_clock),
    notifier: NotificationSink = Depends(get_notifier),
) -> OfferService:
    return OfferService(session, clock=clock, notifier=notifier)


def get_escrow_service(
    session: AsyncSession = Depends(get_db_session),
    clock: Clock = Depends(get_clock),
    notifier: NotificationSink = Depends(get_notifier),
) -> EscrowService:
    return EscrowService(session, clock=clock, notifier=notifier)


def get_credit_ledger(session: AsyncSession = Depends(get_db_session)) -> CreditLedger:
    return CreditLedger(session)


def get_premium_service(
    session: AsyncSession = Depends(get_db_session),
    clock: Clock = Depends(get_clock),
    notifier: NotificationSink = Depends(get_notifier),
) -> PremiumAccessService:
    return PremiumAccessService(session, clock=clock, notifier=notifier)


def get_dispute_service(
    session: AsyncSession = Depends(get_db_session),
    clock: Clock = Depends(get_clock),
    notifier: NotificationSink = Depends(get_notifier),
) -> AccountDisputeService:
    """Dispute service without a revoker; block routes use get_blocking_dispute_service."""
    return AccountDisputeService(session, clock=clock, notifier=notifier)


def get_blocking_dispute_service(
    session: AsyncSession = Depends(get_db_session),
    clock: Clock = Depends(get_clock),
    notifier: NotificationSink = Depends(get_notifier),
    revoker: SessionRevoker = Depends(get_session_revoker),
) -> AccountDisputeService:
    return AccountDisputeService(session, revoker=revoker, clock=clock, notifier=notifier)
