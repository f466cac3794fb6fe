"""Shared test fixtures for the Authority Exchange test suite.

Provides:
    - A fresh on-disk SQLite database per test (aiosqlite). Every
      transaction opens with BEGIN IMMEDIATE, so two sessions writing at
      once serialize the way row-locked PostgreSQL writers do.
    - A frozen, advanceable clock.
    - Recording fakes for the notification sink and the session revoker.
    - Factory functions for users, listings, offers and subscriptions.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine

from authority_exchange.api.deps import (
    get_clock,
    get_db_session,
    get_notifier,
    get_session_revoker,
)
from authority_exchange.domain.actor import Actor
from authority_exchange.domain.enums import (
    ListingStatus,
    OfferStatus,
    SubscriptionStatus,
    UserRole,
)
from authority_exchange.domain.pricing import PricingPolicy
from authority_exchange.infrastructure.database.engine import build_session_factory
from authority_exchange.infrastructure.database.orm_models import (
    Base,
    Listing,
    Offer,
    Subscription,
    User,
)
from authority_exchange.main import create_app
from authority_exchange.services.premium_service import PremiumAccessPolicy

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

    from authority_exchange.domain.ports import Notification

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Collaborator fakes
# ---------------------------------------------------------------------------


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = T0) -> None:
        self._now = start

    def now(self) -> datetime:
        return self._now

    def advance(self, **delta: float) -> datetime:
        self._now += timedelta(**delta)
        return self._now


class RecordingSink:
    """NotificationSink that keeps what it was sent; can be told to fail."""

    def __init__(self) -> None:
        self.sent: list[Notification] = []
        self.fail = False

    async def notify(self, notification: Notification) -> None:
        if self.fail:
            raise ConnectionError("notification service unavailable")
        self.sent.append(notification)

    def titles_for(self, user_id: uuid.UUID) -> list[str]:
        return [n.title for n in self.sent if n.user_id == user_id]


class RecordingRevoker:
    """SessionRevoker that records which users were logged out."""

    def __init__(self, sessions_per_user: int = 2) -> None:
        self.revoked: list[uuid.UUID] = []
        self._sessions_per_user = sessions_per_user

    async def revoke_all_sessions(self, user_id: uuid.UUID) -> int:
        self.revoked.append(user_id)
        return self._sessions_per_user


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncIterator[AsyncEngine]:  # noqa: ANN001
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'exchange.db'}",
        connect_args={"timeout": 30},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):  # noqa: ANN001, ANN202
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):  # noqa: ANN001, ANN202
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Collaborators and policies
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def revoker() -> RecordingRevoker:
    return RecordingRevoker()


@pytest.fixture
def pricing() -> PricingPolicy:
    return PricingPolicy()


@pytest.fixture
def premium_policy() -> PremiumAccessPolicy:
    return PremiumAccessPolicy(
        fast_path_plans=frozenset({"ENTERPRISE", "VIP_ACCESS"}),
        blocked_plans=frozenset({"STARTER"}),
        unlock_cost=1,
    )


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    clock: FrozenClock,
    sink: RecordingSink,
    revoker: RecordingRevoker,
) -> AsyncIterator[AsyncClient]:
    """API client wired to the test database and the recording fakes.

    The lifespan does not run under ASGITransport, so no scheduler starts.
    """
    app = create_app()

    async def _test_session() -> AsyncIterator[AsyncSession]:
        async with session_factory() as request_session:
            yield request_session

    app.dependency_overrides[get_db_session] = _test_session
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_notifier] = lambda: sink
    app.dependency_overrides[get_session_revoker] = lambda: revoker

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def as_actor(actor: Actor) -> dict[str, str]:
    """Identity headers the upstream gateway would attach."""
    return {"X-Actor-Id": str(actor.id), "X-Actor-Role": actor.role.value}


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def actor_for(user: User) -> Actor:
    return Actor(id=user.id, role=UserRole(user.role))


async def make_user(
    session: AsyncSession,
    role: UserRole = UserRole.BUYER,
    credits: int = 0,
    name: str | None = None,
) -> User:
    suffix = uuid.uuid4().hex[:8]
    user = User(
        email=f"{role.value.lower()}-{suffix}@example.com",
        name=name or f"{role.value.capitalize()} {suffix}",
        phone="+1-555-0100",
        company_name=f"{suffix} Trucking LLC",
        role=role.value,
        total_credits=credits,
        used_credits=0,
    )
    session.add(user)
    await session.commit()
    return user


async def make_listing(
    session: AsyncSession,
    seller: User | Actor,
    price: Decimal | str = "100000",
    is_premium: bool = False,
    status: ListingStatus = ListingStatus.ACTIVE,
) -> Listing:
    listing = Listing(
        seller_id=seller.id,
        title="Interstate MC authority, 6 years clean",
        authority_number=f"MC-{uuid.uuid4().int % 10**7:07d}",
        price=Decimal(price),
        status=status.value,
        is_premium=is_premium,
    )
    session.add(listing)
    await session.commit()
    return listing


async def make_offer(
    session: AsyncSession,
    listing: Listing,
    buyer: User | Actor,
    amount: Decimal | str = "95000",
    is_buy_now: bool = False,
) -> Offer:
    offer = Offer(
        listing_id=listing.id,
        buyer_id=buyer.id,
        seller_id=listing.seller_id,
        amount=Decimal(amount),
        is_buy_now=is_buy_now,
        status=OfferStatus.PENDING.value,
    )
    session.add(offer)
    await session.commit()
    return offer


async def make_subscription(session: AsyncSession, user: User | Actor, plan: str) -> Subscription:
    subscription = Subscription(
        user_id=user.id, plan=plan, status=SubscriptionStatus.ACTIVE.value
    )
    session.add(subscription)
    await session.commit()
    return subscription


async def reload(session: AsyncSession, model: type, entity_id: object):  # noqa: ANN201
    """Fetch the row as currently persisted, bypassing the identity map."""
    return await session.get(model, entity_id, populate_existing=True)


@dataclass(frozen=True)
class Market:
    """One seller's active listing and the people around it.

    Holds actors and ids rather than ORM rows: a rolled-back unit of work
    expires every instance in the session.
    """

    seller: Actor
    buyer: Actor
    admin: Actor
    listing_id: uuid.UUID


@pytest_asyncio.fixture
async def market(session: AsyncSession) -> Market:
    seller = await make_user(session, UserRole.SELLER, name="Sam Seller")
    buyer = await make_user(session, UserRole.BUYER, name="Bea Buyer")
    admin = await make_user(session, UserRole.ADMIN, name="Ada Admin")
    listing = await make_listing(session, seller, price="100000")
    return Market(
        seller=actor_for(seller),
        buyer=actor_for(buyer),
        admin=actor_for(admin),
        listing_id=listing.id,
    )
