"""Collaborator ports consumed by the escrow core.

These are Protocols (structural subtyping) so concrete adapters don't need
to inherit from a base class; they just need to match the shape.

The domain layer has ZERO imports from Redis, SQLAlchemy, or any delivery
channel. Adapters live under infrastructure/:
    - infrastructure/notifications.py  (LoggingNotificationSink)
    - infrastructure/redis_client.py   (RedisSessionRevoker)
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class Notification:
    """A message addressed to one user.

    Attributes:
        user_id: Recipient.
        title: Short headline.
        message: Body text.
        link: Optional in-app path the notification points at.
    """

    user_id: uuid.UUID
    title: str
    message: str
    link: str | None = None


@runtime_checkable
class Clock(Protocol):
    """Source of the current time. Injected so deadlines can be tested."""

    def now(self) -> datetime:
        """Return the current timezone-aware UTC time."""
        ...


class SystemClock:
    """Wall clock."""

    def now(self) -> datetime:
        return datetime.now(UTC)


@runtime_checkable
class NotificationSink(Protocol):
    """Delivery channel for user notifications.

    Delivery is best-effort: callers never await a notification inside
    an atomic unit, and a failure here never rolls back a transition.
    """

    async def notify(self, notification: Notification) -> None:
        ...


@runtime_checkable
class SessionRevoker(Protocol):
    """Identity collaborator that invalidates a user's standing sessions."""

    async def revoke_all_sessions(self, user_id: uuid.UUID) -> int:
        """Revoke every session of `user_id` and return how many were dropped."""
        ...
