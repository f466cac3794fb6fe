"""Notification delivery.

The escrow core never awaits delivery inside an atomic unit. Services
collect Notification objects while a unit of work runs and hand them to
NotificationDispatcher.dispatch() once the unit has committed. Delivery is
best-effort: a failing sink is logged and skipped.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from authority_exchange.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterable

    from authority_exchange.domain.ports import Notification, NotificationSink

logger = get_logger(__name__)


class LoggingNotificationSink:
    """Default sink: emits each notification as a structured log event.

    Stands in for the email / in-app delivery service, which lives outside
    this codebase.
    """

    async def notify(self, notification: Notification) -> None:
        logger.info(
            "notification.sent",
            user_id=str(notification.user_id),
            title=notification.title,
            message=notification.message,
            link=notification.link,
        )


class NotificationDispatcher:
    """Fire-and-forget fan-out to a NotificationSink."""

    def __init__(self, sink: NotificationSink) -> None:
        self._sink = sink

    async def dispatch(self, notifications: Iterable[Notification]) -> int:
        """Deliver each notification; return how many were delivered."""
        delivered = 0
        for notification in notifications:
            try:
                await self._sink.notify(notification)
                delivered += 1
            except Exception as exc:
                # A failed notification never undoes a committed transition.
                logger.warning(
                    "notification.failed",
                    user_id=str(notification.user_id),
                    title=notification.title,
                    error=str(exc),
                )
        return delivered
