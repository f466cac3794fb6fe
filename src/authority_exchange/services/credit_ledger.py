"""Credit Ledger - the only writer of a user's credit balance.

The balance lives on the user row (`total_credits - used_credits`). Every
change goes through this service, which locks the user row, checks the
balance, moves it and appends one immutable CreditTransaction carrying the
resulting balance. The read-check-write therefore happens under a row lock
inside one unit of work, so two concurrent debits cannot both spend the
last credit.

Callers that pay for something with credits (premium unlocks) open their
own unit of work and call debit() inside it; the ledger's unit then joins
theirs, so the debit and the grant commit or roll back together.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from authority_exchange.domain.enums import CreditTransactionType
from authority_exchange.domain.exceptions import (
    BadRequestError,
    InsufficientCreditsError,
    NotFoundError,
)
from authority_exchange.infrastructure.database.engine import unit_of_work
from authority_exchange.infrastructure.database.orm_models import CreditTransaction, User
from authority_exchange.infrastructure.database.repositories import (
    CreditTransactionRepository,
    UserRepository,
)
from authority_exchange.logging_config import get_logger

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

MAX_HISTORY_PAGE_SIZE = 100


@dataclass(frozen=True)
class CreditBalance:
    total: int
    used: int

    @property
    def available(self) -> int:
        return self.total - self.used


@dataclass(frozen=True)
class CreditHistoryPage:
    entries: list[CreditTransaction]
    total: int
    page: int
    limit: int


class CreditLedger:
    """Debits, credits and refunds against a user's credit balance."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._user_repo = UserRepository(session)
        self._entry_repo = CreditTransactionRepository(session)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def debit(
        self,
        user_id: uuid.UUID,
        amount: int,
        reason: str,
        reference_type: str | None = None,
        reference_id: object | None = None,
    ) -> CreditTransaction:
        """Spend credits.

        Raises:
            InsufficientCreditsError: If the available balance is below `amount`.
        """
        _require_positive(amount)
        async with unit_of_work(self._session, "ledger.debit", user_id=str(user_id)):
            user = await self._lock_user(user_id)
            available = user.available_credits
            if available < amount:
                raise InsufficientCreditsError(required=amount, available=available)

            user.used_credits += amount
            entry = await self._append(
                user,
                CreditTransactionType.USAGE,
                -amount,
                reason,
                reference_type,
                reference_id,
            )

        logger.info(
            "ledger.debit",
            user_id=str(user_id),
            amount=amount,
            balance=entry.balance_after,
            reference_type=reference_type,
            reference_id=str(reference_id) if reference_id is not None else None,
        )
        return entry

    async def credit(
        self,
        user_id: uuid.UUID,
        amount: int,
        reason: str,
        entry_type: CreditTransactionType = CreditTransactionType.BONUS,
    ) -> CreditTransaction:
        """Grant credits (admin grant or purchase)."""
        _require_positive(amount)
        if entry_type not in (CreditTransactionType.BONUS, CreditTransactionType.PURCHASE):
            raise BadRequestError(f"Credit entries must be BONUS or PURCHASE, not {entry_type}")

        async with unit_of_work(self._session, "ledger.credit", user_id=str(user_id)):
            user = await self._lock_user(user_id)
            user.total_credits += amount
            entry = await self._append(user, entry_type, amount, reason)

        logger.info(
            "ledger.credit",
            user_id=str(user_id),
            amount=amount,
            type=entry_type.value,
            balance=entry.balance_after,
        )
        return entry

    async def refund(self, user_id: uuid.UUID, amount: int, reason: str) -> CreditTransaction:
        """Give back spent credits; `used_credits` never drops below zero.

        Raises:
            BadRequestError: If the user has no spent credits to refund.
        """
        _require_positive(amount)
        async with unit_of_work(self._session, "ledger.refund", user_id=str(user_id)):
            user = await self._lock_user(user_id)
            refundable = min(amount, user.used_credits)
            if refundable == 0:
                raise BadRequestError(f"User {user_id} has no spent credits to refund")

            user.used_credits -= refundable
            entry = await self._append(user, CreditTransactionType.REFUND, refundable, reason)

        logger.info(
            "ledger.refund",
            user_id=str(user_id),
            requested=amount,
            refunded=refundable,
            balance=entry.balance_after,
        )
        return entry

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def balance(self, user_id: uuid.UUID) -> CreditBalance:
        user = await self._user_repo.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return CreditBalance(total=user.total_credits, used=user.used_credits)

    async def history(
        self, user_id: uuid.UUID, page: int = 1, limit: int = 20
    ) -> CreditHistoryPage:
        """One page of the user's ledger, newest first."""
        if page < 1 or not 1 <= limit <= MAX_HISTORY_PAGE_SIZE:
            raise BadRequestError(
                f"page must be >= 1 and limit between 1 and {MAX_HISTORY_PAGE_SIZE}"
            )
        if await self._user_repo.get_by_id(user_id) is None:
            raise NotFoundError("User", user_id)

        entries = await self._entry_repo.get_page(user_id, offset=(page - 1) * limit, limit=limit)
        total = await self._entry_repo.count_for_user(user_id)
        return CreditHistoryPage(entries=entries, total=total, page=page, limit=limit)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _lock_user(self, user_id: uuid.UUID) -> User:
        user = await self._user_repo.get_for_update(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    async def _append(
        self,
        user: User,
        entry_type: CreditTransactionType,
        amount: int,
        reason: str,
        reference_type: str | None = None,
        reference_id: object | None = None,
    ) -> CreditTransaction:
        await self._user_repo.flush()
        return await self._entry_repo.append(
            CreditTransaction(
                user_id=user.id,
                type=entry_type.value,
                amount=amount,
                balance_after=user.available_credits,
                reason=reason,
                reference_type=reference_type,
                reference_id=str(reference_id) if reference_id is not None else None,
            )
        )


def _require_positive(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise BadRequestError(f"Credit amount must be a positive integer, got {amount!r}")
