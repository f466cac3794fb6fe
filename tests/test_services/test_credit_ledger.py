"""Tests for the CreditLedger service."""

from __future__ import annotations

import uuid

import pytest
from sqlalchemy.exc import InvalidRequestError

from authority_exchange.domain.enums import CreditTransactionType
from authority_exchange.domain.exceptions import (
    BadRequestError,
    InsufficientCreditsError,
    NotFoundError,
)
from authority_exchange.infrastructure.database.orm_models import User
from authority_exchange.infrastructure.database.repositories import (
    CreditTransactionRepository,
)
from authority_exchange.services.credit_ledger import CreditLedger
from conftest import make_user, reload


class TestDebit:
    async def test_debit_moves_balance_and_appends_entry(self, session) -> None:
        user = await make_user(session, credits=5)
        ledger = CreditLedger(session)

        entry = await ledger.debit(user.id, 2, "Premium listing unlock", "PREMIUM_REQUEST", "r-1")

        assert entry.type == CreditTransactionType.USAGE
        assert entry.amount == -2
        assert entry.balance_after == 3
        assert entry.reference_type == "PREMIUM_REQUEST"
        assert entry.reference_id == "r-1"
        balance = await ledger.balance(user.id)
        assert (balance.total, balance.used, balance.available) == (5, 2, 3)

    async def test_insufficient_credits_changes_nothing(self, session) -> None:
        user = await make_user(session, credits=1)
        user_id = user.id
        ledger = CreditLedger(session)

        with pytest.raises(InsufficientCreditsError) as exc_info:
            await ledger.debit(user_id, 2, "too much")

        assert exc_info.value.code == "INSUFFICIENT_CREDITS"
        refreshed = await reload(session, User, user_id)
        assert refreshed.used_credits == 0
        assert await CreditTransactionRepository(session).count_for_user(user_id) == 0

    @pytest.mark.parametrize("amount", [0, -1, True])
    async def test_amount_must_be_positive_integer(self, session, amount) -> None:  # noqa: ANN001
        user = await make_user(session, credits=5)
        with pytest.raises(BadRequestError):
            await CreditLedger(session).debit(user.id, amount, "bad")

    async def test_unknown_user(self, session) -> None:
        with pytest.raises(NotFoundError):
            await CreditLedger(session).debit(uuid.uuid4(), 1, "ghost")


class TestCreditAndRefund:
    async def test_credit_grants(self, session) -> None:
        user = await make_user(session)
        ledger = CreditLedger(session)

        entry = await ledger.credit(user.id, 10, "Welcome bonus")

        assert entry.type == CreditTransactionType.BONUS
        assert entry.amount == 10
        assert entry.balance_after == 10

    async def test_credit_rejects_usage_type(self, session) -> None:
        user = await make_user(session)
        with pytest.raises(BadRequestError):
            await CreditLedger(session).credit(
                user.id, 1, "not a grant", entry_type=CreditTransactionType.USAGE
            )

    async def test_refund_is_clamped_to_used_credits(self, session) -> None:
        user = await make_user(session, credits=5)
        ledger = CreditLedger(session)
        await ledger.debit(user.id, 2, "unlock")

        entry = await ledger.refund(user.id, 10, "Goodwill")

        assert entry.type == CreditTransactionType.REFUND
        assert entry.amount == 2
        balance = await ledger.balance(user.id)
        assert balance.used == 0
        assert balance.available == 5

    async def test_refund_with_nothing_spent(self, session) -> None:
        user = await make_user(session, credits=5)
        with pytest.raises(BadRequestError):
            await CreditLedger(session).refund(user.id, 1, "nothing to give back")


class TestLedgerInvariants:
    async def test_entries_sum_to_available_balance(self, session) -> None:
        user = await make_user(session)
        ledger = CreditLedger(session)
        await ledger.credit(user.id, 5, "Bundle", entry_type=CreditTransactionType.PURCHASE)
        await ledger.debit(user.id, 1, "unlock a")
        await ledger.debit(user.id, 1, "unlock b")
        await ledger.refund(user.id, 1, "unlock b refunded")
        await ledger.credit(user.id, 2, "Bonus")

        balance = await ledger.balance(user.id)
        total = await CreditTransactionRepository(session).sum_for_user(user.id)
        assert balance.available == 6
        assert total == balance.available

    async def test_history_is_paged_newest_first(self, session) -> None:
        user = await make_user(session)
        ledger = CreditLedger(session)
        for i in range(3):
            await ledger.credit(user.id, 1, f"grant {i}")

        page = await ledger.history(user.id, page=1, limit=2)

        assert page.total == 3
        assert [e.reason for e in page.entries] == ["grant 2", "grant 1"]
        second = await ledger.history(user.id, page=2, limit=2)
        assert [e.reason for e in second.entries] == ["grant 0"]

    @pytest.mark.parametrize(("page", "limit"), [(0, 20), (1, 0), (1, 101)])
    async def test_history_rejects_bad_paging(self, session, page: int, limit: int) -> None:
        user = await make_user(session)
        with pytest.raises(BadRequestError):
            await CreditLedger(session).history(user.id, page=page, limit=limit)

    async def test_entries_are_append_only(self, session) -> None:
        user = await make_user(session)
        entry = await CreditLedger(session).credit(user.id, 3, "Bonus")

        entry.reason = "rewritten"
        with pytest.raises(InvalidRequestError, match="append-only"):
            await session.flush()
        await session.rollback()
