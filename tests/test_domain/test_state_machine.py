"""Tests for the lifecycle state machine guards.

These tests verify that:
    1. The full happy path is reachable through fire().
    2. Illegal moves raise InvalidTransitionError naming the legal sources.
    3. Disputes resume to exactly the status they interrupted.
    4. Terminal states accept nothing.
"""

from __future__ import annotations

import pytest

from authority_exchange.domain.enums import TransactionStatus
from authority_exchange.domain.exceptions import BadRequestError, InvalidTransitionError
from authority_exchange.domain.state_machine import (
    AccountDisputeStateMachine,
    OfferStateMachine,
    PaymentStateMachine,
    PremiumRequestStateMachine,
    TransactionStateMachine,
    allowed_events,
    build_machine,
    derive_approval_status,
    expected_sources,
    fire,
)


class TestHappyPath:
    """AWAITING_DEPOSIT -> COMPLETED."""

    def test_full_lifecycle(self) -> None:
        status = "AWAITING_DEPOSIT"
        for event, expected in [
            ("deposit_verified", "DEPOSIT_RECEIVED"),
            ("start_review", "IN_REVIEW"),
            ("buyer_approves", "BUYER_APPROVED"),
            ("seller_approves", "BOTH_APPROVED"),
            ("admin_approves", "PAYMENT_PENDING"),
            ("final_payment_verified", "PAYMENT_RECEIVED"),
            ("complete", "COMPLETED"),
        ]:
            status = fire(TransactionStateMachine, status, event)
            assert status == expected

    def test_seller_can_approve_first(self) -> None:
        status = fire(TransactionStateMachine, "DEPOSIT_RECEIVED", "seller_approves")
        assert status == "SELLER_APPROVED"
        assert fire(TransactionStateMachine, status, "buyer_approves") == "BOTH_APPROVED"

    def test_accepts_enum_members(self) -> None:
        status = fire(
            TransactionStateMachine, TransactionStatus.AWAITING_DEPOSIT, "deposit_verified"
        )
        assert status == TransactionStatus.DEPOSIT_RECEIVED


class TestInvalidTransitions:
    def test_cannot_approve_before_deposit(self) -> None:
        with pytest.raises(InvalidTransitionError) as exc_info:
            fire(TransactionStateMachine, "AWAITING_DEPOSIT", "buyer_approves")
        err = exc_info.value
        assert err.code == "INVALID_TRANSITION"
        assert err.current_state == "AWAITING_DEPOSIT"
        assert err.expected == ["DEPOSIT_RECEIVED", "IN_REVIEW", "SELLER_APPROVED"]

    def test_invalid_transition_is_a_bad_request(self) -> None:
        with pytest.raises(BadRequestError):
            fire(TransactionStateMachine, "BOTH_APPROVED", "deposit_verified")

    def test_cannot_skip_admin_approval(self) -> None:
        with pytest.raises(InvalidTransitionError):
            fire(TransactionStateMachine, "BOTH_APPROVED", "final_payment_verified")

    @pytest.mark.parametrize("terminal", ["COMPLETED", "CANCELLED"])
    def test_terminal_states_accept_nothing(self, terminal: str) -> None:
        assert allowed_events(build_machine(TransactionStateMachine, terminal)) == []
        for event in ("cancel", "open_dispute", "deposit_verified"):
            with pytest.raises(InvalidTransitionError):
                fire(TransactionStateMachine, terminal, event)

    def test_unknown_status(self) -> None:
        with pytest.raises(ValueError, match="Unknown status"):
            fire(TransactionStateMachine, "NOT_A_STATE", "cancel")

    def test_unknown_event(self) -> None:
        with pytest.raises(ValueError, match="Unknown event"):
            fire(TransactionStateMachine, "AWAITING_DEPOSIT", "teleport")


class TestCancellationAndDisputes:
    @pytest.mark.parametrize(
        "status",
        [s.value for s in TransactionStatus if s.value not in ("COMPLETED", "CANCELLED")],
    )
    def test_cancel_from_every_live_status(self, status: str) -> None:
        assert fire(TransactionStateMachine, status, "cancel") == "CANCELLED"

    @pytest.mark.parametrize(
        "status",
        ["AWAITING_DEPOSIT", "IN_REVIEW", "SELLER_APPROVED", "PAYMENT_RECEIVED"],
    )
    def test_dispute_resumes_to_previous_status(self, status: str) -> None:
        disputed = fire(TransactionStateMachine, status, "open_dispute")
        assert disputed == "DISPUTED"
        assert fire(TransactionStateMachine, disputed, "resume", resume_to=status) == status

    def test_resume_without_target_is_rejected(self) -> None:
        with pytest.raises(InvalidTransitionError):
            fire(TransactionStateMachine, "DISPUTED", "resume")

    def test_cannot_dispute_twice(self) -> None:
        with pytest.raises(InvalidTransitionError):
            fire(TransactionStateMachine, "DISPUTED", "open_dispute")


class TestOtherMachines:
    def test_offer_counter_round_trip(self) -> None:
        status = fire(OfferStateMachine, "PENDING", "counter")
        assert status == "COUNTERED"
        assert fire(OfferStateMachine, status, "accept_counter") == "PENDING"

    def test_countered_offer_cannot_be_accepted_directly(self) -> None:
        with pytest.raises(InvalidTransitionError):
            fire(OfferStateMachine, "COUNTERED", "accept")

    def test_completed_payment_cannot_settle_again(self) -> None:
        with pytest.raises(InvalidTransitionError):
            fire(PaymentStateMachine, "COMPLETED", "settle")

    def test_gateway_payment_path(self) -> None:
        status = fire(PaymentStateMachine, "PENDING", "hand_to_gateway")
        assert fire(PaymentStateMachine, status, "fail") == "FAILED"

    def test_premium_request_approve_from_bookkeeping_states(self) -> None:
        assert expected_sources(PremiumRequestStateMachine, "approve") == (
            "PENDING",
            "CONTACTED",
            "IN_PROGRESS",
        )
        with pytest.raises(InvalidTransitionError):
            fire(PremiumRequestStateMachine, "CANCELLED", "approve")

    def test_account_dispute_auto_resolve_requires_submission(self) -> None:
        with pytest.raises(InvalidTransitionError):
            fire(AccountDisputeStateMachine, "PENDING", "auto_resolve")
        assert fire(AccountDisputeStateMachine, "SUBMITTED", "auto_resolve") == "RESOLVED"


class TestDeriveApprovalStatus:
    def test_combinations(self) -> None:
        assert derive_approval_status(False, False) is None
        assert derive_approval_status(True, False) == TransactionStatus.BUYER_APPROVED
        assert derive_approval_status(False, True) == TransactionStatus.SELLER_APPROVED
        assert derive_approval_status(True, True) == TransactionStatus.BOTH_APPROVED
