"""Lifecycle state machine guards.

Uses python-statemachine to enforce legal state transitions at the domain level.
Every status column in the system (transaction, offer, payment, premium request,
account dispute) is only ever written with the result of `fire()`, so an illegal
move (e.g., AWAITING_DEPOSIT -> BOTH_APPROVED) raises InvalidTransitionError
before any side effect happens.

Escrow transaction table:
    AWAITING_DEPOSIT  -> DEPOSIT_RECEIVED   (deposit_verified)
    DEPOSIT_RECEIVED  -> IN_REVIEW          (start_review)
    DEPOSIT_RECEIVED,
    IN_REVIEW         -> BUYER_APPROVED     (buyer_approves)
    SELLER_APPROVED   -> BOTH_APPROVED      (buyer_approves)
    DEPOSIT_RECEIVED,
    IN_REVIEW         -> SELLER_APPROVED    (seller_approves)
    BUYER_APPROVED    -> BOTH_APPROVED      (seller_approves)
    BOTH_APPROVED     -> PAYMENT_PENDING    (admin_approves)
    PAYMENT_PENDING   -> PAYMENT_RECEIVED   (final_payment_verified)
    PAYMENT_RECEIVED  -> COMPLETED          (complete)
    any non-terminal  -> CANCELLED          (cancel)
    any non-terminal  -> DISPUTED           (open_dispute)
    DISPUTED          -> status before it   (resume)
"""

from __future__ import annotations

from functools import lru_cache

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from authority_exchange.domain.enums import TransactionStatus
from authority_exchange.domain.exceptions import InvalidTransitionError


class TransactionStateMachine(StateMachine):
    """Guards the escrow transaction lifecycle."""

    entity_name = "transaction"

    # --- States ---
    AWAITING_DEPOSIT = State("AWAITING_DEPOSIT", initial=True)
    DEPOSIT_RECEIVED = State("DEPOSIT_RECEIVED")
    IN_REVIEW = State("IN_REVIEW")
    BUYER_APPROVED = State("BUYER_APPROVED")
    SELLER_APPROVED = State("SELLER_APPROVED")
    BOTH_APPROVED = State("BOTH_APPROVED")
    PAYMENT_PENDING = State("PAYMENT_PENDING")
    PAYMENT_RECEIVED = State("PAYMENT_RECEIVED")
    COMPLETED = State("COMPLETED", final=True)
    CANCELLED = State("CANCELLED", final=True)
    DISPUTED = State("DISPUTED")

    # --- Events / Transitions ---

    # Deposit
    deposit_verified = AWAITING_DEPOSIT.to(DEPOSIT_RECEIVED)
    start_review = DEPOSIT_RECEIVED.to(IN_REVIEW)

    # Bilateral approval
    buyer_approves = (
        DEPOSIT_RECEIVED.to(BUYER_APPROVED)
        | IN_REVIEW.to(BUYER_APPROVED)
        | SELLER_APPROVED.to(BOTH_APPROVED)
    )
    seller_approves = (
        DEPOSIT_RECEIVED.to(SELLER_APPROVED)
        | IN_REVIEW.to(SELLER_APPROVED)
        | BUYER_APPROVED.to(BOTH_APPROVED)
    )
    admin_approves = BOTH_APPROVED.to(PAYMENT_PENDING)

    # Final payment
    final_payment_verified = PAYMENT_PENDING.to(PAYMENT_RECEIVED)
    complete = PAYMENT_RECEIVED.to(COMPLETED)

    # Cancellation
    cancel = (
        AWAITING_DEPOSIT.to(CANCELLED)
        | DEPOSIT_RECEIVED.to(CANCELLED)
        | IN_REVIEW.to(CANCELLED)
        | BUYER_APPROVED.to(CANCELLED)
        | SELLER_APPROVED.to(CANCELLED)
        | BOTH_APPROVED.to(CANCELLED)
        | PAYMENT_PENDING.to(CANCELLED)
        | PAYMENT_RECEIVED.to(CANCELLED)
        | DISPUTED.to(CANCELLED)
    )

    # Disputes
    open_dispute = (
        AWAITING_DEPOSIT.to(DISPUTED)
        | DEPOSIT_RECEIVED.to(DISPUTED)
        | IN_REVIEW.to(DISPUTED)
        | BUYER_APPROVED.to(DISPUTED)
        | SELLER_APPROVED.to(DISPUTED)
        | BOTH_APPROVED.to(DISPUTED)
        | PAYMENT_PENDING.to(DISPUTED)
        | PAYMENT_RECEIVED.to(DISPUTED)
    )
    resume = (
        DISPUTED.to(AWAITING_DEPOSIT, cond="is_resume_target")
        | DISPUTED.to(DEPOSIT_RECEIVED, cond="is_resume_target")
        | DISPUTED.to(IN_REVIEW, cond="is_resume_target")
        | DISPUTED.to(BUYER_APPROVED, cond="is_resume_target")
        | DISPUTED.to(SELLER_APPROVED, cond="is_resume_target")
        | DISPUTED.to(BOTH_APPROVED, cond="is_resume_target")
        | DISPUTED.to(PAYMENT_PENDING, cond="is_resume_target")
        | DISPUTED.to(PAYMENT_RECEIVED, cond="is_resume_target")
    )

    def is_resume_target(self, target: State, resume_to: str | None = None) -> bool:
        """Pick the resume branch that returns to the pre-dispute status."""
        return resume_to is not None and target.value == str(resume_to)


class OfferStateMachine(StateMachine):
    """Guards the offer negotiation lifecycle."""

    entity_name = "offer"

    PENDING = State("PENDING", initial=True)
    COUNTERED = State("COUNTERED")
    ACCEPTED = State("ACCEPTED", final=True)
    REJECTED = State("REJECTED", final=True)
    WITHDRAWN = State("WITHDRAWN", final=True)

    counter = PENDING.to(COUNTERED)
    accept_counter = COUNTERED.to(PENDING)
    accept = PENDING.to(ACCEPTED)
    reject = PENDING.to(REJECTED) | COUNTERED.to(REJECTED)
    withdraw = PENDING.to(WITHDRAWN) | COUNTERED.to(WITHDRAWN)


class PaymentStateMachine(StateMachine):
    """Guards a single payment attempt."""

    entity_name = "payment"

    PENDING = State("PENDING", initial=True)
    PROCESSING = State("PROCESSING")
    COMPLETED = State("COMPLETED", final=True)
    FAILED = State("FAILED", final=True)

    hand_to_gateway = PENDING.to(PROCESSING)
    settle = PENDING.to(COMPLETED) | PROCESSING.to(COMPLETED)
    fail = PENDING.to(FAILED) | PROCESSING.to(FAILED)


class PremiumRequestStateMachine(StateMachine):
    """Guards a premium access request."""

    entity_name = "premium request"

    PENDING = State("PENDING", initial=True)
    CONTACTED = State("CONTACTED")
    IN_PROGRESS = State("IN_PROGRESS")
    COMPLETED = State("COMPLETED", final=True)
    CANCELLED = State("CANCELLED", final=True)

    mark_contacted = PENDING.to(CONTACTED)
    mark_in_progress = PENDING.to(IN_PROGRESS) | CONTACTED.to(IN_PROGRESS)
    approve = PENDING.to(COMPLETED) | CONTACTED.to(COMPLETED) | IN_PROGRESS.to(COMPLETED)
    cancel = PENDING.to(CANCELLED) | CONTACTED.to(CANCELLED) | IN_PROGRESS.to(CANCELLED)


class AccountDisputeStateMachine(StateMachine):
    """Guards the account block / dispute lifecycle."""

    entity_name = "account dispute"

    PENDING = State("PENDING", initial=True)
    SUBMITTED = State("SUBMITTED")
    RESOLVED = State("RESOLVED", final=True)
    REJECTED = State("REJECTED", final=True)

    submit = PENDING.to(SUBMITTED)
    resolve = PENDING.to(RESOLVED) | SUBMITTED.to(RESOLVED)
    auto_resolve = SUBMITTED.to(RESOLVED)
    reject = PENDING.to(REJECTED) | SUBMITTED.to(REJECTED)


def build_machine(machine_cls: type[StateMachine], current_status: str) -> StateMachine:
    """Instantiate a machine positioned at a persisted status.

    Raises:
        ValueError: If the status is not one of the machine's states.
    """
    current_status = str(current_status)
    valid_values = {s.value for s in machine_cls.states}
    if current_status not in valid_values:
        valid = ", ".join(sorted(valid_values))
        raise ValueError(f"Unknown status '{current_status}'. Valid states: {valid}")
    return machine_cls(start_value=current_status)


def allowed_events(machine: StateMachine) -> list[str]:
    """Return the event names that can fire from the machine's current state."""
    # Newer python-statemachine releases expose `id`; older ones only `name`.
    return [getattr(event, "id", None) or event.name for event in machine.allowed_events]


@lru_cache(maxsize=None)
def expected_sources(machine_cls: type[StateMachine], event_name: str) -> tuple[str, ...]:
    """Statuses from which `event_name` may fire."""
    return tuple(
        state.value
        for state in machine_cls.states
        if event_name in allowed_events(build_machine(machine_cls, state.value))
    )


def fire(
    machine_cls: type[StateMachine],
    current_status: str,
    event_name: str,
    **event_kwargs: object,
) -> str:
    """Validate a transition and return the resulting status string.

    Raises:
        InvalidTransitionError: If the event cannot fire from `current_status`.
        ValueError: If the status or event name is unknown.
    """
    sm = build_machine(machine_cls, current_status)

    event_method = getattr(sm, event_name, None)
    if event_method is None or not callable(event_method):
        raise ValueError(
            f"Unknown event '{event_name}'. "
            f"Allowed events from {current_status}: {allowed_events(sm)}"
        )

    try:
        event_method(**event_kwargs)
    except TransitionNotAllowed as err:
        raise InvalidTransitionError(
            entity=machine_cls.entity_name,
            current_state=str(current_status),
            attempted=f"apply '{event_name}' to",
            expected=expected_sources(machine_cls, event_name),
        ) from err
    return str(sm.current_state.value)


def derive_approval_status(buyer_approved: bool, seller_approved: bool) -> TransactionStatus | None:
    """Status implied by the two independent approval flags.

    Returns None while neither party has approved.
    """
    if buyer_approved and seller_approved:
        return TransactionStatus.BOTH_APPROVED
    if buyer_approved:
        return TransactionStatus.BUYER_APPROVED
    if seller_approved:
        return TransactionStatus.SELLER_APPROVED
    return None
