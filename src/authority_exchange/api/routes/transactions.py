"""Escrow transaction REST API routes.

Routes:
    POST   /api/v1/transactions                          - Admin opens a transaction
    GET    /api/v1/transactions                          - My transactions
    GET    /api/v1/transactions/{id}                     - Viewer projection
    GET    /api/v1/transactions/{id}/timeline            - Audit trail
    GET    /api/v1/transactions/{id}/payments            - Payment attempts
    POST   /api/v1/transactions/{id}/accept-terms        - Buyer/seller accepts terms
    POST   /api/v1/transactions/{id}/deposit             - Buyer submits deposit
    POST   /api/v1/transactions/{id}/deposit/verify      - Admin verifies deposit
    POST   /api/v1/transactions/{id}/review              - Admin starts review
    POST   /api/v1/transactions/{id}/approve             - Buyer/seller approves
    POST   /api/v1/transactions/{id}/admin-approve       - Admin approves
    POST   /api/v1/transactions/{id}/final-payment       - Buyer submits final payment
    POST   /api/v1/transactions/{id}/final-payment/verify - Admin verifies final payment
    POST   /api/v1/transactions/{id}/cancel              - Cancel
    POST   /api/v1/transactions/{id}/dispute             - Open a dispute
    POST   /api/v1/transactions/{id}/dispute/resolve     - Admin resolves a dispute
    POST   /api/v1/payments/{id}/fail                    - Admin fails a manual payment
    POST   /api/v1/payments/gateway-events               - Payment gateway settle/fail
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends

from authority_exchange.api.deps import get_actor, get_admin, get_escrow_service
from authority_exchange.domain.actor import Actor
from authority_exchange.schemas.transactions import (
    AdminCreateTransactionRequest,
    CancelTransactionRequest,
    FailPaymentRequest,
    GatewayEventRequest,
    OpenDisputeRequest,
    PaymentResponse,
    ResolveDisputeRequest,
    SubmitPaymentRequest,
    TimelineEntryResponse,
    TransactionResponse,
    TransactionViewResponse,
    VerifyPaymentRequest,
)
from authority_exchange.services.escrow_service import EscrowService

router = APIRouter(prefix="/api/v1/transactions", tags=["Transactions"])
payments_router = APIRouter(prefix="/api/v1/payments", tags=["Payments"])


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=TransactionResponse,
    status_code=201,
    summary="Admin opens a transaction directly",
)
async def admin_create_transaction(
    request: AdminCreateTransactionRequest,
    actor: Actor = Depends(get_admin),
    svc: EscrowService = Depends(get_escrow_service),
) -> TransactionResponse:
    tx = await svc.admin_create(
        actor,
        listing_id=request.listing_id,
        buyer_id=request.buyer_id,
        agreed_price=request.agreed_price,
        deposit_amount=request.deposit_amount,
        notes=request.notes,
    )
    return TransactionResponse.model_validate(tx)


# ---------------------------------------------------------------------------
# Read endpoints
# ---------------------------------------------------------------------------


@router.get(
    "",
    response_model=list[TransactionResponse],
    summary="List the transactions I take part in",
)
async def list_my_transactions(
    actor: Actor = Depends(get_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> list[TransactionResponse]:
    return [TransactionResponse.model_validate(tx) for tx in await svc.list_mine(actor)]


@router.get(
    "/{transaction_id}",
    response_model=TransactionViewResponse,
    summary="Get a transaction as the caller may see it",
)
async def get_transaction(
    transaction_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> TransactionViewResponse:
    """Counterparty contact details are withheld until the deposit (for the
    buyer's details) or the final payment (for the seller's) is received."""
    return TransactionViewResponse.model_validate(await svc.view(actor, transaction_id))


@router.get(
    "/{transaction_id}/timeline",
    response_model=list[TimelineEntryResponse],
    summary="Get the audit trail",
)
async def get_timeline(
    transaction_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> list[TimelineEntryResponse]:
    entries = await svc.timeline(actor, transaction_id)
    return [TimelineEntryResponse.model_validate(e) for e in entries]


@router.get(
    "/{transaction_id}/payments",
    response_model=list[PaymentResponse],
    summary="List payment attempts",
)
async def get_payments(
    transaction_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> list[PaymentResponse]:
    payments = await svc.payments(actor, transaction_id)
    return [PaymentResponse.model_validate(p) for p in payments]


# ---------------------------------------------------------------------------
# Terms, deposit and review
# ---------------------------------------------------------------------------


@router.post(
    "/{transaction_id}/accept-terms",
    response_model=TransactionResponse,
    summary="Accept the transaction terms",
)
async def accept_terms(
    transaction_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> TransactionResponse:
    return TransactionResponse.model_validate(await svc.accept_terms(actor, transaction_id))


@router.post(
    "/{transaction_id}/deposit",
    response_model=PaymentResponse,
    status_code=201,
    summary="Submit the deposit",
)
async def submit_deposit(
    transaction_id: uuid.UUID,
    request: SubmitPaymentRequest,
    actor: Actor = Depends(get_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> PaymentResponse:
    """Gateway methods start PROCESSING; manual methods start PENDING."""
    payment = await svc.submit_deposit(actor, transaction_id, request.method, request.reference)
    return PaymentResponse.model_validate(payment)


@router.post(
    "/{transaction_id}/deposit/verify",
    response_model=TransactionResponse,
    summary="Verify a manually-settled deposit",
)
async def verify_deposit(
    transaction_id: uuid.UUID,
    request: VerifyPaymentRequest,
    actor: Actor = Depends(get_admin),
    svc: EscrowService = Depends(get_escrow_service),
) -> TransactionResponse:
    """AWAITING_DEPOSIT -> DEPOSIT_RECEIVED."""
    tx = await svc.verify_deposit(actor, transaction_id, request.payment_id)
    return TransactionResponse.model_validate(tx)


@router.post(
    "/{transaction_id}/review",
    response_model=TransactionResponse,
    summary="Start document review",
)
async def start_review(
    transaction_id: uuid.UUID,
    actor: Actor = Depends(get_admin),
    svc: EscrowService = Depends(get_escrow_service),
) -> TransactionResponse:
    return TransactionResponse.model_validate(await svc.start_review(actor, transaction_id))


# ---------------------------------------------------------------------------
# Approval
# ---------------------------------------------------------------------------


@router.post(
    "/{transaction_id}/approve",
    response_model=TransactionResponse,
    summary="Buyer or seller approves",
)
async def approve(
    transaction_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> TransactionResponse:
    return TransactionResponse.model_validate(await svc.approve(actor, transaction_id))


@router.post(
    "/{transaction_id}/admin-approve",
    response_model=TransactionResponse,
    summary="Admin approves a bilaterally approved transaction",
)
async def admin_approve(
    transaction_id: uuid.UUID,
    actor: Actor = Depends(get_admin),
    svc: EscrowService = Depends(get_escrow_service),
) -> TransactionResponse:
    """BOTH_APPROVED -> PAYMENT_PENDING."""
    return TransactionResponse.model_validate(await svc.admin_approve(actor, transaction_id))


# ---------------------------------------------------------------------------
# Final payment
# ---------------------------------------------------------------------------


@router.post(
    "/{transaction_id}/final-payment",
    response_model=PaymentResponse,
    status_code=201,
    summary="Submit the final payment",
)
async def submit_final_payment(
    transaction_id: uuid.UUID,
    request: SubmitPaymentRequest,
    actor: Actor = Depends(get_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> PaymentResponse:
    payment = await svc.submit_final_payment(
        actor, transaction_id, request.method, request.reference
    )
    return PaymentResponse.model_validate(payment)


@router.post(
    "/{transaction_id}/final-payment/verify",
    response_model=TransactionResponse,
    summary="Verify the final payment and complete the sale",
)
async def verify_final_payment(
    transaction_id: uuid.UUID,
    request: VerifyPaymentRequest,
    actor: Actor = Depends(get_admin),
    svc: EscrowService = Depends(get_escrow_service),
) -> TransactionResponse:
    """PAYMENT_PENDING -> PAYMENT_RECEIVED -> COMPLETED; the listing is SOLD."""
    tx = await svc.verify_final_payment(actor, transaction_id, request.payment_id)
    return TransactionResponse.model_validate(tx)


# ---------------------------------------------------------------------------
# Cancellation and disputes
# ---------------------------------------------------------------------------


@router.post(
    "/{transaction_id}/cancel",
    response_model=TransactionResponse,
    summary="Cancel the transaction",
)
async def cancel(
    transaction_id: uuid.UUID,
    request: CancelTransactionRequest,
    actor: Actor = Depends(get_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> TransactionResponse:
    return TransactionResponse.model_validate(
        await svc.cancel(actor, transaction_id, request.reason)
    )


@router.post(
    "/{transaction_id}/dispute",
    response_model=TransactionResponse,
    summary="Open a dispute",
)
async def open_dispute(
    transaction_id: uuid.UUID,
    request: OpenDisputeRequest,
    actor: Actor = Depends(get_actor),
    svc: EscrowService = Depends(get_escrow_service),
) -> TransactionResponse:
    return TransactionResponse.model_validate(
        await svc.open_dispute(actor, transaction_id, request.reason)
    )


@router.post(
    "/{transaction_id}/dispute/resolve",
    response_model=TransactionResponse,
    summary="Resolve a dispute",
)
async def resolve_dispute(
    transaction_id: uuid.UUID,
    request: ResolveDisputeRequest,
    actor: Actor = Depends(get_admin),
    svc: EscrowService = Depends(get_escrow_service),
) -> TransactionResponse:
    """RESUME returns to the status held before the dispute; CANCEL cancels."""
    tx = await svc.resolve_dispute(actor, transaction_id, request.resolution, request.note)
    return TransactionResponse.model_validate(tx)


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


@payments_router.post(
    "/{payment_id}/fail",
    response_model=PaymentResponse,
    summary="Mark a manual payment attempt as failed",
)
async def fail_payment(
    payment_id: uuid.UUID,
    request: FailPaymentRequest,
    actor: Actor = Depends(get_admin),
    svc: EscrowService = Depends(get_escrow_service),
) -> PaymentResponse:
    return PaymentResponse.model_validate(await svc.fail_payment(actor, payment_id, request.reason))


@payments_router.post(
    "/gateway-events",
    response_model=PaymentResponse,
    summary="Apply a payment gateway settle/fail event",
)
async def gateway_event(
    request: GatewayEventRequest,
    svc: EscrowService = Depends(get_escrow_service),
) -> PaymentResponse:
    """Signature verification happens in the payment collaborator before it calls here."""
    payment = await svc.record_gateway_event(
        request.payment_id, request.succeeded, request.failure_reason
    )
    return PaymentResponse.model_validate(payment)
