"""Account dispute REST API routes.

Routes:
    POST   /api/v1/account-disputes                 - Block an account (admin / payments)
    POST   /api/v1/account-disputes/sweep           - Run the auto-unblock sweep now (admin)
    GET    /api/v1/account-disputes/{id}            - Get a dispute
    POST   /api/v1/account-disputes/{id}/submit     - Submit an explanation (owner)
    POST   /api/v1/account-disputes/{id}/resolve    - Restore the account (admin)
    POST   /api/v1/account-disputes/{id}/reject     - Keep the account suspended (admin)
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends

from authority_exchange.api.deps import (
    get_actor,
    get_admin,
    get_blocking_dispute_service,
    get_dispute_service,
)
from authority_exchange.domain.actor import Actor
from authority_exchange.schemas.disputes import (
    AccountDisputeResponse,
    BlockAccountRequest,
    DisputeDecisionRequest,
    SubmitDisputeRequest,
    SweepResponse,
)
from authority_exchange.services.account_dispute_service import AccountDisputeService

router = APIRouter(prefix="/api/v1/account-disputes", tags=["Account Disputes"])


@router.post(
    "", response_model=AccountDisputeResponse, status_code=201, summary="Block an account"
)
async def block_account(
    request: BlockAccountRequest,
    _admin: Actor = Depends(get_admin),
    svc: AccountDisputeService = Depends(get_blocking_dispute_service),
) -> AccountDisputeResponse:
    """Suspends the user and revokes their sessions. Returns the live dispute
    unchanged if the user is already blocked."""
    dispute = await svc.block(
        request.user_id, request.cardholder_name, request.account_name, request.reason
    )
    return AccountDisputeResponse.model_validate(dispute)


@router.post("/sweep", response_model=SweepResponse, summary="Run the auto-unblock sweep")
async def run_sweep(
    _admin: Actor = Depends(get_admin),
    svc: AccountDisputeService = Depends(get_dispute_service),
) -> SweepResponse:
    return SweepResponse(resolved=await svc.sweep())


@router.get("/{dispute_id}", response_model=AccountDisputeResponse, summary="Get a dispute")
async def get_dispute(
    dispute_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    svc: AccountDisputeService = Depends(get_dispute_service),
) -> AccountDisputeResponse:
    return AccountDisputeResponse.model_validate(await svc.get_dispute(actor, dispute_id))


@router.post(
    "/{dispute_id}/submit",
    response_model=AccountDisputeResponse,
    summary="Submit an explanation",
)
async def submit_dispute(
    dispute_id: uuid.UUID,
    request: SubmitDisputeRequest,
    actor: Actor = Depends(get_actor),
    svc: AccountDisputeService = Depends(get_dispute_service),
) -> AccountDisputeResponse:
    """PENDING -> SUBMITTED; starts the auto-unblock window."""
    dispute = await svc.submit(actor, dispute_id, request.explanation, request.contact_email)
    return AccountDisputeResponse.model_validate(dispute)


@router.post(
    "/{dispute_id}/resolve",
    response_model=AccountDisputeResponse,
    summary="Resolve and restore the account",
)
async def resolve_dispute(
    dispute_id: uuid.UUID,
    request: DisputeDecisionRequest,
    actor: Actor = Depends(get_admin),
    svc: AccountDisputeService = Depends(get_dispute_service),
) -> AccountDisputeResponse:
    return AccountDisputeResponse.model_validate(
        await svc.resolve(actor, dispute_id, request.note)
    )


@router.post(
    "/{dispute_id}/reject",
    response_model=AccountDisputeResponse,
    summary="Reject the dispute",
)
async def reject_dispute(
    dispute_id: uuid.UUID,
    request: DisputeDecisionRequest,
    actor: Actor = Depends(get_admin),
    svc: AccountDisputeService = Depends(get_dispute_service),
) -> AccountDisputeResponse:
    return AccountDisputeResponse.model_validate(
        await svc.reject(actor, dispute_id, request.note)
    )
