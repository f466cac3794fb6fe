"""Credit ledger REST API routes.

Debits have no route of their own: they only happen inside the operation
they pay for (a premium unlock).

Routes:
    GET    /api/v1/credits/me                      - Caller's balance
    GET    /api/v1/credits/me/history              - Caller's ledger, newest first
    GET    /api/v1/credits/users/{id}              - A user's balance (admin)
    POST   /api/v1/credits/users/{id}/grant        - Grant credits (admin)
    POST   /api/v1/credits/users/{id}/refund       - Refund spent credits (admin)
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query

from authority_exchange.api.deps import get_actor, get_admin, get_credit_ledger
from authority_exchange.domain.actor import Actor
from authority_exchange.schemas.credits import (
    CreditBalanceResponse,
    CreditHistoryResponse,
    CreditTransactionResponse,
    GrantCreditsRequest,
    RefundCreditsRequest,
)
from authority_exchange.services.credit_ledger import MAX_HISTORY_PAGE_SIZE, CreditLedger

router = APIRouter(prefix="/api/v1/credits", tags=["Credits"])


@router.get("/me", response_model=CreditBalanceResponse, summary="Get my credit balance")
async def my_balance(
    actor: Actor = Depends(get_actor),
    ledger: CreditLedger = Depends(get_credit_ledger),
) -> CreditBalanceResponse:
    return CreditBalanceResponse.model_validate(await ledger.balance(actor.id))


@router.get(
    "/me/history", response_model=CreditHistoryResponse, summary="Get my credit history"
)
async def my_history(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=MAX_HISTORY_PAGE_SIZE),
    actor: Actor = Depends(get_actor),
    ledger: CreditLedger = Depends(get_credit_ledger),
) -> CreditHistoryResponse:
    return CreditHistoryResponse.model_validate(await ledger.history(actor.id, page, limit))


@router.get(
    "/users/{user_id}", response_model=CreditBalanceResponse, summary="Get a user's balance"
)
async def user_balance(
    user_id: uuid.UUID,
    _admin: Actor = Depends(get_admin),
    ledger: CreditLedger = Depends(get_credit_ledger),
) -> CreditBalanceResponse:
    return CreditBalanceResponse.model_validate(await ledger.balance(user_id))


@router.post(
    "/users/{user_id}/grant",
    response_model=CreditTransactionResponse,
    status_code=201,
    summary="Grant credits",
)
async def grant_credits(
    user_id: uuid.UUID,
    request: GrantCreditsRequest,
    _admin: Actor = Depends(get_admin),
    ledger: CreditLedger = Depends(get_credit_ledger),
) -> CreditTransactionResponse:
    entry = await ledger.credit(user_id, request.amount, request.reason, request.type)
    return CreditTransactionResponse.model_validate(entry)


@router.post(
    "/users/{user_id}/refund",
    response_model=CreditTransactionResponse,
    status_code=201,
    summary="Refund spent credits",
)
async def refund_credits(
    user_id: uuid.UUID,
    request: RefundCreditsRequest,
    _admin: Actor = Depends(get_admin),
    ledger: CreditLedger = Depends(get_credit_ledger),
) -> CreditTransactionResponse:
    entry = await ledger.refund(user_id, request.amount, request.reason)
    return CreditTransactionResponse.model_validate(entry)
