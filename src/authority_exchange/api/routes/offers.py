"""Offer negotiation REST API routes.

Routes:
    POST   /api/v1/offers                       - Place an offer (buyer)
    GET    /api/v1/offers/{id}                  - Get offer details
    POST   /api/v1/offers/{id}/counter          - Counter an offer (seller)
    POST   /api/v1/offers/{id}/accept-counter   - Take the seller's counter (buyer)
    POST   /api/v1/offers/{id}/withdraw         - Withdraw an offer (buyer)
    POST   /api/v1/offers/{id}/reject           - Reject an offer
    POST   /api/v1/offers/{id}/accept           - Accept and open escrow (seller)
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends

from authority_exchange.api.deps import get_actor, get_offer_service
from authority_exchange.domain.actor import Actor
from authority_exchange.schemas.offers import (
    CounterOfferRequest,
    CreateOfferRequest,
    OfferResponse,
    RejectOfferRequest,
)
from authority_exchange.schemas.transactions import TransactionResponse
from authority_exchange.services.offer_service import OfferService

router = APIRouter(prefix="/api/v1/offers", tags=["Offers"])


@router.post("", response_model=OfferResponse, status_code=201, summary="Place an offer")
async def create_offer(
    request: CreateOfferRequest,
    actor: Actor = Depends(get_actor),
    svc: OfferService = Depends(get_offer_service),
) -> OfferResponse:
    offer = await svc.create(
        actor,
        listing_id=request.listing_id,
        amount=request.amount,
        message=request.message,
        is_buy_now=request.is_buy_now,
    )
    return OfferResponse.model_validate(offer)


@router.get("/{offer_id}", response_model=OfferResponse, summary="Get offer details")
async def get_offer(
    offer_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    svc: OfferService = Depends(get_offer_service),
) -> OfferResponse:
    return OfferResponse.model_validate(await svc.get_offer(actor, offer_id))


@router.post("/{offer_id}/counter", response_model=OfferResponse, summary="Counter an offer")
async def counter_offer(
    offer_id: uuid.UUID,
    request: CounterOfferRequest,
    actor: Actor = Depends(get_actor),
    svc: OfferService = Depends(get_offer_service),
) -> OfferResponse:
    """Seller proposes a different price. PENDING -> COUNTERED."""
    offer = await svc.counter(actor, offer_id, request.counter_amount, request.message)
    return OfferResponse.model_validate(offer)


@router.post(
    "/{offer_id}/accept-counter", response_model=OfferResponse, summary="Accept a counter offer"
)
async def accept_counter(
    offer_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    svc: OfferService = Depends(get_offer_service),
) -> OfferResponse:
    """Buyer takes the counter. COUNTERED -> PENDING at the countered amount."""
    return OfferResponse.model_validate(await svc.accept_counter(actor, offer_id))


@router.post("/{offer_id}/withdraw", response_model=OfferResponse, summary="Withdraw an offer")
async def withdraw_offer(
    offer_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    svc: OfferService = Depends(get_offer_service),
) -> OfferResponse:
    return OfferResponse.model_validate(await svc.withdraw(actor, offer_id))


@router.post("/{offer_id}/reject", response_model=OfferResponse, summary="Reject an offer")
async def reject_offer(
    offer_id: uuid.UUID,
    request: RejectOfferRequest,
    actor: Actor = Depends(get_actor),
    svc: OfferService = Depends(get_offer_service),
) -> OfferResponse:
    return OfferResponse.model_validate(await svc.reject(actor, offer_id, request.reason))


@router.post(
    "/{offer_id}/accept",
    response_model=TransactionResponse,
    status_code=201,
    summary="Accept an offer and open escrow",
)
async def accept_offer(
    offer_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    svc: OfferService = Depends(get_offer_service),
) -> TransactionResponse:
    """Marks the offer ACCEPTED, opens the transaction, reserves the listing and
    rejects every other live offer on it, all in one unit of work."""
    return TransactionResponse.model_validate(await svc.accept(actor, offer_id))
