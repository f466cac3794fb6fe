"""Listing unlock REST API routes.

Routes:
    POST   /api/v1/listings/{id}/unlock     - Spend credits to unlock a listing (buyer)
    GET    /api/v1/listings/unlocked        - Listings I have unlocked
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends

from authority_exchange.api.deps import get_actor, get_premium_service
from authority_exchange.domain.actor import Actor
from authority_exchange.schemas.premium import UnlockedListingResponse, UnlockResponse
from authority_exchange.services.premium_service import PremiumAccessService

router = APIRouter(prefix="/api/v1/listings", tags=["Listings"])


@router.get(
    "/unlocked",
    response_model=list[UnlockedListingResponse],
    summary="List the listings I have unlocked",
)
async def my_unlocked_listings(
    actor: Actor = Depends(get_actor),
    svc: PremiumAccessService = Depends(get_premium_service),
) -> list[UnlockedListingResponse]:
    return [UnlockedListingResponse.model_validate(u) for u in await svc.list_unlocked(actor)]


@router.post("/{listing_id}/unlock", response_model=UnlockResponse, summary="Unlock a listing")
async def unlock_listing(
    listing_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    svc: PremiumAccessService = Depends(get_premium_service),
) -> UnlockResponse:
    """Repeat unlocks succeed with already_unlocked set and cost nothing.

    Restricted listings go through /api/v1/premium-requests instead.
    """
    result = await svc.unlock_listing(actor, listing_id)
    return UnlockResponse(
        listing_id=result.unlock.listing_id,
        credits_used=result.unlock.credits_used,
        created_at=result.unlock.created_at,
        already_unlocked=result.already_unlocked,
    )
