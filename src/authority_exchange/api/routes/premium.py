"""Premium access REST API routes.

Routes:
    POST   /api/v1/premium-requests                    - Request access (buyer)
    GET    /api/v1/premium-requests/mine               - My requests (buyer)
    POST   /api/v1/premium-requests/{id}/contacted     - Mark contacted (admin)
    POST   /api/v1/premium-requests/{id}/in-progress   - Mark in progress (admin)
    POST   /api/v1/premium-requests/{id}/approve       - Grant access (admin)
    POST   /api/v1/premium-requests/{id}/reject        - Cancel the request (admin)
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends

from authority_exchange.api.deps import get_actor, get_admin, get_premium_service
from authority_exchange.domain.actor import Actor
from authority_exchange.schemas.premium import (
    PremiumAccessRequest,
    PremiumAdminActionRequest,
    PremiumRequestResponse,
)
from authority_exchange.services.premium_service import PremiumAccessService

router = APIRouter(prefix="/api/v1/premium-requests", tags=["Premium Access"])


@router.post(
    "", response_model=PremiumRequestResponse, status_code=201, summary="Request premium access"
)
async def request_access(
    request: PremiumAccessRequest,
    actor: Actor = Depends(get_actor),
    svc: PremiumAccessService = Depends(get_premium_service),
) -> PremiumRequestResponse:
    """Subscribers on a fast-path plan are unlocked at once (status COMPLETED);
    everyone else waits for an admin (status PENDING)."""
    premium_request = await svc.request_access(actor, request.listing_id, request.message)
    return PremiumRequestResponse.model_validate(premium_request)


@router.get(
    "/mine", response_model=list[PremiumRequestResponse], summary="List my premium requests"
)
async def my_requests(
    actor: Actor = Depends(get_actor),
    svc: PremiumAccessService = Depends(get_premium_service),
) -> list[PremiumRequestResponse]:
    return [PremiumRequestResponse.model_validate(r) for r in await svc.list_for_buyer(actor)]


@router.post(
    "/{request_id}/contacted", response_model=PremiumRequestResponse, summary="Mark contacted"
)
async def mark_contacted(
    request_id: uuid.UUID,
    request: PremiumAdminActionRequest,
    actor: Actor = Depends(get_admin),
    svc: PremiumAccessService = Depends(get_premium_service),
) -> PremiumRequestResponse:
    premium_request = await svc.mark_contacted(actor, request_id, request.notes)
    return PremiumRequestResponse.model_validate(premium_request)


@router.post(
    "/{request_id}/in-progress",
    response_model=PremiumRequestResponse,
    summary="Mark in progress",
)
async def mark_in_progress(
    request_id: uuid.UUID,
    request: PremiumAdminActionRequest,
    actor: Actor = Depends(get_admin),
    svc: PremiumAccessService = Depends(get_premium_service),
) -> PremiumRequestResponse:
    premium_request = await svc.mark_in_progress(actor, request_id, request.notes)
    return PremiumRequestResponse.model_validate(premium_request)


@router.post(
    "/{request_id}/approve", response_model=PremiumRequestResponse, summary="Grant access"
)
async def approve_request(
    request_id: uuid.UUID,
    request: PremiumAdminActionRequest,
    actor: Actor = Depends(get_admin),
    svc: PremiumAccessService = Depends(get_premium_service),
) -> PremiumRequestResponse:
    """Unlocks the listing and debits the buyer in one unit of work."""
    premium_request = await svc.admin_approve(actor, request_id, request.notes)
    return PremiumRequestResponse.model_validate(premium_request)


@router.post(
    "/{request_id}/reject", response_model=PremiumRequestResponse, summary="Cancel a request"
)
async def reject_request(
    request_id: uuid.UUID,
    request: PremiumAdminActionRequest,
    actor: Actor = Depends(get_admin),
    svc: PremiumAccessService = Depends(get_premium_service),
) -> PremiumRequestResponse:
    premium_request = await svc.admin_reject(actor, request_id, request.notes)
    return PremiumRequestResponse.model_validate(premium_request)
