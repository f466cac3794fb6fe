"""Pydantic schemas for offer negotiation."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class CreateOfferRequest(BaseModel):
    """Request body for placing an offer on a listing."""

    listing_id: uuid.UUID
    amount: Decimal | None = Field(
        default=None,
        gt=0,
        decimal_places=2,
        description="Offered price. Ignored for buy-now offers, which carry the listing price.",
        examples=[95000],
    )
    message: str | None = Field(default=None, max_length=2000)
    is_buy_now: bool = False

    @model_validator(mode="after")
    def _amount_required_unless_buy_now(self) -> CreateOfferRequest:
        if not self.is_buy_now and self.amount is None:
            raise ValueError("amount is required unless is_buy_now is set")
        return self


class CounterOfferRequest(BaseModel):
    """Request body for a seller's counter offer."""

    counter_amount: Decimal = Field(..., gt=0, decimal_places=2, examples=[98000])
    message: str | None = Field(default=None, max_length=2000)


class RejectOfferRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=2000)


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class OfferResponse(BaseModel):
    """An offer as seen by its buyer, seller or an admin."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    listing_id: uuid.UUID
    buyer_id: uuid.UUID
    seller_id: uuid.UUID
    amount: Decimal
    counter_amount: Decimal | None
    message: str | None
    counter_message: str | None
    is_buy_now: bool
    status: str
    responded_at: datetime | None
    created_at: datetime
