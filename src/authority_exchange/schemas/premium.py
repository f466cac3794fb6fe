"""Pydantic schemas for premium access requests."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class PremiumAccessRequest(BaseModel):
    listing_id: uuid.UUID
    message: str | None = Field(default=None, max_length=2000)


class PremiumAdminActionRequest(BaseModel):
    notes: str | None = Field(default=None, max_length=2000)


class PremiumRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    buyer_id: uuid.UUID
    listing_id: uuid.UUID
    message: str | None
    status: str
    admin_notes: str | None
    handled_by: uuid.UUID | None
    completed_at: datetime | None
    created_at: datetime


class UnlockedListingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    listing_id: uuid.UUID
    credits_used: int
    created_at: datetime


class UnlockResponse(UnlockedListingResponse):
    already_unlocked: bool
