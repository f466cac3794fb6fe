"""Pydantic schemas for account blocks and disputes."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class BlockAccountRequest(BaseModel):
    """Raised by the payment collaborator when a cardholder name mismatches."""

    user_id: uuid.UUID
    cardholder_name: str = Field(..., min_length=1, max_length=200)
    account_name: str = Field(..., min_length=1, max_length=200)
    reason: str | None = Field(default=None, max_length=2000)


class SubmitDisputeRequest(BaseModel):
    explanation: str = Field(..., min_length=1, max_length=5000)
    contact_email: str | None = Field(default=None, max_length=255)


class DisputeDecisionRequest(BaseModel):
    note: str | None = Field(default=None, max_length=2000)


class AccountDisputeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    cardholder_name: str
    account_name: str
    blocked_reason: str | None
    status: str
    explanation: str | None
    contact_email: str | None
    submitted_at: datetime | None
    auto_unblock_at: datetime | None
    resolved_at: datetime | None
    resolved_by: uuid.UUID | None
    resolution_note: str | None
    created_at: datetime


class SweepResponse(BaseModel):
    resolved: int
