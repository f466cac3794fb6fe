"""Pydantic schemas for the credit ledger."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from authority_exchange.domain.enums import CreditTransactionType


class GrantCreditsRequest(BaseModel):
    """Admin grant or recorded purchase."""

    amount: int = Field(..., gt=0, le=10_000)
    reason: str = Field(..., min_length=1, max_length=255)
    type: CreditTransactionType = CreditTransactionType.BONUS


class RefundCreditsRequest(BaseModel):
    amount: int = Field(..., gt=0, le=10_000)
    reason: str = Field(..., min_length=1, max_length=255)


class CreditBalanceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total: int
    used: int
    available: int


class CreditTransactionResponse(BaseModel):
    """One immutable ledger entry."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: uuid.UUID
    type: str
    amount: int
    balance_after: int
    reason: str
    reference_type: str | None
    reference_id: str | None
    created_at: datetime


class CreditHistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    entries: list[CreditTransactionResponse]
    total: int
    page: int
    limit: int
