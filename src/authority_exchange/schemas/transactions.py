"""Pydantic schemas for escrow transactions, payments and the timeline."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from authority_exchange.domain.enums import DisputeResolution, PaymentMethod

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class AdminCreateTransactionRequest(BaseModel):
    """Request body for an admin opening a transaction without a negotiated offer."""

    listing_id: uuid.UUID
    buyer_id: uuid.UUID
    agreed_price: Decimal = Field(..., gt=0, decimal_places=2, examples=[100000])
    deposit_amount: Decimal | None = Field(
        default=None,
        gt=0,
        decimal_places=2,
        description="Overrides the computed deposit when given",
    )
    notes: str | None = Field(default=None, max_length=2000)


class SubmitPaymentRequest(BaseModel):
    """Request body for submitting a deposit or the final payment."""

    method: PaymentMethod
    reference: str | None = Field(
        default=None,
        max_length=255,
        description="Wire confirmation, check number or gateway reference",
    )


class VerifyPaymentRequest(BaseModel):
    payment_id: uuid.UUID


class FailPaymentRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=2000)


class GatewayEventRequest(BaseModel):
    """Settle/fail event forwarded by the payment collaborator."""

    payment_id: uuid.UUID
    succeeded: bool
    failure_reason: str | None = Field(default=None, max_length=2000)


class CancelTransactionRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=2000)


class OpenDisputeRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=2000)


class ResolveDisputeRequest(BaseModel):
    resolution: DisputeResolution
    note: str | None = Field(default=None, max_length=2000)


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class TransactionResponse(BaseModel):
    """Full transaction record."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    offer_id: uuid.UUID
    listing_id: uuid.UUID
    buyer_id: uuid.UUID
    seller_id: uuid.UUID
    agreed_price: Decimal
    deposit_amount: Decimal
    platform_fee: Decimal
    final_payment_amount: Decimal
    status: str
    status_before_dispute: str | None
    buyer_accepted_terms: bool
    seller_accepted_terms: bool
    buyer_approved: bool
    seller_approved: bool
    deposit_received_at: datetime | None
    admin_approved_at: datetime | None
    final_payment_received_at: datetime | None
    completed_at: datetime | None
    cancelled_at: datetime | None
    cancellation_reason: str | None
    disputed_at: datetime | None
    dispute_reason: str | None
    created_at: datetime


class PartyContactResponse(BaseModel):
    """Counterparty details; contact fields are null while withheld."""

    model_config = ConfigDict(from_attributes=True)

    name: str
    email: str | None
    phone: str | None
    company_name: str | None


class TransactionViewResponse(BaseModel):
    """Transaction projection for one viewer."""

    model_config = ConfigDict(from_attributes=True)

    transaction: TransactionResponse
    viewer_role: str
    buyer: PartyContactResponse
    seller: PartyContactResponse
    buyer_contact_visible: bool
    seller_contact_visible: bool


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    transaction_id: uuid.UUID
    payer_id: uuid.UUID
    type: str
    amount: Decimal
    method: str
    status: str
    reference: str | None
    failure_reason: str | None
    verified_by: uuid.UUID | None
    verified_at: datetime | None
    created_at: datetime


class TimelineEntryResponse(BaseModel):
    """One entry of the append-only transaction audit trail."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    transaction_id: uuid.UUID
    status: str
    title: str
    description: str | None
    actor_id: uuid.UUID | None
    actor_role: str
    metadata: dict | None = Field(default=None, validation_alias="metadata_json")
    created_at: datetime
