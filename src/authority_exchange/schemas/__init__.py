"""Pydantic API schemas."""

from authority_exchange.schemas.common import ErrorResponse, HealthResponse
from authority_exchange.schemas.credits import (
    CreditBalanceResponse,
    CreditHistoryResponse,
    CreditTransactionResponse,
    GrantCreditsRequest,
    RefundCreditsRequest,
)
from authority_exchange.schemas.disputes import (
    AccountDisputeResponse,
    BlockAccountRequest,
    DisputeDecisionRequest,
    SubmitDisputeRequest,
    SweepResponse,
)
from authority_exchange.schemas.offers import (
    CounterOfferRequest,
    CreateOfferRequest,
    OfferResponse,
    RejectOfferRequest,
)
from authority_exchange.schemas.premium import (
    PremiumAccessRequest,
    PremiumAdminActionRequest,
    PremiumRequestResponse,
)
from authority_exchange.schemas.transactions import (
    AdminCreateTransactionRequest,
    CancelTransactionRequest,
    FailPaymentRequest,
    GatewayEventRequest,
    OpenDisputeRequest,
    PartyContactResponse,
    PaymentResponse,
    ResolveDisputeRequest,
    SubmitPaymentRequest,
    TimelineEntryResponse,
    TransactionResponse,
    TransactionViewResponse,
    VerifyPaymentRequest,
)

__all__ = [
    "AccountDisputeResponse",
    "AdminCreateTransactionRequest",
    "BlockAccountRequest",
    "CancelTransactionRequest",
    "CounterOfferRequest",
    "CreateOfferRequest",
    "CreditBalanceResponse",
    "CreditHistoryResponse",
    "CreditTransactionResponse",
    "DisputeDecisionRequest",
    "ErrorResponse",
    "FailPaymentRequest",
    "GatewayEventRequest",
    "GrantCreditsRequest",
    "HealthResponse",
    "OfferResponse",
    "OpenDisputeRequest",
    "PartyContactResponse",
    "PaymentResponse",
    "PremiumAccessRequest",
    "PremiumAdminActionRequest",
    "PremiumRequestResponse",
    "RefundCreditsRequest",
    "RejectOfferRequest",
    "ResolveDisputeRequest",
    "SubmitDisputeRequest",
    "SubmitPaymentRequest",
    "SweepResponse",
    "TimelineEntryResponse",
    "TransactionResponse",
    "TransactionViewResponse",
    "VerifyPaymentRequest",
]
