"""Application services - use case orchestration."""

from authority_exchange.services.account_dispute_service import AccountDisputeService
from authority_exchange.services.credit_ledger import CreditLedger
from authority_exchange.services.escrow_service import EscrowService
from authority_exchange.services.offer_service import OfferService
from authority_exchange.services.premium_service import PremiumAccessService

__all__ = [
    "AccountDisputeService",
    "CreditLedger",
    "EscrowService",
    "OfferService",
    "PremiumAccessService",
]
