"""Escrow pricing arithmetic.

Pure functions over Decimal; every amount is quantized to cents with
ROUND_HALF_UP so the numbers stored on a transaction match what the
parties see on an invoice.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

CENTS = Decimal("0.01")
HUNDRED = Decimal("100")


def to_money(value: Decimal | int | str) -> Decimal:
    """Quantize a value to cents."""
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PricingPolicy:
    """Deposit and platform-fee rules applied when a transaction is created.

    Attributes:
        deposit_percentage: Share of the price held as deposit, in percent.
        min_deposit: Lower clamp for the deposit.
        max_deposit: Upper clamp for the deposit.
        fee_percentage: Platform fee, in percent of the price.
    """

    deposit_percentage: Decimal = Decimal("10")
    min_deposit: Decimal = Decimal("500")
    max_deposit: Decimal = Decimal("10000")
    fee_percentage: Decimal = Decimal("3")

    def __post_init__(self) -> None:
        if self.min_deposit > self.max_deposit:
            raise ValueError(
                f"min_deposit {self.min_deposit} exceeds max_deposit {self.max_deposit}"
            )

    @classmethod
    def from_settings(cls, settings) -> PricingPolicy:  # noqa: ANN001
        return cls(
            deposit_percentage=settings.deposit_percentage,
            min_deposit=settings.min_deposit,
            max_deposit=settings.max_deposit,
            fee_percentage=settings.transaction_fee_percentage,
        )

    def deposit_for(self, price: Decimal) -> Decimal:
        """clamp(price * pct, min_deposit, max_deposit)."""
        raw = price * self.deposit_percentage / HUNDRED
        return to_money(min(max(raw, self.min_deposit), self.max_deposit))

    def fee_for(self, price: Decimal) -> Decimal:
        return to_money(price * self.fee_percentage / HUNDRED)

    def final_payment_for(self, price: Decimal, deposit: Decimal) -> Decimal:
        """Balance due after the deposit; never negative."""
        return to_money(max(price - deposit, Decimal("0")))
