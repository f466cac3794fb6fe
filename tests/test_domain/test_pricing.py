"""Tests for deposit and fee arithmetic."""

from __future__ import annotations

from decimal import Decimal

import pytest

from authority_exchange.domain.pricing import PricingPolicy, to_money


class TestDeposit:
    @pytest.mark.parametrize(
        ("price", "deposit"),
        [
            ("3000", "500.00"),  # 300 clamped up to the minimum
            ("50000", "5000.00"),
            ("250000", "10000.00"),  # 25000 clamped down to the maximum
        ],
    )
    def test_deposit_is_clamped_percentage(self, price: str, deposit: str) -> None:
        assert PricingPolicy().deposit_for(Decimal(price)) == Decimal(deposit)

    def test_final_payment_is_balance(self) -> None:
        policy = PricingPolicy()
        price = Decimal("50000")
        assert policy.final_payment_for(price, policy.deposit_for(price)) == Decimal("45000.00")

    def test_final_payment_never_negative(self) -> None:
        assert PricingPolicy().final_payment_for(Decimal("300"), Decimal("500")) == Decimal("0.00")


class TestFee:
    def test_fee_rounds_half_up(self) -> None:
        assert PricingPolicy().fee_for(Decimal("1000.50")) == Decimal("30.02")

    def test_to_money_quantizes(self) -> None:
        assert to_money("10.005") == Decimal("10.01")
        assert to_money(7) == Decimal("7.00")


class TestPolicyValidation:
    def test_min_above_max_rejected(self) -> None:
        with pytest.raises(ValueError, match="exceeds"):
            PricingPolicy(min_deposit=Decimal("100"), max_deposit=Decimal("50"))
