"""
Risk Evaluator Tests.

============================================================
PURPOSE
============================================================
Downward-only clamping of copied quantities.

TEST CATEGORIES:
- Disabled limits
- Max trade size clamp
- Max percentage of balance clamp
- Ordering and monotonicity

============================================================
"""

from decimal import Decimal

import pytest

from copy_trading.risk import (
    apply_risk_limits,
    MAX_TRADE_SIZE,
    MAX_PERCENTAGE_PER_TRADE,
)
from copy_trading.types import InvalidInputError, RiskLimits


D = Decimal


class TestRiskDisabled:
    """Tests with risk controls switched off."""

    def test_returns_input_unchanged(self):
        limits = RiskLimits(enabled=False, max_trade_size=D("100"))

        result = apply_risk_limits(limits, D("50"), D("100"), D("10000"))

        assert result.quantity == D("50")
        assert result.adjustments == []
        assert not result.was_clamped

    def test_price_not_checked_when_disabled(self):
        result = apply_risk_limits(RiskLimits(enabled=False), D("5"), D("0"), D("100"))

        assert result.quantity == D("5")


class TestMaxTradeSize:
    """Tests for the absolute size clamp."""

    def test_clamps_to_max_trade_size(self):
        limits = RiskLimits(enabled=True, max_trade_size=D("2000"))

        result = apply_risk_limits(limits, D("50"), D("100"), D("10000"))

        assert result.quantity == D("20")
        assert len(result.adjustments) == 1
        adj = result.adjustments[0]
        assert adj.reason == MAX_TRADE_SIZE
        assert adj.from_quantity == D("50")
        assert adj.to_quantity == D("20")

    def test_within_limit_untouched(self):
        limits = RiskLimits(enabled=True, max_trade_size=D("10000"))

        result = apply_risk_limits(limits, D("50"), D("100"), D("10000"))

        assert result.quantity == D("50")
        assert result.adjustments == []

    @pytest.mark.parametrize("max_size", [None, D("0"), D("-10")])
    def test_non_positive_or_missing_disables_clamp(self, max_size):
        limits = RiskLimits(enabled=True, max_trade_size=max_size)

        result = apply_risk_limits(limits, D("50"), D("100"), D("10000"))

        assert result.quantity == D("50")

    def test_clamp_can_reach_zero(self):
        limits = RiskLimits(enabled=True, max_trade_size=D("50"))

        result = apply_risk_limits(limits, D("3"), D("100"), D("10000"))

        assert result.quantity == D("0")


class TestMaxPercentage:
    """Tests for the share-of-balance clamp."""

    def test_clamps_to_percentage_of_balance(self):
        limits = RiskLimits(enabled=True, max_percentage_per_trade=D("5"))

        result = apply_risk_limits(limits, D("50"), D("100"), D("10000"))

        # 5% of 10000 = 500 -> floor(500 / 100) = 5
        assert result.quantity == D("5")
        assert result.adjustments[0].reason == MAX_PERCENTAGE_PER_TRADE

    def test_zero_percentage_is_enforced(self):
        limits = RiskLimits(enabled=True, max_percentage_per_trade=D("0"))

        result = apply_risk_limits(limits, D("10"), D("100"), D("10000"))

        assert result.quantity == D("0")

    def test_zero_balance_clamps_to_zero(self):
        limits = RiskLimits(enabled=True, max_percentage_per_trade=D("10"))

        result = apply_risk_limits(limits, D("10"), D("100"), D("0"))

        assert result.quantity == D("0")
        assert result.adjustments[0].reason == MAX_PERCENTAGE_PER_TRADE

    def test_missing_percentage_disables_clamp(self):
        limits = RiskLimits(enabled=True, max_percentage_per_trade=None)

        result = apply_risk_limits(limits, D("10"), D("100"), D("0"))

        assert result.quantity == D("10")


class TestRiskOrdering:
    """Tests for clamp order and monotonicity."""

    def test_size_then_percentage(self):
        limits = RiskLimits(
            enabled=True,
            max_trade_size=D("3000"),
            max_percentage_per_trade=D("20"),
        )

        result = apply_risk_limits(limits, D("100"), D("100"), D("10000"))

        # 100 -> 30 (size) -> 20 (20% of 10000 / 100)
        assert result.quantity == D("20")
        assert [a.reason for a in result.adjustments] == [
            MAX_TRADE_SIZE,
            MAX_PERCENTAGE_PER_TRADE,
        ]

    def test_never_increases(self):
        limits = RiskLimits(
            enabled=True,
            max_trade_size=D("1000000"),
            max_percentage_per_trade=D("99"),
        )

        result = apply_risk_limits(limits, D("3"), D("100"), D("100"))

        assert result.quantity <= D("3")

    def test_idempotent(self):
        limits = RiskLimits(
            enabled=True,
            max_trade_size=D("2500"),
            max_percentage_per_trade=D("10"),
        )

        first = apply_risk_limits(limits, D("80"), D("37"), D("20000"))
        second = apply_risk_limits(limits, first.quantity, D("37"), D("20000"))

        assert second.quantity == first.quantity
        assert second.adjustments == []

    def test_non_positive_price_raises(self):
        limits = RiskLimits(enabled=True, max_trade_size=D("1000"))

        with pytest.raises(InvalidInputError):
            apply_risk_limits(limits, D("10"), D("0"), D("10000"))
