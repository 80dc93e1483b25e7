"""
Allocation Calculator Tests.

============================================================
PURPOSE
============================================================
Sizing of copied orders per allocation mode.

============================================================
"""

from decimal import Decimal

import pytest

from copy_trading.allocation import compute_quantity, floor_units
from copy_trading.types import (
    AllocationMode,
    AllocationPolicy,
    FollowerAccount,
    InvalidInputError,
    OrderSide,
    SourceTrade,
)


def make_trade(quantity="10", price="150", symbol="AAPL"):
    return SourceTrade(
        id=1,
        broker_account_id=1,
        symbol=symbol,
        side=OrderSide.BUY,
        quantity=Decimal(quantity),
        price=Decimal(price),
    )


def make_follower(balance="100000"):
    return FollowerAccount(
        id=2,
        credential_id=1,
        broker_type="mock",
        account_number="ACC-2",
        balance=Decimal(balance),
        buying_power=Decimal(balance),
    )


# ============================================================
# MODES
# ============================================================

class TestAllocationModes:
    """Tests for each allocation mode."""

    def test_mirror_copies_source_quantity(self):
        policy = AllocationPolicy(is_active=True, mode=AllocationMode.MIRROR)

        qty = compute_quantity(policy, make_trade("10", "150"), make_follower())

        assert qty == Decimal("10")

    def test_fixed_amount(self):
        policy = AllocationPolicy(
            is_active=True,
            mode=AllocationMode.FIXED,
            fixed_amount=Decimal("1000"),
        )

        qty = compute_quantity(policy, make_trade(price="150"), make_follower())

        # floor(1000 / 150) = 6
        assert qty == Decimal("6")

    def test_percentage_of_balance(self):
        policy = AllocationPolicy(
            is_active=True,
            mode=AllocationMode.PERCENTAGE,
            percentage=Decimal("50"),
        )

        qty = compute_quantity(policy, make_trade(price="100"), make_follower("10000"))

        assert qty == Decimal("50")

    def test_percentage_rounds_to_zero(self):
        policy = AllocationPolicy(
            is_active=True,
            mode=AllocationMode.PERCENTAGE,
            percentage=Decimal("1"),
        )

        qty = compute_quantity(policy, make_trade(price="100000"), make_follower("50"))

        assert qty == Decimal("0")

    def test_fixed_without_amount_is_zero(self):
        policy = AllocationPolicy(is_active=True, mode=AllocationMode.FIXED)

        assert compute_quantity(policy, make_trade(), make_follower()) == 0

    def test_percentage_without_percentage_is_zero(self):
        policy = AllocationPolicy(
            is_active=True,
            mode=AllocationMode.PERCENTAGE,
            fixed_amount=Decimal("5000"),
        )

        # Fields of other modes are ignored
        assert compute_quantity(policy, make_trade(), make_follower()) == 0

    def test_negative_balance_never_negative_quantity(self):
        policy = AllocationPolicy(
            is_active=True,
            mode=AllocationMode.PERCENTAGE,
            percentage=Decimal("10"),
        )

        qty = compute_quantity(policy, make_trade(price="10"), make_follower("-5000"))

        assert qty == Decimal("0")


# ============================================================
# INPUT VALIDATION
# ============================================================

class TestAllocationValidation:
    """Tests for the price guard."""

    @pytest.mark.parametrize("price", ["0", "-1"])
    @pytest.mark.parametrize("mode", list(AllocationMode))
    def test_non_positive_price_raises(self, price, mode):
        policy = AllocationPolicy(
            is_active=True,
            mode=mode,
            fixed_amount=Decimal("1000"),
            percentage=Decimal("10"),
        )

        with pytest.raises(InvalidInputError):
            compute_quantity(policy, make_trade(price=price), make_follower())

    def test_deterministic(self):
        policy = AllocationPolicy(
            is_active=True,
            mode=AllocationMode.PERCENTAGE,
            percentage=Decimal("33.3"),
        )
        trade = make_trade(price="17.35")
        follower = make_follower("98765.43")

        results = {compute_quantity(policy, trade, follower) for _ in range(5)}

        assert len(results) == 1


class TestFloorUnits:
    """Tests for whole-unit rounding."""

    def test_floors_fraction(self):
        assert floor_units(Decimal("6.99")) == Decimal("6")

    def test_clamps_negative(self):
        assert floor_units(Decimal("-3.2")) == Decimal("0")
