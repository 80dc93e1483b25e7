"""
Copy Trading - Allocation Calculator.

============================================================
PURPOSE
============================================================
Turns a source trade into a raw quantity for one follower.

MODES:
- mirror:     same quantity as the source trade
- fixed:      floor(fixed_amount / price)
- percentage: floor(percentage / 100 * balance / price)

Pure function. No I/O. Deterministic.

============================================================
"""

import math
from decimal import Decimal

from .types import (
    AllocationMode,
    AllocationPolicy,
    FollowerAccount,
    InvalidInputError,
    SourceTrade,
)


ZERO = Decimal("0")
HUNDRED = Decimal("100")


def floor_units(value: Decimal) -> Decimal:
    """Round down to a whole unit, never below zero."""
    return max(Decimal(math.floor(value)), ZERO)


def compute_quantity(
    policy: AllocationPolicy,
    source_trade: SourceTrade,
    follower: FollowerAccount,
) -> Decimal:
    """
    Compute the raw target quantity for a follower.

    Args:
        policy: Allocation policy snapshot
        source_trade: Trade being copied
        follower: Receiving account

    Returns:
        Non-negative quantity

    Raises:
        InvalidInputError: If the source price is not positive
    """
    price = Decimal(source_trade.price)
    if price <= 0:
        raise InvalidInputError(
            f"Source trade price must be positive, got {price}"
        )

    if policy.mode == AllocationMode.MIRROR:
        return max(Decimal(source_trade.quantity), ZERO)

    if policy.mode == AllocationMode.FIXED:
        if not policy.fixed_amount:
            return ZERO
        return floor_units(Decimal(policy.fixed_amount) / price)

    if policy.mode == AllocationMode.PERCENTAGE:
        if not policy.percentage:
            return ZERO
        trade_value = Decimal(follower.balance) * (Decimal(policy.percentage) / HUNDRED)
        return floor_units(trade_value / price)

    raise InvalidInputError(f"Unknown allocation mode: {policy.mode}")
