"""
Copy Trading - Risk Evaluator.

============================================================
PURPOSE
============================================================
Clamps a proposed quantity against the configured ceilings.

ORDER OF CHECKS (must be preserved):
1. max_trade_size            (absolute trade value)
2. max_percentage_per_trade  (value / account balance)

Both limits only ever reduce quantity. The size clamp runs
first; swapping the two can change the result when both bind.

============================================================
"""

import logging
from decimal import Decimal

from .allocation import floor_units, HUNDRED, ZERO
from .types import InvalidInputError, RiskAdjustment, RiskLimits, RiskResult


logger = logging.getLogger(__name__)


MAX_TRADE_SIZE = "max_trade_size"
MAX_PERCENTAGE_PER_TRADE = "max_percentage_per_trade"


def apply_risk_limits(
    limits: RiskLimits,
    quantity: Decimal,
    price: Decimal,
    account_balance: Decimal,
) -> RiskResult:
    """
    Apply risk ceilings to a proposed quantity.

    Args:
        limits: Risk limits snapshot
        quantity: Proposed quantity
        price: Price per unit
        account_balance: Follower balance

    Returns:
        RiskResult with the (possibly reduced) quantity and the
        adjustments that fired, for the caller to persist

    Raises:
        InvalidInputError: If price is not positive
    """
    quantity = Decimal(quantity)

    if not limits.enabled:
        return RiskResult(quantity=quantity)

    price = Decimal(price)
    if price <= 0:
        raise InvalidInputError(f"Price must be positive, got {price}")

    account_balance = Decimal(account_balance)
    adjustments = []

    # 1. Absolute size
    max_size = limits.max_trade_size
    if max_size is not None and max_size > 0:
        trade_value = quantity * price
        if trade_value > max_size:
            clamped = min(floor_units(Decimal(max_size) / price), quantity)
            adjustments.append(RiskAdjustment(MAX_TRADE_SIZE, quantity, clamped))
            quantity = clamped

    # 2. Share of balance, on the already-clamped quantity
    max_pct = limits.max_percentage_per_trade
    if max_pct is not None:
        trade_value = quantity * price
        if account_balance <= 0:
            if trade_value > 0:
                adjustments.append(
                    RiskAdjustment(MAX_PERCENTAGE_PER_TRADE, quantity, ZERO)
                )
                quantity = ZERO
        else:
            pct_of_balance = trade_value / account_balance * HUNDRED
            if pct_of_balance > max_pct:
                allowed_value = Decimal(max_pct) / HUNDRED * account_balance
                clamped = min(floor_units(allowed_value / price), quantity)
                adjustments.append(
                    RiskAdjustment(MAX_PERCENTAGE_PER_TRADE, quantity, clamped)
                )
                quantity = clamped

    for adj in adjustments:
        logger.debug(
            f"Risk clamp {adj.reason}: {adj.from_quantity} -> {adj.to_quantity}"
        )

    return RiskResult(quantity=quantity, adjustments=adjustments)
