"""
Copy Trading - Symbol Allow-List Gate.

A symbol that is absent from the allow-list, or present but
inactive, blocks the ENTIRE copy event.
"""

from dataclasses import dataclass
from typing import Optional

from .types import SymbolPolicy, normalize_symbol


@dataclass
class GateDecision:
    """Outcome of a gate check."""

    allowed: bool
    symbol: str
    reason: Optional[str] = None


class SymbolAllowListGate:
    """Precondition check run before any follower is touched."""

    def __init__(self, policy: SymbolPolicy):
        self._policy = policy

    def is_allowed(self, symbol: str) -> bool:
        return self._policy.is_allowed(symbol)

    def check(self, symbol: str) -> GateDecision:
        if self.is_allowed(symbol):
            return GateDecision(allowed=True, symbol=normalize_symbol(symbol))
        return GateDecision(
            allowed=False,
            symbol=normalize_symbol(symbol),
            reason=f"Symbol {symbol} is not in the allowed list",
        )
