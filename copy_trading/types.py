"""
Copy Trading - Types.

============================================================
PURPOSE
============================================================
All type definitions for the copy-trade execution pipeline.

CRITICAL PRINCIPLE:
    "Copy Trading REPLICATES, it does not decide."
    "It sizes and submits a trade that already happened."

============================================================
"""

from datetime import datetime
from typing import Optional, Dict, Any, List, FrozenSet
from dataclasses import dataclass, field
from enum import Enum
from decimal import Decimal


# ============================================================
# ORDER TYPES
# ============================================================

class OrderSide(Enum):
    """Order side."""

    BUY = "buy"
    SELL = "sell"


class OrderType(Enum):
    """Order type."""

    MARKET = "market"
    """Execute at current market price."""

    LIMIT = "limit"
    """Execute at specified price or better."""


class OptionType(Enum):
    """Option right."""

    CALL = "call"
    PUT = "put"


# ============================================================
# POLICY TYPES
# ============================================================

class AllocationMode(Enum):
    """How a copied order is sized for a follower."""

    FIXED = "fixed"
    """Fixed dollar amount per copied trade."""

    PERCENTAGE = "percentage"
    """Percentage of the follower's balance."""

    MIRROR = "mirror"
    """Same quantity as the source trade."""


# ============================================================
# AUDIT / RECORD STATES
# ============================================================

class CopyAttemptStatus(Enum):
    """
    CopyAttempt lifecycle.

    PENDING ──► SUCCESS
       │
       └──────► FAILED
    """

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"

    def is_terminal(self) -> bool:
        """Check if this is a terminal status."""
        return self in {CopyAttemptStatus.SUCCESS, CopyAttemptStatus.FAILED}


class TradeStatus(Enum):
    """Status of a trade record."""

    PENDING = "pending"
    FILLED = "filled"
    CANCELED = "canceled"
    REJECTED = "rejected"


class TradeKind(Enum):
    """Origin of a trade record."""

    MANUAL = "manual"
    COPY = "copy"


class NotificationType(Enum):
    """Notification severity as shown to operators."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class LogLevel(Enum):
    """Audit log level."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


# ============================================================
# BROKER TYPES
# ============================================================

class BrokerType(Enum):
    """Supported broker identifiers."""

    TASTYTRADE = "tastytrade"
    SCHWAB = "schwab"
    MOCK = "mock"


class ConnectionStatus(Enum):
    """Broker connection health."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    ERROR = "error"


# ============================================================
# SOURCE TRADE
# ============================================================

@dataclass(frozen=True)
class OptionLegDetails:
    """Option leg of a source trade."""

    expiration_date: str
    """Expiration in YYYY-MM-DD."""

    strike_price: Decimal
    """Strike price."""

    option_type: OptionType
    """Call or put."""


@dataclass(frozen=True)
class SourceTrade:
    """
    Executed trade on the master account.

    This is the INPUT to the copy pipeline. Immutable once created.
    """

    id: int
    """Monotonically assigned trade identifier."""

    broker_account_id: int
    """Account the trade was executed on (the source account)."""

    symbol: str
    side: OrderSide
    quantity: Decimal
    price: Decimal
    """Fill price."""

    order_type: OrderType = OrderType.MARKET
    limit_price: Optional[Decimal] = None
    is_option: bool = False
    option_details: Optional[OptionLegDetails] = None


# ============================================================
# ACCOUNTS & CREDENTIALS
# ============================================================

@dataclass(frozen=True)
class FollowerAccount:
    """Brokerage account eligible to receive copies."""

    id: int
    """Internal account identifier."""

    credential_id: int
    """Owning broker credential."""

    broker_type: str
    """Broker type tag of the owning credential."""

    account_number: str
    """Broker-side account number."""

    account_name: str = ""
    balance: Decimal = Decimal("0")
    buying_power: Decimal = Decimal("0")
    is_active: bool = True


@dataclass(frozen=True)
class BrokerCredential:
    """Bearer credential for one broker login."""

    credential_id: int
    broker_type: str
    access_token: Optional[str] = None
    expires_at: Optional[datetime] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Check if the token expiry has passed."""
        if self.expires_at is None:
            return False
        return self.expires_at < (now or datetime.utcnow())


# ============================================================
# CONFIGURATION SNAPSHOT
# ============================================================

@dataclass(frozen=True)
class AllocationPolicy:
    """
    Sizing policy, loaded once per copy event.

    Only the field belonging to `mode` is consulted.
    """

    is_active: bool = False
    mode: AllocationMode = AllocationMode.PERCENTAGE
    fixed_amount: Optional[Decimal] = None
    percentage: Optional[Decimal] = None


@dataclass(frozen=True)
class RiskLimits:
    """Advisory ceilings. Clamp quantity downward, never reject."""

    enabled: bool = False
    max_trade_size: Optional[Decimal] = None
    """Maximum absolute trade value."""

    max_percentage_per_trade: Optional[Decimal] = None
    """Maximum trade value as a percentage of account balance."""


@dataclass(frozen=True)
class SymbolPolicyEntry:
    """One allow-list entry."""

    symbol: str
    is_active: bool = True


@dataclass(frozen=True)
class SymbolPolicy:
    """Set of symbols allowed to be copy-traded."""

    entries: FrozenSet[SymbolPolicyEntry] = frozenset()

    @classmethod
    def of(cls, *symbols: str) -> "SymbolPolicy":
        """Build a policy where every given symbol is active."""
        return cls(entries=frozenset(SymbolPolicyEntry(s) for s in symbols))

    def is_allowed(self, symbol: str) -> bool:
        """True only if the symbol is present AND active."""
        wanted = normalize_symbol(symbol)
        return any(
            e.is_active and normalize_symbol(e.symbol) == wanted
            for e in self.entries
        )


@dataclass(frozen=True)
class PolicySnapshot:
    """Consistent read of every setting one copy event depends on."""

    allocation: AllocationPolicy
    risk: RiskLimits
    symbols: SymbolPolicy
    taken_at: datetime = field(default_factory=datetime.utcnow)


def normalize_symbol(symbol: str) -> str:
    """Canonical form used for allow-list comparison."""
    return (symbol or "").strip().upper()


# ============================================================
# RISK RESULT
# ============================================================

@dataclass
class RiskAdjustment:
    """A single downward clamp applied by the risk evaluator."""

    reason: str
    """Which limit fired (max_trade_size / max_percentage_per_trade)."""

    from_quantity: Decimal
    to_quantity: Decimal


@dataclass
class RiskResult:
    """Output of the risk evaluator."""

    quantity: Decimal
    adjustments: List[RiskAdjustment] = field(default_factory=list)

    @property
    def was_clamped(self) -> bool:
        return bool(self.adjustments)


# ============================================================
# EVENT RESULTS
# ============================================================

class CopyEventOutcome(Enum):
    """How a copy event ended."""

    COMPLETED = "completed"
    """All followers reached a terminal status."""

    SYMBOL_REJECTED = "symbol_rejected"
    """Symbol not on the active allow-list."""

    NOT_ACTIVE = "not_active"
    """Copy trading is switched off."""

    NO_TARGETS = "no_targets"
    """No eligible follower accounts."""

    SOURCE_NOT_FOUND = "source_not_found"
    """Source account does not exist."""

    FAILED = "failed"
    """Event-fatal error (configuration load, invariant)."""


@dataclass
class FollowerResult:
    """Per-follower outcome of one copy event."""

    follower_id: int
    success: bool
    account_name: str = ""
    quantity: Decimal = Decimal("0")
    copy_attempt_id: Optional[int] = None
    trade_id: Optional[int] = None
    broker_order_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class CopyEventResult:
    """
    Result returned to the caller of `on_source_trade_filled`.

    Never persisted directly.
    """

    success: bool
    message: str
    outcome: CopyEventOutcome
    source_trade_id: Optional[int] = None
    results: List[FollowerResult] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failure_count(self) -> int:
        return sum(1 for r in self.results if not r.success)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "success": self.success,
            "message": self.message,
            "outcome": self.outcome.value,
            "source_trade_id": self.source_trade_id,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "results": [
                {
                    "follower_id": r.follower_id,
                    "account_name": r.account_name,
                    "success": r.success,
                    "quantity": str(r.quantity),
                    "trade_id": r.trade_id,
                    "error": r.error,
                }
                for r in self.results
            ],
        }


# ============================================================
# EXCEPTIONS
# ============================================================

class CopyTradingError(Exception):
    """Base exception for the copy-trade pipeline."""
    pass


class InvalidInputError(CopyTradingError):
    """Input would produce an undefined calculation (e.g. price <= 0)."""
    pass


class ConfigurationLoadError(CopyTradingError):
    """Policy, limits or accounts could not be read."""
    pass


class UnsupportedBrokerError(CopyTradingError):
    """No adapter registered for a broker type."""

    def __init__(self, broker_type: str):
        super().__init__(f"Unsupported broker type: {broker_type}")
        self.broker_type = broker_type


class CredentialError(CopyTradingError):
    """No usable bearer credential for a follower."""
    pass


class InvariantViolation(CopyTradingError):
    """An internal invariant was broken."""
    pass


class BrokerError(CopyTradingError):
    """Transport-level broker failure."""

    def __init__(
        self,
        message: str,
        broker_type: Optional[str] = None,
        http_status: Optional[int] = None,
    ):
        super().__init__(message)
        self.broker_type = broker_type
        self.http_status = http_status


class BrokerTimeoutError(BrokerError):
    """Broker did not answer in time."""
    pass


class BrokerAuthenticationError(BrokerError):
    """Broker rejected the credential."""
    pass


class MalformedResponseError(BrokerError):
    """Broker answered with something that is not parseable."""
    pass
