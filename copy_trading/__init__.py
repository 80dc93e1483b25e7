"""
Copy Trading Package.

============================================================
PURPOSE
============================================================
Mirrors trades from a source brokerage account into follower
accounts with configurable sizing and risk limits.

COMPONENTS:
- SymbolAllowListGate: precondition on the traded symbol
- compute_quantity: allocation (fixed / percentage / mirror)
- apply_risk_limits: downward-only risk clamps
- BrokerAdapter / BrokerRegistry: broker integration
- CopyTradeOrchestrator: one copy event end to end

============================================================
"""

from .types import (
    OrderSide,
    OrderType,
    OptionType,
    AllocationMode,
    CopyAttemptStatus,
    TradeStatus,
    TradeKind,
    NotificationType,
    LogLevel,
    BrokerType,
    ConnectionStatus,
    CopyEventOutcome,
    OptionLegDetails,
    SourceTrade,
    FollowerAccount,
    BrokerCredential,
    AllocationPolicy,
    RiskLimits,
    SymbolPolicy,
    SymbolPolicyEntry,
    PolicySnapshot,
    RiskAdjustment,
    RiskResult,
    FollowerResult,
    CopyEventResult,
    CopyTradingError,
    InvalidInputError,
    ConfigurationLoadError,
    UnsupportedBrokerError,
    CredentialError,
    InvariantViolation,
    BrokerError,
    BrokerTimeoutError,
    BrokerAuthenticationError,
    MalformedResponseError,
)
from .config import CopyTradingConfig, TimeoutConfig, BrokerEndpointConfig, ConcurrencyConfig
from .allocation import compute_quantity
from .risk import apply_risk_limits
from .symbol_gate import SymbolAllowListGate, GateDecision
from .database import Database, session_scope, init_db
from .repository import CopyTradeRepository
from .notifications import (
    NotificationSink,
    DatabaseNotificationSink,
    CallbackNotificationSink,
    LoggingNotificationSink,
    safe_emit,
)
from .credentials import CredentialProvider, StoredCredentialProvider, StaticCredentialProvider
from .orchestrator import CopyTradeOrchestrator


__all__ = [
    # Types
    "OrderSide",
    "OrderType",
    "OptionType",
    "AllocationMode",
    "CopyAttemptStatus",
    "TradeStatus",
    "TradeKind",
    "NotificationType",
    "LogLevel",
    "BrokerType",
    "ConnectionStatus",
    "CopyEventOutcome",
    "OptionLegDetails",
    "SourceTrade",
    "FollowerAccount",
    "BrokerCredential",
    "AllocationPolicy",
    "RiskLimits",
    "SymbolPolicy",
    "SymbolPolicyEntry",
    "PolicySnapshot",
    "RiskAdjustment",
    "RiskResult",
    "FollowerResult",
    "CopyEventResult",
    # Exceptions
    "CopyTradingError",
    "InvalidInputError",
    "ConfigurationLoadError",
    "UnsupportedBrokerError",
    "CredentialError",
    "InvariantViolation",
    "BrokerError",
    "BrokerTimeoutError",
    "BrokerAuthenticationError",
    "MalformedResponseError",
    # Config
    "CopyTradingConfig",
    "TimeoutConfig",
    "BrokerEndpointConfig",
    "ConcurrencyConfig",
    # Core
    "compute_quantity",
    "apply_risk_limits",
    "SymbolAllowListGate",
    "GateDecision",
    "CopyTradeOrchestrator",
    # Storage
    "Database",
    "session_scope",
    "init_db",
    "CopyTradeRepository",
    # Notifications / credentials
    "NotificationSink",
    "DatabaseNotificationSink",
    "CallbackNotificationSink",
    "LoggingNotificationSink",
    "safe_emit",
    "CredentialProvider",
    "StoredCredentialProvider",
    "StaticCredentialProvider",
]
