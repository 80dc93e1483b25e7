"""
Copy Trading - Adapters Package.

============================================================
PURPOSE
============================================================
Broker adapter implementations.

AVAILABLE ADAPTERS:
- TastytradeAdapter: tastytrade REST API
- SchwabAdapter: Schwab REST API
- MockBrokerAdapter: For testing

UTILITIES:
- BrokerRegistry: broker type -> adapter
- mask_value / mask_account / mask_headers / mask_params: secure logging

============================================================
"""

# Base types
from .base import (
    BrokerAdapter,
    RestBrokerAdapter,
    OrderSpec,
    SubmitOrderResponse,
    HealthStatus,
    AccountBalance,
    PositionInfo,
    extract_error_message,
)

# Adapters
from .tastytrade import TastytradeAdapter
from .schwab import SchwabAdapter
from .mock import MockBrokerAdapter, MockConfig, MockSubmission

# Registry
from .registry import BrokerRegistry, create_default_registry

# Logging
from .logging_utils import mask_value, mask_account, mask_headers, mask_params


__all__ = [
    # Base
    "BrokerAdapter",
    "RestBrokerAdapter",
    "OrderSpec",
    "SubmitOrderResponse",
    "HealthStatus",
    "AccountBalance",
    "PositionInfo",
    "extract_error_message",
    # Adapters
    "TastytradeAdapter",
    "SchwabAdapter",
    "MockBrokerAdapter",
    "MockConfig",
    "MockSubmission",
    # Registry
    "BrokerRegistry",
    "create_default_registry",
    # Logging
    "mask_value",
    "mask_account",
    "mask_headers",
    "mask_params",
]
