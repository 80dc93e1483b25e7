"""
Copy Trading - Error Taxonomy.

============================================================
PURPOSE
============================================================
Classification of every failure the pipeline can see.

ERROR CATEGORIES (pipeline):
1. GATE_REJECTION      - symbol not allowed, event-fatal
2. CONFIGURATION_LOAD  - settings unreadable, event-fatal
3. ZERO_QUANTITY       - sizing produced <= 0, follower-local
4. BROKER_SUBMIT       - broker said no / transport failed, follower-local
5. UNEXPECTED          - anything else inside a follower, follower-local

Only categories 1 and 2 end the whole event.

============================================================
"""

import asyncio
import logging
import re
from enum import Enum
from typing import List, Tuple

import aiohttp

from .types import (
    BrokerError,
    BrokerTimeoutError,
    BrokerAuthenticationError,
    MalformedResponseError,
    ConfigurationLoadError,
    InvalidInputError,
    UnsupportedBrokerError,
    CredentialError,
)


logger = logging.getLogger(__name__)


ZERO_QUANTITY_MESSAGE = "Calculated quantity is zero or negative"


# ============================================================
# PIPELINE TAXONOMY
# ============================================================

class ErrorCategory(Enum):
    """Where a failure sits in the copy pipeline."""

    GATE_REJECTION = "GATE_REJECTION"
    CONFIGURATION_LOAD = "CONFIGURATION_LOAD"
    ZERO_QUANTITY = "ZERO_QUANTITY"
    BROKER_SUBMIT = "BROKER_SUBMIT"
    UNEXPECTED = "UNEXPECTED"

    def is_event_fatal(self) -> bool:
        """Check if this category ends the whole copy event."""
        return self in {
            ErrorCategory.GATE_REJECTION,
            ErrorCategory.CONFIGURATION_LOAD,
        }


# ============================================================
# BROKER RESPONSE TAXONOMY
# ============================================================

class BrokerErrorCategory(Enum):
    """Standardized broker failure categories."""

    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    MARKET_CLOSED = "MARKET_CLOSED"
    INVALID_SYMBOL = "INVALID_SYMBOL"
    INVALID_ORDER = "INVALID_ORDER"
    AUTHENTICATION = "AUTHENTICATION"
    TIMEOUT = "TIMEOUT"
    NETWORK = "NETWORK"
    MALFORMED_RESPONSE = "MALFORMED_RESPONSE"
    UNKNOWN = "UNKNOWN"


# Ordered: first match wins
_REJECTION_PATTERNS: List[Tuple[re.Pattern, BrokerErrorCategory]] = [
    (re.compile(r"insufficient|buying power|not enough", re.IGNORECASE),
     BrokerErrorCategory.INSUFFICIENT_FUNDS),
    (re.compile(r"market (is )?closed|outside (of )?(regular )?trading hours", re.IGNORECASE),
     BrokerErrorCategory.MARKET_CLOSED),
    (re.compile(r"(invalid|unknown) (symbol|instrument)|symbol not found", re.IGNORECASE),
     BrokerErrorCategory.INVALID_SYMBOL),
    (re.compile(r"unauthori[sz]ed|invalid (session|token)|expired token", re.IGNORECASE),
     BrokerErrorCategory.AUTHENTICATION),
    (re.compile(r"timed? ?out", re.IGNORECASE),
     BrokerErrorCategory.TIMEOUT),
    (re.compile(r"invalid|rejected|not allowed", re.IGNORECASE),
     BrokerErrorCategory.INVALID_ORDER),
]


def classify_broker_message(message: str) -> BrokerErrorCategory:
    """
    Map a broker rejection text to a category.

    Args:
        message: Broker error message

    Returns:
        BrokerErrorCategory
    """
    if not message:
        return BrokerErrorCategory.UNKNOWN
    for pattern, category in _REJECTION_PATTERNS:
        if pattern.search(message):
            return category
    return BrokerErrorCategory.UNKNOWN


def classify_broker_exception(exc: BaseException) -> BrokerErrorCategory:
    """Map a raised transport failure to a category."""
    if isinstance(exc, (BrokerTimeoutError, asyncio.TimeoutError)):
        return BrokerErrorCategory.TIMEOUT
    if isinstance(exc, BrokerAuthenticationError):
        return BrokerErrorCategory.AUTHENTICATION
    if isinstance(exc, MalformedResponseError):
        return BrokerErrorCategory.MALFORMED_RESPONSE
    if isinstance(exc, (BrokerError, aiohttp.ClientError)):
        return BrokerErrorCategory.NETWORK
    return BrokerErrorCategory.UNKNOWN


def is_transport_failure(exc: BaseException) -> bool:
    """Check if an exception is a broker transport failure."""
    return isinstance(
        exc,
        (BrokerError, aiohttp.ClientError, asyncio.TimeoutError),
    )


def categorize_exception(exc: BaseException) -> ErrorCategory:
    """
    Place an exception in the pipeline taxonomy.

    Args:
        exc: Raised exception

    Returns:
        ErrorCategory
    """
    if isinstance(exc, ConfigurationLoadError):
        return ErrorCategory.CONFIGURATION_LOAD
    if is_transport_failure(exc) or isinstance(
        exc, (UnsupportedBrokerError, CredentialError)
    ):
        return ErrorCategory.BROKER_SUBMIT
    return ErrorCategory.UNEXPECTED


def describe_exception(exc: BaseException) -> str:
    """
    Message recorded on a failed CopyAttempt.

    Falls back to the exception class name when the message is empty.
    """
    if isinstance(exc, asyncio.TimeoutError) and not str(exc):
        return "Broker request timed out"
    if isinstance(exc, InvalidInputError):
        return f"Invalid input: {exc}"
    message = str(exc).strip()
    return message or type(exc).__name__
