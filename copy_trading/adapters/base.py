"""
Copy Trading - Broker Adapter Base.

============================================================
PURPOSE
============================================================
Abstract interface for broker adapters.

DESIGN PRINCIPLES:
- Broker-agnostic interface (adding a broker = adding an adapter)
- Ordinary rejections are RETURNED as SubmitOrderResponse(success=False)
- Only transport failures RAISE (timeout, malformed response, auth)
- Fully testable with the mock adapter

============================================================
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, Dict, Any, List, Tuple, Union
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

import aiohttp

from ..config import TimeoutConfig
from ..types import (
    OrderSide,
    OrderType,
    OptionLegDetails,
    ConnectionStatus,
    BrokerCredential,
    BrokerError,
    BrokerTimeoutError,
    BrokerAuthenticationError,
    MalformedResponseError,
)
from .logging_utils import mask_headers


logger = logging.getLogger(__name__)


# ============================================================
# ADAPTER REQUEST/RESPONSE TYPES
# ============================================================

@dataclass
class OrderSpec:
    """Neutral order shape handed to every adapter."""

    symbol: str
    """Underlying symbol."""

    quantity: Decimal
    """Order quantity."""

    side: OrderSide
    """Order side."""

    order_type: OrderType = OrderType.MARKET
    """Order type."""

    limit_price: Optional[Decimal] = None
    """Limit price (LIMIT orders only)."""

    is_option: bool = False
    """Whether this is an option order."""

    option_details: Optional[OptionLegDetails] = None
    """Option leg (options only)."""


@dataclass
class SubmitOrderResponse:
    """Response from order submission."""

    success: bool
    """Whether the broker accepted the order."""

    broker_order_id: Optional[str] = None
    """Broker-assigned order ID."""

    message: Optional[str] = None
    """Broker message on rejection."""

    http_status: Optional[int] = None
    """HTTP status of the broker answer."""

    raw: Dict[str, Any] = field(default_factory=dict)
    """Raw broker response."""

    @classmethod
    def rejected(
        cls,
        message: str,
        http_status: Optional[int] = None,
        raw: Optional[Dict[str, Any]] = None,
    ) -> "SubmitOrderResponse":
        return cls(
            success=False,
            message=message,
            http_status=http_status,
            raw=raw or {},
        )


@dataclass
class HealthStatus:
    """Broker connection health."""

    status: ConnectionStatus
    message: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class AccountBalance:
    """Balance snapshot as reported by a broker."""

    account_number: str
    balance: Decimal = Decimal("0")
    buying_power: Decimal = Decimal("0")
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PositionInfo:
    """Open position as reported by a broker."""

    symbol: str
    quantity: Decimal = Decimal("0")
    average_price: Optional[Decimal] = None
    raw: Dict[str, Any] = field(default_factory=dict)


# ============================================================
# ABSTRACT BROKER ADAPTER
# ============================================================

class BrokerAdapter(ABC):
    """
    Abstract interface for broker adapters.

    Implementations:
    - TastytradeAdapter: tastytrade REST API
    - SchwabAdapter: Schwab REST API
    - MockBrokerAdapter: For testing
    """

    @property
    @abstractmethod
    def broker_type(self) -> str:
        """Get broker type tag."""
        pass

    # --------------------------------------------------------
    # CONNECTION
    # --------------------------------------------------------

    async def connect(self) -> None:
        """Open underlying resources."""
        pass

    async def disconnect(self) -> None:
        """Release underlying resources."""
        pass

    # --------------------------------------------------------
    # CAPABILITIES
    # --------------------------------------------------------

    @abstractmethod
    async def submit_order(
        self,
        credential: BrokerCredential,
        account_ref: str,
        order: OrderSpec,
    ) -> SubmitOrderResponse:
        """
        Submit an order.

        Args:
            credential: Bearer credential
            account_ref: Broker-side account number
            order: Neutral order spec

        Returns:
            SubmitOrderResponse (success=False for ordinary rejections)

        Raises:
            BrokerError: On transport-level failure
        """
        pass

    @abstractmethod
    async def check_health(self, credential: BrokerCredential) -> HealthStatus:
        """Check connection health. Never raises."""
        pass

    @abstractmethod
    async def fetch_account_balance(
        self,
        credential: BrokerCredential,
        account_ref: str,
    ) -> AccountBalance:
        """Fetch balance for an account."""
        pass

    @abstractmethod
    async def fetch_positions(
        self,
        credential: BrokerCredential,
        account_ref: str,
    ) -> List[PositionInfo]:
        """Fetch open positions for an account."""
        pass


# ============================================================
# REST ADAPTER BASE
# ============================================================

class RestBrokerAdapter(BrokerAdapter):
    """
    Shared HTTP plumbing for REST brokers.

    Subclasses supply the base URL, paths and payload mapping.
    """

    health_path: str = "/"

    def __init__(
        self,
        base_url: str,
        timeout_config: Optional[TimeoutConfig] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._timeout_config = timeout_config or TimeoutConfig()
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def is_connected(self) -> bool:
        return self._session is not None and not self._session.closed

    async def connect(self) -> None:
        """Create the HTTP session."""
        if self.is_connected:
            return

        timeout = aiohttp.ClientTimeout(
            connect=self._timeout_config.broker_connect_timeout_seconds,
            total=self._timeout_config.broker_read_timeout_seconds,
        )
        self._session = aiohttp.ClientSession(timeout=timeout)
        logger.info(f"{self.broker_type} adapter session opened ({self._base_url})")

    async def disconnect(self) -> None:
        """Close the HTTP session."""
        if self._session is not None:
            await self._session.close()
            self._session = None
            logger.info(f"{self.broker_type} adapter session closed")

    # --------------------------------------------------------
    # HEALTH
    # --------------------------------------------------------

    async def check_health(self, credential: BrokerCredential) -> HealthStatus:
        """Validate the credential against a cheap authenticated endpoint."""
        if not credential.access_token:
            return HealthStatus(
                ConnectionStatus.DISCONNECTED,
                message="No session token available",
            )

        if credential.is_expired():
            return HealthStatus(
                ConnectionStatus.DISCONNECTED,
                message="Session token expired",
            )

        try:
            status, data = await self._request("GET", self.health_path, credential)
        except BrokerError as e:
            logger.warning(f"{self.broker_type} health check failed: {e}")
            return HealthStatus(ConnectionStatus.ERROR, message=str(e))

        if 200 <= status < 300:
            return HealthStatus(ConnectionStatus.CONNECTED)

        return HealthStatus(
            ConnectionStatus.ERROR,
            message=extract_error_message(data) or f"Unexpected HTTP {status}",
        )

    # --------------------------------------------------------
    # INTERNAL
    # --------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        credential: Optional[BrokerCredential] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> Tuple[int, Any]:
        """
        Make an API request.

        Returns:
            (http_status, parsed_json_body)

        Raises:
            BrokerAuthenticationError: HTTP 401/403
            BrokerTimeoutError: Request timed out
            MalformedResponseError: Body is not JSON
            BrokerError: Any other transport failure
        """
        if not self.is_connected:
            await self.connect()

        url = f"{self._base_url}{path}"
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if credential is not None and credential.access_token:
            headers["Authorization"] = f"Bearer {credential.access_token}"

        logger.debug(f"{self.broker_type} {method} {path} headers={mask_headers(headers)}")

        try:
            async with self._session.request(
                method,
                url,
                json=json_body,
                headers=headers,
            ) as response:
                status = response.status
                body = await response.text()
        except asyncio.TimeoutError:
            raise BrokerTimeoutError(
                "Broker request timed out",
                broker_type=self.broker_type,
            )
        except aiohttp.ClientError as e:
            raise BrokerError(
                f"Network error: {e}",
                broker_type=self.broker_type,
            )

        data = _parse_body(body, self.broker_type, status)

        if status in (401, 403):
            raise BrokerAuthenticationError(
                extract_error_message(data) or f"Authentication failed (HTTP {status})",
                broker_type=self.broker_type,
                http_status=status,
            )

        return status, data


# ============================================================
# HELPERS
# ============================================================

def _parse_body(body: str, broker_type: str, status: int) -> Any:
    if not body or not body.strip():
        return {}
    try:
        return json.loads(body)
    except ValueError:
        raise MalformedResponseError(
            f"Malformed response from broker (HTTP {status})",
            broker_type=broker_type,
            http_status=status,
        )


def extract_error_message(data: Any) -> Optional[str]:
    """
    Pull a human-readable error out of a broker body.

    Handles {"error": "..."}, {"error": {"message": "..."}},
    {"message": "..."} and {"errors": [{"message": "..."}]}.
    """
    if not isinstance(data, dict):
        return None

    error = data.get("error")
    if isinstance(error, str) and error:
        return error
    if isinstance(error, dict):
        message = error.get("message") or error.get("code")
        if message:
            return str(message)

    errors = data.get("errors")
    if isinstance(errors, list) and errors:
        first = errors[0]
        if isinstance(first, dict) and first.get("message"):
            return str(first["message"])
        if isinstance(first, str):
            return first

    message = data.get("message")
    if isinstance(message, str) and message:
        return message

    return None


def to_decimal(value: Any, default: Decimal = Decimal("0")) -> Decimal:
    """Tolerant Decimal conversion for broker payload fields."""
    if value is None or value == "":
        return default
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default


def first_present(data: Dict[str, Any], *keys: str) -> Any:
    """Return the first non-None value for the given keys."""
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


def format_quantity(quantity: Decimal) -> Union[int, float]:
    """Render a quantity as a JSON number; whole units go out as int."""
    quantity = Decimal(quantity)
    if quantity == quantity.to_integral_value():
        return int(quantity)
    return float(quantity)
