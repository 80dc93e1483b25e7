"""
Copy Trading - Mock Broker Adapter.

============================================================
PURPOSE
============================================================
In-process adapter for tests and dry runs.

FEATURES:
- Configurable latency (global or per account)
- Configurable rejection (global or per account)
- Configurable exception injection (global or per account)
- Full record of submitted orders

============================================================
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional, Dict, List

from ..types import BrokerType, BrokerCredential, ConnectionStatus
from .base import (
    BrokerAdapter,
    OrderSpec,
    SubmitOrderResponse,
    HealthStatus,
    AccountBalance,
    PositionInfo,
)


logger = logging.getLogger(__name__)


# ============================================================
# MOCK CONFIGURATION
# ============================================================

@dataclass
class MockConfig:
    """Configuration for mock adapter."""

    latency_seconds: float = 0.0
    """Delay applied to every submit."""

    reject_message: Optional[str] = None
    """Reject every order with this message."""

    raise_exception: Optional[BaseException] = None
    """Raise this from every submit."""

    account_latency_seconds: Dict[str, float] = field(default_factory=dict)
    """Per-account delay."""

    account_rejections: Dict[str, str] = field(default_factory=dict)
    """Per-account rejection message."""

    account_exceptions: Dict[str, BaseException] = field(default_factory=dict)
    """Per-account exception."""

    balances: Dict[str, Decimal] = field(default_factory=dict)
    """Reported balance per account."""


@dataclass
class MockSubmission:
    """One order seen by the mock adapter."""

    account_ref: str
    order: OrderSpec
    broker_order_id: Optional[str]
    accepted: bool
    submitted_at: datetime = field(default_factory=datetime.utcnow)


# ============================================================
# MOCK BROKER ADAPTER
# ============================================================

class MockBrokerAdapter(BrokerAdapter):
    """
    Mock broker adapter for testing.

    Accepts every order unless configured otherwise.
    """

    def __init__(
        self,
        config: Optional[MockConfig] = None,
        broker_type: str = BrokerType.MOCK.value,
    ):
        self._config = config or MockConfig()
        self._broker_type = broker_type
        self._connected = False
        self.submissions: List[MockSubmission] = []

    @property
    def broker_type(self) -> str:
        return self._broker_type

    @property
    def config(self) -> MockConfig:
        return self._config

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self._connected = True

    async def disconnect(self) -> None:
        self._connected = False

    async def submit_order(
        self,
        credential: BrokerCredential,
        account_ref: str,
        order: OrderSpec,
    ) -> SubmitOrderResponse:
        """Simulate an order submission."""
        delay = self._config.account_latency_seconds.get(
            account_ref, self._config.latency_seconds
        )
        if delay > 0:
            await asyncio.sleep(delay)

        exc = self._config.account_exceptions.get(
            account_ref, self._config.raise_exception
        )
        if exc is not None:
            self.submissions.append(MockSubmission(account_ref, order, None, False))
            raise exc

        reject = self._config.account_rejections.get(
            account_ref, self._config.reject_message
        )
        if reject is not None:
            self.submissions.append(MockSubmission(account_ref, order, None, False))
            return SubmitOrderResponse.rejected(reject, http_status=400)

        order_id = f"MOCK-{uuid.uuid4().hex[:12]}"
        self.submissions.append(MockSubmission(account_ref, order, order_id, True))
        logger.debug(
            f"mock accepted {order.side.value} {order.quantity} {order.symbol} "
            f"account={account_ref} id={order_id}"
        )
        return SubmitOrderResponse(
            success=True,
            broker_order_id=order_id,
            http_status=200,
            raw={"order_id": order_id, "status": "Received"},
        )

    async def check_health(self, credential: BrokerCredential) -> HealthStatus:
        if not credential.access_token:
            return HealthStatus(
                ConnectionStatus.DISCONNECTED,
                message="No session token available",
            )
        return HealthStatus(ConnectionStatus.CONNECTED)

    async def fetch_account_balance(
        self,
        credential: BrokerCredential,
        account_ref: str,
    ) -> AccountBalance:
        balance = self._config.balances.get(account_ref, Decimal("0"))
        return AccountBalance(
            account_number=account_ref,
            balance=balance,
            buying_power=balance,
        )

    async def fetch_positions(
        self,
        credential: BrokerCredential,
        account_ref: str,
    ) -> List[PositionInfo]:
        positions: Dict[str, Decimal] = {}
        for sub in self.submissions:
            if sub.accepted and sub.account_ref == account_ref:
                signed = sub.order.quantity if sub.order.side.value == "buy" else -sub.order.quantity
                positions[sub.order.symbol] = positions.get(sub.order.symbol, Decimal("0")) + signed
        return [
            PositionInfo(symbol=symbol, quantity=qty)
            for symbol, qty in positions.items()
            if qty != 0
        ]

    def reset(self) -> None:
        """Forget recorded submissions."""
        self.submissions.clear()
