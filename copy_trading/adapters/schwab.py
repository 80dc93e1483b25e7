"""
Copy Trading - Schwab Adapter.

============================================================
PURPOSE
============================================================
Adapter for the Schwab REST API.

WIRE FORMAT (order):
    {
        "accountId": "...",
        "symbol": "...",
        "quantity": n,
        "side": "BUY" | "SELL",
        "orderType": "MARKET" | "LIMIT",
        "timeInForce": "DAY",
        "limitPrice": <LIMIT only>,
        "securityType": "EQUITY" | "OPTION",
        "optionDetails": {...}  (OPTION only)
    }

============================================================
"""

import logging
from typing import Optional, Dict, Any, List

from ..config import TimeoutConfig
from ..types import BrokerType, OrderType, BrokerCredential
from .base import (
    RestBrokerAdapter,
    OrderSpec,
    SubmitOrderResponse,
    AccountBalance,
    PositionInfo,
    extract_error_message,
    to_decimal,
    first_present,
    format_quantity,
)
from .logging_utils import mask_account, mask_params


logger = logging.getLogger(__name__)


DEFAULT_BASE_URL = "https://api.schwab.com"


def build_order_payload(account_number: str, order: OrderSpec) -> Dict[str, Any]:
    """Map a neutral OrderSpec onto the Schwab order body."""
    payload: Dict[str, Any] = {
        "accountId": account_number,
        "symbol": order.symbol.upper(),
        "quantity": format_quantity(order.quantity),
        "side": order.side.value.upper(),
        "orderType": order.order_type.value.upper(),
        "timeInForce": "DAY",
    }

    if order.order_type == OrderType.LIMIT and order.limit_price is not None:
        payload["limitPrice"] = str(order.limit_price)

    if order.is_option and order.option_details is not None:
        payload["securityType"] = "OPTION"
        payload["optionDetails"] = {
            "expirationDate": order.option_details.expiration_date,
            "strikePrice": str(order.option_details.strike_price),
            "optionType": order.option_details.option_type.value.upper(),
        }
    else:
        payload["securityType"] = "EQUITY"

    return payload


class SchwabAdapter(RestBrokerAdapter):
    """
    Schwab broker adapter.

    Implements the BrokerAdapter interface for the Schwab REST API.
    """

    health_path = "/v1/userinfo"

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout_config: Optional[TimeoutConfig] = None,
    ):
        super().__init__(base_url, timeout_config)

    @property
    def broker_type(self) -> str:
        return BrokerType.SCHWAB.value

    async def submit_order(
        self,
        credential: BrokerCredential,
        account_ref: str,
        order: OrderSpec,
    ) -> SubmitOrderResponse:
        """Submit an order to Schwab."""
        payload = build_order_payload(account_ref, order)
        logger.info(
            f"schwab submit {order.side.value} {order.quantity} {order.symbol} "
            f"account={mask_account(account_ref)} payload={mask_params(payload)}"
        )

        status, data = await self._request(
            "POST",
            f"/v1/accounts/{account_ref}/orders",
            credential,
            json_body=payload,
        )

        order_id = data.get("orderId") if isinstance(data, dict) else None
        if 200 <= status < 300 and order_id is not None:
            return SubmitOrderResponse(
                success=True,
                broker_order_id=str(order_id),
                http_status=status,
                raw=data,
            )

        message = extract_error_message(data) or "Failed to execute trade"
        logger.warning(f"schwab rejected order for {mask_account(account_ref)}: {message}")
        return SubmitOrderResponse.rejected(
            message,
            http_status=status,
            raw=data if isinstance(data, dict) else {},
        )

    async def fetch_account_balance(
        self,
        credential: BrokerCredential,
        account_ref: str,
    ) -> AccountBalance:
        """Fetch balance for an account."""
        _, data = await self._request(
            "GET", f"/v1/accounts/{account_ref}/balances", credential
        )
        body = data if isinstance(data, dict) else {}
        current = body.get("currentBalances") or body
        return AccountBalance(
            account_number=account_ref,
            balance=to_decimal(first_present(current, "liquidationValue", "balance")),
            buying_power=to_decimal(first_present(current, "buyingPower")),
            raw=body,
        )

    async def fetch_positions(
        self,
        credential: BrokerCredential,
        account_ref: str,
    ) -> List[PositionInfo]:
        """Fetch open positions for an account."""
        _, data = await self._request(
            "GET", f"/v1/accounts/{account_ref}/positions", credential
        )
        body = data if isinstance(data, dict) else {}
        positions = []
        for item in body.get("positions", []):
            positions.append(PositionInfo(
                symbol=item.get("symbol", ""),
                quantity=to_decimal(item.get("quantity")),
                average_price=to_decimal(item.get("averagePrice"), default=None),
                raw=item,
            ))
        return positions
