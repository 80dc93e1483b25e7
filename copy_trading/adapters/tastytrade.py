"""
Copy Trading - tastytrade Adapter.

============================================================
PURPOSE
============================================================
Adapter for the tastytrade REST API.

WIRE FORMAT (order):
    {
        "account_number": "...",
        "source": "API",
        "order_type": "MARKET" | "LIMIT",
        "price": <limit price or null>,
        "price_effect": "debit" (buy) | "credit" (sell),
        "time_in_force": "Day",
        "legs": [{"instrument_type": "Equity" | "Equity Option",
                  "symbol": "...", "quantity": n, "side": "BUY" | "SELL"}]
    }

Option leg symbol: ROOT + YYYYMMDD + C|P + strike*1000 (8 digits).

============================================================
"""

import logging
from decimal import Decimal
from typing import Optional, Dict, Any, List

from ..config import TimeoutConfig
from ..types import (
    BrokerType,
    OrderSide,
    OrderType,
    OptionLegDetails,
    BrokerCredential,
)
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


DEFAULT_BASE_URL = "https://api.tastytrade.com"


def build_option_symbol(symbol: str, option: OptionLegDetails) -> str:
    """
    Build the option leg symbol.

    Example: AAPL, 2025-01-17, call, 150 -> AAPL20250117C00150000
    """
    expiration = option.expiration_date.replace("-", "")
    right = option.option_type.value[0].upper()
    strike = int(Decimal(option.strike_price) * 1000)
    return f"{symbol.upper()}{expiration}{right}{strike:08d}"


def build_order_payload(account_number: str, order: OrderSpec) -> Dict[str, Any]:
    """Map a neutral OrderSpec onto the tastytrade order body."""
    payload: Dict[str, Any] = {
        "account_number": account_number,
        "source": "API",
        "order_type": order.order_type.value.upper(),
        "price": None,
        "price_effect": "debit" if order.side == OrderSide.BUY else "credit",
        "time_in_force": "Day",
    }

    if order.order_type == OrderType.LIMIT and order.limit_price is not None:
        payload["price"] = str(order.limit_price)

    if order.is_option and order.option_details is not None:
        leg = {
            "instrument_type": "Equity Option",
            "symbol": build_option_symbol(order.symbol, order.option_details),
        }
    else:
        leg = {
            "instrument_type": "Equity",
            "symbol": order.symbol.upper(),
        }

    leg["quantity"] = format_quantity(order.quantity)
    leg["side"] = order.side.value.upper()
    payload["legs"] = [leg]
    return payload


def extract_order_id(data: Any) -> Optional[str]:
    """Find the order id in either the flat or the enveloped response."""
    if not isinstance(data, dict):
        return None
    if data.get("order_id") is not None:
        return str(data["order_id"])
    order = (data.get("data") or {}).get("order") or {}
    if isinstance(order, dict) and order.get("id") is not None:
        return str(order["id"])
    return None


# ============================================================
# TASTYTRADE ADAPTER
# ============================================================

class TastytradeAdapter(RestBrokerAdapter):
    """
    tastytrade broker adapter.

    Implements the BrokerAdapter interface for the tastytrade REST API.
    """

    health_path = "/customers/me"

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout_config: Optional[TimeoutConfig] = None,
    ):
        super().__init__(base_url, timeout_config)

    @property
    def broker_type(self) -> str:
        return BrokerType.TASTYTRADE.value

    async def submit_order(
        self,
        credential: BrokerCredential,
        account_ref: str,
        order: OrderSpec,
    ) -> SubmitOrderResponse:
        """Submit an order to tastytrade."""
        payload = build_order_payload(account_ref, order)
        logger.info(
            f"tastytrade submit {order.side.value} {order.quantity} {order.symbol} "
            f"account={mask_account(account_ref)} payload={mask_params(payload)}"
        )

        status, data = await self._request(
            "POST",
            f"/accounts/{account_ref}/orders",
            credential,
            json_body=payload,
        )

        order_id = extract_order_id(data)
        if 200 <= status < 300 and order_id:
            return SubmitOrderResponse(
                success=True,
                broker_order_id=order_id,
                http_status=status,
                raw=data if isinstance(data, dict) else {"data": data},
            )

        message = extract_error_message(data) or "Failed to execute trade"
        logger.warning(f"tastytrade rejected order for {mask_account(account_ref)}: {message}")
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
            "GET", f"/accounts/{account_ref}/balances", credential
        )
        body = (data.get("data") or data) if isinstance(data, dict) else {}
        return AccountBalance(
            account_number=account_ref,
            balance=to_decimal(first_present(body, "net-liquidating-value", "cash-balance")),
            buying_power=to_decimal(
                first_present(body, "equity-buying-power", "derivative-buying-power")
            ),
            raw=body,
        )

    async def fetch_positions(
        self,
        credential: BrokerCredential,
        account_ref: str,
    ) -> List[PositionInfo]:
        """Fetch open positions for an account."""
        _, data = await self._request(
            "GET", f"/accounts/{account_ref}/positions", credential
        )
        body = (data.get("data") or data) if isinstance(data, dict) else {}
        positions = []
        for item in body.get("items", []):
            positions.append(PositionInfo(
                symbol=item.get("symbol", ""),
                quantity=to_decimal(item.get("quantity")),
                average_price=to_decimal(item.get("average-open-price"), default=None),
                raw=item,
            ))
        return positions
