"""
Broker Adapter Registry.

============================================================
PURPOSE
============================================================
Maps a broker type tag to an adapter instance.

The orchestrator never branches on broker type: it asks the
registry for an adapter, and an unknown tag raises
UnsupportedBrokerError, which is a per-follower failure.

============================================================
USAGE
============================================================
```python
registry = BrokerRegistry()
registry.register(TastytradeAdapter())
registry.register(SchwabAdapter())

adapter = registry.get("tastytrade")
```

============================================================
"""

import logging
from typing import Dict, List, Optional

from ..config import CopyTradingConfig
from ..types import UnsupportedBrokerError
from .base import BrokerAdapter


logger = logging.getLogger(__name__)


class BrokerRegistry:
    """
    Registry of broker adapters.

    Manages lifecycle of the registered adapters.
    """

    def __init__(self, adapters: Optional[List[BrokerAdapter]] = None):
        self._adapters: Dict[str, BrokerAdapter] = {}
        for adapter in adapters or []:
            self.register(adapter)

    def register(
        self,
        adapter: BrokerAdapter,
        broker_type: Optional[str] = None,
    ) -> None:
        """
        Register an adapter.

        Args:
            adapter: Adapter instance
            broker_type: Tag to register under (defaults to adapter.broker_type)
        """
        key = (broker_type or adapter.broker_type).lower()
        if key in self._adapters:
            logger.warning(f"Replacing adapter for broker type {key}")
        self._adapters[key] = adapter

    def unregister(self, broker_type: str) -> None:
        self._adapters.pop(broker_type.lower(), None)

    def get(self, broker_type: str) -> BrokerAdapter:
        """
        Get adapter for a broker type.

        Raises:
            UnsupportedBrokerError: If no adapter is registered
        """
        adapter = self._adapters.get((broker_type or "").lower())
        if adapter is None:
            raise UnsupportedBrokerError(broker_type)
        return adapter

    def __contains__(self, broker_type: str) -> bool:
        return (broker_type or "").lower() in self._adapters

    def list_supported(self) -> List[str]:
        return sorted(self._adapters.keys())

    async def connect_all(self) -> None:
        for key, adapter in self._adapters.items():
            await adapter.connect()
            logger.debug(f"Adapter {key} connected")

    async def disconnect_all(self) -> None:
        for key, adapter in self._adapters.items():
            try:
                await adapter.disconnect()
            except Exception as e:
                logger.error(f"Failed to disconnect adapter {key}: {e}")

    async def __aenter__(self):
        await self.connect_all()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect_all()


def create_default_registry(
    config: Optional[CopyTradingConfig] = None,
) -> BrokerRegistry:
    """
    Create a registry with the production adapters.

    Args:
        config: Copy trading configuration

    Returns:
        BrokerRegistry with tastytrade and Schwab registered
    """
    from .tastytrade import TastytradeAdapter
    from .schwab import SchwabAdapter

    config = config or CopyTradingConfig()
    return BrokerRegistry([
        TastytradeAdapter(
            base_url=config.brokers.tastytrade_api_url,
            timeout_config=config.timeouts,
        ),
        SchwabAdapter(
            base_url=config.brokers.schwab_api_url,
            timeout_config=config.timeouts,
        ),
    ])
