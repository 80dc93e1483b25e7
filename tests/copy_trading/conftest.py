"""
Shared fixtures for copy trading tests.

Storage-backed tests run against a file SQLite database (aiosqlite)
in the pytest temp directory, so every follower can use its own
connection.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

import pytest
import pytest_asyncio

from copy_trading.adapters import BrokerRegistry, MockBrokerAdapter, MockConfig
from copy_trading.config import (
    CopyTradingConfig,
    TimeoutConfig,
    ConcurrencyConfig,
)
from copy_trading.credentials import StoredCredentialProvider
from copy_trading.database import Database, session_scope
from copy_trading.models import (
    BrokerCredentialModel,
    BrokerAccountModel,
    TradeModel,
    CopyTradeSettingsModel,
    RiskSettingsModel,
    SymbolModel,
)
from copy_trading.notifications import LoggingNotificationSink
from copy_trading.orchestrator import CopyTradeOrchestrator
from copy_trading.types import OrderSide, SourceTrade


class Seeder:
    """Inserts rows for a test scenario."""

    def __init__(self, db: Database):
        self._db = db

    async def _add(self, model):
        async with session_scope(self._db.session_factory) as session:
            session.add(model)
            await session.flush()
            return model.id

    async def credential(
        self,
        broker_type: str = "mock",
        token: Optional[str] = "token-abc123",
        is_active: bool = True,
        expiry: Optional[datetime] = None,
    ) -> int:
        return await self._add(BrokerCredentialModel(
            name=f"{broker_type} credential",
            broker_type=broker_type,
            session_token=token,
            expiry=expiry,
            is_active=is_active,
        ))

    async def account(
        self,
        credential_id: int,
        account_number: str,
        balance: str = "100000",
        name: Optional[str] = None,
        is_active: bool = True,
    ) -> int:
        return await self._add(BrokerAccountModel(
            broker_credential_id=credential_id,
            account_number=account_number,
            account_name=name or f"Account {account_number}",
            balance=Decimal(balance),
            buying_power=Decimal(balance),
            is_active=is_active,
        ))

    async def settings(
        self,
        mode: str = "mirror",
        is_active: bool = True,
        fixed_amount: Optional[str] = None,
        percentage: Optional[str] = None,
    ) -> int:
        return await self._add(CopyTradeSettingsModel(
            is_active=is_active,
            allocation_type=mode,
            fixed_amount=Decimal(fixed_amount) if fixed_amount else None,
            percentage=Decimal(percentage) if percentage else None,
        ))

    async def risk(
        self,
        enabled: bool = True,
        max_trade_size: str = "0",
        max_percentage_per_trade: str = "100",
    ) -> int:
        return await self._add(RiskSettingsModel(
            enable_risk_controls=enabled,
            max_trade_size=Decimal(max_trade_size),
            max_percentage_per_trade=Decimal(max_percentage_per_trade),
        ))

    async def symbols(self, *symbols: str, is_active: bool = True) -> None:
        for symbol in symbols:
            await self._add(SymbolModel(symbol=symbol, is_active=is_active))

    async def source_trade(
        self,
        account_id: int,
        symbol: str = "AAPL",
        quantity: str = "10",
        price: str = "150",
        side: OrderSide = OrderSide.BUY,
    ) -> SourceTrade:
        trade_id = await self._add(TradeModel(
            broker_account_id=account_id,
            symbol=symbol,
            quantity=Decimal(quantity),
            price=Decimal(price),
            side=side.value,
            status="filled",
            type="manual",
        ))
        return SourceTrade(
            id=trade_id,
            broker_account_id=account_id,
            symbol=symbol,
            side=side,
            quantity=Decimal(quantity),
            price=Decimal(price),
        )


# ============================================================
# FIXTURES
# ============================================================

@pytest_asyncio.fixture
async def db(tmp_path):
    database = Database(f"sqlite+aiosqlite:///{tmp_path}/copy_trading_test.db")
    await database.create_tables()
    yield database
    await database.dispose()


@pytest.fixture
def seed(db):
    return Seeder(db)


@pytest.fixture
def mock_adapter():
    return MockBrokerAdapter(MockConfig())


@pytest.fixture
def sink():
    return LoggingNotificationSink()


@pytest.fixture
def config():
    return CopyTradingConfig(
        database_url="sqlite+aiosqlite://",
        timeouts=TimeoutConfig(broker_submit_timeout_seconds=1.0, load_timeout_seconds=5.0),
        concurrency=ConcurrencyConfig(max_parallel_followers=1),
    )


@pytest.fixture
def orchestrator(db, mock_adapter, sink, config):
    return CopyTradeOrchestrator(
        session_factory=db.session_factory,
        registry=BrokerRegistry([mock_adapter]),
        credential_provider=StoredCredentialProvider(db.session_factory),
        notification_sink=sink,
        config=config,
    )
