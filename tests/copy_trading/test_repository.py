"""
Copy Trade Repository Tests.

============================================================
PURPOSE
============================================================
Persistence tests against SQLite (aiosqlite).

TEST CATEGORIES:
- Policy snapshot loading
- Follower enumeration
- Copy attempt lifecycle
- Stale pending detection

============================================================
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from copy_trading.database import session_scope
from copy_trading.repository import CopyTradeRepository
from copy_trading.types import (
    AllocationMode,
    ConfigurationLoadError,
    CopyAttemptStatus,
    InvariantViolation,
    LogLevel,
    TradeKind,
    TradeStatus,
)


# ============================================================
# POLICY SNAPSHOT
# ============================================================

class TestPolicySnapshot:
    """Tests for load_policy_snapshot."""

    @pytest.mark.asyncio
    async def test_empty_store_is_inactive_and_unlimited(self, db):
        async with session_scope(db.session_factory) as session:
            snapshot = await CopyTradeRepository(session).load_policy_snapshot()

        assert not snapshot.allocation.is_active
        assert not snapshot.risk.enabled
        assert not snapshot.symbols.is_allowed("AAPL")

    @pytest.mark.asyncio
    async def test_reads_all_settings(self, db, seed):
        await seed.settings(mode="percentage", percentage="25")
        await seed.risk(enabled=True, max_trade_size="5000", max_percentage_per_trade="5")
        await seed.symbols("AAPL", "MSFT")
        await seed.symbols("TSLA", is_active=False)

        async with session_scope(db.session_factory) as session:
            snapshot = await CopyTradeRepository(session).load_policy_snapshot()

        assert snapshot.allocation.is_active
        assert snapshot.allocation.mode == AllocationMode.PERCENTAGE
        assert snapshot.allocation.percentage == Decimal("25")
        assert snapshot.risk.enabled
        assert snapshot.risk.max_trade_size == Decimal("5000")
        assert snapshot.symbols.is_allowed("msft")
        assert not snapshot.symbols.is_allowed("TSLA")

    @pytest.mark.asyncio
    async def test_unknown_allocation_type(self, db, seed):
        await seed.settings(mode="martingale")

        async with session_scope(db.session_factory) as session:
            with pytest.raises(ConfigurationLoadError):
                await CopyTradeRepository(session).load_policy_snapshot()


# ============================================================
# ACCOUNTS
# ============================================================

class TestFollowerEnumeration:
    """Tests for list_follower_accounts."""

    @pytest.mark.asyncio
    async def test_excludes_source_and_inactive(self, db, seed):
        cred = await seed.credential()
        dead_cred = await seed.credential(is_active=False)
        source = await seed.account(cred, "SRC")
        follower = await seed.account(cred, "F-1", balance="2500")
        await seed.account(cred, "F-OFF", is_active=False)
        await seed.account(dead_cred, "F-DEAD-CRED")

        async with session_scope(db.session_factory) as session:
            followers = await CopyTradeRepository(session).list_follower_accounts(
                exclude_account_id=source
            )

        assert [f.id for f in followers] == [follower]
        assert followers[0].broker_type == "mock"
        assert followers[0].account_number == "F-1"
        assert followers[0].balance == Decimal("2500")

    @pytest.mark.asyncio
    async def test_get_account_missing(self, db):
        async with session_scope(db.session_factory) as session:
            assert await CopyTradeRepository(session).get_account(404) is None

    @pytest.mark.asyncio
    async def test_get_source_trade(self, db, seed):
        cred = await seed.credential()
        source = await seed.account(cred, "SRC")
        trade = await seed.source_trade(source, symbol="MSFT", quantity="3", price="410.5")

        async with session_scope(db.session_factory) as session:
            loaded = await CopyTradeRepository(session).get_source_trade(trade.id)

        assert loaded.symbol == "MSFT"
        assert loaded.quantity == Decimal("3")
        assert loaded.price == Decimal("410.5")
        assert loaded.broker_account_id == source


# ============================================================
# COPY ATTEMPTS
# ============================================================

class TestCopyAttempts:
    """Tests for the copy attempt audit trail."""

    async def _setup(self, db, seed):
        cred = await seed.credential()
        source = await seed.account(cred, "SRC")
        follower_id = await seed.account(cred, "F-1")
        trade = await seed.source_trade(source)
        async with session_scope(db.session_factory) as session:
            follower = await CopyTradeRepository(session).get_account(follower_id)
        return trade, follower

    @pytest.mark.asyncio
    async def test_pending_then_success(self, db, seed):
        trade, follower = await self._setup(db, seed)

        async with session_scope(db.session_factory) as session:
            repo = CopyTradeRepository(session)
            attempt = await repo.create_copy_attempt(trade, follower, Decimal("10"))
            assert attempt.status == "pending"

            copy = await repo.create_follower_trade(trade, follower, Decimal("10"), broker_order_id="B-1")
            await repo.update_copy_attempt(attempt.id, CopyAttemptStatus.SUCCESS, target_trade_id=copy.id)

        async with session_scope(db.session_factory) as session:
            repo = CopyTradeRepository(session)
            rows = await repo.list_copy_attempts(trade.id)
            stored_trade = await repo.get_trade(copy.id)

        assert len(rows) == 1
        assert rows[0].status == "success"
        assert rows[0].target_trade_id == copy.id
        assert rows[0].source_account_id == trade.broker_account_id
        assert stored_trade.type == TradeKind.COPY.value
        assert stored_trade.status == TradeStatus.PENDING.value
        assert stored_trade.source_trade_id == trade.id

    @pytest.mark.asyncio
    async def test_second_update_rejected(self, db, seed):
        trade, follower = await self._setup(db, seed)

        async with session_scope(db.session_factory) as session:
            repo = CopyTradeRepository(session)
            attempt = await repo.create_copy_attempt(trade, follower, Decimal("10"))
            await repo.update_copy_attempt(attempt.id, CopyAttemptStatus.FAILED, error_message="x")

            with pytest.raises(InvariantViolation):
                await repo.update_copy_attempt(attempt.id, CopyAttemptStatus.SUCCESS)

    @pytest.mark.asyncio
    async def test_update_unknown_attempt(self, db):
        async with session_scope(db.session_factory) as session:
            with pytest.raises(InvariantViolation):
                await CopyTradeRepository(session).update_copy_attempt(999, CopyAttemptStatus.FAILED)

    @pytest.mark.asyncio
    async def test_created_failed(self, db, seed):
        trade, follower = await self._setup(db, seed)

        async with session_scope(db.session_factory) as session:
            attempt = await CopyTradeRepository(session).create_copy_attempt(
                trade,
                follower,
                Decimal("0"),
                status=CopyAttemptStatus.FAILED,
                error_message="Calculated quantity is zero or negative",
            )

        assert attempt.to_dict()["status"] == "failed"
        assert attempt.to_dict()["error_message"] == "Calculated quantity is zero or negative"

    @pytest.mark.asyncio
    async def test_find_stale_pending(self, db, seed):
        trade, follower = await self._setup(db, seed)

        async with session_scope(db.session_factory) as session:
            repo = CopyTradeRepository(session)
            old = await repo.create_copy_attempt(trade, follower, Decimal("1"))
            old.created_at = datetime.utcnow() - timedelta(hours=2)
            await repo.create_copy_attempt(trade, follower, Decimal("2"))
            done = await repo.create_copy_attempt(trade, follower, Decimal("3"))
            done.created_at = datetime.utcnow() - timedelta(hours=2)
            await session.flush()
            await repo.update_copy_attempt(done.id, CopyAttemptStatus.SUCCESS)

        async with session_scope(db.session_factory) as session:
            stale = await CopyTradeRepository(session).find_stale_pending_attempts(
                older_than=timedelta(minutes=30)
            )

        assert [a.id for a in stale] == [old.id]


class TestLogs:
    """Tests for log and notification rows."""

    @pytest.mark.asyncio
    async def test_write_and_list_logs(self, db):
        async with session_scope(db.session_factory) as session:
            repo = CopyTradeRepository(session)
            await repo.write_log(LogLevel.WARNING, "clamped", "risk-management", {"a": 1})
            await repo.write_log(LogLevel.ERROR, "boom", "copy-trading")

        async with session_scope(db.session_factory) as session:
            rows = await CopyTradeRepository(session).list_logs(source="risk-management")

        assert len(rows) == 1
        assert rows[0].level == "warning"
        assert rows[0].details == {"a": 1}
