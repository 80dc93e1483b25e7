"""
Copy Trading - Repository.

============================================================
PURPOSE
============================================================
Database operations for copy trading.

RESPONSIBILITIES:
- Read the policy snapshot (allocation, risk, symbols)
- Enumerate follower accounts
- Create/update copy attempts (audit trail)
- Create follower-side trades
- Write system logs and notifications

CRITICAL REQUIREMENTS:
- The repository never commits; the caller owns the transaction
- Copy attempts move pending -> terminal exactly once
- Copy attempts are never deleted

============================================================
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, List, Dict, Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .types import (
    AllocationMode,
    AllocationPolicy,
    RiskLimits,
    SymbolPolicy,
    SymbolPolicyEntry,
    PolicySnapshot,
    SourceTrade,
    FollowerAccount,
    OptionLegDetails,
    OptionType,
    OrderSide,
    OrderType,
    CopyAttemptStatus,
    TradeStatus,
    TradeKind,
    LogLevel,
    NotificationType,
    ConfigurationLoadError,
    InvariantViolation,
    normalize_symbol,
)
from .state_machine import validate_attempt_transition
from .models import (
    BrokerCredentialModel,
    BrokerAccountModel,
    TradeModel,
    CopyTradeSettingsModel,
    RiskSettingsModel,
    SymbolModel,
    CopyTradeLogModel,
    LogModel,
    NotificationModel,
)


logger = logging.getLogger(__name__)


# ============================================================
# COPY TRADE REPOSITORY
# ============================================================

class CopyTradeRepository:
    """
    Repository for copy trading persistence.

    Writes are flushed, not committed: wrap calls in session_scope().
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize repository.

        Args:
            session: SQLAlchemy async session
        """
        self._session = session

    # --------------------------------------------------------
    # POLICY SNAPSHOT
    # --------------------------------------------------------

    async def load_policy_snapshot(self) -> PolicySnapshot:
        """
        Read allocation policy, risk limits and symbol policy.

        A missing settings row means copy trading is not active.
        A missing risk row means risk controls are disabled.

        Raises:
            ConfigurationLoadError: If a stored value cannot be interpreted
        """
        settings = (await self._session.execute(
            select(CopyTradeSettingsModel).order_by(CopyTradeSettingsModel.id).limit(1)
        )).scalar_one_or_none()

        risk = (await self._session.execute(
            select(RiskSettingsModel).order_by(RiskSettingsModel.id).limit(1)
        )).scalar_one_or_none()

        symbols = (await self._session.execute(select(SymbolModel))).scalars().all()

        return PolicySnapshot(
            allocation=_to_allocation_policy(settings),
            risk=_to_risk_limits(risk),
            symbols=SymbolPolicy(frozenset(
                SymbolPolicyEntry(symbol=normalize_symbol(s.symbol), is_active=bool(s.is_active))
                for s in symbols
            )),
        )

    # --------------------------------------------------------
    # ACCOUNTS / CREDENTIALS
    # --------------------------------------------------------

    async def get_account(self, account_id: int) -> Optional[FollowerAccount]:
        """Get an account by id regardless of its active flag."""
        stmt = (
            select(BrokerAccountModel, BrokerCredentialModel.broker_type)
            .join(BrokerCredentialModel, BrokerAccountModel.broker_credential_id == BrokerCredentialModel.id)
            .where(BrokerAccountModel.id == account_id)
        )
        row = (await self._session.execute(stmt)).first()
        if row is None:
            return None
        return _to_follower(row[0], row[1])

    async def list_follower_accounts(self, exclude_account_id: int) -> List[FollowerAccount]:
        """
        List active accounts eligible to receive copies.

        Args:
            exclude_account_id: Source account id, never returned

        Returns:
            Accounts that are active and whose credential is active
        """
        stmt = (
            select(BrokerAccountModel, BrokerCredentialModel.broker_type)
            .join(BrokerCredentialModel, BrokerAccountModel.broker_credential_id == BrokerCredentialModel.id)
            .where(
                BrokerAccountModel.is_active.is_(True),
                BrokerCredentialModel.is_active.is_(True),
                BrokerAccountModel.id != exclude_account_id,
            )
            .order_by(BrokerAccountModel.id)
        )
        rows = (await self._session.execute(stmt)).all()
        return [_to_follower(account, broker_type) for account, broker_type in rows]

    async def get_credential(self, credential_id: int) -> Optional[BrokerCredentialModel]:
        return await self._session.get(BrokerCredentialModel, credential_id)

    # --------------------------------------------------------
    # COPY ATTEMPTS
    # --------------------------------------------------------

    async def create_copy_attempt(
        self,
        source_trade: SourceTrade,
        follower: FollowerAccount,
        quantity: Decimal,
        status: CopyAttemptStatus = CopyAttemptStatus.PENDING,
        error_message: Optional[str] = None,
    ) -> CopyTradeLogModel:
        """
        Create a copy attempt row.

        Args:
            source_trade: Trade being copied
            follower: Target account
            quantity: Computed quantity
            status: Initial status (FAILED for zero-quantity outcomes)
            error_message: Reason when created already failed

        Returns:
            Persisted model with its id assigned
        """
        model = CopyTradeLogModel(
            source_trade_id=source_trade.id,
            source_account_id=source_trade.broker_account_id,
            target_account_id=follower.id,
            symbol=source_trade.symbol,
            quantity=quantity,
            price=source_trade.price,
            side=source_trade.side.value,
            status=status.value,
            error_message=error_message,
        )
        self._session.add(model)
        await self._session.flush()
        logger.debug(
            f"Copy attempt {model.id} created: trade={source_trade.id} "
            f"follower={follower.id} status={status.value}"
        )
        return model

    async def update_copy_attempt(
        self,
        attempt_id: int,
        status: CopyAttemptStatus,
        target_trade_id: Optional[int] = None,
        error_message: Optional[str] = None,
    ) -> CopyTradeLogModel:
        """
        Move a copy attempt to a terminal status.

        Raises:
            InvariantViolation: Unknown attempt or disallowed transition
        """
        model = await self._session.get(CopyTradeLogModel, attempt_id)
        if model is None:
            raise InvariantViolation(f"Copy attempt {attempt_id} not found")

        validate_attempt_transition(
            attempt_id,
            CopyAttemptStatus(model.status),
            status,
        )

        model.status = status.value
        model.target_trade_id = target_trade_id
        model.error_message = error_message
        model.updated_at = datetime.utcnow()
        await self._session.flush()
        return model

    async def get_copy_attempt(self, attempt_id: int) -> Optional[CopyTradeLogModel]:
        return await self._session.get(CopyTradeLogModel, attempt_id)

    async def list_copy_attempts(self, source_trade_id: int) -> List[CopyTradeLogModel]:
        """Get all copy attempts for a source trade."""
        stmt = (
            select(CopyTradeLogModel)
            .where(CopyTradeLogModel.source_trade_id == source_trade_id)
            .order_by(CopyTradeLogModel.id)
        )
        return list((await self._session.execute(stmt)).scalars().all())

    async def find_stale_pending_attempts(
        self,
        older_than: timedelta,
        now: Optional[datetime] = None,
    ) -> List[CopyTradeLogModel]:
        """
        Find copy attempts stuck in pending.

        These are left behind when the process stops mid-event and are
        the input of a reconciliation pass.
        """
        cutoff = (now or datetime.utcnow()) - older_than
        stmt = (
            select(CopyTradeLogModel)
            .where(
                CopyTradeLogModel.status == CopyAttemptStatus.PENDING.value,
                CopyTradeLogModel.created_at <= cutoff,
            )
            .order_by(CopyTradeLogModel.created_at)
        )
        return list((await self._session.execute(stmt)).scalars().all())

    # --------------------------------------------------------
    # TRADES
    # --------------------------------------------------------

    async def create_follower_trade(
        self,
        source_trade: SourceTrade,
        follower: FollowerAccount,
        quantity: Decimal,
        broker_order_id: Optional[str] = None,
        execution_details: Optional[Dict[str, Any]] = None,
    ) -> TradeModel:
        """Create the follower-side trade for an accepted copy order."""
        option_details = None
        if source_trade.is_option and source_trade.option_details is not None:
            option_details = {
                "expiration_date": source_trade.option_details.expiration_date,
                "strike_price": str(source_trade.option_details.strike_price),
                "option_type": source_trade.option_details.option_type.value,
            }

        model = TradeModel(
            broker_account_id=follower.id,
            symbol=source_trade.symbol,
            quantity=quantity,
            price=source_trade.price,
            side=source_trade.side.value,
            order_type=source_trade.order_type.value,
            limit_price=source_trade.limit_price,
            status=TradeStatus.PENDING.value,
            type=TradeKind.COPY.value,
            is_option=source_trade.is_option,
            option_details=option_details,
            execution_details=execution_details,
            broker_order_id=broker_order_id,
            source_trade_id=source_trade.id,
        )
        self._session.add(model)
        await self._session.flush()
        return model

    async def get_trade(self, trade_id: int) -> Optional[TradeModel]:
        return await self._session.get(TradeModel, trade_id)

    async def get_source_trade(self, trade_id: int) -> Optional[SourceTrade]:
        """Load a stored trade as the immutable input of a copy event."""
        model = await self.get_trade(trade_id)
        if model is None:
            return None
        return _to_source_trade(model)

    # --------------------------------------------------------
    # LOGS / NOTIFICATIONS
    # --------------------------------------------------------

    async def write_log(
        self,
        level: LogLevel,
        message: str,
        source: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> LogModel:
        model = LogModel(
            level=level.value,
            message=message,
            source=source,
            details=details,
        )
        self._session.add(model)
        await self._session.flush()
        return model

    async def list_logs(self, source: Optional[str] = None) -> List[LogModel]:
        stmt = select(LogModel).order_by(LogModel.id)
        if source is not None:
            stmt = stmt.where(LogModel.source == source)
        return list((await self._session.execute(stmt)).scalars().all())

    async def create_notification(
        self,
        notification_type: NotificationType,
        title: str,
        message: str,
    ) -> NotificationModel:
        model = NotificationModel(
            type=notification_type.value,
            title=title,
            message=message,
        )
        self._session.add(model)
        await self._session.flush()
        return model

    async def list_notifications(self) -> List[NotificationModel]:
        stmt = select(NotificationModel).order_by(NotificationModel.id)
        return list((await self._session.execute(stmt)).scalars().all())


# ============================================================
# MAPPING
# ============================================================

def _to_allocation_policy(model: Optional[CopyTradeSettingsModel]) -> AllocationPolicy:
    if model is None:
        return AllocationPolicy(is_active=False)
    try:
        mode = AllocationMode(model.allocation_type)
    except ValueError:
        raise ConfigurationLoadError(
            f"Unknown allocation type: {model.allocation_type!r}"
        )
    return AllocationPolicy(
        is_active=bool(model.is_active),
        mode=mode,
        fixed_amount=model.fixed_amount,
        percentage=model.percentage,
    )


def _to_risk_limits(model: Optional[RiskSettingsModel]) -> RiskLimits:
    if model is None:
        return RiskLimits(enabled=False)
    return RiskLimits(
        enabled=bool(model.enable_risk_controls),
        max_trade_size=model.max_trade_size,
        max_percentage_per_trade=model.max_percentage_per_trade,
    )


def _to_source_trade(model: TradeModel) -> SourceTrade:
    option_details = None
    if model.is_option and model.option_details:
        option_details = OptionLegDetails(
            expiration_date=model.option_details["expiration_date"],
            strike_price=Decimal(str(model.option_details["strike_price"])),
            option_type=OptionType(model.option_details["option_type"]),
        )
    return SourceTrade(
        id=model.id,
        broker_account_id=model.broker_account_id,
        symbol=model.symbol,
        side=OrderSide(model.side),
        quantity=Decimal(model.quantity),
        price=Decimal(model.price),
        order_type=OrderType(model.order_type),
        limit_price=model.limit_price,
        is_option=bool(model.is_option),
        option_details=option_details,
    )


def _to_follower(model: BrokerAccountModel, broker_type: str) -> FollowerAccount:
    return FollowerAccount(
        id=model.id,
        credential_id=model.broker_credential_id,
        broker_type=broker_type,
        account_number=model.account_number,
        account_name=model.account_name or "",
        balance=Decimal(model.balance if model.balance is not None else 0),
        buying_power=Decimal(model.buying_power if model.buying_power is not None else 0),
        is_active=bool(model.is_active),
    )
