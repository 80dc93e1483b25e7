"""
Copy Trading - Orchestrator.

============================================================
PURPOSE
============================================================
Replicates one filled source trade into every eligible follower
account.

FLOW:
1. GATING: symbol must be on the active allow-list
2. ENUMERATING: policy snapshot, source account, followers
3. PER FOLLOWER (isolated):
   ALLOCATING -> RISK_ADJUSTING -> SUBMITTING -> RECORDING
4. SUMMARIZING: one summary notification
5. DONE: CopyEventResult back to the caller

============================================================
CRITICAL PRINCIPLE
============================================================
A follower's failure NEVER affects another follower.

- Every follower runs inside its own isolation boundary
- The pending CopyAttempt row is written BEFORE the broker call
- Broker calls run outside any database transaction
- Broker calls are bounded by a timeout
- Nothing is retried; pending rows are the recovery signal

Only the gate and a policy load failure end the whole event.

============================================================
"""

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, List, Dict, Any

from sqlalchemy.ext.asyncio import async_sessionmaker

from .adapters.base import BrokerAdapter, OrderSpec, SubmitOrderResponse
from .adapters.registry import BrokerRegistry
from .allocation import compute_quantity, ZERO
from .config import CopyTradingConfig
from .credentials import CredentialProvider
from .database import session_scope
from .errors import (
    ZERO_QUANTITY_MESSAGE,
    categorize_exception,
    classify_broker_exception,
    classify_broker_message,
    describe_exception,
    is_transport_failure,
)
from .notifications import NotificationSink, safe_emit
from .repository import CopyTradeRepository
from .risk import apply_risk_limits, MAX_TRADE_SIZE
from .state_machine import CopyEventStage
from .symbol_gate import SymbolAllowListGate
from .types import (
    SourceTrade,
    FollowerAccount,
    PolicySnapshot,
    RiskAdjustment,
    CopyAttemptStatus,
    CopyEventOutcome,
    CopyEventResult,
    FollowerResult,
    LogLevel,
    NotificationType,
    CredentialError,
    UnsupportedBrokerError,
    ConfigurationLoadError,
    InvariantViolation,
)


logger = logging.getLogger(__name__)


LOG_SOURCE = "copy-trading"
RISK_LOG_SOURCE = "risk-management"

_RISK_MESSAGES = {
    MAX_TRADE_SIZE: "Trade size reduced due to max trade size limit",
}
_DEFAULT_RISK_MESSAGE = "Trade size reduced due to max percentage per trade limit"


@dataclass
class _EventInputs:
    """Everything read in the opening transaction of an event."""

    snapshot: PolicySnapshot
    source_found: bool
    followers: List[FollowerAccount]


@dataclass
class _FollowerRun:
    """Mutable progress of one follower, read by the isolation boundary."""

    follower: FollowerAccount
    stage: CopyEventStage = CopyEventStage.ALLOCATING
    quantity: Decimal = ZERO
    attempt_id: Optional[int] = None
    finalized: bool = False


# ============================================================
# COPY TRADE ORCHESTRATOR
# ============================================================

class CopyTradeOrchestrator:
    """
    Runs the copy-trade pipeline for one source trade at a time.

    Usage:
        orchestrator = CopyTradeOrchestrator(
            session_factory=db.session_factory,
            registry=create_default_registry(config),
            credential_provider=StoredCredentialProvider(db.session_factory),
            notification_sink=DatabaseNotificationSink(db.session_factory),
            config=config,
        )
        result = await orchestrator.on_source_trade_filled(trade)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        registry: BrokerRegistry,
        credential_provider: CredentialProvider,
        notification_sink: Optional[NotificationSink] = None,
        config: Optional[CopyTradingConfig] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            session_factory: Async session factory for the record store
            registry: Broker type -> adapter
            credential_provider: Bearer credentials per follower
            notification_sink: Where notifications go (optional)
            config: Timeouts and concurrency
        """
        self._session_factory = session_factory
        self._registry = registry
        self._credentials = credential_provider
        self._sink = notification_sink
        self._config = config or CopyTradingConfig()

        self._stats = {
            "events": 0,
            "rejected": 0,
            "failed": 0,
            "followers_succeeded": 0,
            "followers_failed": 0,
        }

        logger.info(
            f"CopyTradeOrchestrator initialized | "
            f"brokers={registry.list_supported()} | "
            f"max_parallel={self._config.concurrency.max_parallel_followers}"
        )

    # --------------------------------------------------------
    # PUBLIC API
    # --------------------------------------------------------

    async def on_source_trade_filled(self, source_trade: SourceTrade) -> CopyEventResult:
        """
        Copy a filled source trade to all eligible followers.

        Never raises for pipeline failures: event-fatal errors come
        back as a CopyEventResult with outcome FAILED.

        Args:
            source_trade: The executed trade on the source account

        Returns:
            CopyEventResult with one FollowerResult per follower
        """
        self._stats["events"] += 1
        logger.info(
            f"Copy event started: trade={source_trade.id} {source_trade.side.value} "
            f"{source_trade.quantity} {source_trade.symbol} @ {source_trade.price}"
        )

        # 1. Opening read: policy snapshot, source account, followers
        try:
            inputs = await self._read_event_inputs(source_trade)
        except ConfigurationLoadError as e:
            return await self._fail_event(source_trade, e)

        # 2. Gating
        self._log_stage(source_trade, CopyEventStage.GATING)
        decision = SymbolAllowListGate(inputs.snapshot.symbols).check(source_trade.symbol)
        if not decision.allowed:
            return await self._reject_event(source_trade, decision.reason)

        # 3. Enumerating
        self._log_stage(source_trade, CopyEventStage.ENUMERATING)
        if not inputs.snapshot.allocation.is_active:
            logger.info(f"Copy trading is not active, trade {source_trade.id} not copied")
            return CopyEventResult(
                success=False,
                message="Copy trading is not active",
                outcome=CopyEventOutcome.NOT_ACTIVE,
                source_trade_id=source_trade.id,
            )

        if not inputs.source_found:
            logger.warning(
                f"Source account {source_trade.broker_account_id} not found "
                f"for trade {source_trade.id}"
            )
            return CopyEventResult(
                success=False,
                message="Source account not found",
                outcome=CopyEventOutcome.SOURCE_NOT_FOUND,
                source_trade_id=source_trade.id,
            )

        try:
            _assert_source_excluded(source_trade, inputs.followers)
        except InvariantViolation as e:
            return await self._fail_event(source_trade, e)

        if not inputs.followers:
            logger.info(f"No target accounts for trade {source_trade.id}")
            return CopyEventResult(
                success=False,
                message="No target accounts found",
                outcome=CopyEventOutcome.NO_TARGETS,
                source_trade_id=source_trade.id,
            )

        # 4. Per follower, isolated
        results = await self._run_followers(source_trade, inputs.snapshot, inputs.followers)

        # 5. Summarizing
        self._log_stage(source_trade, CopyEventStage.SUMMARIZING)
        result = CopyEventResult(
            success=True,
            message=f"Processed copy trade for {len(inputs.followers)} accounts",
            outcome=CopyEventOutcome.COMPLETED,
            source_trade_id=source_trade.id,
            results=results,
        )
        await self._emit_summary(source_trade, result)

        self._log_stage(source_trade, CopyEventStage.DONE)
        logger.info(
            f"Copy event complete: trade={source_trade.id} "
            f"success={result.success_count} failed={result.failure_count}"
        )
        return result

    async def process_trade_id(self, trade_id: int) -> CopyEventResult:
        """Load a stored trade and copy it."""
        try:
            async with self._session_factory() as session:
                source_trade = await CopyTradeRepository(session).get_source_trade(trade_id)
        except Exception as e:
            logger.error(f"Failed to load trade {trade_id}: {e}")
            return CopyEventResult(
                success=False,
                message=f"Error processing copy trade: {describe_exception(e)}",
                outcome=CopyEventOutcome.FAILED,
                source_trade_id=trade_id,
            )

        if source_trade is None:
            return CopyEventResult(
                success=False,
                message=f"Trade {trade_id} not found",
                outcome=CopyEventOutcome.FAILED,
                source_trade_id=trade_id,
            )
        return await self.on_source_trade_filled(source_trade)

    def get_stats(self) -> Dict[str, Any]:
        return dict(self._stats)

    # --------------------------------------------------------
    # EVENT-LEVEL STEPS
    # --------------------------------------------------------

    async def _read_event_inputs(self, source_trade: SourceTrade) -> _EventInputs:
        """
        Bounded opening read.

        Raises:
            ConfigurationLoadError: Read failed or timed out
        """
        timeout = self._config.timeouts.load_timeout_seconds
        try:
            return await asyncio.wait_for(
                self._load_event_inputs(source_trade),
                timeout=timeout,
            )
        except ConfigurationLoadError:
            raise
        except asyncio.TimeoutError as e:
            raise ConfigurationLoadError(
                f"Timed out loading copy trading settings after {timeout}s"
            ) from e
        except Exception as e:
            raise ConfigurationLoadError(
                f"Failed to load copy trading settings: {describe_exception(e)}"
            ) from e

    async def _load_event_inputs(self, source_trade: SourceTrade) -> _EventInputs:
        async with session_scope(self._session_factory) as session:
            repo = CopyTradeRepository(session)
            snapshot = await repo.load_policy_snapshot()
            source_account = await repo.get_account(source_trade.broker_account_id)
            followers = await repo.list_follower_accounts(
                exclude_account_id=source_trade.broker_account_id
            )
        return _EventInputs(
            snapshot=snapshot,
            source_found=source_account is not None,
            followers=followers,
        )

    async def _reject_event(self, source_trade: SourceTrade, reason: str) -> CopyEventResult:
        """Gate rejection: one log row, one notification, no attempts."""
        self._stats["rejected"] += 1
        logger.warning(f"Copy trade rejected for trade {source_trade.id}: {reason}")

        try:
            async with session_scope(self._session_factory) as session:
                await CopyTradeRepository(session).write_log(
                    LogLevel.WARNING,
                    f"Copy trade rejected: {reason}",
                    LOG_SOURCE,
                    details=_trade_details(source_trade),
                )
        except Exception as e:
            logger.error(f"Failed to write rejection log for trade {source_trade.id}: {e}")

        await safe_emit(
            self._sink,
            NotificationType.ERROR,
            "Copy Trade Rejected",
            f"Copy trade rejected: {reason}",
        )

        return CopyEventResult(
            success=False,
            message=reason,
            outcome=CopyEventOutcome.SYMBOL_REJECTED,
            source_trade_id=source_trade.id,
        )

    async def _fail_event(self, source_trade: SourceTrade, exc: BaseException) -> CopyEventResult:
        """Event-fatal failure: error log, best-effort log row, FAILED result."""
        self._stats["failed"] += 1
        message = describe_exception(exc)
        category = categorize_exception(exc)
        # Expected event-fatal categories log without a traceback
        logger.error(
            f"Copy trading error for trade {source_trade.id} "
            f"({category.value}): {message}",
            exc_info=None if category.is_event_fatal() else exc,
        )

        try:
            async with session_scope(self._session_factory) as session:
                await CopyTradeRepository(session).write_log(
                    LogLevel.ERROR,
                    "Copy trading error",
                    LOG_SOURCE,
                    details={"source_trade_id": source_trade.id, "error": message},
                )
        except Exception as e:
            logger.error(f"Failed to write error log for trade {source_trade.id}: {e}")

        return CopyEventResult(
            success=False,
            message=f"Error processing copy trade: {message}",
            outcome=CopyEventOutcome.FAILED,
            source_trade_id=source_trade.id,
        )

    async def _emit_summary(self, source_trade: SourceTrade, result: CopyEventResult) -> None:
        successes = result.success_count
        failures = result.failure_count

        if failures == 0:
            notification_type = NotificationType.SUCCESS
        elif successes > 0:
            notification_type = NotificationType.WARNING
        else:
            notification_type = NotificationType.ERROR

        await safe_emit(
            self._sink,
            notification_type,
            "Copy Trading Summary",
            f"Copied trade for {source_trade.symbol}: "
            f"{successes} successful, {failures} failed",
        )

    # --------------------------------------------------------
    # PER-FOLLOWER
    # --------------------------------------------------------

    async def _run_followers(
        self,
        source_trade: SourceTrade,
        snapshot: PolicySnapshot,
        followers: List[FollowerAccount],
    ) -> List[FollowerResult]:
        """Run every follower and wait for all of them."""
        semaphore = asyncio.Semaphore(
            max(1, self._config.concurrency.max_parallel_followers)
        )

        async def run_one(follower: FollowerAccount) -> FollowerResult:
            async with semaphore:
                return await self._process_follower(source_trade, snapshot, follower)

        results = await asyncio.gather(*(run_one(f) for f in followers))

        for r in results:
            key = "followers_succeeded" if r.success else "followers_failed"
            self._stats[key] += 1
        return list(results)

    async def _process_follower(
        self,
        source_trade: SourceTrade,
        snapshot: PolicySnapshot,
        follower: FollowerAccount,
    ) -> FollowerResult:
        """
        Isolation boundary for one follower.

        Any exception is converted into a failed FollowerResult and a
        failed CopyAttempt; nothing escapes to the other followers.
        """
        run = _FollowerRun(follower=follower)
        try:
            return await self._copy_to_follower(source_trade, snapshot, run)
        except Exception as e:
            logger.exception(
                f"Error processing copy trade for account {follower.id} "
                f"at stage {run.stage.value}"
            )
            return await self._record_failure(source_trade, run, describe_exception(e))

    async def _copy_to_follower(
        self,
        source_trade: SourceTrade,
        snapshot: PolicySnapshot,
        run: _FollowerRun,
    ) -> FollowerResult:
        follower = run.follower

        # a. Allocating
        run.stage = CopyEventStage.ALLOCATING
        quantity = compute_quantity(snapshot.allocation, source_trade, follower)

        # b. Risk adjusting
        run.stage = CopyEventStage.RISK_ADJUSTING
        risk = apply_risk_limits(snapshot.risk, quantity, source_trade.price, follower.balance)
        quantity = risk.quantity
        run.quantity = quantity

        # c. Audit rows before any broker call
        async with session_scope(self._session_factory) as session:
            repo = CopyTradeRepository(session)
            for adj in risk.adjustments:
                await self._write_risk_log(repo, source_trade, follower, adj)

            if quantity <= 0:
                attempt = await repo.create_copy_attempt(
                    source_trade,
                    follower,
                    ZERO,
                    status=CopyAttemptStatus.FAILED,
                    error_message=ZERO_QUANTITY_MESSAGE,
                )
                run.attempt_id = attempt.id
                run.finalized = True
            else:
                attempt = await repo.create_copy_attempt(source_trade, follower, quantity)
                run.attempt_id = attempt.id

        if run.finalized:
            logger.info(
                f"Follower {follower.id} skipped for trade {source_trade.id}: "
                f"{ZERO_QUANTITY_MESSAGE}"
            )
            return FollowerResult(
                follower_id=follower.id,
                success=False,
                account_name=follower.account_name,
                quantity=ZERO,
                copy_attempt_id=run.attempt_id,
                error=ZERO_QUANTITY_MESSAGE,
            )

        # d. Submitting
        run.stage = CopyEventStage.SUBMITTING
        response = await self._submit(source_trade, follower, quantity)

        # e. Recording
        run.stage = CopyEventStage.RECORDING
        if not response.success:
            return await self._record_failure(
                source_trade,
                run,
                response.message or "Failed to execute trade",
            )

        async with session_scope(self._session_factory) as session:
            repo = CopyTradeRepository(session)
            trade = await repo.create_follower_trade(
                source_trade,
                follower,
                quantity,
                broker_order_id=response.broker_order_id,
                execution_details=response.raw or None,
            )
            await repo.update_copy_attempt(
                run.attempt_id,
                CopyAttemptStatus.SUCCESS,
                target_trade_id=trade.id,
            )
            trade_id = trade.id
        run.finalized = True

        logger.info(
            f"Copied trade {source_trade.id} to account {follower.id}: "
            f"{quantity} {source_trade.symbol} order={response.broker_order_id}"
        )
        return FollowerResult(
            follower_id=follower.id,
            success=True,
            account_name=follower.account_name,
            quantity=quantity,
            copy_attempt_id=run.attempt_id,
            trade_id=trade_id,
            broker_order_id=response.broker_order_id,
        )

    async def _submit(
        self,
        source_trade: SourceTrade,
        follower: FollowerAccount,
        quantity: Decimal,
    ) -> SubmitOrderResponse:
        """
        Submit through the follower's adapter.

        Transport failures, unsupported brokers and unusable
        credentials all come back as a rejected response. The
        credential lookup and the broker call share one timeout.
        """
        order = OrderSpec(
            symbol=source_trade.symbol,
            quantity=quantity,
            side=source_trade.side,
            order_type=source_trade.order_type,
            limit_price=source_trade.limit_price,
            is_option=source_trade.is_option,
            option_details=source_trade.option_details,
        )

        try:
            adapter = self._registry.get(follower.broker_type)
            return await asyncio.wait_for(
                self._authorize_and_submit(adapter, follower, order),
                timeout=self._config.timeouts.broker_submit_timeout_seconds,
            )
        except (UnsupportedBrokerError, CredentialError) as e:
            logger.warning(f"Cannot submit for account {follower.id}: {e}")
            return SubmitOrderResponse.rejected(describe_exception(e))
        except Exception as e:
            if not is_transport_failure(e):
                raise
            logger.warning(
                f"Broker submit failed for account {follower.id} "
                f"({follower.broker_type}, {classify_broker_exception(e).value}): "
                f"{describe_exception(e)}"
            )
            return SubmitOrderResponse.rejected(describe_exception(e))

    async def _authorize_and_submit(
        self,
        adapter: BrokerAdapter,
        follower: FollowerAccount,
        order: OrderSpec,
    ) -> SubmitOrderResponse:
        credential = await self._credentials.get_credential(follower)
        return await adapter.submit_order(credential, follower.account_number, order)

    async def _record_failure(
        self,
        source_trade: SourceTrade,
        run: _FollowerRun,
        message: str,
    ) -> FollowerResult:
        """Mark the follower failed and notify immediately."""
        follower = run.follower

        if not run.finalized:
            try:
                async with session_scope(self._session_factory) as session:
                    repo = CopyTradeRepository(session)
                    if run.attempt_id is None:
                        attempt = await repo.create_copy_attempt(
                            source_trade,
                            follower,
                            ZERO,
                            status=CopyAttemptStatus.FAILED,
                            error_message=message,
                        )
                        run.attempt_id = attempt.id
                    else:
                        await repo.update_copy_attempt(
                            run.attempt_id,
                            CopyAttemptStatus.FAILED,
                            error_message=message,
                        )
                run.finalized = True
            except Exception as e:
                logger.error(
                    f"Failed to record copy failure for account {follower.id} "
                    f"(attempt {run.attempt_id}): {e}"
                )

        logger.warning(
            f"Copy to account {follower.id} failed for trade {source_trade.id} "
            f"({classify_broker_message(message).value}): {message}"
        )
        await safe_emit(
            self._sink,
            NotificationType.ERROR,
            "Copy Trade Failed",
            f"Failed to copy trade for {source_trade.symbol} to account "
            f"{follower.account_name}: {message}",
        )

        return FollowerResult(
            follower_id=follower.id,
            success=False,
            account_name=follower.account_name,
            quantity=run.quantity,
            copy_attempt_id=run.attempt_id,
            error=message,
        )

    async def _write_risk_log(
        self,
        repo: CopyTradeRepository,
        source_trade: SourceTrade,
        follower: FollowerAccount,
        adj: RiskAdjustment,
    ) -> None:
        logger.warning(
            f"Risk clamp for account {follower.id} on trade {source_trade.id}: "
            f"{adj.reason} {adj.from_quantity} -> {adj.to_quantity}"
        )
        await repo.write_log(
            LogLevel.WARNING,
            _RISK_MESSAGES.get(adj.reason, _DEFAULT_RISK_MESSAGE),
            RISK_LOG_SOURCE,
            details={
                "source_trade_id": source_trade.id,
                "follower_id": follower.id,
                "reason": adj.reason,
                "original": str(adj.from_quantity),
                "adjusted": str(adj.to_quantity),
            },
        )

    def _log_stage(self, source_trade: SourceTrade, stage: CopyEventStage) -> None:
        logger.debug(f"Copy event trade={source_trade.id} stage={stage.value}")


# ============================================================
# HELPERS
# ============================================================

def _assert_source_excluded(
    source_trade: SourceTrade,
    followers: List[FollowerAccount],
) -> None:
    """An account cannot be both source and follower of one event."""
    for follower in followers:
        if follower.id == source_trade.broker_account_id:
            raise InvariantViolation(
                f"Source account {follower.id} listed as a follower "
                f"of trade {source_trade.id}"
            )


def _trade_details(source_trade: SourceTrade) -> Dict[str, Any]:
    return {
        "source_trade_id": source_trade.id,
        "broker_account_id": source_trade.broker_account_id,
        "symbol": source_trade.symbol,
        "side": source_trade.side.value,
        "quantity": str(source_trade.quantity),
        "price": str(source_trade.price),
    }
