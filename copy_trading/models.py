"""
Copy Trading - ORM Models.

============================================================
PURPOSE
============================================================
SQLAlchemy ORM models for copy trading persistence.

TABLES:
- broker_credentials: Broker sessions (token + expiry)
- broker_accounts: Brokerage accounts (source and followers)
- trades: Source and follower-side trade records
- copy_trade_settings: Allocation policy
- risk_settings: Risk limits
- symbols: Copy trading allow-list
- copy_trade_logs: One row per (source trade, follower) attempt
- logs: System log entries (gate rejections, risk clamps, errors)
- notifications: User-facing notifications

AUDIT REQUIREMENTS:
- Every copy attempt is persisted before the broker call
- copy_trade_logs rows are never deleted by this package
- Status moves pending -> success | failed exactly once

============================================================
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Any, Dict

from sqlalchemy import (
    JSON,
    String,
    Integer,
    Numeric,
    DateTime,
    Boolean,
    Text,
    ForeignKey,
    Index,
)
from sqlalchemy.orm import DeclarativeBase, relationship, Mapped, mapped_column


# ============================================================
# BASE
# ============================================================

class Base(DeclarativeBase):
    """Declarative base for copy trading models."""
    pass


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _num(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


# ============================================================
# BROKER CREDENTIALS / ACCOUNTS
# ============================================================

class BrokerCredentialModel(Base):
    """
    Stored broker session.

    Token issuance and refresh happen elsewhere; this package only
    reads the current token.
    """

    __tablename__ = "broker_credentials"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    broker_type: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    session_token: Mapped[Optional[str]] = mapped_column(Text)
    expiry: Mapped[Optional[datetime]] = mapped_column(DateTime)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    connection_status: Mapped[str] = mapped_column(String(32), default="disconnected")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    accounts: Mapped[List["BrokerAccountModel"]] = relationship(
        "BrokerAccountModel",
        back_populates="credential",
    )

    def to_dict(self) -> Dict[str, Any]:
        # session_token is never serialized
        return {
            "id": self.id,
            "name": self.name,
            "broker_type": self.broker_type,
            "expiry": _iso(self.expiry),
            "is_active": self.is_active,
            "connection_status": self.connection_status,
        }


class BrokerAccountModel(Base):
    """Brokerage account owned by a broker credential."""

    __tablename__ = "broker_accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    broker_credential_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("broker_credentials.id"), nullable=False, index=True
    )
    account_number: Mapped[str] = mapped_column(String(64), nullable=False)
    account_name: Mapped[str] = mapped_column(String(128), default="")
    account_type: Mapped[Optional[str]] = mapped_column(String(32))
    balance: Mapped[Decimal] = mapped_column(Numeric(24, 8), default=Decimal("0"))
    buying_power: Mapped[Decimal] = mapped_column(Numeric(24, 8), default=Decimal("0"))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    credential: Mapped["BrokerCredentialModel"] = relationship(
        "BrokerCredentialModel",
        back_populates="accounts",
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "broker_credential_id": self.broker_credential_id,
            "account_number": self.account_number,
            "account_name": self.account_name,
            "account_type": self.account_type,
            "balance": _num(self.balance),
            "buying_power": _num(self.buying_power),
            "is_active": self.is_active,
        }


# ============================================================
# TRADES
# ============================================================

class TradeModel(Base):
    """
    Trade record.

    type is "manual" for trades placed on an account directly and
    "copy" for follower-side trades created by the orchestrator.
    """

    __tablename__ = "trades"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    broker_account_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("broker_accounts.id"), nullable=False, index=True
    )
    symbol: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    quantity: Mapped[Decimal] = mapped_column(Numeric(24, 8), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(24, 8), nullable=False)
    side: Mapped[str] = mapped_column(String(8), nullable=False)
    order_type: Mapped[str] = mapped_column(String(16), default="market")
    limit_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(24, 8))
    status: Mapped[str] = mapped_column(String(16), default="pending", index=True)
    type: Mapped[str] = mapped_column(String(16), default="manual")
    is_option: Mapped[bool] = mapped_column(Boolean, default=False)
    option_details: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON)
    execution_details: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON)
    broker_order_id: Mapped[Optional[str]] = mapped_column(String(64))
    source_trade_id: Mapped[Optional[int]] = mapped_column(Integer, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "broker_account_id": self.broker_account_id,
            "symbol": self.symbol,
            "quantity": _num(self.quantity),
            "price": _num(self.price),
            "side": self.side,
            "order_type": self.order_type,
            "limit_price": _num(self.limit_price),
            "status": self.status,
            "type": self.type,
            "is_option": self.is_option,
            "option_details": self.option_details,
            "execution_details": self.execution_details,
            "broker_order_id": self.broker_order_id,
            "source_trade_id": self.source_trade_id,
            "created_at": _iso(self.created_at),
        }


# ============================================================
# SETTINGS
# ============================================================

class CopyTradeSettingsModel(Base):
    """Allocation policy (single row)."""

    __tablename__ = "copy_trade_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False)
    allocation_type: Mapped[str] = mapped_column(String(16), default="percentage")
    fixed_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(24, 8))
    percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 4))

    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "is_active": self.is_active,
            "allocation_type": self.allocation_type,
            "fixed_amount": _num(self.fixed_amount),
            "percentage": _num(self.percentage),
        }


class RiskSettingsModel(Base):
    """Risk limits (single row)."""

    __tablename__ = "risk_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    max_trade_size: Mapped[Optional[Decimal]] = mapped_column(Numeric(24, 8), default=Decimal("5000"))
    max_percentage_per_trade: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 4), default=Decimal("5"))
    max_daily_drawdown: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 4))
    enable_risk_controls: Mapped[bool] = mapped_column(Boolean, default=True)

    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "max_trade_size": _num(self.max_trade_size),
            "max_percentage_per_trade": _num(self.max_percentage_per_trade),
            "max_daily_drawdown": _num(self.max_daily_drawdown),
            "enable_risk_controls": self.enable_risk_controls,
        }


class SymbolModel(Base):
    """Copy trading allow-list entry."""

    __tablename__ = "symbols"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    symbol: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(128))
    exchange: Mapped[Optional[str]] = mapped_column(String(32))
    type: Mapped[str] = mapped_column(String(16), default="stock")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "name": self.name,
            "exchange": self.exchange,
            "type": self.type,
            "is_active": self.is_active,
        }


# ============================================================
# AUDIT
# ============================================================

class CopyTradeLogModel(Base):
    """
    Copy attempt record.

    One row per (source trade, follower account) pair.
    """

    __tablename__ = "copy_trade_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_trade_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    target_trade_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("trades.id"))
    source_account_id: Mapped[int] = mapped_column(Integer, nullable=False)
    target_account_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    symbol: Mapped[str] = mapped_column(String(32), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(24, 8), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(24, 8), nullable=False)
    side: Mapped[str] = mapped_column(String(8), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    error_message: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_copy_trade_logs_status_created", "status", "created_at"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "source_trade_id": self.source_trade_id,
            "target_trade_id": self.target_trade_id,
            "source_account_id": self.source_account_id,
            "target_account_id": self.target_account_id,
            "symbol": self.symbol,
            "quantity": _num(self.quantity),
            "price": _num(self.price),
            "side": self.side,
            "status": self.status,
            "error_message": self.error_message,
            "created_at": _iso(self.created_at),
        }


class LogModel(Base):
    """System log entry."""

    __tablename__ = "logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    level: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    source: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    details: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "level": self.level,
            "message": self.message,
            "source": self.source,
            "details": self.details,
            "created_at": _iso(self.created_at),
        }


class NotificationModel(Base):
    """User-facing notification."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "read": self.read,
            "created_at": _iso(self.created_at),
        }
