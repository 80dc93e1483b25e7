"""
Copy Trading - Configuration.

============================================================
PURPOSE
============================================================
Process configuration for the copy-trade pipeline.

Business settings (allocation policy, risk limits, allowed
symbols) live in the record store and are read as a snapshot
per event. This module only covers deployment settings.

CRITICAL CONSTRAINTS:
- No automatic retries
- Every external call has a bounded timeout

============================================================
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv


DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./copy_trading.db"


# ============================================================
# TIMEOUT CONFIGURATION
# ============================================================

@dataclass
class TimeoutConfig:
    """
    Timeout configuration.
    """

    broker_submit_timeout_seconds: float = 15.0
    """Upper bound for one submit_order call."""

    broker_connect_timeout_seconds: float = 5.0
    """Connection timeout for broker HTTP sessions."""

    broker_read_timeout_seconds: float = 30.0
    """Total timeout for one broker HTTP request."""

    load_timeout_seconds: float = 10.0
    """Upper bound for the policy/account snapshot read."""


# ============================================================
# BROKER ENDPOINTS
# ============================================================

@dataclass
class BrokerEndpointConfig:
    """Base URLs of the broker REST APIs."""

    tastytrade_api_url: str = "https://api.tastytrade.com"
    schwab_api_url: str = "https://api.schwab.com"


# ============================================================
# CONCURRENCY
# ============================================================

@dataclass
class ConcurrencyConfig:
    """Per-follower fan-out."""

    max_parallel_followers: int = 4
    """1 processes followers sequentially."""


# ============================================================
# MAIN CONFIGURATION
# ============================================================

@dataclass
class CopyTradingConfig:
    """
    Complete copy trading configuration.
    """

    database_url: str = DEFAULT_DATABASE_URL
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    brokers: BrokerEndpointConfig = field(default_factory=BrokerEndpointConfig)
    concurrency: ConcurrencyConfig = field(default_factory=ConcurrencyConfig)

    def validate(self) -> None:
        """Raise ValueError on an unusable configuration."""
        if self.timeouts.broker_submit_timeout_seconds <= 0:
            raise ValueError("broker_submit_timeout_seconds must be positive")
        if self.timeouts.load_timeout_seconds <= 0:
            raise ValueError("load_timeout_seconds must be positive")
        if self.concurrency.max_parallel_followers < 1:
            raise ValueError("max_parallel_followers must be at least 1")

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "CopyTradingConfig":
        """
        Create config from environment variables.

        Args:
            env_file: Optional .env path (defaults to dotenv discovery)

        Returns:
            CopyTradingConfig
        """
        load_dotenv(env_file)

        timeouts = TimeoutConfig(
            broker_submit_timeout_seconds=_env_float(
                "COPY_BROKER_TIMEOUT_SECONDS",
                TimeoutConfig.broker_submit_timeout_seconds,
            ),
            load_timeout_seconds=_env_float(
                "COPY_LOAD_TIMEOUT_SECONDS",
                TimeoutConfig.load_timeout_seconds,
            ),
        )

        brokers = BrokerEndpointConfig(
            tastytrade_api_url=os.getenv(
                "TASTYTRADE_API_URL", BrokerEndpointConfig.tastytrade_api_url
            ),
            schwab_api_url=os.getenv(
                "SCHWAB_API_URL", BrokerEndpointConfig.schwab_api_url
            ),
        )

        concurrency = ConcurrencyConfig(
            max_parallel_followers=_env_int(
                "COPY_MAX_PARALLEL_FOLLOWERS",
                ConcurrencyConfig.max_parallel_followers,
            ),
        )

        config = cls(
            database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
            timeouts=timeouts,
            brokers=brokers,
            concurrency=concurrency,
        )
        config.validate()
        return config


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")
