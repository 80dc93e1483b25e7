"""
Copy Trading - Notifications.

============================================================
PURPOSE
============================================================
Delivers user-facing notifications emitted by the orchestrator.

SINKS:
- DatabaseNotificationSink: notifications table
- CallbackNotificationSink: any async callable
- LoggingNotificationSink: log only

CRITICAL PRINCIPLE:
Notification delivery is fire-and-forget. A sink failure is logged
and never fails a copy event. Use safe_emit().

============================================================
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, List, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from .database import session_scope
from .repository import CopyTradeRepository
from .types import NotificationType


logger = logging.getLogger(__name__)


@dataclass
class Notification:
    """One emitted notification."""

    type: NotificationType
    title: str
    message: str
    created_at: datetime = field(default_factory=datetime.utcnow)


# ============================================================
# SINK INTERFACE
# ============================================================

class NotificationSink(ABC):
    """Destination for notifications."""

    @abstractmethod
    async def emit(
        self,
        notification_type: NotificationType,
        title: str,
        message: str,
    ) -> None:
        """Deliver one notification. May raise."""
        pass


# ============================================================
# SINKS
# ============================================================

class DatabaseNotificationSink(NotificationSink):
    """
    Writes notifications to the notifications table.

    Uses its own session so a failed write never touches the caller's
    transaction.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def emit(
        self,
        notification_type: NotificationType,
        title: str,
        message: str,
    ) -> None:
        async with session_scope(self._session_factory) as session:
            await CopyTradeRepository(session).create_notification(
                notification_type, title, message
            )


class CallbackNotificationSink(NotificationSink):
    """Forwards notifications to an async callback."""

    def __init__(
        self,
        callback: Callable[[NotificationType, str, str], Awaitable[None]],
    ):
        self._callback = callback

    async def emit(
        self,
        notification_type: NotificationType,
        title: str,
        message: str,
    ) -> None:
        await self._callback(notification_type, title, message)


class LoggingNotificationSink(NotificationSink):
    """Logs notifications and keeps a short history."""

    def __init__(self, history_size: int = 100):
        self._history_size = history_size
        self.history: List[Notification] = []

    async def emit(
        self,
        notification_type: NotificationType,
        title: str,
        message: str,
    ) -> None:
        log_func = {
            NotificationType.ERROR: logger.error,
            NotificationType.WARNING: logger.warning,
        }.get(notification_type, logger.info)
        log_func(f"NOTIFY [{notification_type.value}]: {title} - {message}")

        self.history.append(Notification(notification_type, title, message))
        if len(self.history) > self._history_size:
            self.history = self.history[-self._history_size:]


# ============================================================
# SAFE DELIVERY
# ============================================================

async def safe_emit(
    sink: Optional[NotificationSink],
    notification_type: NotificationType,
    title: str,
    message: str,
) -> bool:
    """
    Emit through a sink, swallowing delivery failures.

    Returns:
        True if the sink accepted the notification
    """
    if sink is None:
        return False
    try:
        await sink.emit(notification_type, title, message)
        return True
    except Exception as e:
        logger.error(f"Failed to send notification '{title}': {e}")
        return False
