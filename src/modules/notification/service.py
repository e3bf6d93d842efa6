"""
Notification Service
====================

Purpose
-------
Outbound notifications to the chat bot service. Each notification type has
one handler in a dispatch table; today the only type is BATTLE_RESULT,
which tells the bot to post the result of a finished battle into the chat
that started it.

Wire Contract
-------------
BATTLE_RESULT:
    GET {BOT_SERVICE_URL}/result-battle/{battle_id}
    Authorization: Bearer {BOT_SERVICE_TOKEN}

Design Notes
------------
- Fire-and-forget from the caller's point of view: `notify_background`
  schedules the request as a tracked task, `drain()` awaits them at shutdown
- No retry; failures are logged and wrapped in NotificationError
- One shared aiohttp ClientSession, created lazily and closed on shutdown

Configuration
-------------
Static Config: BOT_SERVICE_URL, BOT_SERVICE_TOKEN, BOT_REQUEST_TIMEOUT_SECONDS
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Set

import aiohttp

from src.core.config.config import Config
from src.core.exceptions import NotificationError
from src.core.logging.logger import get_logger

logger = get_logger(__name__)


class NotificationType(str, Enum):
    BATTLE_RESULT = "BATTLE_RESULT"


Handler = Callable[[Mapping[str, Any]], Awaitable[None]]


class NotificationService:
    """Tagged dispatch of outbound bot notifications over aiohttp."""

    CHANNEL = "bot"

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._base_url = (base_url if base_url is not None else Config.BOT_SERVICE_URL).rstrip("/")
        self._token = token if token is not None else Config.BOT_SERVICE_TOKEN
        self._timeout = aiohttp.ClientTimeout(
            total=timeout_seconds if timeout_seconds is not None else Config.BOT_REQUEST_TIMEOUT_SECONDS
        )
        self._session = session
        self._owns_session = session is None
        self._tasks: Set[asyncio.Task[None]] = set()

        self._handlers: Dict[NotificationType, Handler] = {
            NotificationType.BATTLE_RESULT: self._send_battle_result,
        }

    @property
    def enabled(self) -> bool:
        return bool(self._base_url)

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    async def notify(self, notification_type: NotificationType, payload: Mapping[str, Any]) -> None:
        """
        Deliver one notification.

        Raises
        ------
        NotificationError
            Transport failure or non-2xx response.
        """
        handler = self._handlers.get(notification_type)
        if handler is None:
            raise NotificationError(self.CHANNEL, str(notification_type), "no handler registered")
        if not self.enabled:
            logger.debug(
                "Bot service not configured; notification dropped",
                extra={"notification_type": notification_type.value},
            )
            return
        await handler(payload)

    def notify_background(self, notification_type: NotificationType, payload: Mapping[str, Any]) -> None:
        """Schedule `notify` without awaiting it; failures are only logged."""
        task = asyncio.create_task(self._notify_logged(notification_type, payload))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        await self.drain()
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    # =========================================================================
    # HANDLERS
    # =========================================================================

    async def _send_battle_result(self, payload: Mapping[str, Any]) -> None:
        battle_id = payload["battle_id"]
        url = f"{self._base_url}/result-battle/{battle_id}"
        target = f"battle:{battle_id}"

        try:
            async with self._client().get(
                url,
                headers={"Authorization": f"Bearer {self._token}"},
                timeout=self._timeout,
            ) as response:
                if response.status >= 400:
                    raise NotificationError(self.CHANNEL, target, f"HTTP {response.status}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise NotificationError(self.CHANNEL, target, str(exc) or type(exc).__name__) from exc

        logger.info(
            "Battle result sent to bot",
            extra={"battle_id": battle_id, "chat_id": payload.get("chat_id")},
        )

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _client(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def _notify_logged(self, notification_type: NotificationType, payload: Mapping[str, Any]) -> None:
        try:
            await self.notify(notification_type, payload)
        except NotificationError as exc:
            logger.warning(
                "Notification failed",
                extra={
                    "notification_type": notification_type.value,
                    "battle_id": payload.get("battle_id"),
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
