"""
Arena EventBus: async pub/sub with tiered concurrency.

Purpose
-------
Decouple producers (battle completion, audit logger) from consumers (audit
sink, notification hooks) inside one process.

Responsibilities
----------------
- Register/unregister listeners with priorities
- Publish events to all matching listeners (exact + `prefix.*` wildcard)
- Execute listeners according to tiered concurrency:
  * CRITICAL: sequential, ordered, awaited with timeout
  * HIGH: sequential, ordered, awaited with timeout
  * NORMAL: concurrent (gather), awaited
  * LOW: fire-and-forget background tasks
- Error isolation: one failing listener never blocks others

Design Decisions
----------------
- Instance-based so tests can build a private bus
- Listener timeouts come from ConfigManager (`core.event.listener_timeout.*`)
- LOW-tier tasks are tracked so `drain()` can await them at shutdown

Dependencies
------------
- src.core.logging.logger (structured logging)
- src.core.config.manager.ConfigManager (timeouts)
"""

from __future__ import annotations

import asyncio
import fnmatch
import inspect
from typing import Any, Optional

from src.core.config.manager import ConfigManager
from src.core.event.types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerPriority,
)
from src.core.logging.logger import get_logger

logger = get_logger(__name__)


class EventBus:
    """
    Async EventBus with tiered listener execution.

    Examples
    --------
    >>> bus = EventBus()
    >>> bus.subscribe("audit.battle.recorded", sink, priority=ListenerPriority.LOW)
    >>> await bus.publish("audit.battle.recorded", {"battle_id": 42})
    """

    def __init__(
        self,
        *,
        critical_timeout_seconds: Optional[float] = None,
        high_timeout_seconds: Optional[float] = None,
    ) -> None:
        self._listeners: dict[str, list[EventListener]] = {}
        self._background_tasks: set[asyncio.Task[Any]] = set()
        self._published: dict[str, int] = {}
        self._errors: dict[str, int] = {}

        self._critical_timeout_override = critical_timeout_seconds
        self._high_timeout_override = high_timeout_seconds

    # ------------------------------------------------------------------ #
    # Configuration
    # ------------------------------------------------------------------ #

    @staticmethod
    def _load_timeout(key: str, override: Optional[float], default: float) -> float:
        if override is not None:
            return float(override)
        value = ConfigManager.get(key, default)
        return float(value) if isinstance(value, (int, float)) else default

    @property
    def critical_timeout(self) -> float:
        return self._load_timeout(
            "core.event.listener_timeout.critical_seconds", self._critical_timeout_override, 5.0
        )

    @property
    def high_timeout(self) -> float:
        return self._load_timeout(
            "core.event.listener_timeout.high_seconds", self._high_timeout_override, 5.0
        )

    # ------------------------------------------------------------------ #
    # Subscription API
    # ------------------------------------------------------------------ #

    @staticmethod
    def _validate_callback_signature(callback: CallbackType) -> None:
        """Ensure the callback accepts exactly one parameter (the payload)."""
        try:
            sig = inspect.signature(callback)
        except (TypeError, ValueError):
            return

        params = list(sig.parameters.values())
        if len(params) != 1:
            callback_name = getattr(callback, "__qualname__", None) or repr(callback)
            raise ValueError(
                f"Event listener must accept exactly 1 parameter (EventPayload), "
                f"got {len(params)} parameters for '{callback_name}'"
            )

    def subscribe(
        self,
        event_name: str,
        callback: CallbackType,
        *,
        priority: ListenerPriority = ListenerPriority.NORMAL,
        identifier: Optional[str] = None,
        once: bool = False,
    ) -> str:
        """
        Subscribe a callback to an event name or `prefix.*` pattern.

        Returns the listener identifier. Re-subscribing the same identifier
        is a no-op.
        """
        self._validate_callback_signature(callback)

        listener = EventListener.from_callback(
            event_name=event_name,
            callback=callback,
            priority=priority,
            identifier=identifier,
            once=once,
        )

        bucket = self._listeners.setdefault(event_name, [])
        if any(existing.identifier == listener.identifier for existing in bucket):
            logger.warning(
                "EventBus: duplicate listener prevented",
                extra={"event_name": event_name, "listener_id": listener.identifier},
            )
            return listener.identifier

        bucket.append(listener)
        logger.debug(
            "EventBus: subscribed listener",
            extra={
                "event_name": event_name,
                "listener_id": listener.identifier,
                "priority": listener.priority.name,
                "once": listener.once,
            },
        )
        return listener.identifier

    def unsubscribe(self, event_name: str, identifier: str) -> bool:
        bucket = self._listeners.get(event_name, [])
        kept = [lst for lst in bucket if lst.identifier != identifier]
        if len(kept) == len(bucket):
            return False

        if kept:
            self._listeners[event_name] = kept
        else:
            self._listeners.pop(event_name, None)
        return True

    def _extract_listeners(self, event_name: str) -> list[EventListener]:
        """Collect matching listeners and prune one-shot ones."""
        matched: list[EventListener] = []

        for pattern in list(self._listeners):
            if pattern != event_name and not fnmatch.fnmatchcase(event_name, pattern):
                continue

            bucket = self._listeners[pattern]
            matched.extend(bucket)
            kept = [lst for lst in bucket if not lst.once]
            if kept:
                self._listeners[pattern] = kept
            else:
                del self._listeners[pattern]

        matched.sort(key=lambda lst: (lst.priority.value, lst.identifier))
        return matched

    # ------------------------------------------------------------------ #
    # Publish API
    # ------------------------------------------------------------------ #

    async def publish(self, event_name: str, data: EventPayload) -> list[Any]:
        """
        Publish an event to all subscribed listeners.

        Returns results from CRITICAL/HIGH/NORMAL listeners; LOW-tier
        listeners run in the background and are not included.
        """
        self._published[event_name] = self._published.get(event_name, 0) + 1

        listeners = self._extract_listeners(event_name)
        if not listeners:
            logger.debug("EventBus: no listeners for event", extra={"event_name": event_name})
            return []

        results: list[Any] = []

        for listener in listeners:
            if listener.priority == ListenerPriority.CRITICAL:
                results.append(await self._run_with_timeout(listener, event_name, data, self.critical_timeout))
        for listener in listeners:
            if listener.priority == ListenerPriority.HIGH:
                results.append(await self._run_with_timeout(listener, event_name, data, self.high_timeout))

        normal = [lst for lst in listeners if lst.priority == ListenerPriority.NORMAL]
        if normal:
            results.extend(
                await asyncio.gather(*[self._run_listener(lst, event_name, data) for lst in normal])
            )

        for listener in listeners:
            if listener.priority == ListenerPriority.LOW:
                task = asyncio.create_task(
                    self._run_listener(listener, event_name, data),
                    name=f"eventbus-low-{event_name}-{listener.identifier}",
                )
                self._background_tasks.add(task)
                task.add_done_callback(self._background_tasks.discard)

        return results

    async def _run_with_timeout(
        self,
        listener: EventListener,
        event_name: str,
        payload: EventPayload,
        timeout: float,
    ) -> Any:
        if timeout <= 0:
            return await self._run_listener(listener, event_name, payload)

        try:
            return await asyncio.wait_for(
                self._run_listener(listener, event_name, payload),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            self._errors[event_name] = self._errors.get(event_name, 0) + 1
            logger.error(
                "EventBus listener timeout",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "priority": listener.priority.name,
                    "timeout_seconds": timeout,
                },
            )
            return None

    async def _run_listener(
        self,
        listener: EventListener,
        event_name: str,
        payload: EventPayload,
    ) -> Any:
        """Run one listener; errors are logged and isolated."""
        try:
            if inspect.iscoroutinefunction(listener.callback):
                return await listener.callback(payload)

            result = listener.callback(payload)
            if inspect.isawaitable(result):
                return await result
            return result

        except Exception as exc:
            self._errors[event_name] = self._errors.get(event_name, 0) + 1
            logger.error(
                "EventBus listener failed",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "priority": listener.priority.name,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )
            return None

    # ------------------------------------------------------------------ #
    # Lifecycle & Introspection
    # ------------------------------------------------------------------ #

    async def drain(self) -> None:
        """Wait for in-flight LOW-tier listeners to finish."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    def get_listener_count(self, event_name: Optional[str] = None) -> int:
        if event_name is not None:
            return len(self._listeners.get(event_name, []))
        return sum(len(bucket) for bucket in self._listeners.values())

    def get_metrics_summary(self) -> dict[str, Any]:
        return {
            "total_events_published": sum(self._published.values()),
            "events_by_type": dict(self._published),
            "total_errors": sum(self._errors.values()),
            "errors_by_event": dict(self._errors),
            "total_listeners": self.get_listener_count(),
            "background_tasks": len(self._background_tasks),
        }
