"""
Redis Resilience Module for Monster Arena

Purpose
-------
Unified resilience layer for Redis combining circuit breaking and retry with
exponential backoff. Battle records, locks and compare-and-set writes all
flow through `RedisResilience.execute()` so failure handling is consistent.

Responsibilities
----------------
- Execute operations with circuit breaker protection
- Apply automatic retry with exponential backoff and jitter
- Track failure rates and circuit state transitions
- Emit structured logs for all resilience events

Non-Responsibilities
--------------------
- No Redis operations (wraps them, doesn't execute)
- No battle logic

Configuration Keys
------------------
- core.redis.resilience.circuit.failure_threshold    : int (default 5)
- core.redis.resilience.circuit.success_threshold    : int (default 2)
- core.redis.resilience.circuit.timeout_seconds      : int (default 60)
- core.redis.resilience.retry.max_attempts           : int (default 3)
- core.redis.resilience.retry.initial_delay_seconds  : float (default 0.1)
- core.redis.resilience.retry.max_delay_seconds      : float (default 2.0)
- core.redis.resilience.retry.backoff_multiplier     : float (default 2.0)
- core.redis.resilience.retry.jitter                 : bool (default True)

Architecture Notes
------------------
- Circuit breaker checks occur BEFORE retry attempts
- Only transport failures count towards opening the circuit
- Thread-safe state management via asyncio.Lock
"""

from __future__ import annotations

import asyncio
import random
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from redis.exceptions import ConnectionError as RedisTransportError
from redis.exceptions import TimeoutError as RedisTimeoutError

from src.core.config import ConfigManager
from src.core.exceptions import CircuitBreakerError
from src.core.logging.logger import get_logger

logger = get_logger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "CLOSED"  # Normal operation
    OPEN = "OPEN"  # Failing, reject requests
    HALF_OPEN = "HALF_OPEN"  # Testing recovery


class RedisResilience:
    """
    Circuit breaker plus retry for Redis operations.

    Example
    -------
    >>> resilience = RedisResilience()
    >>> raw = await resilience.execute(
    ...     operation=lambda: client.get("battle:42"),
    ...     operation_name="get",
    ... )
    """

    RETRYABLE_EXCEPTIONS = (
        RedisTransportError,
        RedisTimeoutError,
        ConnectionRefusedError,
        ConnectionResetError,
    )

    def __init__(self) -> None:
        self._circuit_state: CircuitState = CircuitState.CLOSED
        self._failure_count: int = 0
        self._success_count: int = 0
        self._opened_at: Optional[float] = None
        self._lock: asyncio.Lock = asyncio.Lock()

        self._circuit_failure_threshold = self._get_config_number(
            "core.redis.resilience.circuit.failure_threshold", 5
        )
        self._circuit_success_threshold = self._get_config_number(
            "core.redis.resilience.circuit.success_threshold", 2
        )
        self._circuit_timeout_seconds = self._get_config_number(
            "core.redis.resilience.circuit.timeout_seconds", 60
        )

        self._retry_max_attempts = int(
            self._get_config_number("core.redis.resilience.retry.max_attempts", 3)
        )
        self._retry_initial_delay = float(
            self._get_config_number("core.redis.resilience.retry.initial_delay_seconds", 0.1)
        )
        self._retry_max_delay = float(
            self._get_config_number("core.redis.resilience.retry.max_delay_seconds", 2.0)
        )
        self._retry_backoff_multiplier = float(
            self._get_config_number("core.redis.resilience.retry.backoff_multiplier", 2.0)
        )
        self._retry_jitter = bool(ConfigManager.get("core.redis.resilience.retry.jitter", True))

        logger.info(
            "RedisResilience initialized",
            extra={
                "circuit_failure_threshold": self._circuit_failure_threshold,
                "circuit_timeout_seconds": self._circuit_timeout_seconds,
                "retry_max_attempts": self._retry_max_attempts,
            },
        )

    # =========================================================================
    # MAIN EXECUTION API
    # =========================================================================

    async def execute(
        self,
        operation: Callable[[], Awaitable[Any]],
        operation_name: str,
        max_attempts: Optional[int] = None,
    ) -> Any:
        """
        Execute a Redis operation with circuit breaker and retry logic.

        Raises
        ------
        CircuitBreakerError
            If the circuit is OPEN.
        Exception
            The last exception if all retries are exhausted, or the first
            non-transport exception.
        """
        if not await self._can_execute():
            raise CircuitBreakerError(
                service="redis",
                failure_count=self._failure_count,
                retry_after=self._time_until_half_open() or 0.0,
            )

        attempts = max_attempts if max_attempts is not None else self._retry_max_attempts

        for attempt in range(1, attempts + 1):
            try:
                result = await operation()
            except self.RETRYABLE_EXCEPTIONS as exc:
                await self._record_failure()

                if attempt >= attempts:
                    logger.error(
                        "Redis operation failed after all retries",
                        extra={
                            "operation": operation_name,
                            "attempts": attempt,
                            "circuit_state": self._circuit_state.value,
                            "error": str(exc),
                            "error_type": type(exc).__name__,
                        },
                    )
                    raise

                delay = self._calculate_delay(attempt)
                logger.warning(
                    "Redis operation failed, retrying",
                    extra={
                        "operation": operation_name,
                        "attempt": attempt,
                        "total_attempts": attempts,
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                        "retry_delay_seconds": round(delay, 3),
                    },
                )
                await asyncio.sleep(delay)
                continue

            await self._record_success()
            if attempt > 1:
                logger.info(
                    "Redis operation succeeded after retry",
                    extra={"operation": operation_name, "attempt": attempt},
                )
            return result

        raise RuntimeError(f"Redis operation '{operation_name}' ran zero attempts")

    # =========================================================================
    # CIRCUIT BREAKER LOGIC
    # =========================================================================

    async def _can_execute(self) -> bool:
        async with self._lock:
            if self._circuit_state != CircuitState.OPEN:
                return True

            if self._opened_at is None or (
                time.monotonic() - self._opened_at >= self._circuit_timeout_seconds
            ):
                self._transition(CircuitState.HALF_OPEN)
                return True

            return False

    async def _record_success(self) -> None:
        async with self._lock:
            self._success_count += 1
            self._failure_count = 0

            if (
                self._circuit_state == CircuitState.HALF_OPEN
                and self._success_count >= self._circuit_success_threshold
            ):
                self._transition(CircuitState.CLOSED)

    async def _record_failure(self) -> None:
        async with self._lock:
            self._failure_count += 1
            self._success_count = 0

            if self._circuit_state == CircuitState.HALF_OPEN or (
                self._circuit_state == CircuitState.CLOSED
                and self._failure_count >= self._circuit_failure_threshold
            ):
                self._transition(CircuitState.OPEN)

    def _transition(self, new_state: CircuitState) -> None:
        """Switch circuit state. Caller holds `_lock`."""
        old_state = self._circuit_state
        self._circuit_state = new_state
        self._success_count = 0

        if new_state == CircuitState.OPEN:
            self._opened_at = time.monotonic()
            log = logger.warning
        else:
            self._failure_count = 0
            if new_state == CircuitState.CLOSED:
                self._opened_at = None
            log = logger.info

        log(
            f"Circuit breaker transitioned to {new_state.value}",
            extra={"previous_state": old_state.value, "new_state": new_state.value},
        )

    def _time_until_half_open(self) -> Optional[float]:
        if self._opened_at is None or self._circuit_state != CircuitState.OPEN:
            return None
        return max(0.0, self._circuit_timeout_seconds - (time.monotonic() - self._opened_at))

    # =========================================================================
    # RETRY LOGIC
    # =========================================================================

    def _calculate_delay(self, attempt: int) -> float:
        """Exponential backoff: initial_delay * multiplier^(attempt-1), capped."""
        delay = self._retry_initial_delay * (self._retry_backoff_multiplier ** (attempt - 1))
        delay = min(delay, self._retry_max_delay)

        if self._retry_jitter:
            jitter_amount = delay * 0.1
            delay += random.uniform(-jitter_amount, jitter_amount)

        return max(0.0, delay)

    # =========================================================================
    # STATUS
    # =========================================================================

    @property
    def state(self) -> CircuitState:
        return self._circuit_state

    def get_status(self) -> Dict[str, Any]:
        return {
            "circuit_state": self._circuit_state.value,
            "failure_count": self._failure_count,
            "success_count": self._success_count,
            "time_until_half_open": self._time_until_half_open(),
            "retry_max_attempts": self._retry_max_attempts,
        }

    # =========================================================================
    # CONFIGURATION HELPERS
    # =========================================================================

    @staticmethod
    def _get_config_number(key: str, default: float) -> Any:
        val = ConfigManager.get(key)
        if isinstance(val, (int, float)) and not isinstance(val, bool):
            return val
        return default
