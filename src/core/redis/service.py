"""
RedisService: async Redis infrastructure for Monster Arena

Purpose
-------
Provide a resilience-aware Redis abstraction with:
- Singleton async client with connection pooling
- Unified resilience layer wrapping all Redis I/O
- Distributed locking with token-based safety
- Plain KV operations plus a TTL-preserving, version-checked write used
  by the battle record store

Responsibilities
----------------
- Initialize and manage a singleton Redis connection pool
- Provide distributed locking via SET NX + Lua compare-and-delete
- Provide `compare_and_set_versioned`: a Lua compare on the stored `version`
  field followed by a TTL-preserving overwrite
- Route all KV operations through RedisResilience

Non-Responsibilities
--------------------
- Battle record encoding (see src.modules.battle.serializer)
- Database transactions

Configuration Keys
------------------
- core.redis.default_ttl_seconds       : int (default 300)
- core.redis.lock.default_timeout_sec  : int (default 5)
- core.redis.lock.wait_timeout_sec     : float (default 2)
- core.redis.lock.retry_interval_sec   : float (default 0.05)

Connection settings (URL, pool size, socket timeout) come from static Config.

Architecture Notes
------------------
- Uses the redis-py asyncio client with connection pooling
- Lock safety guaranteed via unique UUID tokens + Lua compare-and-delete
- Versioned writes decode the stored JSON with cjson inside the script, so
  the read-compare-write is atomic on the server
- Initialization is idempotent and guarded by asyncio.Lock
"""

from __future__ import annotations

import asyncio
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Awaitable, Callable, Optional

from redis.asyncio.client import Redis as AsyncRedis
from redis.exceptions import RedisError

from src.core.config import ConfigManager
from src.core.config.config import Config
from src.core.exceptions import LockAcquireTimeoutError
from src.core.logging.logger import get_logger
from src.core.redis.resilience import RedisResilience

logger = get_logger(__name__)


class RedisService:
    """
    Async Redis infrastructure service.

    Provides connection pooling, resilience, distributed locking and the
    KV primitives the battle record store is built on.
    """

    _client: Optional[AsyncRedis] = None
    _resilience: Optional[RedisResilience] = None
    _init_lock: asyncio.Lock = asyncio.Lock()
    _is_healthy: bool = False

    # compare_and_set_versioned results
    CAS_APPLIED = 1
    CAS_VERSION_MISMATCH = 0
    CAS_MISSING = -1

    # Lua script for atomic lock release (compare token + delete)
    _LUA_UNLOCK_SCRIPT = """
    if redis.call("GET", KEYS[1]) == ARGV[1] then
        return redis.call("DEL", KEYS[1])
    else
        return 0
    end
    """

    # Lua script for version-checked overwrite that keeps the key's TTL
    _LUA_CAS_VERSION_SCRIPT = """
    local current = redis.call("GET", KEYS[1])
    if not current then
        return -1
    end
    local decoded = cjson.decode(current)
    if tonumber(decoded[ARGV[3]]) ~= tonumber(ARGV[2]) then
        return 0
    end
    redis.call("SET", KEYS[1], ARGV[1], "KEEPTTL")
    return 1
    """

    # =========================================================================
    # LIFECYCLE MANAGEMENT
    # =========================================================================

    @classmethod
    async def initialize(cls, url: Optional[str] = None) -> None:
        """
        Initialize the singleton Redis client.

        Idempotent. Safe to call multiple times.

        Raises
        ------
        RuntimeError
            If the Redis connection cannot be established.
        """
        if cls._client is not None:
            logger.debug("RedisService already initialized, skipping")
            return

        async with cls._init_lock:
            if cls._client is not None:
                return

            url = url or Config.REDIS_URL
            start_time = time.monotonic()

            try:
                client: AsyncRedis = AsyncRedis.from_url(
                    url,
                    password=Config.REDIS_PASSWORD,
                    socket_timeout=Config.REDIS_SOCKET_TIMEOUT,
                    encoding="utf-8",
                    decode_responses=True,
                    max_connections=Config.REDIS_MAX_CONNECTIONS,
                    retry_on_timeout=False,  # RedisResilience handles retries
                    health_check_interval=30,
                )
                await client.ping()
            except Exception as exc:
                cls._is_healthy = False
                logger.critical(
                    "Failed to initialize RedisService",
                    extra={
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                        "url_scheme": url.split("://")[0] if "://" in url else "unknown",
                    },
                    exc_info=True,
                )
                raise RuntimeError(f"Failed to initialize RedisService: {exc}") from exc

            cls._client = client
            cls._resilience = RedisResilience()
            cls._is_healthy = True

            logger.info(
                "RedisService initialized successfully",
                extra={
                    "url_scheme": url.split("://")[0] if "://" in url else "unknown",
                    "max_connections": Config.REDIS_MAX_CONNECTIONS,
                    "initialization_time_ms": round((time.monotonic() - start_time) * 1000, 2),
                },
            )

    @classmethod
    async def shutdown(cls) -> None:
        """Close the Redis client. Safe to call even if not initialized."""
        client = cls._client
        cls._client = None
        cls._resilience = None
        cls._is_healthy = False

        if client is None:
            logger.debug("RedisService not initialized, nothing to shutdown")
            return

        try:
            await client.aclose()
            logger.info("RedisService shutdown complete")
        except RedisError as exc:
            logger.error(
                "Error during RedisService shutdown",
                extra={"error": str(exc), "error_type": type(exc).__name__},
                exc_info=True,
            )

    # =========================================================================
    # HEALTH & ACCESS
    # =========================================================================

    @classmethod
    async def health_check(cls) -> bool:
        """Verify Redis connectivity via PING."""
        if cls._client is None:
            cls._is_healthy = False
            return False

        try:
            cls._is_healthy = bool(await cls._client.ping())
        except RedisError as exc:
            cls._is_healthy = False
            logger.warning(
                "Redis health check failed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )
        return cls._is_healthy

    @classmethod
    def client(cls) -> AsyncRedis:
        """
        Return the singleton Redis client.

        Raises
        ------
        RuntimeError
            If RedisService has not been initialized.
        """
        if cls._client is None:
            raise RuntimeError(
                "RedisService not initialized. "
                "Call `await RedisService.initialize()` first."
            )
        return cls._client

    @classmethod
    def get_resilience(cls) -> RedisResilience:
        if cls._resilience is None:
            cls._resilience = RedisResilience()
        return cls._resilience

    # =========================================================================
    # KEY-VALUE OPERATIONS
    # =========================================================================

    @classmethod
    async def _run(
        cls,
        command: str,
        key: str,
        operation: Callable[[], Awaitable[Any]],
        **log_extra: Any,
    ) -> Any:
        """Execute one command through resilience with latency logging."""
        start_time = time.monotonic()
        try:
            result = await cls.get_resilience().execute(
                operation=operation,
                operation_name=f"{command}:{key}",
            )
        except Exception as exc:
            logger.error(
                f"Redis {command} operation failed",
                extra={
                    "key": key,
                    "latency_ms": round((time.monotonic() - start_time) * 1000, 2),
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                    **log_extra,
                },
            )
            raise

        logger.debug(
            f"Redis {command} operation",
            extra={
                "key": key,
                "latency_ms": round((time.monotonic() - start_time) * 1000, 2),
                **log_extra,
            },
        )
        return result

    @classmethod
    async def get(cls, key: str) -> Optional[str]:
        """Get a string value; None if the key does not exist."""
        return await cls._run("GET", key, lambda: cls.client().get(key))

    @classmethod
    async def set(
        cls,
        key: str,
        value: Any,
        ttl_seconds: Optional[int] = None,
    ) -> bool:
        """
        Set a value with a TTL.

        If `ttl_seconds` is None the default from config is used.
        """
        if ttl_seconds is None:
            ttl_seconds = cls._get_config_int("core.redis.default_ttl_seconds", 300)

        result = await cls._run(
            "SET",
            key,
            lambda: cls.client().set(key, value, ex=ttl_seconds),
            ttl_seconds=ttl_seconds,
        )
        return bool(result)

    @classmethod
    async def compare_and_set_versioned(
        cls,
        key: str,
        value: str,
        expected_version: int,
        version_field: str = "version",
    ) -> int:
        """
        Overwrite a JSON value only if its stored version still matches.

        The stored value must be a JSON object holding `version_field`.
        The key's TTL is preserved.

        Returns
        -------
        int
            `CAS_APPLIED`, `CAS_VERSION_MISMATCH` or `CAS_MISSING`.
        """
        result = await cls._run(
            "CAS",
            key,
            lambda: cls.client().eval(
                cls._LUA_CAS_VERSION_SCRIPT,
                1,
                key,
                value,
                str(expected_version),
                version_field,
            ),
            expected_version=expected_version,
        )
        return int(result)

    @classmethod
    async def delete(cls, key: str) -> int:
        """Delete a key; returns the number of keys removed."""
        return int(await cls._run("DEL", key, lambda: cls.client().delete(key)))

    @classmethod
    async def ttl(cls, key: str) -> int:
        """
        Remaining time-to-live of a key in seconds.

        -1 if the key exists without expiry, -2 if the key does not exist.
        """
        return int(await cls._run("TTL", key, lambda: cls.client().ttl(key)))

    # =========================================================================
    # DISTRIBUTED LOCKING
    # =========================================================================

    @classmethod
    @asynccontextmanager
    async def acquire_lock(
        cls,
        key: str,
        timeout: Optional[int] = None,
        wait_timeout: Optional[float] = None,
        retry_interval: Optional[float] = None,
        operation: Optional[str] = None,
    ) -> AsyncGenerator[None, None]:
        """
        Acquire a distributed lock using Redis SET NX with a unique token.

        The lock expires on its own if the holder crashes.

        Raises
        ------
        LockAcquireTimeoutError
            If the lock cannot be acquired within `wait_timeout`. Errors
            raised inside the locked block propagate unchanged.

        Example
        -------
        >>> async with RedisService.acquire_lock(f"battle-lock:{battle_id}"):
        ...     record = await repository.load(battle_id)
        """
        client = cls.client()

        if timeout is None:
            timeout = cls._get_config_int("core.redis.lock.default_timeout_sec", 5)
        if wait_timeout is None:
            wait_timeout = cls._get_config_float("core.redis.lock.wait_timeout_sec", 2.0)
        if retry_interval is None:
            retry_interval = cls._get_config_float("core.redis.lock.retry_interval_sec", 0.05)

        token = str(uuid.uuid4())
        lock_start_time = time.monotonic()
        deadline = lock_start_time + max(0.0, wait_timeout)
        acquired = False
        hold_start_time = lock_start_time

        try:
            while True:
                try:
                    acquired = bool(await client.set(name=key, value=token, nx=True, ex=timeout))
                except RedisError as exc:
                    logger.error(
                        "Redis lock acquisition error",
                        extra={
                            "lock_key": key,
                            "error": str(exc),
                            "error_type": type(exc).__name__,
                        },
                    )

                if acquired:
                    logger.debug(
                        "Redis lock acquired",
                        extra={
                            "lock_key": key,
                            "timeout_seconds": timeout,
                            "wait_ms": round((time.monotonic() - lock_start_time) * 1000, 2),
                            "lock_operation": operation,
                        },
                    )
                    break

                if time.monotonic() >= deadline:
                    logger.warning(
                        "Failed to acquire Redis lock within timeout",
                        extra={
                            "lock_key": key,
                            "wait_timeout_seconds": wait_timeout,
                            "lock_operation": operation,
                        },
                    )
                    raise LockAcquireTimeoutError(key, wait_timeout)

                await asyncio.sleep(retry_interval)

            hold_start_time = time.monotonic()
            yield

        finally:
            if acquired:
                try:
                    released = await client.eval(cls._LUA_UNLOCK_SCRIPT, 1, key, token)
                except RedisError as exc:
                    logger.warning(
                        "Failed to release Redis lock (will expire automatically)",
                        extra={
                            "lock_key": key,
                            "timeout_seconds": timeout,
                            "error": str(exc),
                            "error_type": type(exc).__name__,
                        },
                    )
                else:
                    hold_ms = round((time.monotonic() - hold_start_time) * 1000, 2)
                    if released:
                        logger.debug(
                            "Redis lock released",
                            extra={"lock_key": key, "hold_ms": hold_ms},
                        )
                    else:
                        logger.warning(
                            "Redis lock already expired or stolen",
                            extra={"lock_key": key, "hold_ms": hold_ms},
                        )

    # =========================================================================
    # CONFIGURATION HELPERS
    # =========================================================================

    @staticmethod
    def _get_config_int(key: str, default: int) -> int:
        val = ConfigManager.get(key)
        if isinstance(val, int) and not isinstance(val, bool):
            return val
        return default

    @staticmethod
    def _get_config_float(key: str, default: float) -> float:
        val = ConfigManager.get(key)
        if isinstance(val, (int, float)) and not isinstance(val, bool):
            return float(val)
        return default
