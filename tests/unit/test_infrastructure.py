"""
Unit tests for the Redis resilience wrapper and the aggregate health check.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import TimeoutError as RedisTimeoutError

from src.core.database.service import DatabaseService
from src.core.exceptions import CircuitBreakerError
from src.core.infra.health import HealthStatus, UnifiedHealthCheck
from src.core.redis.resilience import CircuitState, RedisResilience
from src.core.redis.service import RedisService


@pytest.fixture
def resilience():
    """Zero-delay resilience wrapper with a two-failure circuit."""
    wrapper = RedisResilience()
    wrapper._retry_initial_delay = 0.0
    wrapper._retry_jitter = False
    wrapper._retry_max_attempts = 3
    wrapper._circuit_failure_threshold = 2
    wrapper._circuit_success_threshold = 2
    wrapper._circuit_timeout_seconds = 60
    return wrapper


# ============================================================================
# RedisResilience
# ============================================================================


@pytest.mark.unit
class TestRedisResilience:
    async def test_transient_failure_is_retried(self, resilience):
        """A timeout followed by success returns the result."""
        operation = AsyncMock(side_effect=[RedisTimeoutError("slow"), "ok"])

        result = await resilience.execute(operation, operation_name="get", max_attempts=2)

        assert result == "ok"
        assert operation.await_count == 2

    async def test_exhausted_retries_reraise(self, resilience):
        operation = AsyncMock(side_effect=RedisTimeoutError("down"))

        with pytest.raises(RedisTimeoutError):
            await resilience.execute(operation, operation_name="get", max_attempts=2)

        assert operation.await_count == 2

    async def test_non_transport_error_is_not_retried(self, resilience):
        operation = AsyncMock(side_effect=ValueError("bad script"))

        with pytest.raises(ValueError):
            await resilience.execute(operation, operation_name="eval")

        assert operation.await_count == 1

    async def test_circuit_opens_and_blocks(self, resilience):
        """Consecutive failures open the circuit; later calls never reach Redis."""
        failing = AsyncMock(side_effect=RedisTimeoutError("down"))
        with pytest.raises(RedisTimeoutError):
            await resilience.execute(failing, operation_name="get", max_attempts=2)

        assert resilience.state == CircuitState.OPEN

        blocked = AsyncMock(return_value="ok")
        with pytest.raises(CircuitBreakerError) as exc_info:
            await resilience.execute(blocked, operation_name="get")

        assert exc_info.value.service == "redis"
        blocked.assert_not_awaited()
        assert resilience.get_status()["time_until_half_open"] > 0

    async def test_half_open_recovers_after_successes(self, resilience):
        failing = AsyncMock(side_effect=RedisTimeoutError("down"))
        with pytest.raises(RedisTimeoutError):
            await resilience.execute(failing, operation_name="get", max_attempts=2)
        resilience._circuit_timeout_seconds = 0

        healthy = AsyncMock(return_value="ok")
        await resilience.execute(healthy, operation_name="get")
        assert resilience.state == CircuitState.HALF_OPEN

        await resilience.execute(healthy, operation_name="get")
        assert resilience.state == CircuitState.CLOSED


# ============================================================================
# UnifiedHealthCheck
# ============================================================================


@pytest.fixture
def components(mocker, resilience):
    """Healthy database and Redis; tests flip individual flags."""
    database = mocker.patch.object(DatabaseService, "health_check", AsyncMock(return_value=True))
    redis = mocker.patch.object(RedisService, "health_check", AsyncMock(return_value=True))
    mocker.patch.object(RedisService, "get_resilience", return_value=resilience)
    return database, redis, resilience


@pytest.mark.unit
class TestUnifiedHealthCheck:
    async def test_all_components_healthy(self, components):
        report = await UnifiedHealthCheck.check(timeout_seconds=1.0)

        assert report["status"] == HealthStatus.HEALTHY.value
        assert report["components"]["redis"]["circuit_state"] == CircuitState.CLOSED.value
        assert report["errors"] == []
        assert {"config", "logging", "audit"} <= set(report)

    async def test_redis_down_is_unhealthy(self, components):
        _, redis, _ = components
        redis.return_value = False

        report = await UnifiedHealthCheck.check(timeout_seconds=1.0)

        assert report["status"] == HealthStatus.UNHEALTHY.value
        assert report["errors"] == ["redis unreachable"]

    async def test_open_circuit_is_degraded(self, components):
        _, _, resilience = components
        resilience._circuit_state = CircuitState.OPEN

        report = await UnifiedHealthCheck.check(timeout_seconds=1.0)

        assert report["status"] == HealthStatus.DEGRADED.value

    async def test_component_exception_is_contained(self, components):
        """A raising check becomes an UNHEALTHY component, not an error."""
        database, _, _ = components
        database.side_effect = OSError("socket closed")

        report = await UnifiedHealthCheck.check(timeout_seconds=1.0)

        assert report["status"] == HealthStatus.UNHEALTHY.value
        assert report["components"]["database"]["error"] == "OSError: socket closed"

    async def test_timeout_report(self, components):
        database, _, _ = components

        async def hang() -> bool:
            await asyncio.sleep(1)
            return True

        database.side_effect = hang

        report = await UnifiedHealthCheck.check(timeout_seconds=0.01)

        assert report["status"] == HealthStatus.UNHEALTHY.value
        assert report["components"]["database"]["status"] == "UNKNOWN"
        assert "timed out" in report["errors"][0]
