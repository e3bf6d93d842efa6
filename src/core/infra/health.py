"""
Unified Health Check for the arena service.

Purpose
-------
Aggregate health of the critical infrastructure components (PostgreSQL and
Redis) into a single report served on the aiohttp `/health` route.

Health Status Hierarchy
-----------------------
- **HEALTHY**: All components operational and responsive
- **DEGRADED**: All components up but the Redis circuit is not closed
- **UNHEALTHY**: One or more components down or unresponsive

Health Check Strategy
---------------------
- Concurrent component checks under one timeout
- Individual component errors never crash the check
- Returns a timeout report instead of hanging

Report Structure
----------------
{
    "status": "HEALTHY" | "DEGRADED" | "UNHEALTHY",
    "timestamp": float,
    "duration_ms": float,
    "components": {"database": {...}, "redis": {...}},
    "config": {...},
    "logging": {...},
    "audit": {...},
    "errors": [str, ...],
}
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import asdict
from enum import Enum
from typing import Any, Dict, List, Optional

from src.core.config.manager import ConfigManager
from src.core.database.service import DatabaseService
from src.core.infra.audit_logger import AuditLogger
from src.core.logging.logger import get_logger, get_logging_health
from src.core.redis.resilience import CircuitState
from src.core.redis.service import RedisService

logger = get_logger(__name__)


class HealthStatus(Enum):
    HEALTHY = "HEALTHY"
    DEGRADED = "DEGRADED"
    UNHEALTHY = "UNHEALTHY"


class UnifiedHealthCheck:
    """
    Stateless aggregate health check; `check()` never raises.
    """

    DEFAULT_TIMEOUT_SECONDS: float = 5.0

    @classmethod
    async def check(cls, timeout_seconds: Optional[float] = None) -> Dict[str, Any]:
        """Run all component checks concurrently and build the report."""
        start_time = time.time()

        if timeout_seconds is None:
            value = ConfigManager.get("core.health.timeout_seconds", cls.DEFAULT_TIMEOUT_SECONDS)
            timeout_seconds = (
                float(value) if isinstance(value, (int, float)) else cls.DEFAULT_TIMEOUT_SECONDS
            )

        try:
            db_status, redis_status = await asyncio.wait_for(
                asyncio.gather(
                    cls._safe_check("database", cls._check_database),
                    cls._safe_check("redis", cls._check_redis),
                ),
                timeout=timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning("Health check timed out", extra={"timeout_seconds": timeout_seconds})
            return cls._build_timeout_report(timeout_seconds)

        overall = cls._determine_overall_status(db_status, redis_status)
        duration_ms = round((time.time() - start_time) * 1000, 2)

        report = {
            "status": overall.value,
            "timestamp": time.time(),
            "duration_ms": duration_ms,
            "components": {"database": db_status, "redis": redis_status},
            "config": ConfigManager.health_snapshot(),
            "logging": asdict(get_logging_health()),
            "audit": AuditLogger.get_metrics(),
            "errors": cls._collect_errors(db_status, redis_status),
        }

        logger.debug(
            "Health check completed",
            extra={
                "status": overall.value,
                "duration_ms": duration_ms,
                "database_status": db_status.get("status"),
                "redis_status": redis_status.get("status"),
            },
        )
        return report

    # ═════════════════════════════════════════════════════════════════════════
    # COMPONENT CHECKS
    # ═════════════════════════════════════════════════════════════════════════

    @classmethod
    async def _safe_check(cls, component: str, check: Any) -> Dict[str, Any]:
        try:
            return await check()
        except Exception as exc:
            logger.error(
                f"{component} health check failed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
                exc_info=True,
            )
            return {
                "status": HealthStatus.UNHEALTHY.value,
                "available": False,
                "error": f"{type(exc).__name__}: {exc}",
            }

    @classmethod
    async def _check_database(cls) -> Dict[str, Any]:
        available = await DatabaseService.health_check()
        return {
            "status": (HealthStatus.HEALTHY if available else HealthStatus.UNHEALTHY).value,
            "available": available,
            "error": None if available else "database unreachable",
        }

    @classmethod
    async def _check_redis(cls) -> Dict[str, Any]:
        available = await RedisService.health_check()
        resilience = RedisService.get_resilience()
        circuit = resilience.state

        if not available:
            status = HealthStatus.UNHEALTHY
        elif circuit != CircuitState.CLOSED:
            status = HealthStatus.DEGRADED
        else:
            status = HealthStatus.HEALTHY

        return {
            "status": status.value,
            "available": available,
            **resilience.get_status(),
            "error": None if available else "redis unreachable",
        }

    # ═════════════════════════════════════════════════════════════════════════
    # STATUS AGGREGATION
    # ═════════════════════════════════════════════════════════════════════════

    @classmethod
    def _determine_overall_status(cls, *components: Dict[str, Any]) -> HealthStatus:
        states = [component.get("status", "UNKNOWN") for component in components]
        if any(state in ("UNHEALTHY", "UNKNOWN") for state in states):
            return HealthStatus.UNHEALTHY
        if any(state == "DEGRADED" for state in states):
            return HealthStatus.DEGRADED
        return HealthStatus.HEALTHY

    @classmethod
    def _collect_errors(cls, *components: Dict[str, Any]) -> List[str]:
        return [component["error"] for component in components if component.get("error")]

    @classmethod
    def _build_timeout_report(cls, timeout_seconds: float) -> Dict[str, Any]:
        error_msg = f"Health check timed out after {timeout_seconds}s"
        unknown = {"status": "UNKNOWN", "available": False, "error": error_msg}
        return {
            "status": HealthStatus.UNHEALTHY.value,
            "timestamp": time.time(),
            "duration_ms": timeout_seconds * 1000,
            "components": {"database": dict(unknown), "redis": dict(unknown)},
            "errors": [error_msg],
        }
