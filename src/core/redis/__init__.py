"""
Redis Infrastructure for Monster Arena

Exports
-------
RedisService - singleton client, KV operations, TTL-preserving and
    version-checked writes, distributed locking
RedisResilience - circuit breaker + retry wrapper used by RedisService
CircuitState - circuit breaker state enum
"""

from __future__ import annotations

from src.core.redis.resilience import CircuitState, RedisResilience
from src.core.redis.service import RedisService

__all__ = [
    "RedisService",
    "RedisResilience",
    "CircuitState",
]
