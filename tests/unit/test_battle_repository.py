"""
Unit tests for the per-battle lock wrapper, with Redis locking stubbed.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

import pytest

from src.core.exceptions import LockAcquireTimeoutError
from src.modules.battle.repository import BattleRepository
from src.modules.shared.exceptions import BattleBusyError


class StubRedis:
    """Grants or refuses every lock; records the keys it was asked for."""

    def __init__(self, available: bool = True) -> None:
        self.available = available
        self.keys = []

    @asynccontextmanager
    async def acquire_lock(self, key, timeout=None, wait_timeout=None, operation=None):
        self.keys.append(key)
        if not self.available:
            raise LockAcquireTimeoutError(key, wait_timeout or 0.0)
        yield


@pytest.mark.unit
class TestLocked:
    async def test_acquire_timeout_is_busy(self):
        repository = BattleRepository(StubRedis(available=False), lock_wait_timeout_sec=0.1)

        with pytest.raises(BattleBusyError) as exc_info:
            async with repository.locked(7):
                pass

        assert isinstance(exc_info.value.__cause__, LockAcquireTimeoutError)

    async def test_timeout_raised_in_block_propagates(self):
        """A database timeout during finalization is not a retryable busy."""
        redis = StubRedis()
        repository = BattleRepository(redis)

        with pytest.raises(TimeoutError):
            async with repository.locked(7, operation="submit_action"):
                raise TimeoutError("connect timed out during finalize")

        assert redis.keys == ["battle-lock:7"]

    async def test_domain_error_in_block_propagates(self):
        repository = BattleRepository(StubRedis())

        with pytest.raises(BattleBusyError) as exc_info:
            async with repository.locked(3):
                raise BattleBusyError(9)

        assert exc_info.value.battle_id == 9
