"""
Integration tests for the Redis battle record store.

Runs against a real Redis (testcontainers) to exercise the Lua
compare-and-set, TTL preservation and the per-battle lock.
"""

from __future__ import annotations

from dataclasses import replace

import pytest

from src.core.exceptions import BattleRecordCorruptedError
from src.modules.battle.repository import BattleRepository
from src.modules.shared.exceptions import BattleBusyError, BattleConflictError, BattleNotFoundError
from tests.builders import make_record

pytestmark = [pytest.mark.integration, pytest.mark.redis]


@pytest.fixture
def repository(redis_service) -> BattleRepository:
    return BattleRepository(redis_service, lock_timeout_sec=5, lock_wait_timeout_sec=0.2)


class TestRecordStorage:
    async def test_create_and_find(self, repository, redis_service):
        """A created record reads back equal and carries the battle TTL."""
        record = make_record()

        await repository.create(record, ttl_seconds=180)
        found = await repository.find(record.battle_id)

        assert found == record
        assert 0 < await redis_service.ttl(BattleRepository.key(record.battle_id)) <= 180

    async def test_find_missing(self, repository):
        assert await repository.find(404) is None
        with pytest.raises(BattleNotFoundError):
            await repository.load(404)

    async def test_corrupted_value(self, repository, redis_service):
        """Garbage under a battle key is reported, never repaired."""
        await redis_service.set(BattleRepository.key(7), '{"schema_version": "1"}', ttl_seconds=60)

        with pytest.raises(BattleRecordCorruptedError):
            await repository.find(7)


class TestVersionedSave:
    async def test_save_bumps_version_and_keeps_ttl(self, repository, redis_service):
        """Writes never extend the battle's lifetime."""
        record = make_record()
        await repository.create(record, ttl_seconds=100)
        key = BattleRepository.key(record.battle_id)
        await redis_service.client().expire(key, 40)

        loaded = await repository.load(record.battle_id)
        loaded.opponent_hp = 50
        await repository.save(loaded)

        stored = await repository.load(record.battle_id)
        assert loaded.version == 1
        assert stored.version == 1
        assert stored.opponent_hp == 50
        assert 0 < await redis_service.ttl(key) <= 40

    async def test_stale_write_is_rejected(self, repository):
        """The second of two writers holding the same version loses."""
        await repository.create(make_record(), ttl_seconds=100)
        first = await repository.load(7)
        second = await repository.load(7)

        first.opponent_hp = 80
        await repository.save(first)
        second.opponent_hp = 10

        with pytest.raises(BattleConflictError):
            await repository.save(second)

        assert (await repository.load(7)).opponent_hp == 80

    async def test_expired_record_is_not_recreated(self, repository):
        record = make_record()
        await repository.create(record, ttl_seconds=100)
        await repository.delete(record.battle_id)

        with pytest.raises(BattleNotFoundError):
            await repository.save(replace(record))

        assert await repository.find(record.battle_id) is None


class TestLocking:
    async def test_lock_contention_is_busy(self, repository):
        async with repository.locked(7):
            with pytest.raises(BattleBusyError):
                async with repository.locked(7):
                    pass

    async def test_lock_released_after_block(self, repository):
        async with repository.locked(7):
            pass
        async with repository.locked(7):
            pass

    async def test_locks_are_per_battle(self, repository):
        async with repository.locked(7):
            async with repository.locked(8):
                pass

    async def test_timeout_inside_block_is_not_busy(self, repository):
        """Only lock acquisition maps to BattleBusyError."""
        with pytest.raises(TimeoutError, match="connect timed out"):
            async with repository.locked(7):
                raise TimeoutError("connect timed out during finalize")

        async with repository.locked(7):
            pass
