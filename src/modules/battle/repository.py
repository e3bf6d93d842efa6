"""
Battle Repository
=================

Purpose
-------
Persist live `BattleRecord`s in Redis under `battle:{id}` and serialize
mutations per battle with a distributed lock on `battle-lock:{id}`.

Responsibilities
----------------
- `load`: fetch and decode a record (missing key -> BattleNotFoundError)
- `create`: first write with the battle TTL (SET EX)
- `save`: version-checked overwrite that preserves the remaining TTL
- `locked`: per-battle critical section; lock timeout -> BattleBusyError

Design Notes
------------
- Every write goes through the serializer; no partial field updates
- `save` compares the stored `version` with the record's version and
  writes `version + 1`; a mismatch raises BattleConflictError so a lost
  update can never slip through even if the lock expired mid-operation
- The record's `version` is bumped in memory only after the write lands

Dependencies
------------
- RedisService: KV primitives, Lua CAS, distributed locking
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import replace
from typing import AsyncIterator, Optional

from src.core.exceptions import LockAcquireTimeoutError
from src.core.logging.logger import get_logger
from src.core.redis.service import RedisService
from src.modules.battle import serializer
from src.modules.battle.record import BattleRecord
from src.modules.shared.exceptions import (
    BattleBusyError,
    BattleConflictError,
    BattleNotFoundError,
)

logger = get_logger(__name__)


class BattleRepository:
    """Redis-backed store for live battle records."""

    KEY_PREFIX = "battle"
    LOCK_PREFIX = "battle-lock"

    def __init__(
        self,
        redis: type[RedisService] = RedisService,
        lock_timeout_sec: Optional[int] = None,
        lock_wait_timeout_sec: Optional[float] = None,
    ) -> None:
        self._redis = redis
        self._lock_timeout = lock_timeout_sec
        self._lock_wait_timeout = lock_wait_timeout_sec

    @classmethod
    def key(cls, battle_id: int) -> str:
        return f"{cls.KEY_PREFIX}:{battle_id}"

    @classmethod
    def lock_key(cls, battle_id: int) -> str:
        return f"{cls.LOCK_PREFIX}:{battle_id}"

    # =========================================================================
    # READS
    # =========================================================================

    async def find(self, battle_id: int) -> Optional[BattleRecord]:
        """Return the record, or None if no live record exists."""
        raw = await self._redis.get(self.key(battle_id))
        if raw is None:
            return None
        return serializer.loads(raw, battle_id=battle_id)

    async def load(self, battle_id: int) -> BattleRecord:
        record = await self.find(battle_id)
        if record is None:
            raise BattleNotFoundError(battle_id)
        return record

    # =========================================================================
    # WRITES
    # =========================================================================

    async def create(self, record: BattleRecord, ttl_seconds: int) -> None:
        """Write a fresh record with its battle-level TTL."""
        await self._redis.set(self.key(record.battle_id), serializer.dumps(record), ttl_seconds=ttl_seconds)
        logger.info(
            "Battle record created",
            extra={
                "battle_id": record.battle_id,
                "ttl_seconds": ttl_seconds,
                "challenger_monster_id": record.challenger_monster_id,
                "opponent_monster_id": record.opponent_monster_id,
            },
        )

    async def save(self, record: BattleRecord) -> BattleRecord:
        """
        Overwrite the stored record if nobody else wrote it since it was loaded.

        Raises
        ------
        BattleConflictError
            Stored version differs from `record.version`.
        BattleNotFoundError
            The key expired or was deleted.
        """
        expected = record.version
        payload = serializer.dumps(replace(record, version=expected + 1))

        result = await self._redis.compare_and_set_versioned(
            self.key(record.battle_id),
            payload,
            expected_version=expected,
        )

        if result == RedisService.CAS_MISSING:
            raise BattleNotFoundError(record.battle_id)
        if result == RedisService.CAS_VERSION_MISMATCH:
            logger.warning(
                "Battle record version conflict",
                extra={"battle_id": record.battle_id, "expected_version": expected},
            )
            raise BattleConflictError(record.battle_id, expected)

        record.version = expected + 1
        return record

    async def delete(self, battle_id: int) -> None:
        await self._redis.delete(self.key(battle_id))

    # =========================================================================
    # LOCKING
    # =========================================================================

    @asynccontextmanager
    async def locked(self, battle_id: int, operation: Optional[str] = None) -> AsyncIterator[None]:
        """
        Hold the per-battle lock for the duration of the block.

        Raises
        ------
        BattleBusyError
            The lock could not be acquired within the wait timeout. Errors
            raised inside the block, timeouts included, propagate unchanged.
        """
        try:
            async with self._redis.acquire_lock(
                self.lock_key(battle_id),
                timeout=self._lock_timeout,
                wait_timeout=self._lock_wait_timeout,
                operation=operation,
            ):
                yield
        except LockAcquireTimeoutError as exc:
            raise BattleBusyError(battle_id) from exc
