"""
Battle Service
==============

Purpose
-------
Orchestrate every battle operation a connected client can trigger. Each
operation is one read-modify-write of the live record under the
per-battle lock.

Operations
----------
- get_battle    : attach the caller's socket (not ready); materializes an
                  ACCEPTED battle that has no live record yet
- start_battle  : attach the caller's socket and mark that side ready
- submit_action : resolve one turn; on a terminal turn run the completion
                  pipeline before the write

Result Contract
---------------
Operations never raise gameplay errors to the transport. They return a
`SubmitResult` that is either applied (carrying the saved record) or
rejected (carrying a short reason such as "not_your_turn", "busy",
"conflict", "battle_finished", "not_found").

Design Notes
------------
- Lock -> load -> mutate -> CAS save; a version mismatch rejects the
  request even if the lock expired under a slow operation
- Randomness and the clock are injected so turns are reproducible in tests
- Gameplay rejections are logged at INFO; corrupted records at ERROR
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Tuple

from src.core.exceptions import BattleRecordCorruptedError
from src.core.logging.logger import LogContext
from src.modules.battle.completion import BattleCompletionPipeline
from src.modules.battle.factory import BattleFactory
from src.modules.battle.record import BattleRecord
from src.modules.battle.repository import BattleRepository
from src.modules.battle.resolver import resolve_turn
from src.modules.battle.timer import now_ms
from src.modules.rules.service import RulesService
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import (
    ArenaDomainException,
    BattleNotFoundError,
    InvalidOperationError,
)

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus

REASON_CORRUPTED = "corrupted"


@dataclass(frozen=True)
class SubmitResult:
    record: Optional[BattleRecord] = None
    reason: Optional[str] = None
    socket_ids: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def rejected(self) -> bool:
        return self.record is None

    @classmethod
    def applied(cls, record: BattleRecord) -> SubmitResult:
        return cls(record=record, socket_ids=tuple(record.socket_ids()))

    @classmethod
    def reject(cls, reason: str, socket_ids: Tuple[str, ...] = ()) -> SubmitResult:
        return cls(reason=reason, socket_ids=socket_ids)

    def to_payload(self) -> Dict[str, Any]:
        if self.record is not None:
            return self.record.to_client_dict()
        return {"rejected": True, "reason": self.reason}


class BattleService(BaseService):
    """Entry point for socket-driven battle operations."""

    def __init__(
        self,
        repository: BattleRepository,
        factory: BattleFactory,
        completion: BattleCompletionPipeline,
        rules_service: RulesService,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        rng: Optional[random.Random] = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._repository = repository
        self._factory = factory
        self._completion = completion
        self._rules = rules_service
        self._rng = rng or random.Random()
        self._clock = clock

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    async def get_battle(self, battle_id: int, monster_id: int, socket_id: str) -> SubmitResult:
        async def attach(record: Optional[BattleRecord]) -> BattleRecord:
            if record is None:
                record = await self._factory.materialize_accepted(battle_id)
            if record is None:
                raise BattleNotFoundError(battle_id)
            self._require_participant(record, monster_id)
            record.attach_socket(monster_id, socket_id, ready=False)
            return record

        return await self._run("get_battle", battle_id, monster_id, socket_id, attach)

    async def start_battle(self, battle_id: int, monster_id: int, socket_id: str) -> SubmitResult:
        async def ready(record: Optional[BattleRecord]) -> BattleRecord:
            if record is None:
                raise BattleNotFoundError(battle_id)
            self._require_participant(record, monster_id)
            record.attach_socket(monster_id, socket_id, ready=True)
            return record

        return await self._run("start_battle", battle_id, monster_id, socket_id, ready)

    async def submit_action(
        self,
        battle_id: int,
        monster_id: int,
        attack_id: Optional[int],
        defense_id: Optional[int],
        socket_id: Optional[str] = None,
    ) -> SubmitResult:
        async def act(record: Optional[BattleRecord]) -> BattleRecord:
            if record is None:
                raise BattleNotFoundError(battle_id)
            outcome = resolve_turn(
                record,
                monster_id,
                attack_id,
                defense_id,
                rules=self._rules.get_rules(),
                now_ms=self._clock(),
                rng=self._rng,
            )
            self.log.debug(
                "Turn resolved",
                extra={
                    "battle_id": battle_id,
                    "monster_id": monster_id,
                    "turn_number": record.turn_number,
                    "attack_executed": outcome.attack_executed,
                    "defense_executed": outcome.defense_executed,
                    "forced_pass": outcome.forced_pass,
                    "damage": outcome.damage,
                    "evaded": outcome.evaded,
                },
            )
            if outcome.verdict is not None:
                await self._completion.complete(record, outcome.verdict)
            return record

        return await self._run("submit_action", battle_id, monster_id, socket_id, act)

    # =========================================================================
    # INTERNALS
    # =========================================================================

    @staticmethod
    def _require_participant(record: BattleRecord, monster_id: int) -> None:
        if not record.is_participant(monster_id):
            raise InvalidOperationError("join_battle", f"monster {monster_id} is not in battle {record.battle_id}")

    async def _run(
        self,
        operation: str,
        battle_id: int,
        monster_id: int,
        socket_id: Optional[str],
        mutate: Callable[[Optional[BattleRecord]], Any],
    ) -> SubmitResult:
        loaded: Optional[BattleRecord] = None

        with LogContext(battle_id=battle_id, monster_id=monster_id, socket_id=socket_id, operation=operation):
            try:
                async with self._repository.locked(battle_id, operation=operation):
                    loaded = await self._repository.find(battle_id)
                    record = await mutate(loaded)
                    await self._repository.save(record)

            except ArenaDomainException as exc:
                self.log.info(
                    "Battle request rejected",
                    extra={"operation": operation, "reason": exc.reason, "error": str(exc)},
                )
                return SubmitResult.reject(exc.reason, self._sockets(loaded))

            except BattleRecordCorruptedError as exc:
                self.log_error(operation, exc, battle_id=battle_id)
                return SubmitResult.reject(REASON_CORRUPTED)

        return SubmitResult.applied(record)

    @staticmethod
    def _sockets(record: Optional[BattleRecord]) -> Tuple[str, ...]:
        return tuple(record.socket_ids()) if record is not None else ()
