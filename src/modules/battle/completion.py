"""
Battle Completion Pipeline
==========================

Purpose
-------
Run everything that happens once a battle has a winner: the durable
FINISHED transition, experience, audit, resource settlement, winner
rewards and the chat notification.

Pipeline
--------
1. Mark the winner on the record
2. Transaction: `monster_battles` -> FINISHED with winner and turn log,
   guarded by `status <> FINISHED`. Zero rows means another worker already
   finalized the battle: log and stop with no further side effects
3. Experience award as a tracked background task
4. Audit: one `battle.finished` summary and one `battle.turn` per log entry
5. Transaction: satiety drain on both monsters, charged whatever the
   settlement below does
6. Transaction: load both users (missing user -> log error and stop),
   energy debit, winner reward rolls. Rolled items are copied onto the
   winner's reward only after this transaction commits
7. Fire-and-forget BATTLE_RESULT notification when the battle has a chat

Error Handling
--------------
- Step 2 failures propagate to the caller (the turn is not saved)
- Experience, audit, settlement and notification failures are logged and
  never undo the FINISHED transition

Dependencies
------------
- DatabaseService: transactions
- RulesService: battle settings and reward brackets
- ExperienceService / RewardRoller / NotificationService
- AuditLogger: audit events on the EventBus
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Coroutine, Set

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from src.core.database.service import DatabaseService
from src.core.infra.audit_logger import AuditLogger
from src.database.models.core.user import User
from src.modules.battle import ledger
from src.modules.battle.experience import ExperienceService
from src.modules.battle.record import BattleRecord, RewardGrant
from src.modules.battle.rewards import RewardRoller
from src.modules.battle.win_detector import BattleVerdict
from src.modules.notification.service import NotificationService, NotificationType
from src.modules.rules.schema import BattleRules
from src.modules.rules.service import RulesService
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import ArenaDomainException

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus


class BattleCompletionPipeline(BaseService):
    """Finalizes a battle exactly once and settles its side effects."""

    EVENT_BATTLE_FINISHED = "battle.finished"

    def __init__(
        self,
        rules_service: RulesService,
        experience_service: ExperienceService,
        notification_service: NotificationService,
        reward_roller: RewardRoller,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._rules = rules_service
        self._experience = experience_service
        self._notifications = notification_service
        self._rewards = reward_roller
        self._tasks: Set[asyncio.Task[Any]] = set()

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    async def complete(self, record: BattleRecord, verdict: BattleVerdict) -> bool:
        """
        Finalize `record` with `verdict`.

        Returns False when the battle had already been finalized.
        """
        battle_id = record.battle_id
        record.winner_monster_id = verdict.winner_monster_id
        rules = self._rules.get_rules()

        async with DatabaseService.get_transaction() as session:
            finalized = await ledger.finalize_battle(
                session,
                battle_id,
                verdict.winner_monster_id,
                [entry.to_dict() for entry in record.logs],
            )

        if not finalized:
            self.log.info(
                "Battle already finalized; skipping completion side effects",
                extra={"battle_id": battle_id, "winner_monster_id": verdict.winner_monster_id},
            )
            return False

        self.log_operation(
            "complete_battle",
            battle_id=battle_id,
            winner_monster_id=verdict.winner_monster_id,
            loser_monster_id=verdict.loser_monster_id,
            turn_number=record.turn_number,
        )

        self._spawn(self._experience.award(verdict, battle_id), name=f"battle-exp-{battle_id}")
        await self._audit(record)

        record.reward_of(verdict.winner_monster_id).exp = rules.reward.battle_exp.win_exp
        record.reward_of(verdict.loser_monster_id).exp = rules.reward.battle_exp.lose_exp

        try:
            await self._drain_satiety(record, rules)
        except SQLAlchemyError as exc:
            self.log_error("drain_satiety", exc, battle_id=battle_id)

        try:
            await self._settle(record, verdict, rules)
        except SQLAlchemyError as exc:
            self.log_error("settle_battle", exc, battle_id=battle_id)

        if record.chat_id:
            self._notifications.notify_background(
                NotificationType.BATTLE_RESULT,
                {"battle_id": battle_id, "chat_id": record.chat_id},
            )

        await self.emit_event(
            self.EVENT_BATTLE_FINISHED,
            {
                "battle_id": battle_id,
                "winner_monster_id": verdict.winner_monster_id,
                "loser_monster_id": verdict.loser_monster_id,
            },
        )
        return True

    async def drain(self) -> None:
        """Await all in-flight background tasks (shutdown, tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # =========================================================================
    # STEPS
    # =========================================================================

    async def _audit(self, record: BattleRecord) -> None:
        try:
            await AuditLogger.log_battle_summary(record)
            await AuditLogger.log_battle_turns(record)
        except ArenaDomainException as exc:
            self.log_error("audit_battle", exc, battle_id=record.battle_id)

    async def _drain_satiety(self, record: BattleRecord, rules: BattleRules) -> None:
        async with DatabaseService.get_transaction() as session:
            await ledger.drain_satiety(
                session,
                (record.challenger_monster_id, record.opponent_monster_id),
                rules.battle.satiety_cost,
            )

    async def _settle(self, record: BattleRecord, verdict: BattleVerdict, rules: BattleRules) -> None:
        settings = rules.battle
        battle_id = record.battle_id
        user_ids = (record.challenger_user_id, record.opponent_user_id)
        winner = verdict.winner_monster_id
        rolled = RewardGrant()

        async with DatabaseService.get_transaction() as session:
            found = set(
                (await session.execute(select(User.id).where(User.id.in_(user_ids)))).scalars()
            )
            missing = [user_id for user_id in user_ids if user_id not in found]
            if missing:
                self.log.error(
                    "Battle participants missing at settlement",
                    extra={"battle_id": battle_id, "missing_user_ids": missing},
                )
                return

            await ledger.debit_energy(session, user_ids, settings.energy_cost, settings.energy_max)

            await self._rewards.grant(
                session,
                battle_id=battle_id,
                user_id=record.user_of(winner),
                level=record.level_of(winner),
                rules=rules,
                grant=rolled,
            )

        # Committed; only now do the items count as granted.
        reward = record.reward_of(winner)
        reward.food = rolled.food
        reward.skill = rolled.skill
        reward.mutagen = rolled.mutagen

    def _spawn(self, coro: Coroutine[Any, Any, Any], *, name: str) -> None:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.log.error(
                "Background completion task failed",
                extra={
                    "task_name": task.get_name(),
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
