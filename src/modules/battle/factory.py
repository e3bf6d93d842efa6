"""
Battle Factory
==============

Purpose
-------
Create battles: check start preconditions, insert the `monster_battles`
row and materialize the live `BattleRecord` in Redis from snapshots of
both monsters.

Creation Flow
-------------
1. Both sides must pass the start check: owner energy >= battle energy
   cost and monster satiety >= satiety cost. Otherwise no row is written
2. Insert a PENDING row (with the optional chat id)
3. Materialize: load both monsters with skills and owners. A monster that
   is missing, too hungry or has no HP marks the row REJECTED and no record
   is written
4. Build the record (challenger moves first, turn 0, full HP and stamina,
   stat and skill snapshots) and write it with the battle TTL

Design Notes
------------
- The first turn gets `first_turn_extra_ms` on top of the normal turn
  budget so both clients have time to connect and ready up
- `materialize_accepted` lets the session flow pick up battles accepted
  through an external flow (row ACCEPTED, no live record yet)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, Optional

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from src.core.database.service import DatabaseService
from src.database.models.combat.monster_battle import MonsterBattle
from src.database.models.core.monster import Monster, MonsterAttack, MonsterDefense
from src.database.models.enums import BattleStatus
from src.modules.battle import ledger
from src.modules.battle.record import BattleRecord, MonsterStats, SkillSnapshot
from src.modules.battle.repository import BattleRepository
from src.modules.battle.timer import now_ms
from src.modules.rules.schema import BattleRules
from src.modules.rules.service import RulesService
from src.modules.shared.base_service import BaseService

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus
    from src.database.models.catalog.skill import Skill


@dataclass(frozen=True)
class CreateBattleResult:
    created: bool
    battle_id: Optional[int]


def snapshot_skill(skill: Skill) -> SkillSnapshot:
    return SkillSnapshot(
        id=skill.id,
        name=skill.name,
        strength=float(skill.strength or 0.0),
        defense=float(skill.defense or 0.0),
        evasion=float(skill.evasion or 0.0),
        energy_cost=int(skill.energy_cost or 0),
        cooldown=int(skill.cooldown or 0),
    )


def snapshot_stats(monster: Monster) -> MonsterStats:
    return MonsterStats(
        health_points=monster.health_points,
        stamina=monster.stamina,
        strength=monster.strength,
        defense=monster.defense,
        evasion=monster.evasion,
    )


def build_record(
    battle: MonsterBattle,
    challenger: Monster,
    opponent: Monster,
    rules: BattleRules,
    now: int,
) -> BattleRecord:
    """Build the turn-0 record for a battle row and its two loaded monsters."""
    settings = rules.battle
    return BattleRecord(
        battle_id=battle.id,
        challenger_monster_id=challenger.id,
        opponent_monster_id=opponent.id,
        challenger_user_id=challenger.user_id,
        opponent_user_id=opponent.user_id,
        challenger_monster_level=challenger.level,
        opponent_monster_level=opponent.level,
        challenger_hp=challenger.health_points,
        opponent_hp=opponent.health_points,
        challenger_stamina=challenger.stamina,
        opponent_stamina=opponent.stamina,
        challenger_stats=snapshot_stats(challenger),
        opponent_stats=snapshot_stats(opponent),
        challenger_attacks=[snapshot_skill(link.skill) for link in challenger.attacks],
        challenger_defenses=[snapshot_skill(link.skill) for link in challenger.defenses],
        opponent_attacks=[snapshot_skill(link.skill) for link in opponent.attacks],
        opponent_defenses=[snapshot_skill(link.skill) for link in opponent.defenses],
        current_turn_monster_id=challenger.id,
        turn_time_limit_ms=settings.turn_time_limit_ms,
        turn_number=0,
        turn_start_time_ms=now,
        turn_ends_at_ms=now + settings.turn_time_limit_ms + settings.first_turn_extra_ms,
        grace_ms=settings.grace_ms,
        server_now_ms=now,
        chat_id=battle.chat_id,
    )


class BattleFactory(BaseService):
    """Creates battle rows and their live records."""

    def __init__(
        self,
        repository: BattleRepository,
        rules_service: RulesService,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._repository = repository
        self._rules = rules_service

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    async def create_battle(
        self,
        challenger_monster_id: int,
        opponent_monster_id: int,
        chat_id: Optional[str] = None,
    ) -> CreateBattleResult:
        self.validate_positive_int(challenger_monster_id, "challenger_monster_id")
        self.validate_positive_int(opponent_monster_id, "opponent_monster_id")

        rules = self._rules.get_rules()

        async with DatabaseService.get_session() as session:
            monsters = await self._load_monsters(session, (challenger_monster_id, opponent_monster_id))
        for monster_id in (challenger_monster_id, opponent_monster_id):
            if not self._can_start(monsters.get(monster_id), rules):
                self.log.info(
                    "Battle start preconditions not met",
                    extra={"monster_id": monster_id},
                )
                return CreateBattleResult(created=False, battle_id=None)

        async with DatabaseService.get_transaction() as session:
            battle = MonsterBattle(
                challenger_monster_id=challenger_monster_id,
                opponent_monster_id=opponent_monster_id,
                status=BattleStatus.PENDING,
                chat_id=chat_id,
            )
            session.add(battle)
            await session.flush()
            battle_id = battle.id

        self.log_operation(
            "create_battle",
            battle_id=battle_id,
            challenger_monster_id=challenger_monster_id,
            opponent_monster_id=opponent_monster_id,
        )

        created = await self.materialize(battle_id)
        if not created:
            self.log.info("Battle record was not created", extra={"battle_id": battle_id})
        return CreateBattleResult(created=created, battle_id=battle_id)

    async def materialize_accepted(self, battle_id: int) -> Optional[BattleRecord]:
        """Materialize a battle whose row is ACCEPTED but has no live record."""
        async with DatabaseService.get_session() as session:
            battle = (
                await session.execute(
                    select(MonsterBattle).where(
                        MonsterBattle.id == battle_id,
                        MonsterBattle.status == BattleStatus.ACCEPTED,
                    )
                )
            ).scalar_one_or_none()
        if battle is None:
            return None

        if not await self.materialize(battle_id):
            return None
        return await self._repository.find(battle_id)

    async def materialize(self, battle_id: int) -> bool:
        """Write the live record for an existing row; REJECTED on failure."""
        rules = self._rules.get_rules()
        settings = rules.battle

        async with DatabaseService.get_session() as session:
            battle = await session.get(MonsterBattle, battle_id)
            if battle is None:
                self.log.warning("Battle row not found", extra={"battle_id": battle_id})
                return False
            monsters = await self._load_monsters(
                session, (battle.challenger_monster_id, battle.opponent_monster_id)
            )
            challenger = monsters.get(battle.challenger_monster_id)
            opponent = monsters.get(battle.opponent_monster_id)

            if challenger is None or opponent is None or min(challenger.satiety, opponent.satiety) < settings.satiety_cost:
                self.log.info("Monster is hungry or missing", extra={"battle_id": battle_id})
                await self._reject(battle_id)
                return False

            if challenger.health_points <= 0 or opponent.health_points <= 0:
                self.log.error(
                    "Monster has no health points",
                    extra={
                        "battle_id": battle_id,
                        "challenger_hp": challenger.health_points,
                        "opponent_hp": opponent.health_points,
                    },
                )
                await self._reject(battle_id)
                return False

            record = build_record(battle, challenger, opponent, rules, now_ms())

        await self._repository.create(record, settings.ttl_battle_sec)
        return True

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _can_start(self, monster: Optional[Monster], rules: BattleRules) -> bool:
        if monster is None or monster.user is None:
            return False
        return (
            monster.user.energy >= rules.battle.energy_cost
            and monster.satiety >= rules.battle.satiety_cost
        )

    async def _load_monsters(self, session, monster_ids) -> Dict[int, Monster]:
        rows = (
            await session.execute(
                select(Monster)
                .where(Monster.id.in_(list(monster_ids)))
                .options(
                    selectinload(Monster.user),
                    selectinload(Monster.attacks).selectinload(MonsterAttack.skill),
                    selectinload(Monster.defenses).selectinload(MonsterDefense.skill),
                )
            )
        ).scalars().all()
        return {monster.id: monster for monster in rows}

    async def _reject(self, battle_id: int) -> None:
        async with DatabaseService.get_transaction() as session:
            await ledger.reject_battle(session, battle_id)
