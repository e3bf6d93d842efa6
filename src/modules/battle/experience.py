"""
Battle Experience
=================

Purpose
-------
Award post-battle experience to both monsters and run the level-up loop
against the `monster_levels` table from the battle rules.

Level-up Loop
-------------
After adding experience, while a row for `level + 1` exists and the
monster's experience reaches that row's threshold:

- subtract the threshold from experience
- increment the level
- multiply stamina, strength, defense and evasion by the row's modifier,
  rounding half-up

Design Notes
------------
- `apply_experience` is pure over any object with the monster stat
  attributes, so it is unit-testable without a database
- `ExperienceService.award` runs one transaction per monster with a row
  lock; a failure on one side is logged and does not block the other
- Called from the completion pipeline as a background task
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional, Protocol

from src.core.database.service import DatabaseService
from src.database.models.core.monster import Monster
from src.modules.battle.resolver import round_half_up
from src.modules.battle.win_detector import BattleVerdict
from src.modules.rules.schema import BattleRules
from src.modules.rules.service import RulesService
from src.modules.shared.base_service import BaseService

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus


class Levelable(Protocol):
    level: int
    experience_points: int
    stamina: int
    strength: int
    defense: int
    evasion: int


@dataclass(frozen=True)
class ExperienceResult:
    monster_id: int
    gained: int
    level_before: int
    level_after: int
    experience_points: int

    @property
    def levels_gained(self) -> int:
        return self.level_after - self.level_before


def apply_experience(monster: Levelable, exp: int, rules: BattleRules) -> int:
    """Add `exp` and level up as far as the table allows. Returns levels gained."""
    monster.experience_points += exp
    gained = 0

    while True:
        row = rules.level_row(monster.level + 1)
        if row is None or monster.experience_points < row.exp:
            break

        monster.experience_points -= row.exp
        monster.level += 1
        monster.stamina = round_half_up(monster.stamina * row.modifier)
        monster.strength = round_half_up(monster.strength * row.modifier)
        monster.defense = round_half_up(monster.defense * row.modifier)
        monster.evasion = round_half_up(monster.evasion * row.modifier)
        gained += 1

    return gained


class ExperienceService(BaseService):
    """Awards battle experience (win/lose amounts from the rules)."""

    EVENT_LEVEL_UP = "monster.level_up"

    def __init__(
        self,
        rules_service: RulesService,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._rules = rules_service

    async def award(self, verdict: BattleVerdict, battle_id: int) -> List[ExperienceResult]:
        rules = self._rules.get_rules()
        amounts = (
            (verdict.winner_monster_id, rules.reward.battle_exp.win_exp),
            (verdict.loser_monster_id, rules.reward.battle_exp.lose_exp),
        )

        results: List[ExperienceResult] = []
        for monster_id, exp in amounts:
            try:
                result = await self._award_one(monster_id, exp, rules)
            except Exception as exc:
                self.log_error("award_experience", exc, battle_id=battle_id, monster_id=monster_id)
                continue
            if result is None:
                continue

            results.append(result)
            if result.levels_gained:
                await self.emit_event(
                    self.EVENT_LEVEL_UP,
                    {
                        "battle_id": battle_id,
                        "monster_id": monster_id,
                        "level_before": result.level_before,
                        "level_after": result.level_after,
                    },
                )

        return results

    async def _award_one(self, monster_id: int, exp: int, rules: BattleRules) -> Optional[ExperienceResult]:
        async with DatabaseService.get_transaction() as session:
            monster = await DatabaseService.get_locked_entity(session, Monster, monster_id)
            if monster is None:
                self.log.warning(
                    "Monster vanished before experience award",
                    extra={"monster_id": monster_id},
                )
                return None

            level_before = monster.level
            apply_experience(monster, exp, rules)

            self.log_operation(
                "award_experience",
                monster_id=monster_id,
                gained=exp,
                level_before=level_before,
                level_after=monster.level,
            )
            return ExperienceResult(
                monster_id=monster_id,
                gained=exp,
                level_before=level_before,
                level_after=monster.level,
                experience_points=monster.experience_points,
            )
