"""
Action Resolver
===============

Purpose
-------
Advance a `BattleRecord` by exactly one turn for the acting monster: apply
timing, stamina gating, damage, the defender's pending stance, stamina
regeneration, logging and the hand-off to the other side.

Algorithm
---------
1. Timing: an expired turn discards both submitted actions (forced pass)
2. Look up the chosen attack/defense on the record's skill snapshot
3. Stamina gating with attack priority: if both are unaffordable together,
   keep the attack when it alone is affordable, else keep the defense when
   it alone is affordable, else pass
4. Raw damage = round(attack.strength x attacker strength)
5. Defender's active defense (if it is theirs and an attack executed):
   evasion roll first, otherwise a flat block; the stance is consumed
6. Defender HP clamped at 0
7. The actor's chosen defense becomes the new active defense
8. Stamina: spend executed costs, add branch regeneration, clamp to max
9. Log entries, last-action summary. An evaded hit writes two entries: a
   DEFENSE "Evasion" entry (effect `evasion`) followed by the ATTACK entry
   (effect `evaded`, zero damage)
10. Hand the turn to the defender and open a new turn window

Design Notes
------------
- Pure and synchronous: no I/O; randomness and time are injected
- Rounding is half-up, `floor(x + 0.5)`
- Preconditions raise domain errors before any mutation
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Sequence

from src.database.models.enums import BattleAction
from src.modules.battle.record import (
    EFFECT_EVADED,
    EFFECT_EVASION,
    EFFECT_EVASION_READY,
    ActiveDefense,
    BattleLogEntry,
    BattleRecord,
    LastAction,
    SkillSnapshot,
)
from src.modules.battle.timer import ensure_turn_timing, is_turn_expired, start_next_turn
from src.modules.battle.win_detector import BattleVerdict, detect_winner
from src.modules.rules.schema import BattleRules
from src.modules.shared.exceptions import BattleAlreadyFinishedError, NotYourTurnError

PASS_NAME = "Pass"
EVASION_NAME = "Evasion"
DEFAULT_ATTACK_NAME = "Attack"
DEFAULT_DEFENSE_NAME = "Defense"


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


@dataclass(frozen=True)
class IncomingDefenseResult:
    damage: int
    block: int
    evaded: bool


@dataclass(frozen=True)
class TurnOutcome:
    """Summary of one resolved turn; the record itself is mutated in place."""

    record: BattleRecord
    actor_monster_id: int
    defender_monster_id: int
    attack_executed: bool
    defense_executed: bool
    forced_pass: bool
    evaded: bool
    damage: int
    block: int
    verdict: Optional[BattleVerdict]

    @property
    def is_terminal(self) -> bool:
        return self.verdict is not None

    @property
    def is_pass(self) -> bool:
        return not self.attack_executed and not self.defense_executed


def _find_skill(catalog: Sequence[SkillSnapshot], skill_id: Optional[int]) -> Optional[SkillSnapshot]:
    if skill_id is None:
        return None
    return next((skill for skill in catalog if skill.id == skill_id), None)


def _iso(now: int) -> str:
    return datetime.fromtimestamp(now / 1000, tz=timezone.utc).isoformat()


def gate_by_stamina(
    stamina: int,
    attack: Optional[SkillSnapshot],
    defense: Optional[SkillSnapshot],
) -> tuple[bool, bool]:
    """Decide which chosen actions execute; attack wins ties under stamina pressure."""
    do_attack = attack is not None
    do_defense = defense is not None
    attack_cost = attack.energy_cost if attack else 0
    defense_cost = defense.energy_cost if defense else 0

    if stamina < attack_cost + defense_cost:
        if do_attack and stamina >= attack_cost:
            do_defense = False
        elif do_defense and stamina >= defense_cost:
            do_attack = False
        else:
            do_attack = False
            do_defense = False

    return do_attack, do_defense


def apply_incoming_defense(
    raw_damage: int,
    stance: ActiveDefense,
    defender_defense: int,
    defender_evasion: int,
    *,
    rng: random.Random,
    max_evasion_chance: float = 0.95,
) -> IncomingDefenseResult:
    """Evasion roll first; otherwise subtract a flat block. Never both."""
    evasion_chance = clamp(stance.evasion * defender_evasion / 100, 0.0, max_evasion_chance)
    if rng.random() < evasion_chance:
        return IncomingDefenseResult(damage=0, block=0, evaded=True)

    block = round_half_up(stance.defense * defender_defense)
    return IncomingDefenseResult(damage=max(0, raw_damage - block), block=block, evaded=False)


def resolve_turn(
    record: BattleRecord,
    monster_id: int,
    attack_id: Optional[int],
    defense_id: Optional[int],
    *,
    rules: BattleRules,
    now_ms: int,
    rng: random.Random,
) -> TurnOutcome:
    """
    Resolve one turn for `monster_id` and mutate `record`.

    Raises
    ------
    BattleAlreadyFinishedError
        The record already has a winner.
    NotYourTurnError
        `monster_id` does not own the current turn.
    """
    if record.is_finished:
        raise BattleAlreadyFinishedError(record.battle_id, record.winner_monster_id)
    if record.current_turn_monster_id != monster_id:
        raise NotYourTurnError(record.battle_id, monster_id, record.current_turn_monster_id)

    settings = rules.battle

    # Timing
    ensure_turn_timing(record, now_ms, settings.grace_ms)
    forced_pass = is_turn_expired(record, now_ms)
    if forced_pass:
        attack_id = None
        defense_id = None

    defender_id = record.opponent_of(monster_id)
    attacker_stats = record.stats_of(monster_id)
    defender_stats = record.stats_of(defender_id)

    attack = _find_skill(record.attacks_of(monster_id), attack_id)
    defense = _find_skill(record.defenses_of(monster_id), defense_id)

    # Stamina gating
    current_stamina = record.stamina_of(monster_id)
    do_attack, do_defense = gate_by_stamina(current_stamina, attack, defense)

    # Damage
    damage = round_half_up(attack.strength * attacker_stats.strength) if do_attack and attack else 0
    block = 0
    evaded = False

    stance = record.active_defense
    if do_attack and stance is not None and stance.monster_id == defender_id:
        result = apply_incoming_defense(
            damage,
            stance,
            defender_stats.defense,
            defender_stats.evasion,
            rng=rng,
            max_evasion_chance=settings.max_evasion_chance,
        )
        damage, block, evaded = result.damage, result.block, result.evaded
        record.active_defense = None

        if evaded:
            record.logs.append(
                BattleLogEntry(
                    from_monster_id=monster_id,
                    to_monster_id=defender_id,
                    action=BattleAction.DEFENSE,
                    name=EVASION_NAME,
                    modifier=attack.strength if attack else 0.0,
                    damage=0,
                    block=0,
                    effect=EFFECT_EVASION,
                    cooldown=0,
                    sp_cost=0,
                    turn_skip=0,
                    timestamp=_iso(now_ms),
                )
            )

    if do_attack and not evaded:
        record.set_hp(defender_id, max(0, record.hp_of(defender_id) - damage))

    # Actor's new stance
    if do_defense and defense is not None:
        record.active_defense = ActiveDefense.from_skill(monster_id, defense)

    # Stamina economy
    regen_rules = settings.stamina_regen
    if do_attack:
        regen = regen_rules.attack
    elif do_defense:
        regen = regen_rules.defense
    else:
        regen = regen_rules.pass_

    spent = (attack.energy_cost if do_attack and attack else 0) + (
        defense.energy_cost if do_defense and defense else 0
    )
    record.set_stamina(
        monster_id,
        int(clamp(current_stamina - spent + regen, 0, attacker_stats.stamina)),
    )

    # Logs
    timestamp = _iso(now_ms)
    if do_defense and defense is not None:
        record.logs.append(
            BattleLogEntry(
                from_monster_id=monster_id,
                to_monster_id=defender_id,
                action=BattleAction.DEFENSE,
                name=defense.name or DEFAULT_DEFENSE_NAME,
                modifier=defense.defense,
                damage=0,
                block=0,
                effect=EFFECT_EVASION_READY if defense.evasion > 0 else None,
                cooldown=defense.cooldown,
                sp_cost=defense.energy_cost,
                turn_skip=0,
                timestamp=timestamp,
            )
        )

    if do_attack and attack is not None:
        record.logs.append(
            BattleLogEntry(
                from_monster_id=monster_id,
                to_monster_id=defender_id,
                action=BattleAction.ATTACK,
                name=attack.name or DEFAULT_ATTACK_NAME,
                modifier=attack.strength,
                damage=0 if evaded else damage,
                block=0 if evaded else block,
                effect=EFFECT_EVADED if evaded else None,
                cooldown=attack.cooldown,
                sp_cost=attack.energy_cost,
                turn_skip=0,
                timestamp=timestamp,
            )
        )

    if not do_attack and not do_defense:
        record.logs.append(
            BattleLogEntry(
                from_monster_id=monster_id,
                to_monster_id=defender_id,
                action=BattleAction.PASS,
                name=PASS_NAME,
                modifier=0.0,
                damage=0,
                block=0,
                effect=None,
                cooldown=0,
                sp_cost=0,
                turn_skip=1,
                timestamp=timestamp,
            )
        )

    if do_attack and attack is not None:
        action_name = attack.name or DEFAULT_ATTACK_NAME
    elif do_defense and defense is not None:
        action_name = defense.name or DEFAULT_DEFENSE_NAME
    else:
        action_name = PASS_NAME

    applied_damage = damage if do_attack and not evaded else 0
    record.last_action_log = LastAction(
        monster_id=monster_id,
        action_name=action_name,
        damage=applied_damage,
        stamina=regen,
    )

    # Hand-off
    record.current_turn_monster_id = defender_id
    record.turn_number += 1
    start_next_turn(record, now_ms)

    return TurnOutcome(
        record=record,
        actor_monster_id=monster_id,
        defender_monster_id=defender_id,
        attack_executed=do_attack,
        defense_executed=do_defense,
        forced_pass=forced_pass,
        evaded=evaded,
        damage=applied_damage,
        block=block,
        verdict=detect_winner(record),
    )
