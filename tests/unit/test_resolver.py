"""
Unit tests for the turn resolver.

Covers damage, defensive stances, evasion, stamina gating, auto-pass on
timeout, turn hand-off and win detection. All randomness goes through
seeded or fixed generators.
"""

from __future__ import annotations

import random

import pytest

from src.database.models.enums import BattleAction
from src.modules.battle.record import ActiveDefense, SkillSnapshot
from src.modules.battle.resolver import (
    EVASION_NAME,
    PASS_NAME,
    apply_incoming_defense,
    gate_by_stamina,
    resolve_turn,
    round_half_up,
)
from src.modules.shared.exceptions import BattleAlreadyFinishedError, NotYourTurnError
from tests.builders import (
    BITE,
    CHALLENGER,
    CLAW,
    DODGE,
    NOW_MS,
    OPPONENT,
    SHELL,
    make_record,
    make_stats,
)

POUND = SkillSnapshot(id=13, name="Pound", strength=1.0, energy_cost=5)


class FixedRandom:
    """Stands in for random.Random; `random()` always returns the same value."""

    def __init__(self, value: float) -> None:
        self._value = value

    def random(self) -> float:
        return self._value


def resolve(record, monster_id, attack_id=None, defense_id=None, *, rules, now=NOW_MS + 1_000, rng=None):
    return resolve_turn(
        record,
        monster_id,
        attack_id,
        defense_id,
        rules=rules,
        now_ms=now,
        rng=rng or random.Random(1),
    )


@pytest.mark.unit
class TestRounding:
    def test_round_half_up(self):
        """Halves round away from zero for positive values."""
        assert round_half_up(14.4) == 14
        assert round_half_up(12.5) == 13
        assert round_half_up(13.5) == 14
        assert round_half_up(0.0) == 0


@pytest.mark.unit
class TestBasicAttack:
    def test_attack_without_defense(self, rules):
        """1.2 x 12 strength deals 14 damage and the turn passes to the opponent."""
        record = make_record()

        outcome = resolve(record, CHALLENGER, BITE.id, rules=rules)

        assert outcome.attack_executed is True
        assert outcome.damage == 14
        assert record.opponent_hp == 86
        assert record.challenger_hp == 100
        assert record.current_turn_monster_id == OPPONENT
        assert record.turn_number == 1
        assert outcome.verdict is None

    def test_attack_stamina_economy(self, rules):
        """Stamina drops by the skill cost and gains the attack regen."""
        record = make_record()

        resolve(record, CHALLENGER, BITE.id, rules=rules)

        regen = rules.battle.stamina_regen.attack
        assert record.challenger_stamina == 30 - 18 + regen
        assert record.opponent_stamina == 30

    def test_attack_log_and_last_action(self, rules):
        """A single ATTACK entry is logged and summarized in last_action_log."""
        record = make_record()

        resolve(record, CHALLENGER, BITE.id, rules=rules)

        assert len(record.logs) == 1
        entry = record.logs[0]
        assert entry.action == BattleAction.ATTACK
        assert entry.name == "Bite"
        assert entry.from_monster_id == CHALLENGER
        assert entry.to_monster_id == OPPONENT
        assert entry.damage == 14
        assert entry.block == 0
        assert entry.sp_cost == 18
        assert entry.modifier == pytest.approx(1.2)
        assert entry.effect is None

        last = record.last_action_log
        assert last.monster_id == CHALLENGER
        assert last.action_name == "Bite"
        assert last.damage == 14
        assert last.stamina == rules.battle.stamina_regen.attack

    def test_turn_window_restarts(self, rules):
        """The next turn starts at the resolution time."""
        record = make_record()
        now = NOW_MS + 4_000

        resolve(record, CHALLENGER, BITE.id, rules=rules, now=now)

        assert record.turn_start_time_ms == now
        assert record.turn_ends_at_ms == now + record.turn_time_limit_ms
        assert record.server_now_ms == now


@pytest.mark.unit
class TestBlock:
    def test_block_reduces_damage(self, rules):
        """A 1.3 stance on 10 defense blocks 13 of a 20 point hit."""
        record = make_record(
            challenger_stats=make_stats(strength=20),
            attacks=[POUND],
            active_defense=ActiveDefense.from_skill(OPPONENT, SHELL),
        )

        outcome = resolve(record, CHALLENGER, POUND.id, rules=rules)

        assert outcome.block == 13
        assert outcome.damage == 7
        assert outcome.evaded is False
        assert record.opponent_hp == 93
        assert record.active_defense is None
        assert record.logs[-1].block == 13
        assert record.logs[-1].damage == 7

    def test_block_never_heals(self, rules):
        """Damage below the block is clamped at zero."""
        record = make_record(
            challenger_stats=make_stats(strength=5),
            attacks=[POUND],
            active_defense=ActiveDefense.from_skill(OPPONENT, SHELL),
        )

        outcome = resolve(record, CHALLENGER, POUND.id, rules=rules)

        assert outcome.damage == 0
        assert record.opponent_hp == 100

    def test_own_stance_does_not_protect_the_target(self, rules):
        """A stance owned by the attacker is not applied to the defender."""
        record = make_record(active_defense=ActiveDefense.from_skill(CHALLENGER, SHELL))

        outcome = resolve(record, CHALLENGER, BITE.id, rules=rules)

        assert outcome.block == 0
        assert record.opponent_hp == 86
        assert record.active_defense == ActiveDefense.from_skill(CHALLENGER, SHELL)

    def test_stance_is_consumed_once(self, rules):
        """A stance absorbs exactly one hit."""
        record = make_record()

        resolve(record, CHALLENGER, rules=rules)
        resolve(record, OPPONENT, defense_id=SHELL.id, rules=rules)
        assert record.active_defense.monster_id == OPPONENT

        first = resolve(record, CHALLENGER, CLAW.id, rules=rules)
        assert first.block == 13
        assert first.damage == 24 - 13
        assert record.active_defense is None

        resolve(record, OPPONENT, rules=rules)
        second = resolve(record, CHALLENGER, CLAW.id, rules=rules)
        assert second.block == 0
        assert second.damage == 24
        assert record.opponent_hp == 100 - 11 - 24


@pytest.mark.unit
class TestEvasion:
    def test_evaded_hit_deals_no_damage(self, rules):
        """A successful roll negates the hit and logs an Evasion entry."""
        record = make_record(active_defense=ActiveDefense.from_skill(OPPONENT, DODGE))
        logged_before = len(record.logs)

        outcome = resolve(record, CHALLENGER, BITE.id, rules=rules, rng=FixedRandom(0.1))

        assert outcome.evaded is True
        assert outcome.damage == 0
        assert outcome.block == 0
        assert record.opponent_hp == 100
        assert record.active_defense is None

        assert len(record.logs) == logged_before + 2
        evasion, attack = record.logs[-2], record.logs[-1]
        assert evasion.action == BattleAction.DEFENSE
        assert evasion.name == EVASION_NAME
        assert evasion.effect == "evasion"
        assert evasion.modifier == pytest.approx(BITE.strength)
        assert attack.action == BattleAction.ATTACK
        assert attack.damage == 0
        assert attack.block == 0
        assert attack.effect == "evaded"
        assert record.last_action_log.damage == 0

    def test_failed_roll_falls_through_to_block(self, rules):
        """Without evasion the stance blocks; Dodge has no defense so nothing is blocked."""
        record = make_record(active_defense=ActiveDefense.from_skill(OPPONENT, DODGE))

        outcome = resolve(record, CHALLENGER, BITE.id, rules=rules, rng=FixedRandom(0.9))

        assert outcome.evaded is False
        assert outcome.block == 0
        assert record.opponent_hp == 86
        assert all(entry.name != EVASION_NAME for entry in record.logs)

    def test_evasion_chance_is_capped(self):
        """Even an extreme evasion stance leaves the attacker a chance."""
        stance = ActiveDefense(
            monster_id=OPPONENT, name="Blur", defense=0.0, evasion=100.0, cooldown=0, energy_cost=0
        )

        result = apply_incoming_defense(20, stance, 10, 5, rng=FixedRandom(0.96), max_evasion_chance=0.95)

        assert result.evaded is False
        assert result.damage == 20

    def test_evasion_and_block_are_exclusive(self):
        """An evaded hit never reports a block, even with a defense multiplier."""
        stance = ActiveDefense(
            monster_id=OPPONENT, name="Fortress", defense=2.0, evasion=10.0, cooldown=0, energy_cost=0
        )

        result = apply_incoming_defense(20, stance, 10, 5, rng=FixedRandom(0.0))

        assert result.evaded is True
        assert result.block == 0
        assert result.damage == 0

    def test_evasion_defense_is_logged_as_ready(self, rules):
        """Committing an evasion stance tags its log entry with evasion_ready."""
        record = make_record()

        resolve(record, CHALLENGER, defense_id=DODGE.id, rules=rules)

        entry = record.logs[-1]
        assert entry.action == BattleAction.DEFENSE
        assert entry.name == "Dodge"
        assert entry.effect == "evasion_ready"
        assert record.active_defense == ActiveDefense.from_skill(CHALLENGER, DODGE)


@pytest.mark.unit
class TestStaminaGating:
    def test_both_affordable(self):
        assert gate_by_stamina(30, BITE, SHELL) == (True, True)

    def test_attack_has_priority(self):
        """With room for only one action the attack wins."""
        assert gate_by_stamina(20, BITE, SHELL) == (True, False)

    def test_defense_when_attack_unaffordable(self):
        assert gate_by_stamina(5, BITE, SHELL) == (False, True)

    def test_nothing_affordable(self):
        assert gate_by_stamina(2, BITE, SHELL) == (False, False)

    def test_nothing_chosen(self):
        assert gate_by_stamina(0, None, None) == (False, False)

    def test_gated_attack_becomes_defense_turn(self, rules):
        """An unaffordable attack is dropped and the defense regen applies."""
        record = make_record(challenger_stamina=5)

        outcome = resolve(record, CHALLENGER, BITE.id, SHELL.id, rules=rules)

        assert outcome.attack_executed is False
        assert outcome.defense_executed is True
        assert record.opponent_hp == 100
        assert record.challenger_stamina == 5 - 4 + rules.battle.stamina_regen.defense

    def test_stamina_never_exceeds_snapshot(self, rules):
        """Regen is clamped to the monster's max stamina."""
        record = make_record()

        resolve(record, CHALLENGER, rules=rules)

        assert record.challenger_stamina == 30


@pytest.mark.unit
class TestPass:
    def test_explicit_pass(self, rules):
        """No actions: a PASS entry with turn_skip=1 and the pass regen."""
        record = make_record(challenger_stamina=10)

        outcome = resolve(record, CHALLENGER, rules=rules)

        assert outcome.is_pass
        assert record.challenger_stamina == 10 + rules.battle.stamina_regen.pass_
        entry = record.logs[-1]
        assert entry.action == BattleAction.PASS
        assert entry.name == PASS_NAME
        assert entry.turn_skip == 1
        assert record.last_action_log.action_name == PASS_NAME
        assert record.current_turn_monster_id == OPPONENT

    def test_unknown_skill_is_ignored(self, rules):
        """Skill ids not in the monster's catalog are treated as not chosen."""
        record = make_record()

        outcome = resolve(record, CHALLENGER, 999, 998, rules=rules)

        assert outcome.is_pass
        assert record.opponent_hp == 100

    def test_expired_turn_forces_pass(self, rules):
        """Past the deadline plus grace, a submitted attack becomes a pass."""
        record = make_record(challenger_stamina=10)
        late = record.turn_ends_at_ms + record.grace_ms + 1

        outcome = resolve(record, CHALLENGER, BITE.id, SHELL.id, rules=rules, now=late)

        assert outcome.forced_pass is True
        assert outcome.is_pass
        assert record.opponent_hp == 100
        assert record.active_defense is None
        assert record.challenger_stamina == 10 + rules.battle.stamina_regen.pass_
        assert record.logs[-1].action == BattleAction.PASS
        assert record.current_turn_monster_id == OPPONENT
        assert record.turn_number == 1
        assert record.turn_start_time_ms == late

    def test_within_grace_is_not_expired(self, rules):
        """Submissions inside the grace window still count."""
        record = make_record()
        on_edge = record.turn_ends_at_ms + record.grace_ms

        outcome = resolve(record, CHALLENGER, BITE.id, rules=rules, now=on_edge)

        assert outcome.forced_pass is False
        assert outcome.attack_executed is True


@pytest.mark.unit
class TestTurnOwnership:
    def test_wrong_turn_is_rejected_without_mutation(self, rules):
        """The non-owner's submission raises and leaves the record untouched."""
        record = make_record()
        before = record.to_client_dict()

        with pytest.raises(NotYourTurnError) as exc_info:
            resolve(record, OPPONENT, BITE.id, rules=rules)

        assert exc_info.value.reason == "not_your_turn"
        assert record.to_client_dict() == before

    def test_owner_alternates(self, rules):
        """Each resolved turn flips ownership and advances the counter."""
        record = make_record()

        resolve(record, CHALLENGER, rules=rules)
        resolve(record, OPPONENT, rules=rules)
        resolve(record, CHALLENGER, rules=rules)

        assert record.current_turn_monster_id == OPPONENT
        assert record.turn_number == 3


@pytest.mark.unit
class TestWinDetection:
    def test_lethal_hit_produces_verdict(self, rules):
        """HP is clamped at zero and the attacker is declared winner."""
        record = make_record(opponent_hp=5)

        outcome = resolve(record, CHALLENGER, CLAW.id, rules=rules)

        assert record.opponent_hp == 0
        assert outcome.is_terminal
        assert outcome.verdict.winner_monster_id == CHALLENGER
        assert outcome.verdict.loser_monster_id == OPPONENT

    def test_finished_battle_rejects_further_turns(self, rules):
        """Once a winner is recorded no further turn is resolved."""
        record = make_record(opponent_hp=5)
        outcome = resolve(record, CHALLENGER, CLAW.id, rules=rules)
        record.winner_monster_id = outcome.verdict.winner_monster_id
        before = record.to_client_dict()

        with pytest.raises(BattleAlreadyFinishedError) as exc_info:
            resolve(record, OPPONENT, CLAW.id, rules=rules)

        assert exc_info.value.reason == "battle_finished"
        assert record.to_client_dict() == before
