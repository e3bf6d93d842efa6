"""
Win detection for a battle record.

Pure check run after damage has been applied: a side at exactly 0 HP
loses. Only one monster takes damage per turn, so both sides can never be
at 0 after the same step.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from src.modules.battle.record import BattleRecord


@dataclass(frozen=True)
class BattleVerdict:
    winner_monster_id: int
    loser_monster_id: int


def detect_winner(record: BattleRecord) -> Optional[BattleVerdict]:
    if record.challenger_hp == 0:
        return BattleVerdict(
            winner_monster_id=record.opponent_monster_id,
            loser_monster_id=record.challenger_monster_id,
        )
    if record.opponent_hp == 0:
        return BattleVerdict(
            winner_monster_id=record.challenger_monster_id,
            loser_monster_id=record.opponent_monster_id,
        )
    return None
