"""Unit tests for the lazy turn timer and the win detector."""

from __future__ import annotations

import pytest

from src.modules.battle.timer import ensure_turn_timing, is_turn_expired, start_next_turn
from src.modules.battle.win_detector import BattleVerdict, detect_winner
from tests.builders import CHALLENGER, NOW_MS, OPPONENT, make_record


@pytest.mark.unit
class TestEnsureTurnTiming:
    def test_fills_missing_grace(self):
        """A record without grace picks up the configured default."""
        record = make_record(grace_ms=None)

        ensure_turn_timing(record, NOW_MS, 400)

        assert record.grace_ms == 400

    def test_derives_deadline_from_start(self):
        """A missing deadline is start + limit when a start exists."""
        record = make_record(turn_ends_at_ms=None)

        ensure_turn_timing(record, NOW_MS + 50_000, 250)

        assert record.turn_ends_at_ms == NOW_MS + record.turn_time_limit_ms

    def test_starts_turn_now_without_start(self):
        """With neither start nor deadline, the turn starts now."""
        record = make_record(turn_start_time_ms=None, turn_ends_at_ms=None)
        now = NOW_MS + 7

        ensure_turn_timing(record, now, 250)

        assert record.turn_start_time_ms == now
        assert record.turn_ends_at_ms == now + record.turn_time_limit_ms

    def test_keeps_existing_values(self):
        record = make_record()
        before = (record.turn_start_time_ms, record.turn_ends_at_ms, record.grace_ms)

        ensure_turn_timing(record, NOW_MS + 1, 999)

        assert (record.turn_start_time_ms, record.turn_ends_at_ms, record.grace_ms) == before


@pytest.mark.unit
class TestExpiry:
    def test_not_expired_before_deadline(self):
        record = make_record()
        assert is_turn_expired(record, record.turn_ends_at_ms - 1) is False

    def test_grace_window_is_inclusive(self):
        """`now == deadline + grace` is still on time."""
        record = make_record()
        assert is_turn_expired(record, record.turn_ends_at_ms + record.grace_ms) is False

    def test_expired_after_grace(self):
        record = make_record()
        assert is_turn_expired(record, record.turn_ends_at_ms + record.grace_ms + 1) is True

    def test_no_deadline_never_expires(self):
        record = make_record(turn_ends_at_ms=None)
        assert is_turn_expired(record, NOW_MS * 2) is False

    def test_start_next_turn(self):
        """Opening a turn resets the whole window."""
        record = make_record()
        now = NOW_MS + 12_345

        start_next_turn(record, now)

        assert record.turn_start_time_ms == now
        assert record.turn_ends_at_ms == now + record.turn_time_limit_ms
        assert record.server_now_ms == now


@pytest.mark.unit
class TestDetectWinner:
    def test_no_winner_while_both_alive(self):
        assert detect_winner(make_record()) is None

    def test_challenger_wins(self):
        verdict = detect_winner(make_record(opponent_hp=0))
        assert verdict == BattleVerdict(winner_monster_id=CHALLENGER, loser_monster_id=OPPONENT)

    def test_opponent_wins(self):
        verdict = detect_winner(make_record(challenger_hp=0))
        assert verdict == BattleVerdict(winner_monster_id=OPPONENT, loser_monster_id=CHALLENGER)

    def test_one_hp_is_alive(self):
        """Only exactly zero HP loses."""
        assert detect_winner(make_record(challenger_hp=1, opponent_hp=1)) is None
