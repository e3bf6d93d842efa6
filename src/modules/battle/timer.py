"""
Turn timer and auto-pass policy.

The timer is lazy: nothing ticks in the background. Expiry is evaluated
only when the next action for the battle arrives, and an expired turn is
resolved as a pass (both submitted actions discarded).

A turn is expired when `now_ms > turn_ends_at_ms + grace_ms`; the grace
window absorbs network jitter.
"""

from __future__ import annotations

import time

from src.modules.battle.record import BattleRecord


def now_ms() -> int:
    return int(time.time() * 1000)


def ensure_turn_timing(record: BattleRecord, now: int, default_grace_ms: int) -> None:
    """
    Populate missing timing fields in place.

    - `grace_ms` defaults to `default_grace_ms`
    - `turn_ends_at_ms` is derived from `turn_start_time_ms + turn_time_limit_ms`
      when a start time exists, otherwise the turn starts now
    """
    if record.grace_ms is None:
        record.grace_ms = default_grace_ms

    if record.turn_ends_at_ms is None:
        if record.turn_start_time_ms is not None:
            record.turn_ends_at_ms = record.turn_start_time_ms + record.turn_time_limit_ms
        else:
            record.turn_start_time_ms = now
            record.turn_ends_at_ms = now + record.turn_time_limit_ms


def is_turn_expired(record: BattleRecord, now: int) -> bool:
    """True once the turn budget plus grace has elapsed. Call after `ensure_turn_timing`."""
    if record.turn_ends_at_ms is None:
        return False
    return now > record.turn_ends_at_ms + (record.grace_ms or 0)


def start_next_turn(record: BattleRecord, now: int) -> None:
    """Open a fresh turn window starting at `now`."""
    record.turn_start_time_ms = now
    record.turn_ends_at_ms = now + record.turn_time_limit_ms
    record.server_now_ms = now
