"""
Battle Record Serializer
========================

Purpose
-------
Versioned encode/decode of `BattleRecord` to the flat string map stored in
Redis.

Storage Format (schema_version 1)
---------------------------------
- Flat `dict[str, str]`
- Integers as decimal strings, booleans as "1" / "0"
- Optional scalars (socket ids, chat id, winner, timing) as "" when unset
- Nested objects (stats, skill lists, logs, active defense, last action,
  rewards) as JSON sub-strings; optional ones as "" when unset
- The flat map is stored as a single JSON string so one `SET` replaces the
  whole record atomically

Error Handling
--------------
Any unknown schema version, missing required field, non-integer numeric
field, bad boolean or malformed nested JSON raises
`BattleRecordCorruptedError`. Nothing is defaulted.
"""

from __future__ import annotations

import json
import re
from typing import Any, Callable, Dict, List, Optional, TypeVar

from src.core.exceptions import BattleRecordCorruptedError
from src.modules.battle.record import (
    ActiveDefense,
    BattleLogEntry,
    BattleRecord,
    LastAction,
    MonsterStats,
    RewardGrant,
    SkillSnapshot,
)

SCHEMA_VERSION = 1
SCHEMA_VERSION_FIELD = "schema_version"

_INT_RE = re.compile(r"^-?\d+$")

_INT_FIELDS = (
    "battle_id",
    "challenger_monster_id",
    "opponent_monster_id",
    "challenger_monster_level",
    "opponent_monster_level",
    "challenger_hp",
    "opponent_hp",
    "challenger_stamina",
    "opponent_stamina",
    "current_turn_monster_id",
    "turn_number",
    "turn_time_limit_ms",
    "server_now_ms",
    "version",
)
_STR_FIELDS = ("challenger_user_id", "opponent_user_id")
_OPTIONAL_INT_FIELDS = ("turn_start_time_ms", "turn_ends_at_ms", "grace_ms", "winner_monster_id")
_OPTIONAL_STR_FIELDS = ("challenger_socket_id", "opponent_socket_id", "chat_id")
_BOOL_FIELDS = ("challenger_ready", "opponent_ready")
_STATS_FIELDS = ("challenger_stats", "opponent_stats")
_SKILL_LIST_FIELDS = (
    "challenger_attacks",
    "challenger_defenses",
    "opponent_attacks",
    "opponent_defenses",
)
_REWARD_FIELDS = ("challenger_reward", "opponent_reward")

T = TypeVar("T")


def _dump_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


# ============================================================================
# Encode
# ============================================================================


def encode(record: BattleRecord) -> Dict[str, str]:
    """Encode a record into the flat schema_version 1 map."""
    flat: Dict[str, str] = {SCHEMA_VERSION_FIELD: str(SCHEMA_VERSION)}

    for name in _INT_FIELDS:
        flat[name] = str(int(getattr(record, name)))
    for name in _STR_FIELDS:
        flat[name] = str(getattr(record, name))
    for name in _OPTIONAL_INT_FIELDS:
        value = getattr(record, name)
        flat[name] = "" if value is None else str(int(value))
    for name in _OPTIONAL_STR_FIELDS:
        value = getattr(record, name)
        flat[name] = "" if value is None else str(value)
    for name in _BOOL_FIELDS:
        flat[name] = "1" if getattr(record, name) else "0"

    for name in _STATS_FIELDS:
        flat[name] = _dump_json(getattr(record, name).to_dict())
    for name in _SKILL_LIST_FIELDS:
        flat[name] = _dump_json([skill.to_dict() for skill in getattr(record, name)])
    flat["logs"] = _dump_json([entry.to_dict() for entry in record.logs])

    flat["active_defense"] = (
        _dump_json(record.active_defense.to_dict()) if record.active_defense else ""
    )
    flat["last_action_log"] = (
        _dump_json(record.last_action_log.to_dict()) if record.last_action_log else ""
    )
    for name in _REWARD_FIELDS:
        reward = getattr(record, name)
        flat[name] = _dump_json(reward.to_dict()) if reward else ""

    return flat


def dumps(record: BattleRecord) -> str:
    """Encode a record into the single JSON string stored under the battle key."""
    return _dump_json(encode(record))


# ============================================================================
# Decode
# ============================================================================


class _Decoder:
    def __init__(self, flat: Dict[str, str], battle_id: Optional[int]) -> None:
        self._flat = flat
        self._battle_id = battle_id

    def fail(self, reason: str) -> BattleRecordCorruptedError:
        return BattleRecordCorruptedError(reason, battle_id=self._battle_id)

    def raw(self, name: str) -> str:
        if name not in self._flat:
            raise self.fail(f"missing field '{name}'")
        value = self._flat[name]
        if not isinstance(value, str):
            raise self.fail(f"field '{name}' is not a string")
        return value

    def int_(self, name: str) -> int:
        value = self.raw(name)
        if not _INT_RE.match(value):
            raise self.fail(f"field '{name}' is not an integer: {value!r}")
        return int(value)

    def optional_int(self, name: str) -> Optional[int]:
        if self.raw(name) == "":
            return None
        return self.int_(name)

    def optional_str(self, name: str) -> Optional[str]:
        value = self.raw(name)
        return value or None

    def bool_(self, name: str) -> bool:
        value = self.raw(name)
        if value not in ("0", "1"):
            raise self.fail(f"field '{name}' is not a boolean flag: {value!r}")
        return value == "1"

    def json_(self, name: str, build: Callable[[Any], T]) -> T:
        value = self.raw(name)
        try:
            return build(json.loads(value))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            raise self.fail(f"field '{name}' is malformed: {exc}") from exc

    def optional_json(self, name: str, build: Callable[[Any], T]) -> Optional[T]:
        if self.raw(name) == "":
            return None
        return self.json_(name, build)


def _skill_list(data: Any) -> List[SkillSnapshot]:
    if not isinstance(data, list):
        raise TypeError("expected a list of skills")
    return [SkillSnapshot.from_dict(item) for item in data]


def _log_list(data: Any) -> List[BattleLogEntry]:
    if not isinstance(data, list):
        raise TypeError("expected a list of log entries")
    return [BattleLogEntry.from_dict(item) for item in data]


def decode(flat: Dict[str, str], *, battle_id: Optional[int] = None) -> BattleRecord:
    """
    Decode a flat map into a `BattleRecord`.

    Raises
    ------
    BattleRecordCorruptedError
        On any schema violation.
    """
    d = _Decoder(flat, battle_id)

    version = d.raw(SCHEMA_VERSION_FIELD)
    if version != str(SCHEMA_VERSION):
        raise d.fail(f"unsupported schema_version {version!r}")

    ints = {name: d.int_(name) for name in _INT_FIELDS}
    strings = {name: d.raw(name) for name in _STR_FIELDS}
    optional_ints = {name: d.optional_int(name) for name in _OPTIONAL_INT_FIELDS}
    optional_strings = {name: d.optional_str(name) for name in _OPTIONAL_STR_FIELDS}
    flags = {name: d.bool_(name) for name in _BOOL_FIELDS}
    stats = {name: d.json_(name, MonsterStats.from_dict) for name in _STATS_FIELDS}
    skills = {name: d.json_(name, _skill_list) for name in _SKILL_LIST_FIELDS}
    rewards = {name: d.optional_json(name, RewardGrant.from_dict) for name in _REWARD_FIELDS}

    record = BattleRecord(
        **ints,
        **strings,
        **optional_ints,
        **optional_strings,
        **flags,
        **stats,
        **skills,
        **rewards,
        active_defense=d.optional_json("active_defense", ActiveDefense.from_dict),
        logs=d.json_("logs", _log_list),
        last_action_log=d.optional_json("last_action_log", LastAction.from_dict),
    )

    if not record.is_participant(record.current_turn_monster_id):
        raise d.fail("current_turn_monster_id is not a participant")
    if record.winner_monster_id is not None and not record.is_participant(record.winner_monster_id):
        raise d.fail("winner_monster_id is not a participant")
    if min(record.challenger_hp, record.opponent_hp, record.challenger_stamina, record.opponent_stamina) < 0:
        raise d.fail("negative hp or stamina")

    return record


def loads(raw: str, *, battle_id: Optional[int] = None) -> BattleRecord:
    """Decode the stored JSON string. Same errors as `decode`."""
    try:
        flat = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as exc:
        raise BattleRecordCorruptedError(f"stored value is not JSON: {exc}", battle_id=battle_id) from exc

    if not isinstance(flat, dict) or not all(isinstance(value, str) for value in flat.values()):
        raise BattleRecordCorruptedError("stored value is not a flat string map", battle_id=battle_id)

    return decode(flat, battle_id=battle_id)
