"""
Unit tests for the battle record serializer.

Focus is on the storage contract (flat string map, empty-string optionals)
and on rejection of corrupted payloads; nothing may be defaulted.
"""

from __future__ import annotations

import json

import pytest

from src.core.exceptions import BattleRecordCorruptedError
from src.database.models.enums import BattleAction
from src.modules.battle import serializer
from src.modules.battle.record import (
    ActiveDefense,
    BattleLogEntry,
    GrantedItem,
    LastAction,
    RewardGrant,
)
from tests.builders import CHALLENGER, OPPONENT, SHELL, make_record


def _finished_record():
    record = make_record(
        opponent_hp=0,
        winner_monster_id=CHALLENGER,
        chat_id="-100200300",
        challenger_socket_id="sid-a",
        challenger_ready=True,
        active_defense=ActiveDefense.from_skill(OPPONENT, SHELL),
        last_action_log=LastAction(monster_id=CHALLENGER, action_name="Bite", damage=14, stamina=1),
        challenger_reward=RewardGrant(exp=30, food=GrantedItem(id=3, name="Berry", quantity=2)),
        opponent_reward=RewardGrant(exp=15),
    )
    record.logs.append(
        BattleLogEntry(
            from_monster_id=CHALLENGER,
            to_monster_id=OPPONENT,
            action=BattleAction.ATTACK,
            name="Bite",
            modifier=1.2,
            damage=14,
            block=0,
            effect=None,
            cooldown=0,
            sp_cost=18,
            turn_skip=0,
            timestamp="2023-11-14T22:13:20+00:00",
        )
    )
    return record


@pytest.mark.unit
class TestEncode:
    def test_flat_string_map(self):
        """Every stored value is a string; the schema version is stamped."""
        flat = serializer.encode(make_record())

        assert flat["schema_version"] == "1"
        assert all(isinstance(value, str) for value in flat.values())

    def test_scalar_encoding(self):
        """Ints are decimal, bools are 1/0, unset optionals are empty."""
        flat = serializer.encode(make_record(challenger_ready=True))

        assert flat["challenger_hp"] == "100"
        assert flat["challenger_ready"] == "1"
        assert flat["opponent_ready"] == "0"
        assert flat["winner_monster_id"] == ""
        assert flat["chat_id"] == ""
        assert flat["active_defense"] == ""
        assert flat["challenger_reward"] == ""

    def test_nested_objects_are_json(self):
        flat = serializer.encode(make_record())

        assert json.loads(flat["challenger_stats"])["strength"] == 12
        assert [skill["id"] for skill in json.loads(flat["challenger_attacks"])] == [11, 12]
        assert json.loads(flat["logs"]) == []


@pytest.mark.unit
class TestDecode:
    def test_full_record_survives_storage(self):
        """A finished record with every optional part decodes to an equal record."""
        record = _finished_record()

        restored = serializer.loads(serializer.dumps(record), battle_id=record.battle_id)

        assert restored == record

    def test_unset_optionals_decode_to_none(self):
        restored = serializer.loads(serializer.dumps(make_record()))

        assert restored.winner_monster_id is None
        assert restored.chat_id is None
        assert restored.challenger_socket_id is None
        assert restored.active_defense is None
        assert restored.challenger_reward is None


@pytest.mark.unit
class TestCorruption:
    @staticmethod
    def _flat(**changes):
        flat = serializer.encode(make_record())
        for key, value in changes.items():
            if value is None:
                flat.pop(key)
            else:
                flat[key] = value
        return flat

    def test_unknown_schema_version(self):
        with pytest.raises(BattleRecordCorruptedError):
            serializer.decode(self._flat(schema_version="2"))

    def test_missing_required_field(self):
        """Missing fields are never defaulted."""
        with pytest.raises(BattleRecordCorruptedError):
            serializer.decode(self._flat(challenger_hp=None))

    def test_non_integer_field(self):
        with pytest.raises(BattleRecordCorruptedError):
            serializer.decode(self._flat(turn_number="1.5"))

    def test_bad_boolean(self):
        with pytest.raises(BattleRecordCorruptedError):
            serializer.decode(self._flat(opponent_ready="yes"))

    def test_malformed_nested_json(self):
        with pytest.raises(BattleRecordCorruptedError):
            serializer.decode(self._flat(logs="[{"))

    def test_nested_object_missing_key(self):
        with pytest.raises(BattleRecordCorruptedError):
            serializer.decode(self._flat(challenger_stats='{"strength": 1}'))

    def test_unknown_log_effect(self):
        entry = _finished_record().logs[0].to_dict()
        entry["effect"] = "teleported"
        with pytest.raises(BattleRecordCorruptedError):
            serializer.decode(self._flat(logs=json.dumps([entry])))

    def test_turn_owner_must_participate(self):
        with pytest.raises(BattleRecordCorruptedError):
            serializer.decode(self._flat(current_turn_monster_id="99"))

    def test_negative_hp(self):
        with pytest.raises(BattleRecordCorruptedError):
            serializer.decode(self._flat(opponent_hp="-4"))

    def test_stored_value_not_json(self):
        with pytest.raises(BattleRecordCorruptedError):
            serializer.loads("not-json", battle_id=7)

    def test_stored_value_not_flat(self):
        """Nested values in the outer map are rejected."""
        with pytest.raises(BattleRecordCorruptedError) as exc_info:
            serializer.loads(json.dumps({"schema_version": 1}), battle_id=7)

        assert exc_info.value.battle_id == 7
