"""
Unit tests for the battle rules schema, RulesService and TTLCache.
"""

from __future__ import annotations

import copy
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from src.core.cache.ttl_cache import TTLCache
from src.database.models.enums import InventoryItemType
from src.modules.rules.schema import DEFAULT_RULES, BattleRules
from src.modules.rules.service import RulesService

CONFIG_DIR = Path(__file__).resolve().parents[2] / "config"


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _config_with(mocker, rules_doc):
    config = mocker.MagicMock()
    config.get = mocker.MagicMock(
        side_effect=lambda key, default=None: rules_doc if key == "rules" else default
    )
    config.reload = mocker.AsyncMock()
    return config


@pytest.mark.unit
class TestBattleRulesSchema:
    def test_defaults(self, rules):
        """Built-in defaults carry the documented balance numbers."""
        assert rules.battle.turn_time_limit_ms == 15_000
        assert rules.battle.grace_ms == 250
        assert rules.battle.stamina_regen.attack == 1
        assert rules.battle.stamina_regen.defense == 2
        assert rules.battle.stamina_regen.pass_ == 3
        assert rules.reward.battle_exp.win_exp == 30
        assert rules.reward.battle_exp.lose_exp == 15

    def test_shipped_yaml_is_valid(self):
        """config/battle.yaml validates and matches the built-in defaults."""
        with (CONFIG_DIR / "battle.yaml").open("r", encoding="utf-8") as handle:
            document = yaml.safe_load(handle)

        rules = BattleRules.model_validate(document["rules"])

        assert rules == BattleRules.default()

    def test_reward_bracket_lookup(self, rules):
        bracket = rules.reward.for_level(7)

        assert bracket.level.min == 6
        assert bracket.entry_for(InventoryItemType.FOOD).range.min == 2
        assert rules.reward.for_level(99) is None

    def test_overlapping_brackets_rejected(self):
        """Two reward brackets may not share a level."""
        doc = copy.deepcopy(DEFAULT_RULES)
        doc["reward"]["levels"][1]["level"] = {"min": 5, "max": 10}

        with pytest.raises(ValidationError):
            BattleRules.model_validate(doc)

    def test_inverted_range_rejected(self):
        doc = copy.deepcopy(DEFAULT_RULES)
        doc["reward"]["levels"][0]["rewards"][0]["range"] = {"min": 3, "max": 1}

        with pytest.raises(ValidationError):
            BattleRules.model_validate(doc)

    def test_level_table_must_be_monotonic(self):
        doc = copy.deepcopy(DEFAULT_RULES)
        doc["monster_levels"][3]["exp"] = 1

        with pytest.raises(ValidationError):
            BattleRules.model_validate(doc)

    def test_chance_out_of_bounds_rejected(self):
        doc = copy.deepcopy(DEFAULT_RULES)
        doc["reward"]["levels"][0]["rewards"][1]["chance"] = 1.5

        with pytest.raises(ValidationError):
            BattleRules.model_validate(doc)

    def test_level_row(self, rules):
        assert rules.level_row(2).exp == 30
        assert rules.level_row(21) is None


@pytest.mark.unit
class TestRulesService:
    def test_loads_from_configuration(self, mocker):
        """A valid rules section is used as-is."""
        doc = copy.deepcopy(DEFAULT_RULES)
        doc["battle"] = {"turn_time_limit_ms": 9000}
        service = RulesService(cache=TTLCache(60), config_manager=_config_with(mocker, doc))

        assert service.get_rules().battle.turn_time_limit_ms == 9000

    def test_missing_section_falls_back(self, mocker):
        service = RulesService(cache=TTLCache(60), config_manager=_config_with(mocker, None))

        assert service.get_rules() == BattleRules.default()

    def test_invalid_section_falls_back(self, mocker):
        """A broken document is rejected as a whole."""
        doc = copy.deepcopy(DEFAULT_RULES)
        doc["battle"] = {"grace_ms": -1}
        service = RulesService(cache=TTLCache(60), config_manager=_config_with(mocker, doc))

        assert service.get_rules().battle.grace_ms == 250

    def test_rules_are_cached(self, mocker):
        """Configuration is read once until the cache expires."""
        config = _config_with(mocker, copy.deepcopy(DEFAULT_RULES))
        service = RulesService(cache=TTLCache(60), config_manager=config)

        first = service.get_rules()
        second = service.get_rules()

        assert first is second
        assert config.get.call_count == 1

    def test_cache_expiry_reloads(self, mocker):
        clock = FakeClock()
        config = _config_with(mocker, copy.deepcopy(DEFAULT_RULES))
        service = RulesService(cache=TTLCache(60, clock=clock), config_manager=config)

        service.get_rules()
        clock.now += 61
        service.get_rules()

        assert config.get.call_count == 2

    def test_invalidate_and_force(self, mocker):
        config = _config_with(mocker, copy.deepcopy(DEFAULT_RULES))
        service = RulesService(cache=TTLCache(60), config_manager=config)

        service.get_rules()
        service.invalidate()
        service.get_rules()
        service.get_rules(force=True)

        assert config.get.call_count == 3

    async def test_refresh_reloads_yaml(self, mocker):
        """refresh() reloads the config source and rebuilds the rules."""
        config = _config_with(mocker, copy.deepcopy(DEFAULT_RULES))
        service = RulesService(cache=TTLCache(60), config_manager=config)
        service.get_rules()

        rules = await service.refresh()

        config.reload.assert_awaited_once()
        assert rules == BattleRules.default()
        assert config.get.call_count == 2


@pytest.mark.unit
class TestTTLCache:
    def test_hit_and_miss(self):
        cache = TTLCache(10)
        cache.set("a", 1)

        assert cache.get("a") == 1
        assert cache.get("b", "fallback") == "fallback"
        assert cache.metrics.hits == 1
        assert cache.metrics.misses == 1

    def test_expiry(self):
        clock = FakeClock()
        cache = TTLCache(10, clock=clock)
        cache.set("a", 1)

        clock.now += 10
        assert cache.get("a") is None
        assert cache.metrics.expirations == 1
        assert len(cache) == 0

    def test_per_entry_ttl(self):
        clock = FakeClock()
        cache = TTLCache(10, clock=clock)
        cache.set("short", 1, ttl_seconds=1)
        cache.set("long", 2)

        clock.now += 5
        assert "short" not in cache
        assert "long" in cache

    def test_invalidate_all(self):
        cache = TTLCache(10)
        cache.set("a", 1)
        cache.set("b", 2)

        cache.invalidate()

        assert len(cache) == 0
        assert cache.metrics.invalidations == 2

    def test_rejects_non_positive_ttl(self):
        with pytest.raises(ValueError):
            TTLCache(0)
