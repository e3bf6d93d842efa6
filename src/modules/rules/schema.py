"""
Battle rules schema.

Purpose
-------
Typed, validated view of the balance configuration (`config/battle.yaml`):
turn timing, stamina regeneration, start/finish costs, experience awards,
level-up table and per-level reward tables.

Design Notes
------------
- Pydantic v2 models, frozen; the resolver and completion pipeline only read
- Cross-field checks (overlapping reward brackets, monotonic level table)
  run as model validators so a bad YAML edit is rejected as a whole
- `BattleRules.default()` is the hard-coded fallback used when the YAML is
  missing or invalid
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.database.models.enums import InventoryItemType


class _RulesModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


# ============================================================================
# Battle timing & economy
# ============================================================================


class StaminaRegen(_RulesModel):
    """Stamina granted per turn depending on which branch executed."""

    attack: int = Field(default=1, ge=0)
    defense: int = Field(default=2, ge=0)
    pass_: int = Field(default=3, ge=0, alias="pass")

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)


class BattleSettings(_RulesModel):
    turn_time_limit_ms: int = Field(default=15_000, gt=0)
    grace_ms: int = Field(default=250, ge=0)
    first_turn_extra_ms: int = Field(default=15_000, ge=0)
    ttl_battle_sec: int = Field(default=180, gt=0)
    satiety_cost: int = Field(default=25, ge=0)
    energy_cost: int = Field(default=125, ge=0)
    energy_max: int = Field(default=1000, gt=0)
    max_evasion_chance: float = Field(default=0.95, ge=0.0, le=1.0)
    stamina_regen: StaminaRegen = Field(default_factory=StaminaRegen)


# ============================================================================
# Rewards
# ============================================================================


class RewardRange(_RulesModel):
    min: int = Field(ge=0)
    max: int = Field(ge=0)

    @model_validator(mode="after")
    def _check_bounds(self) -> RewardRange:
        if self.max < self.min:
            raise ValueError("reward range: max must be >= min")
        return self


class RewardEntry(_RulesModel):
    type: InventoryItemType
    chance: float = Field(ge=0.0, le=1.0)
    range: RewardRange


class LevelRange(_RulesModel):
    min: int = Field(gt=0)
    max: int = Field(gt=0)

    @model_validator(mode="after")
    def _check_bounds(self) -> LevelRange:
        if self.max < self.min:
            raise ValueError("level range: max must be >= min")
        return self

    def contains(self, level: int) -> bool:
        return self.min <= level <= self.max


class LevelRewardRule(_RulesModel):
    level: LevelRange
    rewards: List[RewardEntry] = Field(min_length=1)

    def entry_for(self, item_type: InventoryItemType) -> Optional[RewardEntry]:
        return next((entry for entry in self.rewards if entry.type == item_type), None)


class ExperienceRewards(_RulesModel):
    win_exp: int = Field(default=30, ge=0)
    lose_exp: int = Field(default=15, ge=0)


class RewardSettings(_RulesModel):
    battle_exp: ExperienceRewards = Field(default_factory=ExperienceRewards)
    levels: List[LevelRewardRule] = Field(min_length=1)

    @model_validator(mode="after")
    def _check_no_overlap(self) -> RewardSettings:
        ordered = sorted(self.levels, key=lambda rule: rule.level.min)
        for previous, current in zip(ordered, ordered[1:]):
            if current.level.min <= previous.level.max:
                raise ValueError(
                    f"overlapping reward level ranges: "
                    f"[{previous.level.min},{previous.level.max}] overlaps "
                    f"[{current.level.min},{current.level.max}]"
                )
        return self

    def for_level(self, level: int) -> Optional[LevelRewardRule]:
        return next((rule for rule in self.levels if rule.level.contains(level)), None)


# ============================================================================
# Level-up table
# ============================================================================


class MonsterLevel(_RulesModel):
    """`exp` is the experience needed to go from `level - 1` to `level`."""

    level: int = Field(gt=0)
    exp: int = Field(ge=0)
    modifier: float = Field(gt=0)


# ============================================================================
# Root
# ============================================================================


class BattleRules(_RulesModel):
    version: str = Field(min_length=1)
    battle: BattleSettings = Field(default_factory=BattleSettings)
    reward: RewardSettings
    monster_levels: List[MonsterLevel] = Field(min_length=1)

    @model_validator(mode="after")
    def _check_level_table(self) -> BattleRules:
        rows = sorted(self.monster_levels, key=lambda row: row.level)
        for previous, current in zip(rows, rows[1:]):
            if current.level <= previous.level:
                raise ValueError("monster_levels.level must strictly increase")
            if current.exp < previous.exp:
                raise ValueError("monster_levels.exp must be non-decreasing")
        return self

    def level_row(self, level: int) -> Optional[MonsterLevel]:
        return next((row for row in self.monster_levels if row.level == level), None)

    @classmethod
    def default(cls) -> BattleRules:
        return cls.model_validate(DEFAULT_RULES)


_LEVEL_TABLE = [
    (1, 0, 1.0),
    (2, 30, 1.15),
    (3, 60, 1.3),
    (4, 100, 1.45),
    (5, 150, 1.6),
    (6, 210, 1.75),
    (7, 280, 1.9),
    (8, 360, 2.05),
    (9, 450, 2.2),
    (10, 550, 2.35),
    (11, 700, 2.5),
    (12, 850, 2.65),
    (13, 1050, 2.8),
    (14, 1300, 2.95),
    (15, 1600, 3.1),
    (16, 2000, 3.25),
    (17, 2500, 3.4),
    (18, 3100, 3.55),
    (19, 3800, 3.7),
    (20, 4600, 3.85),
]


def _reward_bracket(
    level_min: int,
    level_max: int,
    food: tuple[float, int, int],
    mutagen: tuple[float, int, int],
    skill: tuple[float, int, int],
) -> dict:
    def entry(item_type: InventoryItemType, spec: tuple[float, int, int]) -> dict:
        chance, low, high = spec
        return {"type": item_type.value, "chance": chance, "range": {"min": low, "max": high}}

    return {
        "level": {"min": level_min, "max": level_max},
        "rewards": [
            entry(InventoryItemType.FOOD, food),
            entry(InventoryItemType.MUTAGEN, mutagen),
            entry(InventoryItemType.SKILL, skill),
        ],
    }


DEFAULT_RULES: dict = {
    "version": "1.0.0",
    "battle": {},
    "reward": {
        "battle_exp": {"win_exp": 30, "lose_exp": 15},
        "levels": [
            _reward_bracket(1, 5, (1.0, 1, 2), (0.25, 1, 1), (0.1, 1, 1)),
            _reward_bracket(6, 10, (1.0, 2, 3), (0.35, 1, 1), (0.15, 1, 1)),
            _reward_bracket(11, 20, (1.0, 3, 3), (0.5, 1, 2), (0.25, 1, 1)),
        ],
    },
    "monster_levels": [
        {"level": level, "exp": exp, "modifier": modifier} for level, exp, modifier in _LEVEL_TABLE
    ],
}
