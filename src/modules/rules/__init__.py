"""
Rules module: validated balance configuration for the battle engine.
"""

from src.modules.rules.schema import (
    BattleRules,
    BattleSettings,
    LevelRewardRule,
    MonsterLevel,
    RewardEntry,
    StaminaRegen,
)
from src.modules.rules.service import RulesService

__all__ = [
    "BattleRules",
    "BattleSettings",
    "LevelRewardRule",
    "MonsterLevel",
    "RewardEntry",
    "RulesService",
    "StaminaRegen",
]
