"""
Database Models Package
========================

SQLAlchemy ORM models for the monster arena, organized by domain.

All models:
- Schema-only, no business logic
- Use Mapped[] syntax with mapped_column()
- Inherit from the shared mixins (IdMixin, TimestampMixin)

Domain Organization:
--------------------
- core: users and monsters (with equipped attacks/defenses)
- catalog: skills, foods, mutagens
- economy: user inventory
- combat: durable battle rows
- enums: shared type-safe enumerations
"""

from src.core.database.base import Base

from .catalog import Food, Mutagen, Skill
from .combat import MonsterBattle
from .core import Monster, MonsterAttack, MonsterDefense, User
from .economy import UserInventory
from .enums import (
    BattleAction,
    BattleStatus,
    InventoryItemType,
    SkillRarity,
    SkillType,
)

__all__ = [
    "Base",
    # Core
    "User",
    "Monster",
    "MonsterAttack",
    "MonsterDefense",
    # Catalog
    "Skill",
    "Food",
    "Mutagen",
    # Economy
    "UserInventory",
    # Combat
    "MonsterBattle",
    # Enums
    "BattleAction",
    "BattleStatus",
    "InventoryItemType",
    "SkillRarity",
    "SkillType",
]
