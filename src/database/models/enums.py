"""
Database Model Enums
====================

Type-safe constants for categorical columns. Stored as their string values
(non-native enums) so the schema stays portable across PostgreSQL versions.
"""

from __future__ import annotations

import enum


class BattleStatus(str, enum.Enum):
    """
    Lifecycle of a durable battle row.

    PENDING/ACCEPTED precede the live record; FINISHED is written once by
    the completion pipeline.
    """

    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    FINISHED = "FINISHED"


class SkillType(str, enum.Enum):
    ATTACK = "ATTACK"
    DEFENSE = "DEFENSE"


class SkillRarity(str, enum.Enum):
    COMMON = "COMMON"
    UNCOMMON = "UNCOMMON"
    RARE = "RARE"
    EPIC = "EPIC"
    LEGENDARY = "LEGENDARY"


class InventoryItemType(str, enum.Enum):
    """Kinds of stackable items a user can hold."""

    FOOD = "FOOD"
    MUTAGEN = "MUTAGEN"
    SKILL = "SKILL"


class BattleAction(str, enum.Enum):
    """Action kind recorded in battle log entries."""

    ATTACK = "ATTACK"
    DEFENSE = "DEFENSE"
    PASS = "PASS"
