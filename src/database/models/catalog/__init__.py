"""
Catalog models: static game content referenced by monsters and rewards.

- Skill: attack/defense skills
- Food, Mutagen: reward item definitions
"""

from .item import Food, Mutagen
from .skill import Skill

__all__ = ["Food", "Mutagen", "Skill"]
