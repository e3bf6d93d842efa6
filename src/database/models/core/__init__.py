"""
Core database models: users and their monsters.

- User
- Monster, MonsterAttack, MonsterDefense
"""

from .monster import Monster, MonsterAttack, MonsterDefense
from .user import User

__all__ = ["Monster", "MonsterAttack", "MonsterDefense", "User"]
