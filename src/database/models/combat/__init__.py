from .monster_battle import MonsterBattle

__all__ = ["MonsterBattle"]
