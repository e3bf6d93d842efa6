from __future__ import annotations

from sqlalchemy import Boolean, Enum as SAEnum, Float, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, IdMixin, TimestampMixin
from ..enums import SkillRarity, SkillType


def _enum_values(enum_cls: type) -> list[str]:
    return [member.value for member in enum_cls]


class Skill(Base, IdMixin, TimestampMixin):
    """
    Attack or defense skill definition.

    Fields (schema only):
    - type: ATTACK or DEFENSE
    - rarity: drop rarity; reward rolls draw from COMMON non-base skills
    - is_base: granted to every new monster, never dropped as a reward
    - strength: attack multiplier applied to the attacker's strength
    - defense: block multiplier applied to the defender's defense
    - evasion: evasion multiplier applied to the defender's evasion
    - energy_cost: stamina spent when the skill executes
    - cooldown: informational, carried into battle logs
    """

    __tablename__ = "skills"
    __table_args__ = (Index("ix_skills_reward_pool", "rarity", "is_base"),)

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    type: Mapped[SkillType] = mapped_column(
        SAEnum(SkillType, native_enum=False, length=20, values_callable=_enum_values),
        nullable=False,
    )

    rarity: Mapped[SkillRarity] = mapped_column(
        SAEnum(SkillRarity, native_enum=False, length=20, values_callable=_enum_values),
        nullable=False,
        default=SkillRarity.COMMON,
    )

    is_base: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    strength: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    defense: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    evasion: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    energy_cost: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cooldown: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
