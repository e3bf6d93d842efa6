from __future__ import annotations

from typing import TYPE_CHECKING, List

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.core.database.base import Base, IdMixin, TimestampMixin

if TYPE_CHECKING:
    from ..catalog.skill import Skill
    from .user import User


class Monster(Base, IdMixin, TimestampMixin):
    """
    User-owned monster.

    Fields (schema only):
    - user_id: owner (FK to users.id)
    - name, level, experience_points
    - health_points, stamina, strength, defense, evasion: base combat stats
    - satiety: hunger resource spent by dueling
    """

    __tablename__ = "monsters"
    __table_args__ = (
        CheckConstraint("satiety >= 0", name="satiety_non_negative"),
        Index("ix_monsters_user_id", "user_id"),
    )

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    experience_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    health_points: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    stamina: Mapped[int] = mapped_column(Integer, nullable=False, default=6)
    strength: Mapped[int] = mapped_column(Integer, nullable=False, default=12)
    defense: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    evasion: Mapped[int] = mapped_column(Integer, nullable=False, default=5)

    satiety: Mapped[int] = mapped_column(Integer, nullable=False, default=50)

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="monsters")

    attacks: Mapped[List["MonsterAttack"]] = relationship(
        "MonsterAttack",
        back_populates="monster",
        cascade="all, delete-orphan",
    )

    defenses: Mapped[List["MonsterDefense"]] = relationship(
        "MonsterDefense",
        back_populates="monster",
        cascade="all, delete-orphan",
    )


class MonsterAttack(Base, IdMixin):
    """Attack skill equipped by a monster."""

    __tablename__ = "monster_attacks"
    __table_args__ = (UniqueConstraint("monster_id", "skill_id", name="uq_monster_attack"),)

    monster_id: Mapped[int] = mapped_column(
        ForeignKey("monsters.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    skill_id: Mapped[int] = mapped_column(
        ForeignKey("skills.id", ondelete="CASCADE"),
        nullable=False,
    )

    monster: Mapped["Monster"] = relationship("Monster", back_populates="attacks")
    skill: Mapped["Skill"] = relationship("Skill")


class MonsterDefense(Base, IdMixin):
    """Defense skill equipped by a monster."""

    __tablename__ = "monster_defenses"
    __table_args__ = (UniqueConstraint("monster_id", "skill_id", name="uq_monster_defense"),)

    monster_id: Mapped[int] = mapped_column(
        ForeignKey("monsters.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    skill_id: Mapped[int] = mapped_column(
        ForeignKey("skills.id", ondelete="CASCADE"),
        nullable=False,
    )

    monster: Mapped["Monster"] = relationship("Monster", back_populates="defenses")
    skill: Mapped["Skill"] = relationship("Skill")
