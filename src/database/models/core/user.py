from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import CheckConstraint, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.core.database.base import Base, TimestampMixin

if TYPE_CHECKING:
    from ..economy.inventory import UserInventory
    from .monster import Monster


class User(Base, TimestampMixin):
    """
    Player account as seen by the arena.

    Fields (schema only):
    - id: external user id (uuid string)
    - energy: battle energy pool, clamped to [0, 1000]
    - last_energy_update: last time energy was changed
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("energy >= 0 AND energy <= 1000", name="energy_range"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)

    energy: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1000,
    )

    last_energy_update: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    monsters: Mapped[List["Monster"]] = relationship(
        "Monster",
        back_populates="user",
    )

    inventory: Mapped[List["UserInventory"]] = relationship(
        "UserInventory",
        back_populates="user",
    )
