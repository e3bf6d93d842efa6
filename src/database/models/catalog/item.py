"""
Reward item definitions. Pure schema only.
"""

from __future__ import annotations

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, IdMixin


class Food(Base, IdMixin):
    __tablename__ = "foods"

    name: Mapped[str] = mapped_column(String(100), nullable=False)


class Mutagen(Base, IdMixin):
    __tablename__ = "mutagens"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
