"""
MonsterBattle: durable pre/post record of a duel.
Schema only.
"""

from __future__ import annotations

from typing import Any, List, Optional

from sqlalchemy import Enum as SAEnum, ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from src.core.database.base import Base, IdMixin, TimestampMixin
from ..enums import BattleStatus


class MonsterBattle(Base, IdMixin, TimestampMixin):
    """
    Durable battle row.

    Lifecycle:
    - PENDING / ACCEPTED before the live record exists
    - REJECTED when creation preconditions fail
    - FINISHED exactly once, with the winner and the full turn log
    """

    __tablename__ = "monster_battles"
    __table_args__ = (
        Index("ix_monster_battles_status", "status"),
        Index("ix_monster_battles_challenger", "challenger_monster_id"),
        Index("ix_monster_battles_opponent", "opponent_monster_id"),
    )

    challenger_monster_id: Mapped[int] = mapped_column(
        ForeignKey("monsters.id", ondelete="CASCADE"),
        nullable=False,
    )

    opponent_monster_id: Mapped[int] = mapped_column(
        ForeignKey("monsters.id", ondelete="CASCADE"),
        nullable=False,
    )

    status: Mapped[BattleStatus] = mapped_column(
        SAEnum(
            BattleStatus,
            native_enum=False,
            length=20,
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
        default=BattleStatus.PENDING,
    )

    winner_monster_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("monsters.id", ondelete="SET NULL"),
        nullable=True,
    )

    log: Mapped[List[dict[str, Any]]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        default=list,
    )

    chat_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
