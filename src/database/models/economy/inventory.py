from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from sqlalchemy import CheckConstraint, Enum as SAEnum, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.core.database.base import Base, IdMixin, TimestampMixin
from ..enums import InventoryItemType

if TYPE_CHECKING:
    from ..core.user import User


class UserInventory(Base, IdMixin, TimestampMixin):
    """
    Stack of one item held by a user.

    Exactly one of food_id / mutagen_id / skill_id is set, matching `type`.
    One row per (user, type, item); grants add to `quantity`.
    """

    __tablename__ = "user_inventory"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="quantity_non_negative"),
        Index(
            "uq_user_inventory_food",
            "user_id",
            "food_id",
            unique=True,
            postgresql_where=text("food_id IS NOT NULL"),
        ),
        Index(
            "uq_user_inventory_mutagen",
            "user_id",
            "mutagen_id",
            unique=True,
            postgresql_where=text("mutagen_id IS NOT NULL"),
        ),
        Index(
            "uq_user_inventory_skill",
            "user_id",
            "skill_id",
            unique=True,
            postgresql_where=text("skill_id IS NOT NULL"),
        ),
    )

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    type: Mapped[InventoryItemType] = mapped_column(
        SAEnum(
            InventoryItemType,
            native_enum=False,
            length=20,
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
    )

    food_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("foods.id", ondelete="CASCADE"), nullable=True
    )
    mutagen_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("mutagens.id", ondelete="CASCADE"), nullable=True
    )
    skill_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("skills.id", ondelete="CASCADE"), nullable=True
    )

    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    user: Mapped["User"] = relationship("User", back_populates="inventory")
