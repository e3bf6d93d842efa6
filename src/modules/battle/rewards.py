"""
Battle Rewards
==============

Purpose
-------
Roll the winner's item rewards for a finished battle and credit them to
the winner's inventory.

Rules
-----
- The reward bracket is chosen by the winner's monster level
- Items roll in the fixed order food -> skill -> mutagen
- A roll is skipped when `rng.random() > entry.chance`
- The item is drawn uniformly from its pool; the skill pool is COMMON,
  non-base skills only
- Quantity is `rng.randint(range.min, range.max)`

Design Notes
------------
- Every item type runs in its own SAVEPOINT (`session.begin_nested()`), so
  a failure on one roll rolls back only that roll; the others and the
  outer completion transaction are unaffected
- An empty pool is an informational skip, not an error
- Randomness is injected (`random.Random`) for reproducible tests
"""

from __future__ import annotations

import random
from typing import Any, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.logging.logger import get_logger
from src.database.models.catalog.item import Food, Mutagen
from src.database.models.catalog.skill import Skill
from src.database.models.enums import InventoryItemType, SkillRarity
from src.modules.battle.ledger import add_inventory_item
from src.modules.battle.record import GrantedItem, RewardGrant
from src.modules.rules.schema import BattleRules, RewardEntry

logger = get_logger(__name__)

REWARD_ORDER = (
    InventoryItemType.FOOD,
    InventoryItemType.SKILL,
    InventoryItemType.MUTAGEN,
)


async def _load_pool(session: AsyncSession, item_type: InventoryItemType) -> Sequence[Any]:
    if item_type == InventoryItemType.FOOD:
        stmt = select(Food.id, Food.name).order_by(Food.id)
    elif item_type == InventoryItemType.MUTAGEN:
        stmt = select(Mutagen.id, Mutagen.name).order_by(Mutagen.id)
    else:
        stmt = select(Skill.id, Skill.name).where(
            Skill.rarity == SkillRarity.COMMON,
            Skill.is_base.is_(False),
        ).order_by(Skill.id)
    return (await session.execute(stmt)).all()


class RewardRoller:
    """Rolls and credits winner rewards inside the caller's transaction."""

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random()

    async def grant(
        self,
        session: AsyncSession,
        *,
        battle_id: int,
        user_id: str,
        level: int,
        rules: BattleRules,
        grant: RewardGrant,
    ) -> RewardGrant:
        bracket = rules.reward.for_level(level)
        if bracket is None:
            logger.warning(
                "No reward bracket for winner level",
                extra={"battle_id": battle_id, "level": level},
            )
            return grant

        for item_type in REWARD_ORDER:
            entry = bracket.entry_for(item_type)
            if entry is None:
                continue

            try:
                item = await self._roll_one(session, user_id, item_type, entry)
            except SQLAlchemyError as exc:
                logger.warning(
                    "Reward roll failed; skipping item type",
                    extra={
                        "battle_id": battle_id,
                        "user_id": user_id,
                        "item_type": item_type.value,
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                )
                continue

            if item is None:
                continue

            setattr(grant, item_type.value.lower(), item)
            logger.info(
                "Reward granted",
                extra={
                    "battle_id": battle_id,
                    "user_id": user_id,
                    "item_type": item_type.value,
                    "item_id": item.id,
                    "quantity": item.quantity,
                },
            )

        return grant

    async def _roll_one(
        self,
        session: AsyncSession,
        user_id: str,
        item_type: InventoryItemType,
        entry: RewardEntry,
    ) -> Optional[GrantedItem]:
        if self._rng.random() > entry.chance:
            return None

        async with session.begin_nested():
            pool = await _load_pool(session, item_type)
            if not pool:
                logger.info("Reward pool empty", extra={"item_type": item_type.value})
                return None

            item_id, name = self._rng.choice(list(pool))
            quantity = self._rng.randint(entry.range.min, entry.range.max)
            await add_inventory_item(session, user_id, item_type, item_id, quantity)

        return GrantedItem(id=item_id, name=name, quantity=quantity)
