"""
Battle Ledger
=============

Purpose
-------
Durable write helpers used by battle creation and completion. Each helper
runs inside a session the caller owns; none of them commit.

Responsibilities
----------------
- Finalize the `monster_battles` row exactly once (conditional UPDATE)
- Drain satiety on both monsters (floored at 0)
- Debit battle energy from users (clamped to the energy range)
- Upsert inventory stacks (add to quantity, or insert a new row)
- Mark a battle row REJECTED when its record cannot be materialized

Design Notes
------------
- The FINISHED transition is guarded by `status <> FINISHED`; a zero
  rowcount means another worker already finalized the battle
- Satiety and energy are adjusted with single UPDATE statements so two
  concurrent completions for different battles cannot lose an update
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database.base import utc_now
from src.core.logging.logger import get_logger
from src.database.models.combat.monster_battle import MonsterBattle
from src.database.models.core.monster import Monster
from src.database.models.core.user import User
from src.database.models.economy.inventory import UserInventory
from src.database.models.enums import BattleStatus, InventoryItemType

logger = get_logger(__name__)

_ITEM_COLUMN = {
    InventoryItemType.FOOD: UserInventory.food_id,
    InventoryItemType.MUTAGEN: UserInventory.mutagen_id,
    InventoryItemType.SKILL: UserInventory.skill_id,
}

_ITEM_FIELD = {
    InventoryItemType.FOOD: "food_id",
    InventoryItemType.MUTAGEN: "mutagen_id",
    InventoryItemType.SKILL: "skill_id",
}


async def finalize_battle(
    session: AsyncSession,
    battle_id: int,
    winner_monster_id: int,
    log: List[dict[str, Any]],
) -> bool:
    """
    Transition the battle row to FINISHED.

    Returns False when the row was already FINISHED (or does not exist).
    """
    result = await session.execute(
        update(MonsterBattle)
        .where(MonsterBattle.id == battle_id, MonsterBattle.status != BattleStatus.FINISHED)
        .values(status=BattleStatus.FINISHED, winner_monster_id=winner_monster_id, log=log)
    )
    return result.rowcount > 0


async def reject_battle(session: AsyncSession, battle_id: int) -> None:
    await session.execute(
        update(MonsterBattle)
        .where(MonsterBattle.id == battle_id)
        .values(status=BattleStatus.REJECTED)
    )


async def drain_satiety(session: AsyncSession, monster_ids: Iterable[int], amount: int) -> None:
    """Subtract `amount` satiety from each monster, never going below 0."""
    await session.execute(
        update(Monster)
        .where(Monster.id.in_(list(monster_ids)))
        .values(satiety=func.greatest(Monster.satiety - amount, 0))
    )


async def debit_energy(
    session: AsyncSession,
    user_ids: Iterable[str],
    amount: int,
    energy_max: int,
    now: Optional[datetime] = None,
) -> None:
    """Subtract `amount` energy from each user, clamped to `[0, energy_max]`."""
    await session.execute(
        update(User)
        .where(User.id.in_(list(user_ids)))
        .values(
            energy=func.least(func.greatest(User.energy - amount, 0), energy_max),
            last_energy_update=now or utc_now(),
        )
    )


async def add_inventory_item(
    session: AsyncSession,
    user_id: str,
    item_type: InventoryItemType,
    item_id: int,
    quantity: int,
) -> UserInventory:
    """Add `quantity` to the user's stack of this item, creating it if absent."""
    column = _ITEM_COLUMN[item_type]
    stack = (
        await session.execute(
            select(UserInventory)
            .where(
                UserInventory.user_id == user_id,
                UserInventory.type == item_type,
                column == item_id,
            )
            .with_for_update()
        )
    ).scalar_one_or_none()

    if stack is not None:
        stack.quantity += quantity
    else:
        stack = UserInventory(
            user_id=user_id,
            type=item_type,
            quantity=quantity,
            **{_ITEM_FIELD[item_type]: item_id},
        )
        session.add(stack)

    await session.flush()
    logger.debug(
        "Inventory stack updated",
        extra={
            "user_id": user_id,
            "item_type": item_type.value,
            "item_id": item_id,
            "added": quantity,
            "quantity": stack.quantity,
        },
    )
    return stack
