"""
Applies a batch of shopping list actions to one group.

The batch is one transaction: every action applies or none do. Actions run in
input order, so a later action on the same name sees what an earlier one did.
Item names are matched case-insensitively; the first write's casing is kept.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from basket.db.database import atomic
from basket.db.models import ShoppingListItem
from basket.errors import ConflictError, ErrorCode, NotFoundError
from basket.models.shopping import (
    AddAction,
    CompleteAction,
    DeleteAction,
    ShoppingListAction,
    UpdateAction,
    validate_actions,
)

logger = logging.getLogger(__name__)


async def find_item_by_name(
    db: AsyncSession, group_id: uuid.UUID, name: str, lock: bool = False
) -> Optional[ShoppingListItem]:
    query = select(ShoppingListItem).where(
        ShoppingListItem.group_id == group_id,
        func.lower(ShoppingListItem.name) == func.lower(name),
    )
    if lock:
        query = query.with_for_update()
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def list_group_items(db: AsyncSession, group_id: uuid.UUID) -> list[ShoppingListItem]:
    """All items of a group, newest first."""
    result = await db.execute(
        select(ShoppingListItem)
        .where(ShoppingListItem.group_id == group_id)
        .order_by(ShoppingListItem.created_at.desc())
    )
    return list(result.scalars().all())


class ShoppingListActionExecutor:
    async def execute(
        self,
        actions: Sequence[Any],
        group_id: uuid.UUID,
        user_id: uuid.UUID,
        db: AsyncSession,
    ) -> list[ShoppingListItem]:
        """
        Apply ``actions`` to the group's list and return the updated list.

        Raw dicts are validated first, before anything touches the database.
        NotFoundError for update/delete/complete on a missing item aborts the
        whole batch.
        """
        typed = validate_actions(actions)
        try:
            async with atomic(db):
                for action in typed:
                    await self._apply(action, group_id, user_id, db)
                items = await list_group_items(db, group_id)
        except IntegrityError as e:
            logger.warning("Item name conflict in group %s: %s", group_id, e.orig)
            raise ConflictError(ErrorCode.ITEM_ALREADY_EXISTS) from e

        logger.info("Applied %d actions to group %s (%d items)", len(typed), group_id, len(items))
        return items

    async def _apply(
        self,
        action: ShoppingListAction,
        group_id: uuid.UUID,
        user_id: uuid.UUID,
        db: AsyncSession,
    ) -> None:
        # Row lock held for the read-modify-write below
        existing = await find_item_by_name(db, group_id, action.name, lock=True)

        if isinstance(action, AddAction):
            if existing is not None:
                existing.amount = existing.amount + action.amount
            else:
                db.add(
                    ShoppingListItem(
                        name=action.name,
                        amount=action.amount,
                        is_completed=False,
                        group_id=group_id,
                        created_by_id=user_id,
                    )
                )
            # Flush so the next lookup of the same name sees this row
            await db.flush()
            return

        if existing is None:
            raise NotFoundError(ErrorCode.ITEM_NOT_FOUND, f'Item "{action.name}" not found')

        if isinstance(action, UpdateAction):
            existing.amount = action.amount
        elif isinstance(action, DeleteAction):
            await db.delete(existing)
        elif isinstance(action, CompleteAction):
            # Toggle, not mark-done: completing twice restores the original state
            existing.is_completed = not existing.is_completed
        await db.flush()


action_executor = ShoppingListActionExecutor()
