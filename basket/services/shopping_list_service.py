from __future__ import annotations

import logging
import uuid
from typing import Any, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from basket.db.database import atomic
from basket.db.models import ShoppingListItem, User
from basket.errors import ConflictError, ErrorCode, NotFoundError
from basket.models.shopping import AddItemRequest, UpdateItemRequest, validate_actions
from basket.services.action_executor import action_executor, find_item_by_name, list_group_items
from basket.services.membership import require_member

logger = logging.getLogger(__name__)


class ShoppingListService:
    """Item CRUD scoped to one group. Every call requires membership in that group."""

    async def get_items(
        self, group_id: uuid.UUID, user: User, db: AsyncSession
    ) -> list[ShoppingListItem]:
        await require_member(db, user.id, group_id)
        return await list_group_items(db, group_id)

    async def execute_actions(
        self,
        actions: Sequence[Any],
        group_id: uuid.UUID,
        user: User,
        db: AsyncSession,
    ) -> list[ShoppingListItem]:
        # Reject malformed actions before any transaction opens
        typed = validate_actions(actions)
        await require_member(db, user.id, group_id)
        return await action_executor.execute(typed, group_id, user.id, db)

    async def add_item(
        self, group_id: uuid.UUID, data: AddItemRequest, user: User, db: AsyncSession
    ) -> ShoppingListItem:
        await require_member(db, user.id, group_id)
        try:
            async with atomic(db):
                if await find_item_by_name(db, group_id, data.name) is not None:
                    raise ConflictError(
                        ErrorCode.ITEM_ALREADY_EXISTS,
                        f"Item \"{data.name}\" already exists in this group's shopping list",
                    )
                item = ShoppingListItem(
                    name=data.name,
                    amount=data.amount,
                    group_id=group_id,
                    created_by_id=user.id,
                )
                db.add(item)
        except IntegrityError as e:
            raise ConflictError(
                ErrorCode.ITEM_ALREADY_EXISTS,
                f"Item \"{data.name}\" already exists in this group's shopping list",
            ) from e
        return item

    async def update_item(
        self,
        group_id: uuid.UUID,
        item_id: uuid.UUID,
        data: UpdateItemRequest,
        user: User,
        db: AsyncSession,
    ) -> ShoppingListItem:
        await require_member(db, user.id, group_id)
        async with atomic(db):
            item = await self._require_item(db, group_id, item_id)
            item.amount = data.amount
        return item

    async def toggle_complete(
        self, group_id: uuid.UUID, item_id: uuid.UUID, user: User, db: AsyncSession
    ) -> ShoppingListItem:
        await require_member(db, user.id, group_id)
        async with atomic(db):
            item = await self._require_item(db, group_id, item_id, lock=True)
            item.is_completed = not item.is_completed
        return item

    async def delete_item(
        self, group_id: uuid.UUID, item_id: uuid.UUID, user: User, db: AsyncSession
    ) -> ShoppingListItem:
        await require_member(db, user.id, group_id)
        async with atomic(db):
            item = await self._require_item(db, group_id, item_id)
            await db.delete(item)
        return item

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _require_item(
        self,
        db: AsyncSession,
        group_id: uuid.UUID,
        item_id: uuid.UUID,
        lock: bool = False,
    ) -> ShoppingListItem:
        query = select(ShoppingListItem).where(
            ShoppingListItem.id == item_id, ShoppingListItem.group_id == group_id
        )
        if lock:
            query = query.with_for_update()
        result = await db.execute(query)
        item: Optional[ShoppingListItem] = result.scalar_one_or_none()
        if item is None:
            raise NotFoundError(ErrorCode.ITEM_NOT_FOUND)
        return item


shopping_list_service = ShoppingListService()
