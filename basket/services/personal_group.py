from __future__ import annotations

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from basket.db.database import atomic
from basket.db.models import Group, GroupMember, GroupRole, User
from basket.errors import ErrorCode, NotFoundError

logger = logging.getLogger(__name__)

PERSONAL_GROUP_DESCRIPTION = "Your personal shopping list"


def personal_group_name(user_name: str) -> str:
    return f"{user_name}'s Personal List"


async def ensure_personal_group(user_id: uuid.UUID, db: AsyncSession) -> Group:
    """
    Return the user's personal group, creating it on first need.

    Check, create, add the ADMIN membership and link it back to the user in
    one transaction. The user row is locked first, so two concurrent calls
    can't both find no group and create two.
    """
    async with atomic(db):
        result = await db.execute(select(User).where(User.id == user_id).with_for_update())
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundError(ErrorCode.USER_NOT_FOUND)

        if user.personal_group_id is not None:
            existing = await db.get(Group, user.personal_group_id)
            if existing is not None:
                return existing

        group = Group(
            id=uuid.uuid4(),
            name=personal_group_name(user.name),
            description=PERSONAL_GROUP_DESCRIPTION,
            is_personal=True,
        )
        db.add(group)
        # The group row must exist before anything references it
        await db.flush()
        db.add(GroupMember(user_id=user.id, group_id=group.id, role=GroupRole.ADMIN))
        user.personal_group_id = group.id

    logger.info("Created personal group %s for user %s", group.id, user_id)
    return group
