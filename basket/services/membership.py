"""
Membership lookups shared by the group, list and chat services.

Not being a member and not being an admin are reported with distinct codes:
callers can tell "you can't see this group" from "you can't change it".
"""

from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from basket.db.models import GroupMember, GroupRole
from basket.errors import ErrorCode, ForbiddenError, InvariantViolationError, NotFoundError


async def get_membership(
    db: AsyncSession, user_id: uuid.UUID, group_id: uuid.UUID
) -> Optional[GroupMember]:
    """Return the caller's membership row with its group loaded, or None."""
    result = await db.execute(
        select(GroupMember)
        .options(joinedload(GroupMember.group))
        .where(GroupMember.user_id == user_id, GroupMember.group_id == group_id)
    )
    return result.scalar_one_or_none()


async def require_member(
    db: AsyncSession,
    user_id: uuid.UUID,
    group_id: uuid.UUID,
    *,
    hide_group: bool = False,
) -> GroupMember:
    """
    Return the caller's membership or raise.

    hide_group=True reports a missing membership as "group not found" (used by
    the group endpoints, which shouldn't confirm that a group exists); otherwise
    it is a 403 NOT_GROUP_MEMBER.
    """
    membership = await get_membership(db, user_id, group_id)
    if membership is None:
        if hide_group:
            raise NotFoundError(ErrorCode.GROUP_NOT_FOUND_OR_NOT_MEMBER)
        raise ForbiddenError(ErrorCode.NOT_GROUP_MEMBER)
    return membership


async def require_admin(
    db: AsyncSession,
    user_id: uuid.UUID,
    group_id: uuid.UUID,
    code: ErrorCode = ErrorCode.ADMIN_ONLY,
) -> GroupMember:
    membership = await require_member(db, user_id, group_id, hide_group=True)
    if membership.role != GroupRole.ADMIN:
        raise ForbiddenError(code)
    return membership


async def ensure_admin_remains(db: AsyncSession, group_id: uuid.UUID, message: str) -> None:
    """
    Raise LAST_ADMIN unless the group has more than one admin.

    Call before demoting, removing or letting an admin leave, inside the same
    transaction as the change. The admin rows are locked so two concurrent
    demotions can't both see two admins.
    """
    result = await db.execute(
        select(GroupMember.id)
        .where(GroupMember.group_id == group_id, GroupMember.role == GroupRole.ADMIN)
        .with_for_update()
    )
    if len(result.all()) <= 1:
        raise InvariantViolationError(ErrorCode.LAST_ADMIN, message)
