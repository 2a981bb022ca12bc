from __future__ import annotations

import logging
import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from basket.db.database import atomic
from basket.db.models import GroupMember, GroupRole, User
from basket.errors import ErrorCode, InvariantViolationError, NotFoundError
from basket.models.group import GroupMemberOut
from basket.services.group_service import list_members, member_out
from basket.services.membership import ensure_admin_remains, require_admin, require_member

logger = logging.getLogger(__name__)


class GroupMemberService:
    """
    Membership changes inside a group. Members are addressed by user id.

    Every change that could drop an admin checks the admin floor inside the
    same transaction as the change itself.
    """

    async def get_members(
        self, group_id: uuid.UUID, user: User, db: AsyncSession
    ) -> list[GroupMemberOut]:
        await require_member(db, user.id, group_id, hide_group=True)
        return [member_out(m) for m in await list_members(db, group_id)]

    async def remove_member(
        self, group_id: uuid.UUID, member_user_id: uuid.UUID, user: User, db: AsyncSession
    ) -> None:
        async with atomic(db):
            acting = await require_admin(
                db, user.id, group_id, ErrorCode.ADMIN_ONLY_REMOVE_MEMBERS
            )
            if acting.group.is_personal:
                raise InvariantViolationError(ErrorCode.PERSONAL_GROUP_MEMBERS_FIXED)

            target = await self._require_target(db, group_id, member_user_id)
            if target.role == GroupRole.ADMIN:
                await ensure_admin_remains(
                    db, group_id, "Cannot remove the last admin from the group"
                )
            await db.delete(target)

        logger.info("User %s removed %s from group %s", user.id, member_user_id, group_id)

    async def update_role(
        self,
        group_id: uuid.UUID,
        member_user_id: uuid.UUID,
        role: GroupRole,
        user: User,
        db: AsyncSession,
    ) -> GroupMemberOut:
        async with atomic(db):
            acting = await require_admin(db, user.id, group_id, ErrorCode.ADMIN_ONLY_UPDATE_ROLES)
            if acting.group.is_personal:
                raise InvariantViolationError(ErrorCode.PERSONAL_GROUP_MEMBERS_FIXED)

            target = await self._require_target(db, group_id, member_user_id)
            if target.role == GroupRole.ADMIN and role == GroupRole.MEMBER:
                await ensure_admin_remains(
                    db, group_id, "Cannot demote the last admin in the group"
                )
            target.role = role

        logger.info("User %s set role of %s in group %s to %s", user.id, member_user_id, group_id, role.value)
        return member_out(target)

    async def leave_group(self, group_id: uuid.UUID, user: User, db: AsyncSession) -> None:
        async with atomic(db):
            membership = await require_member(db, user.id, group_id, hide_group=True)
            if membership.group.is_personal:
                raise InvariantViolationError(ErrorCode.PERSONAL_GROUP_CANNOT_LEAVE)

            if membership.role == GroupRole.ADMIN:
                await ensure_admin_remains(
                    db,
                    group_id,
                    "Cannot leave group as the last admin. Transfer admin rights first or delete the group.",
                )
            await db.delete(membership)

        logger.info("User %s left group %s", user.id, group_id)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _require_target(
        self, db: AsyncSession, group_id: uuid.UUID, member_user_id: uuid.UUID
    ) -> GroupMember:
        result = await db.execute(
            select(GroupMember)
            .options(joinedload(GroupMember.user))
            .where(GroupMember.group_id == group_id, GroupMember.user_id == member_user_id)
        )
        target: Optional[GroupMember] = result.scalar_one_or_none()
        if target is None:
            raise NotFoundError(ErrorCode.MEMBER_NOT_FOUND)
        return target


group_member_service = GroupMemberService()
