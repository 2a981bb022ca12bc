from __future__ import annotations

import logging
import uuid

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from basket.db.database import atomic
from basket.db.models import Group, GroupMember, GroupRole, ShoppingListItem, User
from basket.errors import (
    ConflictError,
    ErrorCode,
    ForbiddenError,
    InvariantViolationError,
    NotFoundError,
)
from basket.models.group import GroupDetails, InviteCodeOut, InvitePreview
from basket.services.group_service import group_service
from basket.services.invite_codes import ensure_unique_invite_code
from basket.services.membership import require_admin

logger = logging.getLogger(__name__)


class GroupInviteService:
    async def generate_invite_code(
        self, group_id: uuid.UUID, user: User, db: AsyncSession
    ) -> InviteCodeOut:
        """Give a shared group a fresh invite code. The previous code stops working."""
        try:
            async with atomic(db):
                membership = await require_admin(
                    db, user.id, group_id, ErrorCode.ADMIN_ONLY_REGENERATE_INVITE
                )
                group = membership.group
                if group.is_personal:
                    raise InvariantViolationError(ErrorCode.PERSONAL_GROUP_NO_INVITE)

                group.invite_code = await ensure_unique_invite_code(db)
        except IntegrityError as e:
            # Another group took the same code between the check and the write
            raise ConflictError(ErrorCode.INVITE_CODE_CONFLICT) from e

        logger.info("New invite code issued for group %s by user %s", group_id, user.id)
        return InviteCodeOut(invite_code=group.invite_code)

    # Both names are exposed; regenerating is the same operation
    regenerate_invite_code = generate_invite_code

    async def validate_invite_code(
        self, invite_code: str, user: User, db: AsyncSession
    ) -> InvitePreview:
        """Preview the group behind an invite code without joining it."""
        result = await db.execute(select(Group).where(Group.invite_code == invite_code.strip()))
        group = result.scalar_one_or_none()
        if group is None:
            raise NotFoundError(ErrorCode.INVALID_INVITE_CODE)
        if group.is_personal:
            raise InvariantViolationError(ErrorCode.PERSONAL_GROUP_NOT_JOINABLE)

        member_count = await db.scalar(
            select(func.count(GroupMember.id)).where(GroupMember.group_id == group.id)
        )
        item_count = await db.scalar(
            select(func.count(ShoppingListItem.id)).where(ShoppingListItem.group_id == group.id)
        )
        already_member = await db.scalar(
            select(GroupMember.id).where(
                GroupMember.group_id == group.id, GroupMember.user_id == user.id
            )
        )
        return InvitePreview(
            id=group.id,
            name=group.name,
            description=group.description,
            created_at=group.created_at,
            member_count=member_count or 0,
            item_count=item_count or 0,
            is_already_member=already_member is not None,
        )

    async def join_via_code(
        self, invite_code: str, user: User, db: AsyncSession
    ) -> GroupDetails:
        if user.is_anonymous:
            raise ForbiddenError(ErrorCode.ANONYMOUS_USER_CANNOT_JOIN)

        try:
            async with atomic(db):
                preview = await self.validate_invite_code(invite_code, user, db)
                if preview.is_already_member:
                    raise ConflictError(ErrorCode.ALREADY_MEMBER)
                db.add(GroupMember(user_id=user.id, group_id=preview.id, role=GroupRole.MEMBER))
        except IntegrityError as e:
            # Two joins raced past the membership check
            raise ConflictError(ErrorCode.ALREADY_MEMBER) from e

        logger.info("User %s joined group %s via invite code", user.id, preview.id)
        return await group_service.get_group_details(preview.id, user, db)


group_invite_service = GroupInviteService()
