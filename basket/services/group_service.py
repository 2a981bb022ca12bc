from __future__ import annotations

import logging
import uuid

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from basket.db.database import atomic
from basket.db.models import Group, GroupMember, GroupRole, ShoppingListItem, User
from basket.errors import (
    ConflictError,
    ErrorCode,
    ForbiddenError,
    InvalidInputError,
    InvariantViolationError,
)
from basket.models.group import (
    CreateGroupRequest,
    GroupDetails,
    GroupMemberOut,
    GroupSummary,
    TransferShoppingListRequest,
    TransferShoppingListResult,
    UpdateGroupRequest,
)
from basket.services.invite_codes import generate_code
from basket.services.membership import require_admin, require_member
from basket.services.personal_group import ensure_personal_group

logger = logging.getLogger(__name__)


def member_out(member: GroupMember) -> GroupMemberOut:
    """Build the public view of a membership. ``member.user`` must be loaded."""
    return GroupMemberOut(
        user_id=member.user_id,
        name=member.user.name,
        image=member.user.image,
        role=member.role,
        joined_at=member.joined_at,
    )


async def list_members(db: AsyncSession, group_id: uuid.UUID) -> list[GroupMember]:
    """Members with their users loaded: admins first, then by join date."""
    result = await db.execute(
        select(GroupMember)
        .options(joinedload(GroupMember.user))
        .where(GroupMember.group_id == group_id)
        .order_by(GroupMember.role.asc(), GroupMember.joined_at.asc())
    )
    return list(result.scalars().all())


async def _count_members(db: AsyncSession, group_id: uuid.UUID) -> int:
    result = await db.execute(
        select(func.count(GroupMember.id)).where(GroupMember.group_id == group_id)
    )
    return result.scalar_one()


def _summary(group: Group, role: GroupRole, members_count: int) -> GroupSummary:
    return GroupSummary(
        id=group.id,
        name=group.name,
        description=group.description,
        is_personal=group.is_personal,
        members_count=members_count,
        my_role=role,
        created_at=group.created_at,
    )


class GroupService:
    async def get_my_groups(self, user: User, db: AsyncSession) -> list[GroupSummary]:
        """The caller's groups, personal first. Creates the personal group if missing."""
        await ensure_personal_group(user.id, db)

        member_counts = (
            select(GroupMember.group_id, func.count(GroupMember.id).label("members_count"))
            .group_by(GroupMember.group_id)
            .subquery()
        )
        result = await db.execute(
            select(Group, GroupMember.role, member_counts.c.members_count)
            .join(GroupMember, GroupMember.group_id == Group.id)
            .join(member_counts, member_counts.c.group_id == Group.id)
            .where(GroupMember.user_id == user.id)
            .order_by(Group.is_personal.desc(), Group.created_at.desc())
        )
        return [_summary(group, role, count) for group, role, count in result.all()]

    async def get_group_details(
        self, group_id: uuid.UUID, user: User, db: AsyncSession
    ) -> GroupDetails:
        membership = await require_member(db, user.id, group_id, hide_group=True)
        group = membership.group
        members = await list_members(db, group_id)
        return GroupDetails(
            **_summary(group, membership.role, len(members)).model_dump(),
            invite_code=group.invite_code if membership.role == GroupRole.ADMIN else None,
            members=[member_out(m) for m in members],
        )

    async def create_group(
        self, data: CreateGroupRequest, user: User, db: AsyncSession
    ) -> GroupSummary:
        """
        Create a group with the caller as its admin.

        The invite code is drawn once; if it collides the whole operation fails
        with INVITE_CODE_CONFLICT and the caller may simply retry.
        """
        if user.is_anonymous:
            raise ForbiddenError(ErrorCode.ANONYMOUS_USER_CANNOT_CREATE)

        try:
            async with atomic(db):
                group = Group(
                    id=uuid.uuid4(),
                    name=data.name,
                    description=data.description,
                    invite_code=generate_code(),
                    is_personal=False,
                )
                db.add(group)
                await db.flush()
                db.add(GroupMember(user_id=user.id, group_id=group.id, role=GroupRole.ADMIN))
        except IntegrityError as e:
            logger.warning("Group creation hit a unique constraint: %s", e.orig)
            raise ConflictError(ErrorCode.INVITE_CODE_CONFLICT) from e

        logger.info("Group %s created by user %s", group.id, user.id)
        return _summary(group, GroupRole.ADMIN, 1)

    async def update_group(
        self, group_id: uuid.UUID, data: UpdateGroupRequest, user: User, db: AsyncSession
    ) -> GroupSummary:
        async with atomic(db):
            membership = await require_admin(
                db, user.id, group_id, ErrorCode.ADMIN_ONLY_UPDATE_GROUP
            )
            group = membership.group
            if data.name is not None:
                group.name = data.name
            # An explicit null clears the description; an omitted field leaves it
            if "description" in data.model_fields_set:
                group.description = data.description
            await db.flush()
            count = await _count_members(db, group_id)
        return _summary(group, membership.role, count)

    async def delete_group(self, group_id: uuid.UUID, user: User, db: AsyncSession) -> None:
        """Delete a shared group together with its memberships and items."""
        async with atomic(db):
            membership = await require_admin(
                db, user.id, group_id, ErrorCode.ADMIN_ONLY_DELETE_GROUP
            )
            if membership.group.is_personal:
                raise InvariantViolationError(ErrorCode.PERSONAL_GROUP_CANNOT_DELETE)

            await db.execute(delete(ShoppingListItem).where(ShoppingListItem.group_id == group_id))
            await db.execute(delete(GroupMember).where(GroupMember.group_id == group_id))
            await db.execute(delete(Group).where(Group.id == group_id))

        logger.info("Group %s deleted by user %s", group_id, user.id)

    async def transfer_shopping_list(
        self, data: TransferShoppingListRequest, user: User, db: AsyncSession
    ) -> TransferShoppingListResult:
        """
        Move every item the caller created from one group to another.

        Items whose name already exists in the target group are merged into the
        existing item (amounts summed) instead of duplicated.
        """
        if data.from_group_id == data.to_group_id:
            raise InvalidInputError(ErrorCode.INVALID_TRANSFER)

        async with atomic(db):
            await require_member(db, user.id, data.from_group_id, hide_group=True)
            await require_member(db, user.id, data.to_group_id, hide_group=True)

            source = await db.execute(
                select(ShoppingListItem)
                .where(
                    ShoppingListItem.group_id == data.from_group_id,
                    ShoppingListItem.created_by_id == user.id,
                )
                .with_for_update()
            )
            target = await db.execute(
                select(ShoppingListItem)
                .where(ShoppingListItem.group_id == data.to_group_id)
                .with_for_update()
            )
            existing = {item.name.lower(): item for item in target.scalars().all()}

            move_ids = []
            merged = 0
            for item in source.scalars().all():
                match = existing.get(item.name.lower())
                if match is not None:
                    match.amount += item.amount
                    await db.delete(item)
                    merged += 1
                else:
                    existing[item.name.lower()] = item
                    move_ids.append(item.id)

            if move_ids:
                await db.execute(
                    update(ShoppingListItem)
                    .where(ShoppingListItem.id.in_(move_ids))
                    .values(group_id=data.to_group_id)
                )

        logger.info(
            "Transferred list of user %s: %s -> %s (moved=%d, merged=%d)",
            user.id,
            data.from_group_id,
            data.to_group_id,
            len(move_ids),
            merged,
        )
        return TransferShoppingListResult(moved_count=len(move_ids), merged_count=merged)


group_service = GroupService()
