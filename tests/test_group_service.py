"""
Tests for personal group bootstrapping, group CRUD and list transfer.
"""

import uuid

import pytest
from sqlalchemy import func, select

from basket.db.models import Group, GroupMember, GroupRole, ShoppingListItem, User
from basket.errors import (
    ErrorCode,
    ForbiddenError,
    InvalidInputError,
    InvariantViolationError,
    NotFoundError,
)
from basket.models.group import (
    CreateGroupRequest,
    TransferShoppingListRequest,
    UpdateGroupRequest,
)
from basket.services.action_executor import list_group_items
from basket.services.group_service import group_service
from basket.services.personal_group import ensure_personal_group

from conftest import add_member, record_postgres_sql, seed_items


# ---------------------------------------------------------------------------
# Personal group
# ---------------------------------------------------------------------------


class TestEnsurePersonalGroup:
    async def test_creates_group_membership_and_link(self, db, alice):
        group = await ensure_personal_group(alice.id, db)

        assert group.is_personal is True
        assert group.invite_code is None
        assert group.name == "Alice's Personal List"
        assert group.description == "Your personal shopping list"

        user = await db.get(User, alice.id)
        assert user.personal_group_id == group.id
        role = await db.scalar(
            select(GroupMember.role).where(
                GroupMember.group_id == group.id, GroupMember.user_id == alice.id
            )
        )
        assert role == GroupRole.ADMIN

    async def test_idempotent(self, db, alice):
        first = await ensure_personal_group(alice.id, db)
        second = await ensure_personal_group(alice.id, db)
        assert first.id == second.id
        count = await db.scalar(select(func.count(Group.id)).where(Group.is_personal.is_(True)))
        assert count == 1

    async def test_unknown_user(self, db):
        with pytest.raises(NotFoundError) as exc:
            await ensure_personal_group(uuid.uuid4(), db)
        assert exc.value.code == ErrorCode.USER_NOT_FOUND


# ---------------------------------------------------------------------------
# Group CRUD
# ---------------------------------------------------------------------------


class TestCreateGroup:
    async def test_creator_is_admin_with_invite_code(self, db, alice):
        summary = await group_service.create_group(CreateGroupRequest(name="Flat"), alice, db)
        assert summary.my_role == GroupRole.ADMIN
        assert summary.members_count == 1
        assert summary.is_personal is False

        details = await group_service.get_group_details(summary.id, alice, db)
        assert details.invite_code is not None
        assert len(details.invite_code) == 6
        assert details.invite_code.isalnum()

    async def test_anonymous_user_rejected(self, db, make_user):
        guest = await make_user("Guest", is_anonymous=True)
        with pytest.raises(ForbiddenError) as exc:
            await group_service.create_group(CreateGroupRequest(name="Flat"), guest, db)
        assert exc.value.code == ErrorCode.ANONYMOUS_USER_CANNOT_CREATE


class TestGetMyGroups:
    async def test_personal_group_first_and_created_on_demand(self, db, alice, shared_group_id):
        groups = await group_service.get_my_groups(alice, db)
        assert [g.is_personal for g in groups] == [True, False]
        assert groups[1].id == shared_group_id
        assert all(g.my_role == GroupRole.ADMIN for g in groups)

    async def test_member_counts(self, db, alice, bob, shared_group_id):
        await add_member(db, bob, shared_group_id)
        groups = await group_service.get_my_groups(bob, db)
        shared = next(g for g in groups if g.id == shared_group_id)
        assert shared.members_count == 2
        assert shared.my_role == GroupRole.MEMBER


class TestGroupDetails:
    async def test_members_see_no_invite_code(self, db, alice, bob, shared_group_id):
        await add_member(db, bob, shared_group_id)
        details = await group_service.get_group_details(shared_group_id, bob, db)
        assert details.invite_code is None
        assert [m.role for m in details.members] == [GroupRole.ADMIN, GroupRole.MEMBER]
        assert details.members[0].user_id == alice.id

    async def test_outsider_gets_not_found(self, db, bob, shared_group_id):
        with pytest.raises(NotFoundError) as exc:
            await group_service.get_group_details(shared_group_id, bob, db)
        assert exc.value.code == ErrorCode.GROUP_NOT_FOUND_OR_NOT_MEMBER


class TestUpdateAndDeleteGroup:
    async def test_admin_updates_name(self, db, alice, shared_group_id):
        summary = await group_service.update_group(
            shared_group_id, UpdateGroupRequest(name="Flat 2B"), alice, db
        )
        assert summary.name == "Flat 2B"
        assert summary.description == "Weekly shop"

    async def test_explicit_null_clears_description(self, db, alice, shared_group_id):
        summary = await group_service.update_group(
            shared_group_id, UpdateGroupRequest(description=None), alice, db
        )
        assert summary.description is None
        assert summary.name == "Flatmates"

    async def test_member_cannot_update(self, db, bob, shared_group_id):
        await add_member(db, bob, shared_group_id)
        with pytest.raises(ForbiddenError) as exc:
            await group_service.update_group(
                shared_group_id, UpdateGroupRequest(name="Mine"), bob, db
            )
        assert exc.value.code == ErrorCode.ADMIN_ONLY_UPDATE_GROUP

    async def test_delete_removes_members_and_items(self, db, alice, bob, shared_group_id):
        await add_member(db, bob, shared_group_id)
        await seed_items(db, shared_group_id, alice, milk=1)

        await group_service.delete_group(shared_group_id, alice, db)

        assert await db.scalar(select(Group.id).where(Group.id == shared_group_id)) is None
        assert await db.scalar(
            select(func.count(GroupMember.id)).where(GroupMember.group_id == shared_group_id)
        ) == 0
        assert await db.scalar(
            select(func.count(ShoppingListItem.id)).where(
                ShoppingListItem.group_id == shared_group_id
            )
        ) == 0

    async def test_personal_group_cannot_be_deleted(self, db, alice, personal_group_id):
        with pytest.raises(InvariantViolationError) as exc:
            await group_service.delete_group(personal_group_id, alice, db)
        assert exc.value.code == ErrorCode.PERSONAL_GROUP_CANNOT_DELETE

    async def test_member_cannot_delete(self, db, bob, shared_group_id):
        await add_member(db, bob, shared_group_id)
        with pytest.raises(ForbiddenError) as exc:
            await group_service.delete_group(shared_group_id, bob, db)
        assert exc.value.code == ErrorCode.ADMIN_ONLY_DELETE_GROUP


# ---------------------------------------------------------------------------
# Transfer
# ---------------------------------------------------------------------------


class TestTransferShoppingList:
    async def test_moves_own_items_and_merges_duplicates(
        self, db, alice, bob, personal_group_id, shared_group_id
    ):
        await add_member(db, bob, shared_group_id)
        await seed_items(db, personal_group_id, alice, milk=2, eggs=6)
        await seed_items(db, shared_group_id, bob, Milk=1)

        result = await group_service.transfer_shopping_list(
            TransferShoppingListRequest(
                from_group_id=personal_group_id, to_group_id=shared_group_id
            ),
            alice,
            db,
        )
        assert result.moved_count == 1
        assert result.merged_count == 1

        assert await list_group_items(db, personal_group_id) == []
        target = await list_group_items(db, shared_group_id)
        assert sorted((i.name, i.amount) for i in target) == [("Milk", 3), ("eggs", 6)]

    async def test_leaves_other_users_items(self, db, alice, bob, shared_group_id, personal_group_id):
        await add_member(db, bob, shared_group_id)
        await seed_items(db, shared_group_id, bob, bread=1)

        result = await group_service.transfer_shopping_list(
            TransferShoppingListRequest(
                from_group_id=shared_group_id, to_group_id=personal_group_id
            ),
            alice,
            db,
        )
        assert result.moved_count == 0
        assert len(await list_group_items(db, shared_group_id)) == 1

    async def test_same_group_rejected(self, db, alice, shared_group_id):
        with pytest.raises(InvalidInputError) as exc:
            await group_service.transfer_shopping_list(
                TransferShoppingListRequest(
                    from_group_id=shared_group_id, to_group_id=shared_group_id
                ),
                alice,
                db,
            )
        assert exc.value.code == ErrorCode.INVALID_TRANSFER

    async def test_requires_membership_in_target(self, db, alice, bob, shared_group_id):
        bob_personal = await ensure_personal_group(bob.id, db)
        with pytest.raises(NotFoundError):
            await group_service.transfer_shopping_list(
                TransferShoppingListRequest(
                    from_group_id=shared_group_id, to_group_id=bob_personal.id
                ),
                alice,
                db,
            )

    async def test_locks_source_and_target_items(
        self, db, alice, personal_group_id, shared_group_id, monkeypatch
    ):
        await seed_items(db, personal_group_id, alice, milk=2)
        await seed_items(db, shared_group_id, alice, Milk=1)
        statements = record_postgres_sql(monkeypatch, db)

        await group_service.transfer_shopping_list(
            TransferShoppingListRequest(
                from_group_id=personal_group_id, to_group_id=shared_group_id
            ),
            alice,
            db,
        )

        item_selects = [
            s for s in statements
            if s.startswith("SELECT") and "FROM shopping_list_items" in s
        ]
        assert len(item_selects) == 2
        assert all(s.rstrip().endswith("FOR UPDATE") for s in item_selects)
