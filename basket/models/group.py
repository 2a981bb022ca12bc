import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from basket.db.models import GroupRole


class GroupOption(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    is_personal: bool


class GroupSummary(GroupOption):
    description: Optional[str] = None
    members_count: int
    my_role: GroupRole
    created_at: datetime


class GroupMemberOut(BaseModel):
    user_id: uuid.UUID
    name: str
    image: Optional[str] = None
    role: GroupRole
    joined_at: datetime


class GroupDetails(GroupSummary):
    # Only populated for admins
    invite_code: Optional[str] = None
    members: List[GroupMemberOut]


class InvitePreview(BaseModel):
    """What a user sees before accepting an invite code."""

    id: uuid.UUID
    name: str
    description: Optional[str] = None
    created_at: datetime
    member_count: int
    item_count: int
    is_already_member: bool


class InviteCodeOut(BaseModel):
    invite_code: str


class CreateGroupRequest(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=200)


class UpdateGroupRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=200)


class UpdateRoleRequest(BaseModel):
    role: GroupRole


class TransferShoppingListRequest(BaseModel):
    from_group_id: uuid.UUID
    to_group_id: uuid.UUID


class TransferShoppingListResult(BaseModel):
    moved_count: int
    merged_count: int


class SuccessResponse(BaseModel):
    success: bool = True
