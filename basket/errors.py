"""
Domain errors.

Every failure a caller can see maps to a stable ``ErrorCode`` plus a human
readable message. The exception class decides the HTTP status and whether a
retry makes sense; main.py renders them all through one exception handler.
"""

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    # Input
    INVALID_ACTION = "INVALID_ACTION"
    AMOUNT_REQUIRED = "AMOUNT_REQUIRED"
    INVALID_TRANSFER = "INVALID_TRANSFER"
    # Lookups
    USER_NOT_FOUND = "USER_NOT_FOUND"
    GROUP_NOT_FOUND_OR_NOT_MEMBER = "GROUP_NOT_FOUND_OR_NOT_MEMBER"
    MEMBER_NOT_FOUND = "MEMBER_NOT_FOUND"
    ITEM_NOT_FOUND = "ITEM_NOT_FOUND"
    INVALID_INVITE_CODE = "INVALID_INVITE_CODE"
    # Authorization
    NOT_GROUP_MEMBER = "NOT_GROUP_MEMBER"
    ADMIN_ONLY = "ADMIN_ONLY"
    ADMIN_ONLY_UPDATE_GROUP = "ADMIN_ONLY_UPDATE_GROUP"
    ADMIN_ONLY_DELETE_GROUP = "ADMIN_ONLY_DELETE_GROUP"
    ADMIN_ONLY_REMOVE_MEMBERS = "ADMIN_ONLY_REMOVE_MEMBERS"
    ADMIN_ONLY_UPDATE_ROLES = "ADMIN_ONLY_UPDATE_ROLES"
    ADMIN_ONLY_REGENERATE_INVITE = "ADMIN_ONLY_REGENERATE_INVITE"
    ANONYMOUS_USER_CANNOT_JOIN = "ANONYMOUS_USER_CANNOT_JOIN"
    ANONYMOUS_USER_CANNOT_CREATE = "ANONYMOUS_USER_CANNOT_CREATE"
    # Conflicts
    ALREADY_MEMBER = "ALREADY_MEMBER"
    INVITE_CODE_CONFLICT = "INVITE_CODE_CONFLICT"
    ITEM_ALREADY_EXISTS = "ITEM_ALREADY_EXISTS"
    # Invariants
    PERSONAL_GROUP_CANNOT_DELETE = "PERSONAL_GROUP_CANNOT_DELETE"
    PERSONAL_GROUP_CANNOT_LEAVE = "PERSONAL_GROUP_CANNOT_LEAVE"
    PERSONAL_GROUP_NO_INVITE = "PERSONAL_GROUP_NO_INVITE"
    PERSONAL_GROUP_NOT_JOINABLE = "PERSONAL_GROUP_NOT_JOINABLE"
    PERSONAL_GROUP_MEMBERS_FIXED = "PERSONAL_GROUP_MEMBERS_FIXED"
    LAST_ADMIN = "LAST_ADMIN"
    # Internal / upstream
    INTERNAL_ERROR = "INTERNAL_ERROR"
    INVITE_CODE_EXHAUSTED = "INVITE_CODE_EXHAUSTED"
    ASSISTANT_UNAVAILABLE = "ASSISTANT_UNAVAILABLE"
    ASSISTANT_FAILED = "ASSISTANT_FAILED"


DEFAULT_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.INVALID_ACTION: "Invalid shopping list action",
    ErrorCode.AMOUNT_REQUIRED: "Amount must be at least 1",
    ErrorCode.INVALID_TRANSFER: "Source and target groups must differ",
    ErrorCode.USER_NOT_FOUND: "User not found",
    ErrorCode.GROUP_NOT_FOUND_OR_NOT_MEMBER: "Group not found or you are not a member",
    ErrorCode.MEMBER_NOT_FOUND: "Member not found in this group",
    ErrorCode.ITEM_NOT_FOUND: "Item not found",
    ErrorCode.INVALID_INVITE_CODE: "Invalid invite code",
    ErrorCode.NOT_GROUP_MEMBER: "You are not a member of this group",
    ErrorCode.ADMIN_ONLY: "Only group admins can perform this action",
    ErrorCode.ADMIN_ONLY_UPDATE_GROUP: "Only group admins can update group details",
    ErrorCode.ADMIN_ONLY_DELETE_GROUP: "Only group admins can delete groups",
    ErrorCode.ADMIN_ONLY_REMOVE_MEMBERS: "Only group admins can remove members",
    ErrorCode.ADMIN_ONLY_UPDATE_ROLES: "Only group admins can update member roles",
    ErrorCode.ADMIN_ONLY_REGENERATE_INVITE: "Only group admins can regenerate invite codes",
    ErrorCode.ANONYMOUS_USER_CANNOT_JOIN: "You must be signed in to join a group",
    ErrorCode.ANONYMOUS_USER_CANNOT_CREATE: "You must be signed in to create a group",
    ErrorCode.ALREADY_MEMBER: "You are already a member of this group",
    ErrorCode.INVITE_CODE_CONFLICT: "A group with this invite code already exists. Please try again.",
    ErrorCode.ITEM_ALREADY_EXISTS: "Item already exists in this group's shopping list",
    ErrorCode.PERSONAL_GROUP_CANNOT_DELETE: "Personal groups cannot be deleted",
    ErrorCode.PERSONAL_GROUP_CANNOT_LEAVE: "Cannot leave your personal group",
    ErrorCode.PERSONAL_GROUP_NO_INVITE: "Personal groups cannot have invite codes",
    ErrorCode.PERSONAL_GROUP_NOT_JOINABLE: "Cannot join personal groups",
    ErrorCode.PERSONAL_GROUP_MEMBERS_FIXED: "Members of personal groups cannot be changed",
    ErrorCode.LAST_ADMIN: "A group must keep at least one admin",
    ErrorCode.INTERNAL_ERROR: "Something went wrong",
    ErrorCode.INVITE_CODE_EXHAUSTED: "Failed to generate unique invite code after multiple attempts",
    ErrorCode.ASSISTANT_UNAVAILABLE: "AI service not available",
    ErrorCode.ASSISTANT_FAILED: "The assistant failed to respond",
}


class AppError(Exception):
    """Base class for every error a caller is meant to see."""

    status_code: int = 500
    retryable: bool = False

    def __init__(self, code: ErrorCode, message: Optional[str] = None):
        self.code = code
        self.message = message or DEFAULT_MESSAGES.get(code, code.value)
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code.value, "message": self.message, "retryable": self.retryable}


class InvalidInputError(AppError):
    status_code = 400


class NotFoundError(AppError):
    status_code = 404


class ForbiddenError(AppError):
    status_code = 403


class ConflictError(AppError):
    status_code = 409


class InvariantViolationError(AppError):
    status_code = 400


class UpstreamError(AppError):
    status_code = 502
    retryable = True


class InternalError(AppError):
    status_code = 500
    retryable = True
