from .chat import AssistantChunk, AssistantRequest, AssistantResult, ChatMessage, MessageRole
from .shopping import (
    AddAction,
    CompleteAction,
    DeleteAction,
    ShoppingListAction,
    UpdateAction,
    validate_action,
    validate_actions,
)

__all__ = [
    "AddAction",
    "UpdateAction",
    "DeleteAction",
    "CompleteAction",
    "ShoppingListAction",
    "validate_action",
    "validate_actions",
    "ChatMessage",
    "MessageRole",
    "AssistantRequest",
    "AssistantChunk",
    "AssistantResult",
]
