from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from basket.models.shopping import ShoppingListAction, ShoppingListItemOut


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    """Individual chat message"""
    role: MessageRole
    content: str


class AssistantRequest(BaseModel):
    """Request body for the assistant endpoints"""
    prompt: str = Field(min_length=1, max_length=2000)
    recent_messages: List[ChatMessage] = Field(default_factory=list, max_length=50)


class AssistantChunk(BaseModel):
    """One partial snapshot of the model's structured output.

    Successive chunks repeat everything seen so far, so the same logical action
    shows up many times while the model is still generating.
    """
    actions: List[ShoppingListAction] = Field(default_factory=list)
    message: Optional[str] = None


class AssistantResult(BaseModel):
    """Deduplicated outcome of a drained assistant stream"""
    actions: List[ShoppingListAction] = Field(default_factory=list)
    message: str = ""


class AssistantApplyResponse(BaseModel):
    actions: List[ShoppingListAction]
    message: str
    items: List[ShoppingListItemOut]


# ---------------------------------------------------------------------------
# Structured output schema sent to Gemini. Kept flat (no oneOf) because the
# Gemini response schema does not support discriminated unions; every action
# is re-validated with validate_action before use.
# ---------------------------------------------------------------------------


class ModelAction(BaseModel):
    action: Literal["add", "update", "delete", "complete"]
    name: str
    amount: Optional[int] = Field(
        default=None, description="Required for add and update, at least 1"
    )


class ModelResponse(BaseModel):
    actions: List[ModelAction] = Field(
        description="Array of actions to perform on the shopping list"
    )
    message: str = Field(
        description="The message to the user. Should describe the actions that were performed."
    )
