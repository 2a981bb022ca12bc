"""
Shopping list assistant.

Gemini streams its structured answer as JSON text. Every time the buffer
grows we parse it as a partial document and emit an AssistantChunk, so
consumers see progressively larger prefixes of the same answer and the same
action arrives many times. ActionAccumulator folds those repeats into one
final action list; nothing is executed until the stream has been drained.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import AsyncIterator
from typing import Any, AsyncGenerator, Optional

from pydantic_core import from_json
from sqlalchemy.ext.asyncio import AsyncSession

from basket.db.models import User
from basket.errors import ErrorCode, InvalidInputError, UpstreamError
from basket.models.chat import (
    AssistantApplyResponse,
    AssistantChunk,
    AssistantRequest,
    AssistantResult,
    ModelResponse,
)
from basket.models.shopping import ShoppingListAction, ShoppingListItemOut, validate_action
from basket.services.action_executor import list_group_items
from basket.services.ai_service import GeminiService
from basket.services.chat_prompts import build_assistant_prompt
from basket.services.membership import require_member
from basket.services.shopping_list_service import shopping_list_service

logger = logging.getLogger(__name__)


def _valid_actions(raw_actions: Any) -> list[ShoppingListAction]:
    """Keep only the candidates that already pass validation."""
    if not isinstance(raw_actions, list):
        return []
    actions = []
    for raw in raw_actions:
        try:
            actions.append(validate_action(raw))
        except InvalidInputError:
            # Usually an action the model is still writing
            continue
    return actions


def parse_partial_response(buffer: str) -> Optional[AssistantChunk]:
    """
    Parse an incomplete JSON answer into a chunk, or None if nothing usable yet.

    Actions are read with incomplete strings dropped, so a half-written name
    like "mil" never becomes an action. The message keeps its incomplete tail
    so it can be shown while it is being written.
    """
    try:
        settled = from_json(buffer, allow_partial=True)
        growing = from_json(buffer, allow_partial="trailing-strings")
    except ValueError:
        return None
    if not isinstance(settled, dict):
        return None

    message = growing.get("message") if isinstance(growing, dict) else None
    return AssistantChunk(
        actions=_valid_actions(settled.get("actions")),
        message=message if isinstance(message, str) else None,
    )


def parse_final_response(buffer: str) -> AssistantChunk:
    """Parse the complete answer. A malformed document is an upstream failure."""
    try:
        data = from_json(buffer)
    except ValueError as e:
        raise UpstreamError(
            ErrorCode.ASSISTANT_FAILED, "The assistant returned a malformed response"
        ) from e
    if not isinstance(data, dict):
        raise UpstreamError(ErrorCode.ASSISTANT_FAILED, "The assistant returned a malformed response")

    raw_actions = data.get("actions") or []
    actions = _valid_actions(raw_actions)
    if len(actions) != len(raw_actions):
        logger.warning("Dropped %d invalid actions from assistant response", len(raw_actions) - len(actions))
    message = data.get("message")
    return AssistantChunk(actions=actions, message=message if isinstance(message, str) else None)


class ActionAccumulator:
    """
    Folds repeated partial chunks into one deduplicated result.

    Actions are keyed by (name, action): a later sighting replaces the earlier
    one (so the last-seen amount wins) but keeps its original position. The
    last non-empty message wins.
    """

    def __init__(self) -> None:
        self._actions: dict[tuple[str, str], ShoppingListAction] = {}
        self.message = ""

    def update(self, chunk: AssistantChunk) -> None:
        for action in chunk.actions:
            self._actions[(action.name, action.action)] = action
        if chunk.message:
            self.message = chunk.message

    def result(self) -> AssistantResult:
        return AssistantResult(actions=list(self._actions.values()), message=self.message)


async def accumulate(stream: AsyncIterator[AssistantChunk]) -> AssistantResult:
    """Drain ``stream`` to the end and return the deduplicated result."""
    accumulator = ActionAccumulator()
    async for chunk in stream:
        accumulator.update(chunk)
    return accumulator.result()


class ChatService:
    def __init__(self, ai_service: Optional[GeminiService]):
        self.ai_service = ai_service

    async def assistant(
        self,
        group_id: uuid.UUID,
        request: AssistantRequest,
        user: User,
        db: AsyncSession,
    ) -> AsyncGenerator[AssistantChunk, None]:
        """
        Stream partial assistant answers for a prompt against a group's list.

        Single pass and forward only. If the model call fails, chunks already
        yielded stay delivered and the error is raised to the consumer.
        """
        if self.ai_service is None:
            raise UpstreamError(ErrorCode.ASSISTANT_UNAVAILABLE)

        await require_member(db, user.id, group_id)
        current_items = await list_group_items(db, group_id)
        prompt = build_assistant_prompt(current_items, request.recent_messages, request.prompt)
        # Don't hold the read transaction open while the model is generating
        await db.commit()

        logger.info(
            "Assistant prompt for group %s (items=%d, history_len=%d)",
            group_id,
            len(current_items),
            len(request.recent_messages),
        )

        buffer = ""
        last: Optional[AssistantChunk] = None
        async for text in self.ai_service.stream_json(prompt, ModelResponse, temperature=0.0):
            buffer += text
            chunk = parse_partial_response(buffer)
            if chunk is None or chunk == last:
                continue
            last = chunk
            yield chunk

        final = parse_final_response(buffer)
        if final != last:
            yield final

    async def run_assistant(
        self,
        group_id: uuid.UUID,
        request: AssistantRequest,
        user: User,
        db: AsyncSession,
    ) -> AssistantResult:
        """Drain the assistant stream and return the final action set and message."""
        result = await accumulate(self.assistant(group_id, request, user, db))
        logger.info("Assistant resolved %d actions for group %s", len(result.actions), group_id)
        return result

    async def apply_assistant(
        self,
        group_id: uuid.UUID,
        request: AssistantRequest,
        user: User,
        db: AsyncSession,
    ) -> AssistantApplyResponse:
        """Resolve the assistant's actions, then apply them in one transaction."""
        result = await self.run_assistant(group_id, request, user, db)
        if result.actions:
            items = await shopping_list_service.execute_actions(result.actions, group_id, user, db)
        else:
            items = await shopping_list_service.get_items(group_id, user, db)
        return AssistantApplyResponse(
            actions=result.actions,
            message=result.message,
            items=[ShoppingListItemOut.model_validate(item) for item in items],
        )
