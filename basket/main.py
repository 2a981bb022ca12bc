from __future__ import annotations

import json
import logging
import os
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, List

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from basket.auth.jwt import get_current_user
from basket.db.database import engine, get_db
from basket.db.models import User
from basket.errors import AppError, ErrorCode, InternalError
from basket.models.chat import AssistantApplyResponse, AssistantChunk, AssistantRequest
from basket.models.group import (
    CreateGroupRequest,
    GroupDetails,
    GroupMemberOut,
    GroupOption,
    GroupSummary,
    InviteCodeOut,
    InvitePreview,
    SuccessResponse,
    TransferShoppingListRequest,
    TransferShoppingListResult,
    UpdateGroupRequest,
    UpdateRoleRequest,
)
from basket.models.shopping import (
    AddItemRequest,
    ExecuteActionsRequest,
    ShoppingListItemOut,
    UpdateItemRequest,
)
from basket.services.ai_service import GeminiService
from basket.services.chat_service import ActionAccumulator, ChatService
from basket.services.group_invite_service import group_invite_service
from basket.services.group_member_service import group_member_service
from basket.services.group_service import group_service
from basket.services.personal_group import ensure_personal_group
from basket.services.shopping_list_service import shopping_list_service

# Load environment variables (override=True ensures .env wins over any shell env vars)
load_dotenv(override=True)

FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize services
try:
    ai_service = GeminiService()
except ValueError as e:
    logger.error(f"Failed to initialize AI service: {e}")
    ai_service = None

chat_service = ChatService(ai_service)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle context manager"""
    logger.info("Application starting up")
    yield
    logger.info("Application shutting down")
    await engine.dispose()


app = FastAPI(
    title="Shared Basket",
    description="Collaborative shopping lists with an AI assistant",
    version="0.1.0",
    lifespan=lifespan,
)

# Explicit origins required when credentials: 'include' is used
app.add_middleware(
    CORSMiddleware,
    allow_origins=[FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Error rendering
# ============================================================================


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    logger.warning(
        "%s %s rejected: %s (%s)", request.method, request.url.path, exc.code.value, exc.message
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    error = InternalError(ErrorCode.INTERNAL_ERROR)
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


# ============================================================================
# REST Endpoints - Health
# ============================================================================


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "ok",
        "ai_service_ready": ai_service is not None,
    }


# ============================================================================
# Assistant Endpoints
# ============================================================================


async def _ndjson_snapshots(
    first: AssistantChunk, stream: AsyncIterator[AssistantChunk]
) -> AsyncIterator[str]:
    """Render the stream as one accumulated result per line.

    Errors after the response has started can't change the status code, so
    they are sent as a final ``{"error": ...}`` line.
    """
    accumulator = ActionAccumulator()
    accumulator.update(first)
    yield accumulator.result().model_dump_json() + "\n"
    try:
        async for chunk in stream:
            accumulator.update(chunk)
            yield accumulator.result().model_dump_json() + "\n"
    except AppError as e:
        logger.warning("Assistant stream failed after partial output: %s", e.message)
        yield json.dumps({"error": e.to_dict()}) + "\n"
    except Exception as e:
        logger.error("Assistant stream crashed after partial output", exc_info=e)
        yield json.dumps({"error": InternalError(ErrorCode.INTERNAL_ERROR).to_dict()}) + "\n"


@app.post("/api/groups/{group_id}/assistant")
async def stream_assistant(
    group_id: uuid.UUID,
    request: AssistantRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Stream the assistant's answer as NDJSON. Nothing is applied to the list."""
    stream = chat_service.assistant(group_id, request, current_user, db)
    # Pull the first chunk here so membership and model errors still get a status code
    try:
        first = await stream.__anext__()
    except StopAsyncIteration:
        first = AssistantChunk()
    return StreamingResponse(
        _ndjson_snapshots(first, stream), media_type="application/x-ndjson"
    )


@app.post("/api/groups/{group_id}/assistant/apply", response_model=AssistantApplyResponse)
async def apply_assistant(
    group_id: uuid.UUID,
    request: AssistantRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Run the assistant to completion and apply its actions in one transaction."""
    return await chat_service.apply_assistant(group_id, request, current_user, db)


# ============================================================================
# Shopping List Endpoints
# ============================================================================


@app.post("/api/groups/{group_id}/items/actions", response_model=List[ShoppingListItemOut])
async def execute_actions(
    group_id: uuid.UUID,
    request: ExecuteActionsRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await shopping_list_service.execute_actions(
        request.actions, group_id, current_user, db
    )


@app.get("/api/groups/{group_id}/items", response_model=List[ShoppingListItemOut])
async def get_items(
    group_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await shopping_list_service.get_items(group_id, current_user, db)


@app.post(
    "/api/groups/{group_id}/items",
    response_model=ShoppingListItemOut,
    status_code=status.HTTP_201_CREATED,
)
async def add_item(
    group_id: uuid.UUID,
    request: AddItemRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await shopping_list_service.add_item(group_id, request, current_user, db)


@app.patch("/api/groups/{group_id}/items/{item_id}", response_model=ShoppingListItemOut)
async def update_item(
    group_id: uuid.UUID,
    item_id: uuid.UUID,
    request: UpdateItemRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await shopping_list_service.update_item(group_id, item_id, request, current_user, db)


@app.post("/api/groups/{group_id}/items/{item_id}/toggle", response_model=ShoppingListItemOut)
async def toggle_item(
    group_id: uuid.UUID,
    item_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await shopping_list_service.toggle_complete(group_id, item_id, current_user, db)


@app.delete("/api/groups/{group_id}/items/{item_id}", response_model=ShoppingListItemOut)
async def delete_item(
    group_id: uuid.UUID,
    item_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await shopping_list_service.delete_item(group_id, item_id, current_user, db)


# ============================================================================
# Group Endpoints
# ============================================================================


@app.get("/api/me/personal-group", response_model=GroupOption)
async def get_personal_group(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Return the caller's personal group, creating it on first use."""
    return await ensure_personal_group(current_user.id, db)


@app.get("/api/groups", response_model=List[GroupSummary])
async def get_my_groups(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await group_service.get_my_groups(current_user, db)


@app.post("/api/groups", response_model=GroupSummary, status_code=status.HTTP_201_CREATED)
async def create_group(
    request: CreateGroupRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await group_service.create_group(request, current_user, db)


@app.post("/api/groups/transfer", response_model=TransferShoppingListResult)
async def transfer_shopping_list(
    request: TransferShoppingListRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await group_service.transfer_shopping_list(request, current_user, db)


@app.get("/api/groups/{group_id}", response_model=GroupDetails)
async def get_group_details(
    group_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await group_service.get_group_details(group_id, current_user, db)


@app.patch("/api/groups/{group_id}", response_model=GroupSummary)
async def update_group(
    group_id: uuid.UUID,
    request: UpdateGroupRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await group_service.update_group(group_id, request, current_user, db)


@app.delete("/api/groups/{group_id}", response_model=SuccessResponse)
async def delete_group(
    group_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await group_service.delete_group(group_id, current_user, db)
    return SuccessResponse()


# ============================================================================
# Invite Endpoints
# ============================================================================


@app.post("/api/groups/{group_id}/invite-code", response_model=InviteCodeOut)
async def regenerate_invite_code(
    group_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await group_invite_service.regenerate_invite_code(group_id, current_user, db)


@app.get("/api/invites/{code}", response_model=InvitePreview)
async def validate_invite_code(
    code: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await group_invite_service.validate_invite_code(code, current_user, db)


@app.post("/api/invites/{code}/join", response_model=GroupDetails)
async def join_via_code(
    code: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await group_invite_service.join_via_code(code, current_user, db)


# ============================================================================
# Member Endpoints
# ============================================================================


@app.get("/api/groups/{group_id}/members", response_model=List[GroupMemberOut])
async def get_members(
    group_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await group_member_service.get_members(group_id, current_user, db)


@app.delete("/api/groups/{group_id}/members/{user_id}", response_model=SuccessResponse)
async def remove_member(
    group_id: uuid.UUID,
    user_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await group_member_service.remove_member(group_id, user_id, current_user, db)
    return SuccessResponse()


@app.patch("/api/groups/{group_id}/members/{user_id}", response_model=GroupMemberOut)
async def update_role(
    group_id: uuid.UUID,
    user_id: uuid.UUID,
    request: UpdateRoleRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await group_member_service.update_role(
        group_id, user_id, request.role, current_user, db
    )


@app.post("/api/groups/{group_id}/leave", response_model=SuccessResponse)
async def leave_group(
    group_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await group_member_service.leave_group(group_id, current_user, db)
    return SuccessResponse()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
