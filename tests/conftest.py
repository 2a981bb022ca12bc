"""
Shared fixtures for all test modules.

Database tests run against a fresh in-memory SQLite database per test. Users
are created through the session and then expunged, so a rolled-back
transaction in the code under test never expires the objects a test holds.
"""

import uuid
from typing import Optional

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from basket.db.database import Base
from basket.db.models import GroupMember, GroupRole, ShoppingListItem, User
from basket.errors import AppError
from basket.models.group import CreateGroupRequest
from basket.services.group_service import group_service
from basket.services.personal_group import ensure_personal_group


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db(engine):
    factory = async_sessionmaker(engine, expire_on_commit=False)
    async with factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Users and groups
# ---------------------------------------------------------------------------


@pytest.fixture
def make_user(db):
    async def _make(name: str = "Alice", *, is_anonymous: bool = False) -> User:
        user = User(
            id=uuid.uuid4(),
            name=name,
            email=None if is_anonymous else f"{name.lower()}.{uuid.uuid4().hex[:8]}@example.com",
            is_anonymous=is_anonymous,
        )
        db.add(user)
        await db.commit()
        db.expunge(user)
        return user

    return _make


@pytest.fixture
async def alice(make_user) -> User:
    return await make_user("Alice")


@pytest.fixture
async def bob(make_user) -> User:
    return await make_user("Bob")


@pytest.fixture
async def shared_group_id(db, alice) -> uuid.UUID:
    """A shared group with Alice as its only admin."""
    summary = await group_service.create_group(
        CreateGroupRequest(name="Flatmates", description="Weekly shop"), alice, db
    )
    return summary.id


@pytest.fixture
async def personal_group_id(db, alice) -> uuid.UUID:
    group = await ensure_personal_group(alice.id, db)
    return group.id


async def add_member(db, user: User, group_id: uuid.UUID, role: GroupRole = GroupRole.MEMBER):
    """Insert a membership directly, skipping the invite flow."""
    db.add(GroupMember(user_id=user.id, group_id=group_id, role=role))
    await db.commit()


async def seed_items(db, group_id: uuid.UUID, user: User, **amounts: int) -> None:
    for name, amount in amounts.items():
        db.add(ShoppingListItem(name=name, amount=amount, group_id=group_id, created_by_id=user.id))
    await db.commit()


def error_code(exc_info: pytest.ExceptionInfo) -> Optional[str]:
    err = exc_info.value
    return err.code.value if isinstance(err, AppError) else None


def record_postgres_sql(monkeypatch, db) -> list[str]:
    """Capture every statement the session executes, rendered as PostgreSQL.

    SQLite drops FOR UPDATE, so row locks are checked on the rendered SQL.
    """
    rendered: list[str] = []
    execute = db.execute

    async def _execute(statement, *args, **kwargs):
        rendered.append(str(statement.compile(dialect=postgresql.dialect())))
        return await execute(statement, *args, **kwargs)

    monkeypatch.setattr(db, "execute", _execute)
    return rendered


# ---------------------------------------------------------------------------
# Model doubles
# ---------------------------------------------------------------------------


class FakeGemini:
    """Stands in for GeminiService: replays canned text chunks and records prompts."""

    def __init__(self, chunks: list[str], error: Optional[Exception] = None):
        self.chunks = chunks
        self.error = error
        self.prompts: list[str] = []

    async def stream_json(self, prompt, schema, *, temperature=None):
        self.prompts.append(prompt)
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error


def split_text(text: str, size: int = 7) -> list[str]:
    """Cut a model answer into fixed-size pieces the way a stream would deliver it."""
    return [text[i : i + size] for i in range(0, len(text), size)]
