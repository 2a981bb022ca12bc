from __future__ import annotations

import logging
import secrets
import string

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from basket.db.models import Group
from basket.errors import ErrorCode, InternalError

logger = logging.getLogger(__name__)

INVITE_CODE_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits
INVITE_CODE_LENGTH = 6
MAX_INVITE_CODE_ATTEMPTS = 5


def generate_code() -> str:
    """Draw a readable 6-character invite code. Uniqueness is not checked."""
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(INVITE_CODE_LENGTH))


async def ensure_unique_invite_code(
    db: AsyncSession, max_attempts: int = MAX_INVITE_CODE_ATTEMPTS
) -> str:
    """Draw codes until one is unused by any group, giving up after max_attempts."""
    for attempt in range(1, max_attempts + 1):
        code = generate_code()
        result = await db.execute(select(Group.id).where(Group.invite_code == code))
        if result.scalar_one_or_none() is None:
            return code
        logger.warning("Invite code collision on attempt %d/%d", attempt, max_attempts)

    raise InternalError(ErrorCode.INVITE_CODE_EXHAUSTED)
