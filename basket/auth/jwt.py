from __future__ import annotations

import os
import uuid
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Cookie, Depends, HTTPException, status
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from basket.db.database import get_db
from basket.db.models import User

_JWT_ALGORITHM = "HS256"
_JWT_EXPIRE_MINUTES = 60 * 24 * 30  # 30 days

ACCESS_TOKEN_COOKIE = "access_token"


def _jwt_secret() -> str:
    return os.getenv("JWT_SECRET_KEY", "")


def create_access_token(user_id: uuid.UUID) -> str:
    expire = datetime.utcnow() + timedelta(minutes=_JWT_EXPIRE_MINUTES)
    claims = {"sub": str(user_id), "exp": expire}
    return jwt.encode(claims, _jwt_secret(), algorithm=_JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[uuid.UUID]:
    """Return the user id carried by a session token, or None if it is not usable."""
    secret = _jwt_secret()
    if not secret:
        return None
    try:
        payload = jwt.decode(token, secret, algorithms=[_JWT_ALGORITHM])
        return uuid.UUID(payload.get("sub", ""))
    except (JWTError, ValueError):
        return None


async def get_current_user(
    access_token: Optional[str] = Cookie(default=None, alias=ACCESS_TOKEN_COOKIE),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Resolve the session cookie to a user. Anonymous users are real rows too."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
    )
    if not access_token:
        raise credentials_exception

    user_id = decode_access_token(access_token)
    if user_id is None:
        raise credentials_exception

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise credentials_exception
    return user
