"""FastAPI dependency injection for database sessions and authentication.

These dependencies are used in endpoint function signatures to inject the
database session and the authenticated CRM user.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.crm.config import get_settings
from src.crm.core.database import get_session
from src.crm.core.security import verify_token
from src.crm.models.user import User


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Get a database session."""
    async for session in get_session():
        yield session


def _token_from_request(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:]
    return request.cookies.get(get_settings().SESSION_COOKIE_NAME)


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> User:
    """Extract and validate the current user from a Bearer JWT or the session cookie.

    Raises:
        HTTPException(401): If no valid authentication is provided or the
            user is missing or inactive.
    """
    token = _token_from_request(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = verify_token(token, token_type="access")
    try:
        user_id = uuid.UUID(payload["sub"])
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )

    result = await db.execute(
        select(User).where(
            User.id == user_id,
            User.is_active == True,  # noqa: E712
        )
    )
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )
    return user


# Alias for cleaner endpoint signatures
require_auth = Depends(get_current_user)
