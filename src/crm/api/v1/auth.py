"""Authentication API endpoints.

Provides login, token refresh, logout, and current user info. Login also
sets the browser session cookie so the page routes can be used without a
bearer header.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.crm.api.deps import get_current_user, get_db
from src.crm.config import Environment, get_settings
from src.crm.core.rate_limit import rate_limited
from src.crm.core.security import (
    create_access_token,
    create_refresh_token,
    verify_password,
    verify_token,
)
from src.crm.models.user import User
from src.crm.schemas.auth import (
    LoginRequest,
    TokenRefreshRequest,
    TokenResponse,
    UserResponse,
)

router = APIRouter(prefix="/auth", tags=["auth"])


def _token_data(user: User) -> dict:
    return {
        "sub": str(user.id),
        "email": user.email,
        "role": user.role,
    }


def _set_session_cookie(response: Response, access_token: str) -> None:
    settings = get_settings()
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=access_token,
        max_age=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        httponly=True,
        samesite="lax",
        secure=settings.ENVIRONMENT == Environment.production,
    )


@router.post(
    "/login",
    response_model=TokenResponse,
    dependencies=[Depends(rate_limited("auth"))],
)
async def login(body: LoginRequest, response: Response, db: AsyncSession = Depends(get_db)):
    """Authenticate a user, return JWT tokens, and start a browser session."""
    result = await db.execute(
        select(User).where(
            User.email == body.email.lower(),
            User.is_active == True,  # noqa: E712
        )
    )
    user = result.scalar_one_or_none()

    if not user or not user.hashed_password:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    if not verify_password(body.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    token_data = _token_data(user)
    access_token = create_access_token(token_data)
    _set_session_cookie(response, access_token)

    return TokenResponse(
        access_token=access_token,
        refresh_token=create_refresh_token(token_data),
    )


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(
    body: TokenRefreshRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    """Refresh an expired access token using a valid refresh token."""
    payload = verify_token(body.refresh_token, token_type="refresh")

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

    token_data = _token_data(user)
    access_token = create_access_token(token_data)
    _set_session_cookie(response, access_token)

    return TokenResponse(
        access_token=access_token,
        refresh_token=create_refresh_token(token_data),
    )


@router.post("/logout")
async def logout(response: Response):
    """End the browser session."""
    response.delete_cookie(get_settings().SESSION_COOKIE_NAME)
    return {"success": True}


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    """Return the signed-in user."""
    return UserResponse(
        id=str(current_user.id),
        email=current_user.email,
        name=current_user.name,
        role=current_user.role,
    )
