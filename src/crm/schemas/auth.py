"""Pydantic schemas for authentication API endpoints."""

from __future__ import annotations

from pydantic import BaseModel, EmailStr, Field


class LoginRequest(BaseModel):
    """Request schema for user login."""

    email: EmailStr = Field(..., description="User email address")
    password: str = Field(..., min_length=1, description="User password")


class TokenResponse(BaseModel):
    """Access and refresh tokens; the access token is also set as the session cookie."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class TokenRefreshRequest(BaseModel):
    refresh_token: str = Field(..., description="Valid refresh token")


class UserResponse(BaseModel):
    id: str
    email: str
    name: str | None = None
    role: str
