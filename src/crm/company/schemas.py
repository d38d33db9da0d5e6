"""Pydantic schemas for the company profile."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class CompanySettingsUpdate(BaseModel):
    """PUT body. ``name`` is required only when no profile exists yet."""

    name: str | None = Field(default=None, min_length=1, max_length=300)
    address: str | None = None
    city: str | None = None
    province: str | None = None
    postal_code: str | None = None
    country: str | None = None
    phone: str | None = None
    email: str | None = None
    website: str | None = None
    logo_url: str | None = None
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    tax_rate: float | None = Field(default=None, ge=0, le=100)


class CompanySettingsRead(BaseModel):
    id: str
    name: str
    address: str | None = None
    city: str | None = None
    province: str | None = None
    postal_code: str | None = None
    country: str | None = None
    phone: str | None = None
    email: str | None = None
    website: str | None = None
    logo_url: str | None = None
    currency: str = "CAD"
    tax_rate: float = 0.0
    updated_at: datetime | None = None
