"""Pydantic schemas for the product catalog."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class ProductCreate(BaseModel):
    sku: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=300)
    description: str | None = None
    unit_price: float = Field(..., ge=0)
    currency: str = Field(default="CAD", min_length=3, max_length=3)
    active: bool = True


class ProductUpdate(BaseModel):
    sku: str | None = Field(default=None, min_length=1, max_length=100)
    name: str | None = Field(default=None, min_length=1, max_length=300)
    description: str | None = None
    unit_price: float | None = Field(default=None, ge=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    active: bool | None = None


class ProductRead(BaseModel):
    id: str
    sku: str
    name: str
    description: str | None = None
    unit_price: float
    currency: str = "CAD"
    active: bool = True
    stripe_price_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
