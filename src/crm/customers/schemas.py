"""Pydantic schemas for customers, contacts, tags, and saved searches."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


# ── Enums ───────────────────────────────────────────────────────────────────


class CustomerType(str, Enum):
    B2B = "B2B"
    B2C = "B2C"
    AFFILIATE = "Affiliate"


class CustomerStatus(str, Enum):
    QUALIFIED = "Qualified"
    INTERESTED = "Interested"
    NOT_QUALIFIED = "Not Qualified"
    NOT_INTERESTED = "Not Interested"
    DOG_STORE = "Dog Store"


# ── Tags ────────────────────────────────────────────────────────────────────


class TagCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    color: str = "#8B5CF6"


class TagRead(BaseModel):
    id: str
    name: str
    color: str
    created_at: datetime | None = None


# ── Contacts ────────────────────────────────────────────────────────────────


class ContactCreate(BaseModel):
    name: str = Field(..., min_length=1)
    role: str | None = None
    email: str | None = None
    phone: str | None = None
    is_primary: bool = False


class ContactUpdate(BaseModel):
    name: str | None = None
    role: str | None = None
    email: str | None = None
    phone: str | None = None
    is_primary: bool | None = None


class ContactRead(BaseModel):
    id: str
    customer_id: str
    name: str
    role: str | None = None
    email: str | None = None
    phone: str | None = None
    is_primary: bool = False
    created_at: datetime | None = None


# ── Customers ───────────────────────────────────────────────────────────────


class CustomerCreate(BaseModel):
    """Schema for creating a customer (store_name is the only required field)."""

    store_name: str = Field(..., min_length=1, max_length=300)
    email: str | None = None
    phone: str | None = None
    owner_manager_name: str | None = None
    type: CustomerType = CustomerType.B2B
    status: CustomerStatus = CustomerStatus.QUALIFIED
    notes: str | None = None
    province: str | None = None
    city: str | None = None
    street: str | None = None
    postal_code: str | None = None
    location_lat: float | None = None
    location_lng: float | None = None
    website: str | None = None
    contacts: list[ContactCreate] = Field(default_factory=list)


class CustomerUpdate(BaseModel):
    """Partial update; None fields are left unchanged."""

    store_name: str | None = Field(default=None, min_length=1, max_length=300)
    email: str | None = None
    phone: str | None = None
    owner_manager_name: str | None = None
    type: CustomerType | None = None
    status: CustomerStatus | None = None
    notes: str | None = None
    province: str | None = None
    city: str | None = None
    street: str | None = None
    postal_code: str | None = None
    location_lat: float | None = None
    location_lng: float | None = None
    website: str | None = None
    stripe_customer_id: str | None = None


class CustomerRead(BaseModel):
    id: str
    store_name: str
    email: str | None = None
    phone: str | None = None
    owner_manager_name: str | None = None
    type: str = CustomerType.B2B.value
    status: str = CustomerStatus.QUALIFIED.value
    notes: str | None = None
    province: str | None = None
    city: str | None = None
    street: str | None = None
    postal_code: str | None = None
    location_lat: float | None = None
    location_lng: float | None = None
    website: str | None = None
    stripe_customer_id: str | None = None
    contacts: list[ContactRead] = Field(default_factory=list)
    tags: list[TagRead] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def contact_name(self) -> str | None:
        """First contact's name, else the owner/manager."""
        if self.contacts:
            return self.contacts[0].name
        return self.owner_manager_name


class CustomerFilter(BaseModel):
    """Query parameters for the customer list."""

    search: str | None = None
    status: list[str] = Field(default_factory=list)
    city: list[str] = Field(default_factory=list)
    province: list[str] = Field(default_factory=list)
    type: str | None = None
    tag_id: str | None = None
    limit: int = Field(default=50, ge=1, le=500)
    offset: int = Field(default=0, ge=0)


class CustomerPage(BaseModel):
    items: list[CustomerRead]
    total: int


# ── Saved searches ──────────────────────────────────────────────────────────


class SavedSearchCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    filters: dict[str, Any] = Field(default_factory=dict)


class SavedSearchRead(BaseModel):
    id: str
    user_id: str
    name: str
    filters: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None


# ── Import ──────────────────────────────────────────────────────────────────


class ImportResult(BaseModel):
    imported: int = 0
    skipped: int = 0
    errors: list[str] = Field(default_factory=list)
