"""Pydantic schemas for invoices and their line items."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, Field


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class InvoiceItemCreate(BaseModel):
    product_id: str | None = None
    product_sku: str | None = None
    description: str | None = None
    quantity: float = Field(default=1, gt=0)
    unit_price: float = Field(..., ge=0)


class InvoiceItemRead(BaseModel):
    id: str
    product_id: str | None = None
    product_sku: str | None = None
    description: str | None = None
    quantity: float
    unit_price: float
    total: float


class InvoiceCreate(BaseModel):
    """New invoice. ``tax`` of None means the customer's provincial rate applies."""

    customer_id: str
    issue_date: date | None = None
    due_date: date | None = None
    tax: float | None = Field(default=None, ge=0)
    shipping: float = Field(default=0.0, ge=0)
    discount: float = Field(default=0.0, ge=0)
    currency: str = "CAD"
    notes: str | None = None
    items: list[InvoiceItemCreate] = Field(default_factory=list)


class InvoiceUpdate(BaseModel):
    status: InvoiceStatus | None = None
    due_date: date | None = None
    notes: str | None = None
    pdf_url: str | None = None


class InvoiceFilter(BaseModel):
    customer_id: str | None = None
    status: str | None = None
    date_from: date | None = None
    date_to: date | None = None


class InvoiceRead(BaseModel):
    id: str
    invoice_number: str
    customer_id: str
    customer_name: str | None = None
    customer_email: str | None = None
    status: str
    issue_date: date | None = None
    due_date: date | None = None
    subtotal: float = 0.0
    tax: float = 0.0
    shipping: float = 0.0
    discount: float = 0.0
    total: float = 0.0
    currency: str = "CAD"
    notes: str | None = None
    stripe_invoice_id: str | None = None
    pdf_url: str | None = None
    sent_date: datetime | None = None
    paid_date: datetime | None = None
    items: list[InvoiceItemRead] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None
