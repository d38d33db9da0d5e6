"""Pydantic schemas for shipments and tracking events."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, Field


class ShipmentStatus(str, Enum):
    PENDING = "pending"
    LABEL_CREATED = "label_created"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    EXCEPTION = "exception"
    CANCELLED = "cancelled"
    RETURNED = "returned"


class ShipmentCreate(BaseModel):
    """Persisted shipment after NetParcel has issued the label."""

    customer_id: str
    invoice_id: str | None = None
    order_number: str
    carrier: str | None = None
    tracking_number: str | None = None
    status: str = ShipmentStatus.LABEL_CREATED.value
    service_level: str | None = None
    package_count: int = Field(default=1, ge=1)
    actual_weight: float | None = None
    dimensions_length: float | None = None
    dimensions_width: float | None = None
    dimensions_height: float | None = None
    shipping_cost: float | None = None
    label_url: str | None = None
    estimated_delivery_date: date | None = None
    notes: str | None = None


class TrackingEvent(BaseModel):
    status: str
    message: str | None = None
    location: str | None = None
    timestamp: datetime


class ShippingEventRead(BaseModel):
    id: str
    status: str
    message: str | None = None
    location: str | None = None
    timestamp: datetime | None = None


class ShipmentRead(BaseModel):
    id: str
    customer_id: str
    customer_name: str | None = None
    invoice_id: str | None = None
    order_number: str
    carrier: str | None = None
    tracking_number: str | None = None
    status: str
    service_level: str | None = None
    package_count: int = 1
    actual_weight: float | None = None
    dimensions_length: float | None = None
    dimensions_width: float | None = None
    dimensions_height: float | None = None
    shipping_cost: float | None = None
    label_url: str | None = None
    estimated_delivery_date: date | None = None
    shipped_date: datetime | None = None
    delivered_date: datetime | None = None
    notes: str | None = None
    events: list[ShippingEventRead] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None
