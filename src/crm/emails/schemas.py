"""Pydantic schemas for email templates, campaigns, and the send endpoint."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CampaignStatus(str, Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    SENDING = "sending"
    SENT = "sent"
    CANCELLED = "cancelled"


# ── Templates ───────────────────────────────────────────────────────────────


class EmailTemplateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    subject: str = Field(..., min_length=1, max_length=500)
    body: str = Field(..., min_length=1)
    category: str | None = None
    active: bool = True


class EmailTemplateUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    subject: str | None = Field(default=None, min_length=1, max_length=500)
    body: str | None = None
    category: str | None = None
    active: bool | None = None


class EmailTemplateRead(BaseModel):
    id: str
    name: str
    subject: str
    body: str
    category: str | None = None
    variables: list[str] = Field(default_factory=list)
    active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ── Campaigns ───────────────────────────────────────────────────────────────


class EmailCampaignCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    template_id: str | None = None
    status: CampaignStatus = CampaignStatus.DRAFT
    scheduled_date: datetime | None = None


class EmailCampaignUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    template_id: str | None = None
    status: CampaignStatus | None = None
    scheduled_date: datetime | None = None
    sent_date: datetime | None = None
    recipient_count: int | None = Field(default=None, ge=0)
    opened_count: int | None = Field(default=None, ge=0)
    clicked_count: int | None = Field(default=None, ge=0)
    bounced_count: int | None = Field(default=None, ge=0)


class EmailCampaignRead(BaseModel):
    id: str
    name: str
    template_id: str | None = None
    status: str
    scheduled_date: datetime | None = None
    sent_date: datetime | None = None
    recipient_count: int = 0
    opened_count: int = 0
    clicked_count: int = 0
    bounced_count: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ── Send ────────────────────────────────────────────────────────────────────


class SendEmailRequest(BaseModel):
    """Body of POST /api/email/send (camelCase keys accepted)."""

    model_config = ConfigDict(populate_by_name=True)

    customer_id: str | None = Field(default=None, alias="customerId")
    to: str | None = None
    subject: str | None = None
    body: str | None = None
    template_id: str | None = Field(default=None, alias="templateId")
    context: dict[str, Any] = Field(default_factory=dict)
