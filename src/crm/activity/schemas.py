"""Pydantic schemas for timeline events, tasks, and the activity log."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class TimelineEventType(str, Enum):
    CALL = "call"
    EMAIL = "email"
    NOTE = "note"
    INVOICE = "invoice"
    SHIPMENT = "shipment"
    DEAL = "deal"


class TaskType(str, Enum):
    CALL = "call"
    EMAIL = "email"
    FOLLOW_UP = "follow_up"
    OTHER = "other"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TaskStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# ── Timeline ────────────────────────────────────────────────────────────────


class TimelineEventCreate(BaseModel):
    type: TimelineEventType
    user_id: str | None = None
    call_duration_minutes: int | None = Field(default=None, ge=0)
    call_outcome: str | None = None
    call_follow_up_date: date | None = None
    email_subject: str | None = None
    email_message_id: str | None = None
    email_sent_to: str | None = None
    email_sent_from: str | None = None
    deal_stage: str | None = None
    deal_value: float | None = None
    note_category: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)


class EmailTrackingUpdate(BaseModel):
    """Delivery-status fields written by the Resend webhook."""

    email_delivered_at: datetime | None = None
    email_opened: bool | None = None
    email_opened_at: datetime | None = None
    email_clicked: bool | None = None
    email_clicked_at: datetime | None = None
    email_clicked_link: str | None = None
    email_bounced: bool | None = None
    email_bounced_at: datetime | None = None
    email_bounce_reason: str | None = None
    email_spam_complaint: bool | None = None
    email_complained_at: datetime | None = None


class TimelineEventRead(BaseModel):
    id: str
    customer_id: str
    type: str
    user_id: str | None = None
    call_duration_minutes: int | None = None
    call_outcome: str | None = None
    call_follow_up_date: date | None = None
    email_subject: str | None = None
    email_message_id: str | None = None
    email_sent_to: str | None = None
    email_sent_from: str | None = None
    email_opened: bool = False
    email_clicked: bool = False
    email_clicked_link: str | None = None
    email_delivered_at: datetime | None = None
    email_opened_at: datetime | None = None
    email_clicked_at: datetime | None = None
    email_bounced: bool = False
    email_bounced_at: datetime | None = None
    email_bounce_reason: str | None = None
    email_spam_complaint: bool = False
    email_complained_at: datetime | None = None
    deal_stage: str | None = None
    deal_value: float | None = None
    note_category: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None


# ── Tasks ───────────────────────────────────────────────────────────────────


class TaskCreate(BaseModel):
    customer_id: str | None = None
    type: TaskType = TaskType.FOLLOW_UP
    title: str = Field(..., min_length=1, max_length=300)
    due_date: datetime
    priority: TaskPriority = TaskPriority.MEDIUM
    notes: str | None = None
    reminder_time: datetime | None = None


class TaskUpdate(BaseModel):
    type: TaskType | None = None
    title: str | None = Field(default=None, min_length=1, max_length=300)
    due_date: datetime | None = None
    priority: TaskPriority | None = None
    status: TaskStatus | None = None
    notes: str | None = None
    reminder_time: datetime | None = None


class TaskRead(BaseModel):
    id: str
    customer_id: str | None = None
    type: str
    title: str
    due_date: datetime
    priority: str
    status: str
    notes: str | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None
    reminder_time: datetime | None = None
    reminder_sent: bool = False


# ── Activity log ────────────────────────────────────────────────────────────


class ActivityLogCreate(BaseModel):
    user_email: str | None = None
    action: str
    category: str
    entity_type: str | None = None
    entity_id: str | None = None
    entity_name: str | None = None
    old_data: dict[str, Any] | None = None
    new_data: dict[str, Any] | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class ActivityLogRead(BaseModel):
    id: str
    user_email: str | None = None
    action: str
    category: str
    entity_type: str | None = None
    entity_id: str | None = None
    entity_name: str | None = None
    old_data: dict[str, Any] | None = None
    new_data: dict[str, Any] | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None
