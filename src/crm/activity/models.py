"""Customer activity persistence models.

- TimelineEventModel: per-customer history (calls, notes, emails with delivery tracking)
- TaskModel: follow-ups and to-dos, optionally tied to a customer
- ActivityLogModel: audit trail of create/update/delete actions
"""

from __future__ import annotations

import uuid
from datetime import date, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.crm.core.database import Base


class TimelineEventModel(Base):
    __tablename__ = "customer_timeline"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    # Calls
    call_duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    call_outcome: Mapped[str | None] = mapped_column(String(100), nullable=True)
    call_follow_up_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Emails (delivery fields are filled in by Resend webhooks)
    email_subject: Mapped[str | None] = mapped_column(String(500), nullable=True)
    email_message_id: Mapped[str | None] = mapped_column(String(200), nullable=True, index=True)
    email_sent_to: Mapped[str | None] = mapped_column(String(320), nullable=True)
    email_sent_from: Mapped[str | None] = mapped_column(String(320), nullable=True)
    email_opened: Mapped[bool] = mapped_column(Boolean, default=False, server_default=text("false"))
    email_clicked: Mapped[bool] = mapped_column(Boolean, default=False, server_default=text("false"))
    email_clicked_link: Mapped[str | None] = mapped_column(Text, nullable=True)
    email_delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    email_opened_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    email_clicked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    email_bounced: Mapped[bool] = mapped_column(Boolean, default=False, server_default=text("false"))
    email_bounced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    email_bounce_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    email_spam_complaint: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false")
    )
    email_complained_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Deals and notes
    deal_stage: Mapped[str | None] = mapped_column(String(100), nullable=True)
    deal_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    note_category: Mapped[str | None] = mapped_column(String(50), nullable=True)

    data: Mapped[dict] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )


class TaskModel(Base):
    __tablename__ = "tasks"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("customers.id", ondelete="CASCADE"), nullable=True, index=True
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False, default="follow_up")
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    due_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    priority: Mapped[str] = mapped_column(String(10), nullable=False, default="medium")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reminder_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    reminder_sent: Mapped[bool] = mapped_column(Boolean, default=False, server_default=text("false"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )


class ActivityLogModel(Base):
    __tablename__ = "activity_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    category: Mapped[str] = mapped_column(String(30), nullable=False)
    entity_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    entity_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    entity_name: Mapped[str | None] = mapped_column(String(300), nullable=True)
    old_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    new_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    # "metadata" is reserved on declarative classes
    metadata_json: Mapped[dict] = mapped_column("metadata", JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        index=True,
    )
