"""Pydantic schemas for deals and pipeline stages."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field

CLOSED_WON = "Closed Won"
CLOSED_LOST = "Closed Lost"

# (name, order_index, color, probability)
DEFAULT_STAGES: list[tuple[str, int, str, float]] = [
    ("Lead", 0, "#94A3B8", 10),
    ("Qualified", 1, "#3B82F6", 25),
    ("Proposal", 2, "#8B5CF6", 50),
    ("Negotiation", 3, "#F59E0B", 75),
    (CLOSED_WON, 4, "#22C55E", 100),
    (CLOSED_LOST, 5, "#EF4444", 0),
]


def is_closed_stage(stage: str) -> bool:
    return stage.lower().startswith("closed")


class DealStageRead(BaseModel):
    id: str
    name: str
    order_index: int
    color: str | None = None
    probability: float = 0.0


class DealCreate(BaseModel):
    customer_id: str
    title: str = Field(..., min_length=1, max_length=300)
    value: float = Field(default=0.0, ge=0)
    stage: str = "Lead"
    probability: float | None = Field(default=None, ge=0, le=100)
    expected_close_date: date | None = None
    notes: str | None = None


class DealUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=300)
    value: float | None = Field(default=None, ge=0)
    stage: str | None = None
    probability: float | None = Field(default=None, ge=0, le=100)
    expected_close_date: date | None = None
    notes: str | None = None


class DealRead(BaseModel):
    id: str
    customer_id: str
    customer_name: str | None = None
    title: str
    value: float = 0.0
    stage: str
    probability: float | None = None
    expected_close_date: date | None = None
    notes: str | None = None
    closed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
