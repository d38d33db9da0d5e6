"""Pydantic schemas for global search results."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class SearchEntityType(str, Enum):
    CUSTOMER = "customer"
    DEAL = "deal"
    PRODUCT = "product"
    INVOICE = "invoice"


class SearchResult(BaseModel):
    entity_type: SearchEntityType
    entity_id: str
    title: str
    subtitle: str | None = None
    rank: float
