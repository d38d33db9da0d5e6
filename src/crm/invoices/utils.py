"""Invoice helpers: money formatting, totals, Canadian sales tax, status display."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime
from typing import Any

# Combined GST/HST/PST/QST percentage per province or territory.
PROVINCIAL_TAX_RATES: dict[str, float] = {
    "AB": 5,
    "BC": 12,
    "MB": 12,
    "NB": 15,
    "NL": 15,
    "NT": 5,
    "NS": 15,
    "NU": 5,
    "ON": 13,
    "PE": 15,
    "QC": 14.975,
    "SK": 11,
    "YT": 5,
}

INVOICE_STATUS_LABELS: dict[str, str] = {
    "draft": "Draft",
    "sent": "Sent",
    "paid": "Paid",
    "overdue": "Overdue",
    "cancelled": "Cancelled",
}

INVOICE_STATUS_COLORS: dict[str, str] = {
    "draft": "bg-gray-500",
    "sent": "bg-blue-500",
    "paid": "bg-green-500",
    "overdue": "bg-red-500",
    "cancelled": "bg-gray-400",
}

_CURRENCY_SYMBOLS: dict[str, str] = {
    "CAD": "$",
    "USD": "US$",
    "EUR": "€",
    "GBP": "£",
}


def format_currency(amount: float, currency: str = "CAD") -> str:
    """Format an amount the way en-CA displays it, e.g. ``$1,234.50``."""
    symbol = _CURRENCY_SYMBOLS.get(currency.upper(), f"{currency.upper()} ")
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{abs(amount):,.2f}"


def _item_value(item: Any, key: str) -> float:
    if isinstance(item, dict):
        return float(item.get(key) or 0)
    return float(getattr(item, key, 0) or 0)


def calculate_invoice_totals(
    items: Iterable[Any],
    tax: float = 0.0,
    shipping: float = 0.0,
    discount: float = 0.0,
) -> dict[str, float]:
    """Sum line items and apply tax, shipping, and discount.

    Items may be dicts or objects exposing ``quantity`` and ``unit_price``.
    Every returned amount is rounded to cents.
    """
    subtotal = sum(_item_value(i, "quantity") * _item_value(i, "unit_price") for i in items)
    total = subtotal + tax + shipping - discount
    return {
        "subtotal": round(subtotal, 2),
        "tax": round(tax, 2),
        "shipping": round(shipping, 2),
        "discount": round(discount, 2),
        "total": round(total, 2),
    }


def calculate_tax(subtotal: float, tax_rate: float) -> float:
    """Tax owed on ``subtotal`` at ``tax_rate`` percent."""
    return round(subtotal * (tax_rate / 100), 2)


def get_provincial_tax_rate(province: str | None) -> float:
    if not province:
        return 0.0
    return float(PROVINCIAL_TAX_RATES.get(province.strip().upper(), 0))


def format_invoice_status(status: str) -> str:
    return INVOICE_STATUS_LABELS.get(status, status)


def get_invoice_status_color(status: str) -> str:
    return INVOICE_STATUS_COLORS.get(status, "bg-gray-500")


def _as_date(value: date | datetime | str | None) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(value).date()


def is_invoice_overdue(
    status: str,
    due_date: date | datetime | str | None,
    today: date | None = None,
) -> bool:
    """Paid and cancelled invoices are never overdue; no due date means not overdue."""
    if status in ("paid", "cancelled"):
        return False
    due = _as_date(due_date)
    if due is None:
        return False
    return due < (today or date.today())


def days_until_due(
    due_date: date | datetime | str | None,
    today: date | None = None,
) -> int | None:
    due = _as_date(due_date)
    if due is None:
        return None
    return (due - (today or date.today())).days


def format_date(value: date | datetime | str | None) -> str:
    """Short display date such as ``Dec 5, 2024``; ``N/A`` when missing."""
    d = _as_date(value)
    if d is None:
        return "N/A"
    return f"{d:%b} {d.day}, {d.year}"


def format_invoice_number(year: int, sequence: int) -> str:
    return f"INV-{year}-{sequence:04d}"
