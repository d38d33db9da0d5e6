"""Sales and fulfilment metrics computed over read schemas.

Functions accept any objects exposing the relevant attributes (the
repositories' ``InvoiceRead``/``DealRead``/``ShipmentRead``), so they are
pure and easy to test.
"""

from __future__ import annotations

import re
from collections import Counter, defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Literal

from src.crm.deals.schemas import CLOSED_LOST, CLOSED_WON, is_closed_stage
from src.crm.invoices.utils import is_invoice_overdue

PeriodType = Literal["day", "week", "month"]

_MONTH_RE = re.compile(r"^\d{4}-\d{2}$")


@dataclass
class RevenuePoint:
    period: str
    revenue: float
    invoice_count: int
    avg_order_value: float


def _as_datetime(value: date | datetime | str) -> datetime:
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if not isinstance(value, datetime):
        value = datetime.combine(value, datetime.min.time())
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _days_between(start: date | datetime | str, end: date | datetime | str) -> int:
    return (_as_datetime(end) - _as_datetime(start)).days


def calculate_conversion_rate(converted: int, total: int) -> float:
    if total == 0:
        return 0.0
    return converted / total * 100


def calculate_customer_lifetime_value(invoices: Iterable[Any]) -> float:
    return sum(inv.total for inv in invoices if inv.status == "paid")


def calculate_churn_rate(total_customers: int, churned_customers: int) -> float:
    if total_customers == 0:
        return 0.0
    return churned_customers / total_customers * 100


def period_key(moment: date | datetime | str, period_type: PeriodType) -> str:
    d = _as_datetime(moment).date()
    if period_type == "month":
        return f"{d.year}-{d.month:02d}"
    if period_type == "week":
        iso_year, iso_week, _ = d.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    return d.isoformat()


def next_period(period: str, offset: int = 1) -> str:
    """Step a ``YYYY-MM``, ``YYYY-Www`` or ``YYYY-MM-DD`` key forward by ``offset``."""
    if "-W" in period:
        year, week = (int(p) for p in period.split("-W"))
        monday = date.fromisocalendar(year, week, 1) + timedelta(weeks=offset)
        return period_key(monday, "week")
    if _MONTH_RE.match(period):
        year, month = (int(p) for p in period.split("-"))
        index = year * 12 + (month - 1) + offset
        return f"{index // 12}-{index % 12 + 1:02d}"
    return (date.fromisoformat(period) + timedelta(days=offset)).isoformat()


def aggregate_revenue_by_period(
    invoices: Iterable[Any],
    period_type: PeriodType = "month",
) -> list[RevenuePoint]:
    """Group paid invoices with a paid_date by period, sorted by period key."""
    grouped: dict[str, list[float]] = defaultdict(list)
    for inv in invoices:
        if inv.status != "paid" or not inv.paid_date:
            continue
        grouped[period_key(inv.paid_date, period_type)].append(inv.total)

    points = [
        RevenuePoint(
            period=period,
            revenue=sum(totals),
            invoice_count=len(totals),
            avg_order_value=sum(totals) / len(totals),
        )
        for period, totals in grouped.items()
    ]
    return sorted(points, key=lambda p: p.period)


def calculate_average_order_value(invoices: Iterable[Any]) -> float:
    paid = [inv.total for inv in invoices if inv.status == "paid"]
    if not paid:
        return 0.0
    return sum(paid) / len(paid)


def forecast_revenue(history: Sequence[RevenuePoint], periods_ahead: int = 3) -> list[RevenuePoint]:
    """Project the mean of the last six periods forward. Needs two periods of history."""
    if len(history) < 2:
        return []
    recent = history[-6:]
    average = sum(p.revenue for p in recent) / len(recent)
    last = history[-1].period
    return [
        RevenuePoint(period=next_period(last, i), revenue=average, invoice_count=0, avg_order_value=0.0)
        for i in range(1, periods_ahead + 1)
    ]


def calculate_deal_velocity(deals: Iterable[Any], now: datetime | None = None) -> dict[str, int]:
    """Average age in days per stage (closed deals measured to closed_at)."""
    now = now or datetime.now(timezone.utc)
    durations: dict[str, list[int]] = defaultdict(list)
    for deal in deals:
        if not deal.created_at:
            continue
        end = deal.closed_at or now
        durations[deal.stage].append(_days_between(deal.created_at, end))
    return {stage: round(sum(days) / len(days)) for stage, days in durations.items()}


def calculate_on_time_delivery_rate(shipments: Iterable[Any]) -> float:
    delivered = [
        s
        for s in shipments
        if s.status == "delivered" and s.delivered_date and s.estimated_delivery_date
    ]
    if not delivered:
        return 0.0
    on_time = sum(
        1
        for s in delivered
        if _as_datetime(s.delivered_date).date() <= _as_datetime(s.estimated_delivery_date).date()
    )
    return on_time / len(delivered) * 100


def calculate_average_delivery_days(shipments: Iterable[Any]) -> int:
    delivered = [
        s for s in shipments if s.status == "delivered" and s.shipped_date and s.delivered_date
    ]
    if not delivered:
        return 0
    total = sum(_days_between(s.shipped_date, s.delivered_date) for s in delivered)
    return round(total / len(delivered))


def calculate_growth(current: float, previous: float) -> float:
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return (current - previous) / previous * 100


def format_growth_percentage(growth: float) -> str:
    sign = "+" if growth >= 0 else ""
    return f"{sign}{growth:.1f}%"


def build_dashboard(
    customers: Sequence[Any],
    deals: Sequence[Any],
    invoices: Sequence[Any],
    shipments: Sequence[Any],
    today: date | None = None,
) -> dict[str, Any]:
    """Summary metrics for the dashboard page."""
    open_deals = [d for d in deals if not is_closed_stage(d.stage)]
    won = sum(1 for d in deals if d.stage == CLOSED_WON)
    lost = sum(1 for d in deals if d.stage == CLOSED_LOST)
    revenue = aggregate_revenue_by_period(invoices, "month")

    return {
        "customers": {
            "total": len(customers),
            "by_status": dict(Counter(c.status for c in customers)),
        },
        "pipeline": {
            "open_deals": len(open_deals),
            "open_value": round(sum(d.value for d in open_deals), 2),
            "weighted_value": round(
                sum(d.value * (d.probability or 0) / 100 for d in open_deals), 2
            ),
            "conversion_rate": round(calculate_conversion_rate(won, won + lost), 1),
        },
        "revenue": {
            "by_month": [asdict(p) for p in revenue],
            "total_paid": round(calculate_customer_lifetime_value(invoices), 2),
            "average_order_value": round(calculate_average_order_value(invoices), 2),
            "forecast": [asdict(p) for p in forecast_revenue(revenue)],
        },
        "invoices": {
            "overdue": sum(1 for i in invoices if is_invoice_overdue(i.status, i.due_date, today)),
        },
        "shipments": {
            "total": len(shipments),
            "on_time_delivery_rate": round(calculate_on_time_delivery_rate(shipments), 1),
            "average_delivery_days": calculate_average_delivery_days(shipments),
        },
    }
