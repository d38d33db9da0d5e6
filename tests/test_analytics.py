"""Unit tests for dashboard analytics over read-schema-like objects."""

from __future__ import annotations

from datetime import date, datetime, timezone
from types import SimpleNamespace

import pytest

from src.crm.common.analytics import (
    RevenuePoint,
    aggregate_revenue_by_period,
    build_dashboard,
    calculate_average_delivery_days,
    calculate_average_order_value,
    calculate_churn_rate,
    calculate_conversion_rate,
    calculate_deal_velocity,
    calculate_growth,
    calculate_on_time_delivery_rate,
    forecast_revenue,
    format_growth_percentage,
    next_period,
    period_key,
)


def _invoice(total, status="paid", paid_date=None, due_date=None):
    return SimpleNamespace(total=total, status=status, paid_date=paid_date, due_date=due_date)


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


# ── Rates ────────────────────────────────────────────────────────────────────


def test_rates_handle_zero_denominators():
    assert calculate_conversion_rate(0, 0) == 0.0
    assert calculate_conversion_rate(1, 4) == 25.0
    assert calculate_churn_rate(0, 5) == 0.0
    assert calculate_churn_rate(10, 1) == 10.0


def test_growth():
    assert calculate_growth(150, 100) == 50.0
    assert calculate_growth(10, 0) == 100.0
    assert calculate_growth(0, 0) == 0.0
    assert format_growth_percentage(12.345) == "+12.3%"
    assert format_growth_percentage(-4.0) == "-4.0%"


# ── Periods ──────────────────────────────────────────────────────────────────


def test_period_keys():
    moment = _utc(2025, 3, 5, 12)
    assert period_key(moment, "month") == "2025-03"
    assert period_key(moment, "day") == "2025-03-05"
    assert period_key(moment, "week") == "2025-W10"


def test_week_key_uses_iso_year():
    # 2024-12-30 belongs to ISO week 1 of 2025
    assert period_key(date(2024, 12, 30), "week") == "2025-W01"


@pytest.mark.parametrize(
    "period,offset,expected",
    [
        ("2025-11", 1, "2025-12"),
        ("2025-12", 1, "2026-01"),
        ("2025-01", 14, "2026-03"),
        ("2024-W52", 1, "2025-W01"),
        ("2025-02-28", 1, "2025-03-01"),
    ],
)
def test_next_period(period, offset, expected):
    assert next_period(period, offset) == expected


# ── Revenue ──────────────────────────────────────────────────────────────────


def test_aggregate_revenue_ignores_unpaid_and_undated():
    invoices = [
        _invoice(100, paid_date=_utc(2025, 1, 10)),
        _invoice(300, paid_date=_utc(2025, 1, 20)),
        _invoice(50, paid_date=_utc(2025, 2, 1)),
        _invoice(999, status="sent", paid_date=_utc(2025, 1, 5)),
        _invoice(999, paid_date=None),
    ]
    points = aggregate_revenue_by_period(invoices, "month")

    assert [p.period for p in points] == ["2025-01", "2025-02"]
    assert points[0].revenue == 400
    assert points[0].invoice_count == 2
    assert points[0].avg_order_value == 200
    assert points[1].revenue == 50


def test_average_order_value_uses_paid_only():
    assert calculate_average_order_value([_invoice(100), _invoice(200), _invoice(1000, status="draft")]) == 150
    assert calculate_average_order_value([]) == 0.0


def test_forecast_needs_two_periods():
    assert forecast_revenue([RevenuePoint("2025-01", 100, 1, 100)]) == []


def test_forecast_projects_recent_average():
    history = [RevenuePoint(f"2025-{m:02d}", float(m * 100), 1, 0.0) for m in range(1, 9)]
    forecast = forecast_revenue(history, periods_ahead=2)

    # mean of months 3..8
    assert [p.period for p in forecast] == ["2025-09", "2025-10"]
    assert forecast[0].revenue == pytest.approx(550.0)
    assert forecast[0].invoice_count == 0


# ── Deals and shipments ──────────────────────────────────────────────────────


def test_deal_velocity_averages_days_per_stage():
    now = _utc(2025, 3, 31)
    deals = [
        SimpleNamespace(stage="Lead", created_at=_utc(2025, 3, 21), closed_at=None),
        SimpleNamespace(stage="Lead", created_at=_utc(2025, 3, 1), closed_at=None),
        SimpleNamespace(stage="Closed Won", created_at=_utc(2025, 1, 1), closed_at=_utc(2025, 1, 11)),
        SimpleNamespace(stage="Proposal", created_at=None, closed_at=None),
    ]
    assert calculate_deal_velocity(deals, now=now) == {"Lead": 20, "Closed Won": 10}


def _shipment(status="delivered", shipped=None, delivered=None, estimated=None):
    return SimpleNamespace(
        status=status,
        shipped_date=shipped,
        delivered_date=delivered,
        estimated_delivery_date=estimated,
    )


def test_on_time_delivery_rate():
    shipments = [
        _shipment(delivered=_utc(2025, 3, 10), estimated=date(2025, 3, 10)),
        _shipment(delivered=_utc(2025, 3, 12), estimated=date(2025, 3, 10)),
        _shipment(status="in_transit", estimated=date(2025, 3, 10)),
    ]
    assert calculate_on_time_delivery_rate(shipments) == 50.0
    assert calculate_on_time_delivery_rate([]) == 0.0


def test_average_delivery_days():
    shipments = [
        _shipment(shipped=_utc(2025, 3, 1), delivered=_utc(2025, 3, 4)),
        _shipment(shipped=_utc(2025, 3, 1), delivered=_utc(2025, 3, 6)),
        _shipment(shipped=None, delivered=_utc(2025, 3, 6)),
    ]
    assert calculate_average_delivery_days(shipments) == 4


# ── Dashboard ────────────────────────────────────────────────────────────────


def test_build_dashboard_summary():
    customers = [SimpleNamespace(status="Qualified"), SimpleNamespace(status="Qualified"), SimpleNamespace(status="Interested")]
    deals = [
        SimpleNamespace(stage="Lead", value=1000.0, probability=10),
        SimpleNamespace(stage="Proposal", value=2000.0, probability=None),
        SimpleNamespace(stage="Closed Won", value=500.0, probability=100),
        SimpleNamespace(stage="Closed Lost", value=800.0, probability=0),
        SimpleNamespace(stage="Closed Won", value=700.0, probability=100),
    ]
    invoices = [
        _invoice(100, paid_date=_utc(2025, 1, 3)),
        _invoice(200, status="sent", due_date=date(2025, 1, 1)),
        _invoice(300, status="sent", due_date=date(2025, 12, 1)),
    ]
    dashboard = build_dashboard(customers, deals, invoices, shipments=[], today=date(2025, 6, 1))

    assert dashboard["customers"] == {"total": 3, "by_status": {"Qualified": 2, "Interested": 1}}
    assert dashboard["pipeline"] == {
        "open_deals": 2,
        "open_value": 3000.0,
        "weighted_value": 100.0,
        "conversion_rate": 66.7,
    }
    assert dashboard["revenue"]["total_paid"] == 100
    assert dashboard["revenue"]["by_month"][0]["period"] == "2025-01"
    assert dashboard["revenue"]["forecast"] == []
    assert dashboard["invoices"]["overdue"] == 1
    assert dashboard["shipments"]["total"] == 0
