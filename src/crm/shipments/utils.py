"""Shipping helpers: weight and cost estimates, delivery dates, package limits."""

from __future__ import annotations

import math
import re
from datetime import date, timedelta

# Distance multiplier from the Ontario warehouse.
PROVINCE_MULTIPLIERS: dict[str, float] = {
    "ON": 1.0,
    "QC": 1.1,
    "BC": 1.5,
    "AB": 1.4,
    "SK": 1.3,
    "MB": 1.3,
    "NS": 1.2,
    "NB": 1.2,
    "PE": 1.2,
    "NL": 1.6,
    "YT": 2.0,
    "NT": 2.0,
    "NU": 2.0,
}

DISTANT_PROVINCES = frozenset({"BC", "AB", "SK", "MB", "NL", "YT", "NT", "NU"})

MAX_LENGTH_IN = 108
MAX_GIRTH_IN = 165
MAX_WEIGHT_LB = 150

SHIPMENT_STATUS_LABELS: dict[str, str] = {
    "pending": "Pending",
    "label_created": "Label Created",
    "picked_up": "Picked Up",
    "in_transit": "In Transit",
    "out_for_delivery": "Out for Delivery",
    "delivered": "Delivered",
    "exception": "Exception",
    "cancelled": "Cancelled",
    "returned": "Returned",
}

SHIPMENT_STATUS_COLORS: dict[str, str] = {
    "pending": "gray",
    "label_created": "blue",
    "picked_up": "blue",
    "in_transit": "purple",
    "out_for_delivery": "yellow",
    "delivered": "green",
    "exception": "red",
    "cancelled": "gray",
    "returned": "orange",
}

CANCELLABLE_STATUSES = frozenset({"pending", "label_created"})


def calculate_dimensional_weight(length: float, width: float, height: float) -> int:
    """Dimensional weight in lbs for inch dimensions (divisor 166)."""
    return math.ceil((length * width * height) / 166)


def estimate_shipping_cost(weight: float, province: str, service_level: str = "ground") -> float:
    base_rate = 15 if service_level == "express" else 10
    multiplier = PROVINCE_MULTIPLIERS.get(province, 1.0)
    return round((base_rate + weight * 0.5) * multiplier, 2)


def format_tracking_number(tracking_number: str | None) -> str:
    """Strip spaces and dashes, then regroup in blocks of four: ``1Z99-9AA1-...``."""
    if not tracking_number:
        return ""
    cleaned = re.sub(r"[\s-]", "", tracking_number)
    return "-".join(cleaned[i : i + 4] for i in range(0, len(cleaned), 4))


def business_days_for(service_level: str, province: str) -> int:
    level = service_level.lower()
    if "express" in level:
        return 1
    if "priority" in level:
        return 2
    return 7 if province in DISTANT_PROVINCES else 5


def estimate_delivery_date(
    service_level: str,
    province: str,
    ship_date: date | None = None,
) -> date:
    """Add the service's business days to ``ship_date``, skipping weekends."""
    current = ship_date or date.today()
    remaining = business_days_for(service_level, province)
    while remaining > 0:
        current += timedelta(days=1)
        if current.weekday() < 5:
            remaining -= 1
    return current


def validate_package(length: float, width: float, height: float, weight: float) -> list[str]:
    """Return carrier limit violations; an empty list means the package is valid."""
    errors: list[str] = []
    if length <= 0 or width <= 0 or height <= 0:
        errors.append("All dimensions must be greater than 0")
    if length > MAX_LENGTH_IN:
        errors.append(f"Length cannot exceed {MAX_LENGTH_IN} inches")
    girth = length + 2 * (width + height)
    if girth > MAX_GIRTH_IN:
        errors.append(f"Girth (L + 2W + 2H) cannot exceed {MAX_GIRTH_IN} inches")
    if weight <= 0:
        errors.append("Weight must be greater than 0")
    if weight > MAX_WEIGHT_LB:
        errors.append(f"Weight cannot exceed {MAX_WEIGHT_LB} lbs")
    return errors


def get_status_label(status: str) -> str:
    return SHIPMENT_STATUS_LABELS.get(status, status)


def get_status_color(status: str) -> str:
    return SHIPMENT_STATUS_COLORS.get(status, "gray")


def can_cancel_shipment(status: str) -> bool:
    return status in CANCELLABLE_STATUSES


def can_edit_shipment(status: str) -> bool:
    return status == "pending"
