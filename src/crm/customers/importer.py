"""Bulk customer import from the lead-list CSV export.

The lead list uses its own column names (``Store``, ``CONSOLIDATED_emails_valid``,
``emails/0``...). Each row becomes a B2B customer; extra email addresses that
differ from the main one become secondary contacts.
"""

from __future__ import annotations

import csv
import io

import structlog

from src.crm.customers.schemas import ContactCreate, CustomerCreate, CustomerStatus, ImportResult

logger = structlog.get_logger(__name__)

_VALID_STATUSES = {s.value for s in CustomerStatus}


def map_status(raw: str | None) -> CustomerStatus:
    """Map a CSV status to a customer status; blanks and unknowns become Qualified."""
    value = (raw or "").strip()
    if value in _VALID_STATUSES:
        return CustomerStatus(value)
    return CustomerStatus.QUALIFIED


def _clean(row: dict[str, str | None], key: str) -> str | None:
    value = (row.get(key) or "").strip()
    return value or None


def row_to_customer(row: dict[str, str | None]) -> CustomerCreate | None:
    """Convert one CSV row to a CustomerCreate, or None if it has no store name."""
    store_name = _clean(row, "Store")
    if not store_name:
        return None

    main_email = _clean(row, "CONSOLIDATED_emails_valid") or _clean(row, "emails/0")

    contacts: list[ContactCreate] = []
    for key in ("emails/0", "emails/1"):
        extra = _clean(row, key)
        if extra and extra != main_email:
            contacts.append(ContactCreate(name="Secondary Contact", email=extra))

    return CustomerCreate(
        store_name=store_name,
        email=main_email,
        phone=_clean(row, "Phone"),
        status=map_status(row.get("Status")),
        city=_clean(row, "City"),
        province=_clean(row, "Province"),
        street=_clean(row, "Street"),
        postal_code=_clean(row, "Postal Code"),
        website=_clean(row, "Website"),
        notes=_clean(row, "Notes"),
        contacts=contacts,
    )


def parse_customer_csv(content: str) -> tuple[list[CustomerCreate], int]:
    """Parse CSV text into customers; returns (customers, skipped_row_count)."""
    reader = csv.DictReader(io.StringIO(content))
    customers: list[CustomerCreate] = []
    skipped = 0
    for row in reader:
        customer = row_to_customer(row)
        if customer is None:
            skipped += 1
            continue
        customers.append(customer)
    return customers, skipped


async def import_customers(repository, content: str) -> ImportResult:
    """Create every customer in the CSV; individual row failures are collected."""
    customers, skipped = parse_customer_csv(content)
    result = ImportResult(skipped=skipped)

    for customer in customers:
        try:
            await repository.create_customer(customer)
            result.imported += 1
        except Exception as exc:
            logger.warning("customers.import_row_failed", store_name=customer.store_name, error=str(exc))
            result.errors.append(f"{customer.store_name}: {exc}")

    logger.info(
        "customers.import_completed",
        imported=result.imported,
        skipped=result.skipped,
        failed=len(result.errors),
    )
    return result
