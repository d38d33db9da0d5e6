"""Invoice repository -- numbering, totals, status transitions, Stripe linkage.

Invoice numbers are sequential per calendar year (``INV-2025-0001``). Totals
are always recomputed from the line items on create, so callers never send
subtotal or total.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import date, datetime, timezone

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.crm.customers.models import CustomerModel
from src.crm.invoices.models import InvoiceItemModel, InvoiceModel
from src.crm.invoices.schemas import (
    InvoiceCreate,
    InvoiceFilter,
    InvoiceItemRead,
    InvoiceRead,
    InvoiceUpdate,
)
from src.crm.invoices.utils import (
    calculate_invoice_totals,
    calculate_tax,
    format_invoice_number,
    get_provincial_tax_rate,
)

logger = structlog.get_logger(__name__)


# ── Serialization Helpers ───────────────────────────────────────────────────


def _model_to_item(model: InvoiceItemModel) -> InvoiceItemRead:
    return InvoiceItemRead(
        id=str(model.id),
        product_id=str(model.product_id) if model.product_id else None,
        product_sku=model.product_sku,
        description=model.description,
        quantity=model.quantity,
        unit_price=model.unit_price,
        total=model.total,
    )


def _model_to_invoice(
    model: InvoiceModel,
    customer_name: str | None = None,
    customer_email: str | None = None,
) -> InvoiceRead:
    return InvoiceRead(
        id=str(model.id),
        invoice_number=model.invoice_number,
        customer_id=str(model.customer_id),
        customer_name=customer_name,
        customer_email=customer_email,
        status=model.status,
        issue_date=model.issue_date,
        due_date=model.due_date,
        subtotal=model.subtotal or 0.0,
        tax=model.tax or 0.0,
        shipping=model.shipping or 0.0,
        discount=model.discount or 0.0,
        total=model.total or 0.0,
        currency=model.currency,
        notes=model.notes,
        stripe_invoice_id=model.stripe_invoice_id,
        pdf_url=model.pdf_url,
        sent_date=model.sent_date,
        paid_date=model.paid_date,
        items=[_model_to_item(i) for i in model.items],
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _invoice_stmt():
    return (
        select(InvoiceModel, CustomerModel.store_name, CustomerModel.email)
        .outerjoin(CustomerModel, CustomerModel.id == InvoiceModel.customer_id)
        .options(selectinload(InvoiceModel.items))
        .execution_options(populate_existing=True)
    )


def _parse_sequence(invoice_number: str) -> int:
    try:
        return int(invoice_number.rsplit("-", 1)[-1])
    except ValueError:
        return 0


# ── Repository ──────────────────────────────────────────────────────────────


class InvoiceRepository:
    """Async CRUD and lifecycle operations for invoices.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    # ── Queries ─────────────────────────────────────────────────────────────

    async def list_invoices(self, filters: InvoiceFilter | None = None) -> list[InvoiceRead]:
        """List invoices newest first. Date filters apply to issue_date."""
        filters = filters or InvoiceFilter()
        async for session in self._session_factory():
            stmt = _invoice_stmt().order_by(InvoiceModel.created_at.desc())
            if filters.customer_id:
                stmt = stmt.where(InvoiceModel.customer_id == uuid.UUID(filters.customer_id))
            if filters.status:
                stmt = stmt.where(InvoiceModel.status == filters.status)
            if filters.date_from:
                stmt = stmt.where(InvoiceModel.issue_date >= filters.date_from)
            if filters.date_to:
                stmt = stmt.where(InvoiceModel.issue_date <= filters.date_to)
            result = await session.execute(stmt)
            return [_model_to_invoice(inv, name, email) for inv, name, email in result.all()]

    async def get_invoice(self, invoice_id: str) -> InvoiceRead | None:
        try:
            iid = uuid.UUID(invoice_id)
        except ValueError:
            return None
        async for session in self._session_factory():
            return await self._fetch(session, InvoiceModel.id == iid)

    async def get_by_stripe_id(self, stripe_invoice_id: str) -> InvoiceRead | None:
        async for session in self._session_factory():
            return await self._fetch(session, InvoiceModel.stripe_invoice_id == stripe_invoice_id)

    async def count_invoices(self) -> int:
        async for session in self._session_factory():
            result = await session.execute(select(func.count()).select_from(InvoiceModel))
            return result.scalar_one()

    # ── Mutations ───────────────────────────────────────────────────────────

    async def create_invoice(self, data: InvoiceCreate) -> InvoiceRead:
        """Create an invoice with its items.

        Raises:
            ValueError: If the customer does not exist.
        """
        async for session in self._session_factory():
            customer = await session.get(CustomerModel, uuid.UUID(data.customer_id))
            if customer is None:
                raise ValueError(f"Customer not found: id={data.customer_id}")

            issue_date = data.issue_date or date.today()
            number = await self._next_invoice_number(session, issue_date.year)

            subtotal = calculate_invoice_totals(data.items)["subtotal"]
            tax = data.tax
            if tax is None:
                tax = calculate_tax(subtotal, get_provincial_tax_rate(customer.province))
            totals = calculate_invoice_totals(data.items, tax, data.shipping, data.discount)

            model = InvoiceModel(
                invoice_number=number,
                customer_id=customer.id,
                status="draft",
                issue_date=issue_date,
                due_date=data.due_date,
                currency=data.currency,
                notes=data.notes,
                **totals,
            )
            for item in data.items:
                model.items.append(
                    InvoiceItemModel(
                        product_id=uuid.UUID(item.product_id) if item.product_id else None,
                        product_sku=item.product_sku,
                        description=item.description,
                        quantity=item.quantity,
                        unit_price=item.unit_price,
                        total=round(item.quantity * item.unit_price, 2),
                    )
                )
            session.add(model)
            await session.commit()
            logger.info(
                "invoices.created",
                invoice_id=str(model.id),
                invoice_number=number,
                total=totals["total"],
            )
            return await self._fetch(session, InvoiceModel.id == model.id)

    async def update_invoice(self, invoice_id: str, data: InvoiceUpdate) -> InvoiceRead:
        async for session in self._session_factory():
            model = await session.get(InvoiceModel, uuid.UUID(invoice_id))
            if model is None:
                raise ValueError(f"Invoice not found: id={invoice_id}")
            for key, value in data.model_dump(exclude_none=True, mode="json").items():
                if key == "due_date":
                    value = date.fromisoformat(value)
                setattr(model, key, value)
            await session.commit()
            return await self._fetch(session, InvoiceModel.id == model.id)

    async def delete_invoice(self, invoice_id: str) -> bool:
        """Delete a draft invoice. Returns False when missing.

        Raises:
            ValueError: If the invoice is not a draft.
        """
        async for session in self._session_factory():
            model = await session.get(InvoiceModel, uuid.UUID(invoice_id))
            if model is None:
                return False
            if model.status != "draft":
                raise ValueError("Only draft invoices can be deleted")
            await session.delete(model)
            await session.commit()
            logger.info("invoices.deleted", invoice_id=invoice_id)
            return True

    async def mark_sent(
        self,
        invoice_id: str,
        stripe_invoice_id: str | None = None,
        pdf_url: str | None = None,
    ) -> InvoiceRead:
        async for session in self._session_factory():
            model = await session.get(InvoiceModel, uuid.UUID(invoice_id))
            if model is None:
                raise ValueError(f"Invoice not found: id={invoice_id}")
            model.status = "sent"
            model.sent_date = datetime.now(timezone.utc)
            if stripe_invoice_id:
                model.stripe_invoice_id = stripe_invoice_id
            if pdf_url:
                model.pdf_url = pdf_url
            await session.commit()
            return await self._fetch(session, InvoiceModel.id == model.id)

    async def mark_paid(self, invoice_id: str) -> InvoiceRead:
        async for session in self._session_factory():
            model = await session.get(InvoiceModel, uuid.UUID(invoice_id))
            if model is None:
                raise ValueError(f"Invoice not found: id={invoice_id}")
            model.status = "paid"
            model.paid_date = datetime.now(timezone.utc)
            await session.commit()
            return await self._fetch(session, InvoiceModel.id == model.id)

    async def update_by_stripe_id(
        self,
        stripe_invoice_id: str,
        *,
        status: str | None = None,
        paid_date: datetime | None = None,
        sent_date: datetime | None = None,
        pdf_url: str | None = None,
    ) -> InvoiceRead | None:
        """Apply Stripe-originated changes to the invoice linked to ``stripe_invoice_id``.

        ``sent_date`` is only written when the invoice has none yet. Returns
        None when no invoice carries that Stripe id.
        """
        async for session in self._session_factory():
            result = await session.execute(
                select(InvoiceModel).where(InvoiceModel.stripe_invoice_id == stripe_invoice_id)
            )
            model = result.scalar_one_or_none()
            if model is None:
                return None
            if status is not None:
                model.status = status
            if paid_date is not None:
                model.paid_date = paid_date
            if sent_date is not None and model.sent_date is None:
                model.sent_date = sent_date
            if pdf_url:
                model.pdf_url = pdf_url
            await session.commit()
            return await self._fetch(session, InvoiceModel.id == model.id)

    # ── Internals ───────────────────────────────────────────────────────────

    @staticmethod
    async def _next_invoice_number(session: AsyncSession, year: int) -> str:
        prefix = f"INV-{year}-"
        result = await session.execute(
            select(InvoiceModel.invoice_number).where(InvoiceModel.invoice_number.like(f"{prefix}%"))
        )
        highest = max((_parse_sequence(n) for n in result.scalars().all()), default=0)
        return format_invoice_number(year, highest + 1)

    @staticmethod
    async def _fetch(session: AsyncSession, condition) -> InvoiceRead | None:
        row = (await session.execute(_invoice_stmt().where(condition))).first()
        if row is None:
            return None
        invoice, name, email = row
        return _model_to_invoice(invoice, name, email)
