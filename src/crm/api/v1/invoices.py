"""REST API endpoints for invoices.

Covers CRUD (delete is draft-only), sending through Stripe with the
invoice notification email, marking paid by hand, and pulling the Stripe
status back into the CRM.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel

from src.crm.api.audit import record_activity
from src.crm.api.deps import get_current_user
from src.crm.customers.schemas import CustomerUpdate
from src.crm.invoices.schemas import (
    InvoiceCreate,
    InvoiceFilter,
    InvoiceRead,
    InvoiceStatus,
    InvoiceUpdate,
)
from src.crm.models.user import User

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/invoices", tags=["invoices"])

UNSENDABLE_STATUSES = {InvoiceStatus.PAID.value, InvoiceStatus.CANCELLED.value}


class InvoiceSyncResponse(BaseModel):
    invoice: InvoiceRead
    stripe_status: str | None = None
    amount_paid: float = 0.0


def _get_invoice_repository(request: Request):
    repo = getattr(request.app.state, "invoice_repository", None)
    if repo is None:
        raise HTTPException(status_code=503, detail="Invoice repository not initialized")
    return repo


async def _get_invoice_or_404(repo, invoice_id: str) -> InvoiceRead:
    invoice = await repo.get_invoice(invoice_id)
    if invoice is None:
        raise HTTPException(status_code=404, detail="Invoice not found")
    return invoice


# ── CRUD ────────────────────────────────────────────────────────────────────


@router.get("", response_model=list[InvoiceRead])
async def list_invoices(
    request: Request,
    customer_id: str | None = None,
    status_filter: str | None = Query(default=None, alias="status"),
    date_from: date | None = None,
    date_to: date | None = None,
    user: User = Depends(get_current_user),
) -> list[InvoiceRead]:
    repo = _get_invoice_repository(request)
    filters = InvoiceFilter(
        customer_id=customer_id,
        status=status_filter,
        date_from=date_from,
        date_to=date_to,
    )
    try:
        return await repo.list_invoices(filters)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid customer_id")


@router.post("", response_model=InvoiceRead, status_code=status.HTTP_201_CREATED)
async def create_invoice(
    body: InvoiceCreate,
    request: Request,
    user: User = Depends(get_current_user),
) -> InvoiceRead:
    """Create a draft invoice; tax defaults to the customer's provincial rate."""
    repo = _get_invoice_repository(request)
    if not body.items:
        raise HTTPException(status_code=400, detail="Invoice must have at least one item")
    try:
        invoice = await repo.create_invoice(body)
    except ValueError:
        raise HTTPException(status_code=404, detail="Customer not found")

    await record_activity(
        request, user, "create", "invoice", invoice.id, invoice.invoice_number,
        new_data={"customer_id": invoice.customer_id, "total": invoice.total},
    )
    return invoice


@router.get("/{invoice_id}", response_model=InvoiceRead)
async def get_invoice(
    invoice_id: str,
    request: Request,
    user: User = Depends(get_current_user),
) -> InvoiceRead:
    repo = _get_invoice_repository(request)
    return await _get_invoice_or_404(repo, invoice_id)


@router.put("/{invoice_id}", response_model=InvoiceRead)
async def update_invoice(
    invoice_id: str,
    body: InvoiceUpdate,
    request: Request,
    user: User = Depends(get_current_user),
) -> InvoiceRead:
    repo = _get_invoice_repository(request)
    before = await _get_invoice_or_404(repo, invoice_id)
    try:
        invoice = await repo.update_invoice(invoice_id, body)
    except ValueError:
        raise HTTPException(status_code=404, detail="Invoice not found")

    changes = body.model_dump(mode="json", exclude_none=True)
    await record_activity(
        request, user, "update", "invoice", invoice.id, invoice.invoice_number,
        old_data={k: before.model_dump(mode="json").get(k) for k in changes},
        new_data=changes,
    )
    return invoice


@router.delete("/{invoice_id}")
async def delete_invoice(
    invoice_id: str,
    request: Request,
    user: User = Depends(get_current_user),
) -> dict:
    repo = _get_invoice_repository(request)
    existing = await _get_invoice_or_404(repo, invoice_id)
    try:
        deleted = await repo.delete_invoice(invoice_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    if not deleted:
        raise HTTPException(status_code=404, detail="Invoice not found")

    await record_activity(request, user, "delete", "invoice", invoice_id, existing.invoice_number)
    return {"success": True}


# ── Lifecycle ───────────────────────────────────────────────────────────────


@router.post("/{invoice_id}/send", response_model=InvoiceRead)
async def send_invoice(
    invoice_id: str,
    request: Request,
    user: User = Depends(get_current_user),
) -> InvoiceRead:
    """Mark the invoice sent, pushing it through Stripe when configured.

    The notification email is best effort: its failure is logged and the
    invoice still counts as sent.
    """
    repo = _get_invoice_repository(request)
    invoice = await _get_invoice_or_404(repo, invoice_id)
    if invoice.status in UNSENDABLE_STATUSES:
        raise HTTPException(status_code=400, detail="Invoice cannot be sent in current status")

    customer_repo = getattr(request.app.state, "customer_repository", None)
    customer = await customer_repo.get_customer(invoice.customer_id) if customer_repo else None

    stripe_invoice_id = invoice.stripe_invoice_id
    pdf_url = None
    billing = getattr(request.app.state, "stripe_billing", None)
    if billing is not None and customer is not None:
        try:
            stripe_customer_id = await billing.ensure_customer(customer)
            if stripe_customer_id != customer.stripe_customer_id:
                customer = await customer_repo.update_customer(
                    customer.id, CustomerUpdate(stripe_customer_id=stripe_customer_id)
                )
            if not stripe_invoice_id:
                stripe_invoice_id = await billing.create_invoice(invoice, stripe_customer_id)
            urls = await billing.send_invoice(stripe_invoice_id)
            pdf_url = urls.get("invoice_pdf")
        except Exception as exc:
            logger.error("invoices.stripe_send_failed", invoice_id=invoice_id, error=str(exc))
            raise HTTPException(status_code=500, detail=f"Stripe error: {exc}")

    invoice = await repo.mark_sent(invoice_id, stripe_invoice_id=stripe_invoice_id, pdf_url=pdf_url)
    logger.info("invoices.sent", invoice_id=invoice_id, stripe_invoice_id=stripe_invoice_id)

    automation = getattr(request.app.state, "email_automation", None)
    if automation is not None and customer is not None:
        try:
            await automation.send_invoice_email(invoice, customer)
        except Exception:
            logger.warning("invoices.notification_failed", invoice_id=invoice_id, exc_info=True)

    await record_activity(
        request, user, "send", "invoice", invoice.id, invoice.invoice_number,
        new_data={"status": invoice.status, "stripe_invoice_id": stripe_invoice_id},
    )
    return invoice


@router.post("/{invoice_id}/mark-paid", response_model=InvoiceRead)
async def mark_invoice_paid(
    invoice_id: str,
    request: Request,
    user: User = Depends(get_current_user),
) -> InvoiceRead:
    repo = _get_invoice_repository(request)
    before = await _get_invoice_or_404(repo, invoice_id)
    invoice = await repo.mark_paid(invoice_id)
    await record_activity(
        request, user, "update", "invoice", invoice.id, invoice.invoice_number,
        old_data={"status": before.status},
        new_data={"status": invoice.status},
    )
    return invoice


@router.post("/{invoice_id}/sync", response_model=InvoiceSyncResponse)
async def sync_invoice(
    invoice_id: str,
    request: Request,
    user: User = Depends(get_current_user),
) -> InvoiceSyncResponse:
    """Pull the Stripe status; a paid Stripe invoice marks the CRM invoice paid."""
    repo = _get_invoice_repository(request)
    billing = getattr(request.app.state, "stripe_billing", None)
    if billing is None:
        raise HTTPException(status_code=503, detail="Stripe not configured")

    invoice = await _get_invoice_or_404(repo, invoice_id)
    if not invoice.stripe_invoice_id:
        raise HTTPException(status_code=400, detail="Invoice is not linked to Stripe")

    try:
        remote = await billing.sync_invoice_status(invoice.stripe_invoice_id)
    except Exception as exc:
        logger.error("invoices.stripe_sync_failed", invoice_id=invoice_id, error=str(exc))
        raise HTTPException(status_code=500, detail=f"Stripe error: {exc}")

    if remote["paid"] and invoice.status != InvoiceStatus.PAID.value:
        invoice = await repo.update_by_stripe_id(
            invoice.stripe_invoice_id,
            status=InvoiceStatus.PAID.value,
            paid_date=datetime.now(timezone.utc),
            pdf_url=remote.get("invoice_pdf"),
        )

    return InvoiceSyncResponse(
        invoice=invoice,
        stripe_status=remote.get("status"),
        amount_paid=remote.get("amount_paid") or 0.0,
    )
