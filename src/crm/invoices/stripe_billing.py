"""Stripe billing client.

Wraps the (blocking) official ``stripe`` SDK so the async API can create
customers, prices and invoices without stalling the event loop. Every call
runs in a worker thread inside ``track_external_call`` so Stripe latency and
error counts show up on /metrics.

Amounts are converted to cents at this boundary; the CRM stores dollars.
"""

from __future__ import annotations

import asyncio
import math
from datetime import date
from typing import Any

import stripe
import structlog

from src.crm.core.monitoring import track_external_call
from src.crm.customers.schemas import CustomerRead
from src.crm.invoices.schemas import InvoiceRead
from src.crm.products.schemas import ProductRead

logger = structlog.get_logger(__name__)


def to_cents(amount: float) -> int:
    return int(round(amount * 100))


def construct_webhook_event(payload: bytes | str, signature: str, secret: str) -> Any:
    """Verify a Stripe-Signature header against ``secret`` and parse the event."""
    return stripe.Webhook.construct_event(payload, signature, secret)


def days_until_due_for_stripe(due_date: date | None, today: date | None = None) -> int:
    """Days between today and the due date; 30 when no due date is set."""
    if due_date is None:
        return 30
    delta = (due_date - (today or date.today())).days
    return max(1, math.ceil(delta))


class StripeBilling:
    """Async facade over the Stripe customers, prices and invoices APIs.

    Args:
        api_key: Stripe secret key.
    """

    def __init__(self, api_key: str) -> None:
        self._api_key = api_key

    async def _call(self, operation: str, fn: Any, *args: Any, **kwargs: Any) -> Any:
        async with track_external_call("stripe", operation):
            return await asyncio.to_thread(fn, *args, api_key=self._api_key, **kwargs)

    # ── Customers & Products ────────────────────────────────────────────────

    async def ensure_customer(self, customer: CustomerRead) -> str:
        """Create the Stripe customer, or refresh it when already linked.

        Returns:
            The Stripe customer id.
        """
        params: dict[str, Any] = {
            "name": customer.store_name,
            "metadata": {"crm_customer_id": customer.id},
        }
        if customer.email:
            params["email"] = customer.email
        if customer.phone:
            params["phone"] = customer.phone

        if customer.stripe_customer_id:
            await self._call(
                "update_customer", stripe.Customer.modify, customer.stripe_customer_id, **params
            )
            return customer.stripe_customer_id

        created = await self._call("create_customer", stripe.Customer.create, **params)
        logger.info("stripe.customer_created", customer_id=customer.id, stripe_customer_id=created["id"])
        return created["id"]

    async def create_price(self, product: ProductRead) -> str:
        """Return the product's Stripe price id, creating product and price if needed."""
        if product.stripe_price_id:
            return product.stripe_price_id

        product_params: dict[str, Any] = {
            "name": product.name,
            "metadata": {"crm_product_id": product.id, "sku": product.sku},
        }
        if product.description:
            product_params["description"] = product.description
        stripe_product = await self._call("create_product", stripe.Product.create, **product_params)

        price = await self._call(
            "create_price",
            stripe.Price.create,
            product=stripe_product["id"],
            currency=product.currency.lower(),
            unit_amount=to_cents(product.unit_price),
            metadata={"crm_product_id": product.id},
        )
        logger.info("stripe.price_created", product_id=product.id, price_id=price["id"])
        return price["id"]

    # ── Invoices ────────────────────────────────────────────────────────────

    async def create_invoice(self, invoice: InvoiceRead, stripe_customer_id: str) -> str:
        """Create and finalize a Stripe invoice mirroring the CRM invoice.

        Line items are posted as amounts (quantity folded in). Tax and
        shipping become extra positive items, discount a negative one.

        Returns:
            The Stripe invoice id.
        """
        params: dict[str, Any] = {
            "customer": stripe_customer_id,
            "auto_advance": False,
            "collection_method": "send_invoice",
            "days_until_due": days_until_due_for_stripe(invoice.due_date),
            "metadata": {
                "crm_invoice_id": invoice.id,
                "invoice_number": invoice.invoice_number,
            },
        }
        if invoice.notes:
            params["description"] = invoice.notes
        stripe_invoice = await self._call("create_invoice", stripe.Invoice.create, **params)
        stripe_invoice_id = stripe_invoice["id"]

        lines: list[tuple[str, int, dict[str, Any]]] = [
            (
                item.description or "Product",
                to_cents(item.unit_price * item.quantity),
                {"quantity": str(item.quantity)},
            )
            for item in invoice.items
        ]
        if invoice.tax > 0:
            lines.append(("Tax", to_cents(invoice.tax), {}))
        if invoice.shipping > 0:
            lines.append(("Shipping", to_cents(invoice.shipping), {}))
        if invoice.discount > 0:
            lines.append(("Discount", -to_cents(invoice.discount), {}))

        for description, amount, metadata in lines:
            await self._call(
                "create_invoice_item",
                stripe.InvoiceItem.create,
                customer=stripe_customer_id,
                invoice=stripe_invoice_id,
                description=description,
                amount=amount,
                currency=invoice.currency.lower(),
                metadata=metadata,
            )

        await self._call("finalize_invoice", stripe.Invoice.finalize_invoice, stripe_invoice_id)
        logger.info(
            "stripe.invoice_created",
            invoice_id=invoice.id,
            stripe_invoice_id=stripe_invoice_id,
            line_count=len(lines),
        )
        return stripe_invoice_id

    async def send_invoice(self, stripe_invoice_id: str) -> dict[str, Any]:
        sent = await self._call("send_invoice", stripe.Invoice.send_invoice, stripe_invoice_id)
        return {
            "hosted_invoice_url": sent.get("hosted_invoice_url"),
            "invoice_pdf": sent.get("invoice_pdf"),
        }

    async def sync_invoice_status(self, stripe_invoice_id: str) -> dict[str, Any]:
        """Fetch the current Stripe-side status of an invoice (amounts in dollars)."""
        remote = await self._call("retrieve_invoice", stripe.Invoice.retrieve, stripe_invoice_id)
        return {
            "status": remote.get("status"),
            "paid": remote.get("status") == "paid",
            "amount_paid": (remote.get("amount_paid") or 0) / 100,
            "hosted_invoice_url": remote.get("hosted_invoice_url"),
            "invoice_pdf": remote.get("invoice_pdf"),
        }
