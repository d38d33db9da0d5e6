"""Automated customer emails triggered by invoice, shipment, and customer events.

Each automation renders a named, active template, sends it through Resend,
and records an ``email`` timeline event tagged with the automation name.
Missing customer email or a missing template is a skip (None), not an error.
"""

from __future__ import annotations

from typing import Any

import structlog

from src.crm.activity.repository import TimelineRepository
from src.crm.activity.schemas import TimelineEventCreate, TimelineEventType
from src.crm.customers.schemas import CustomerRead
from src.crm.emails.repository import EmailRepository
from src.crm.emails.resend import ResendClient
from src.crm.emails.templating import format_email_date, render_template
from src.crm.invoices.schemas import InvoiceRead
from src.crm.invoices.utils import format_currency
from src.crm.shipments.schemas import ShipmentRead

logger = structlog.get_logger(__name__)

INVOICE_TEMPLATE = "Invoice Notification"
SHIPMENT_TEMPLATE = "Shipment Notification"
WELCOME_TEMPLATE = "Welcome Email"


class EmailAutomation:
    """Sends templated lifecycle emails.

    Args:
        email_repository: Template lookup.
        timeline_repository: Where sent emails are recorded.
        resend: Configured Resend client.
    """

    def __init__(
        self,
        email_repository: EmailRepository,
        timeline_repository: TimelineRepository,
        resend: ResendClient,
    ) -> None:
        self._emails = email_repository
        self._timeline = timeline_repository
        self._resend = resend

    async def _send(
        self,
        *,
        automation: str,
        template_name: str,
        customer: CustomerRead,
        context: dict[str, Any],
        tags: dict[str, str],
        data: dict[str, Any],
    ) -> str | None:
        if not customer.email:
            logger.warning(
                "email_automation.skipped_no_email",
                automation=automation,
                customer_id=customer.id,
            )
            return None

        template = await self._emails.get_active_template_by_name(template_name)
        if template is None:
            logger.error("email_automation.template_missing", template=template_name)
            return None

        subject = render_template(template.subject, context)
        body = render_template(template.body, context)

        message_id = await self._resend.send_email(
            customer.email,
            subject,
            body,
            tags={"customer_id": customer.id, **tags, "automation": automation},
        )

        await self._timeline.create_event(
            customer.id,
            TimelineEventCreate(
                type=TimelineEventType.EMAIL,
                email_message_id=message_id,
                email_sent_to=customer.email,
                email_sent_from=self._resend.default_from,
                email_subject=subject,
                data={"automation": automation, **data, "template_id": template.id},
            ),
        )
        logger.info(
            "email_automation.sent",
            automation=automation,
            customer_id=customer.id,
            message_id=message_id,
        )
        return message_id

    async def send_invoice_email(self, invoice: InvoiceRead, customer: CustomerRead) -> str | None:
        context = {
            "customer_name": customer.store_name,
            "customer_email": customer.email,
            "invoice_number": invoice.invoice_number,
            "invoice_total": format_currency(invoice.total, invoice.currency),
            "invoice_due_date": (
                format_email_date(invoice.due_date) if invoice.due_date else "Upon receipt"
            ),
        }
        return await self._send(
            automation="invoice_created",
            template_name=INVOICE_TEMPLATE,
            customer=customer,
            context=context,
            tags={"invoice_id": invoice.id},
            data={"invoice_id": invoice.id},
        )

    async def send_shipment_email(self, shipment: ShipmentRead, customer: CustomerRead) -> str | None:
        context = {
            "customer_name": customer.store_name,
            "tracking_number": shipment.tracking_number or "Pending",
            "shipment_carrier": shipment.carrier,
            "estimated_delivery": (
                format_email_date(shipment.estimated_delivery_date)
                if shipment.estimated_delivery_date
                else "TBD"
            ),
        }
        return await self._send(
            automation="shipment_created",
            template_name=SHIPMENT_TEMPLATE,
            customer=customer,
            context=context,
            tags={"shipment_id": shipment.id},
            data={"shipment_id": shipment.id},
        )

    async def send_welcome_email(self, customer: CustomerRead) -> str | None:
        return await self._send(
            automation="customer_created",
            template_name=WELCOME_TEMPLATE,
            customer=customer,
            context={"customer_name": customer.store_name},
            tags={},
            data={},
        )
