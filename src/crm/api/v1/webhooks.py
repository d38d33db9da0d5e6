"""Inbound webhooks from Stripe (invoice lifecycle) and Resend (email delivery).

Both endpoints are unauthenticated; Stripe payloads are verified with the
signing secret, Resend payloads must carry the Svix headers whenever a
Resend webhook secret is configured.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from src.crm.activity.schemas import EmailTrackingUpdate
from src.crm.config import get_settings
from src.crm.core.monitoring import webhook_events_total
from src.crm.core.rate_limit import rate_limited
from src.crm.invoices.schemas import InvoiceStatus
from src.crm.invoices.stripe_billing import construct_webhook_event

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/webhooks",
    tags=["webhooks"],
    dependencies=[Depends(rate_limited("webhooks"))],
)

RECEIVED = {"received": True}


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _parse_timestamp(value: Any) -> datetime:
    """Provider ISO timestamp, falling back to now."""
    if isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            parsed = None
        if parsed is not None:
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return datetime.now(timezone.utc)


# ── Stripe ──────────────────────────────────────────────────────────────────


@router.post("/stripe")
async def stripe_webhook(request: Request):
    signature = request.headers.get("stripe-signature")
    if not signature:
        return _error(400, "No signature provided")

    payload = await request.body()

    secret = get_settings().STRIPE_WEBHOOK_SECRET
    if not secret:
        logger.error("webhooks.stripe.secret_missing")
        return _error(500, "Webhook secret not configured")

    try:
        event = construct_webhook_event(payload, signature, secret)
    except Exception as exc:
        logger.warning("webhooks.stripe.verification_failed", error=str(exc))
        webhook_events_total.labels(provider="stripe", event_type="unknown", outcome="rejected").inc()
        return _error(400, "Webhook handler failed")

    event_type = event["type"]
    stripe_invoice = event["data"]["object"]
    stripe_invoice_id = stripe_invoice.get("id")
    pdf_url = stripe_invoice.get("invoice_pdf") or None
    repo = getattr(request.app.state, "invoice_repository", None)

    try:
        if event_type == "invoice.payment_succeeded":
            if repo is None:
                return _error(500, "Failed to update invoice")
            try:
                await repo.update_by_stripe_id(
                    stripe_invoice_id,
                    status=InvoiceStatus.PAID.value,
                    paid_date=datetime.now(timezone.utc),
                    pdf_url=pdf_url,
                )
            except Exception:
                logger.error(
                    "webhooks.stripe.invoice_update_failed",
                    stripe_invoice_id=stripe_invoice_id,
                    exc_info=True,
                )
                return _error(500, "Failed to update invoice")
            logger.info("webhooks.stripe.invoice_paid", stripe_invoice_id=stripe_invoice_id)

        elif event_type == "invoice.payment_failed":
            logger.warning("webhooks.stripe.payment_failed", stripe_invoice_id=stripe_invoice_id)

        elif event_type == "invoice.sent" and repo is not None:
            try:
                await repo.update_by_stripe_id(
                    stripe_invoice_id,
                    sent_date=datetime.now(timezone.utc),
                    pdf_url=pdf_url,
                )
            except Exception:
                logger.error("webhooks.stripe.sent_update_failed", exc_info=True)

        elif event_type == "invoice.finalized" and repo is not None:
            try:
                await repo.update_by_stripe_id(stripe_invoice_id, pdf_url=pdf_url)
            except Exception:
                logger.error("webhooks.stripe.pdf_update_failed", exc_info=True)
    finally:
        webhook_events_total.labels(provider="stripe", event_type=event_type, outcome="processed").inc()

    return RECEIVED


# ── Resend ──────────────────────────────────────────────────────────────────


def _tracking_update(event_type: str, data: dict[str, Any]) -> EmailTrackingUpdate | None:
    at = _parse_timestamp(data.get("created_at"))
    if event_type == "email.delivered":
        return EmailTrackingUpdate(email_delivered_at=at)
    if event_type == "email.opened":
        return EmailTrackingUpdate(email_opened=True, email_opened_at=at)
    if event_type == "email.clicked":
        link = data.get("link")
        if isinstance(link, dict):
            link = link.get("link")
        return EmailTrackingUpdate(email_clicked=True, email_clicked_at=at, email_clicked_link=link)
    if event_type == "email.bounced":
        reason = data.get("reason")
        if reason is None and isinstance(data.get("bounce"), dict):
            reason = data["bounce"].get("message")
        return EmailTrackingUpdate(email_bounced=True, email_bounced_at=at, email_bounce_reason=reason)
    if event_type == "email.complained":
        return EmailTrackingUpdate(email_spam_complaint=True, email_complained_at=at)
    return None


@router.post("/resend")
async def resend_webhook(request: Request):
    if get_settings().RESEND_WEBHOOK_SECRET:
        headers = request.headers
        if not (headers.get("svix-id") and headers.get("svix-timestamp") and headers.get("svix-signature")):
            logger.warning("webhooks.resend.missing_signature_headers")
            webhook_events_total.labels(provider="resend", event_type="unknown", outcome="rejected").inc()
            return _error(401, "Missing signature headers")

    try:
        payload = await request.json()
        event_type = payload.get("type", "")
        data = payload.get("data") or {}
        email_id = data.get("email_id")

        repo = getattr(request.app.state, "timeline_repository", None)
        event = await repo.get_by_message_id(email_id) if repo and email_id else None
        if event is None:
            logger.warning("webhooks.resend.timeline_event_not_found", email_id=email_id)
            webhook_events_total.labels(provider="resend", event_type=event_type, outcome="unmatched").inc()
            return RECEIVED

        update = _tracking_update(event_type, data)
        if update is not None:
            await repo.update_email_tracking(event.id, update)
            logger.info("webhooks.resend.tracking_updated", email_id=email_id, event_type=event_type)
        webhook_events_total.labels(provider="resend", event_type=event_type, outcome="processed").inc()
    except Exception:
        logger.error("webhooks.resend.processing_failed", exc_info=True)
        return _error(500, "Webhook processing failed")

    return RECEIVED
