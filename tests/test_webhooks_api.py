"""Tests for the Stripe and Resend webhook receivers."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

STRIPE_SIGNATURE = {"stripe-signature": "t=1700000000,v1=deadbeef"}
SVIX_HEADERS = {"svix-id": "msg_1", "svix-timestamp": "1700000000", "svix-signature": "v1,abc"}


def _stripe_event(event_type: str, invoice_id: str, **invoice_fields) -> dict:
    return {"type": event_type, "data": {"object": {"id": invoice_id, **invoice_fields}}}


@pytest.fixture
def stripe_secret(monkeypatch):
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", "whsec_test")


@pytest.fixture
def no_resend_secret(monkeypatch):
    monkeypatch.setenv("RESEND_WEBHOOK_SECRET", "")


async def _sent_stripe_invoice(api_app, client, customer) -> dict:
    """Create an invoice and send it through a mocked Stripe, linking it to in_test."""
    billing = MagicMock()
    billing.ensure_customer = AsyncMock(return_value="cus_test")
    billing.create_invoice = AsyncMock(return_value="in_test")
    billing.send_invoice = AsyncMock(return_value={"invoice_pdf": None})
    api_app.state.stripe_billing = billing

    invoice = (
        await client.post(
            "/api/invoices",
            json={"customer_id": customer["id"], "items": [{"quantity": 1, "unit_price": 40}]},
        )
    ).json()
    return (await client.post(f"/api/invoices/{invoice['id']}/send")).json()


# ── Stripe ───────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_stripe_requires_signature(client, stripe_secret):
    response = await client.post("/api/webhooks/stripe", content=b"{}")
    assert response.status_code == 400
    assert response.json() == {"error": "No signature provided"}


@pytest.mark.asyncio
async def test_stripe_secret_missing(client, monkeypatch):
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", "")
    response = await client.post("/api/webhooks/stripe", content=b"{}", headers=STRIPE_SIGNATURE)
    assert response.status_code == 500
    assert response.json() == {"error": "Webhook secret not configured"}


@pytest.mark.asyncio
async def test_stripe_invalid_signature(client, stripe_secret):
    with patch(
        "src.crm.api.v1.webhooks.construct_webhook_event",
        side_effect=ValueError("No signatures found matching the expected signature"),
    ):
        response = await client.post("/api/webhooks/stripe", content=b"{}", headers=STRIPE_SIGNATURE)

    assert response.status_code == 400
    assert response.json() == {"error": "Webhook handler failed"}


@pytest.mark.asyncio
async def test_stripe_payment_succeeded_marks_paid(api_app, client, customer, stripe_secret):
    invoice = await _sent_stripe_invoice(api_app, client, customer)
    event = _stripe_event("invoice.payment_succeeded", "in_test", invoice_pdf="https://stripe.test/p.pdf")

    with patch("src.crm.api.v1.webhooks.construct_webhook_event", return_value=event) as construct:
        response = await client.post(
            "/api/webhooks/stripe", content=json.dumps(event).encode(), headers=STRIPE_SIGNATURE
        )

    assert response.status_code == 200
    assert response.json() == {"received": True}
    assert construct.call_args.args[1:] == (STRIPE_SIGNATURE["stripe-signature"], "whsec_test")

    stored = (await client.get(f"/api/invoices/{invoice['id']}")).json()
    assert stored["status"] == "paid"
    assert stored["paid_date"] is not None
    assert stored["pdf_url"] == "https://stripe.test/p.pdf"


@pytest.mark.asyncio
async def test_stripe_finalized_stores_pdf_only(api_app, client, customer, stripe_secret):
    invoice = await _sent_stripe_invoice(api_app, client, customer)
    event = _stripe_event("invoice.finalized", "in_test", invoice_pdf="https://stripe.test/f.pdf")

    with patch("src.crm.api.v1.webhooks.construct_webhook_event", return_value=event):
        response = await client.post("/api/webhooks/stripe", content=b"{}", headers=STRIPE_SIGNATURE)

    assert response.status_code == 200
    stored = (await client.get(f"/api/invoices/{invoice['id']}")).json()
    assert stored["status"] == "sent"
    assert stored["pdf_url"] == "https://stripe.test/f.pdf"


@pytest.mark.asyncio
async def test_stripe_sent_keeps_existing_sent_date(api_app, client, customer, stripe_secret):
    invoice = await _sent_stripe_invoice(api_app, client, customer)
    event = _stripe_event("invoice.sent", "in_test")

    with patch("src.crm.api.v1.webhooks.construct_webhook_event", return_value=event):
        await client.post("/api/webhooks/stripe", content=b"{}", headers=STRIPE_SIGNATURE)

    stored = (await client.get(f"/api/invoices/{invoice['id']}")).json()
    assert stored["sent_date"] == invoice["sent_date"]


@pytest.mark.asyncio
@pytest.mark.parametrize("event_type", ["invoice.payment_failed", "customer.created"])
async def test_stripe_other_events_acknowledged(client, stripe_secret, event_type):
    event = _stripe_event(event_type, "in_unknown")
    with patch("src.crm.api.v1.webhooks.construct_webhook_event", return_value=event):
        response = await client.post("/api/webhooks/stripe", content=b"{}", headers=STRIPE_SIGNATURE)
    assert response.json() == {"received": True}


@pytest.mark.asyncio
async def test_stripe_update_failure_returns_500(api_app, client, stripe_secret):
    repo = MagicMock()
    repo.update_by_stripe_id = AsyncMock(side_effect=RuntimeError("db down"))
    api_app.state.invoice_repository = repo

    event = _stripe_event("invoice.payment_succeeded", "in_test")
    with patch("src.crm.api.v1.webhooks.construct_webhook_event", return_value=event):
        response = await client.post("/api/webhooks/stripe", content=b"{}", headers=STRIPE_SIGNATURE)

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to update invoice"}


# ── Resend ───────────────────────────────────────────────────────────────────


async def _sent_email(api_app, client, customer) -> None:
    resend = MagicMock()
    resend.default_from = "Purrify <hello@purrify.ca>"
    resend.send_email = AsyncMock(return_value="re_msg_1")
    api_app.state.resend_client = resend
    response = await client.post(
        "/api/email/send",
        json={"customerId": customer["id"], "to": "owner@whiskers.ca", "subject": "Hello"},
    )
    assert response.status_code == 200


async def _timeline_email(client, customer) -> dict:
    events = (await client.get(f"/api/customers/{customer['id']}/timeline")).json()
    return next(e for e in events if e["type"] == "email")


@pytest.mark.asyncio
async def test_resend_opened(api_app, client, customer, no_resend_secret):
    await _sent_email(api_app, client, customer)

    response = await client.post(
        "/api/webhooks/resend",
        json={"type": "email.opened", "data": {"email_id": "re_msg_1", "created_at": "2025-03-15T10:00:00Z"}},
    )

    assert response.json() == {"received": True}
    event = await _timeline_email(client, customer)
    assert event["email_opened"] is True
    assert event["email_opened_at"].startswith("2025-03-15T10:00:00")


@pytest.mark.asyncio
async def test_resend_clicked_and_bounced(api_app, client, customer, no_resend_secret):
    await _sent_email(api_app, client, customer)

    await client.post(
        "/api/webhooks/resend",
        json={"type": "email.clicked", "data": {"email_id": "re_msg_1", "link": {"link": "https://purrify.ca"}}},
    )
    await client.post(
        "/api/webhooks/resend",
        json={"type": "email.bounced", "data": {"email_id": "re_msg_1", "bounce": {"message": "Mailbox full"}}},
    )

    event = await _timeline_email(client, customer)
    assert event["email_clicked"] is True
    assert event["email_clicked_link"] == "https://purrify.ca"
    assert event["email_bounced"] is True
    assert event["email_bounce_reason"] == "Mailbox full"


@pytest.mark.asyncio
async def test_resend_complaint(api_app, client, customer, no_resend_secret):
    await _sent_email(api_app, client, customer)
    await client.post(
        "/api/webhooks/resend", json={"type": "email.complained", "data": {"email_id": "re_msg_1"}}
    )
    event = await _timeline_email(client, customer)
    assert event["email_spam_complaint"] is True
    assert event["email_complained_at"] is not None


@pytest.mark.asyncio
async def test_resend_unknown_email_acknowledged(client, no_resend_secret):
    response = await client.post(
        "/api/webhooks/resend", json={"type": "email.opened", "data": {"email_id": "unknown"}}
    )
    assert response.status_code == 200
    assert response.json() == {"received": True}


@pytest.mark.asyncio
async def test_resend_requires_svix_headers_when_secret_set(client, monkeypatch):
    monkeypatch.setenv("RESEND_WEBHOOK_SECRET", "whsec_resend")

    response = await client.post("/api/webhooks/resend", json={"type": "email.opened", "data": {}})
    assert response.status_code == 401
    assert response.json() == {"error": "Missing signature headers"}

    response = await client.post(
        "/api/webhooks/resend", json={"type": "email.opened", "data": {}}, headers=SVIX_HEADERS
    )
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_resend_invalid_json(client, no_resend_secret):
    response = await client.post("/api/webhooks/resend", content=b"not json")
    assert response.status_code == 500
    assert response.json() == {"error": "Webhook processing failed"}


# ── Rate limiting ────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_webhooks_are_rate_limited_as_one_group(client, no_resend_secret):
    event = {"type": "email.opened", "data": {"email_id": "unknown"}}

    response = await client.post("/api/webhooks/resend", json=event)
    assert response.status_code == 200
    assert response.headers["X-RateLimit-Limit"] == "100"
    assert response.headers["X-RateLimit-Remaining"] == "99"

    # Unsigned Stripe deliveries count against the same bucket
    for _ in range(99):
        assert (await client.post("/api/webhooks/stripe", content=b"{}")).status_code == 400

    assert (await client.post("/api/webhooks/resend", json=event)).status_code == 429
    response = await client.post("/api/webhooks/stripe", content=b"{}", headers={"stripe-signature": "t=1,v1=x"})
    assert response.status_code == 429
