"""Tests for email sending, templates, campaigns, and the lifecycle automations."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.crm.customers.schemas import CustomerRead
from src.crm.emails.automation import EmailAutomation
from src.crm.emails.resend import EmailDeliveryError


def _mock_resend(message_id: str = "msg_abc") -> MagicMock:
    resend = MagicMock()
    resend.default_from = "Purrify <hello@purrify.ca>"
    resend.send_email = AsyncMock(return_value=message_id)
    return resend


@pytest.fixture
def resend(api_app) -> MagicMock:
    api_app.state.resend_client = _mock_resend()
    return api_app.state.resend_client


async def _create_template(client, **overrides) -> dict:
    payload = {
        "name": "Follow up",
        "subject": "Hello {{customer_name}}",
        "body": "<p>Hi {{contact_name}}, thanks from {{sender}}</p>",
    }
    payload.update(overrides)
    response = await client.post("/api/templates", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


# ── Send ─────────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_send_email_records_timeline(client, customer, resend):
    response = await client.post(
        "/api/email/send",
        json={"customerId": customer["id"], "to": "owner@whiskers.ca", "subject": "Restock", "body": "<p>Hi</p>"},
    )

    assert response.status_code == 200
    assert response.json() == {"success": True, "messageId": "msg_abc"}
    args = resend.send_email.await_args
    assert args.args == ("owner@whiskers.ca", "Restock", "<p>Hi</p>")
    assert args.kwargs["tags"] == {"customer_id": customer["id"], "source": "crm"}

    events = (await client.get(f"/api/customers/{customer['id']}/timeline")).json()
    assert len(events) == 1
    assert events[0]["type"] == "email"
    assert events[0]["email_message_id"] == "msg_abc"
    assert events[0]["email_subject"] == "Restock"
    assert events[0]["data"]["body_preview"] == "<p>Hi</p>"


@pytest.mark.asyncio
async def test_send_email_with_template(client, customer, resend):
    template = await _create_template(client)

    response = await client.post(
        "/api/email/send",
        json={
            "customerId": customer["id"],
            "to": "owner@whiskers.ca",
            "templateId": template["id"],
            "context": {"sender": "Purrify"},
        },
    )

    assert response.status_code == 200
    _, subject, html = resend.send_email.await_args.args
    assert subject == "Hello Whiskers & Co"
    # No contacts and no owner name: the placeholder stays
    assert html == "<p>Hi {{contact_name}}, thanks from Purrify</p>"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"to": "a@b.ca", "subject": "S"},
        {"customerId": "x", "subject": "S"},
        {"customerId": "x", "to": "a@b.ca"},
    ],
)
async def test_send_email_missing_fields(client, resend, payload):
    response = await client.post("/api/email/send", json=payload)
    assert response.status_code == 400
    assert response.json()["detail"] == "Missing required fields: customerId, to, and subject/templateId"


@pytest.mark.asyncio
async def test_send_email_unknown_customer_or_template(client, customer, resend):
    response = await client.post(
        "/api/email/send",
        json={"customerId": "12121212-1212-4212-8212-121212121212", "to": "a@b.ca", "subject": "S"},
    )
    assert response.status_code == 404

    response = await client.post(
        "/api/email/send",
        json={"customerId": customer["id"], "to": "a@b.ca", "templateId": "nope"},
    )
    assert response.status_code == 404
    assert response.json()["detail"] == "Template not found"


@pytest.mark.asyncio
async def test_send_email_not_configured(client, customer):
    response = await client.post(
        "/api/email/send", json={"customerId": customer["id"], "to": "a@b.ca", "subject": "S"}
    )
    assert response.status_code == 503


@pytest.mark.asyncio
async def test_send_email_provider_failure(client, customer, resend):
    resend.send_email.side_effect = EmailDeliveryError("Resend API error: Domain not verified")

    response = await client.post(
        "/api/email/send", json={"customerId": customer["id"], "to": "a@b.ca", "subject": "S"}
    )
    assert response.status_code == 500
    assert response.json()["detail"] == "Resend API error: Domain not verified"
    assert (await client.get(f"/api/customers/{customer['id']}/timeline")).json() == []


# ── Templates ────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_template_crud_tracks_variables(client):
    template = await _create_template(client)
    assert template["variables"] == ["customer_name", "contact_name", "sender"]

    response = await client.put(
        f"/api/templates/{template['id']}", json={"body": "<p>{{invoice_number}}</p>", "active": False}
    )
    assert response.status_code == 200
    assert response.json()["variables"] == ["customer_name", "invoice_number"]

    assert (await client.get("/api/templates", params={"active_only": True})).json() == []
    assert len((await client.get("/api/templates")).json()) == 1

    assert (await client.delete(f"/api/templates/{template['id']}")).status_code == 200
    assert (await client.get(f"/api/templates/{template['id']}")).status_code == 404
    assert (await client.delete(f"/api/templates/{template['id']}")).status_code == 404
    assert (await client.put("/api/templates/nope", json={"name": "x"})).status_code == 404


# ── Campaigns ────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_campaign_crud(client):
    template = await _create_template(client)

    response = await client.post("/api/campaigns", json={"name": "Spring promo", "template_id": template["id"]})
    assert response.status_code == 201
    campaign = response.json()
    assert campaign["status"] == "draft"
    assert campaign["recipient_count"] == 0

    response = await client.put(
        f"/api/campaigns/{campaign['id']}",
        json={"status": "sent", "recipient_count": 40, "opened_count": 12},
    )
    assert response.status_code == 200
    assert response.json()["status"] == "sent"
    assert response.json()["opened_count"] == 12

    assert [c["name"] for c in (await client.get("/api/campaigns")).json()] == ["Spring promo"]
    assert (await client.delete(f"/api/campaigns/{campaign['id']}")).status_code == 200
    assert (await client.get(f"/api/campaigns/{campaign['id']}")).status_code == 404


@pytest.mark.asyncio
async def test_campaign_invalid_template_id(client):
    response = await client.post("/api/campaigns", json={"name": "Bad", "template_id": "not-a-uuid"})
    assert response.status_code == 400


# ── Automations ──────────────────────────────────────────────────────────────


@pytest.fixture
def automation(api_app) -> EmailAutomation:
    return EmailAutomation(
        email_repository=api_app.state.email_repository,
        timeline_repository=api_app.state.timeline_repository,
        resend=_mock_resend("msg_welcome"),
    )


@pytest.mark.asyncio
async def test_welcome_automation(client, customer, automation):
    await _create_template(
        client, name="Welcome Email", subject="Welcome, {{customer_name}}", body="<p>Glad to have you</p>"
    )
    message_id = await automation.send_welcome_email(CustomerRead(**customer))

    assert message_id == "msg_welcome"
    events = (await client.get(f"/api/customers/{customer['id']}/timeline")).json()
    assert events[0]["email_subject"] == "Welcome, Whiskers & Co"
    assert events[0]["data"]["automation"] == "customer_created"


@pytest.mark.asyncio
async def test_automation_skips_without_template_or_email(client, customer, automation):
    assert await automation.send_welcome_email(CustomerRead(**customer)) is None

    await _create_template(client, name="Welcome Email", subject="Hi", body="<p>Hi</p>")
    assert await automation.send_welcome_email(CustomerRead(**{**customer, "email": None})) is None
    automation._resend.send_email.assert_not_awaited()


@pytest.mark.asyncio
async def test_inactive_template_not_used(client, customer, automation):
    await _create_template(client, name="Welcome Email", subject="Hi", body="<p>Hi</p>", active=False)
    assert await automation.send_welcome_email(CustomerRead(**customer)) is None


# ── Rate limiting ────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_send_email_is_rate_limited(client, customer, resend):
    payload = {"customerId": customer["id"], "to": "owner@whiskers.ca", "subject": "Restock", "body": "<p>Hi</p>"}

    response = await client.post("/api/email/send", json=payload)
    assert response.status_code == 200
    assert response.headers["X-RateLimit-Limit"] == "10"
    assert response.headers["X-RateLimit-Remaining"] == "9"

    for _ in range(9):
        assert (await client.post("/api/email/send", json={})).status_code == 400

    response = await client.post("/api/email/send", json=payload)
    assert response.status_code == 429
    assert response.headers["X-RateLimit-Limit"] == "10"
    assert resend.send_email.await_count == 1
