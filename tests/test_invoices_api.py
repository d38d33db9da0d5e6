"""Tests for invoice CRUD, numbering, sending through Stripe, and payment."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

ITEMS = [
    {"description": "Purrify 50g", "quantity": 2, "unit_price": 25.0},
    {"description": "Purrify 120g", "quantity": 1, "unit_price": 50.0},
]


async def _create_invoice(client, customer_id: str, **overrides) -> dict:
    payload = {"customer_id": customer_id, "items": ITEMS, "issue_date": "2025-03-01"}
    payload.update(overrides)
    response = await client.post("/api/invoices", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def _mock_billing() -> MagicMock:
    billing = MagicMock()
    billing.ensure_customer = AsyncMock(return_value="cus_test")
    billing.create_invoice = AsyncMock(return_value="in_test")
    billing.send_invoice = AsyncMock(
        return_value={"hosted_invoice_url": "https://stripe.test/i", "invoice_pdf": "https://stripe.test/i.pdf"}
    )
    return billing


# ── Create ───────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_create_invoice_applies_provincial_tax(client, customer):
    invoice = await _create_invoice(client, customer["id"], shipping=10, discount=5)

    assert invoice["status"] == "draft"
    assert invoice["subtotal"] == 100.0
    assert invoice["tax"] == 13.0
    assert invoice["total"] == 118.0
    assert invoice["customer_name"] == "Whiskers & Co"
    assert invoice["customer_email"] == "owner@whiskers.ca"
    assert sorted(i["total"] for i in invoice["items"]) == [50.0, 50.0]


@pytest.mark.asyncio
async def test_create_invoice_explicit_tax(client, customer):
    invoice = await _create_invoice(client, customer["id"], tax=0)
    assert invoice["tax"] == 0.0
    assert invoice["total"] == 100.0


@pytest.mark.asyncio
async def test_create_invoice_without_province_has_no_tax(client):
    customer = (await client.post("/api/customers", json={"store_name": "Nowhere Pets"})).json()
    invoice = await _create_invoice(client, customer["id"])
    assert invoice["tax"] == 0.0


@pytest.mark.asyncio
async def test_invoice_numbers_sequential_per_year(client, customer):
    first = await _create_invoice(client, customer["id"])
    second = await _create_invoice(client, customer["id"])
    next_year = await _create_invoice(client, customer["id"], issue_date="2026-01-05")

    assert first["invoice_number"] == "INV-2025-0001"
    assert second["invoice_number"] == "INV-2025-0002"
    assert next_year["invoice_number"] == "INV-2026-0001"


@pytest.mark.asyncio
async def test_create_invoice_requires_items(client, customer):
    response = await client.post("/api/invoices", json={"customer_id": customer["id"], "items": []})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_create_invoice_unknown_customer(client):
    response = await client.post(
        "/api/invoices",
        json={"customer_id": "77777777-7777-4777-8777-777777777777", "items": ITEMS},
    )
    assert response.status_code == 404


# ── Read / update / delete ───────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_list_invoices_filters(client, customer):
    march = await _create_invoice(client, customer["id"])
    await _create_invoice(client, customer["id"], issue_date="2025-05-15")
    await client.post(f"/api/invoices/{march['id']}/mark-paid")

    assert len((await client.get("/api/invoices")).json()) == 2

    paid = (await client.get("/api/invoices", params={"status": "paid"})).json()
    assert [i["id"] for i in paid] == [march["id"]]

    may = (await client.get("/api/invoices", params={"date_from": "2025-04-01"})).json()
    assert [i["issue_date"] for i in may] == ["2025-05-15"]

    assert (await client.get("/api/invoices", params={"customer_id": "nope"})).status_code == 400


@pytest.mark.asyncio
async def test_update_invoice(client, customer):
    invoice = await _create_invoice(client, customer["id"])
    response = await client.put(
        f"/api/invoices/{invoice['id']}", json={"due_date": "2025-04-15", "notes": "Net 30"}
    )
    assert response.status_code == 200
    assert response.json()["due_date"] == "2025-04-15"
    assert response.json()["notes"] == "Net 30"


@pytest.mark.asyncio
async def test_delete_only_drafts(client, customer):
    draft = await _create_invoice(client, customer["id"])
    paid = await _create_invoice(client, customer["id"])
    await client.post(f"/api/invoices/{paid['id']}/mark-paid")

    response = await client.delete(f"/api/invoices/{paid['id']}")
    assert response.status_code == 400
    assert response.json()["detail"] == "Only draft invoices can be deleted"

    assert (await client.delete(f"/api/invoices/{draft['id']}")).status_code == 200
    assert (await client.get(f"/api/invoices/{draft['id']}")).status_code == 404


@pytest.mark.asyncio
async def test_missing_invoice(client):
    missing = "88888888-8888-4888-8888-888888888888"
    assert (await client.get(f"/api/invoices/{missing}")).status_code == 404
    assert (await client.post(f"/api/invoices/{missing}/send")).status_code == 404
    assert (await client.post(f"/api/invoices/{missing}/mark-paid")).status_code == 404


# ── Send ─────────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_send_without_stripe_marks_sent(client, customer):
    invoice = await _create_invoice(client, customer["id"])
    response = await client.post(f"/api/invoices/{invoice['id']}/send")

    assert response.status_code == 200
    assert response.json()["status"] == "sent"
    assert response.json()["sent_date"] is not None
    assert response.json()["stripe_invoice_id"] is None


@pytest.mark.asyncio
async def test_send_through_stripe(api_app, client, customer):
    billing = _mock_billing()
    api_app.state.stripe_billing = billing
    automation = MagicMock()
    automation.send_invoice_email = AsyncMock(return_value="msg_1")
    api_app.state.email_automation = automation

    invoice = await _create_invoice(client, customer["id"])
    response = await client.post(f"/api/invoices/{invoice['id']}/send")

    assert response.status_code == 200
    sent = response.json()
    assert sent["status"] == "sent"
    assert sent["stripe_invoice_id"] == "in_test"
    assert sent["pdf_url"] == "https://stripe.test/i.pdf"

    billing.create_invoice.assert_awaited_once()
    assert billing.create_invoice.await_args.args[1] == "cus_test"
    automation.send_invoice_email.assert_awaited_once()

    stored = (await client.get(f"/api/customers/{customer['id']}")).json()
    assert stored["stripe_customer_id"] == "cus_test"


@pytest.mark.asyncio
async def test_resend_reuses_stripe_invoice(api_app, client, customer):
    billing = _mock_billing()
    api_app.state.stripe_billing = billing
    invoice = await _create_invoice(client, customer["id"])

    await client.post(f"/api/invoices/{invoice['id']}/send")
    await client.post(f"/api/invoices/{invoice['id']}/send")

    assert billing.create_invoice.await_count == 1
    assert billing.send_invoice.await_count == 2


@pytest.mark.asyncio
async def test_stripe_failure_leaves_invoice_draft(api_app, client, customer):
    billing = _mock_billing()
    billing.create_invoice = AsyncMock(side_effect=RuntimeError("card_declined"))
    api_app.state.stripe_billing = billing

    invoice = await _create_invoice(client, customer["id"])
    response = await client.post(f"/api/invoices/{invoice['id']}/send")

    assert response.status_code == 500
    assert "card_declined" in response.json()["detail"]
    assert (await client.get(f"/api/invoices/{invoice['id']}")).json()["status"] == "draft"


@pytest.mark.asyncio
async def test_notification_failure_still_sends(api_app, client, customer):
    automation = MagicMock()
    automation.send_invoice_email = AsyncMock(side_effect=RuntimeError("resend down"))
    api_app.state.email_automation = automation

    invoice = await _create_invoice(client, customer["id"])
    response = await client.post(f"/api/invoices/{invoice['id']}/send")
    assert response.status_code == 200
    assert response.json()["status"] == "sent"


@pytest.mark.asyncio
@pytest.mark.parametrize("final_status", ["paid", "cancelled"])
async def test_cannot_send_closed_invoice(client, customer, final_status):
    invoice = await _create_invoice(client, customer["id"])
    await client.put(f"/api/invoices/{invoice['id']}", json={"status": final_status})

    response = await client.post(f"/api/invoices/{invoice['id']}/send")
    assert response.status_code == 400


# ── Payment & sync ───────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_mark_paid(client, customer):
    invoice = await _create_invoice(client, customer["id"])
    response = await client.post(f"/api/invoices/{invoice['id']}/mark-paid")

    assert response.json()["status"] == "paid"
    assert response.json()["paid_date"] is not None


@pytest.mark.asyncio
async def test_sync_requires_stripe(client, customer):
    invoice = await _create_invoice(client, customer["id"])
    assert (await client.post(f"/api/invoices/{invoice['id']}/sync")).status_code == 503


@pytest.mark.asyncio
async def test_sync_requires_stripe_link(api_app, client, customer):
    api_app.state.stripe_billing = _mock_billing()
    invoice = await _create_invoice(client, customer["id"])
    assert (await client.post(f"/api/invoices/{invoice['id']}/sync")).status_code == 400


@pytest.mark.asyncio
async def test_sync_marks_paid(api_app, client, customer):
    billing = _mock_billing()
    billing.sync_invoice_status = AsyncMock(
        return_value={"status": "paid", "paid": True, "amount_paid": 113.0, "invoice_pdf": None}
    )
    api_app.state.stripe_billing = billing

    invoice = await _create_invoice(client, customer["id"])
    await client.post(f"/api/invoices/{invoice['id']}/send")

    response = await client.post(f"/api/invoices/{invoice['id']}/sync")
    assert response.status_code == 200
    body = response.json()
    assert body["stripe_status"] == "paid"
    assert body["amount_paid"] == 113.0
    assert body["invoice"]["status"] == "paid"
    assert body["invoice"]["paid_date"] is not None
