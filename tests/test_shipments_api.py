"""Tests for the shipment endpoints with a mocked NetParcel client."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.crm.shipments.netparcel import NetParcelError

LABEL = {
    "tracking_number": "1Z999AA10123456784",
    "label_url": "https://labels.test/1Z999.pdf",
    "cost": 18.75,
    "carrier": "Canpar",
    "estimated_delivery_date": "2025-03-20",
}

PACKAGE = {"weight": 5, "length": 12, "width": 10, "height": 8, "service_level": "ground"}


def _mock_netparcel() -> MagicMock:
    netparcel = MagicMock()
    netparcel.create_shipment = AsyncMock(return_value=dict(LABEL))
    netparcel.cancel_shipment = AsyncMock(return_value=None)
    netparcel.get_tracking = AsyncMock(return_value={"status": "in_transit", "events": []})
    netparcel.get_rates = AsyncMock(return_value={"rates": [{"service": "ground", "cost": 14.2, "days": 5}]})
    return netparcel


@pytest.fixture
def netparcel(api_app) -> MagicMock:
    api_app.state.netparcel_client = _mock_netparcel()
    return api_app.state.netparcel_client


async def _create_shipment(client, customer_id: str, **overrides) -> dict:
    payload = {"customer_id": customer_id, **PACKAGE}
    payload.update(overrides)
    response = await client.post("/api/shipments/create", json=payload)
    assert response.status_code == 200, response.text
    return response.json()["shipment"]


# ── Create ───────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_create_shipment(client, customer, netparcel):
    response = await client.post("/api/shipments/create", json={"customer_id": customer["id"], **PACKAGE})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    shipment = body["shipment"]
    assert shipment["status"] == "label_created"
    assert shipment["tracking_number"] == LABEL["tracking_number"]
    assert shipment["shipping_cost"] == 18.75
    assert shipment["package_count"] == 1
    assert shipment["estimated_delivery_date"] == "2025-03-20"
    assert shipment["order_number"].startswith("ORD-")
    assert shipment["customer_name"] == "Whiskers & Co"
    assert [e["message"] for e in shipment["events"]] == ["Shipping label created"]

    kwargs = netparcel.create_shipment.await_args.kwargs
    assert kwargs["customer_id"] == customer["id"]
    assert kwargs["service_level"] == "ground"


@pytest.mark.asyncio
@pytest.mark.parametrize("missing", ["weight", "length", "width", "height", "service_level"])
async def test_create_shipment_missing_fields(client, customer, netparcel, missing):
    payload = {"customer_id": customer["id"], **PACKAGE}
    del payload[missing]

    response = await client.post("/api/shipments/create", json=payload)
    assert response.status_code == 400
    assert response.json()["detail"] == "Missing required fields"
    netparcel.create_shipment.assert_not_awaited()


@pytest.mark.asyncio
async def test_create_shipment_unknown_customer(client, netparcel):
    response = await client.post(
        "/api/shipments/create",
        json={"customer_id": "99999999-9999-4999-8999-999999999999", **PACKAGE},
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_create_shipment_without_netparcel(client, customer):
    response = await client.post("/api/shipments/create", json={"customer_id": customer["id"], **PACKAGE})
    assert response.status_code == 503


@pytest.mark.asyncio
async def test_create_shipment_provider_error(client, customer, netparcel):
    netparcel.create_shipment.side_effect = NetParcelError("NetParcel API Error: Invalid postal code")

    response = await client.post("/api/shipments/create", json={"customer_id": customer["id"], **PACKAGE})
    assert response.status_code == 500
    assert response.json()["detail"] == "NetParcel error: NetParcel API Error: Invalid postal code"
    assert (await client.get("/api/shipments")).json() == []


@pytest.mark.asyncio
async def test_create_shipment_sends_notification(api_app, client, customer, netparcel):
    automation = MagicMock()
    automation.send_shipment_email = AsyncMock(side_effect=RuntimeError("resend down"))
    api_app.state.email_automation = automation

    shipment = await _create_shipment(client, customer["id"])
    assert shipment["status"] == "label_created"
    automation.send_shipment_email.assert_awaited_once()


# ── Read ─────────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_list_and_get_shipments(client, customer, netparcel):
    shipment = await _create_shipment(client, customer["id"])

    listed = (await client.get("/api/shipments", params={"customer_id": customer["id"]})).json()
    assert [s["id"] for s in listed] == [shipment["id"]]
    assert (await client.get("/api/shipments", params={"status": "delivered"})).json() == []

    fetched = (await client.get(f"/api/shipments/{shipment['id']}")).json()
    assert fetched["order_number"] == shipment["order_number"]
    assert (await client.get("/api/shipments/nope")).status_code == 404


# ── Cancel ───────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_cancel_shipment(client, customer, netparcel):
    shipment = await _create_shipment(client, customer["id"])

    response = await client.post(f"/api/shipments/{shipment['id']}/cancel")
    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Shipment cancelled successfully"}
    netparcel.cancel_shipment.assert_awaited_once_with(LABEL["tracking_number"])

    fetched = (await client.get(f"/api/shipments/{shipment['id']}")).json()
    assert fetched["status"] == "cancelled"
    assert "Shipment cancelled" in [e["message"] for e in fetched["events"]]

    again = await client.post(f"/api/shipments/{shipment['id']}/cancel")
    assert again.status_code == 400


@pytest.mark.asyncio
async def test_cancel_survives_provider_failure(client, customer, netparcel):
    netparcel.cancel_shipment.side_effect = NetParcelError("NetParcel API Error: already picked up")
    shipment = await _create_shipment(client, customer["id"])

    response = await client.post(f"/api/shipments/{shipment['id']}/cancel")
    assert response.status_code == 200
    assert (await client.get(f"/api/shipments/{shipment['id']}")).json()["status"] == "cancelled"


@pytest.mark.asyncio
async def test_cancel_missing_shipment(client):
    response = await client.post("/api/shipments/99999999-9999-4999-8999-999999999999/cancel")
    assert response.status_code == 404


# ── Refresh ──────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_refresh_tracking_adds_only_new_events(client, customer, netparcel):
    shipment = await _create_shipment(client, customer["id"])
    netparcel.get_tracking.return_value = {
        "status": "delivered",
        "delivered_date": "2025-03-16T08:00:00Z",
        "events": [
            {"status": "in_transit", "message": "Departed facility", "location": "Toronto, ON",
             "timestamp": "2025-03-15T10:00:00Z"},
            {"status": "delivered", "message": "Delivered", "location": "",
             "timestamp": "2025-03-16T08:00:00Z"},
            {"status": "in_transit", "message": "No timestamp"},
        ],
    }

    response = await client.post(f"/api/shipments/{shipment['id']}/refresh")
    assert response.status_code == 200
    assert response.json() == {"success": True, "status": "delivered", "eventsAdded": 2}

    response = await client.post(f"/api/shipments/{shipment['id']}/refresh")
    assert response.json()["eventsAdded"] == 0

    fetched = (await client.get(f"/api/shipments/{shipment['id']}")).json()
    assert fetched["status"] == "delivered"
    assert fetched["delivered_date"].startswith("2025-03-16T08:00:00")
    assert len(fetched["events"]) == 3
    delivered = next(e for e in fetched["events"] if e["message"] == "Delivered")
    assert delivered["location"] is None


@pytest.mark.asyncio
async def test_refresh_without_tracking_number(client, customer, netparcel):
    netparcel.create_shipment.return_value = {**LABEL, "tracking_number": None}
    shipment = await _create_shipment(client, customer["id"])

    response = await client.post(f"/api/shipments/{shipment['id']}/refresh")
    assert response.status_code == 400
    assert response.json()["detail"] == "No tracking number available"


@pytest.mark.asyncio
async def test_refresh_provider_error(client, customer, netparcel):
    shipment = await _create_shipment(client, customer["id"])
    netparcel.get_tracking.side_effect = NetParcelError("NetParcel API Error: Not found")

    response = await client.post(f"/api/shipments/{shipment['id']}/refresh")
    assert response.status_code == 500
    assert response.json()["detail"] == "NetParcel API Error: Not found"


# ── Rates ────────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_quote_rates(client, netparcel):
    response = await client.post(
        "/api/shipments/rates",
        json={"weight": 5, "length": 12, "width": 10, "height": 8, "destination_postal_code": "V6B1A1"},
    )
    assert response.status_code == 200
    assert response.json()["rates"][0]["service"] == "ground"
    assert netparcel.get_rates.await_args.kwargs["destination_postal_code"] == "V6B1A1"


@pytest.mark.asyncio
async def test_quote_rates_validates_package(client, netparcel):
    response = await client.post(
        "/api/shipments/rates",
        json={"weight": 0, "length": 12, "width": 10, "height": 8, "destination_postal_code": "V6B1A1"},
    )
    assert response.status_code == 422


# ── Rate limiting ────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_create_shipment_is_rate_limited(client, customer, netparcel):
    response = await client.post("/api/shipments/create", json={"customer_id": customer["id"], **PACKAGE})
    assert response.status_code == 200
    assert response.headers["X-RateLimit-Limit"] == "30"
    assert response.headers["X-RateLimit-Remaining"] == "29"

    for _ in range(29):
        assert (await client.post("/api/shipments/create", json={})).status_code == 400

    response = await client.post("/api/shipments/create", json={"customer_id": customer["id"], **PACKAGE})
    assert response.status_code == 429
    assert response.json()["message"] == "Too many requests. Limit: 30 per minute."
    assert netparcel.create_shipment.await_count == 1


@pytest.mark.asyncio
async def test_rate_quotes_share_the_shipments_limit(client, customer, netparcel):
    quote = {"weight": 5, "length": 12, "width": 10, "height": 8, "destination_postal_code": "V6B1A1"}

    response = await client.post("/api/shipments/rates", json=quote)
    assert response.status_code == 200
    assert response.headers["X-RateLimit-Remaining"] == "29"

    for _ in range(29):
        await client.post("/api/shipments/create", json={})

    response = await client.post("/api/shipments/rates", json=quote)
    assert response.status_code == 429
    assert response.headers["X-RateLimit-Remaining"] == "0"
    assert netparcel.get_rates.await_count == 1
