"""Tests for the product catalog endpoints."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest


async def _create_product(client, **overrides) -> dict:
    payload = {"sku": "PUR-50", "name": "Purrify 50g", "unit_price": 12.99}
    payload.update(overrides)
    response = await client.post("/api/products", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
async def test_create_and_list_products(client):
    await _create_product(client, sku="PUR-120", name="Purrify 120g", unit_price=24.99)
    await _create_product(client)

    products = (await client.get("/api/products")).json()
    assert [p["name"] for p in products] == ["Purrify 120g", "Purrify 50g"]
    assert products[0]["currency"] == "CAD"
    assert products[0]["active"] is True


@pytest.mark.asyncio
async def test_duplicate_sku_rejected(client):
    await _create_product(client)
    response = await client.post("/api/products", json={"sku": "PUR-50", "name": "Again", "unit_price": 1})
    assert response.status_code == 400
    assert "PUR-50" in response.json()["detail"]


@pytest.mark.asyncio
async def test_invalid_product_payload(client):
    response = await client.post("/api/products", json={"sku": "X", "name": "Y", "unit_price": -1})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_update_product(client):
    product = await _create_product(client)
    response = await client.put(f"/api/products/{product['id']}", json={"unit_price": 14.5})
    assert response.status_code == 200
    assert response.json()["unit_price"] == 14.5
    assert response.json()["sku"] == "PUR-50"

    assert (await client.put("/api/products/nope", json={"unit_price": 1})).status_code == 404


@pytest.mark.asyncio
async def test_delete_is_soft(client):
    product = await _create_product(client)
    assert (await client.delete(f"/api/products/{product['id']}")).status_code == 200

    assert (await client.get("/api/products")).json() == []
    everything = (await client.get("/api/products", params={"include_inactive": True})).json()
    assert [p["active"] for p in everything] == [False]
    assert (await client.get(f"/api/products/{product['id']}")).json()["active"] is False


@pytest.mark.asyncio
async def test_stripe_price_requires_stripe(client):
    product = await _create_product(client)
    assert (await client.post(f"/api/products/{product['id']}/stripe-price")).status_code == 503


@pytest.mark.asyncio
async def test_stripe_price_created_and_stored(api_app, client):
    billing = MagicMock()
    billing.create_price = AsyncMock(return_value="price_123")
    api_app.state.stripe_billing = billing

    product = await _create_product(client)
    response = await client.post(f"/api/products/{product['id']}/stripe-price")

    assert response.status_code == 200
    assert response.json()["stripe_price_id"] == "price_123"
    assert (await client.get(f"/api/products/{product['id']}")).json()["stripe_price_id"] == "price_123"


@pytest.mark.asyncio
async def test_stripe_price_error(api_app, client):
    billing = MagicMock()
    billing.create_price = AsyncMock(side_effect=RuntimeError("invalid currency"))
    api_app.state.stripe_billing = billing

    product = await _create_product(client)
    response = await client.post(f"/api/products/{product['id']}/stripe-price")
    assert response.status_code == 500
    assert response.json()["detail"] == "Stripe error: invalid currency"
