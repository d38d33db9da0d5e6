"""Tests for global search across customers, deals, products, and invoices."""

from __future__ import annotations

import pytest

from src.crm.search.repository import rank_match


async def _seed(client, customer_id: str) -> dict:
    product = await client.post(
        "/api/products", json={"sku": "WHK-1", "name": "Whiskers", "unit_price": 12.5}
    )
    deal = await client.post(
        "/api/deals",
        json={"customer_id": customer_id, "title": "Whiskers restock", "value": 1500.0, "stage": "Lead"},
    )
    invoice = await client.post(
        "/api/invoices",
        json={
            "customer_id": customer_id,
            "issue_date": "2025-03-01",
            "items": [{"description": "Purrify 50g", "quantity": 2, "unit_price": 25.0}],
        },
    )
    for response in (product, deal, invoice):
        assert response.status_code == 201, response.text
    return {"product": product.json(), "deal": deal.json(), "invoice": invoice.json()}


# ── Ranking ──────────────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    ("title", "expected"),
    [
        ("Whiskers", 1.0),
        ("WHISKERS", 1.0),
        ("Whiskers & Co", 0.75),
        ("Mr Whiskers", 0.5),
        ("Toronto Pets", 0.25),
    ],
)
def test_rank_match(title, expected):
    assert rank_match("whiskers", title) == expected


# ── Endpoint ─────────────────────────────────────────────────────────────────


async def test_search_spans_entity_types(client, customer):
    seeded = await _seed(client, customer["id"])

    response = await client.get("/api/search", params={"q": "whiskers"})
    assert response.status_code == 200
    results = response.json()

    assert [(r["entity_type"], r["title"]) for r in results] == [
        ("product", "Whiskers"),
        ("customer", "Whiskers & Co"),
        ("deal", "Whiskers restock"),
        ("invoice", seeded["invoice"]["invoice_number"]),
    ]
    assert [r["rank"] for r in results] == [1.0, 0.75, 0.75, 0.25]

    by_type = {r["entity_type"]: r for r in results}
    assert by_type["customer"]["entity_id"] == customer["id"]
    assert by_type["customer"]["subtitle"] == "Toronto, ON"
    assert by_type["deal"]["entity_id"] == seeded["deal"]["id"]
    assert by_type["deal"]["subtitle"] == "Lead - $1,500.00"
    assert by_type["product"]["subtitle"] == "WHK-1"
    assert by_type["invoice"]["subtitle"] == "Whiskers & Co, draft"


async def test_search_matches_secondary_fields(client, customer):
    await _seed(client, customer["id"])

    results = (await client.get("/api/search", params={"q": "owner@whiskers"})).json()
    assert [r["entity_type"] for r in results] == ["customer"]
    assert results[0]["rank"] == 0.25

    results = (await client.get("/api/search", params={"q": "whk-1"})).json()
    assert [(r["entity_type"], r["rank"]) for r in results] == [("product", 1.0)]

    results = (await client.get("/api/search", params={"q": "INV-2025"})).json()
    assert [(r["entity_type"], r["rank"]) for r in results] == [("invoice", 0.75)]


async def test_search_limit(client, customer):
    await _seed(client, customer["id"])

    results = (await client.get("/api/search", params={"q": "whiskers", "limit": 2})).json()
    assert [r["title"] for r in results] == ["Whiskers", "Whiskers & Co"]


@pytest.mark.parametrize("query", ["", "   "])
async def test_blank_query_returns_nothing(client, customer, query):
    response = await client.get("/api/search", params={"q": query})
    assert response.status_code == 200
    assert response.json() == []


async def test_search_no_matches(client, customer):
    assert (await client.get("/api/search", params={"q": "zebra"})).json() == []


async def test_search_repository_missing(api_app, client):
    api_app.state.search_repository = None
    response = await client.get("/api/search", params={"q": "x"})
    assert response.status_code == 503
