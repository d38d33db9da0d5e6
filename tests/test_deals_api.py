"""Tests for deal CRUD and the pipeline view.

Uses the SQLite-backed client with the default stages seeded.
"""

from __future__ import annotations

import pytest


async def _create_deal(client, customer_id: str, **overrides) -> dict:
    payload = {"customer_id": customer_id, "title": "Spring order", "value": 1000.0}
    payload.update(overrides)
    response = await client.post("/api/deals", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


# ── Stages ───────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_default_stages_in_order(client):
    stages = (await client.get("/api/deals/stages")).json()
    assert [(s["name"], s["probability"]) for s in stages] == [
        ("Lead", 10),
        ("Qualified", 25),
        ("Proposal", 50),
        ("Negotiation", 75),
        ("Closed Won", 100),
        ("Closed Lost", 0),
    ]


@pytest.mark.asyncio
async def test_default_stages_seeded_once(api_app):
    assert await api_app.state.deal_repository.ensure_default_stages() == 0
    assert len(await api_app.state.deal_repository.list_stages()) == 6


# ── Deals ────────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_create_deal_defaults_to_lead(client, customer):
    deal = await _create_deal(client, customer["id"])
    assert deal["stage"] == "Lead"
    assert deal["customer_name"] == "Whiskers & Co"
    assert deal["closed_at"] is None


@pytest.mark.asyncio
async def test_create_deal_unknown_stage(client, customer):
    response = await client.post(
        "/api/deals",
        json={"customer_id": customer["id"], "title": "Odd", "stage": "Daydreaming"},
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Unknown stage: Daydreaming"


@pytest.mark.asyncio
async def test_create_deal_unknown_customer(client):
    response = await client.post(
        "/api/deals",
        json={"customer_id": "66666666-6666-4666-8666-666666666666", "title": "Ghost"},
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_create_deal_rejects_negative_value(client, customer):
    response = await client.post(
        "/api/deals", json={"customer_id": customer["id"], "title": "Bad", "value": -5}
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_create_closed_deal_sets_closed_at(client, customer):
    deal = await _create_deal(client, customer["id"], stage="Closed Won")
    assert deal["closed_at"] is not None


@pytest.mark.asyncio
async def test_moving_stage_sets_and_clears_closed_at(client, customer):
    deal = await _create_deal(client, customer["id"])

    response = await client.put(f"/api/deals/{deal['id']}", json={"stage": "Closed Lost"})
    assert response.status_code == 200
    assert response.json()["closed_at"] is not None

    response = await client.put(f"/api/deals/{deal['id']}", json={"stage": "Negotiation"})
    assert response.json()["stage"] == "Negotiation"
    assert response.json()["closed_at"] is None


@pytest.mark.asyncio
async def test_update_deal_unknown_stage(client, customer):
    deal = await _create_deal(client, customer["id"])
    response = await client.put(f"/api/deals/{deal['id']}", json={"stage": "Nowhere"})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_get_and_delete_deal(client, customer):
    deal = await _create_deal(client, customer["id"])

    assert (await client.get(f"/api/deals/{deal['id']}")).json()["title"] == "Spring order"
    assert (await client.delete(f"/api/deals/{deal['id']}")).status_code == 200
    assert (await client.get(f"/api/deals/{deal['id']}")).status_code == 404
    assert (await client.delete(f"/api/deals/{deal['id']}")).status_code == 404
    assert (await client.get("/api/deals/not-a-uuid")).status_code == 404


@pytest.mark.asyncio
async def test_list_deals_by_customer(client, customer):
    other = (await client.post("/api/customers", json={"store_name": "Other Store"})).json()
    await _create_deal(client, customer["id"], title="Mine")
    await _create_deal(client, other["id"], title="Theirs")

    assert len((await client.get("/api/deals")).json()) == 2
    response = await client.get("/api/deals", params={"customer_id": other["id"]})
    assert [d["title"] for d in response.json()] == ["Theirs"]

    assert (await client.get("/api/deals", params={"customer_id": "bad"})).status_code == 400


# ── Pipeline ─────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_pipeline_groups_and_totals(client, customer):
    cid = customer["id"]
    await _create_deal(client, cid, title="A", value=1000, stage="Lead")
    await _create_deal(client, cid, title="B", value=2000, stage="Proposal")
    await _create_deal(client, cid, title="C", value=400, stage="Proposal", probability=10)
    await _create_deal(client, cid, title="D", value=5000, stage="Closed Won")

    pipeline = (await client.get("/api/deals/pipeline")).json()

    assert list(pipeline["deals_by_stage"]) == [
        "Lead", "Qualified", "Proposal", "Negotiation", "Closed Won", "Closed Lost",
    ]
    assert pipeline["stage_counts"]["Proposal"] == 2
    assert pipeline["stage_counts"]["Qualified"] == 0
    assert pipeline["stage_counts"]["Closed Won"] == 1
    # Closed deals are excluded from open value
    assert pipeline["total_open_value"] == 3400
    # 1000*10% + 2000*50% + 400*10% (explicit probability wins)
    assert pipeline["weighted_value"] == 1140


@pytest.mark.asyncio
async def test_deal_writes_are_logged(client, customer):
    deal = await _create_deal(client, customer["id"])
    await client.put(f"/api/deals/{deal['id']}", json={"value": 1500})

    entries = [e for e in (await client.get("/api/activity")).json() if e["entity_type"] == "deal"]
    update = next(e for e in entries if e["action"] == "update")
    assert update["old_data"] == {"value": 1000.0}
    assert update["new_data"] == {"value": 1500.0}
