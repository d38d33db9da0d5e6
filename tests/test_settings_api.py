"""Tests for the company profile endpoints."""

from __future__ import annotations


async def test_company_settings_empty_until_saved(client):
    response = await client.get("/api/settings/company")
    assert response.status_code == 200
    assert response.json() is None


async def test_first_save_requires_name(client):
    response = await client.put("/api/settings/company", json={"city": "Toronto"})
    assert response.status_code == 400
    assert response.json()["detail"] == "Company name is required"


async def test_create_then_update_company_settings(client):
    created = await client.put(
        "/api/settings/company",
        json={"name": "Purrify", "email": "hello@purrify.ca", "province": "ON"},
    )
    assert created.status_code == 200
    data = created.json()
    assert data["name"] == "Purrify"
    assert data["currency"] == "CAD"
    assert data["tax_rate"] == 0.0

    updated = await client.put("/api/settings/company", json={"phone": "416-555-0199", "tax_rate": 13})
    assert updated.status_code == 200
    assert updated.json()["id"] == data["id"]

    current = (await client.get("/api/settings/company")).json()
    assert current["name"] == "Purrify"
    assert current["phone"] == "416-555-0199"
    assert current["tax_rate"] == 13.0


async def test_company_settings_validation(client):
    response = await client.put("/api/settings/company", json={"name": "Purrify", "tax_rate": 150})
    assert response.status_code == 422

    response = await client.put("/api/settings/company", json={"name": "Purrify", "currency": "CA"})
    assert response.status_code == 422


async def test_company_settings_update_is_audited(client):
    await client.put("/api/settings/company", json={"name": "Purrify"})

    entries = (await client.get("/api/activity")).json()
    assert entries[0]["entity_type"] == "company_settings"
    assert entries[0]["category"] == "settings"
    assert entries[0]["new_data"] == {"name": "Purrify"}


async def test_company_settings_unavailable(api_app, client):
    api_app.state.company_repository = None
    response = await client.get("/api/settings/company")
    assert response.status_code == 503
