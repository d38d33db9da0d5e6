"""Tests for the page session gate and security headers."""

from __future__ import annotations

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from src.crm.api.middleware.session import SECURITY_HEADERS, SessionMiddleware, is_public_path
from src.crm.core.security import create_access_token, create_refresh_token


def _make_app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(SessionMiddleware)

    @app.get("/login")
    async def login():
        return {"page": "login"}

    @app.get("/dashboard")
    async def dashboard():
        return {"page": "dashboard"}

    @app.get("/api/ping")
    async def ping():
        return {"pong": True}

    return app


@pytest_asyncio.fixture
async def page_client():
    async with AsyncClient(transport=ASGITransport(app=_make_app()), base_url="http://test") as ac:
        yield ac


async def test_page_without_session_redirects_to_login(page_client):
    response = await page_client.get("/dashboard")
    assert response.status_code == 307
    assert response.headers["location"] == "/login"


async def test_page_with_session_is_served(page_client):
    page_client.cookies.set("crm_session", create_access_token({"sub": "user-1"}))
    response = await page_client.get("/dashboard")
    assert response.status_code == 200
    assert response.json() == {"page": "dashboard"}


async def test_invalid_or_refresh_cookie_redirects(page_client):
    page_client.cookies.set("crm_session", create_refresh_token({"sub": "user-1"}))
    assert (await page_client.get("/dashboard")).status_code == 307

    page_client.cookies.set("crm_session", "garbage")
    assert (await page_client.get("/dashboard")).status_code == 307


async def test_login_page_public_without_session(page_client):
    response = await page_client.get("/login")
    assert response.status_code == 200


async def test_login_with_session_redirects_home(page_client):
    page_client.cookies.set("crm_session", create_access_token({"sub": "user-1"}))
    response = await page_client.get("/login")
    assert response.status_code == 307
    assert response.headers["location"] == "/dashboard"


async def test_api_paths_not_gated(page_client):
    response = await page_client.get("/api/ping")
    assert response.status_code == 200


async def test_security_headers_on_every_response(page_client):
    for path in ("/dashboard", "/login", "/api/ping"):
        response = await page_client.get(path)
        for name, value in SECURITY_HEADERS.items():
            assert response.headers[name] == value


@pytest.mark.parametrize(
    "path, public",
    [
        ("/api", True),
        ("/api/customers", True),
        ("/metrics", True),
        ("/openapi.json", True),
        ("/apiary", False),
        ("/dashboard", False),
        ("/", False),
    ],
)
def test_is_public_path(path, public):
    assert is_public_path(path) is public
