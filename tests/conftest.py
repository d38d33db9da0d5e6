"""Test fixtures for the CRM API and repositories.

Provides:
- A fresh SQLite database (aiosqlite) per test with every table created
- A session_factory with the same shape as src.crm.core.database.get_session
- The /api router mounted on a bare FastAPI app with real repositories on
  app.state and authentication overridden by a mock user
- An async HTTP client for that app
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine

from src.crm.activity.repository import ActivityLogRepository, TaskRepository, TimelineRepository
from src.crm.api.deps import get_current_user
from src.crm.company.repository import CompanySettingsRepository
from src.crm.config import get_settings
from src.crm.core.database import Base, _import_models
from src.crm.core.rate_limit import RateLimiter, RateLimitExceeded, rate_limit_exceeded_handler
from src.crm.customers.repository import CustomerRepository, SavedSearchRepository
from src.crm.deals.repository import DealRepository
from src.crm.emails.repository import EmailRepository
from src.crm.invoices.repository import InvoiceRepository
from src.crm.products.repository import ProductRepository
from src.crm.search.repository import GlobalSearchRepository
from src.crm.shipments.repository import ShipmentRepository

TEST_USER_ID = uuid.UUID("00000000-0000-4000-8000-000000000001")
TEST_USER_EMAIL = "staff@purrify.ca"


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Settings are cached; tests that monkeypatch env vars need a fresh read."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """SQLite engine with all CRM tables created."""
    _import_models()
    db_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'crm.db'}")
    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield db_engine
    await db_engine.dispose()


@pytest.fixture
def session_factory(engine):
    async def _session() -> AsyncGenerator[AsyncSession, None]:
        async with AsyncSession(engine, expire_on_commit=False) as session:
            yield session

    return _session


def mock_user():
    """Return a mock user for auth bypass."""
    user = MagicMock()
    user.id = TEST_USER_ID
    user.email = TEST_USER_EMAIL
    user.name = "Test Staff"
    user.role = "admin"
    user.is_active = True
    return user


def make_api_app(session_factory) -> FastAPI:
    """Create a FastAPI app with the /api router, real repositories, and mocked auth."""
    from src.crm.api.v1.router import router

    app = FastAPI()
    app.include_router(router)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.dependency_overrides[get_current_user] = mock_user

    app.state.rate_limiter = RateLimiter()
    app.state.customer_repository = CustomerRepository(session_factory=session_factory)
    app.state.saved_search_repository = SavedSearchRepository(session_factory=session_factory)
    app.state.deal_repository = DealRepository(session_factory=session_factory)
    app.state.product_repository = ProductRepository(session_factory=session_factory)
    app.state.invoice_repository = InvoiceRepository(session_factory=session_factory)
    app.state.shipment_repository = ShipmentRepository(session_factory=session_factory)
    app.state.email_repository = EmailRepository(session_factory=session_factory)
    app.state.timeline_repository = TimelineRepository(session_factory=session_factory)
    app.state.task_repository = TaskRepository(session_factory=session_factory)
    app.state.activity_log_repository = ActivityLogRepository(session_factory=session_factory)
    app.state.company_repository = CompanySettingsRepository(session_factory=session_factory)
    app.state.search_repository = GlobalSearchRepository(session_factory=session_factory)

    # External integrations are off unless a test installs a mock
    app.state.stripe_billing = None
    app.state.netparcel_client = None
    app.state.resend_client = None
    app.state.email_automation = None
    return app


@pytest_asyncio.fixture
async def api_app(session_factory) -> FastAPI:
    app = make_api_app(session_factory)
    await app.state.deal_repository.ensure_default_stages()
    return app


@pytest_asyncio.fixture
async def client(api_app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing the API."""
    transport = ASGITransport(app=api_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def customer(client) -> dict:
    """A customer in Ontario with an email address."""
    response = await client.post(
        "/api/customers",
        json={
            "store_name": "Whiskers & Co",
            "email": "owner@whiskers.ca",
            "phone": "416-555-0100",
            "province": "ON",
            "city": "Toronto",
            "postal_code": "M5V 2T6",
            "street": "12 King St W",
        },
    )
    assert response.status_code == 201, response.text
    return response.json()
