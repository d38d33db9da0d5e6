"""Async SQLAlchemy engine, declarative base, and session factory.

Provides:
- Base: Declarative base for all CRM tables
- get_session(): AsyncSession generator used by repositories and endpoints
- init_db(): create tables on startup (Alembic owns schema changes in production)
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from src.crm.config import get_settings

# ── Module-level engine (lazy init) ────────────────────────────────────────

_engine: AsyncEngine | None = None


def get_engine() -> AsyncEngine:
    """Get or create the async engine singleton."""
    global _engine
    if _engine is None:
        settings = get_settings()
        kwargs: dict = {"echo": False}
        if not settings.DATABASE_URL.startswith("sqlite"):
            kwargs.update(pool_size=20, max_overflow=10, pool_pre_ping=True)
        _engine = create_async_engine(settings.DATABASE_URL, **kwargs)
    return _engine


# ── Declarative Base ────────────────────────────────────────────────────────


class Base(DeclarativeBase):
    """Base class for all CRM models."""


# ── Session Factory ─────────────────────────────────────────────────────────


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an AsyncSession bound to the shared engine."""
    engine = get_engine()
    async with AsyncSession(engine, expire_on_commit=False) as session:
        yield session


# ── Database Initialization ─────────────────────────────────────────────────


def _import_models() -> None:
    """Import every model module so Base.metadata knows all tables."""
    import src.crm.activity.models  # noqa: F401
    import src.crm.company.models  # noqa: F401
    import src.crm.customers.models  # noqa: F401
    import src.crm.deals.models  # noqa: F401
    import src.crm.emails.models  # noqa: F401
    import src.crm.invoices.models  # noqa: F401
    import src.crm.models.user  # noqa: F401
    import src.crm.products.models  # noqa: F401
    import src.crm.shipments.models  # noqa: F401


async def init_db() -> None:
    """Create all tables if they don't exist."""
    _import_models()
    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose of the engine and close all connections."""
    global _engine
    if _engine:
        await _engine.dispose()
        _engine = None
