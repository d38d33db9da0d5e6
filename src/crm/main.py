"""FastAPI application factory.

Creates the app with session, logging, and metrics middleware, CORS,
Sentry, lifespan events for database initialization, the /api router,
and the browser pages.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import Response

from src.crm.config import get_settings
from src.crm.core.database import close_db, get_session, init_db
from src.crm.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry
from src.crm.core.rate_limit import RateLimiter, RateLimitExceeded, rate_limit_exceeded_handler
from src.crm.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.crm.api.middleware.session import SessionMiddleware
from src.crm.api.pages import router as pages_router
from src.crm.api.v1.router import router as api_router


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: init DB, repositories and clients on startup, close on shutdown."""
    import structlog

    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()
    await init_db()

    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT.value)

    missing = settings.missing_required()
    if missing:
        log.warning("config.missing_required", missing=missing)

    app.state.rate_limiter = RateLimiter()

    # Each module is wrapped in its own try/except so one failure does not
    # prevent startup; the affected endpoints answer 503 instead.

    # ── Customers ───────────────────────────────────────────────────────
    try:
        from src.crm.customers.repository import CustomerRepository, SavedSearchRepository

        app.state.customer_repository = CustomerRepository(session_factory=get_session)
        app.state.saved_search_repository = SavedSearchRepository(session_factory=get_session)
        log.info("customers.initialized")
    except Exception:
        log.warning("customers.init_failed", exc_info=True)
        app.state.customer_repository = None
        app.state.saved_search_repository = None

    # ── Deals ───────────────────────────────────────────────────────────
    try:
        from src.crm.deals.repository import DealRepository

        deal_repository = DealRepository(session_factory=get_session)
        await deal_repository.ensure_default_stages()
        app.state.deal_repository = deal_repository
        log.info("deals.initialized")
    except Exception:
        log.warning("deals.init_failed", exc_info=True)
        app.state.deal_repository = None

    # ── Products & Invoices ─────────────────────────────────────────────
    try:
        from src.crm.invoices.repository import InvoiceRepository
        from src.crm.products.repository import ProductRepository

        app.state.product_repository = ProductRepository(session_factory=get_session)
        app.state.invoice_repository = InvoiceRepository(session_factory=get_session)
        log.info("invoices.initialized")
    except Exception:
        log.warning("invoices.init_failed", exc_info=True)
        app.state.product_repository = None
        app.state.invoice_repository = None

    # ── Global search ───────────────────────────────────────────────────
    try:
        from src.crm.search.repository import GlobalSearchRepository

        app.state.search_repository = GlobalSearchRepository(session_factory=get_session)
    except Exception:
        log.warning("search.init_failed", exc_info=True)
        app.state.search_repository = None

    app.state.stripe_billing = None
    if settings.stripe_configured:
        try:
            from src.crm.invoices.stripe_billing import StripeBilling

            app.state.stripe_billing = StripeBilling(api_key=settings.STRIPE_SECRET_KEY)
            log.info("stripe.initialized")
        except Exception:
            log.warning("stripe.init_failed", exc_info=True)

    # ── Shipments ───────────────────────────────────────────────────────
    try:
        from src.crm.shipments.repository import ShipmentRepository

        app.state.shipment_repository = ShipmentRepository(session_factory=get_session)
        log.info("shipments.initialized")
    except Exception:
        log.warning("shipments.init_failed", exc_info=True)
        app.state.shipment_repository = None

    app.state.netparcel_client = None
    if settings.netparcel_configured:
        try:
            from src.crm.shipments.netparcel import NetParcelClient

            app.state.netparcel_client = NetParcelClient(
                api_key=settings.NETPARCEL_API_KEY,
                account_id=settings.NETPARCEL_ACCOUNT_ID,
                base_url=settings.NETPARCEL_API_URL,
                origin_postal_code=settings.NETPARCEL_ORIGIN_POSTAL_CODE,
            )
            log.info("netparcel.initialized")
        except Exception:
            log.warning("netparcel.init_failed", exc_info=True)

    # ── Activity ────────────────────────────────────────────────────────
    try:
        from src.crm.activity.repository import (
            ActivityLogRepository,
            TaskRepository,
            TimelineRepository,
        )

        app.state.timeline_repository = TimelineRepository(session_factory=get_session)
        app.state.task_repository = TaskRepository(session_factory=get_session)
        app.state.activity_log_repository = ActivityLogRepository(session_factory=get_session)
        log.info("activity.initialized")
    except Exception:
        log.warning("activity.init_failed", exc_info=True)
        app.state.timeline_repository = None
        app.state.task_repository = None
        app.state.activity_log_repository = None

    # ── Company settings ────────────────────────────────────────────────
    try:
        from src.crm.company.repository import CompanySettingsRepository

        app.state.company_repository = CompanySettingsRepository(session_factory=get_session)
    except Exception:
        log.warning("company.init_failed", exc_info=True)
        app.state.company_repository = None

    # ── Email ───────────────────────────────────────────────────────────
    try:
        from src.crm.emails.repository import EmailRepository

        app.state.email_repository = EmailRepository(session_factory=get_session)
    except Exception:
        log.warning("emails.init_failed", exc_info=True)
        app.state.email_repository = None

    app.state.resend_client = None
    app.state.email_automation = None
    if settings.resend_configured:
        try:
            from src.crm.emails.automation import EmailAutomation
            from src.crm.emails.resend import ResendClient

            resend = ResendClient(api_key=settings.RESEND_API_KEY, default_from=settings.EMAIL_FROM)
            app.state.resend_client = resend
            if app.state.email_repository is not None and app.state.timeline_repository is not None:
                app.state.email_automation = EmailAutomation(
                    email_repository=app.state.email_repository,
                    timeline_repository=app.state.timeline_repository,
                    resend=resend,
                )
            log.info("resend.initialized", automation=app.state.email_automation is not None)
        except Exception:
            log.warning("resend.init_failed", exc_info=True)

    log.info(
        "app.started",
        environment=settings.ENVIRONMENT.value,
        stripe=settings.stripe_configured,
        resend=settings.resend_configured,
        netparcel=settings.netparcel_configured,
    )

    yield

    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Purrify CRM API",
        version=settings.APP_VERSION,
        description="Customer, pipeline, invoicing and shipping management for Purrify",
        lifespan=lifespan,
    )

    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    # Middleware is added in reverse order (last added = outermost)

    # Session middleware (inner -- page redirects and security headers)
    app.add_middleware(SessionMiddleware)

    # CORS middleware
    if settings.CORS_ALLOWED_ORIGINS == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Logging middleware (logs every request with timing)
    app.add_middleware(LoggingMiddleware)

    # Metrics middleware (outermost -- records Prometheus metrics for all requests)
    app.add_middleware(MetricsMiddleware)

    app.include_router(api_router)
    app.include_router(pages_router)

    # Prometheus metrics endpoint (infrastructure route, outside the API router)
    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
