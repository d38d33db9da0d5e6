"""API router -- aggregates every endpoint router under /api."""

from __future__ import annotations

from fastapi import APIRouter

from src.crm.api.v1 import (
    activity,
    analytics,
    auth,
    customers,
    deals,
    emails,
    export,
    health,
    invoices,
    products,
    saved_searches,
    search,
    settings,
    shipments,
    webhooks,
)

router = APIRouter(prefix="/api")

router.include_router(health.router)
router.include_router(auth.router)
router.include_router(customers.router)
router.include_router(saved_searches.router)
router.include_router(search.router)
router.include_router(deals.router)
router.include_router(products.router)
router.include_router(invoices.router)
router.include_router(shipments.router)
router.include_router(emails.router)
router.include_router(activity.router)
router.include_router(settings.router)
router.include_router(webhooks.router)
router.include_router(export.router)
router.include_router(analytics.router)
