"""Dashboard analytics computed from the current CRM records."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request

from src.crm.api.deps import get_current_user
from src.crm.common.analytics import build_dashboard
from src.crm.models.user import User

router = APIRouter(prefix="/analytics", tags=["analytics"])


async def load_dashboard(request: Request) -> dict[str, Any]:
    """Load every record the dashboard needs and summarise it."""
    state = request.app.state
    repos = {
        "customers": getattr(state, "customer_repository", None),
        "deals": getattr(state, "deal_repository", None),
        "invoices": getattr(state, "invoice_repository", None),
        "shipments": getattr(state, "shipment_repository", None),
    }
    missing = [name for name, repo in repos.items() if repo is None]
    if missing:
        raise HTTPException(status_code=503, detail=f"Repositories not initialized: {', '.join(missing)}")

    return build_dashboard(
        customers=await repos["customers"].list_all_customers(),
        deals=await repos["deals"].list_deals(),
        invoices=await repos["invoices"].list_invoices(),
        shipments=await repos["shipments"].list_shipments(),
    )


@router.get("/dashboard")
async def dashboard(
    request: Request,
    user: User = Depends(get_current_user),
) -> dict[str, Any]:
    return await load_dashboard(request)
