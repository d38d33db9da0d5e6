"""REST API endpoints for the product catalog."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status

from src.crm.api.audit import record_activity
from src.crm.api.deps import get_current_user
from src.crm.models.user import User
from src.crm.products.schemas import ProductCreate, ProductRead, ProductUpdate

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/products", tags=["products"])


def _get_product_repository(request: Request):
    repo = getattr(request.app.state, "product_repository", None)
    if repo is None:
        raise HTTPException(status_code=503, detail="Product repository not initialized")
    return repo


@router.get("", response_model=list[ProductRead])
async def list_products(
    request: Request,
    include_inactive: bool = False,
    user: User = Depends(get_current_user),
) -> list[ProductRead]:
    repo = _get_product_repository(request)
    return await repo.list_products(include_inactive=include_inactive)


@router.post("", response_model=ProductRead, status_code=status.HTTP_201_CREATED)
async def create_product(
    body: ProductCreate,
    request: Request,
    user: User = Depends(get_current_user),
) -> ProductRead:
    repo = _get_product_repository(request)
    try:
        product = await repo.create_product(body)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    await record_activity(
        request, user, "create", "product", product.id, product.name,
        new_data=body.model_dump(mode="json"),
    )
    return product


@router.get("/{product_id}", response_model=ProductRead)
async def get_product(
    product_id: str,
    request: Request,
    user: User = Depends(get_current_user),
) -> ProductRead:
    repo = _get_product_repository(request)
    product = await repo.get_product(product_id)
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@router.put("/{product_id}", response_model=ProductRead)
async def update_product(
    product_id: str,
    body: ProductUpdate,
    request: Request,
    user: User = Depends(get_current_user),
) -> ProductRead:
    repo = _get_product_repository(request)
    try:
        product = await repo.update_product(product_id, body)
    except ValueError:
        raise HTTPException(status_code=404, detail="Product not found")
    await record_activity(
        request, user, "update", "product", product.id, product.name,
        new_data=body.model_dump(mode="json", exclude_none=True),
    )
    return product


@router.delete("/{product_id}")
async def delete_product(
    product_id: str,
    request: Request,
    user: User = Depends(get_current_user),
) -> dict:
    """Soft delete: the product stays on existing invoices but is hidden from the catalog."""
    repo = _get_product_repository(request)
    existing = await repo.get_product(product_id)
    if existing is None or not await repo.deactivate_product(product_id):
        raise HTTPException(status_code=404, detail="Product not found")
    await record_activity(request, user, "delete", "product", product_id, existing.name)
    return {"success": True}


@router.post("/{product_id}/stripe-price", response_model=ProductRead)
async def create_stripe_price(
    product_id: str,
    request: Request,
    user: User = Depends(get_current_user),
) -> ProductRead:
    """Create (or reuse) the Stripe price for a product."""
    repo = _get_product_repository(request)
    billing = getattr(request.app.state, "stripe_billing", None)
    if billing is None:
        raise HTTPException(status_code=503, detail="Stripe not configured")

    product = await repo.get_product(product_id)
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")

    try:
        price_id = await billing.create_price(product)
    except Exception as exc:
        logger.error("products.stripe_price_failed", product_id=product_id, error=str(exc))
        raise HTTPException(status_code=500, detail=f"Stripe error: {exc}")

    if price_id == product.stripe_price_id:
        return product
    return await repo.set_stripe_price_id(product_id, price_id)
