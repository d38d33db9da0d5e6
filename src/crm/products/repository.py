"""Product repository -- async CRUD over the catalog with soft delete."""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.crm.products.models import ProductModel
from src.crm.products.schemas import ProductCreate, ProductRead, ProductUpdate

logger = structlog.get_logger(__name__)


def _model_to_product(model: ProductModel) -> ProductRead:
    return ProductRead(
        id=str(model.id),
        sku=model.sku,
        name=model.name,
        description=model.description,
        unit_price=model.unit_price,
        currency=model.currency,
        active=bool(model.active),
        stripe_price_id=model.stripe_price_id,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


class ProductRepository:
    """Async CRUD for products.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    async def list_products(self, include_inactive: bool = False) -> list[ProductRead]:
        """Active products ordered by name (all products when include_inactive)."""
        async for session in self._session_factory():
            stmt = select(ProductModel).order_by(ProductModel.name)
            if not include_inactive:
                stmt = stmt.where(ProductModel.active.is_(True))
            result = await session.execute(stmt)
            return [_model_to_product(m) for m in result.scalars().all()]

    async def get_product(self, product_id: str) -> ProductRead | None:
        try:
            pid = uuid.UUID(product_id)
        except ValueError:
            return None
        async for session in self._session_factory():
            model = await session.get(ProductModel, pid)
            return _model_to_product(model) if model else None

    async def create_product(self, data: ProductCreate) -> ProductRead:
        """Insert a product.

        Raises:
            ValueError: If the SKU is already taken.
        """
        async for session in self._session_factory():
            model = ProductModel(**data.model_dump())
            session.add(model)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ValueError(f"SKU already exists: {data.sku}") from exc
            await session.refresh(model)
            logger.info("products.created", product_id=str(model.id), sku=model.sku)
            return _model_to_product(model)

    async def update_product(self, product_id: str, data: ProductUpdate) -> ProductRead:
        async for session in self._session_factory():
            model = await session.get(ProductModel, uuid.UUID(product_id))
            if model is None:
                raise ValueError(f"Product not found: id={product_id}")
            for key, value in data.model_dump(exclude_none=True).items():
                setattr(model, key, value)
            await session.commit()
            await session.refresh(model)
            return _model_to_product(model)

    async def deactivate_product(self, product_id: str) -> bool:
        """Soft delete: mark the product inactive. Returns False when missing."""
        async for session in self._session_factory():
            model = await session.get(ProductModel, uuid.UUID(product_id))
            if model is None:
                return False
            model.active = False
            await session.commit()
            logger.info("products.deactivated", product_id=product_id)
            return True

    async def set_stripe_price_id(self, product_id: str, price_id: str) -> ProductRead:
        async for session in self._session_factory():
            model = await session.get(ProductModel, uuid.UUID(product_id))
            if model is None:
                raise ValueError(f"Product not found: id={product_id}")
            model.stripe_price_id = price_id
            await session.commit()
            await session.refresh(model)
            return _model_to_product(model)
