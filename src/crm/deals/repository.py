"""Deal repository -- async CRUD for deals and pipeline stages.

Deals are returned with the owning customer's store name joined in, which
is what the pipeline board and exports display.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timezone

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.crm.customers.models import CustomerModel
from src.crm.deals.models import DealModel, DealStageModel
from src.crm.deals.schemas import (
    DEFAULT_STAGES,
    DealCreate,
    DealRead,
    DealStageRead,
    DealUpdate,
    is_closed_stage,
)

logger = structlog.get_logger(__name__)


# ── Serialization Helpers ───────────────────────────────────────────────────


def _model_to_stage(model: DealStageModel) -> DealStageRead:
    return DealStageRead(
        id=str(model.id),
        name=model.name,
        order_index=model.order_index,
        color=model.color,
        probability=model.probability or 0.0,
    )


def _model_to_deal(model: DealModel, customer_name: str | None = None) -> DealRead:
    return DealRead(
        id=str(model.id),
        customer_id=str(model.customer_id),
        customer_name=customer_name,
        title=model.title,
        value=model.value or 0.0,
        stage=model.stage,
        probability=model.probability,
        expected_close_date=model.expected_close_date,
        notes=model.notes,
        closed_at=model.closed_at,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _deal_with_customer_stmt():
    return select(DealModel, CustomerModel.store_name).outerjoin(
        CustomerModel, CustomerModel.id == DealModel.customer_id
    )


# ── Repository ──────────────────────────────────────────────────────────────


class DealRepository:
    """Async CRUD operations for deals and deal stages.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    # ── Stages ──────────────────────────────────────────────────────────────

    async def ensure_default_stages(self) -> int:
        """Seed the default pipeline stages when none exist.

        Returns:
            Number of stages inserted (0 when stages already exist).
        """
        async for session in self._session_factory():
            count = (await session.execute(select(func.count()).select_from(DealStageModel))).scalar_one()
            if count:
                return 0
            for name, order_index, color, probability in DEFAULT_STAGES:
                session.add(
                    DealStageModel(
                        name=name,
                        order_index=order_index,
                        color=color,
                        probability=probability,
                    )
                )
            await session.commit()
            logger.info("deals.default_stages_seeded", count=len(DEFAULT_STAGES))
            return len(DEFAULT_STAGES)

    async def list_stages(self) -> list[DealStageRead]:
        async for session in self._session_factory():
            result = await session.execute(
                select(DealStageModel).order_by(DealStageModel.order_index)
            )
            return [_model_to_stage(m) for m in result.scalars().all()]

    # ── Deals ───────────────────────────────────────────────────────────────

    async def create_deal(self, data: DealCreate) -> DealRead:
        async for session in self._session_factory():
            model = DealModel(
                customer_id=uuid.UUID(data.customer_id),
                title=data.title,
                value=data.value,
                stage=data.stage,
                probability=data.probability,
                expected_close_date=data.expected_close_date,
                notes=data.notes,
                closed_at=datetime.now(timezone.utc) if is_closed_stage(data.stage) else None,
            )
            session.add(model)
            await session.commit()
            return await self._fetch(session, model.id)

    async def get_deal(self, deal_id: str) -> DealRead | None:
        try:
            did = uuid.UUID(deal_id)
        except ValueError:
            return None
        async for session in self._session_factory():
            return await self._fetch(session, did)

    async def list_deals(self, customer_id: str | None = None) -> list[DealRead]:
        """List deals newest first, optionally for a single customer."""
        async for session in self._session_factory():
            stmt = _deal_with_customer_stmt().order_by(DealModel.created_at.desc())
            if customer_id is not None:
                stmt = stmt.where(DealModel.customer_id == uuid.UUID(customer_id))
            result = await session.execute(stmt)
            return [_model_to_deal(deal, name) for deal, name in result.all()]

    async def count_deals(self) -> int:
        async for session in self._session_factory():
            result = await session.execute(select(func.count()).select_from(DealModel))
            return result.scalar_one()

    async def update_deal(self, deal_id: str, data: DealUpdate) -> DealRead:
        """Update a deal; stage moves into or out of a closed stage set or clear closed_at.

        Raises:
            ValueError: If the deal does not exist.
        """
        async for session in self._session_factory():
            model = await session.get(DealModel, uuid.UUID(deal_id))
            if model is None:
                raise ValueError(f"Deal not found: id={deal_id}")

            update_data = data.model_dump(exclude_none=True)
            new_stage = update_data.get("stage")
            if new_stage is not None and new_stage != model.stage:
                if is_closed_stage(new_stage):
                    model.closed_at = datetime.now(timezone.utc)
                else:
                    model.closed_at = None

            for key, value in update_data.items():
                setattr(model, key, value)
            model.updated_at = datetime.now(timezone.utc)

            await session.commit()
            return await self._fetch(session, model.id)

    async def delete_deal(self, deal_id: str) -> bool:
        async for session in self._session_factory():
            model = await session.get(DealModel, uuid.UUID(deal_id))
            if model is None:
                return False
            await session.delete(model)
            await session.commit()
            return True

    @staticmethod
    async def _fetch(session: AsyncSession, deal_id: uuid.UUID) -> DealRead | None:
        stmt = _deal_with_customer_stmt().where(DealModel.id == deal_id).execution_options(
            populate_existing=True
        )
        row = (await session.execute(stmt)).first()
        if row is None:
            return None
        deal, name = row
        return _model_to_deal(deal, name)
