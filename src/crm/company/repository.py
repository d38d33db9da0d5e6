"""Company settings repository -- read and upsert the single profile row."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.crm.company.models import CompanySettingsModel
from src.crm.company.schemas import CompanySettingsRead, CompanySettingsUpdate

logger = structlog.get_logger(__name__)


def _model_to_settings(model: CompanySettingsModel) -> CompanySettingsRead:
    return CompanySettingsRead(
        id=str(model.id),
        name=model.name,
        address=model.address,
        city=model.city,
        province=model.province,
        postal_code=model.postal_code,
        country=model.country,
        phone=model.phone,
        email=model.email,
        website=model.website,
        logo_url=model.logo_url,
        currency=model.currency,
        tax_rate=model.tax_rate or 0.0,
        updated_at=model.updated_at,
    )


class CompanySettingsRepository:
    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    @staticmethod
    async def _first(session: AsyncSession) -> CompanySettingsModel | None:
        result = await session.execute(
            select(CompanySettingsModel).order_by(CompanySettingsModel.created_at).limit(1)
        )
        return result.scalar_one_or_none()

    async def get_settings(self) -> CompanySettingsRead | None:
        async for session in self._session_factory():
            model = await self._first(session)
            return _model_to_settings(model) if model else None

    async def upsert_settings(self, data: CompanySettingsUpdate) -> CompanySettingsRead:
        """Update the profile, creating it on first save.

        Raises:
            ValueError: If no profile exists and ``name`` is missing.
        """
        async for session in self._session_factory():
            model = await self._first(session)
            values = data.model_dump(exclude_none=True)
            if model is None:
                if not values.get("name"):
                    raise ValueError("Company name is required")
                model = CompanySettingsModel(**values)
                session.add(model)
                logger.info("company.settings_created")
            else:
                for key, value in values.items():
                    setattr(model, key, value)
            await session.commit()
            await session.refresh(model)
            return _model_to_settings(model)
