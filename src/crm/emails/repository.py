"""Email template and campaign repository.

Template variables are derived from the subject and body on every save so
the stored ``variables`` list never drifts from the text.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.crm.emails.models import EmailCampaignModel, EmailTemplateModel
from src.crm.emails.schemas import (
    EmailCampaignCreate,
    EmailCampaignRead,
    EmailCampaignUpdate,
    EmailTemplateCreate,
    EmailTemplateRead,
    EmailTemplateUpdate,
)
from src.crm.emails.templating import extract_template_variables

logger = structlog.get_logger(__name__)


def _model_to_template(model: EmailTemplateModel) -> EmailTemplateRead:
    return EmailTemplateRead(
        id=str(model.id),
        name=model.name,
        subject=model.subject,
        body=model.body,
        category=model.category,
        variables=list(model.variables or []),
        active=bool(model.active),
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _model_to_campaign(model: EmailCampaignModel) -> EmailCampaignRead:
    return EmailCampaignRead(
        id=str(model.id),
        name=model.name,
        template_id=str(model.template_id) if model.template_id else None,
        status=model.status,
        scheduled_date=model.scheduled_date,
        sent_date=model.sent_date,
        recipient_count=model.recipient_count or 0,
        opened_count=model.opened_count or 0,
        clicked_count=model.clicked_count or 0,
        bounced_count=model.bounced_count or 0,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _parse_id(value: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class EmailRepository:
    """Async CRUD for email templates and campaigns.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    # ── Templates ───────────────────────────────────────────────────────────

    async def list_templates(self, active_only: bool = False) -> list[EmailTemplateRead]:
        async for session in self._session_factory():
            stmt = select(EmailTemplateModel).order_by(EmailTemplateModel.name)
            if active_only:
                stmt = stmt.where(EmailTemplateModel.active.is_(True))
            result = await session.execute(stmt)
            return [_model_to_template(m) for m in result.scalars().all()]

    async def get_template(self, template_id: str) -> EmailTemplateRead | None:
        tid = _parse_id(template_id)
        if tid is None:
            return None
        async for session in self._session_factory():
            model = await session.get(EmailTemplateModel, tid)
            return _model_to_template(model) if model else None

    async def get_active_template_by_name(self, name: str) -> EmailTemplateRead | None:
        async for session in self._session_factory():
            result = await session.execute(
                select(EmailTemplateModel)
                .where(EmailTemplateModel.name == name, EmailTemplateModel.active.is_(True))
                .limit(1)
            )
            model = result.scalar_one_or_none()
            return _model_to_template(model) if model else None

    async def create_template(self, data: EmailTemplateCreate) -> EmailTemplateRead:
        async for session in self._session_factory():
            model = EmailTemplateModel(
                **data.model_dump(),
                variables=extract_template_variables(data.subject, data.body),
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            logger.info("emails.template_created", template_id=str(model.id), name=model.name)
            return _model_to_template(model)

    async def update_template(self, template_id: str, data: EmailTemplateUpdate) -> EmailTemplateRead:
        async for session in self._session_factory():
            model = await session.get(EmailTemplateModel, uuid.UUID(template_id))
            if model is None:
                raise ValueError(f"Template not found: id={template_id}")
            for key, value in data.model_dump(exclude_none=True).items():
                setattr(model, key, value)
            model.variables = extract_template_variables(model.subject, model.body)
            await session.commit()
            await session.refresh(model)
            return _model_to_template(model)

    async def delete_template(self, template_id: str) -> bool:
        async for session in self._session_factory():
            model = await session.get(EmailTemplateModel, uuid.UUID(template_id))
            if model is None:
                return False
            await session.delete(model)
            await session.commit()
            return True

    # ── Campaigns ───────────────────────────────────────────────────────────

    async def list_campaigns(self) -> list[EmailCampaignRead]:
        async for session in self._session_factory():
            result = await session.execute(
                select(EmailCampaignModel).order_by(EmailCampaignModel.created_at.desc())
            )
            return [_model_to_campaign(m) for m in result.scalars().all()]

    async def get_campaign(self, campaign_id: str) -> EmailCampaignRead | None:
        cid = _parse_id(campaign_id)
        if cid is None:
            return None
        async for session in self._session_factory():
            model = await session.get(EmailCampaignModel, cid)
            return _model_to_campaign(model) if model else None

    async def create_campaign(self, data: EmailCampaignCreate) -> EmailCampaignRead:
        async for session in self._session_factory():
            model = EmailCampaignModel(
                name=data.name,
                template_id=uuid.UUID(data.template_id) if data.template_id else None,
                status=data.status.value,
                scheduled_date=data.scheduled_date,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            logger.info("emails.campaign_created", campaign_id=str(model.id))
            return _model_to_campaign(model)

    async def update_campaign(self, campaign_id: str, data: EmailCampaignUpdate) -> EmailCampaignRead:
        async for session in self._session_factory():
            model = await session.get(EmailCampaignModel, uuid.UUID(campaign_id))
            if model is None:
                raise ValueError(f"Campaign not found: id={campaign_id}")
            for key, value in data.model_dump(exclude_none=True).items():
                if key == "template_id":
                    value = uuid.UUID(value)
                elif key == "status":
                    value = value.value
                setattr(model, key, value)
            await session.commit()
            await session.refresh(model)
            return _model_to_campaign(model)

    async def delete_campaign(self, campaign_id: str) -> bool:
        async for session in self._session_factory():
            model = await session.get(EmailCampaignModel, uuid.UUID(campaign_id))
            if model is None:
                return False
            await session.delete(model)
            await session.commit()
            return True
