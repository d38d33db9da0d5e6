"""REST API endpoints for one-off email sends, templates, and campaigns.

POST /email/send renders an optional template against the customer,
sends through Resend, and records the email on the customer's timeline.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel

from src.crm.activity.schemas import TimelineEventCreate, TimelineEventType
from src.crm.api.deps import get_current_user
from src.crm.core.rate_limit import rate_limited
from src.crm.emails.schemas import (
    EmailCampaignCreate,
    EmailCampaignRead,
    EmailCampaignUpdate,
    EmailTemplateCreate,
    EmailTemplateRead,
    EmailTemplateUpdate,
    SendEmailRequest,
)
from src.crm.emails.templating import render_template
from src.crm.models.user import User

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["emails"])

BODY_PREVIEW_LENGTH = 200


class SendEmailResponse(BaseModel):
    success: bool = True
    messageId: str  # noqa: N815


def _get_email_repository(request: Request):
    repo = getattr(request.app.state, "email_repository", None)
    if repo is None:
        raise HTTPException(status_code=503, detail="Email repository not initialized")
    return repo


# ── Send ────────────────────────────────────────────────────────────────────


@router.post(
    "/email/send",
    response_model=SendEmailResponse,
    dependencies=[Depends(rate_limited("email"))],
)
async def send_email(
    body: SendEmailRequest,
    request: Request,
    user: User = Depends(get_current_user),
) -> SendEmailResponse:
    if not body.customer_id or not body.to or not (body.subject or body.template_id):
        raise HTTPException(
            status_code=400,
            detail="Missing required fields: customerId, to, and subject/templateId",
        )

    customer_repo = getattr(request.app.state, "customer_repository", None)
    customer = await customer_repo.get_customer(body.customer_id) if customer_repo else None
    if customer is None:
        raise HTTPException(status_code=404, detail="Customer not found")

    subject = body.subject or ""
    html = body.body or ""

    if body.template_id:
        template = await _get_email_repository(request).get_template(body.template_id)
        if template is None:
            raise HTTPException(status_code=404, detail="Template not found")
        context = {
            "customer_name": customer.store_name,
            "customer_email": customer.email or "",
            "contact_name": customer.contact_name or "",
            **body.context,
        }
        subject = render_template(template.subject, context)
        html = render_template(template.body, context)

    resend = getattr(request.app.state, "resend_client", None)
    if resend is None:
        raise HTTPException(status_code=503, detail="Email delivery not configured")

    try:
        message_id = await resend.send_email(
            body.to,
            subject,
            html,
            tags={"customer_id": customer.id, "source": "crm"},
        )
    except Exception as exc:
        logger.error("email.send_failed", customer_id=customer.id, error=str(exc))
        raise HTTPException(status_code=500, detail=str(exc) or "Failed to send email")

    timeline = getattr(request.app.state, "timeline_repository", None)
    if timeline is not None:
        try:
            await timeline.create_event(
                customer.id,
                TimelineEventCreate(
                    type=TimelineEventType.EMAIL,
                    user_id=str(user.id),
                    email_message_id=message_id,
                    email_sent_to=body.to,
                    email_sent_from=resend.default_from,
                    email_subject=subject,
                    data={
                        "template_id": body.template_id,
                        "body_preview": html[:BODY_PREVIEW_LENGTH],
                    },
                ),
            )
        except Exception:
            logger.error("email.timeline_event_failed", customer_id=customer.id, exc_info=True)

    logger.info("email.sent", customer_id=customer.id, message_id=message_id)
    return SendEmailResponse(messageId=message_id)


# ── Templates ───────────────────────────────────────────────────────────────


@router.get("/templates", response_model=list[EmailTemplateRead])
async def list_templates(
    request: Request,
    active_only: bool = False,
    user: User = Depends(get_current_user),
) -> list[EmailTemplateRead]:
    repo = _get_email_repository(request)
    return await repo.list_templates(active_only=active_only)


@router.post("/templates", response_model=EmailTemplateRead, status_code=status.HTTP_201_CREATED)
async def create_template(
    body: EmailTemplateCreate,
    request: Request,
    user: User = Depends(get_current_user),
) -> EmailTemplateRead:
    repo = _get_email_repository(request)
    return await repo.create_template(body)


@router.get("/templates/{template_id}", response_model=EmailTemplateRead)
async def get_template(
    template_id: str,
    request: Request,
    user: User = Depends(get_current_user),
) -> EmailTemplateRead:
    repo = _get_email_repository(request)
    template = await repo.get_template(template_id)
    if template is None:
        raise HTTPException(status_code=404, detail="Template not found")
    return template


@router.put("/templates/{template_id}", response_model=EmailTemplateRead)
async def update_template(
    template_id: str,
    body: EmailTemplateUpdate,
    request: Request,
    user: User = Depends(get_current_user),
) -> EmailTemplateRead:
    repo = _get_email_repository(request)
    try:
        return await repo.update_template(template_id, body)
    except ValueError:
        raise HTTPException(status_code=404, detail="Template not found")


@router.delete("/templates/{template_id}")
async def delete_template(
    template_id: str,
    request: Request,
    user: User = Depends(get_current_user),
) -> dict:
    repo = _get_email_repository(request)
    try:
        deleted = await repo.delete_template(template_id)
    except ValueError:
        deleted = False
    if not deleted:
        raise HTTPException(status_code=404, detail="Template not found")
    return {"success": True}


# ── Campaigns ───────────────────────────────────────────────────────────────


@router.get("/campaigns", response_model=list[EmailCampaignRead])
async def list_campaigns(
    request: Request,
    user: User = Depends(get_current_user),
) -> list[EmailCampaignRead]:
    repo = _get_email_repository(request)
    return await repo.list_campaigns()


@router.post("/campaigns", response_model=EmailCampaignRead, status_code=status.HTTP_201_CREATED)
async def create_campaign(
    body: EmailCampaignCreate,
    request: Request,
    user: User = Depends(get_current_user),
) -> EmailCampaignRead:
    repo = _get_email_repository(request)
    try:
        return await repo.create_campaign(body)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.get("/campaigns/{campaign_id}", response_model=EmailCampaignRead)
async def get_campaign(
    campaign_id: str,
    request: Request,
    user: User = Depends(get_current_user),
) -> EmailCampaignRead:
    repo = _get_email_repository(request)
    campaign = await repo.get_campaign(campaign_id)
    if campaign is None:
        raise HTTPException(status_code=404, detail="Campaign not found")
    return campaign


@router.put("/campaigns/{campaign_id}", response_model=EmailCampaignRead)
async def update_campaign(
    campaign_id: str,
    body: EmailCampaignUpdate,
    request: Request,
    user: User = Depends(get_current_user),
) -> EmailCampaignRead:
    repo = _get_email_repository(request)
    try:
        return await repo.update_campaign(campaign_id, body)
    except ValueError:
        raise HTTPException(status_code=404, detail="Campaign not found")


@router.delete("/campaigns/{campaign_id}")
async def delete_campaign(
    campaign_id: str,
    request: Request,
    user: User = Depends(get_current_user),
) -> dict:
    repo = _get_email_repository(request)
    try:
        deleted = await repo.delete_campaign(campaign_id)
    except ValueError:
        deleted = False
    if not deleted:
        raise HTTPException(status_code=404, detail="Campaign not found")
    return {"success": True}
