"""Company profile used on invoices and outgoing email."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from src.crm.api.audit import record_activity
from src.crm.api.deps import get_current_user
from src.crm.company.schemas import CompanySettingsRead, CompanySettingsUpdate
from src.crm.models.user import User

router = APIRouter(prefix="/settings", tags=["settings"])


def _get_company_repository(request: Request):
    repo = getattr(request.app.state, "company_repository", None)
    if repo is None:
        raise HTTPException(status_code=503, detail="Company settings not initialized")
    return repo


@router.get("/company", response_model=CompanySettingsRead | None)
async def get_company_settings(
    request: Request,
    user: User = Depends(get_current_user),
) -> CompanySettingsRead | None:
    repo = _get_company_repository(request)
    return await repo.get_settings()


@router.put("/company", response_model=CompanySettingsRead)
async def update_company_settings(
    body: CompanySettingsUpdate,
    request: Request,
    user: User = Depends(get_current_user),
) -> CompanySettingsRead:
    repo = _get_company_repository(request)
    try:
        settings = await repo.upsert_settings(body)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    await record_activity(
        request, user, "update", "company_settings", settings.id, settings.name,
        new_data=body.model_dump(mode="json", exclude_none=True),
        category="settings",
    )
    return settings
