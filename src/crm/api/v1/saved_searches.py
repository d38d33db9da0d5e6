"""Per-user saved customer searches."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status

from src.crm.api.deps import get_current_user
from src.crm.customers.schemas import SavedSearchCreate, SavedSearchRead
from src.crm.models.user import User

router = APIRouter(prefix="/saved-searches", tags=["customers"])


def _get_saved_search_repository(request: Request):
    repo = getattr(request.app.state, "saved_search_repository", None)
    if repo is None:
        raise HTTPException(status_code=503, detail="Saved search repository not initialized")
    return repo


@router.get("", response_model=list[SavedSearchRead])
async def list_saved_searches(
    request: Request,
    user: User = Depends(get_current_user),
) -> list[SavedSearchRead]:
    repo = _get_saved_search_repository(request)
    return await repo.list_saved_searches(str(user.id))


@router.post("", response_model=SavedSearchRead, status_code=status.HTTP_201_CREATED)
async def create_saved_search(
    body: SavedSearchCreate,
    request: Request,
    user: User = Depends(get_current_user),
) -> SavedSearchRead:
    repo = _get_saved_search_repository(request)
    return await repo.create_saved_search(str(user.id), body)


@router.delete("/{search_id}")
async def delete_saved_search(
    search_id: str,
    request: Request,
    user: User = Depends(get_current_user),
) -> dict:
    repo = _get_saved_search_repository(request)
    if not await repo.delete_saved_search(str(user.id), search_id):
        raise HTTPException(status_code=404, detail="Saved search not found")
    return {"success": True}
