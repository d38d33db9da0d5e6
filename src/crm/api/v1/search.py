"""Global search across customers, deals, products, and invoices."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from src.crm.api.deps import get_current_user
from src.crm.models.user import User
from src.crm.search.schemas import SearchResult

router = APIRouter(prefix="/search", tags=["search"])


def _get_search_repository(request: Request):
    repo = getattr(request.app.state, "search_repository", None)
    if repo is None:
        raise HTTPException(status_code=503, detail="Search repository not initialized")
    return repo


@router.get("", response_model=list[SearchResult])
async def global_search(
    request: Request,
    q: str = Query(default="", max_length=200),
    limit: int = Query(default=20, ge=1, le=100),
    user: User = Depends(get_current_user),
) -> list[SearchResult]:
    """Ranked matches for ``q``; an empty query returns no results."""
    repo = _get_search_repository(request)
    return await repo.search(q, limit=limit)
