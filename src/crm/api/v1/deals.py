"""REST API endpoints for deals and the sales pipeline.

Provides CRUD for deals, the ordered stage list, and a pipeline view
grouping deals by stage with per-stage counts and open value totals.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from src.crm.api.audit import record_activity
from src.crm.api.deps import get_current_user
from src.crm.deals.schemas import (
    DealCreate,
    DealRead,
    DealStageRead,
    DealUpdate,
    is_closed_stage,
)
from src.crm.models.user import User

router = APIRouter(prefix="/deals", tags=["deals"])


# ── Response Schemas ─────────────────────────────────────────────────────────


class PipelineResponse(BaseModel):
    """Pipeline view grouping deals by stage."""

    stages: list[DealStageRead] = Field(default_factory=list)
    deals_by_stage: dict[str, list[DealRead]] = Field(default_factory=dict)
    stage_counts: dict[str, int] = Field(default_factory=dict)
    total_open_value: float = 0.0
    weighted_value: float = 0.0


# ── Helpers ─────────────────────────────────────────────────────────────────


def _get_deal_repository(request: Request):
    repo = getattr(request.app.state, "deal_repository", None)
    if repo is None:
        raise HTTPException(status_code=503, detail="Deal repository not initialized")
    return repo


async def _require_stage(repo, stage: str) -> None:
    names = {s.name for s in await repo.list_stages()}
    if stage not in names:
        raise HTTPException(status_code=400, detail=f"Unknown stage: {stage}")


# ── Endpoints ───────────────────────────────────────────────────────────────


@router.get("/stages", response_model=list[DealStageRead])
async def list_stages(
    request: Request,
    user: User = Depends(get_current_user),
) -> list[DealStageRead]:
    repo = _get_deal_repository(request)
    return await repo.list_stages()


@router.get("/pipeline", response_model=PipelineResponse)
async def get_pipeline(
    request: Request,
    user: User = Depends(get_current_user),
) -> PipelineResponse:
    """Deals grouped by stage, in stage order, with open and weighted value."""
    repo = _get_deal_repository(request)
    stages = await repo.list_stages()
    deals = await repo.list_deals()

    stage_probability = {s.name: s.probability for s in stages}
    grouped: dict[str, list[DealRead]] = {s.name: [] for s in stages}
    for deal in deals:
        grouped.setdefault(deal.stage, []).append(deal)

    open_deals = [d for d in deals if not is_closed_stage(d.stage)]
    weighted = sum(
        d.value * (d.probability if d.probability is not None else stage_probability.get(d.stage, 0)) / 100
        for d in open_deals
    )

    return PipelineResponse(
        stages=stages,
        deals_by_stage=grouped,
        stage_counts={name: len(items) for name, items in grouped.items()},
        total_open_value=round(sum(d.value for d in open_deals), 2),
        weighted_value=round(weighted, 2),
    )


@router.get("", response_model=list[DealRead])
async def list_deals(
    request: Request,
    customer_id: str | None = None,
    user: User = Depends(get_current_user),
) -> list[DealRead]:
    repo = _get_deal_repository(request)
    try:
        return await repo.list_deals(customer_id=customer_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid customer_id")


@router.post("", response_model=DealRead, status_code=status.HTTP_201_CREATED)
async def create_deal(
    body: DealCreate,
    request: Request,
    user: User = Depends(get_current_user),
) -> DealRead:
    repo = _get_deal_repository(request)
    customer_repo = getattr(request.app.state, "customer_repository", None)
    if customer_repo is not None and await customer_repo.get_customer(body.customer_id) is None:
        raise HTTPException(status_code=404, detail="Customer not found")
    await _require_stage(repo, body.stage)

    deal = await repo.create_deal(body)
    await record_activity(
        request, user, "create", "deal", deal.id, deal.title,
        new_data=body.model_dump(mode="json"),
    )
    return deal


@router.get("/{deal_id}", response_model=DealRead)
async def get_deal(
    deal_id: str,
    request: Request,
    user: User = Depends(get_current_user),
) -> DealRead:
    repo = _get_deal_repository(request)
    deal = await repo.get_deal(deal_id)
    if deal is None:
        raise HTTPException(status_code=404, detail="Deal not found")
    return deal


@router.put("/{deal_id}", response_model=DealRead)
async def update_deal(
    deal_id: str,
    body: DealUpdate,
    request: Request,
    user: User = Depends(get_current_user),
) -> DealRead:
    repo = _get_deal_repository(request)
    before = await repo.get_deal(deal_id)
    if before is None:
        raise HTTPException(status_code=404, detail="Deal not found")
    if body.stage is not None:
        await _require_stage(repo, body.stage)

    try:
        deal = await repo.update_deal(deal_id, body)
    except ValueError:
        raise HTTPException(status_code=404, detail="Deal not found")

    changes = body.model_dump(mode="json", exclude_none=True)
    await record_activity(
        request, user, "update", "deal", deal.id, deal.title,
        old_data={k: before.model_dump(mode="json").get(k) for k in changes},
        new_data=changes,
    )
    return deal


@router.delete("/{deal_id}")
async def delete_deal(
    deal_id: str,
    request: Request,
    user: User = Depends(get_current_user),
) -> dict:
    repo = _get_deal_repository(request)
    existing = await repo.get_deal(deal_id)
    if existing is None or not await repo.delete_deal(deal_id):
        raise HTTPException(status_code=404, detail="Deal not found")
    await record_activity(request, user, "delete", "deal", deal_id, existing.title)
    return {"success": True}
