"""Customer timeline, follow-up tasks, and the activity log."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from src.crm.activity.schemas import (
    ActivityLogRead,
    TaskCreate,
    TaskRead,
    TaskUpdate,
    TimelineEventCreate,
    TimelineEventRead,
    TimelineEventType,
)
from src.crm.api.deps import get_current_user
from src.crm.models.user import User

router = APIRouter(tags=["activity"])

# Other event types are written by the system (emails, invoices, shipments).
MANUAL_EVENT_TYPES = {TimelineEventType.CALL, TimelineEventType.NOTE}


def _get_repository(request: Request, name: str, label: str):
    repo = getattr(request.app.state, name, None)
    if repo is None:
        raise HTTPException(status_code=503, detail=f"{label} not initialized")
    return repo


# ── Timeline ────────────────────────────────────────────────────────────────


@router.get("/customers/{customer_id}/timeline", response_model=list[TimelineEventRead])
async def list_timeline(
    customer_id: str,
    request: Request,
    limit: int = Query(default=100, ge=1, le=500),
    user: User = Depends(get_current_user),
) -> list[TimelineEventRead]:
    repo = _get_repository(request, "timeline_repository", "Timeline repository")
    try:
        return await repo.list_events(customer_id, limit=limit)
    except ValueError:
        raise HTTPException(status_code=404, detail="Customer not found")


@router.post(
    "/customers/{customer_id}/timeline",
    response_model=TimelineEventRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_timeline_event(
    customer_id: str,
    body: TimelineEventCreate,
    request: Request,
    user: User = Depends(get_current_user),
) -> TimelineEventRead:
    """Log a call or a note against a customer."""
    repo = _get_repository(request, "timeline_repository", "Timeline repository")
    if body.type not in MANUAL_EVENT_TYPES:
        raise HTTPException(status_code=400, detail="Only call and note events can be created")

    customer_repo = getattr(request.app.state, "customer_repository", None)
    if customer_repo is not None and await customer_repo.get_customer(customer_id) is None:
        raise HTTPException(status_code=404, detail="Customer not found")

    data = body.model_copy(update={"user_id": str(user.id)})
    return await repo.create_event(customer_id, data)


# ── Tasks ───────────────────────────────────────────────────────────────────


@router.get("/tasks", response_model=list[TaskRead])
async def list_tasks(
    request: Request,
    status_filter: str | None = Query(default=None, alias="status"),
    customer_id: str | None = None,
    user: User = Depends(get_current_user),
) -> list[TaskRead]:
    repo = _get_repository(request, "task_repository", "Task repository")
    try:
        return await repo.list_tasks(status=status_filter, customer_id=customer_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid customer_id")


@router.post("/tasks", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
async def create_task(
    body: TaskCreate,
    request: Request,
    user: User = Depends(get_current_user),
) -> TaskRead:
    repo = _get_repository(request, "task_repository", "Task repository")
    try:
        return await repo.create_task(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid customer_id")


@router.post("/tasks/reminders", response_model=list[TaskRead])
async def claim_task_reminders(
    request: Request,
    user: User = Depends(get_current_user),
) -> list[TaskRead]:
    """Return pending tasks whose reminder time has passed and mark them sent."""
    repo = _get_repository(request, "task_repository", "Task repository")
    return await repo.claim_due_reminders()


@router.get("/tasks/{task_id}", response_model=TaskRead)
async def get_task(
    task_id: str,
    request: Request,
    user: User = Depends(get_current_user),
) -> TaskRead:
    repo = _get_repository(request, "task_repository", "Task repository")
    task = await repo.get_task(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


@router.put("/tasks/{task_id}", response_model=TaskRead)
async def update_task(
    task_id: str,
    body: TaskUpdate,
    request: Request,
    user: User = Depends(get_current_user),
) -> TaskRead:
    repo = _get_repository(request, "task_repository", "Task repository")
    try:
        return await repo.update_task(task_id, body)
    except ValueError:
        raise HTTPException(status_code=404, detail="Task not found")


@router.delete("/tasks/{task_id}")
async def delete_task(
    task_id: str,
    request: Request,
    user: User = Depends(get_current_user),
) -> dict:
    repo = _get_repository(request, "task_repository", "Task repository")
    try:
        deleted = await repo.delete_task(task_id)
    except ValueError:
        deleted = False
    if not deleted:
        raise HTTPException(status_code=404, detail="Task not found")
    return {"success": True}


# ── Activity log ────────────────────────────────────────────────────────────


@router.get("/activity", response_model=list[ActivityLogRead])
async def list_activity(
    request: Request,
    limit: int = Query(default=50, ge=1, le=500),
    user: User = Depends(get_current_user),
) -> list[ActivityLogRead]:
    repo = _get_repository(request, "activity_log_repository", "Activity log")
    return await repo.list_recent(limit=limit)
