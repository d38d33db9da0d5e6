"""Repositories for customer timelines, tasks, and the audit log."""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.crm.activity.models import ActivityLogModel, TaskModel, TimelineEventModel
from src.crm.activity.schemas import (
    ActivityLogCreate,
    ActivityLogRead,
    EmailTrackingUpdate,
    TaskCreate,
    TaskRead,
    TaskUpdate,
    TimelineEventCreate,
    TimelineEventRead,
)

logger = structlog.get_logger(__name__)

SessionFactory = Callable[..., AsyncGenerator[AsyncSession, None]]

_TIMELINE_FIELDS = tuple(TimelineEventRead.model_fields)


# ── Serialization Helpers ───────────────────────────────────────────────────


def _model_to_event(model: TimelineEventModel) -> TimelineEventRead:
    values = {name: getattr(model, name) for name in _TIMELINE_FIELDS}
    values["id"] = str(model.id)
    values["customer_id"] = str(model.customer_id)
    values["user_id"] = str(model.user_id) if model.user_id else None
    values["data"] = model.data or {}
    for flag in ("email_opened", "email_clicked", "email_bounced", "email_spam_complaint"):
        values[flag] = bool(values[flag])
    return TimelineEventRead(**values)


def _model_to_task(model: TaskModel) -> TaskRead:
    return TaskRead(
        id=str(model.id),
        customer_id=str(model.customer_id) if model.customer_id else None,
        type=model.type,
        title=model.title,
        due_date=model.due_date,
        priority=model.priority,
        status=model.status,
        notes=model.notes,
        completed_at=model.completed_at,
        created_at=model.created_at,
        reminder_time=model.reminder_time,
        reminder_sent=bool(model.reminder_sent),
    )


def _model_to_log(model: ActivityLogModel) -> ActivityLogRead:
    return ActivityLogRead(
        id=str(model.id),
        user_email=model.user_email,
        action=model.action,
        category=model.category,
        entity_type=model.entity_type,
        entity_id=model.entity_id,
        entity_name=model.entity_name,
        old_data=model.old_data,
        new_data=model.new_data,
        metadata=model.metadata_json or {},
        created_at=model.created_at,
    )


# ── Timeline ────────────────────────────────────────────────────────────────


class TimelineRepository:
    """Per-customer event history.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def list_events(self, customer_id: str, limit: int = 100) -> list[TimelineEventRead]:
        async for session in self._session_factory():
            result = await session.execute(
                select(TimelineEventModel)
                .where(TimelineEventModel.customer_id == uuid.UUID(customer_id))
                .order_by(TimelineEventModel.created_at.desc())
                .limit(limit)
            )
            return [_model_to_event(m) for m in result.scalars().all()]

    async def create_event(self, customer_id: str, data: TimelineEventCreate) -> TimelineEventRead:
        async for session in self._session_factory():
            values = data.model_dump()
            values["type"] = data.type.value
            values["user_id"] = uuid.UUID(data.user_id) if data.user_id else None
            model = TimelineEventModel(customer_id=uuid.UUID(customer_id), **values)
            session.add(model)
            await session.commit()
            await session.refresh(model)
            logger.info(
                "timeline.event_created",
                customer_id=customer_id,
                event_type=model.type,
            )
            return _model_to_event(model)

    async def get_by_message_id(self, message_id: str) -> TimelineEventRead | None:
        async for session in self._session_factory():
            result = await session.execute(
                select(TimelineEventModel)
                .where(TimelineEventModel.email_message_id == message_id)
                .limit(1)
            )
            model = result.scalar_one_or_none()
            return _model_to_event(model) if model else None

    async def update_email_tracking(self, event_id: str, data: EmailTrackingUpdate) -> TimelineEventRead:
        async for session in self._session_factory():
            model = await session.get(TimelineEventModel, uuid.UUID(event_id))
            if model is None:
                raise ValueError(f"Timeline event not found: id={event_id}")
            for key, value in data.model_dump(exclude_none=True).items():
                setattr(model, key, value)
            await session.commit()
            await session.refresh(model)
            return _model_to_event(model)


# ── Tasks ───────────────────────────────────────────────────────────────────


class TaskRepository:
    """Follow-up tasks, ordered by due date.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def list_tasks(
        self,
        status: str | None = None,
        customer_id: str | None = None,
    ) -> list[TaskRead]:
        async for session in self._session_factory():
            stmt = select(TaskModel).order_by(TaskModel.due_date)
            if status:
                stmt = stmt.where(TaskModel.status == status)
            if customer_id:
                stmt = stmt.where(TaskModel.customer_id == uuid.UUID(customer_id))
            result = await session.execute(stmt)
            return [_model_to_task(m) for m in result.scalars().all()]

    async def get_task(self, task_id: str) -> TaskRead | None:
        try:
            tid = uuid.UUID(task_id)
        except ValueError:
            return None
        async for session in self._session_factory():
            model = await session.get(TaskModel, tid)
            return _model_to_task(model) if model else None

    async def create_task(self, data: TaskCreate) -> TaskRead:
        async for session in self._session_factory():
            model = TaskModel(
                customer_id=uuid.UUID(data.customer_id) if data.customer_id else None,
                type=data.type.value,
                title=data.title,
                due_date=data.due_date,
                priority=data.priority.value,
                status="pending",
                notes=data.notes,
                reminder_time=data.reminder_time,
                reminder_sent=False,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            logger.info("tasks.created", task_id=str(model.id))
            return _model_to_task(model)

    async def update_task(self, task_id: str, data: TaskUpdate) -> TaskRead:
        """Apply a partial update.

        Completing a task stamps completed_at; moving it back to pending
        clears it. A new reminder_time re-arms the reminder.
        """
        async for session in self._session_factory():
            model = await session.get(TaskModel, uuid.UUID(task_id))
            if model is None:
                raise ValueError(f"Task not found: id={task_id}")
            for key, value in data.model_dump(exclude_none=True, mode="json").items():
                if key in ("due_date", "reminder_time"):
                    value = getattr(data, key)
                setattr(model, key, value)
            if data.reminder_time is not None:
                model.reminder_sent = False
            if data.status == "completed" and model.completed_at is None:
                model.completed_at = datetime.now(timezone.utc)
            elif data.status == "pending":
                model.completed_at = None
            await session.commit()
            await session.refresh(model)
            return _model_to_task(model)

    async def delete_task(self, task_id: str) -> bool:
        async for session in self._session_factory():
            model = await session.get(TaskModel, uuid.UUID(task_id))
            if model is None:
                return False
            await session.delete(model)
            await session.commit()
            return True

    async def claim_due_reminders(self, now: datetime | None = None) -> list[TaskRead]:
        """Return pending tasks whose reminder is due and mark them sent.

        Each reminder is handed out once; a claimed task is not returned again
        until its reminder_time is changed.
        """
        now = now or datetime.now(timezone.utc)
        async for session in self._session_factory():
            result = await session.execute(
                select(TaskModel)
                .where(
                    TaskModel.status == "pending",
                    TaskModel.reminder_sent.is_(False),
                    TaskModel.reminder_time.is_not(None),
                    TaskModel.reminder_time <= now,
                )
                .order_by(TaskModel.reminder_time)
            )
            models = list(result.scalars().all())
            for model in models:
                model.reminder_sent = True
            await session.commit()
            if models:
                logger.info("tasks.reminders_claimed", count=len(models))
            return [_model_to_task(m) for m in models]


# ── Activity log ────────────────────────────────────────────────────────────


class ActivityLogRepository:
    """Append-only audit trail.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def record(self, entry: ActivityLogCreate) -> ActivityLogRead:
        async for session in self._session_factory():
            values = entry.model_dump(exclude={"metadata"}, mode="json")
            model = ActivityLogModel(**values, metadata_json=entry.metadata)
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_log(model)

    async def list_recent(self, limit: int = 50) -> list[ActivityLogRead]:
        async for session in self._session_factory():
            result = await session.execute(
                select(ActivityLogModel).order_by(ActivityLogModel.created_at.desc()).limit(limit)
            )
            return [_model_to_log(m) for m in result.scalars().all()]
