"""Activity-log recording shared by the CRUD routers.

Recording is best effort: a failure is logged and never fails the request
that triggered it.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import Request

from src.crm.activity.schemas import ActivityLogCreate
from src.crm.models.user import User

logger = structlog.get_logger(__name__)


async def record_activity(
    request: Request,
    user: User,
    action: str,
    entity_type: str,
    entity_id: str | None = None,
    entity_name: str | None = None,
    old_data: dict[str, Any] | None = None,
    new_data: dict[str, Any] | None = None,
    category: str = "data",
) -> None:
    repo = getattr(request.app.state, "activity_log_repository", None)
    if repo is None:
        return
    try:
        await repo.record(
            ActivityLogCreate(
                user_email=user.email,
                action=action,
                category=category,
                entity_type=entity_type,
                entity_id=entity_id,
                entity_name=entity_name,
                old_data=old_data,
                new_data=new_data,
                metadata={"path": request.url.path, "method": request.method},
            )
        )
    except Exception:
        logger.warning(
            "activity_log.record_failed",
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            exc_info=True,
        )
