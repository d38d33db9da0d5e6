"""Download CRM records as CSV, JSON, or XLSX attachments."""

from __future__ import annotations

from typing import Literal

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import Response

from src.crm.api.deps import get_current_user
from src.crm.common.export import (
    CSV_MEDIA_TYPE,
    EXPORT_COLUMNS,
    JSON_MEDIA_TYPE,
    XLSX_MEDIA_TYPE,
    export_filename,
    export_to_csv,
    export_to_excel,
    export_to_json,
)
from src.crm.models.user import User

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/export", tags=["export"])

ExportFormat = Literal["csv", "json", "xlsx"]


EXPORT_SOURCES: dict[str, tuple[str, str, dict]] = {
    "customers": ("customer_repository", "list_all_customers", {}),
    "deals": ("deal_repository", "list_deals", {}),
    "invoices": ("invoice_repository", "list_invoices", {}),
    "products": ("product_repository", "list_products", {"include_inactive": True}),
}


async def _load_rows(request: Request, entity: str) -> list[dict]:
    attr, method, kwargs = EXPORT_SOURCES[entity]
    repo = getattr(request.app.state, attr, None)
    if repo is None:
        raise HTTPException(status_code=503, detail=f"{entity.capitalize()} repository not initialized")
    records = await getattr(repo, method)(**kwargs)
    return [r.model_dump() for r in records]


@router.get("/{entity}")
async def export_entity(
    entity: str,
    request: Request,
    format: ExportFormat = Query(default="csv"),
    user: User = Depends(get_current_user),
) -> Response:
    columns = EXPORT_COLUMNS.get(entity)
    if columns is None:
        raise HTTPException(status_code=404, detail=f"Unknown export: {entity}")

    rows = await _load_rows(request, entity)
    try:
        if format == "csv":
            content: str | bytes = export_to_csv(rows, columns)
            media_type = CSV_MEDIA_TYPE
        elif format == "json":
            content = export_to_json(rows)
            media_type = JSON_MEDIA_TYPE
        else:
            content = export_to_excel(rows, columns, sheet_title=entity.capitalize())
            media_type = XLSX_MEDIA_TYPE
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    filename = export_filename(entity, format)
    logger.info("export.generated", entity=entity, format=format, rows=len(rows))
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
