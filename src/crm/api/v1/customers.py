"""REST API endpoints for customers, their contacts, and tags.

Customer writes are recorded in the activity log. New customers with an
email address get the welcome automation when email is configured.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile, status

from src.crm.api.audit import record_activity
from src.crm.api.deps import get_current_user
from src.crm.customers.importer import import_customers
from src.crm.customers.schemas import (
    ContactCreate,
    ContactRead,
    ContactUpdate,
    CustomerCreate,
    CustomerFilter,
    CustomerPage,
    CustomerRead,
    CustomerUpdate,
    ImportResult,
    TagCreate,
    TagRead,
)
from src.crm.models.user import User

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["customers"])


def _get_customer_repository(request: Request):
    repo = getattr(request.app.state, "customer_repository", None)
    if repo is None:
        raise HTTPException(status_code=503, detail="Customer repository not initialized")
    return repo


# ── Customers ───────────────────────────────────────────────────────────────


@router.get("/customers", response_model=CustomerPage)
async def list_customers(
    request: Request,
    search: str | None = None,
    status_filter: list[str] = Query(default=[], alias="status"),
    city: list[str] = Query(default=[]),
    province: list[str] = Query(default=[]),
    type: str | None = None,
    tag_id: str | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    user: User = Depends(get_current_user),
) -> CustomerPage:
    """Filtered, paginated customer list, newest first."""
    repo = _get_customer_repository(request)
    filters = CustomerFilter(
        search=search,
        status=status_filter,
        city=city,
        province=province,
        type=type,
        tag_id=tag_id,
        limit=limit,
        offset=offset,
    )
    return await repo.query_customers(filters)


@router.post("/customers", response_model=CustomerRead, status_code=status.HTTP_201_CREATED)
async def create_customer(
    body: CustomerCreate,
    request: Request,
    user: User = Depends(get_current_user),
) -> CustomerRead:
    repo = _get_customer_repository(request)
    customer = await repo.create_customer(body)
    logger.info("customers.created", customer_id=customer.id, store_name=customer.store_name)

    await record_activity(
        request, user, "create", "customer", customer.id, customer.store_name,
        new_data=body.model_dump(mode="json", exclude={"contacts"}),
    )

    automation = getattr(request.app.state, "email_automation", None)
    if automation is not None and customer.email:
        try:
            await automation.send_welcome_email(customer)
        except Exception:
            logger.warning("customers.welcome_email_failed", customer_id=customer.id, exc_info=True)

    return customer


@router.post("/customers/import", response_model=ImportResult)
async def import_customers_csv(
    request: Request,
    file: UploadFile = File(...),
    user: User = Depends(get_current_user),
) -> ImportResult:
    """Import customers from an uploaded CSV export (multipart field ``file``)."""
    repo = _get_customer_repository(request)
    raw = await file.read()
    if not raw.strip():
        raise HTTPException(status_code=400, detail="No file provided")
    try:
        content = raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="File must be UTF-8 encoded CSV")

    result = await import_customers(repo, content)
    await record_activity(
        request, user, "import", "customer",
        new_data={"imported": result.imported, "skipped": result.skipped},
    )
    return result


@router.get("/customers/{customer_id}", response_model=CustomerRead)
async def get_customer(
    customer_id: str,
    request: Request,
    user: User = Depends(get_current_user),
) -> CustomerRead:
    repo = _get_customer_repository(request)
    customer = await repo.get_customer(customer_id)
    if customer is None:
        raise HTTPException(status_code=404, detail="Customer not found")
    return customer


@router.put("/customers/{customer_id}", response_model=CustomerRead)
async def update_customer(
    customer_id: str,
    body: CustomerUpdate,
    request: Request,
    user: User = Depends(get_current_user),
) -> CustomerRead:
    repo = _get_customer_repository(request)
    before = await repo.get_customer(customer_id)
    if before is None:
        raise HTTPException(status_code=404, detail="Customer not found")
    try:
        customer = await repo.update_customer(customer_id, body)
    except ValueError:
        raise HTTPException(status_code=404, detail="Customer not found")

    changes = body.model_dump(mode="json", exclude_none=True)
    await record_activity(
        request, user, "update", "customer", customer.id, customer.store_name,
        old_data={k: before.model_dump(mode="json").get(k) for k in changes},
        new_data=changes,
    )
    return customer


@router.delete("/customers/{customer_id}")
async def delete_customer(
    customer_id: str,
    request: Request,
    user: User = Depends(get_current_user),
) -> dict:
    repo = _get_customer_repository(request)
    existing = await repo.get_customer(customer_id)
    if existing is None or not await repo.delete_customer(customer_id):
        raise HTTPException(status_code=404, detail="Customer not found")
    await record_activity(request, user, "delete", "customer", customer_id, existing.store_name)
    return {"success": True}


# ── Contacts ────────────────────────────────────────────────────────────────


@router.get("/customers/{customer_id}/contacts", response_model=list[ContactRead])
async def list_contacts(
    customer_id: str,
    request: Request,
    user: User = Depends(get_current_user),
) -> list[ContactRead]:
    repo = _get_customer_repository(request)
    return await repo.list_contacts(customer_id)


@router.post(
    "/customers/{customer_id}/contacts",
    response_model=ContactRead,
    status_code=status.HTTP_201_CREATED,
)
async def add_contact(
    customer_id: str,
    body: ContactCreate,
    request: Request,
    user: User = Depends(get_current_user),
) -> ContactRead:
    repo = _get_customer_repository(request)
    try:
        return await repo.add_contact(customer_id, body)
    except ValueError:
        raise HTTPException(status_code=404, detail="Customer not found")


@router.put("/customers/{customer_id}/contacts/{contact_id}", response_model=ContactRead)
async def update_contact(
    customer_id: str,
    contact_id: str,
    body: ContactUpdate,
    request: Request,
    user: User = Depends(get_current_user),
) -> ContactRead:
    repo = _get_customer_repository(request)
    try:
        return await repo.update_contact(customer_id, contact_id, body)
    except ValueError:
        raise HTTPException(status_code=404, detail="Contact not found")


@router.delete("/customers/{customer_id}/contacts/{contact_id}")
async def delete_contact(
    customer_id: str,
    contact_id: str,
    request: Request,
    user: User = Depends(get_current_user),
) -> dict:
    repo = _get_customer_repository(request)
    if not await repo.delete_contact(customer_id, contact_id):
        raise HTTPException(status_code=404, detail="Contact not found")
    return {"success": True}


# ── Tags ────────────────────────────────────────────────────────────────────


@router.post("/customers/{customer_id}/tags/{tag_id}", response_model=CustomerRead)
async def attach_tag(
    customer_id: str,
    tag_id: str,
    request: Request,
    user: User = Depends(get_current_user),
) -> CustomerRead:
    repo = _get_customer_repository(request)
    try:
        return await repo.assign_tag(customer_id, tag_id)
    except ValueError:
        raise HTTPException(status_code=404, detail="Customer or tag not found")


@router.delete("/customers/{customer_id}/tags/{tag_id}", response_model=CustomerRead)
async def detach_tag(
    customer_id: str,
    tag_id: str,
    request: Request,
    user: User = Depends(get_current_user),
) -> CustomerRead:
    repo = _get_customer_repository(request)
    try:
        return await repo.remove_tag(customer_id, tag_id)
    except ValueError:
        raise HTTPException(status_code=404, detail="Customer not found")


@router.get("/tags", response_model=list[TagRead])
async def list_tags(
    request: Request,
    user: User = Depends(get_current_user),
) -> list[TagRead]:
    repo = _get_customer_repository(request)
    return await repo.list_tags()


@router.post("/tags", response_model=TagRead, status_code=status.HTTP_201_CREATED)
async def create_tag(
    body: TagCreate,
    request: Request,
    user: User = Depends(get_current_user),
) -> TagRead:
    repo = _get_customer_repository(request)
    try:
        return await repo.create_tag(body)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.delete("/tags/{tag_id}")
async def delete_tag(
    tag_id: str,
    request: Request,
    user: User = Depends(get_current_user),
) -> dict:
    repo = _get_customer_repository(request)
    if not await repo.delete_tag(tag_id):
        raise HTTPException(status_code=404, detail="Tag not found")
    return {"success": True}
