"""REST API endpoints for shipments.

Labels are purchased from NetParcel on create; tracking is pulled on
demand by the refresh endpoint. Shipment writes are recorded in the
activity log.
"""

from __future__ import annotations

import time

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field

from src.crm.api.audit import record_activity
from src.crm.api.deps import get_current_user
from src.crm.core.rate_limit import rate_limited
from src.crm.models.user import User
from src.crm.shipments.netparcel import NetParcelError
from src.crm.shipments.repository import parse_provider_date
from src.crm.shipments.schemas import (
    ShipmentCreate,
    ShipmentRead,
    ShipmentStatus,
    TrackingEvent,
)
from src.crm.shipments.utils import can_cancel_shipment

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/shipments", tags=["shipments"])


# ── Request / Response Schemas ───────────────────────────────────────────────


class CreateShipmentRequest(BaseModel):
    """Body of POST /api/shipments/create.

    Every field is optional at the schema level so that missing values
    produce the 400 "Missing required fields" answer rather than a 422.
    """

    customer_id: str | None = None
    invoice_id: str | None = None
    weight: float | None = None
    length: float | None = None
    width: float | None = None
    height: float | None = None
    service_level: str | None = None
    package_count: int = 1
    notes: str | None = None


class CreateShipmentResponse(BaseModel):
    success: bool = True
    shipment: ShipmentRead


class RefreshTrackingResponse(BaseModel):
    success: bool = True
    status: str
    eventsAdded: int  # noqa: N815


class RateQuoteRequest(BaseModel):
    weight: float = Field(..., gt=0)
    length: float = Field(..., gt=0)
    width: float = Field(..., gt=0)
    height: float = Field(..., gt=0)
    destination_postal_code: str = Field(..., min_length=3)


# ── Helpers ─────────────────────────────────────────────────────────────────


def _get_shipment_repository(request: Request):
    repo = getattr(request.app.state, "shipment_repository", None)
    if repo is None:
        raise HTTPException(status_code=503, detail="Shipment repository not initialized")
    return repo


def _get_netparcel(request: Request):
    client = getattr(request.app.state, "netparcel_client", None)
    if client is None:
        raise HTTPException(status_code=503, detail="NetParcel not configured")
    return client


def generate_order_number() -> str:
    return f"ORD-{int(time.time() * 1000)}"


# ── Endpoints ───────────────────────────────────────────────────────────────


@router.post(
    "/create",
    response_model=CreateShipmentResponse,
    dependencies=[Depends(rate_limited("shipments"))],
)
async def create_shipment(
    body: CreateShipmentRequest,
    request: Request,
    user: User = Depends(get_current_user),
) -> CreateShipmentResponse:
    """Buy a label from NetParcel and store the shipment as label_created."""
    if not (
        body.customer_id
        and body.weight
        and body.length
        and body.width
        and body.height
        and body.service_level
    ):
        raise HTTPException(status_code=400, detail="Missing required fields")

    repo = _get_shipment_repository(request)
    customer_repo = getattr(request.app.state, "customer_repository", None)
    customer = await customer_repo.get_customer(body.customer_id) if customer_repo else None
    if customer is None:
        raise HTTPException(status_code=404, detail="Customer not found")

    netparcel = _get_netparcel(request)
    try:
        label = await netparcel.create_shipment(
            customer_id=body.customer_id,
            invoice_id=body.invoice_id,
            weight=body.weight,
            length=body.length,
            width=body.width,
            height=body.height,
            service_level=body.service_level,
            package_count=body.package_count or 1,
        )
    except NetParcelError as exc:
        logger.error("shipments.netparcel_create_failed", customer_id=body.customer_id, error=str(exc))
        raise HTTPException(status_code=500, detail=f"NetParcel error: {exc}")

    estimated = parse_provider_date(label.get("estimated_delivery_date"))
    shipment = await repo.create_shipment(
        ShipmentCreate(
            customer_id=body.customer_id,
            invoice_id=body.invoice_id or None,
            order_number=generate_order_number(),
            carrier=label.get("carrier"),
            tracking_number=label.get("tracking_number"),
            status=ShipmentStatus.LABEL_CREATED.value,
            service_level=body.service_level,
            package_count=body.package_count or 1,
            actual_weight=body.weight,
            dimensions_length=body.length,
            dimensions_width=body.width,
            dimensions_height=body.height,
            shipping_cost=label.get("cost"),
            label_url=label.get("label_url"),
            estimated_delivery_date=estimated.date() if estimated else None,
            notes=body.notes or None,
        )
    )

    automation = getattr(request.app.state, "email_automation", None)
    if automation is not None:
        try:
            await automation.send_shipment_email(shipment, customer)
        except Exception:
            logger.warning("shipments.notification_failed", shipment_id=shipment.id, exc_info=True)

    await record_activity(
        request, user, "create", "shipment", shipment.id, shipment.order_number,
        new_data={"tracking_number": shipment.tracking_number, "customer_id": shipment.customer_id},
    )
    return CreateShipmentResponse(shipment=shipment)


@router.post("/rates", dependencies=[Depends(rate_limited("shipments"))])
async def quote_rates(
    body: RateQuoteRequest,
    request: Request,
    user: User = Depends(get_current_user),
) -> dict:
    """Carrier rate quotes for a package from the default origin."""
    netparcel = _get_netparcel(request)
    try:
        return await netparcel.get_rates(
            weight=body.weight,
            length=body.length,
            width=body.width,
            height=body.height,
            destination_postal_code=body.destination_postal_code,
        )
    except NetParcelError as exc:
        logger.error("shipments.rates_failed", error=str(exc))
        raise HTTPException(status_code=500, detail=str(exc))


@router.get("", response_model=list[ShipmentRead])
async def list_shipments(
    request: Request,
    customer_id: str | None = None,
    status_filter: str | None = Query(default=None, alias="status"),
    user: User = Depends(get_current_user),
) -> list[ShipmentRead]:
    repo = _get_shipment_repository(request)
    try:
        return await repo.list_shipments(customer_id=customer_id, status=status_filter)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid customer_id")


@router.get("/{shipment_id}", response_model=ShipmentRead)
async def get_shipment(
    shipment_id: str,
    request: Request,
    user: User = Depends(get_current_user),
) -> ShipmentRead:
    repo = _get_shipment_repository(request)
    shipment = await repo.get_shipment(shipment_id)
    if shipment is None:
        raise HTTPException(status_code=404, detail="Shipment not found")
    return shipment


@router.post("/{shipment_id}/cancel")
async def cancel_shipment(
    shipment_id: str,
    request: Request,
    user: User = Depends(get_current_user),
) -> dict:
    """Cancel a shipment whose label has not been picked up yet.

    The NetParcel cancellation is best effort; the CRM record is cancelled
    even when the provider call fails.
    """
    repo = _get_shipment_repository(request)
    shipment = await repo.get_shipment(shipment_id)
    if shipment is None:
        raise HTTPException(status_code=404, detail="Shipment not found")
    if not can_cancel_shipment(shipment.status):
        raise HTTPException(status_code=400, detail="Shipment cannot be cancelled in current status")

    netparcel = getattr(request.app.state, "netparcel_client", None)
    if netparcel is not None and shipment.tracking_number:
        try:
            await netparcel.cancel_shipment(shipment.tracking_number)
        except NetParcelError as exc:
            logger.warning("shipments.netparcel_cancel_failed", shipment_id=shipment_id, error=str(exc))

    await repo.set_status(shipment_id, ShipmentStatus.CANCELLED.value, "Shipment cancelled")
    await record_activity(
        request, user, "cancel", "shipment", shipment_id, shipment.order_number,
        old_data={"status": shipment.status},
        new_data={"status": ShipmentStatus.CANCELLED.value},
    )
    return {"success": True, "message": "Shipment cancelled successfully"}


@router.post("/{shipment_id}/refresh", response_model=RefreshTrackingResponse)
async def refresh_tracking(
    shipment_id: str,
    request: Request,
    user: User = Depends(get_current_user),
) -> RefreshTrackingResponse:
    """Pull tracking from NetParcel and store status plus any new events."""
    repo = _get_shipment_repository(request)
    shipment = await repo.get_shipment(shipment_id)
    if shipment is None:
        raise HTTPException(status_code=404, detail="Shipment not found")
    if not shipment.tracking_number:
        raise HTTPException(status_code=400, detail="No tracking number available")

    netparcel = _get_netparcel(request)
    try:
        tracking = await netparcel.get_tracking(shipment.tracking_number)
    except NetParcelError as exc:
        logger.error("shipments.tracking_failed", shipment_id=shipment_id, error=str(exc))
        raise HTTPException(status_code=500, detail=str(exc))

    status = tracking.get("status") or shipment.status
    events = []
    for raw in tracking.get("events") or []:
        timestamp = parse_provider_date(raw.get("timestamp"))
        if timestamp is None:
            continue
        events.append(
            TrackingEvent(
                status=raw.get("status") or status,
                message=raw.get("message"),
                location=raw.get("location") or None,
                timestamp=timestamp,
            )
        )

    added = await repo.apply_tracking(
        shipment_id,
        status,
        parse_provider_date(tracking.get("delivered_date")),
        events,
    )
    return RefreshTrackingResponse(status=status, eventsAdded=added)
