"""Shipment repository -- persisted labels, status changes, and tracking events."""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable, Iterable
from datetime import date, datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.crm.customers.models import CustomerModel
from src.crm.shipments.models import ShipmentModel, ShippingEventModel
from src.crm.shipments.schemas import (
    ShipmentCreate,
    ShipmentRead,
    ShippingEventRead,
    TrackingEvent,
)

logger = structlog.get_logger(__name__)


def _utc(value: datetime) -> datetime:
    """Normalize to aware UTC; SQLite hands back naive datetimes."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _model_to_event(model: ShippingEventModel) -> ShippingEventRead:
    return ShippingEventRead(
        id=str(model.id),
        status=model.status,
        message=model.message,
        location=model.location,
        timestamp=model.timestamp,
    )


def _model_to_shipment(model: ShipmentModel, customer_name: str | None = None) -> ShipmentRead:
    return ShipmentRead(
        id=str(model.id),
        customer_id=str(model.customer_id),
        customer_name=customer_name,
        invoice_id=str(model.invoice_id) if model.invoice_id else None,
        order_number=model.order_number,
        carrier=model.carrier,
        tracking_number=model.tracking_number,
        status=model.status,
        service_level=model.service_level,
        package_count=model.package_count,
        actual_weight=model.actual_weight,
        dimensions_length=model.dimensions_length,
        dimensions_width=model.dimensions_width,
        dimensions_height=model.dimensions_height,
        shipping_cost=model.shipping_cost,
        label_url=model.label_url,
        estimated_delivery_date=model.estimated_delivery_date,
        shipped_date=model.shipped_date,
        delivered_date=model.delivered_date,
        notes=model.notes,
        events=[_model_to_event(e) for e in model.events],
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _shipment_stmt():
    return (
        select(ShipmentModel, CustomerModel.store_name)
        .outerjoin(CustomerModel, CustomerModel.id == ShipmentModel.customer_id)
        .options(selectinload(ShipmentModel.events))
        .execution_options(populate_existing=True)
    )


class ShipmentRepository:
    """Async persistence for shipments and their tracking history.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    async def create_shipment(
        self,
        data: ShipmentCreate,
        initial_message: str = "Shipping label created",
    ) -> ShipmentRead:
        """Insert a shipment together with its first tracking event."""
        async for session in self._session_factory():
            values = data.model_dump()
            values["customer_id"] = uuid.UUID(data.customer_id)
            values["invoice_id"] = uuid.UUID(data.invoice_id) if data.invoice_id else None
            model = ShipmentModel(**values)
            model.events.append(
                ShippingEventModel(
                    status=data.status,
                    message=initial_message,
                    timestamp=datetime.now(timezone.utc),
                )
            )
            session.add(model)
            await session.commit()
            logger.info(
                "shipments.created",
                shipment_id=str(model.id),
                order_number=model.order_number,
                tracking_number=model.tracking_number,
            )
            return await self._fetch(session, model.id)

    async def get_shipment(self, shipment_id: str) -> ShipmentRead | None:
        try:
            sid = uuid.UUID(shipment_id)
        except ValueError:
            return None
        async for session in self._session_factory():
            return await self._fetch(session, sid)

    async def list_shipments(
        self,
        customer_id: str | None = None,
        status: str | None = None,
    ) -> list[ShipmentRead]:
        async for session in self._session_factory():
            stmt = _shipment_stmt().order_by(ShipmentModel.created_at.desc())
            if customer_id:
                stmt = stmt.where(ShipmentModel.customer_id == uuid.UUID(customer_id))
            if status:
                stmt = stmt.where(ShipmentModel.status == status)
            result = await session.execute(stmt)
            return [_model_to_shipment(s, name) for s, name in result.all()]

    async def set_status(
        self,
        shipment_id: str,
        status: str,
        message: str | None = None,
    ) -> ShipmentRead:
        """Change status, optionally recording a tracking event with ``message``."""
        async for session in self._session_factory():
            model = await session.get(ShipmentModel, uuid.UUID(shipment_id))
            if model is None:
                raise ValueError(f"Shipment not found: id={shipment_id}")
            model.status = status
            if message:
                session.add(
                    ShippingEventModel(
                        shipment_id=model.id,
                        status=status,
                        message=message,
                        timestamp=datetime.now(timezone.utc),
                    )
                )
            await session.commit()
            logger.info("shipments.status_changed", shipment_id=shipment_id, status=status)
            return await self._fetch(session, model.id)

    async def apply_tracking(
        self,
        shipment_id: str,
        status: str,
        delivered_date: datetime | None,
        events: Iterable[TrackingEvent],
    ) -> int:
        """Store a tracking refresh from the carrier.

        Events whose timestamp is already recorded for the shipment are
        skipped.

        Returns:
            Number of new events inserted.
        """
        async for session in self._session_factory():
            model = await session.get(ShipmentModel, uuid.UUID(shipment_id))
            if model is None:
                raise ValueError(f"Shipment not found: id={shipment_id}")
            model.status = status
            model.delivered_date = delivered_date

            result = await session.execute(
                select(ShippingEventModel.timestamp).where(
                    ShippingEventModel.shipment_id == model.id
                )
            )
            seen = {_utc(ts) for ts in result.scalars().all()}

            added = 0
            for event in events:
                key = _utc(event.timestamp)
                if key in seen:
                    continue
                seen.add(key)
                session.add(
                    ShippingEventModel(
                        shipment_id=model.id,
                        status=event.status,
                        message=event.message,
                        location=event.location,
                        timestamp=event.timestamp,
                    )
                )
                added += 1

            await session.commit()
            logger.info(
                "shipments.tracking_refreshed",
                shipment_id=shipment_id,
                status=status,
                events_added=added,
            )
            return added

    @staticmethod
    async def _fetch(session: AsyncSession, shipment_id: uuid.UUID) -> ShipmentRead | None:
        row = (await session.execute(_shipment_stmt().where(ShipmentModel.id == shipment_id))).first()
        if row is None:
            return None
        shipment, name = row
        return _model_to_shipment(shipment, name)


def parse_provider_date(value: str | None) -> datetime | None:
    """Parse an ISO timestamp from NetParcel; a bare date becomes midnight UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        parsed = datetime.combine(date.fromisoformat(value[:10]), datetime.min.time())
    return _utc(parsed)
