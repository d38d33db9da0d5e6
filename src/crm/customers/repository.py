"""Customer repository -- async CRUD for customers, contacts, tags, saved searches.

Uses the session_factory callable pattern: each method opens a session via
``async for session in self._session_factory()`` and returns Pydantic read
schemas, never ORM instances.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timezone

import structlog
from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.crm.customers.models import (
    ContactModel,
    CustomerModel,
    SavedSearchModel,
    TagModel,
    customer_tags,
)
from src.crm.customers.schemas import (
    ContactCreate,
    ContactRead,
    ContactUpdate,
    CustomerCreate,
    CustomerFilter,
    CustomerPage,
    CustomerRead,
    CustomerUpdate,
    SavedSearchCreate,
    SavedSearchRead,
    TagCreate,
    TagRead,
)

logger = structlog.get_logger(__name__)

SessionFactory = Callable[..., AsyncGenerator[AsyncSession, None]]


# ── Serialization Helpers ───────────────────────────────────────────────────


def _model_to_tag(model: TagModel) -> TagRead:
    return TagRead(
        id=str(model.id),
        name=model.name,
        color=model.color,
        created_at=model.created_at,
    )


def _model_to_contact(model: ContactModel) -> ContactRead:
    return ContactRead(
        id=str(model.id),
        customer_id=str(model.customer_id),
        name=model.name,
        role=model.role,
        email=model.email,
        phone=model.phone,
        is_primary=bool(model.is_primary),
        created_at=model.created_at,
    )


def _model_to_customer(model: CustomerModel) -> CustomerRead:
    """Convert CustomerModel (with contacts and tags loaded) to CustomerRead."""
    return CustomerRead(
        id=str(model.id),
        store_name=model.store_name,
        email=model.email,
        phone=model.phone,
        owner_manager_name=model.owner_manager_name,
        type=model.type,
        status=model.status,
        notes=model.notes,
        province=model.province,
        city=model.city,
        street=model.street,
        postal_code=model.postal_code,
        location_lat=model.location_lat,
        location_lng=model.location_lng,
        website=model.website,
        stripe_customer_id=model.stripe_customer_id,
        contacts=[_model_to_contact(c) for c in model.contacts],
        tags=[_model_to_tag(t) for t in model.tags],
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _model_to_saved_search(model: SavedSearchModel) -> SavedSearchRead:
    return SavedSearchRead(
        id=str(model.id),
        user_id=str(model.user_id),
        name=model.name,
        filters=model.filters or {},
        created_at=model.created_at,
    )


async def _load_customer(session: AsyncSession, customer_id: uuid.UUID) -> CustomerModel | None:
    stmt = (
        select(CustomerModel)
        .where(CustomerModel.id == customer_id)
        .options(selectinload(CustomerModel.contacts), selectinload(CustomerModel.tags))
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


def _parse_id(value: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


# ── Customer Repository ─────────────────────────────────────────────────────


class CustomerRepository:
    """Async CRUD for customers and their contacts and tags.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    # ── Customers ───────────────────────────────────────────────────────────

    async def create_customer(self, data: CustomerCreate) -> CustomerRead:
        """Insert a customer and any contacts supplied with it."""
        async for session in self._session_factory():
            values = data.model_dump(exclude={"contacts"}, mode="json")
            model = CustomerModel(**values)
            for contact in data.contacts:
                model.contacts.append(ContactModel(**contact.model_dump()))
            session.add(model)
            await session.commit()
            loaded = await _load_customer(session, model.id)
            logger.info("customers.created", customer_id=str(model.id))
            return _model_to_customer(loaded)

    async def get_customer(self, customer_id: str) -> CustomerRead | None:
        cid = _parse_id(customer_id)
        if cid is None:
            return None
        async for session in self._session_factory():
            model = await _load_customer(session, cid)
            if model is None:
                return None
            return _model_to_customer(model)

    async def query_customers(self, filters: CustomerFilter | None = None) -> CustomerPage:
        """Filtered, paginated customer list ordered newest first.

        Search is a case-insensitive substring match over store name, email,
        phone, and city. List filters (status, city, province) match any of
        the given values.
        """
        filters = filters or CustomerFilter()
        async for session in self._session_factory():
            conditions = []
            if filters.search:
                pattern = f"%{filters.search.strip()}%"
                conditions.append(
                    or_(
                        CustomerModel.store_name.ilike(pattern),
                        CustomerModel.email.ilike(pattern),
                        CustomerModel.phone.ilike(pattern),
                        CustomerModel.city.ilike(pattern),
                    )
                )
            if filters.status:
                conditions.append(CustomerModel.status.in_(filters.status))
            if filters.city:
                conditions.append(CustomerModel.city.in_(filters.city))
            if filters.province:
                conditions.append(CustomerModel.province.in_(filters.province))
            if filters.type:
                conditions.append(CustomerModel.type == filters.type)
            if filters.tag_id:
                tag_id = _parse_id(filters.tag_id)
                conditions.append(
                    CustomerModel.id.in_(
                        select(customer_tags.c.customer_id).where(customer_tags.c.tag_id == tag_id)
                    )
                )

            count_stmt = select(func.count()).select_from(CustomerModel).where(*conditions)
            total = (await session.execute(count_stmt)).scalar_one()

            stmt = (
                select(CustomerModel)
                .where(*conditions)
                .options(selectinload(CustomerModel.contacts), selectinload(CustomerModel.tags))
                .order_by(CustomerModel.created_at.desc(), CustomerModel.store_name)
                .limit(filters.limit)
                .offset(filters.offset)
            )
            result = await session.execute(stmt)
            items = [_model_to_customer(m) for m in result.scalars().all()]
            return CustomerPage(items=items, total=total)

    async def list_all_customers(self) -> list[CustomerRead]:
        """Every customer, for exports and analytics."""
        async for session in self._session_factory():
            stmt = (
                select(CustomerModel)
                .options(selectinload(CustomerModel.contacts), selectinload(CustomerModel.tags))
                .order_by(CustomerModel.store_name)
            )
            result = await session.execute(stmt)
            return [_model_to_customer(m) for m in result.scalars().all()]

    async def count_customers(self) -> int:
        async for session in self._session_factory():
            result = await session.execute(select(func.count()).select_from(CustomerModel))
            return result.scalar_one()

    async def update_customer(self, customer_id: str, data: CustomerUpdate) -> CustomerRead:
        """Apply non-None fields to a customer.

        Raises:
            ValueError: If the customer does not exist.
        """
        cid = _parse_id(customer_id)
        async for session in self._session_factory():
            model = await _load_customer(session, cid) if cid else None
            if model is None:
                raise ValueError(f"Customer not found: id={customer_id}")

            for key, value in data.model_dump(exclude_none=True, mode="json").items():
                setattr(model, key, value)
            model.updated_at = datetime.now(timezone.utc)

            await session.commit()
            loaded = await _load_customer(session, model.id)
            return _model_to_customer(loaded)

    async def delete_customer(self, customer_id: str) -> bool:
        cid = _parse_id(customer_id)
        if cid is None:
            return False
        async for session in self._session_factory():
            model = await session.get(CustomerModel, cid)
            if model is None:
                return False
            await session.delete(model)
            await session.commit()
            logger.info("customers.deleted", customer_id=customer_id)
            return True

    # ── Contacts ────────────────────────────────────────────────────────────

    async def list_contacts(self, customer_id: str) -> list[ContactRead]:
        cid = _parse_id(customer_id)
        async for session in self._session_factory():
            stmt = (
                select(ContactModel)
                .where(ContactModel.customer_id == cid)
                .order_by(ContactModel.is_primary.desc(), ContactModel.created_at)
            )
            result = await session.execute(stmt)
            return [_model_to_contact(m) for m in result.scalars().all()]

    async def add_contact(self, customer_id: str, data: ContactCreate) -> ContactRead:
        """Add a contact; a primary contact demotes the customer's other contacts.

        Raises:
            ValueError: If the customer does not exist.
        """
        cid = _parse_id(customer_id)
        async for session in self._session_factory():
            customer = await session.get(CustomerModel, cid) if cid else None
            if customer is None:
                raise ValueError(f"Customer not found: id={customer_id}")
            if data.is_primary:
                await self._clear_primary(session, cid)
            model = ContactModel(customer_id=cid, **data.model_dump())
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_contact(model)

    async def update_contact(
        self, customer_id: str, contact_id: str, data: ContactUpdate
    ) -> ContactRead:
        cid = _parse_id(customer_id)
        contact_uuid = _parse_id(contact_id)
        async for session in self._session_factory():
            model = await session.get(ContactModel, contact_uuid) if contact_uuid else None
            if model is None or model.customer_id != cid:
                raise ValueError(f"Contact not found: id={contact_id}")
            if data.is_primary:
                await self._clear_primary(session, cid)
            for key, value in data.model_dump(exclude_none=True).items():
                setattr(model, key, value)
            await session.commit()
            await session.refresh(model)
            return _model_to_contact(model)

    async def delete_contact(self, customer_id: str, contact_id: str) -> bool:
        cid = _parse_id(customer_id)
        contact_uuid = _parse_id(contact_id)
        async for session in self._session_factory():
            model = await session.get(ContactModel, contact_uuid) if contact_uuid else None
            if model is None or model.customer_id != cid:
                return False
            await session.delete(model)
            await session.commit()
            return True

    @staticmethod
    async def _clear_primary(session: AsyncSession, customer_id: uuid.UUID) -> None:
        result = await session.execute(
            select(ContactModel).where(
                ContactModel.customer_id == customer_id,
                ContactModel.is_primary == True,  # noqa: E712
            )
        )
        for contact in result.scalars().all():
            contact.is_primary = False

    # ── Tags ────────────────────────────────────────────────────────────────

    async def list_tags(self) -> list[TagRead]:
        async for session in self._session_factory():
            result = await session.execute(select(TagModel).order_by(TagModel.name))
            return [_model_to_tag(m) for m in result.scalars().all()]

    async def create_tag(self, data: TagCreate) -> TagRead:
        """Create a tag.

        Raises:
            ValueError: If a tag with the same name exists.
        """
        async for session in self._session_factory():
            existing = await session.execute(select(TagModel).where(TagModel.name == data.name))
            if existing.scalar_one_or_none() is not None:
                raise ValueError(f"Tag already exists: {data.name}")
            model = TagModel(name=data.name, color=data.color)
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_tag(model)

    async def delete_tag(self, tag_id: str) -> bool:
        tid = _parse_id(tag_id)
        async for session in self._session_factory():
            model = await session.get(TagModel, tid) if tid else None
            if model is None:
                return False
            await session.execute(delete(customer_tags).where(customer_tags.c.tag_id == tid))
            await session.delete(model)
            await session.commit()
            return True

    async def assign_tag(self, customer_id: str, tag_id: str) -> CustomerRead:
        """Attach a tag to a customer (no-op if already attached).

        Raises:
            ValueError: If the customer or tag does not exist.
        """
        cid = _parse_id(customer_id)
        tid = _parse_id(tag_id)
        async for session in self._session_factory():
            customer = await _load_customer(session, cid) if cid else None
            tag = await session.get(TagModel, tid) if tid else None
            if customer is None or tag is None:
                raise ValueError(f"Customer or tag not found: customer={customer_id}, tag={tag_id}")
            if all(t.id != tag.id for t in customer.tags):
                customer.tags.append(tag)
                await session.commit()
            loaded = await _load_customer(session, cid)
            return _model_to_customer(loaded)

    async def remove_tag(self, customer_id: str, tag_id: str) -> CustomerRead:
        cid = _parse_id(customer_id)
        tid = _parse_id(tag_id)
        async for session in self._session_factory():
            customer = await _load_customer(session, cid) if cid else None
            if customer is None:
                raise ValueError(f"Customer not found: id={customer_id}")
            customer.tags = [t for t in customer.tags if t.id != tid]
            await session.commit()
            loaded = await _load_customer(session, cid)
            return _model_to_customer(loaded)


# ── Saved Search Repository ─────────────────────────────────────────────────


class SavedSearchRepository:
    """Per-user named customer filters."""

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def list_saved_searches(self, user_id: str) -> list[SavedSearchRead]:
        async for session in self._session_factory():
            stmt = (
                select(SavedSearchModel)
                .where(SavedSearchModel.user_id == uuid.UUID(user_id))
                .order_by(SavedSearchModel.name)
            )
            result = await session.execute(stmt)
            return [_model_to_saved_search(m) for m in result.scalars().all()]

    async def create_saved_search(self, user_id: str, data: SavedSearchCreate) -> SavedSearchRead:
        async for session in self._session_factory():
            model = SavedSearchModel(
                user_id=uuid.UUID(user_id),
                name=data.name,
                filters=data.filters,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_saved_search(model)

    async def delete_saved_search(self, user_id: str, search_id: str) -> bool:
        sid = _parse_id(search_id)
        async for session in self._session_factory():
            model = await session.get(SavedSearchModel, sid) if sid else None
            if model is None or model.user_id != uuid.UUID(user_id):
                return False
            await session.delete(model)
            await session.commit()
            return True
