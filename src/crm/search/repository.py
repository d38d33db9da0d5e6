"""Global search repository -- case-insensitive matching across entity tables.

Each entity type is queried separately with ``ilike`` and the hits are
ranked in Python: an exact title match outranks a prefix match, which
outranks a title substring, which outranks a hit on a secondary field.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable

import structlog
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.crm.customers.models import CustomerModel
from src.crm.deals.models import DealModel
from src.crm.invoices.models import InvoiceModel
from src.crm.products.models import ProductModel
from src.crm.search.schemas import SearchEntityType, SearchResult

logger = structlog.get_logger(__name__)

SessionFactory = Callable[..., AsyncGenerator[AsyncSession, None]]

# Per-entity cap before merging, so one busy table cannot crowd out the rest
PER_TYPE_LIMIT = 50


def rank_match(query: str, title: str) -> float:
    """Score how well ``title`` matches ``query`` (both compared case-insensitively)."""
    q = query.casefold()
    t = (title or "").casefold()
    if t == q:
        return 1.0
    if t.startswith(q):
        return 0.75
    if q in t:
        return 0.5
    return 0.25


def _join(*parts: str | None) -> str | None:
    text = ", ".join(p for p in parts if p)
    return text or None


class GlobalSearchRepository:
    """Search customers, deals, products, and invoices with one query.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def search(self, query: str, limit: int = 20) -> list[SearchResult]:
        query = (query or "").strip()
        if not query:
            return []
        pattern = f"%{query}%"

        async for session in self._session_factory():
            results: list[SearchResult] = []

            customers = await session.execute(
                select(CustomerModel)
                .where(
                    or_(
                        CustomerModel.store_name.ilike(pattern),
                        CustomerModel.email.ilike(pattern),
                        CustomerModel.phone.ilike(pattern),
                        CustomerModel.city.ilike(pattern),
                    )
                )
                .limit(PER_TYPE_LIMIT)
            )
            for c in customers.scalars().all():
                results.append(
                    SearchResult(
                        entity_type=SearchEntityType.CUSTOMER,
                        entity_id=str(c.id),
                        title=c.store_name,
                        subtitle=_join(c.city, c.province) or c.email,
                        rank=rank_match(query, c.store_name),
                    )
                )

            deals = await session.execute(
                select(DealModel)
                .where(or_(DealModel.title.ilike(pattern), DealModel.notes.ilike(pattern)))
                .limit(PER_TYPE_LIMIT)
            )
            for d in deals.scalars().all():
                results.append(
                    SearchResult(
                        entity_type=SearchEntityType.DEAL,
                        entity_id=str(d.id),
                        title=d.title,
                        subtitle=f"{d.stage} - ${d.value:,.2f}",
                        rank=rank_match(query, d.title),
                    )
                )

            products = await session.execute(
                select(ProductModel)
                .where(
                    or_(
                        ProductModel.name.ilike(pattern),
                        ProductModel.sku.ilike(pattern),
                        ProductModel.description.ilike(pattern),
                    )
                )
                .limit(PER_TYPE_LIMIT)
            )
            for p in products.scalars().all():
                rank = max(rank_match(query, p.name), rank_match(query, p.sku))
                results.append(
                    SearchResult(
                        entity_type=SearchEntityType.PRODUCT,
                        entity_id=str(p.id),
                        title=p.name,
                        subtitle=p.sku,
                        rank=rank,
                    )
                )

            invoices = await session.execute(
                select(InvoiceModel, CustomerModel.store_name)
                .join(CustomerModel, CustomerModel.id == InvoiceModel.customer_id)
                .where(
                    or_(
                        InvoiceModel.invoice_number.ilike(pattern),
                        CustomerModel.store_name.ilike(pattern),
                    )
                )
                .limit(PER_TYPE_LIMIT)
            )
            for inv, store_name in invoices.all():
                results.append(
                    SearchResult(
                        entity_type=SearchEntityType.INVOICE,
                        entity_id=str(inv.id),
                        title=inv.invoice_number,
                        subtitle=_join(store_name, inv.status),
                        rank=rank_match(query, inv.invoice_number),
                    )
                )

            results.sort(key=lambda r: (-r.rank, r.title.casefold()))
            logger.debug("search.completed", query=query, hits=len(results))
            return results[:limit]
