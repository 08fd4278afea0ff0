"""
Purchase Service - Purchase listing, review and revenue statistics.
"""

from dataclasses import dataclass
from datetime import date, timedelta

from structlog import get_logger

from storefront.db.document_store import PURCHASES, DocumentStore, FieldFilter, fetch_page
from storefront.exceptions import ResourceNotFoundError
from storefront.models.api import PurchaseResponse, PurchaseStatsResponse, PurchaseUpdate
from storefront.models.domain import Clock, Page, PageCursor, utc_now

logger = get_logger(__name__)

COMPLETED = "completed"
ALL_STATUSES = "All"


@dataclass(frozen=True)
class PurchaseFilters:
    """Purchase list filters. Date bounds are inclusive whole UTC days."""

    user_id: str | None = None
    product_id: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    status: str | None = None

    def to_field_filters(self) -> list[FieldFilter]:
        filters: list[FieldFilter] = []
        if self.user_id:
            filters.append(FieldFilter("userId", "==", self.user_id))
        if self.product_id:
            filters.append(FieldFilter("productId", "==", self.product_id))
        if self.status and self.status != ALL_STATUSES:
            filters.append(FieldFilter("status", "==", self.status))
        filters.extend(date_range_filters(self.start_date, self.end_date))
        return filters


def date_range_filters(start: date | None, end: date | None) -> list[FieldFilter]:
    """
    Inclusive whole-day ``purchaseDate`` bounds.

    Stored dates are UTC ISO-8601 text written by the client app, with or without
    fractional seconds and with either a ``Z`` or ``+00:00`` suffix. Bare dates sort
    before every timestamp on that day, so the bounds hold for all of those forms.
    """
    filters: list[FieldFilter] = []
    if start is not None:
        filters.append(FieldFilter("purchaseDate", ">=", start.isoformat()))
    if end is not None:
        filters.append(FieldFilter("purchaseDate", "<", (end + timedelta(days=1)).isoformat()))
    return filters


class PurchaseService:
    """Purchase administration."""

    def __init__(self, store: DocumentStore, clock: Clock = utc_now) -> None:
        self.store = store
        self.clock = clock

    async def list_purchases(
        self,
        filters: PurchaseFilters | None = None,
        page_size: int = 20,
        cursor: PageCursor | None = None,
    ) -> Page[PurchaseResponse]:
        """List purchases, most recent first."""
        filters = filters or PurchaseFilters()
        page = await fetch_page(
            self.store,
            PURCHASES,
            order_by="purchaseDate",
            page_size=page_size,
            cursor=cursor,
            filters=filters.to_field_filters(),
        )
        return Page(
            items=[PurchaseResponse.from_document(doc.id, doc.data) for doc in page.items],
            has_more=page.has_more,
            next_cursor=page.next_cursor,
        )

    async def get_purchase(self, purchase_id: str) -> PurchaseResponse:
        snapshot = await self.store.get(PURCHASES, purchase_id)
        if snapshot is None:
            raise ResourceNotFoundError(f"Purchase not found: {purchase_id}")
        return PurchaseResponse.from_document(snapshot.id, snapshot.data)

    async def update_purchase(self, purchase_id: str, data: PurchaseUpdate) -> PurchaseResponse:
        """
        Apply admin edits (status, refund details).

        Raises:
            ResourceNotFoundError: If the purchase does not exist
        """
        changes = data.model_dump(by_alias=True, exclude_unset=True)
        changes["updatedAt"] = self.clock()
        await self.store.update(PURCHASES, purchase_id, changes)
        logger.info(
            "purchase_updated",
            purchase_id=purchase_id,
            fields=sorted(k for k in changes if k != "updatedAt"),
        )
        return await self.get_purchase(purchase_id)

    async def get_stats(
        self, start_date: date | None = None, end_date: date | None = None
    ) -> PurchaseStatsResponse:
        """Totals over completed purchases, optionally within a date range."""
        filters = [FieldFilter("status", "==", COMPLETED), *date_range_filters(start_date, end_date)]
        completed = await self.store.query(PURCHASES, filters=filters)

        total_revenue = sum(float(doc.get("productPrice") or 0) for doc in completed)
        count = len(completed)
        return PurchaseStatsResponse(
            total_purchases=count,
            total_revenue=total_revenue,
            average_order_value=total_revenue / count if count else 0.0,
        )
