"""
IAP Catalog Queries - Read access to mirrored IAP products and the sync marker.
"""

from storefront.db.document_store import (
    IAP_PRODUCTS,
    SYNC_STATUS_DOC_ID,
    DocumentStore,
    FieldFilter,
    fetch_page,
)
from storefront.exceptions import ResourceNotFoundError
from storefront.models.api import IapProductResponse, Platform, SyncStatusResponse
from storefront.models.domain import Page, PageCursor


class IapCatalogService:
    """Queries over the iapProducts collection."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def list_iap_products(
        self,
        platform: Platform | None = None,
        page_size: int = 20,
        cursor: PageCursor | None = None,
    ) -> Page[IapProductResponse]:
        """
        List IAP products, most recently synced first.

        The sync marker has no ``lastSynced`` field and never appears here.
        """
        filters = [FieldFilter("platform", "==", platform.value)] if platform else []
        page = await fetch_page(
            self.store,
            IAP_PRODUCTS,
            order_by="lastSynced",
            page_size=page_size,
            cursor=cursor,
            filters=filters,
        )
        return Page(
            items=[IapProductResponse.from_document(doc.id, doc.data) for doc in page.items],
            has_more=page.has_more,
            next_cursor=page.next_cursor,
        )

    async def get_iap_product(self, sku: str) -> IapProductResponse:
        snapshot = None if sku == SYNC_STATUS_DOC_ID else await self.store.get(IAP_PRODUCTS, sku)
        if snapshot is None:
            raise ResourceNotFoundError(f"IAP product not found: {sku}")
        return IapProductResponse.from_document(snapshot.id, snapshot.data)

    async def get_sync_status(self) -> SyncStatusResponse | None:
        """Last sync marker, or None if no sync has run."""
        snapshot = await self.store.get(IAP_PRODUCTS, SYNC_STATUS_DOC_ID)
        if snapshot is None:
            return None
        return SyncStatusResponse.from_document(snapshot.id, snapshot.data)
