"""
Product Service - Catalog product CRUD with IAP link maintenance.

Every write persists the product first and only then hands the before/after
state to the link maintainer, so a link failure never rolls back the save.
"""

from collections.abc import Sequence
from typing import Any

from structlog import get_logger

from storefront.db.document_store import (
    IAP_PRODUCTS,
    PRODUCTS,
    DocumentStore,
    encode_document,
    fetch_page,
)
from storefront.exceptions import ResourceNotFoundError
from storefront.models.api import Platform, ProductResponse, ProductWrite
from storefront.models.domain import (
    Clock,
    Page,
    PageCursor,
    ProductIapRefs,
    to_iso,
    utc_now,
)
from storefront.services.iap_links import IapLinkMaintainer
from storefront.services.pricing import pick_display_price

logger = get_logger(__name__)

DEFAULT_PREFERRED_CURRENCIES = ("INR", "USD", "EUR")


class ProductService:
    """Catalog product management."""

    def __init__(
        self,
        store: DocumentStore,
        link_maintainer: IapLinkMaintainer,
        preferred_currencies: Sequence[str] = DEFAULT_PREFERRED_CURRENCIES,
        clock: Clock = utc_now,
    ) -> None:
        """
        Initialize product service.

        Args:
            store: Document store
            link_maintainer: Post-commit hook keeping IAP link fields consistent
            preferred_currencies: Display price currency lookup order
            clock: Source of write timestamps
        """
        self.store = store
        self.link_maintainer = link_maintainer
        self.preferred_currencies = tuple(preferred_currencies)
        self.clock = clock

    async def list_products(
        self, page_size: int = 20, cursor: PageCursor | None = None
    ) -> Page[ProductResponse]:
        """List products, newest first."""
        page = await fetch_page(
            self.store, PRODUCTS, order_by="createdAt", page_size=page_size, cursor=cursor
        )
        return Page(
            items=[ProductResponse.from_document(doc.id, doc.data) for doc in page.items],
            has_more=page.has_more,
            next_cursor=page.next_cursor,
        )

    async def get_product(self, product_id: str) -> ProductResponse:
        """
        Get a product.

        Raises:
            ResourceNotFoundError: If the product does not exist
        """
        snapshot = await self.store.get(PRODUCTS, product_id)
        if snapshot is None:
            raise ResourceNotFoundError(f"Product not found: {product_id}")
        return ProductResponse.from_document(snapshot.id, snapshot.data)

    async def create_product(self, data: ProductWrite) -> ProductResponse:
        """Create a product and grant the IAP links it claims."""
        now = to_iso(self.clock())
        document = await self._build_document(data)
        document["createdAt"] = now
        document["updatedAt"] = now

        product_id = await self.store.add(PRODUCTS, document)
        logger.info(
            "product_created",
            product_id=product_id,
            iap_product_id_android=data.iap_product_id_android,
            iap_product_id_ios=data.iap_product_id_ios,
        )

        await self.link_maintainer.on_product_written(product_id, None, document)
        return ProductResponse.from_document(product_id, encode_document(document))

    async def update_product(self, product_id: str, data: ProductWrite) -> ProductResponse:
        """
        Update a product, releasing IAP links it no longer claims.

        Raises:
            ResourceNotFoundError: If the product does not exist
        """
        before = await self.store.get(PRODUCTS, product_id)
        if before is None:
            raise ResourceNotFoundError(f"Product not found: {product_id}")

        changes = await self._build_document(data)
        changes["updatedAt"] = to_iso(self.clock())
        await self.store.update(PRODUCTS, product_id, changes)

        after = {**before.data, **encode_document(changes)}
        logger.info("product_updated", product_id=product_id)

        await self.link_maintainer.on_product_written(product_id, before.data, after)
        return ProductResponse.from_document(product_id, after)

    async def delete_product(self, product_id: str) -> None:
        """
        Delete a product and release both platform links.

        Raises:
            ResourceNotFoundError: If the product does not exist
        """
        before = await self.store.get(PRODUCTS, product_id)
        if before is None:
            raise ResourceNotFoundError(f"Product not found: {product_id}")

        await self.store.delete(PRODUCTS, product_id)
        logger.info("product_deleted", product_id=product_id)

        await self.link_maintainer.on_product_deleted(product_id, before.data)

    async def resolve_display_price(
        self, data: ProductWrite
    ) -> tuple[float | None, str | None]:
        """
        Snapshot the display price from the claimed IAP products.

        Android is consulted first, then iOS. Free products and products
        without a priced IAP product have no display price.
        """
        if data.is_free:
            return None, None

        refs = ProductIapRefs(android=data.iap_product_id_android, ios=data.iap_product_id_ios)
        for platform in (Platform.ANDROID, Platform.IOS):
            sku = refs.for_platform(platform)
            if not sku:
                continue
            snapshot = await self.store.get(IAP_PRODUCTS, sku)
            if snapshot is None:
                continue
            picked = pick_display_price(snapshot.get("prices") or [], self.preferred_currencies)
            if picked is not None:
                return picked
        return None, None

    async def _build_document(self, data: ProductWrite) -> dict[str, Any]:
        document = data.model_dump(by_alias=True)
        display_price, display_currency = await self.resolve_display_price(data)
        document["displayPrice"] = display_price
        document["displayCurrency"] = display_currency
        return document
