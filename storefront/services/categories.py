"""
Category Service - Product category CRUD.
"""

from structlog import get_logger

from storefront.db.document_store import CATEGORIES, DocumentStore, encode_document, fetch_page
from storefront.exceptions import ResourceNotFoundError
from storefront.models.api import CategoryResponse, CategoryWrite
from storefront.models.domain import Clock, Page, PageCursor, to_iso, utc_now

logger = get_logger(__name__)


class CategoryService:
    """Product category management."""

    def __init__(self, store: DocumentStore, clock: Clock = utc_now) -> None:
        self.store = store
        self.clock = clock

    async def list_categories(
        self, page_size: int = 20, cursor: PageCursor | None = None
    ) -> Page[CategoryResponse]:
        page = await fetch_page(
            self.store, CATEGORIES, order_by="createdAt", page_size=page_size, cursor=cursor
        )
        return Page(
            items=[CategoryResponse.from_document(doc.id, doc.data) for doc in page.items],
            has_more=page.has_more,
            next_cursor=page.next_cursor,
        )

    async def get_category(self, category_id: str) -> CategoryResponse:
        snapshot = await self.store.get(CATEGORIES, category_id)
        if snapshot is None:
            raise ResourceNotFoundError(f"Category not found: {category_id}")
        return CategoryResponse.from_document(snapshot.id, snapshot.data)

    async def create_category(self, data: CategoryWrite) -> CategoryResponse:
        now = to_iso(self.clock())
        document = {**data.model_dump(by_alias=True), "createdAt": now, "updatedAt": now}
        category_id = await self.store.add(CATEGORIES, document)
        logger.info("category_created", category_id=category_id, name=data.name)
        return CategoryResponse.from_document(category_id, encode_document(document))

    async def update_category(self, category_id: str, data: CategoryWrite) -> CategoryResponse:
        """
        Update a category.

        Raises:
            ResourceNotFoundError: If the category does not exist
        """
        changes = {**data.model_dump(by_alias=True), "updatedAt": to_iso(self.clock())}
        await self.store.update(CATEGORIES, category_id, changes)
        logger.info("category_updated", category_id=category_id)
        return await self.get_category(category_id)

    async def delete_category(self, category_id: str) -> None:
        await self.store.delete(CATEGORIES, category_id)
        logger.info("category_deleted", category_id=category_id)
